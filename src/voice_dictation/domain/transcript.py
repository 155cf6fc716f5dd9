import logging

from voice_dictation.domain.messages import Transcript

logger = logging.getLogger(__name__)


class TranscriptAccumulator:
    def __init__(self) -> None:
        self._segments: list[str] = []
        self._interim = ""

    @property
    def final_text(self) -> str:
        return " ".join(self._segments)

    @property
    def interim_text(self) -> str:
        return self._interim

    @property
    def segments(self) -> list[str]:
        return list(self._segments)

    def apply(self, event: Transcript) -> None:
        if event.is_final:
            logger.info("Transcript: %s", event.text)
            self._segments.append(event.text)
            self._interim = ""
        else:
            logger.debug("Transcript (interim): %s", event.text)
            self._interim = event.text

    def clear_interim(self) -> None:
        self._interim = ""

    def clear(self) -> None:
        self._segments.clear()
        self._interim = ""
