from voice_dictation.domain.messages import Transcript
from voice_dictation.domain.transcript import TranscriptAccumulator


class TestTranscriptAccumulator:
    def test_starts_empty(self):
        acc = TranscriptAccumulator()
        assert acc.final_text == ""
        assert acc.interim_text == ""

    def test_interim_replaces_interim(self):
        acc = TranscriptAccumulator()
        acc.apply(Transcript(text="the", is_final=False))
        acc.apply(Transcript(text="the liver", is_final=False))
        assert acc.interim_text == "the liver"
        assert acc.final_text == ""

    def test_final_appends_and_clears_interim(self):
        acc = TranscriptAccumulator()
        acc.apply(Transcript(text="the liver", is_final=False))
        acc.apply(Transcript(text="The liver is normal.", is_final=True))
        assert acc.final_text == "The liver is normal."
        assert acc.interim_text == ""

    def test_finals_joined_with_single_space(self):
        acc = TranscriptAccumulator()
        acc.apply(Transcript(text="One.", is_final=True))
        acc.apply(Transcript(text="Two.", is_final=True))
        acc.apply(Transcript(text="Three.", is_final=True))
        assert acc.final_text == "One. Two. Three."
        assert acc.segments == ["One.", "Two.", "Three."]

    def test_segments_returns_copy(self):
        acc = TranscriptAccumulator()
        acc.apply(Transcript(text="a", is_final=True))
        acc.segments.append("b")
        assert acc.segments == ["a"]

    def test_clear_interim_keeps_finals(self):
        acc = TranscriptAccumulator()
        acc.apply(Transcript(text="kept", is_final=True))
        acc.apply(Transcript(text="dropped", is_final=False))
        acc.clear_interim()
        assert acc.final_text == "kept"
        assert acc.interim_text == ""

    def test_clear(self):
        acc = TranscriptAccumulator()
        acc.apply(Transcript(text="kept", is_final=True))
        acc.apply(Transcript(text="pending", is_final=False))
        acc.clear()
        assert acc.final_text == ""
        assert acc.interim_text == ""
