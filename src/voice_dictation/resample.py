import numpy as np

TARGET_SAMPLE_RATE = 16000


def float_to_int16(samples: np.ndarray) -> np.ndarray:
    clipped = np.clip(samples.astype(np.float32), -1.0, 1.0)
    scaled = np.where(clipped < 0, clipped * 0x8000, clipped * 0x7FFF)
    return scaled.astype(np.int16)


def int16_to_float(samples: np.ndarray) -> np.ndarray:
    return samples.astype(np.float32) / 32768.0


class Downsampler:
    """Converts mono float32 audio to 16-bit PCM at the target rate.

    State is carried between calls so consecutive blocks resample as one
    continuous signal. Integer ratios (48 kHz -> 16 kHz) average each group of
    samples; other ratios interpolate linearly.
    """

    def __init__(self, source_rate: int, target_rate: int = TARGET_SAMPLE_RATE) -> None:
        if source_rate < target_rate:
            raise ValueError(f"Cannot downsample {source_rate} Hz to {target_rate} Hz")
        self._source_rate = source_rate
        self._target_rate = target_rate
        self._ratio = source_rate / target_rate
        self._integer_ratio = source_rate % target_rate == 0
        self._position = 0.0
        self._last: float | None = None
        self._remainder = np.zeros(0, dtype=np.float32)

    @property
    def source_rate(self) -> int:
        return self._source_rate

    def reset(self) -> None:
        self._position = 0.0
        self._last = None
        self._remainder = np.zeros(0, dtype=np.float32)

    def process(self, samples: np.ndarray) -> np.ndarray:
        samples = samples.astype(np.float32).reshape(-1)
        if self._source_rate == self._target_rate:
            return float_to_int16(samples)
        if self._integer_ratio:
            return self._average_groups(samples)
        return self._interpolate(samples)

    def _average_groups(self, samples: np.ndarray) -> np.ndarray:
        group = int(self._ratio)
        buffered = np.concatenate([self._remainder, samples])
        usable = len(buffered) // group * group
        self._remainder = buffered[usable:]
        if usable == 0:
            return np.zeros(0, dtype=np.int16)
        averaged = buffered[:usable].reshape(-1, group).mean(axis=1)
        return float_to_int16(averaged)

    def _interpolate(self, samples: np.ndarray) -> np.ndarray:
        if len(samples) == 0:
            return np.zeros(0, dtype=np.int16)

        if self._last is not None:
            source = np.concatenate([np.array([self._last], dtype=np.float32), samples])
        else:
            source = samples

        span = len(source) - 1
        count = 0
        if span > self._position:
            count = int(np.ceil((span - self._position) / self._ratio))
        positions = self._position + self._ratio * np.arange(count)
        positions = positions[positions < span]

        indices = np.floor(positions).astype(np.int64)
        fractions = (positions - indices).astype(np.float32)
        interpolated = source[indices] + (source[indices + 1] - source[indices]) * fractions

        next_position = self._position + self._ratio * len(positions)
        self._position = next_position - span
        self._last = float(source[-1])
        return float_to_int16(interpolated)
