import pytest

try:
    import sounddevice as sd

    from voice_dictation import health
    HAS_SOUNDDEVICE = True
except (ImportError, OSError):
    HAS_SOUNDDEVICE = False

from voice_dictation.config import DictationConfig

pytestmark = pytest.mark.skipif(not HAS_SOUNDDEVICE, reason="sounddevice not available")

INPUT = {"name": "USB Dictation Mic", "max_input_channels": 1, "default_samplerate": 48000.0}
OUTPUT = {"name": "Speakers", "max_input_channels": 0, "default_samplerate": 48000.0}


@pytest.fixture
def config():
    return DictationConfig(token="abc", api_base="https://reports.example.com")


class TestCredentialCheck:
    def test_token_present(self, config):
        assert health.check_credential(config).passed

    def test_token_missing(self):
        result = health.check_credential(DictationConfig(token="", token_file=""))
        assert not result.passed
        assert "VOICE_DICTATION_TOKEN" in result.detail


class TestServiceUrlCheck:
    def test_valid_base(self, config):
        result = health.check_service_url(config)
        assert result.passed
        assert result.detail == "https://reports.example.com/v1/transcribe/stream"

    def test_invalid_base(self):
        assert not health.check_service_url(DictationConfig(api_base="reports.example.com")).passed


class TestAudioChecks:
    def test_no_input_devices(self, config, monkeypatch):
        monkeypatch.setattr(sd, "query_devices", lambda *a, **kw: [OUTPUT])
        assert not health.check_audio_device(config).passed

    def test_input_device_found(self, config, monkeypatch):
        monkeypatch.setattr(sd, "query_devices", lambda *a, **kw: [OUTPUT, INPUT])
        result = health.check_audio_device(config)
        assert result.passed
        assert "1 input" in result.detail

    def test_encoding_fallback(self, config, monkeypatch):
        def check_input_settings(device=None, channels=None, dtype=None, samplerate=None):
            if samplerate != 48000:
                raise sd.PortAudioError("Invalid sample rate")

        monkeypatch.setattr(sd, "check_input_settings", check_input_settings)
        result = health.check_audio_encoding(config)
        assert result.passed
        assert "float32-48k" in result.detail

    def test_unknown_encoding_name(self, monkeypatch):
        result = health.check_audio_encoding(DictationConfig(capture_encodings=["mp3"]))
        assert not result.passed


class TestCriticalFailures:
    def test_critical_failure_detected(self):
        results = [
            health.HealthCheckResult(name="credential", passed=False, detail="Missing"),
            health.HealthCheckResult(name="service_url", passed=True, detail="ok"),
        ]
        assert health.has_critical_failures(results)

    def test_all_passed(self):
        results = [health.HealthCheckResult(name="credential", passed=True, detail="ok")]
        assert not health.has_critical_failures(results)
