from pydantic_settings import BaseSettings, SettingsConfigDict

from voice_dictation.ports.audio import DEFAULT_ENCODING_PREFERENCE


class DictationConfig(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="VOICE_DICTATION_")

    api_base: str = "http://localhost"
    stream_path: str = "/v1/transcribe/stream"
    token: str = ""
    token_file: str = ""

    capture_device: str = ""
    capture_encodings: list[str] = list(DEFAULT_ENCODING_PREFERENCE)
    chunk_interval_ms: int = 250
    block_duration_ms: int = 20

    flush_interval_seconds: float = 1.0
    duration_tick_seconds: float = 1.0
    handshake_timeout_seconds: float = 10.0
    close_timeout_seconds: float = 2.0

    log_file: str = ""

    def read_secret(self, path: str) -> str:
        if not path:
            return ""
        try:
            with open(path) as f:
                return f.read().strip()
        except FileNotFoundError:
            return ""

    def read_token(self) -> str:
        return self.token.strip() or self.read_secret(self.token_file)
