from __future__ import annotations

from functools import lru_cache
from pathlib import Path

from pydantic import AliasChoices, Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from llmemo.errors import ConfigError

SUPPORTED_LANGUAGES: tuple[str, ...] = (
    "af", "am", "ar", "as", "ast", "az", "be", "bg", "bn", "bs", "ca", "ceb", "cs", "cy",
    "da", "de", "el", "en", "es", "et", "fa", "ff", "fi", "fil", "fr", "ga", "gl", "gu",
    "ha", "he", "hi", "hr", "hu", "hy", "id", "ig", "is", "it", "ja", "jv", "ka", "kea",
    "kk", "km", "kn", "ko", "ku", "ky", "lb", "lg", "ln", "lo", "lt", "luo", "lv", "mi",
    "mk", "ml", "mn", "mr", "ms", "mt", "my", "ne", "nl", "no", "nso", "ny", "oc", "or",
    "pa", "pl", "ps", "pt", "ro", "ru", "sd", "sk", "sl", "sn", "so", "sr", "sv", "sw",
    "ta", "te", "tg", "th", "tr", "uk", "umb", "ur", "uz", "vi", "wo", "xh", "yue", "zh",
    "zu",
)


class Settings(BaseSettings):
    """Application configuration loaded from environment variables."""

    data_dir: Path = Field(default_factory=lambda: Path.home() / ".llmemo")
    exports_dir: Path | None = None
    store_filename: str = "echo-settings.json"

    api_key: str = Field(
        default="",
        validation_alias=AliasChoices("LLMEMO_API_KEY", "ELEVENLABS_API_KEY"),
    )
    token_url: str = "https://api.elevenlabs.io/v1/single-use-token/realtime_scribe"
    realtime_url: str = "wss://api.elevenlabs.io/v1/speech-to-text/realtime"
    model_id: str = "scribe_v2_realtime"
    language_code: str = "en"

    sample_rate: int = 16000
    # Tuned for noise rejection: higher threshold, longer speech/silence windows.
    vad_threshold: float = 0.6
    min_speech_duration_ms: int = 250
    min_silence_duration_ms: int = 500
    http_timeout_s: float = 10.0

    input_device: str | None = None
    log_level: str = "INFO"

    model_config = SettingsConfigDict(env_prefix="LLMEMO_", extra="ignore", populate_by_name=True)

    @model_validator(mode="after")
    def _derive_paths(self) -> "Settings":
        if "exports_dir" not in self.model_fields_set or self.exports_dir is None:
            self.exports_dir = self.data_dir / "exports"
        return self

    @property
    def store_path(self) -> Path:
        return self.data_dir / self.store_filename

    @property
    def has_api_key(self) -> bool:
        return bool(self.api_key.strip())

    def ensure_dirs(self) -> None:
        for path in (self.data_dir, self.exports_dir):
            path.mkdir(parents=True, exist_ok=True)

    def resolve_language(self, code: str | None = None) -> str:
        key = (code if code is not None else self.language_code).strip().lower()
        if key not in SUPPORTED_LANGUAGES:
            allowed = ", ".join(SUPPORTED_LANGUAGES)
            raise ConfigError(f"Unsupported language '{code}'. Allowed: {allowed}")
        return key


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
