"""Runtime settings loaded with pydantic-settings."""

from typing import Optional

from pydantic import AliasChoices, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .domain.models import Coordinates

# Used for map search whenever the device location is unknown
DEFAULT_COORDINATES = Coordinates(latitude=37.7749, longitude=-122.4194)


class Settings(BaseSettings):
    """Engine configuration, read from ``GEMINI_API_KEY`` and ``COMMUNITYLINK_*``.

    A missing ``gemini_api_key`` is a valid setup: every AI capability runs in
    degraded mode instead of failing at startup. Malformed values fail with a
    ``pydantic.ValidationError`` naming the offending variable.
    """

    model_config = SettingsConfigDict(
        env_prefix="COMMUNITYLINK_",
        extra="ignore",
    )

    gemini_api_key: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("GEMINI_API_KEY", "gemini_api_key"),
    )
    text_model: str = "gemini-2.5-flash"
    image_model: str = "gemini-2.5-flash-image"
    splash_delay: float = 2.0
    peer_reply_delay: float = 1.0
    default_location: Coordinates = DEFAULT_COORDINATES
    admin: bool = False
    log_level: str = "INFO"
    log_json: bool = False

    @field_validator("gemini_api_key")
    @classmethod
    def _blank_key_is_missing(cls, value: Optional[str]) -> Optional[str]:
        return value.strip() or None if value else None

    @field_validator("log_level")
    @classmethod
    def _upper_level(cls, value: str) -> str:
        return value.upper()

    @property
    def ai_configured(self) -> bool:
        return bool(self.gemini_api_key)

    @classmethod
    def from_env(cls) -> "Settings":
        """Build settings from the environment alone."""
        return cls()
