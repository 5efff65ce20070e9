"""Configuration schema using Pydantic.

Two models live here: the process-wide ``BridgeSettings`` (persisted to
~/.rfcbridge/config.json, overridable through RFCBRIDGE_* env vars) and the
per-connect ``DestinationConfig`` parsed from a ``connect`` payload.
"""

from typing import Any, Literal

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, SecretStr, field_validator, model_validator
from pydantic_settings import BaseSettings, PydanticBaseSettingsSource


class DestinationDefaults(BaseModel):
    """Values applied to connect payloads that omit them."""
    lang: str = "EN"
    pool_size: int = Field(default=5, ge=1)
    peak_connection_limit: int = Field(default=10, ge=1)
    connection_idle_timeout: int = Field(default=600, ge=0)  # seconds


class LoggingConfig(BaseModel):
    """Bridge process logging."""
    level: str = "INFO"
    file: str | None = None  # rotating log name under ~/.rfcbridge/logs, e.g. "bridge"


class DestinationConfig(BaseModel):
    """Connection target registered by the ``connect`` command."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    host: str = Field(min_length=1)
    client: str = Field(min_length=1)
    sys_nr: str = Field(min_length=1, validation_alias=AliasChoices("sysNr", "sys_nr", "sysnr"))
    user: str = Field(min_length=1)
    password: SecretStr
    lang: str = "EN"
    pool_size: int = Field(default=5, ge=1, validation_alias=AliasChoices("poolSize", "pool_size"))
    peak_connection_limit: int | None = Field(
        default=10,
        ge=1,
        validation_alias=AliasChoices("peakConnectionLimit", "PeakConnectionLimit", "peak_connection_limit"),
    )
    connection_idle_timeout: int = Field(
        default=600,
        ge=0,
        validation_alias=AliasChoices("connectionIdleTimeout", "connection_idle_timeout"),
    )

    @field_validator("host", "client", "sys_nr", "user", "lang", mode="before")
    @classmethod
    def _scalar_to_str(cls, value: Any) -> Any:
        # JSON callers send client "400" and client 400 interchangeably
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            return str(value)
        if isinstance(value, str):
            return value.strip()
        return value

    @field_validator("password", mode="before")
    @classmethod
    def _password_to_str(cls, value: Any) -> Any:
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            return str(value)
        return value

    @model_validator(mode="after")
    def _peak_not_below_pool(self) -> "DestinationConfig":
        if self.peak_connection_limit is not None and self.peak_connection_limit < self.pool_size:
            self.peak_connection_limit = self.pool_size
        return self

    def redacted(self) -> dict[str, Any]:
        """Loggable view without the password."""
        return self.model_dump(exclude={"password"})


def build_destination_config(payload: dict[str, Any], defaults: DestinationDefaults | None = None) -> DestinationConfig:
    """Validate a connect payload, filling omitted optional keys from defaults."""
    base = (defaults or DestinationDefaults()).model_dump()
    return DestinationConfig.model_validate({**base, **payload})


class BridgeSettings(BaseSettings):
    """Root configuration for rfcbridge."""
    connector: Literal["pyrfc", "memory"] = "pyrfc"
    destination_name: str = "DEFAULT"
    include_trace: bool = True
    defaults: DestinationDefaults = Field(default_factory=DestinationDefaults)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    model_config = ConfigDict(
        env_prefix="RFCBRIDGE_",
        env_nested_delimiter="__"
    )

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        # env vars win over values loaded from config.json (passed as init kwargs)
        return env_settings, init_settings, dotenv_settings, file_secret_settings
