"""Application configuration via pydantic-settings.

Configuration is loaded from environment variables and/or ``.env``
files.  Every variable carries the ``IDIAMANT2MQTT_`` prefix and nested
models use ``__`` as the delimiter, e.g.
``IDIAMANT2MQTT_MQTT__HOST=broker.local``.

Three sections:

* **MQTT** — broker connection and topic layout.
* **Logging** — level, format, optional file sink, rotation.
* **Netatmo** — OAuth client credentials, polling cadence, token state.

All durations are in **seconds**.
"""

from __future__ import annotations

from typing import Annotated, Literal

from pydantic import (
    BaseModel,
    Field,
    SecretStr,
)
from pydantic_settings import BaseSettings, SettingsConfigDict

# -------------------------------------------------------------------
# Sub-models (BaseModel, not BaseSettings; nested via composition)
# -------------------------------------------------------------------


class MqttSettings(BaseModel):
    """MQTT broker connection and topic configuration.

    Environment variables (with ``__`` nesting)::

        IDIAMANT2MQTT_MQTT__HOST=broker.local
        IDIAMANT2MQTT_MQTT__PORT=8883
        IDIAMANT2MQTT_MQTT__TLS=true
        IDIAMANT2MQTT_MQTT__USERNAME=user
        IDIAMANT2MQTT_MQTT__PASSWORD=secret
        IDIAMANT2MQTT_MQTT__TOPIC_PREFIX=idiamant
    """

    host: str = Field(
        default="localhost",
        description="MQTT broker hostname or IP address.",
    )
    port: Annotated[int, Field(ge=1, le=65535)] = Field(
        default=1883,
        description="MQTT broker port.",
    )
    username: str | None = Field(
        default=None,
        description="MQTT authentication username (optional).",
    )
    password: SecretStr | None = Field(
        default=None,
        description="MQTT authentication password (optional).",
    )
    client_id: str = Field(
        default="",
        description=(
            "MQTT client identifier. When empty, the bridge generates "
            "'idiamant2mqtt-{hex8}' at startup."
        ),
    )
    tls: bool = Field(
        default=False,
        description="Connect to the broker over TLS.",
    )
    verify_cert: bool = Field(
        default=True,
        description=(
            "Verify the broker certificate and hostname when ``tls`` is "
            "enabled.  Disable only for self-signed brokers."
        ),
    )
    qos: Literal[0, 1, 2] = Field(
        default=1,
        description="QoS level used for subscriptions.",
    )
    reconnect_interval: Annotated[float, Field(gt=0)] = Field(
        default=5.0,
        description=(
            "Initial seconds to wait before reconnecting after "
            "connection loss.  Doubles on each consecutive failure "
            "(exponential backoff with jitter) up to "
            "``reconnect_max_interval``."
        ),
    )
    reconnect_max_interval: Annotated[float, Field(gt=0)] = Field(
        default=300.0,
        description=(
            "Upper bound (seconds) for the exponential reconnect "
            "backoff.  The delay doubles after each failure but "
            "never exceeds this value."
        ),
    )
    topic_prefix: str = Field(
        default="idiamant",
        min_length=1,
        description="Root prefix for all MQTT topics.",
    )


class LoggingSettings(BaseModel):
    """Logging configuration.

    When ``file`` is set, logs are also written to a rotating file
    (size-based rotation, ``backup_count`` generations kept).  When
    ``None``, logs go to stderr only.

    The ``format`` field selects the output format:

    - ``"json"`` (default) — structured JSON lines for container
      log aggregators.
    - ``"text"`` — human-readable timestamped format for local
      development and direct terminal use.
    """

    level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO",
        description="Root log level.",
    )
    format: Literal["json", "text"] = Field(
        default="json",
        description=(
            "Log output format. "
            "'json' emits structured JSON lines for "
            "container environments; "
            "'text' emits human-readable timestamped "
            "lines for development."
        ),
    )
    file: str | None = Field(
        default=None,
        description="Optional log file path. ``None`` means stderr only.",
    )
    max_file_size_mb: Annotated[int, Field(ge=1)] = Field(
        default=10,
        description=(
            "Maximum log file size in megabytes before rotation. "
            "Only applies when ``file`` is set."
        ),
    )
    backup_count: Annotated[int, Field(ge=0)] = Field(
        default=3,
        description="Number of rotated log files to keep.",
    )


class NetatmoSettings(BaseModel):
    """Netatmo cloud API configuration.

    ``client_id`` and ``client_secret`` come from the Netatmo developer
    portal app.  ``refresh_token`` seeds the token state on first run,
    when no state file exists yet (e.g. a token generated once through
    the Netatmo authorization page).
    """

    client_id: str = Field(
        default="",
        description="OAuth client id of the Netatmo app.",
    )
    client_secret: SecretStr = Field(
        default=SecretStr(""),
        description="OAuth client secret of the Netatmo app.",
    )
    base_url: str = Field(
        default="https://api.netatmo.com",
        description="Netatmo API base URL.",
    )
    polling_interval: Annotated[float, Field(gt=0)] = Field(
        default=60.0,
        description="Seconds between two full status polls.",
    )
    request_timeout: Annotated[float, Field(gt=0)] = Field(
        default=10.0,
        description="Connect/response timeout for every API call.",
    )
    state_file: str = Field(
        default="state.json",
        description="Path of the persisted token state file.",
    )
    refresh_token: SecretStr | None = Field(
        default=None,
        description=(
            "Seed refresh token, used only when the state file holds "
            "no refresh token."
        ),
    )
    reauth_interval: Annotated[float, Field(gt=0)] = Field(
        default=30.0,
        description=(
            "Seconds to wait before retrying authentication when the "
            "API rejects the stored token."
        ),
    )


# -------------------------------------------------------------------
# Root settings
# -------------------------------------------------------------------


class Settings(BaseSettings):
    """Root settings for the bridge.

    Loaded from environment variables with the ``IDIAMANT2MQTT_``
    prefix, the nested delimiter ``__`` and an optional ``.env`` file
    in the working directory.

    Example ``.env``::

        IDIAMANT2MQTT_MQTT__HOST=broker.local
        IDIAMANT2MQTT_NETATMO__CLIENT_ID=5f0c...
        IDIAMANT2MQTT_NETATMO__CLIENT_SECRET=Xr9...
        IDIAMANT2MQTT_NETATMO__POLLING_INTERVAL=30
        IDIAMANT2MQTT_LOGGING__FORMAT=text
    """

    model_config = SettingsConfigDict(
        env_prefix="IDIAMANT2MQTT_",
        env_nested_delimiter="__",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    mqtt: MqttSettings = Field(
        default_factory=MqttSettings,
        description="MQTT broker connection settings.",
    )
    logging: LoggingSettings = Field(
        default_factory=LoggingSettings,
        description="Logging configuration.",
    )
    netatmo: NetatmoSettings = Field(
        default_factory=NetatmoSettings,
        description="Netatmo API settings.",
    )
