"""Server configuration for salesboard."""

from __future__ import annotations

import dataclasses
import os
from typing import Any

from salesboard._constants import (
    DEFAULT_BATCH_SIZE,
    DEFAULT_DATA_FILE,
    DEFAULT_HOST,
    DEFAULT_PORT,
    DEFAULT_SEND_TIMEOUT,
    DEFAULT_TABLE,
    STORE_BACKENDS,
    STORE_FILE,
    STORE_REST,
)
from salesboard.exceptions import BoardConfigError

_LOG_LEVELS: frozenset[str] = frozenset({"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"})


@dataclasses.dataclass(frozen=True)
class BoardConfig:
    """Server configuration.

    Parameters
    ----------
    host : str
        Bind address for the HTTP/WebSocket server.
    port : int
        Bind port.
    store_backend : str
        Durable store implementation: ``"rest"`` (Supabase/PostgREST),
        ``"file"`` (local JSON document) or ``"mirror"`` (REST primary
        with the JSON file kept as a secondary copy).
    supabase_url : str or None
        Project URL of the REST backend, e.g. ``https://xyz.supabase.co``.
    supabase_key : str or None
        API key sent as ``apikey`` and bearer token.
    table : str
        Table holding one row per unit (``room_id``, ``is_sold``,
        ``updated_at``).
    batch_size : int
        Rows per request for bulk inserts and upserts.
    data_file : str
        Path of the JSON document used by the file backend.
    static_dir : str or None
        Directory with the admin/display front-end, served at ``/``.
    log_level : str
        Root log level used by the command line entry point.
    send_timeout : float
        Seconds one outbound WebSocket frame may take.  A connection that
        does not accept a frame in time is dropped and closed.
    """

    host: str = DEFAULT_HOST
    port: int = DEFAULT_PORT
    store_backend: str = STORE_FILE
    supabase_url: str | None = None
    supabase_key: str | None = None
    table: str = DEFAULT_TABLE
    batch_size: int = DEFAULT_BATCH_SIZE
    data_file: str = DEFAULT_DATA_FILE
    static_dir: str | None = None
    log_level: str = "INFO"
    send_timeout: float = DEFAULT_SEND_TIMEOUT

    @property
    def rest_base_url(self) -> str:
        """REST root of the configured table's project (no trailing slash)."""
        if not self.supabase_url:
            raise BoardConfigError("supabase_url is not configured")
        return f"{self.supabase_url.rstrip('/')}/rest/v1"

    def validate(self) -> BoardConfig:
        """Raise :class:`BoardConfigError` when the configuration is unusable."""
        if self.store_backend not in STORE_BACKENDS:
            raise BoardConfigError(
                f"store_backend must be one of {sorted(STORE_BACKENDS)}, got {self.store_backend!r}"
            )
        if self.store_backend != STORE_FILE and not (self.supabase_url and self.supabase_key):
            raise BoardConfigError(f"store_backend={self.store_backend!r} requires SUPABASE_URL and SUPABASE_KEY")
        if self.batch_size < 1:
            raise BoardConfigError(f"batch_size must be positive, got {self.batch_size}")
        if not 0 < self.port < 65536:
            raise BoardConfigError(f"port out of range: {self.port}")
        if self.send_timeout <= 0:
            raise BoardConfigError(f"send_timeout must be positive, got {self.send_timeout}")
        if self.log_level.upper() not in _LOG_LEVELS:
            raise BoardConfigError(f"log_level must be one of {sorted(_LOG_LEVELS)}, got {self.log_level!r}")
        return self

    @classmethod
    def from_env(cls, **overrides: Any) -> BoardConfig:
        """Create configuration from environment variables.

        Reads ``SUPABASE_URL``, ``SUPABASE_KEY`` and ``PORT`` (the names the
        deployed front-end server already uses) plus optional ``BOARD_*``
        variables.  Explicit keyword arguments override environment values.
        When no backend is named, ``rest`` is picked if ``SUPABASE_URL`` is
        set and ``file`` otherwise.
        """
        env = os.environ

        _ENV_CONFIG_MAP = {
            "BOARD_HOST": "host",
            "SUPABASE_URL": "supabase_url",
            "SUPABASE_KEY": "supabase_key",
            "BOARD_TABLE": "table",
            "BOARD_DATA_FILE": "data_file",
            "BOARD_STATIC_DIR": "static_dir",
            "BOARD_LOG_LEVEL": "log_level",
            "BOARD_STORE": "store_backend",
        }
        config_kwargs: dict[str, Any] = {}
        for env_key, field_name in _ENV_CONFIG_MAP.items():
            val = env.get(env_key)
            if val is not None and val.strip():
                config_kwargs[field_name] = val.strip()

        try:
            port_env = env.get("PORT")
            if port_env is not None and "port" not in overrides:
                config_kwargs["port"] = int(port_env)

            batch_env = env.get("BOARD_BATCH_SIZE")
            if batch_env is not None and "batch_size" not in overrides:
                config_kwargs["batch_size"] = int(batch_env)

            timeout_env = env.get("BOARD_SEND_TIMEOUT")
            if timeout_env is not None and "send_timeout" not in overrides:
                config_kwargs["send_timeout"] = float(timeout_env)
        except ValueError as exc:
            raise BoardConfigError(f"invalid numeric environment value: {exc}") from exc

        config_kwargs.update(overrides)

        if "store_backend" not in config_kwargs:
            config_kwargs["store_backend"] = STORE_REST if config_kwargs.get("supabase_url") else STORE_FILE

        return cls(**config_kwargs)
