"""Index configuration loaded from ITHACA_* environment variables."""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from ithaca.index.models.enums import OpenTarget
from ithaca.index.scanner import DEFAULT_IGNORED_DIRECTORIES


class IthacaSettings(BaseSettings):
    """Ithaca repository index settings.

    All fields are read from environment variables with the ``ITHACA_`` prefix.
    For example, ``ITHACA_LOG_LEVEL=DEBUG`` maps to ``log_level``.  Collection
    fields take JSON, e.g. ``ITHACA_IGNORED_DIRECTORIES='["vendor"]'``.
    """

    model_config = SettingsConfigDict(
        env_prefix="ITHACA_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    # -- Logging ---------------------------------------------------------------
    log_level: str = "INFO"

    # -- Data storage ----------------------------------------------------------
    data_root: str = "~/.ithaca"
    """Directory holding ``index.json`` (repository cache) and ``roots.json``."""

    # -- Scanning --------------------------------------------------------------
    ignored_directories: set[str] = Field(default_factory=lambda: set(DEFAULT_IGNORED_DIRECTORIES))
    """Directory names pruned wherever they appear below a workspace root."""

    # -- Presentation ----------------------------------------------------------
    default_open_target: OpenTarget = OpenTarget.VSCODE
    recent_limit: int = Field(default=12, ge=1)
    show_branches: bool = False

    # -- Helpers ---------------------------------------------------------------

    @property
    def data_dir(self) -> Path:
        return Path(self.data_root).expanduser()


def get_settings() -> IthacaSettings:
    """Return a cached settings instance.

    Reads from environment variables and ``.env`` on first call, then returns
    the same object.  Call ``_get_settings_cached.cache_clear()`` in tests to
    force a re-read after overriding env vars.
    """
    return _get_settings_cached()


@lru_cache(maxsize=1)
def _get_settings_cached() -> IthacaSettings:
    return IthacaSettings()
