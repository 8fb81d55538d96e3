"""Local files: the metrics database and one HTTP cache per feed.

Everything lives under a single data directory, ``$TAXOMETRICS_DATA_DIR`` or the
platform's per-user data dir. ``DATABASE_URI`` points the metrics store elsewhere,
e.g. at a shared PostgreSQL instance; the feed caches always stay local.
"""

from __future__ import annotations

import os
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Final

from .env import optional_env

APP_DIR_NAME: Final[str] = "taxometrics"
DATA_DIR_ENV: Final[str] = "TAXOMETRICS_DATA_DIR"
DATABASE_URI_ENV: Final[str] = "DATABASE_URI"
DATABASE_FILENAME: Final[str] = "taxometrics.db"
HTTP_CACHE_FILENAME: Final[str] = "http_cache.db"

_UNSAFE_FILENAME_CHARS = re.compile(r"[^a-z0-9]+")


@dataclass(frozen=True, slots=True)
class StorageConfig:
    data_dir: Path

    def _file(self, filename: str, *, ensure: bool) -> Path:
        data_dir = self.data_dir.expanduser().resolve()
        if ensure:
            data_dir.mkdir(parents=True, exist_ok=True)
        return data_dir / filename

    def database_path(self, *, ensure: bool = True) -> Path:
        return self._file(DATABASE_FILENAME, ensure=ensure)

    def http_cache_path(self, cache_name: str | None = None, *, ensure: bool = True) -> Path:
        """Cache file for one client; named clients (``feed:gsc``) get a file of their own."""

        if not cache_name:
            return self._file(HTTP_CACHE_FILENAME, ensure=ensure)
        slug = _UNSAFE_FILENAME_CHARS.sub("-", cache_name.lower()).strip("-")
        return self._file(f"http_cache-{slug}.db", ensure=ensure)

    def database_uri(self) -> str:
        return f"sqlite+pysqlite:///{self.database_path()}"


def _default_data_dir() -> Path:
    if os.name == "nt":
        base = os.getenv("LOCALAPPDATA")
        base_path = Path(base) if base else (Path.home() / "AppData" / "Local")
    else:
        base = os.getenv("XDG_DATA_HOME")
        base_path = Path(base) if base else (Path.home() / ".local" / "share")
    return base_path / APP_DIR_NAME


def get_storage_config() -> StorageConfig:
    env_dir = optional_env(DATA_DIR_ENV)
    return StorageConfig(data_dir=Path(env_dir) if env_dir else _default_data_dir())


def get_database_uri(*, storage: StorageConfig | None = None) -> str:
    return optional_env(DATABASE_URI_ENV) or (storage or get_storage_config()).database_uri()
