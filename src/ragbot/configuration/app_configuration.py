from __future__ import annotations
from dataclasses import dataclass
from pathlib import Path
import fcntl
from typing import Any, Dict
import yaml

from ragbot.util.logger import get_logger

logger = get_logger("app_configuration")


CONFIG_PATH = Path("./config/app_config.yml").resolve()

DEFAULT_CACHE_MAX_SIZE = 1000
DEFAULT_CACHE_TTL_SECONDS = 5 * 60.0
DEFAULT_CACHE_CLEANUP_INTERVAL_SECONDS = 60.0


def _positive_number(raw: Any, default: float) -> float:
    """Coerce ``raw`` to a positive float, returning ``default`` otherwise."""
    if isinstance(raw, bool):
        return default
    try:
        value = float(raw)
    except (TypeError, ValueError):
        return default
    return value if value > 0 else default


def _positive_int(raw: Any, default: int) -> int:
    """Like :func:`_positive_number`, but the truncated value must stay >= 1."""
    value = int(_positive_number(raw, default))
    return value if value >= 1 else default


@dataclass(frozen=True, slots=True)
class CacheSettings:
    """Tunables for the in-memory API response cache."""

    max_size: int = DEFAULT_CACHE_MAX_SIZE
    default_ttl_seconds: float = DEFAULT_CACHE_TTL_SECONDS
    cleanup_interval_seconds: float = DEFAULT_CACHE_CLEANUP_INTERVAL_SECONDS

    @classmethod
    def from_mapping(cls, data: Any) -> "CacheSettings":
        """Build settings from the ``cache`` section, ignoring bad values."""
        if not isinstance(data, dict):
            return cls()
        return cls(
            max_size=_positive_int(data.get("max_size"), DEFAULT_CACHE_MAX_SIZE),
            default_ttl_seconds=_positive_number(data.get("default_ttl_seconds"), DEFAULT_CACHE_TTL_SECONDS),
            cleanup_interval_seconds=_positive_number(
                data.get("cleanup_interval_seconds"), DEFAULT_CACHE_CLEANUP_INTERVAL_SECONDS
            ),
        )


class AppConfig:
    """File-lock based accessor around the YAML application configuration.

    The class caches the contents of ``./config/app_config.yml`` and exposes
    dictionary-like helpers plus typed views such as :attr:`cache_settings`.
    Reads take a shared fcntl lock so a concurrent editor never hands us a
    half-written file.
    """

    def __init__(self, config_path: Path) -> None:
        self.config_path = config_path
        self._data: Dict[str, Any] = {}
        self.reload()

    # --------------------------
    # Private helpers
    # --------------------------
    def load_from_disk(self) -> Dict[str, Any]:
        try:
            with self.config_path.open("r", encoding="utf-8") as f:
                fcntl.flock(f.fileno(), fcntl.LOCK_SH)
                try:
                    data = yaml.safe_load(f)
                finally:
                    fcntl.flock(f.fileno(), fcntl.LOCK_UN)
        except FileNotFoundError:
            logger.error("[APP CONFIGURATION] Config file %s not found.", self.config_path)
            return {}
        except Exception as exc:
            logger.error("[APP CONFIGURATION] Failed to load config %s: %s", self.config_path, exc)
            return {}

        if not isinstance(data, dict):
            if data is not None:
                logger.error("[APP CONFIGURATION] Config %s is not a mapping; ignoring it.", self.config_path)
            return {}
        return data

    # --------------------------
    # Public API
    # --------------------------
    def reload(self) -> Dict[str, Any]:
        """Reload configuration from disk and return the loaded mapping.

        Returns an empty dict when the file is missing or unreadable.
        """
        self._data = self.load_from_disk()
        return self._data

    @property
    def data(self) -> Dict[str, Any]:
        """Return the current cached configuration mapping (do not mutate)."""
        return self._data

    def get(self, key: str, default: Any = None) -> Any:
        """Safe lookup for top-level configuration keys."""
        return self._data.get(key, default)

    # --------------------------
    # High-level shortcuts
    # --------------------------
    @property
    def cache_settings(self) -> CacheSettings:
        """Return the ``cache`` section as :class:`CacheSettings`."""
        return CacheSettings.from_mapping(self._data.get("cache", {}))

    @property
    def bot_activity(self) -> str:
        """Return the presence text shown under the bot's name."""
        value = self._data.get("bot", {})
        if isinstance(value, dict):
            return str(value.get("activity") or "Ragnarok Online | /cache stats")
        return "Ragnarok Online | /cache stats"


# Shared application-wide configuration instance
app_config = AppConfig(CONFIG_PATH)
