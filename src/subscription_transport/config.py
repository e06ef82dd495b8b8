"""Process-level settings for the subscription transports."""

from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import timedelta
import logging
import os
from pathlib import Path
import tempfile

from subscription_transport.errors import ConfigurationError

logger = logging.getLogger(__name__)

DEFAULT_ENV_PREFIX = "SUBSCRIPTION_TRANSPORT_"


def _default_cache_directory() -> Path:
    return Path(tempfile.gettempdir()) / "subscription-transport-cache"


@dataclass(frozen=True)
class TransportSettings:
    """
    Connection and cache parameters shared by every transport.

    Attributes:
        mongo_host: Host name of the MongoDB server.
        mongo_port: Port of the MongoDB server.
        mongo_database: Database holding the bar collections.
        cache_directory: Directory remote files are downloaded into.
        cache_max_age: Age after which cached remote files are deleted.
        request_timeout: Timeout in seconds for HTTP requests.
    """

    mongo_host: str = "localhost"
    mongo_port: int = 27017
    mongo_database: str = "quant"
    cache_directory: Path = field(default_factory=_default_cache_directory)
    cache_max_age: timedelta = timedelta(days=1)
    request_timeout: int = 30

    @classmethod
    def from_env(
        cls,
        prefix: str = DEFAULT_ENV_PREFIX,
        environ: Mapping[str, str] | None = None,
    ) -> "TransportSettings":
        """
        Build settings from environment variables, falling back to defaults.

        Recognized suffixes: ``MONGO_HOST``, ``MONGO_PORT``, ``MONGO_DATABASE``,
        ``CACHE_DIR``, ``CACHE_MAX_AGE_HOURS`` and ``REQUEST_TIMEOUT``.

        Args:
            prefix: Prefix prepended to every variable name.
            environ: Mapping to read from (default: ``os.environ``).

        Returns:
            TransportSettings: The resolved settings.

        Raises:
            ConfigurationError: If a numeric variable is not an integer.
        """
        env = os.environ if environ is None else environ
        defaults = cls()

        def _int(suffix: str, default: int) -> int:
            raw = env.get(f"{prefix}{suffix}")
            if raw is None or raw == "":
                return default
            try:
                return int(raw)
            except ValueError as e:
                raise ConfigurationError(
                    f"{prefix}{suffix} must be an integer, got {raw!r}"
                ) from e

        cache_dir = env.get(f"{prefix}CACHE_DIR")
        default_hours = int(defaults.cache_max_age.total_seconds() // 3600)
        settings = cls(
            mongo_host=env.get(f"{prefix}MONGO_HOST") or defaults.mongo_host,
            mongo_port=_int("MONGO_PORT", defaults.mongo_port),
            mongo_database=env.get(f"{prefix}MONGO_DATABASE") or defaults.mongo_database,
            cache_directory=Path(cache_dir) if cache_dir else defaults.cache_directory,
            cache_max_age=timedelta(hours=_int("CACHE_MAX_AGE_HOURS", default_hours)),
            request_timeout=_int("REQUEST_TIMEOUT", defaults.request_timeout),
        )

        logger.debug(
            "Transport settings resolved (mongo=%s:%d, cache=%s)",
            settings.mongo_host,
            settings.mongo_port,
            settings.cache_directory,
        )
        return settings
