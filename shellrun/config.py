"""Environment driven settings.

Settings are read from ``SHELLRUN_*`` environment variables and cached; call
``clear_settings_cache`` after changing the environment by hand. The
``set_*`` helpers update the variable and clear the cache in one go, so the
setting is also inherited by child processes that use shellrun themselves.
"""

import codecs
import os
from dataclasses import dataclass
from functools import lru_cache

DEBUG_ENV = "SHELLRUN_DEBUG"
PIPEFAIL_ENV = "SHELLRUN_PIPEFAIL"
ENCODING_ENV = "SHELLRUN_ENCODING"


@dataclass(frozen=True)
class Settings:
    """Resolved runtime settings.

    Attributes:
        debug: Emit trace lines at INFO instead of DEBUG.
        pipefail: A pipeline succeeds only if every stage succeeds. When
                  False, only the last stage's status counts.
        encoding: Text encoding for captured output.
    """

    debug: bool = False
    pipefail: bool = True
    encoding: str = "utf-8"


def _env_flag(name: str, default: bool) -> bool:
    value = os.environ.get(name)
    if value is None or value == "":
        return default
    return value.strip().lower() not in ("0", "false", "no", "off")


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Read settings from the environment (cached)."""
    encoding = os.environ.get(ENCODING_ENV) or "utf-8"
    try:
        codecs.lookup(encoding)
    except LookupError:
        raise ValueError(f"Unknown encoding in {ENCODING_ENV}: {encoding!r}") from None
    return Settings(
        debug=_env_flag(DEBUG_ENV, False),
        pipefail=_env_flag(PIPEFAIL_ENV, True),
        encoding=encoding,
    )


def clear_settings_cache() -> None:
    """Forget cached settings so the next lookup re-reads the environment."""
    get_settings.cache_clear()


def set_debug(enable: bool) -> None:
    """Turn debug mode on or off (same as setting SHELLRUN_DEBUG=0|1)."""
    os.environ[DEBUG_ENV] = "1" if enable else "0"
    clear_settings_cache()


def set_pipefail(enable: bool) -> None:
    """Turn pipefail on or off (same as setting SHELLRUN_PIPEFAIL=0|1)."""
    os.environ[PIPEFAIL_ENV] = "1" if enable else "0"
    clear_settings_cache()
