"""Provides functions for loading and accessing configuration settings.

Supports loading from .env files, environment variables, and a YAML
configuration file (e.g., ~/.tiercache/config.yaml), and assembles the
CacheConfig used to construct the cache service.
"""

import logging
import os
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

import yaml
from dotenv import load_dotenv

from tiercache.domain.models.config import CacheConfig, L1Config, L2Config, L3Config, StrategyConfig

logger = logging.getLogger(__name__)

# --- Locations and defaults ---
DEFAULT_CONFIG_DIR = Path.home() / ".tiercache"
DEFAULT_CONFIG_FILE = DEFAULT_CONFIG_DIR / "config.yaml"
ENV_FILE_NAME = ".env"
ENV_PREFIX = "TIERCACHE_"
DEFAULT_REDIS_URL = "redis://localhost:6379/0"

# Settings are process-wide; the CLI loads them once per invocation.
_config: Dict[str, Any] = {}
_overrides: Dict[str, Any] = {}  # set_config values, highest priority
_loaded = False


def _read_yaml(path: Path) -> Dict[str, Any]:
    """Returns the mapping stored in a YAML file, or {} if it is missing, unreadable or not a mapping."""
    if not path.is_file():
        logger.debug(f"No YAML settings at {path}")
        return {}
    try:
        with open(path, 'r', encoding='utf-8') as f:
            data = yaml.safe_load(f)
    except (OSError, yaml.YAMLError) as e:
        logger.error(f"Ignoring unreadable settings file {path}: {e}")
        return {}
    if data is None:
        return {}
    if not isinstance(data, dict):
        logger.warning(f"Ignoring settings file {path}: top level is a {type(data).__name__}, not a mapping.")
        return {}
    logger.info(f"Read settings from {path}")
    return data


def load_configuration(config_file: Path = DEFAULT_CONFIG_FILE, env_file: Optional[Path] = None) -> None:
    """Reads the YAML settings file and the .env file. Later calls are no-ops until reset_configuration().

    Lookup priority used by get_config (highest first):
    1. Values set with set_config
    2. Environment variables (TIERCACHE_ prefix), including those from .env
    3. The YAML settings file
    4. The default passed to get_config

    Args:
        config_file: YAML settings file; a missing file is not an error.
        env_file: .env file to load; when None the nearest .env at or above
            the working directory is used.
    """
    global _config, _loaded
    if _loaded:
        return

    _config = _read_yaml(Path(config_file))

    dotenv_path = env_file or find_dotenv_path()
    # Variables already present in the environment win over .env entries
    if dotenv_path and load_dotenv(dotenv_path=dotenv_path, override=False):
        logger.info(f"Read environment entries from {dotenv_path}")

    _loaded = True
    logger.debug(f"Settings loaded ({len(_config)} top-level YAML sections).")


def reset_configuration() -> None:
    """Forgets loaded configuration and overrides. Intended for tests."""
    global _config, _overrides, _loaded
    _config = {}
    _overrides = {}
    _loaded = False


def env_var_name(key: str) -> str:
    """Maps a dotted key to its environment variable, e.g. cache.l1.max_size -> TIERCACHE_CACHE_L1_MAX_SIZE."""
    return ENV_PREFIX + key.upper().replace('.', '_')


def _coerce(value: str) -> Any:
    """Converts common string forms from the environment to Python values."""
    if value.lower() == 'true':
        return True
    if value.lower() == 'false':
        return False
    try:
        if '.' in value:
            return float(value)
        return int(value)
    except (ValueError, TypeError):
        return value


def _lookup_nested(data: Mapping[str, Any], key: str) -> Any:
    """Resolves 'a.b.c' through nested dicts; also accepts a flat 'a.b.c' entry."""
    if key in data:
        return data[key]
    node: Any = data
    for part in key.split('.'):
        if not isinstance(node, Mapping) or part not in node:
            raise KeyError(key)
        node = node[part]
    return node


def get_config(key: str, default: Any = None) -> Any:
    """Returns the setting for a dotted key such as 'cache.l1.max_size'.

    Checks set_config overrides, then the TIERCACHE_ environment variable
    (see env_var_name), then the loaded YAML, then falls back to ``default``.
    Environment strings are coerced to bool/int/float where they look like one.
    """
    if key in _overrides:
        return _overrides[key]

    env_key = env_var_name(key)
    if env_key in os.environ:
        return _coerce(os.environ[env_key])

    try:
        return _lookup_nested(_config, key)
    except KeyError:
        logger.debug(f"Setting '{key}' is not set; using default {default!r}")
        return default


def set_config(key: str, value: Any) -> None:
    """Overrides one dotted key for the rest of the process; wins over env and YAML."""
    logger.debug(f"Override {key!r} -> {value!r}")
    _overrides[key] = value


def find_dotenv_path() -> Optional[Path]:
    """Returns the nearest .env file at or above the working directory, if any."""
    try:
        here = Path.cwd()
    except OSError as e:
        logger.warning(f"Cannot resolve the working directory to look for {ENV_FILE_NAME}: {e}")
        return None
    for directory in (here, *here.parents):
        candidate = directory / ENV_FILE_NAME
        if candidate.is_file():
            return candidate
    return None


# --- Derived settings ---

def get_redis_url() -> str:
    """Redis URL for the L2 client (TIERCACHE_REDIS_URL, then redis.url in YAML)."""
    url = get_config('redis.url') or DEFAULT_REDIS_URL
    return str(url)


def _as_bool(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in ('1', 'true', 'yes', 'on')
    return bool(value)


def build_cache_config() -> CacheConfig:
    """Assembles a CacheConfig from the 'cache.*' settings, falling back to defaults."""
    l1, l2, l3, strategy = L1Config(), L2Config(), L3Config(), StrategyConfig()
    return CacheConfig(
        l1=L1Config(
            enabled=_as_bool(get_config('cache.l1.enabled', l1.enabled)),
            max_size=int(get_config('cache.l1.max_size', l1.max_size)),
            max_age=int(get_config('cache.l1.max_age', l1.max_age)),
            update_age_on_get=_as_bool(get_config('cache.l1.update_age_on_get', l1.update_age_on_get)),
        ),
        l2=L2Config(
            enabled=_as_bool(get_config('cache.l2.enabled', l2.enabled)),
            key_prefix=str(get_config('cache.l2.key_prefix', l2.key_prefix)),
            default_ttl=int(get_config('cache.l2.default_ttl', l2.default_ttl)),
            compression_enabled=_as_bool(get_config('cache.l2.compression_enabled', l2.compression_enabled)),
        ),
        l3=L3Config(
            enabled=_as_bool(get_config('cache.l3.enabled', l3.enabled)),
            base_path=str(get_config('cache.l3.base_path', l3.base_path)),
            max_file_size=int(get_config('cache.l3.max_file_size', l3.max_file_size)),
            cleanup_interval=int(get_config('cache.l3.cleanup_interval', l3.cleanup_interval)),
            compression_enabled=_as_bool(get_config('cache.l3.compression_enabled', l3.compression_enabled)),
        ),
        strategy=StrategyConfig(
            write_through=_as_bool(get_config('cache.strategy.write_through', strategy.write_through)),
            write_back=_as_bool(get_config('cache.strategy.write_back', strategy.write_back)),
            read_through=_as_bool(get_config('cache.strategy.read_through', strategy.read_through)),
            eviction_policy=str(get_config('cache.strategy.eviction_policy', strategy.eviction_policy)),
        ),
    )
