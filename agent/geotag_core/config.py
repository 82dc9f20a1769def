"""
Paths, logging setup, settings load/save, safe_print.
"""

import os
import sys
import json
import logging
from dataclasses import dataclass, asdict, fields
from pathlib import Path

from .constants import (
    DEFAULT_BASE_URL, API_TIMEOUT, CONNECTIVITY_TIMEOUT, LOCATION_TIMEOUT,
    MAX_TICKS_PER_RUN,
)


# ─── Paths ───────────────────────────────────────────────────────
# One agent home per host install. Credentials, the offline queue and
# the log all live here so they survive process death.

BASE_DIR = Path(os.environ.get("GEOTAG_HOME", str(Path.home() / ".geotag")))

CONFIG_FILE = BASE_DIR / "config.json"
LOG_FILE = BASE_DIR / "agent.log"
CREDENTIALS_FILE = BASE_DIR / "credentials.json"
OFFLINE_CACHE_FILE = BASE_DIR / "pending.jsonl"

_LOG_FORMAT = "%(asctime)s [%(levelname)s] %(message)s"
_LOG_MAX_BYTES = 1_000_000


# ─── Safe print (no crash when stdout is detached) ───────────────

def safe_print(*args, **kwargs):
    try:
        print(*args, **kwargs)
    except (OSError, ValueError):
        pass


# ─── Logging ─────────────────────────────────────────────────────

log = logging.getLogger("geotag")


def setup_logging(log_file=LOG_FILE, level=logging.INFO):
    """Attach file + console handlers to the agent logger.

    The log file is truncated once it grows past 1 MB, the same way
    every launch of the agent keeps its footprint small.
    """
    log_file = Path(log_file)
    log_file.parent.mkdir(parents=True, exist_ok=True)
    try:
        if log_file.exists() and log_file.stat().st_size > _LOG_MAX_BYTES:
            log_file.write_text("")
    except OSError:
        pass

    log.setLevel(level)
    for handler in list(log.handlers):
        log.removeHandler(handler)

    file_handler = logging.FileHandler(str(log_file), encoding="utf-8")
    file_handler.setFormatter(logging.Formatter(_LOG_FORMAT, datefmt="%Y-%m-%d %H:%M:%S"))
    log.addHandler(file_handler)

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(level)
    console_handler.setFormatter(logging.Formatter(_LOG_FORMAT))
    log.addHandler(console_handler)
    return log


# ─── Settings ────────────────────────────────────────────────────

@dataclass
class AgentSettings:
    base_url: str = DEFAULT_BASE_URL
    max_ticks_per_run: int = MAX_TICKS_PER_RUN
    api_timeout: float = API_TIMEOUT
    connectivity_timeout: float = CONNECTIVITY_TIMEOUT
    location_timeout: float = LOCATION_TIMEOUT
    resume_on_grant: bool = True


_ENV_OVERRIDES = {
    "GEOTAG_BASE_URL": ("base_url", str),
    "GEOTAG_MAX_TICKS": ("max_ticks_per_run", int),
    "GEOTAG_API_TIMEOUT": ("api_timeout", float),
}


def load_config(path=CONFIG_FILE):
    """Load config dict from disk. Returns dict or None."""
    path = Path(path)
    if path.exists():
        try:
            with open(path, "r", encoding="utf-8") as f:
                return json.load(f)
        except (json.JSONDecodeError, IOError):
            return None
    return None


def load_settings(path=CONFIG_FILE, environ=None):
    """Build AgentSettings from defaults, config.json and GEOTAG_* env vars."""
    environ = os.environ if environ is None else environ
    known = {f.name for f in fields(AgentSettings)}
    values = {}

    raw = load_config(path) or {}
    for key, value in raw.items():
        if key in known:
            values[key] = value
        else:
            log.warning("Ignoring unknown config key: %s", key)

    for env_name, (key, cast) in _ENV_OVERRIDES.items():
        env_value = environ.get(env_name)
        if env_value is None or env_value.strip() == "":
            continue
        try:
            values[key] = cast(env_value.strip())
        except ValueError:
            log.warning("Invalid %s=%r; keeping %s", env_name, env_value, key)

    settings = AgentSettings(**values)
    if settings.max_ticks_per_run < 1:
        log.warning("max_ticks_per_run=%d is below 1; using 1", settings.max_ticks_per_run)
        settings.max_ticks_per_run = 1
    return settings


def save_settings(settings, path=CONFIG_FILE):
    """Save settings to disk."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w", encoding="utf-8") as f:
        json.dump(asdict(settings), f, indent=2)
    log.info("Config saved to %s", path)
