"""
Runtime configuration, read from the environment.

  SMARTLIFT_API_URL          backend base URL
  SMARTLIFT_API_TOKEN        bearer token (or .smartlift_token file)
  SMARTLIFT_HTTP_TIMEOUT     seconds per backend request
  SMARTLIFT_RETRY_MAX_DELAY  cap on sync retry backoff, seconds
  SMARTLIFT_TICK_INTERVAL    session clock tick, seconds
"""

import logging
import os

log = logging.getLogger("config")

DEFAULT_API_URL = "http://localhost:3000"
DEFAULT_HTTP_TIMEOUT = 10.0
DEFAULT_RETRY_MAX_DELAY = 10.0
DEFAULT_TICK_INTERVAL = 1.0
TOKEN_FILE = ".smartlift_token"


def _float_env(name, default):
    raw = os.environ.get(name)
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError:
        log.warning(f"Ignoring {name}={raw!r}: not a number")
        return default


def api_url():
    return os.environ.get("SMARTLIFT_API_URL", DEFAULT_API_URL).rstrip("/")


def http_timeout():
    return _float_env("SMARTLIFT_HTTP_TIMEOUT", DEFAULT_HTTP_TIMEOUT)


def retry_max_delay():
    return _float_env("SMARTLIFT_RETRY_MAX_DELAY", DEFAULT_RETRY_MAX_DELAY)


def tick_interval():
    return _float_env("SMARTLIFT_TICK_INTERVAL", DEFAULT_TICK_INTERVAL)


def read_api_token():
    token = os.environ.get("SMARTLIFT_API_TOKEN")
    if token:
        return token.strip()
    for path in [TOKEN_FILE, os.path.expanduser(f"~/{TOKEN_FILE}")]:
        try:
            with open(path) as f:
                return f.read().strip() or None
        except FileNotFoundError:
            continue
    return None
