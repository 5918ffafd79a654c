"""User configuration for sifpull."""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any

from vpd.next.util import read_yaml

from sifpull.request import DEFAULT_LIBRARY_URI

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_DIR = Path.home() / ".config" / "sifpull"
DEFAULT_CACHE_DIR = Path.home() / ".cache" / "sifpull"
DEFAULT_KEYSERVER_URI = "https://keys.sylabs.io"
DEFAULT_SHUB_HOST = "singularity-hub.org"
DEFAULT_NETWORK_TIMEOUT = 60.0
DEFAULT_VERIFY_COMMAND = ["singularity", "verify"]
DEFAULT_REGISTRY_COMMAND = ["skopeo"]

CONFIG_ENV = "SIFPULL_CONFIG"
CACHEDIR_ENV = "SIFPULL_CACHEDIR"
TOKEN_ENV = "SIFPULL_LIBRARY_TOKEN"
TOKEN_FILE_NAME = "library-token"

VERIFY_ON_ERROR_WARN = "warn"
VERIFY_ON_ERROR_FAIL = "fail"


def _default_config_path() -> Path:
    env_path = os.environ.get(CONFIG_ENV)
    if env_path:
        return Path(os.path.expanduser(env_path))
    return DEFAULT_CONFIG_DIR / "config.yaml"


class SifpullConfig:
    """Read-only view of the user's sifpull configuration file."""

    def __init__(self, config_path: Path | None = None):
        self.config_path = config_path or _default_config_path()
        self._data: dict[str, Any] = {}
        self._load()

    def _load(self):
        if self.config_path.exists():
            self._data = read_yaml(str(self.config_path)) or {}
        else:
            self._data = {}

    def get(self, key: str, default: Any = None) -> Any:
        """Get a config value by dot-separated key path."""
        parts = key.split(".")
        current = self._data
        for part in parts:
            if isinstance(current, dict) and part in current:
                current = current[part]
            else:
                return default
        return current

    @property
    def library_uri(self) -> str:
        return self._data.get("library", DEFAULT_LIBRARY_URI)

    @property
    def keyserver_uri(self) -> str:
        return self._data.get("keyserver", DEFAULT_KEYSERVER_URI)

    @property
    def shub_host(self) -> str:
        return self._data.get("shub", DEFAULT_SHUB_HOST)

    @property
    def cache_dir(self) -> Path:
        env_dir = os.environ.get(CACHEDIR_ENV)
        if env_dir:
            return Path(os.path.expanduser(env_dir))
        return Path(os.path.expanduser(self._data.get("cache_dir", str(DEFAULT_CACHE_DIR))))

    @property
    def network_timeout(self) -> float | None:
        value = self.get("network.timeout", DEFAULT_NETWORK_TIMEOUT)
        if value is None or float(value) <= 0:
            return None
        return float(value)

    @property
    def verify_command(self) -> list[str]:
        return list(self.get("verify.command", DEFAULT_VERIFY_COMMAND))

    @property
    def verify_fail_closed(self) -> bool:
        policy = str(self.get("verify.on_error", VERIFY_ON_ERROR_WARN)).lower()
        if policy not in (VERIFY_ON_ERROR_WARN, VERIFY_ON_ERROR_FAIL):
            logger.warning("Unknown verify.on_error policy %r, using %r", policy, VERIFY_ON_ERROR_WARN)
            return False
        return policy == VERIFY_ON_ERROR_FAIL

    @property
    def verify_cache_hits(self) -> bool:
        return bool(self.get("cache.verify_on_hit", False))

    @property
    def registry_command(self) -> list[str]:
        return list(self.get("registry.command", DEFAULT_REGISTRY_COMMAND))

    def library_token(self) -> str | None:
        """Return the library bearer token from the environment or token file."""
        token = os.environ.get(TOKEN_ENV, "").strip()
        if token:
            return token
        token_file = self.config_path.parent / TOKEN_FILE_NAME
        if token_file.is_file():
            lines = token_file.read_text().splitlines()
            token = lines[0].strip() if lines else ""
            if token:
                logger.debug("Using library token from %s", token_file)
                return token
        return None
