"""User options and config persistence.

Config is stored at ~/.config/saitek-panels/config.json (XDG-compliant).
Only options live here; panel state is never persisted.

Usage:
    from saitek_panels.conf import settings

    settings.backend            # "auto" | "pyusb" | "hidapi" | "mock"
    settings.fip_options()      # FipImageOptions from the saved FIP options
    settings.api_host, settings.api_port

    # Low-level config access
    from saitek_panels.conf import load_config, save_config
"""
from __future__ import annotations

import json
import logging
import os
from typing import Any, Tuple

log = logging.getLogger(__name__)

# =========================================================================
# Config file location (XDG-compliant)
# =========================================================================

_XDG_CONFIG = os.environ.get('XDG_CONFIG_HOME', os.path.expanduser('~/.config'))
CONFIG_DIR = os.path.join(_XDG_CONFIG, 'saitek-panels')
CONFIG_PATH = os.path.join(CONFIG_DIR, 'config.json')

MOCK_ENV = 'SAITEK_PANELS_MOCK'

DEFAULTS = {
    'backend': 'auto',
    'fip_resize_policy': 'fit',
    'fip_background': [0, 0, 0],
    'fip_jpeg_quality': 90,
    'api_host': '127.0.0.1',
    'api_port': 8080,
    'timeout_is_idle': False,
}


# =========================================================================
# Low-level config persistence
# =========================================================================

def load_config() -> dict:
    """Load user config from disk. Returns empty dict on missing/corrupt file."""
    try:
        with open(CONFIG_PATH, 'r') as f:
            data = json.load(f)
    except (FileNotFoundError, json.JSONDecodeError, OSError):
        return {}
    return data if isinstance(data, dict) else {}


def save_config(config: dict):
    """Save user config to disk."""
    os.makedirs(CONFIG_DIR, exist_ok=True)
    with open(CONFIG_PATH, 'w') as f:
        json.dump(config, f, indent=2)


def save_option(key: str, value: Any):
    """Persist a single option, keeping the others."""
    if key not in DEFAULTS:
        raise KeyError(f"Unknown option: {key}")
    config = load_config()
    config[key] = value
    save_config(config)


def mock_forced() -> bool:
    """True when SAITEK_PANELS_MOCK is set to a truthy value."""
    return os.environ.get(MOCK_ENV, '').strip().lower() in ('1', 'true', 'yes', 'on')


# =========================================================================
# Settings singleton
# =========================================================================

class Settings:
    """Application-wide options.

    Values come from the config file with :data:`DEFAULTS` filling gaps;
    ``SAITEK_PANELS_MOCK=1`` overrides the backend.  Call :meth:`reload`
    after editing the file by hand.
    """

    def __init__(self) -> None:
        self.reload()

    def reload(self) -> None:
        config = {**DEFAULTS, **load_config()}
        self._backend: str = str(config['backend'])
        self.fip_resize_policy: str = str(config['fip_resize_policy'])
        self.fip_background: Tuple[int, int, int] = _rgb(config['fip_background'])
        self.fip_jpeg_quality: int = _int(config['fip_jpeg_quality'], 90)
        self.api_host: str = str(config['api_host'])
        self.api_port: int = _int(config['api_port'], 8080)
        self.timeout_is_idle: bool = bool(config['timeout_is_idle'])

    @property
    def backend(self) -> str:
        return 'mock' if mock_forced() else self._backend

    def set_backend(self, backend: str, persist: bool = True) -> None:
        from .device_factory import resolve_backend
        resolve_backend(backend)  # validates
        log.info("Settings: backend %s → %s", self._backend, backend)
        self._backend = backend
        if persist:
            save_option('backend', backend)

    def set_fip_resize_policy(self, policy: str, persist: bool = True) -> None:
        from .services.image import ResizePolicy
        self.fip_resize_policy = ResizePolicy.from_name(policy).value
        if persist:
            save_option('fip_resize_policy', self.fip_resize_policy)

    def fip_options(self) -> Any:
        """FipImageOptions built from the saved FIP options."""
        from .services.image import FipImageOptions
        return FipImageOptions(
            resize_policy=self.fip_resize_policy,
            background=self.fip_background,
            jpeg_quality=self.fip_jpeg_quality,
        )


def _int(value: Any, default: int) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        log.warning("Settings: ignoring bad integer %r", value)
        return default


def _rgb(value: Any) -> Tuple[int, int, int]:
    try:
        r, g, b = (int(c) for c in value)
    except (TypeError, ValueError):
        log.warning("Settings: ignoring bad colour %r", value)
        return (0, 0, 0)
    return (r, g, b)


# Module-level singleton, import and use directly
settings = Settings()
