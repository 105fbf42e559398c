"""Saitek panel services — core (pure Python, no HTTP/CLI).

Business logic shared by all driving adapters:
- cli.py (argparse CLI)
- api.py (FastAPI REST)
"""

from .image import FipImageOptions, FramebufferPipeline, ResizePolicy
from .panels import PanelManager, PanelStatus

__all__ = [
    'FipImageOptions',
    'FramebufferPipeline',
    'PanelManager',
    'PanelStatus',
    'ResizePolicy',
]
