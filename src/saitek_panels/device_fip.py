"""Flight Instrument Panel: 320x240 colour display and 12 soft buttons.

Frames are raw RGB888 (230 400 bytes) sent as one SET_REPORT control
transfer.  Button reports are 2 bytes on an interrupt IN endpoint that is
discovered when the panel is opened.
"""
from __future__ import annotations

import logging
from typing import Any, Optional, Tuple

from .device_panel import Panel
from .reports import build_fip_report
from .usb_transport import PanelKind

log = logging.getLogger(__name__)


class FipPanel(Panel):
    KIND = PanelKind.FIP
    POLL_HZ = 20.0

    def __init__(self, *args, pipeline: Any = None, **kwargs):
        super().__init__(*args, **kwargs)
        if pipeline is None:
            from .services.image import FramebufferPipeline
            pipeline = FramebufferPipeline()
        self.pipeline = pipeline

    def send_frame(self, frame: bytes) -> None:
        """Send a raw 230 400-byte RGB888 frame.

        Raises:
            InvalidArgument: wrong frame length (nothing is sent).
        """
        self._send_report(build_fip_report(frame))

    def send_image(self, source: Any, options: Optional[Any] = None) -> None:
        """Render a PIL image, numpy array or image path and send it.

        Args:
            options: ``FipImageOptions`` overriding the panel's pipeline
                for this call only.
        """
        pipeline = self.pipeline
        if options is not None:
            from .services.image import FramebufferPipeline
            pipeline = FramebufferPipeline(options)
        frame = pipeline.render(source)
        self.send_frame(frame)
        log.debug("FIP: sent image (%s)", pipeline.options.resize_policy.value)

    def show_pattern(self, name: str) -> None:
        """Send one of the built-in test images ('test', 'bars', 'gradient')."""
        self.send_frame(self.pipeline.render(self.pipeline.pattern(name)))

    def clear(self, color: Tuple[int, int, int] = (0, 0, 0)) -> None:
        """Fill the screen with one colour."""
        self.send_frame(bytes(color) * (self.pipeline.width * self.pipeline.height))
