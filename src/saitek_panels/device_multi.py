"""Multi panel: two 5-digit rows plus the autopilot annunciator LEDs."""
from __future__ import annotations

import logging
from typing import Optional

from .device_panel import Panel
from .reports import MultiDisplay, build_multi_report_from_fields
from .segment_codec import MULTI_CODEC, format_multi_value
from .usb_transport import PanelKind

log = logging.getLogger(__name__)


class MultiPanel(Panel):
    """Multi panel with cached row bytes.

    The LED byte shares the report with both rows, so :meth:`set_leds`
    re-sends the last rows written (blank until a display is set).
    """

    KIND = PanelKind.MULTI
    POLL_HZ = 10.0

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self._top = MULTI_CODEC.encode("")
        self._bottom = MULTI_CODEC.encode("")
        self._leds = 0
        self.display: Optional[MultiDisplay] = None

    @property
    def leds(self) -> int:
        return self._leds

    def set_display(self, display: MultiDisplay) -> None:
        top = MULTI_CODEC.encode(display.top_row)
        bottom = MULTI_CODEC.encode(display.bottom_row)
        self._send_report(build_multi_report_from_fields(top, bottom, display.leds))
        self._top, self._bottom, self._leds = top, bottom, int(display.leds)
        self.display = display
        log.debug("Multi: %s", display)

    def set_rows(self, top: str, bottom: str, leds: Optional[int] = None) -> None:
        """Sanitised rows (digits, '.', '-').  ``leds=None`` keeps the current LEDs."""
        self.set_display(MultiDisplay(
            format_multi_value(top),
            format_multi_value(bottom),
            self._leds if leds is None else leds,
        ))

    def set_leds(self, leds: int) -> None:
        """Change only the annunciators."""
        self._send_report(build_multi_report_from_fields(self._top, self._bottom, leds))
        self._leds = int(leds)
        if self.display is not None:
            self.display = MultiDisplay(self.display.top_row, self.display.bottom_row,
                                        self._leds)
