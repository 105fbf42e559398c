"""Radio panel: four 5-digit frequency fields (COM1/COM2, active/standby).

Usage::

    radio = RadioPanel(MockTransport("radio"))
    radio.connect()
    radio.set_frequencies("118.00", "121.50", "124.85", "136.97")
"""
from __future__ import annotations

import logging
from typing import Optional

from .device_panel import Panel
from .reports import RadioDisplay, build_radio_report
from .segment_codec import format_frequency
from .usb_transport import PanelKind

log = logging.getLogger(__name__)


class RadioPanel(Panel):
    KIND = PanelKind.RADIO
    POLL_HZ = 10.0

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.display: Optional[RadioDisplay] = None

    def set_display(self, display: RadioDisplay) -> None:
        """Write all four fields.  Text is encoded as given."""
        self._send_report(build_radio_report(display))
        self.display = display
        log.debug("Radio: %s", display)

    def set_frequencies(self, com1_active: str, com1_standby: str,
                        com2_active: str, com2_standby: str) -> None:
        """Like :meth:`set_display` but strips everything except digits and '.'."""
        self.set_display(RadioDisplay(
            format_frequency(com1_active),
            format_frequency(com1_standby),
            format_frequency(com2_active),
            format_frequency(com2_standby),
        ))
