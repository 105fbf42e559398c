"""Switch panel: landing-gear annunciators (three green, three red)."""
from __future__ import annotations

from typing import Union

from .device_panel import Panel
from .reports import GearLights, build_switch_report
from .usb_transport import PanelKind


class SwitchPanel(Panel):
    KIND = PanelKind.SWITCH
    POLL_HZ = 10.0

    @property
    def lights(self) -> GearLights:
        """Lights as last written (all off before the first write)."""
        report = self.last_report
        return GearLights.from_byte(report[0] if report else 0)

    def set_leds(self, lights: Union[GearLights, int]) -> None:
        self._send_report(build_switch_report(lights))

    def set_gear_down(self) -> None:
        """Three greens."""
        self.set_leds(GearLights.all_green())

    def set_gear_up(self) -> None:
        """Three reds."""
        self.set_leds(GearLights.all_red())

    def set_gear_transition(self) -> None:
        """All six lit (yellow)."""
        self.set_leds(GearLights.all_yellow())

    def lights_off(self) -> None:
        self.set_leds(GearLights.all_off())
