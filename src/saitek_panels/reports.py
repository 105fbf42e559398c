"""Output report builders for the four panel variants.

All display reports travel as a HID SET_REPORT control transfer::

    bmRequestType = 0x21   (host->device, class, interface)
    bRequest      = 0x09   (SET_REPORT)
    wValue        = 0x0300 (report type 3, id 0)
    wIndex        = 0
    wLength       = len(payload)

Report layouts::

    Radio  (22)   [0:5) COM1 active  [5:10) COM1 standby
                  [10:15) COM2 active [15:20) COM2 standby  [20:22) 00 00
    Multi  (12)   [0:5) top row  [5:10) bottom row  [10] LEDs  [11] 0xFF
    Switch (1)    gear light bitmap, bits 6-7 zero
    FIP (230400)  320x240 RGB888, row-major, no padding
"""
from __future__ import annotations

from dataclasses import dataclass
from enum import IntFlag
from typing import NamedTuple, Union

from .errors import InvalidArgument
from .segment_codec import FIELD_WIDTH, MULTI_CODEC, RADIO_CODEC

# =========================================================================
# Control transfer setup
# =========================================================================

class ControlSetup(NamedTuple):
    """USB control-transfer setup fields (wLength is the payload length)."""
    bm_request_type: int
    b_request: int
    w_value: int
    w_index: int


HID_REQ_TYPE_CLASS_OUT = 0x21
HID_REQ_SET_REPORT = 0x09
HID_REPORT_VALUE = 0x0300

SET_REPORT = ControlSetup(
    HID_REQ_TYPE_CLASS_OUT, HID_REQ_SET_REPORT, HID_REPORT_VALUE, 0,
)

# Report sizes
RADIO_REPORT_SIZE = 22
MULTI_REPORT_SIZE = 12
SWITCH_REPORT_SIZE = 1

FIP_WIDTH = 320
FIP_HEIGHT = 240
FIP_BYTES_PER_PIXEL = 3
FIP_FRAME_SIZE = FIP_WIDTH * FIP_HEIGHT * FIP_BYTES_PER_PIXEL  # 230400

MULTI_SENTINEL = 0xFF


# =========================================================================
# Display models
# =========================================================================

@dataclass
class RadioDisplay:
    """The Radio panel's four 5-digit fields.

    Layout on the hardware: COM1 active top-left, COM1 standby top-right,
    COM2 active bottom-left, COM2 standby bottom-right.
    """
    com1_active: str = ""
    com1_standby: str = ""
    com2_active: str = ""
    com2_standby: str = ""


class MultiLed(IntFlag):
    """Multi panel annunciator LEDs (report byte 10)."""
    NONE = 0x00
    AP = 0x01
    HDG = 0x02
    NAV = 0x04
    IAS = 0x08
    ALT = 0x10
    VS = 0x20
    APR = 0x40
    REV = 0x80


@dataclass
class MultiDisplay:
    """The Multi panel's two rows and its annunciator byte."""
    top_row: str = ""
    bottom_row: str = ""
    leds: int = 0


@dataclass
class GearLights:
    """Switch panel landing-gear annunciators.

    Green and red of the same position lit together show yellow.
    """
    green_n: bool = False
    green_l: bool = False
    green_r: bool = False
    red_n: bool = False
    red_l: bool = False
    red_r: bool = False

    _BITS = (
        ('green_n', 0x01),
        ('green_l', 0x02),
        ('green_r', 0x04),
        ('red_n', 0x08),
        ('red_l', 0x10),
        ('red_r', 0x20),
    )

    def to_byte(self) -> int:
        value = 0
        for name, bit in self._BITS:
            if getattr(self, name):
                value |= bit
        return value

    @classmethod
    def from_byte(cls, value: int) -> 'GearLights':
        return cls(**{name: bool(value & bit) for name, bit in cls._BITS})

    @classmethod
    def all_off(cls) -> 'GearLights':
        return cls()

    @classmethod
    def all_green(cls) -> 'GearLights':
        """Gear down and locked."""
        return cls(green_n=True, green_l=True, green_r=True)

    @classmethod
    def all_red(cls) -> 'GearLights':
        """Gear up."""
        return cls(red_n=True, red_l=True, red_r=True)

    @classmethod
    def all_yellow(cls) -> 'GearLights':
        """Gear in transit."""
        return cls(True, True, True, True, True, True)


GEAR_LIGHT_MASK = 0x3F


# =========================================================================
# Builders
# =========================================================================

def build_radio_report(display: RadioDisplay) -> bytes:
    """Assemble the 22-byte Radio output report."""
    report = (
        RADIO_CODEC.encode(display.com1_active)
        + RADIO_CODEC.encode(display.com1_standby)
        + RADIO_CODEC.encode(display.com2_active)
        + RADIO_CODEC.encode(display.com2_standby)
        + b'\x00\x00'
    )
    return report


def _check_led_byte(leds: int) -> int:
    leds = int(leds)
    if not 0 <= leds <= 0xFF:
        raise InvalidArgument(f"LED bitmap out of range: {leds:#x}")
    return leds


def build_multi_report_from_fields(top: bytes, bottom: bytes, leds: int) -> bytes:
    """Assemble a Multi report from already-encoded rows."""
    if len(top) != FIELD_WIDTH or len(bottom) != FIELD_WIDTH:
        raise InvalidArgument(
            f"Multi fields must be {FIELD_WIDTH} bytes (got {len(top)}, {len(bottom)})"
        )
    return bytes(top) + bytes(bottom) + bytes([_check_led_byte(leds), MULTI_SENTINEL])


def build_multi_report(display: MultiDisplay) -> bytes:
    """Assemble the 12-byte Multi output report."""
    return build_multi_report_from_fields(
        MULTI_CODEC.encode(display.top_row),
        MULTI_CODEC.encode(display.bottom_row),
        display.leds,
    )


def build_switch_report(lights: Union[GearLights, int]) -> bytes:
    """Assemble the 1-byte Switch output report (bits 6-7 always clear)."""
    if isinstance(lights, GearLights):
        value = lights.to_byte()
    else:
        value = int(lights)
        if not 0 <= value <= 0xFF:
            raise InvalidArgument(f"Gear light bitmap out of range: {value:#x}")
    return bytes([value & GEAR_LIGHT_MASK])


def build_fip_report(frame: bytes) -> bytes:
    """Validate a FIP framebuffer payload (320x240 RGB888)."""
    if len(frame) != FIP_FRAME_SIZE:
        raise InvalidArgument(
            f"FIP frame must be {FIP_FRAME_SIZE} bytes, got {len(frame)}"
        )
    return bytes(frame)
