"""Tests for reports — output report builders and display models."""

import pytest

from saitek_panels.errors import InvalidArgument
from saitek_panels.reports import (
    FIP_FRAME_SIZE,
    GEAR_LIGHT_MASK,
    MULTI_REPORT_SIZE,
    MULTI_SENTINEL,
    RADIO_REPORT_SIZE,
    SET_REPORT,
    GearLights,
    MultiDisplay,
    MultiLed,
    RadioDisplay,
    build_fip_report,
    build_multi_report,
    build_multi_report_from_fields,
    build_radio_report,
    build_switch_report,
)
from saitek_panels.segment_codec import RADIO_CODEC


class TestSetReport:

    def test_setup_fields(self):
        assert tuple(SET_REPORT) == (0x21, 0x09, 0x0300, 0)


class TestRadioReport:

    def test_frequencies_scenario(self):
        display = RadioDisplay("118.00", "118.50", "121.30", "121.90")
        report = build_radio_report(display)
        assert len(report) == RADIO_REPORT_SIZE
        expected = b''.join(RADIO_CODEC.encode(f) for f in
                            ("118.00", "118.50", "121.30", "121.90"))
        assert report[:20] == expected
        assert report[20:] == b'\x00\x00'

    @pytest.mark.parametrize("fields", [
        ("", "", "", ""),
        ("1", "22", "333", "4444"),
        ("99999999", "-", " . ", "abc"),
    ])
    def test_length_and_trailer(self, fields):
        report = build_radio_report(RadioDisplay(*fields))
        assert len(report) == 22
        assert report[20:22] == b'\x00\x00'

    def test_same_model_same_report(self):
        display = RadioDisplay("118.00", "", "", "")
        assert build_radio_report(display) == build_radio_report(display)


class TestMultiReport:

    def test_display_and_leds_scenario(self):
        report = build_multi_report(MultiDisplay("250", "3000", 0x01))
        assert report == bytes([
            0x02, 0x05, 0x00, 0x0F, 0x0F,
            0x03, 0x00, 0x00, 0x00, 0x0F,
            0x01, 0xFF,
        ])

    @pytest.mark.parametrize("leds", [0x00, 0x01, 0x80, 0xFF])
    def test_length_and_sentinel(self, leds):
        report = build_multi_report(MultiDisplay("-1500", "12", leds))
        assert len(report) == MULTI_REPORT_SIZE
        assert report[11] == MULTI_SENTINEL
        assert report[10] == leds

    def test_led_flags(self):
        leds = MultiLed.AP | MultiLed.HDG | MultiLed.REV
        report = build_multi_report(MultiDisplay("", "", leds))
        assert report[10] == 0x83

    def test_led_out_of_range(self):
        with pytest.raises(InvalidArgument):
            build_multi_report(MultiDisplay("", "", 0x100))

    def test_from_fields_rejects_wrong_width(self):
        with pytest.raises(InvalidArgument):
            build_multi_report_from_fields(b'\x00' * 4, b'\x00' * 5, 0)


class TestSwitchReport:

    def test_gear_down(self):
        assert build_switch_report(GearLights.all_green()) == b'\x07'

    def test_gear_up(self):
        assert build_switch_report(GearLights.all_red()) == b'\x38'

    def test_transition(self):
        assert build_switch_report(GearLights.all_yellow()) == b'\x3F'

    def test_off(self):
        assert build_switch_report(GearLights.all_off()) == b'\x00'

    def test_raw_int_masks_high_bits(self):
        assert build_switch_report(0xFF) == bytes([GEAR_LIGHT_MASK])

    def test_raw_int_out_of_range(self):
        with pytest.raises(InvalidArgument):
            build_switch_report(0x100)

    def test_byte_round_trip(self):
        lights = GearLights(green_n=True, red_r=True)
        assert lights.to_byte() == 0x21
        assert GearLights.from_byte(0x21) == lights


class TestFipReport:

    def test_exact_size(self):
        frame = bytes(FIP_FRAME_SIZE)
        assert build_fip_report(frame) == frame

    @pytest.mark.parametrize("size", [0, FIP_FRAME_SIZE - 1, FIP_FRAME_SIZE + 3])
    def test_wrong_size(self, size):
        with pytest.raises(InvalidArgument):
            build_fip_report(bytes(size))
