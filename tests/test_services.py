"""Tests for services/panels.py — PanelManager lifecycle, pass-throughs, relay."""

import gc
import threading
import time
from unittest.mock import patch

import pytest
from PIL import Image

from saitek_panels.device_panel import PanelState
from saitek_panels.device_radio import RadioPanel
from saitek_panels.device_switch import SwitchPanel
from saitek_panels.errors import NotFound, PanelNotConnected, TransportIo
from saitek_panels.input_parser import InputEvent
from saitek_panels.reports import FIP_FRAME_SIZE, GearLights, MultiDisplay, RadioDisplay
from saitek_panels.services import FipImageOptions, PanelManager, PanelStatus
from saitek_panels.services.image import ResizePolicy
from saitek_panels.usb_transport import MockTransport, PanelKind


@pytest.fixture
def manager():
    mgr = PanelManager(mock=True, poll=False)
    yield mgr
    mgr.close_all()


class SlowCloseTransport(MockTransport):
    """close() blocks for a while, like a kernel driver re-attach."""

    def __init__(self, name):
        super().__init__(name)
        self.closing = threading.Event()

    def close(self):
        self.closing.set()
        time.sleep(0.3)
        self.fail_reads = None
        super().close()


class TestPanelStatus:

    def test_to_dict(self):
        status = PanelStatus(PanelKind.MULTI, True, None, PanelState.POLLING)
        assert status.to_dict() == {
            'kind': 'multi',
            'name': 'Saitek Pro Flight Multi Panel',
            'connected': True,
            'state': 'polling',
            'error': None,
        }


class TestLifecycle:

    def test_initial_status(self, manager):
        status = manager.status()
        assert set(status) == set(PanelKind)
        assert not any(s.connected for s in status.values())
        assert manager.connected_kinds() == []

    def test_connect_all(self, manager):
        status = manager.connect_all()
        assert all(s.connected for s in status.values())
        assert all(s.state is PanelState.CONNECTED for s in status.values())
        assert set(manager.connected_kinds()) == set(PanelKind)

    def test_connect_subset_by_key(self, manager):
        manager.connect_all(["radio", "switch"])
        assert sorted(k.key for k in manager.connected_kinds()) == ["radio", "switch"]

    def test_connect_reuses_panel(self, manager):
        first = manager.connect(PanelKind.RADIO)
        assert manager.connect("radio") is first

    def test_get_requires_connection(self, manager):
        with pytest.raises(PanelNotConnected):
            manager.get(PanelKind.FIP)

    def test_connect_without_backend(self):
        mgr = PanelManager(backend="auto")
        with patch('saitek_panels.device_factory.create_transport',
                   side_effect=ImportError("No USB backend available")):
            with pytest.raises(NotFound):
                mgr.connect(PanelKind.RADIO)
            status = mgr.connect_all()
        assert not status[PanelKind.RADIO].connected
        assert "No USB backend" in status[PanelKind.RADIO].error

    def test_connect_failure_recorded(self, manager):
        panel = SwitchPanel(MockTransport("switch"), poll=False)
        manager.register(panel)
        with patch.object(panel.transport, 'open', side_effect=NotFound("unplugged")):
            status = manager.connect_all([PanelKind.SWITCH])
        assert not status[PanelKind.SWITCH].connected
        assert "unplugged" in status[PanelKind.SWITCH].error

    def test_close_one(self, manager):
        manager.connect_all()
        radio = manager.panel(PanelKind.RADIO)
        manager.close(PanelKind.RADIO)
        assert radio.state is PanelState.DISCONNECTED
        assert manager.status()[PanelKind.RADIO] == PanelStatus(PanelKind.RADIO)
        assert PanelKind.RADIO not in manager.connected_kinds()
        assert len(manager.connected_kinds()) == 3

    def test_context_manager_closes_all(self):
        with PanelManager(mock=True, poll=False) as mgr:
            mgr.connect_all()
            panels = [mgr.panel(k) for k in PanelKind]
        assert all(p.state is PanelState.DISCONNECTED for p in panels)

    def test_status_follows_panel_state(self, manager):
        panel = manager.connect(PanelKind.SWITCH)
        panel.close()
        status = manager.status()[PanelKind.SWITCH]
        assert not status.connected
        assert status.state is PanelState.DISCONNECTED

    def test_reconnect_while_poller_drops_panel(self):
        transport = SlowCloseTransport("radio")
        panel = RadioPanel(transport)
        mgr = PanelManager(mock=True)
        mgr.register(panel)
        try:
            mgr.connect(PanelKind.RADIO)
            transport.fail_reads = TransportIo("unplugged")
            assert transport.closing.wait(3.0)
            result = {}
            worker = threading.Thread(
                target=lambda: result.update(panel=mgr.connect(PanelKind.RADIO)),
                daemon=True)
            worker.start()
            worker.join(3.0)
            assert not worker.is_alive()
            assert result["panel"] is panel
            assert panel.is_connected
            assert mgr.status()[PanelKind.RADIO].connected
        finally:
            mgr.close_all()


class TestRegistry:

    def test_register_caller_owned(self, manager):
        panel = SwitchPanel(MockTransport("switch"), poll=False)
        manager.register(panel)
        assert manager.panel(PanelKind.SWITCH) is panel
        manager.connect(PanelKind.SWITCH)
        manager.set_gear(GearLights.all_green())
        assert panel.transport.last_payload == b'\x07'

    def test_registry_is_weak(self, manager):
        panel = SwitchPanel(MockTransport("switch"), poll=False)
        manager.register(panel)
        del panel
        gc.collect()
        assert manager.panel(PanelKind.SWITCH) is None

    def test_created_panels_are_pinned(self, manager):
        manager.connect(PanelKind.MULTI)
        gc.collect()
        assert manager.panel(PanelKind.MULTI) is not None


class TestPassThroughs:

    def test_set_radio(self, manager):
        manager.connect(PanelKind.RADIO)
        manager.set_radio(RadioDisplay("118.00"))
        report = manager.panel(PanelKind.RADIO).transport.last_payload
        assert report[:5] == b'\x01\x01\xd8\x00\x00'

    def test_set_multi_and_leds(self, manager):
        manager.connect(PanelKind.MULTI)
        manager.set_multi(MultiDisplay("250", "3000", 0))
        manager.set_multi_leds(0x01)
        report = manager.panel(PanelKind.MULTI).transport.last_payload
        assert report == bytes([0x02, 0x05, 0x00, 0x0F, 0x0F,
                                0x03, 0x00, 0x00, 0x00, 0x0F, 0x01, 0xFF])

    def test_set_gear_raw(self, manager):
        manager.connect(PanelKind.SWITCH)
        manager.set_gear(0x38)
        assert manager.panel(PanelKind.SWITCH).last_report == b'\x38'

    def test_fip_uses_manager_options(self):
        with PanelManager(mock=True, poll=False,
                          fip_options=FipImageOptions("stretch")) as mgr:
            fip = mgr.connect(PanelKind.FIP)
            assert fip.pipeline.options.resize_policy is ResizePolicy.STRETCH
            mgr.send_fip_image(Image.new('RGB', (64, 48), (0, 0, 255)))
            assert fip.transport.last_payload == b'\x00\x00\xff' * (320 * 240)

    def test_send_fip_frame(self, manager):
        manager.connect(PanelKind.FIP)
        manager.send_fip_frame(bytes(FIP_FRAME_SIZE))
        assert len(manager.panel(PanelKind.FIP).last_report) == FIP_FRAME_SIZE

    def test_pass_through_not_connected(self, manager):
        with pytest.raises(PanelNotConnected):
            manager.set_radio(RadioDisplay())

    def test_write_error_recorded(self, manager):
        panel = manager.connect(PanelKind.SWITCH)
        with patch.object(panel.transport, 'control_write',
                          side_effect=TransportIo("stall")):
            with pytest.raises(TransportIo):
                manager.set_gear(GearLights.all_red())
        status = manager.status()[PanelKind.SWITCH]
        assert status.connected
        assert "stall" in status.error


class TestEventRelay:

    def test_subscribe(self, manager):
        seen = []
        manager.subscribe(lambda kind, ev: seen.append((kind, ev)))
        panel = manager.connect(PanelKind.SWITCH)
        panel.transport.feed(b'\x00\x00\x08')
        panel.poll_once(now=3.0)
        assert seen == [(PanelKind.SWITCH, InputEvent('GEARDOWN', True, 3.0))]

    def test_unsubscribe(self, manager):
        seen = []
        unsubscribe = manager.subscribe(lambda kind, ev: seen.append(ev))
        panel = manager.connect(PanelKind.RADIO)
        unsubscribe()
        unsubscribe()
        panel.transport.feed(b'\x01\x00\x00')
        panel.poll_once()
        assert seen == []

    def test_failing_subscriber_isolated(self, manager):
        seen = []
        manager.subscribe(lambda kind, ev: 1 / 0)
        manager.subscribe(lambda kind, ev: seen.append(ev.signal))
        panel = manager.connect(PanelKind.FIP)
        panel.transport.feed(b'\x01\x00')
        panel.poll_once()
        assert seen == ['BUTTON_1']
