"""
Tests for cli -- saitek-panels command-line interface argument parsing and dispatch.

Tests cover:
- main() with no args (prints help, returns 0)
- --version flag
- Subcommand dispatch (detect, radio, multi, switch, fip, watch, serve)
- Commands against the mock transport (no hardware)
- Error paths print "Error: ..." and return 1
"""

import io
import os
import unittest
from contextlib import redirect_stdout
from unittest.mock import MagicMock, patch

from saitek_panels.cli import (
    _int_auto,
    _open_panel,
    detect,
    main,
    send_fip,
    serve,
    set_multi,
    set_radio,
    set_switch,
    watch,
)
from saitek_panels.conf import MOCK_ENV
from saitek_panels.device_panel import PanelState
from saitek_panels.device_switch import SwitchPanel
from saitek_panels.errors import NotFound
from saitek_panels.usb_transport import MockTransport


def _run(func, *args, **kwargs):
    """Call *func* capturing stdout -> (return code, output)."""
    buf = io.StringIO()
    with redirect_stdout(buf):
        rc = func(*args, **kwargs)
    return rc, buf.getvalue()


class CliTestCase(unittest.TestCase):

    def setUp(self):
        patcher = patch.dict(os.environ, {MOCK_ENV: ''})
        patcher.start()
        self.addCleanup(patcher.stop)


# ---------------------------------------------------------------------------
# Argument parsing
# ---------------------------------------------------------------------------

class TestMain(CliTestCase):

    def test_no_args_prints_help(self):
        rc, out = _run(main, [])
        self.assertEqual(rc, 0)
        self.assertIn("saitek-panels", out)

    def test_version(self):
        with redirect_stdout(io.StringIO()) as buf:
            with self.assertRaises(SystemExit) as ctx:
                main(["--version"])
        self.assertEqual(ctx.exception.code, 0)
        self.assertIn("saitek-panels", buf.getvalue())

    def test_unknown_command(self):
        with patch('sys.stderr', io.StringIO()):
            with self.assertRaises(SystemExit):
                main(["calibrate"])

    def test_fip_requires_a_source(self):
        with patch('sys.stderr', io.StringIO()):
            with self.assertRaises(SystemExit):
                main(["--mock", "fip"])

    def test_dispatch_radio(self):
        with patch('saitek_panels.cli.set_radio', return_value=0) as cmd:
            self.assertEqual(main(["--mock", "radio", "--com1a", "118.00"]), 0)
        cmd.assert_called_once_with("118.00", "", "", "", mock=True)

    def test_dispatch_multi_hex_leds(self):
        with patch('saitek_panels.cli.set_multi', return_value=0) as cmd:
            main(["multi", "--top", "250", "--leds", "0x81"])
        cmd.assert_called_once_with("250", "", 0x81, mock=False)

    def test_dispatch_switch_flags(self):
        with patch('saitek_panels.cli.set_switch', return_value=0) as cmd:
            main(["--mock", "switch", "--green-n", "--red-r"])
        cmd.assert_called_once_with(
            gear=None, lights=(True, False, False, False, False, True), mock=True)

    def test_dispatch_watch(self):
        with patch('saitek_panels.cli.watch', return_value=0) as cmd:
            main(["watch", "fip", "-n", "3"])
        cmd.assert_called_once_with("fip", count=3, mock=False)

    def test_int_auto(self):
        self.assertEqual(_int_auto("0x1f"), 31)
        self.assertEqual(_int_auto("0b101"), 5)
        self.assertEqual(_int_auto("12"), 12)


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------

class TestDetect(CliTestCase):

    def test_mock(self):
        rc, out = _run(detect, mock=True)
        self.assertEqual(rc, 0)
        self.assertIn("Mock", out)

    def test_no_backend(self):
        with patch('saitek_panels.device_factory.PYUSB_AVAILABLE', False), \
             patch('saitek_panels.device_factory.HIDAPI_AVAILABLE', False), \
             patch('saitek_panels.conf.settings._backend', 'auto'):
            rc, out = _run(detect)
        self.assertEqual(rc, 1)
        self.assertIn("No USB backend", out)

    def test_lists_panels(self):
        from saitek_panels.usb_transport import PanelKind
        found = [{'kind': PanelKind.SWITCH, 'vid': 0x06A3, 'pid': 0x0D67,
                  'serial': '', 'backend': 'pyusb'}]
        with patch('saitek_panels.device_factory.PYUSB_AVAILABLE', True), \
             patch('saitek_panels.conf.settings._backend', 'auto'), \
             patch('saitek_panels.usb_transport.find_panels', return_value=found):
            rc, out = _run(detect)
        self.assertEqual(rc, 0)
        self.assertIn("Saitek Pro Flight Switch Panel [06a3:0d67] via pyusb", out)

    def test_nothing_attached(self):
        with patch('saitek_panels.device_factory.PYUSB_AVAILABLE', True), \
             patch('saitek_panels.conf.settings._backend', 'auto'), \
             patch('saitek_panels.usb_transport.find_panels', return_value=[]):
            rc, out = _run(detect)
        self.assertEqual(rc, 1)
        self.assertIn("No Saitek panels detected", out)


class TestOpenPanel(CliTestCase):

    def test_mock_panel_connected(self):
        panel = _open_panel("switch", mock=True)
        try:
            self.assertIsInstance(panel, SwitchPanel)
            self.assertIsInstance(panel.transport, MockTransport)
            self.assertIs(panel.state, PanelState.CONNECTED)
        finally:
            panel.close()

    def test_fip_gets_configured_pipeline(self):
        panel = _open_panel("fip", mock=True)
        try:
            self.assertEqual(panel.pipeline.width, 320)
        finally:
            panel.close()


class TestWriteCommands(CliTestCase):

    def _capture_panel(self, kind):
        """Patch _open_panel to hand out a mock panel we can inspect."""
        panel = _open_panel(kind, mock=True)
        patcher = patch('saitek_panels.cli._open_panel', return_value=panel)
        patcher.start()
        self.addCleanup(patcher.stop)
        return panel

    def test_radio(self):
        panel = self._capture_panel("radio")
        rc, out = _run(set_radio, "118.00", "121.50", mock=True)
        self.assertEqual(rc, 0)
        self.assertIn("COM1 118.00 / 121.50", out)
        self.assertEqual(panel.last_report[:5], b'\x01\x01\xd8\x00\x00')
        self.assertIs(panel.state, PanelState.DISCONNECTED)

    def test_multi(self):
        panel = self._capture_panel("multi")
        rc, out = _run(set_multi, "250", "3000", 0x01, mock=True)
        self.assertEqual(rc, 0)
        self.assertIn("leds=0x01", out)
        self.assertEqual(panel.last_report, bytes([
            0x02, 0x05, 0x00, 0x0F, 0x0F, 0x03, 0x00, 0x00, 0x00, 0x0F, 0x01, 0xFF]))

    def test_multi_bad_leds(self):
        rc, out = _run(set_multi, "1", "2", 0x1FF, mock=True)
        self.assertEqual(rc, 1)
        self.assertIn("Error:", out)

    def test_switch_preset(self):
        panel = self._capture_panel("switch")
        rc, out = _run(set_switch, gear="down", mock=True)
        self.assertEqual(rc, 0)
        self.assertIn("0x07", out)
        self.assertEqual(panel.last_report, b'\x07')

    def test_switch_flags(self):
        rc, out = _run(set_switch, lights=(True, False, False, False, False, True),
                       mock=True)
        self.assertEqual(rc, 0)
        self.assertIn("0x21", out)

    def test_fip_color(self):
        panel = self._capture_panel("fip")
        rc, out = _run(send_fip, color="ff0000", mock=True)
        self.assertEqual(rc, 0)
        self.assertIn("#ff0000", out)
        self.assertEqual(panel.last_report[:6], b'\xff\x00\x00\xff\x00\x00')

    def test_fip_pattern_with_resize(self):
        panel = self._capture_panel("fip")
        rc, out = _run(send_fip, pattern="bars", resize="stretch", mock=True)
        self.assertEqual(rc, 0)
        self.assertIn("pattern 'bars'", out)
        self.assertEqual(panel.pipeline.options.resize_policy.value, "stretch")

    def test_fip_bad_color(self):
        rc, out = _run(send_fip, color="orange", mock=True)
        self.assertEqual(rc, 1)
        self.assertIn("Error:", out)

    def test_fip_missing_image(self):
        rc, out = _run(send_fip, image="/nonexistent/frame.png", mock=True)
        self.assertEqual(rc, 1)
        self.assertIn("Error:", out)

    def test_not_found(self):
        with patch('saitek_panels.cli._open_panel', side_effect=NotFound("no radio")):
            rc, out = _run(set_radio, "118.00", mock=False)
        self.assertEqual(rc, 1)
        self.assertIn("Error: no radio", out)


class TestWatch(CliTestCase):

    def test_prints_events(self):
        panel = SwitchPanel(MockTransport("switch", reads=[b'\x01\x00\x00']))
        panel.connect()
        with patch('saitek_panels.cli._open_panel', return_value=panel):
            rc, out = _run(watch, "switch", count=1, mock=True)
        self.assertEqual(rc, 0)
        self.assertIn("BAT", out)
        self.assertIn("on", out)
        self.assertIs(panel.state, PanelState.DISCONNECTED)

    def test_disconnect_ends_watch(self):
        panel = SwitchPanel(MockTransport("switch"), poll=False)
        panel.connect()
        panel.close()
        with patch('saitek_panels.cli._open_panel', return_value=panel):
            rc, out = _run(watch, "switch", mock=True)
        self.assertEqual(rc, 1)
        self.assertIn("Panel disconnected.", out)

    def test_open_failure(self):
        with patch('saitek_panels.cli._open_panel', side_effect=NotFound("no fip")):
            rc, out = _run(watch, "fip")
        self.assertEqual(rc, 1)
        self.assertIn("Error: no fip", out)


class TestServe(CliTestCase):

    def tearDown(self):
        from saitek_panels.api import configure_auth, configure_manager
        from saitek_panels.services import PanelManager
        configure_auth(None)
        configure_manager(PanelManager())

    def test_runs_uvicorn_with_mock_manager(self):
        from saitek_panels import api

        captured = {}

        def fake_run(app, host, port):
            captured['manager'] = api.get_manager()
            captured['connected'] = api.get_manager().connected_kinds()
            captured['addr'] = (host, port)

        with patch('uvicorn.run', side_effect=fake_run):
            rc = serve(host="0.0.0.0", port=9100, token="t0k", mock=True)
        self.assertEqual(rc, 0)
        self.assertEqual(captured['addr'], ("0.0.0.0", 9100))
        self.assertTrue(captured['manager'].mock)
        self.assertEqual(len(captured['connected']), 4)
        # closed after uvicorn returns
        self.assertEqual(captured['manager'].connected_kinds(), [])

    def test_defaults_from_settings(self):
        run = MagicMock()
        with patch('uvicorn.run', run), \
             patch('saitek_panels.conf.settings.api_host', '127.0.0.2'), \
             patch('saitek_panels.conf.settings.api_port', 8181):
            serve(mock=True)
        self.assertEqual(run.call_args.kwargs, {'host': '127.0.0.2', 'port': 8181})


if __name__ == '__main__':
    unittest.main()
