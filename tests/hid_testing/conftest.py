"""Shared fixtures for transport and panel tests (no USB hardware)."""
import pytest

from saitek_panels.device_factory import PANEL_CLASSES
from saitek_panels.usb_transport import MockTransport, PanelKind


@pytest.fixture
def make_panel():
    """Build an unpolled panel on a fresh MockTransport.

    Tests drive ``poll_once()`` themselves; panels are closed on teardown.
    """
    panels = []

    def _make(kind: PanelKind, connect: bool = True, **kwargs):
        kwargs.setdefault('poll', False)
        transport = MockTransport(kind.key)
        panel = PANEL_CLASSES[kind](transport, **kwargs)
        if connect:
            panel.connect()
        panels.append(panel)
        return panel, transport

    yield _make
    for panel in panels:
        panel.close()
