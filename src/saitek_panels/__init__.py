"""
saitek-panels - Saitek Pro Flight panel driver

Drives the Radio, Multi, Switch and Flight Instrument panels over USB:
7-segment displays, annunciator and gear LEDs, the FIP's 320x240 screen,
and input events from every switch, button and encoder.

Usage:
    # As a library
    from saitek_panels import PanelManager, RadioDisplay
    with PanelManager(mock=True) as panels:
        panels.connect("radio")
        panels.set_radio(RadioDisplay("118.00", "121.50", "", ""))

    # Command line
    saitek-panels detect
    saitek-panels radio --com1a 118.00
    saitek-panels watch switch
"""

from saitek_panels.__version__ import __version__

# Core exports
from saitek_panels.device_factory import PanelFactory
from saitek_panels.device_fip import FipPanel
from saitek_panels.device_multi import MultiPanel
from saitek_panels.device_panel import Panel, PanelState
from saitek_panels.device_radio import RadioPanel
from saitek_panels.device_switch import SwitchPanel
from saitek_panels.errors import PanelError
from saitek_panels.input_parser import InputEvent, InputSnapshot
from saitek_panels.reports import GearLights, MultiDisplay, MultiLed, RadioDisplay
from saitek_panels.services import (
    FipImageOptions,
    FramebufferPipeline,
    PanelManager,
    ResizePolicy,
)
from saitek_panels.usb_transport import MockTransport, PanelKind, find_panels

__all__ = [
    '__version__',
    'FipImageOptions',
    'FipPanel',
    'FramebufferPipeline',
    'GearLights',
    'InputEvent',
    'InputSnapshot',
    'MockTransport',
    'MultiDisplay',
    'MultiLed',
    'MultiPanel',
    'Panel',
    'PanelError',
    'PanelFactory',
    'PanelKind',
    'PanelManager',
    'PanelState',
    'RadioDisplay',
    'RadioPanel',
    'ResizePolicy',
    'SwitchPanel',
    'find_panels',
]
