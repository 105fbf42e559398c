"""
Panel factory: picks the transport backend and the panel class per kind.

Backends are resolved in the same order everywhere::

    "auto"   -> pyusb if installed, else hidapi, else ImportError
    "pyusb"  -> PyUsbTransport (libusb)
    "hidapi" -> HidApiTransport (OS HID driver)
    "mock"   -> MockTransport (no hardware)

Usage::

    from saitek_panels.device_factory import PanelFactory

    radio = PanelFactory.create_panel(PanelKind.RADIO, backend="mock")
    radio.on_error = lambda msg: print(f"err: {msg}")
    radio.connect()
"""

from dataclasses import dataclass, field
from typing import Dict, Optional, Type, Union

from .device_fip import FipPanel
from .device_multi import MultiPanel
from .device_panel import Panel
from .device_radio import RadioPanel
from .device_switch import SwitchPanel
from .errors import InvalidArgument
from .usb_transport import (
    HIDAPI_AVAILABLE,
    PYUSB_AVAILABLE,
    HidApiTransport,
    MockTransport,
    PanelKind,
    PanelTransport,
    PyUsbTransport,
)

BACKENDS = ("auto", "pyusb", "hidapi", "mock")

BACKEND_NAMES = {
    "pyusb": "libusb (pyusb)",
    "hidapi": "HID driver (hidapi)",
    "mock": "Mock (no hardware)",
    "none": "No USB backend",
}

PANEL_CLASSES: Dict[PanelKind, Type[Panel]] = {
    PanelKind.RADIO: RadioPanel,
    PanelKind.MULTI: MultiPanel,
    PanelKind.SWITCH: SwitchPanel,
    PanelKind.FIP: FipPanel,
}


# =========================================================================
# Backend resolution
# =========================================================================

def get_backend_availability() -> Dict[str, bool]:
    """Which USB backends are importable.  The mock is always available."""
    return {"pyusb": PYUSB_AVAILABLE, "hidapi": HIDAPI_AVAILABLE, "mock": True}


def resolve_backend(backend: str = "auto") -> str:
    """Concrete backend name for *backend*, or "none" if auto finds nothing.

    Raises:
        InvalidArgument: unknown backend name.
    """
    if backend not in BACKENDS:
        raise InvalidArgument(
            f"Unknown backend {backend!r} (choose from {', '.join(BACKENDS)})"
        )
    if backend != "auto":
        return backend
    if PYUSB_AVAILABLE:
        return "pyusb"
    if HIDAPI_AVAILABLE:
        return "hidapi"
    return "none"


def create_transport(kind: PanelKind, backend: str = "auto",
                     serial: Optional[str] = None) -> PanelTransport:
    """Create a transport for *kind* on the requested backend.

    Raises:
        ImportError: the backend (or, for "auto", any backend) is missing.
    """
    resolved = resolve_backend(backend)
    if resolved == "mock":
        return MockTransport(kind.key)
    if resolved == "pyusb":
        return PyUsbTransport(kind.vid, kind.pid, serial)
    if resolved == "hidapi":
        return HidApiTransport(kind.vid, kind.pid, serial)
    raise ImportError(
        "No USB backend available. Install pyusb or hidapi:\n"
        "  pip install pyusb   (+ apt install libusb-1.0-0)\n"
        "  pip install hidapi  (+ apt install libhidapi-dev)"
    )


# =========================================================================
# Factory
# =========================================================================

class PanelFactory:
    """Creates panel objects bound to a transport.

    Usage::

        panel = PanelFactory.create_panel("switch", backend="pyusb")
        panel.connect()
        panel.set_gear_down()
    """

    @staticmethod
    def panel_class(kind: Union[PanelKind, str]) -> Type[Panel]:
        if isinstance(kind, str):
            kind = PanelKind.from_key(kind)
        return PANEL_CLASSES[kind]

    @classmethod
    def create_panel(cls, kind: Union[PanelKind, str], backend: str = "auto",
                     transport: Optional[PanelTransport] = None,
                     serial: Optional[str] = None, **panel_kwargs) -> Panel:
        """New, unconnected panel.

        Args:
            kind: PanelKind or its key ('radio', 'multi', 'switch', 'fip').
            backend: Transport backend (ignored when *transport* is given).
            transport: Explicit transport to bind.
            serial: Pick one of several identical panels.
            **panel_kwargs: Forwarded to the panel constructor
                (``poll``, ``event_buffer``, ``timeout_is_idle``, ...).
        """
        if isinstance(kind, str):
            kind = PanelKind.from_key(kind)
        if transport is None:
            transport = create_transport(kind, backend, serial)
        return PANEL_CLASSES[kind](transport, **panel_kwargs)


# =========================================================================
# Backend info API (CLI detect / HTTP status)
# =========================================================================

@dataclass
class BackendInfo:
    """Requested vs. active transport backend.

    Usage::

        info = get_backend_info(settings.backend)
        print(f"{info.display} ({'ok' if info.has_backend else 'missing'})")
    """
    requested: str = "auto"
    active_backend: str = "none"
    backends: Dict[str, bool] = field(default_factory=dict)

    @property
    def display(self) -> str:
        return BACKEND_NAMES.get(self.active_backend, self.active_backend)

    @property
    def has_backend(self) -> bool:
        """Whether the resolved backend can actually be used."""
        return self.backends.get(self.active_backend, False)


def get_backend_info(backend: str = "auto") -> BackendInfo:
    return BackendInfo(
        requested=backend,
        active_backend=resolve_backend(backend),
        backends=get_backend_availability(),
    )
