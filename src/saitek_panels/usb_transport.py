#!/usr/bin/env python3
"""
USB transport layer for the Saitek Pro Flight panel family.

All four panels are vendor-specific HID devices under Saitek's VID 0x06A3:

    Radio   0x06A3:0x0D05   3-byte input report on EP 0x81
    Multi   0x06A3:0x0D06   3-byte input report on EP 0x81
    Switch  0x06A3:0x0D67   3-byte input report on EP 0x81
    FIP     0x06A3:0xA2AE   2-byte button report, endpoint discovered at open

The ``PanelTransport`` ABC is the only seam between the protocol core and
the OS USB stack.  It carries exactly two I/O operations:

  • ``control_write()`` — SET_REPORT style control transfer (displays, LEDs)
  • ``interrupt_read()`` — interrupt IN read (switches, encoders, buttons)

Backings:
  • ``PyUsbTransport`` — production, libusb via pyusb.
  • ``HidApiTransport`` — alternative via the OS HID driver (hidapi).
  • ``MockTransport`` — headless: logs writes, synthesizes zero reads.

Linux dependencies (install one):
  • pyusb:  ``pip install pyusb``  (needs libusb1 — ``apt install libusb-1.0-0``)
  • hidapi: ``pip install hidapi`` (needs libhidapi — ``apt install libhidapi-dev``)
"""

from __future__ import annotations

import logging
import threading
from abc import ABC, abstractmethod
from collections import deque
from enum import Enum
from typing import Deque, Iterable, List, Optional, Tuple

from .errors import (
    InvalidArgument,
    NotFound,
    TransportIo,
    TransportTimeout,
    wrap_usb_exception,
)

log = logging.getLogger(__name__)

# Optional USB backends: graceful import
try:
    import usb.core
    import usb.util
    PYUSB_AVAILABLE = True
except ImportError:
    PYUSB_AVAILABLE = False

try:
    import hid as hidapi
    HIDAPI_AVAILABLE = True
except ImportError:
    HIDAPI_AVAILABLE = False


# =========================================================================
# Constants
# =========================================================================

SAITEK_VID = 0x06A3

RADIO_PID = 0x0D05
MULTI_PID = 0x0D06
SWITCH_PID = 0x0D67
FIP_PID = 0xA2AE

# Input endpoint (Radio/Multi/Switch): EP 1 IN
EP_IN_01 = 0x81
ENDPOINT_DIR_IN = 0x80

# Per-call I/O timeout (ms)
DEFAULT_TIMEOUT_MS = 100

USB_CONFIGURATION = 1
USB_INTERFACE = 0

# bmAttributes transfer type for interrupt endpoints
USB_ENDPOINT_XFER_INT = 0x03

# HID report types carried in the high byte of wValue
HID_REPORT_TYPE_OUTPUT = 0x02
HID_REPORT_TYPE_FEATURE = 0x03


class PanelKind(Enum):
    """The four panel variants and their USB identity."""
    RADIO = ("radio", RADIO_PID, "Saitek Pro Flight Radio Panel")
    MULTI = ("multi", MULTI_PID, "Saitek Pro Flight Multi Panel")
    SWITCH = ("switch", SWITCH_PID, "Saitek Pro Flight Switch Panel")
    FIP = ("fip", FIP_PID, "Saitek Pro Flight Instrument Panel")

    def __init__(self, key: str, pid: int, display_name: str):
        self.key = key
        self.pid = pid
        self.display_name = display_name

    @property
    def vid(self) -> int:
        return SAITEK_VID

    @classmethod
    def from_key(cls, key: str) -> 'PanelKind':
        """Look up a kind by its short name ('radio', 'multi', ...)."""
        for kind in cls:
            if kind.key == key.lower():
                return kind
        raise InvalidArgument(f"Unknown panel kind: {key!r}")

    @classmethod
    def from_pid(cls, pid: int) -> Optional['PanelKind']:
        for kind in cls:
            if kind.pid == pid:
                return kind
        return None


def in_endpoint_address(endpoint: int) -> int:
    """Endpoint number (1) or address (0x81) -> IN address (0x81)."""
    return endpoint | ENDPOINT_DIR_IN


# =========================================================================
# Abstract USB transport
# =========================================================================

class PanelTransport(ABC):
    """Two-operation USB transport — mockable for testing."""

    @abstractmethod
    def open(self) -> None:
        """Open the device and claim its interface.

        Raises:
            NotFound: No device with this VID/PID.
            AccessDenied: OS refused (permissions / exclusive use).
        """

    @abstractmethod
    def close(self) -> None:
        """Release the interface.  Safe to call twice."""

    @abstractmethod
    def control_write(self, bm_request_type: int, b_request: int,
                      w_value: int, w_index: int, payload: bytes,
                      timeout: int = DEFAULT_TIMEOUT_MS) -> int:
        """Control transfer host->device.  Returns bytes transferred.

        Raises:
            TransportIo: The transfer failed.
        """

    @abstractmethod
    def interrupt_read(self, endpoint: int, length: int,
                       timeout: int = DEFAULT_TIMEOUT_MS) -> bytes:
        """Interrupt IN read.  May return fewer than *length* bytes.

        Raises:
            TransportIo: The read failed (TransportTimeout on timeout).
        """

    @property
    @abstractmethod
    def is_open(self) -> bool:
        """Whether the device is currently open."""

    def find_input_endpoint(self, report_length: int) -> int:
        """Pick the interrupt IN endpoint carrying *report_length*-byte reports.

        Backends that cannot enumerate endpoints return EP 0x81.
        """
        return EP_IN_01

    def __enter__(self):
        self.open()
        return self

    def __exit__(self, *exc):
        self.close()


# =========================================================================
# Real transport: PyUSB  (libusb backend)
# =========================================================================

class PyUsbTransport(PanelTransport):
    """Real USB transport using pyusb (libusb backend).

    Sequence:
    1. Find device by VID/PID
    2. Detach kernel HID driver (Linux)
    3. SetConfiguration(1)
    4. ClaimInterface(0)
    5. ctrl_transfer() for SET_REPORT, read() for interrupt IN

    Requires: ``pip install pyusb`` + ``apt install libusb-1.0-0``
    """

    def __init__(self, vid: int, pid: int, serial: Optional[str] = None):
        if not PYUSB_AVAILABLE:
            raise ImportError(
                "pyusb is not installed. Install with: pip install pyusb\n"
                "Also need libusb: apt install libusb-1.0-0 (Debian/Ubuntu) "
                "or dnf install libusb1 (Fedora)"
            )
        self._vid = vid
        self._pid = pid
        self._serial = serial
        self._device = None
        self._is_open = False
        self._detached = False

    def open(self) -> None:
        kwargs = {'idVendor': self._vid, 'idProduct': self._pid}
        if self._serial:
            kwargs['serial_number'] = self._serial

        try:
            self._device = usb.core.find(**kwargs)
        except Exception as e:
            raise wrap_usb_exception(e, "USB enumeration failed") from e
        if self._device is None:
            raise NotFound(
                f"USB device not found: VID={self._vid:#06x} PID={self._pid:#06x}"
            )

        try:
            # The kernel usbhid driver grabs these panels on Linux
            try:
                if self._device.is_kernel_driver_active(USB_INTERFACE):
                    self._device.detach_kernel_driver(USB_INTERFACE)
                    self._detached = True
            except NotImplementedError:
                pass  # not supported on macOS/Windows backends
            self._device.set_configuration(USB_CONFIGURATION)
            usb.util.claim_interface(self._device, USB_INTERFACE)
        except Exception as e:
            device, self._device = self._device, None
            usb.util.dispose_resources(device)
            raise wrap_usb_exception(
                e, f"Cannot open {self._vid:04x}:{self._pid:04x}"
            ) from e
        self._is_open = True
        log.debug("PyUsbTransport: opened %04x:%04x", self._vid, self._pid)

    def close(self) -> None:
        if self._device is not None:
            try:
                usb.util.release_interface(self._device, USB_INTERFACE)
            except Exception:
                log.debug("release_interface failed", exc_info=True)
            if self._detached:
                try:
                    self._device.attach_kernel_driver(USB_INTERFACE)
                except Exception:
                    log.debug("attach_kernel_driver failed", exc_info=True)
                self._detached = False
            usb.util.dispose_resources(self._device)
            self._device = None
        self._is_open = False

    def control_write(self, bm_request_type: int, b_request: int,
                      w_value: int, w_index: int, payload: bytes,
                      timeout: int = DEFAULT_TIMEOUT_MS) -> int:
        if not self._is_open or self._device is None:
            raise TransportIo("Transport not open")
        try:
            return self._device.ctrl_transfer(
                bm_request_type, b_request, w_value, w_index, payload, timeout,
            )
        except Exception as e:
            raise wrap_usb_exception(e, "Control transfer failed") from e

    def interrupt_read(self, endpoint: int, length: int,
                       timeout: int = DEFAULT_TIMEOUT_MS) -> bytes:
        if not self._is_open or self._device is None:
            raise TransportIo("Transport not open")
        try:
            data = self._device.read(in_endpoint_address(endpoint), length,
                                     timeout=timeout)
        except Exception as e:
            raise wrap_usb_exception(e, "Interrupt read failed") from e
        return bytes(data)

    def find_input_endpoint(self, report_length: int) -> int:
        """First interrupt IN endpoint sized for *report_length*.

        Falls back to the first interrupt IN endpoint of any size, then to
        EP 0x81.
        """
        if self._device is None:
            return EP_IN_01
        candidates = []
        try:
            cfg = self._device.get_active_configuration()
            for intf in cfg:
                for ep in intf:
                    is_in = (usb.util.endpoint_direction(ep.bEndpointAddress)
                             == usb.util.ENDPOINT_IN)
                    is_int = (usb.util.endpoint_type(ep.bmAttributes)
                              == usb.util.ENDPOINT_TYPE_INTR)
                    if is_in and is_int:
                        candidates.append((ep.bEndpointAddress, ep.wMaxPacketSize))
        except Exception:
            log.debug("Endpoint enumeration failed", exc_info=True)
            return EP_IN_01
        return choose_input_endpoint(candidates, report_length)

    @property
    def is_open(self) -> bool:
        return self._is_open


def choose_input_endpoint(candidates: Iterable[Tuple[int, int]],
                          report_length: int) -> int:
    """Select from ``(address, max_packet_size)`` interrupt IN endpoints."""
    candidates = list(candidates)
    for address, size in candidates:
        if size == report_length:
            return address
    if candidates:
        return candidates[0][0]
    return EP_IN_01


# =========================================================================
# Real transport: HIDAPI
# =========================================================================

class HidApiTransport(PanelTransport):
    """USB transport through the OS HID driver (cython-hidapi).

    HIDAPI uses the kernel's hidraw node, which with the right udev rule
    needs neither root nor a detached driver.  SET_REPORT transfers map to
    ``send_feature_report`` (report type 3) or ``write`` (type 2), each
    prefixed with the report id from the low byte of wValue.

    Note: the endpoint argument of ``interrupt_read`` is ignored — HIDAPI
    routes to the device's single IN endpoint.

    Requires: ``pip install hidapi`` + ``apt install libhidapi-dev``
    """

    def __init__(self, vid: int, pid: int, serial: Optional[str] = None):
        if not HIDAPI_AVAILABLE:
            raise ImportError(
                "hidapi is not installed. Install with: pip install hidapi\n"
                "Also need libhidapi: apt install libhidapi-dev (Debian/Ubuntu) "
                "or dnf install hidapi-devel (Fedora)"
            )
        self._vid = vid
        self._pid = pid
        self._serial = serial
        self._device = None
        self._is_open = False

    def open(self) -> None:
        if not hidapi.enumerate(self._vid, self._pid):
            raise NotFound(
                f"HID device not found: VID={self._vid:#06x} PID={self._pid:#06x}"
            )
        device = hidapi.device()
        try:
            device.open(self._vid, self._pid, self._serial)
        except Exception as e:
            raise wrap_usb_exception(
                e, f"Cannot open {self._vid:04x}:{self._pid:04x}"
            ) from e
        device.set_nonblocking(0)
        self._device = device
        self._is_open = True

    def close(self) -> None:
        if self._device is not None:
            try:
                self._device.close()
            except Exception:
                log.debug("hidapi close failed", exc_info=True)
            self._device = None
        self._is_open = False

    def control_write(self, bm_request_type: int, b_request: int,
                      w_value: int, w_index: int, payload: bytes,
                      timeout: int = DEFAULT_TIMEOUT_MS) -> int:
        if not self._is_open or self._device is None:
            raise TransportIo("Transport not open")
        report_type = (w_value >> 8) & 0xFF
        report = bytes([w_value & 0xFF]) + bytes(payload)
        try:
            if report_type == HID_REPORT_TYPE_FEATURE:
                sent = self._device.send_feature_report(report)
            else:
                sent = self._device.write(report)
        except Exception as e:
            raise wrap_usb_exception(e, "HID report write failed") from e
        if sent < 0:
            raise TransportIo(f"HID report write failed: {self._device.error()}")
        # hidapi counts the report id byte
        return max(0, sent - 1)

    def interrupt_read(self, endpoint: int, length: int,
                       timeout: int = DEFAULT_TIMEOUT_MS) -> bytes:
        if not self._is_open or self._device is None:
            raise TransportIo("Transport not open")
        try:
            data = self._device.read(length, timeout)
        except Exception as e:
            raise wrap_usb_exception(e, "HID read failed") from e
        if not data:
            raise TransportTimeout(f"HID read timed out after {timeout} ms")
        return bytes(data)

    @property
    def is_open(self) -> bool:
        return self._is_open


# =========================================================================
# Mock transport (headless development)
# =========================================================================

class MockTransport(PanelTransport):
    """Records writes and synthesizes zero-byte input reports.

    Every write succeeds.  ``interrupt_read`` returns queued reports (see
    :meth:`feed`) and zeros once the queue is empty.  Tests may set
    ``fail_reads`` to an exception to inject read errors.
    """

    def __init__(self, name: str = "mock", reads: Optional[Iterable[bytes]] = None):
        self.name = name
        self.writes: List[Tuple[Tuple[int, int, int, int], bytes]] = []
        self._reads: Deque[bytes] = deque(reads or ())
        self._lock = threading.Lock()
        self._is_open = False
        self.fail_reads: Optional[Exception] = None
        self.read_count = 0

    def open(self) -> None:
        self._is_open = True
        log.info("MockTransport[%s]: opened (no hardware)", self.name)

    def close(self) -> None:
        self._is_open = False

    def feed(self, *reports: bytes) -> None:
        """Queue input reports for subsequent reads."""
        with self._lock:
            self._reads.extend(bytes(r) for r in reports)

    def control_write(self, bm_request_type: int, b_request: int,
                      w_value: int, w_index: int, payload: bytes,
                      timeout: int = DEFAULT_TIMEOUT_MS) -> int:
        payload = bytes(payload)
        with self._lock:
            self.writes.append(((bm_request_type, b_request, w_value, w_index), payload))
        if len(payload) <= 32:
            log.info("MockTransport[%s]: control %02x/%02x/%04x/%d %s",
                     self.name, bm_request_type, b_request, w_value, w_index,
                     payload.hex())
        else:
            log.info("MockTransport[%s]: control %02x/%02x/%04x/%d (%d bytes)",
                     self.name, bm_request_type, b_request, w_value, w_index,
                     len(payload))
        return len(payload)

    def interrupt_read(self, endpoint: int, length: int,
                       timeout: int = DEFAULT_TIMEOUT_MS) -> bytes:
        with self._lock:
            self.read_count += 1
            if self.fail_reads is not None:
                raise self.fail_reads
            if self._reads:
                return self._reads.popleft()[:length]
        return bytes(length)

    @property
    def last_payload(self) -> Optional[bytes]:
        with self._lock:
            return self.writes[-1][1] if self.writes else None

    @property
    def is_open(self) -> bool:
        return self._is_open


# =========================================================================
# Device discovery helper
# =========================================================================

def find_panels() -> list:
    """Scan for attached Saitek panels.

    Tries pyusb first, falls back to hidapi enumeration.

    Returns:
        List of dicts with keys: kind, vid, pid, serial, backend
    """
    devices = []

    if PYUSB_AVAILABLE:
        for kind in PanelKind:
            try:
                found = list(usb.core.find(find_all=True, idVendor=kind.vid,
                                           idProduct=kind.pid))
            except Exception as e:
                log.debug("pyusb scan failed for %s: %s", kind.key, e)
                continue
            for dev in found:
                try:
                    serial = (usb.util.get_string(dev, dev.iSerialNumber)
                              if dev.iSerialNumber else "")
                except Exception:
                    serial = ""  # string descriptors need device access
                devices.append({
                    'kind': kind,
                    'vid': kind.vid,
                    'pid': kind.pid,
                    'serial': serial or "",
                    'backend': 'pyusb',
                })
    elif HIDAPI_AVAILABLE:
        for kind in PanelKind:
            for info in hidapi.enumerate(kind.vid, kind.pid):
                devices.append({
                    'kind': kind,
                    'vid': kind.vid,
                    'pid': kind.pid,
                    'serial': info.get('serial_number', '') or "",
                    'backend': 'hidapi',
                })

    return devices
