"""Panel error taxonomy.

Every public panel operation either succeeds or raises one of these.
Front-ends render them with ``str(err)``.

Classification:
 - NotFound: no device with the expected VID/PID is attached
 - AccessDenied: the OS refused to open the device (permissions / busy)
 - TransportIo: a control write or interrupt read failed
 - TransportTimeout: a transfer exceeded its per-call timeout
 - ProtocolShape: an input report was shorter than the panel minimum
 - UnsupportedFormat: the FIP pipeline could not decode a raster
 - InvalidArgument: a caller passed a structurally impossible value
 - PanelNotConnected: an operation needs a connected panel
"""
from __future__ import annotations

import errno


class PanelError(Exception):
    """Base panel error (do not raise directly)."""


class NotFound(PanelError):
    """No attached device matches the expected (vendor, product) pair."""


class AccessDenied(PanelError):
    """Host OS refused to open the device."""


class TransportIo(PanelError):
    """USB transfer failed at the transport."""


class TransportTimeout(TransportIo):
    """USB transfer exceeded its timeout."""


class ProtocolShape(PanelError):
    """Input report shorter than the per-panel minimum."""


class UnsupportedFormat(PanelError):
    """Raster or file format the framebuffer pipeline cannot decode."""


class InvalidArgument(PanelError, ValueError):
    """Structurally impossible argument."""


class PanelNotConnected(PanelError):
    """Operation requires a connected panel."""


_ACCESS_ERRNOS = (errno.EACCES, errno.EPERM, errno.EBUSY)
_MISSING_ERRNOS = (errno.ENODEV, errno.ENOENT, errno.ENXIO)
_TIMEOUT_ERRNOS = (errno.ETIMEDOUT,)

_TIMEOUT_TOKENS = ("timeout", "timed out")
_ACCESS_TOKENS = ("access denied", "permission", "busy", "insufficient")
_MISSING_TOKENS = ("no such device", "not found", "unable to open")


def classify_usb_exception(exc: BaseException) -> type[PanelError]:
    """Best-effort mapping of a raw pyusb / hidapi / OS exception.

    Heuristic order:
      1. Already part of the taxonomy -> its own type
      2. errno (pyusb ``USBError.errno`` / ``OSError.errno``)
      3. Message hints (hidapi only raises ``OSError``/``IOError`` strings)
      4. Fallback -> TransportIo
    """
    if isinstance(exc, PanelError):
        return type(exc)
    code = getattr(exc, "errno", None)
    if code in _TIMEOUT_ERRNOS:
        return TransportTimeout
    if code in _ACCESS_ERRNOS:
        return AccessDenied
    if code in _MISSING_ERRNOS:
        return NotFound
    msg = str(exc).lower()
    if any(t in msg for t in _TIMEOUT_TOKENS):
        return TransportTimeout
    if any(t in msg for t in _ACCESS_TOKENS):
        return AccessDenied
    if any(t in msg for t in _MISSING_TOKENS):
        return NotFound
    return TransportIo


def wrap_usb_exception(exc: BaseException, context: str) -> PanelError:
    """Build a taxonomy error from *exc*, prefixed with *context*."""
    if isinstance(exc, PanelError):
        return exc
    cls = classify_usb_exception(exc)
    return cls(f"{context}: {exc}")


__all__ = [
    "PanelError",
    "NotFound",
    "AccessDenied",
    "TransportIo",
    "TransportTimeout",
    "ProtocolShape",
    "UnsupportedFormat",
    "InvalidArgument",
    "PanelNotConnected",
    "classify_usb_exception",
    "wrap_usb_exception",
]
