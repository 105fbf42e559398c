"""FastAPI REST API — Driving adapter for headless/remote control.

Endpoints:
    GET  /health           — Server status
    GET  /api/status       — Per-panel connection status
    POST /api/connect      — Connect panels (all, or the listed kinds)
    POST /api/radio/set    — Radio panel frequencies
    POST /api/multi/set    — Multi panel rows and LEDs
    POST /api/switch/set   — Switch panel gear lights
    POST /api/fip/image    — Upload an image to the FIP

Security:
    - Localhost-only by default (bind 127.0.0.1)
    - Optional token auth via --token flag (X-API-Token header)
    - 10 MB upload limit, PNG/JPEG/GIF only (415 otherwise)
"""
from __future__ import annotations

import logging
from typing import List, Literal, Optional

from fastapi import FastAPI, HTTPException, Request, UploadFile
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from saitek_panels.__version__ import __version__
from saitek_panels.errors import (
    AccessDenied,
    InvalidArgument,
    NotFound,
    PanelError,
    PanelNotConnected,
    UnsupportedFormat,
)
from saitek_panels.reports import GearLights, MultiDisplay, RadioDisplay
from saitek_panels.services import FipImageOptions, FramebufferPipeline, PanelManager
from saitek_panels.usb_transport import PanelKind

log = logging.getLogger(__name__)

MAX_UPLOAD_BYTES = 10 * 1024 * 1024  # 10 MB

app = FastAPI(title="Saitek Pro Flight Panels", version=__version__)

# ── Shared service instance (replaced by the CLI serve command) ───────

_manager = PanelManager()


def configure_manager(manager: PanelManager) -> None:
    """Swap the panel manager. Called by CLI serve command and tests."""
    global _manager  # noqa: PLW0603
    _manager = manager


def get_manager() -> PanelManager:
    return _manager


# ── Token auth middleware (optional, enabled via --token) ─────────────

_api_token: str | None = None


def configure_auth(token: str | None) -> None:
    """Set the API token. Called by CLI serve command."""
    global _api_token  # noqa: PLW0603
    _api_token = token


@app.middleware("http")
async def check_token(request: Request, call_next):
    """Reject requests without valid token (if token is configured)."""
    if _api_token and request.url.path != "/health":
        if request.headers.get("X-API-Token") != _api_token:
            return JSONResponse(status_code=401, content={"detail": "Invalid token"})
    return await call_next(request)


# ── Pydantic models ──────────────────────────────────────────────────

class ConnectRequest(BaseModel):
    kinds: Optional[List[Literal["radio", "multi", "switch", "fip"]]] = None


class RadioRequest(BaseModel):
    com1_active: str = ""
    com1_standby: str = ""
    com2_active: str = ""
    com2_standby: str = ""


class MultiRequest(BaseModel):
    top_row: str = ""
    bottom_row: str = ""
    leds: int = Field(0, ge=0, le=0xFF)


class SwitchRequest(BaseModel):
    gear: Optional[Literal["up", "down", "transition", "off"]] = None
    green_n: bool = False
    green_l: bool = False
    green_r: bool = False
    red_n: bool = False
    red_l: bool = False
    red_r: bool = False


class PanelStatusResponse(BaseModel):
    kind: str
    name: str
    connected: bool
    state: str
    error: Optional[str] = None


GEAR_PRESETS = {
    "down": GearLights.all_green,
    "up": GearLights.all_red,
    "transition": GearLights.all_yellow,
    "off": GearLights.all_off,
}


# ── Helpers ───────────────────────────────────────────────────────────

_STATUS_CODES = (
    (PanelNotConnected, 409),
    (NotFound, 404),
    (AccessDenied, 403),
    (InvalidArgument, 400),
    (UnsupportedFormat, 415),
)


def _http_error(err: PanelError) -> HTTPException:
    """Map a panel error to an HTTP status (502 for transport failures)."""
    for cls, code in _STATUS_CODES:
        if isinstance(err, cls):
            return HTTPException(status_code=code, detail=str(err))
    return HTTPException(status_code=502, detail=str(err))


def _status_list() -> list[dict]:
    return [
        PanelStatusResponse(**s.to_dict()).model_dump()
        for s in _manager.status().values()
    ]


def _report_hex(kind: PanelKind) -> str:
    panel = _manager.panel(kind)
    report = panel.last_report if panel is not None else None
    return report.hex() if report else ""


# ── Endpoints ────────────────────────────────────────────────────────

@app.get("/health")
def health() -> dict:
    """Health check (always accessible, no auth required)."""
    return {"status": "ok", "version": __version__}


@app.get("/api/status")
def status() -> dict:
    """Connection status of every panel kind."""
    return {"backend": _manager.backend, "panels": _status_list()}


@app.post("/api/connect")
def connect(req: ConnectRequest | None = None) -> dict:
    """Connect panels; failures are reported per panel, not raised."""
    kinds = req.kinds if req is not None else None
    _manager.connect_all(kinds)
    return {"backend": _manager.backend, "panels": _status_list()}


@app.post("/api/radio/set")
def set_radio(req: RadioRequest) -> dict:
    display = RadioDisplay(req.com1_active, req.com1_standby,
                           req.com2_active, req.com2_standby)
    try:
        _manager.set_radio(display)
    except PanelError as e:
        raise _http_error(e) from e
    return {"sent": True, "report": _report_hex(PanelKind.RADIO)}


@app.post("/api/multi/set")
def set_multi(req: MultiRequest) -> dict:
    try:
        _manager.set_multi(MultiDisplay(req.top_row, req.bottom_row, req.leds))
    except PanelError as e:
        raise _http_error(e) from e
    return {"sent": True, "report": _report_hex(PanelKind.MULTI)}


@app.post("/api/switch/set")
def set_switch(req: SwitchRequest) -> dict:
    if req.gear is not None:
        lights = GEAR_PRESETS[req.gear]()
    else:
        lights = GearLights(req.green_n, req.green_l, req.green_r,
                            req.red_n, req.red_l, req.red_r)
    try:
        _manager.set_gear(lights)
    except PanelError as e:
        raise _http_error(e) from e
    return {"sent": True, "report": _report_hex(PanelKind.SWITCH)}


@app.post("/api/fip/image")
async def send_fip_image(image: UploadFile, resize: Optional[str] = None) -> dict:
    """Send an uploaded image to the FIP.

    Accepts image file upload. Validates size and format before processing.
    """
    data = await image.read()
    if len(data) > MAX_UPLOAD_BYTES:
        raise HTTPException(status_code=413, detail="Image exceeds 10 MB limit")

    try:
        img = FramebufferPipeline().decode(data)
    except UnsupportedFormat as e:
        log.warning("Rejected FIP upload %r: %s", image.filename, e)
        raise _http_error(e) from e

    try:
        options = None
        if resize is not None:
            base = _manager.fip_options
            options = FipImageOptions(resize, base.background, base.jpeg_quality)
        _manager.send_fip_image(img, options)
    except PanelError as e:
        raise _http_error(e) from e

    return {"sent": True, "size": [img.width, img.height]}
