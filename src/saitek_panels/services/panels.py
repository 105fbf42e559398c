"""Panel lifecycle service: connect, status, typed pass-throughs, event relay.

Pure Python, no HTTP/CLI dependencies.  Shared by cli.py and api.py.
"""
from __future__ import annotations

import logging
import threading
import weakref
from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterable, List, Optional, Union

from ..device_factory import PanelFactory
from ..device_panel import Panel, PanelState
from ..errors import NotFound, PanelError, PanelNotConnected
from ..input_parser import InputEvent
from ..reports import GearLights, MultiDisplay, RadioDisplay
from ..usb_transport import MockTransport, PanelKind
from .image import FipImageOptions, FramebufferPipeline

log = logging.getLogger(__name__)

EventCallback = Callable[[PanelKind, InputEvent], None]


@dataclass
class PanelStatus:
    """Outcome of the last connect attempt for one kind."""
    kind: PanelKind
    connected: bool = False
    error: Optional[str] = None
    state: PanelState = PanelState.DISCONNECTED

    def to_dict(self) -> Dict[str, Any]:
        return {
            'kind': self.kind.key,
            'name': self.kind.display_name,
            'connected': self.connected,
            'state': self.state.value,
            'error': self.error,
        }


class PanelManager:
    """Holds at most one panel per kind.

    The registry is weak: a panel handed in with :meth:`register` stays
    owned by the caller and drops out once the caller lets it go.  Panels
    the manager creates itself are pinned until :meth:`close` or
    :meth:`close_all`.

    Args:
        backend: Transport backend for panels created here.
        mock: Shortcut for ``backend="mock"``.
        fip_options: Rendering options for the FIP pipeline.
        panel_kwargs: Forwarded to every panel constructor.
    """

    def __init__(self, backend: str = "auto", mock: bool = False,
                 fip_options: Optional[FipImageOptions] = None,
                 **panel_kwargs: Any) -> None:
        self.backend = "mock" if mock else backend
        self.fip_options = fip_options or FipImageOptions()
        self._panel_kwargs = panel_kwargs
        self._registry: "weakref.WeakValueDictionary[PanelKind, Panel]" = (
            weakref.WeakValueDictionary())
        self._owned: Dict[PanelKind, Panel] = {}
        self._status: Dict[PanelKind, PanelStatus] = {
            kind: PanelStatus(kind) for kind in PanelKind
        }
        self._subscribers: List[EventCallback] = []
        self._lock = threading.RLock()

    @property
    def mock(self) -> bool:
        return self.backend == "mock"

    # ── Registry ─────────────────────────────────────────────────────

    def _create(self, kind: PanelKind) -> Panel:
        kwargs = dict(self._panel_kwargs)
        if kind is PanelKind.FIP:
            kwargs['pipeline'] = FramebufferPipeline(self.fip_options)
        transport = MockTransport(kind.key) if self.mock else None
        return PanelFactory.create_panel(kind, backend=self.backend,
                                         transport=transport, **kwargs)

    def _wire(self, panel: Panel) -> None:
        kind = panel.kind
        panel.on_event = lambda event: self._relay(kind, event)
        panel.on_state_changed = lambda state: self._state_changed(kind, state)
        panel.on_error = lambda message: self._error(kind, message)

    def register(self, panel: Panel) -> None:
        """Track a caller-owned panel (held weakly)."""
        with self._lock:
            self._registry[panel.kind] = panel
            self._wire(panel)
            self._status[panel.kind] = PanelStatus(
                panel.kind, panel.is_connected, None, panel.state)

    def panel(self, kind: PanelKind) -> Optional[Panel]:
        """Registered panel for *kind*, connected or not."""
        return self._registry.get(kind)

    def get(self, kind: Union[PanelKind, str]) -> Panel:
        """Connected panel for *kind*.

        Raises:
            PanelNotConnected
        """
        kind = _as_kind(kind)
        panel = self._registry.get(kind)
        if panel is None or not panel.is_connected:
            raise PanelNotConnected(f"{kind.display_name} is not connected")
        return panel

    # ── Lifecycle ────────────────────────────────────────────────────

    def connect(self, kind: Union[PanelKind, str]) -> Panel:
        """Connect one panel (creating it if needed).

        Raises:
            NotFound, AccessDenied
        """
        kind = _as_kind(kind)
        with self._lock:
            panel = self._registry.get(kind)
            if panel is None:
                try:
                    panel = self._create(kind)
                except ImportError as e:
                    self._status[kind] = PanelStatus(kind, False, str(e))
                    raise NotFound(f"{kind.display_name}: {e}") from e
                self._owned[kind] = panel
                self._registry[kind] = panel
                self._wire(panel)
        # Outside self._lock: the panel's state callbacks take it
        try:
            panel.connect()
        except PanelError as e:
            with self._lock:
                self._status[kind] = PanelStatus(kind, False, str(e), panel.state)
            raise
        with self._lock:
            self._status[kind] = PanelStatus(kind, panel.is_connected, None, panel.state)
        log.info("PanelManager: %s connected", kind.display_name)
        return panel

    def connect_all(self, kinds: Optional[Iterable[Union[PanelKind, str]]] = None
                    ) -> Dict[PanelKind, PanelStatus]:
        """Try every kind in turn.  Never raises; see :meth:`status`."""
        for kind in (kinds if kinds is not None else PanelKind):
            kind = _as_kind(kind)
            try:
                self.connect(kind)
            except PanelError as e:
                log.info("PanelManager: %s unavailable: %s", kind.display_name, e)
        return self.status()

    def close(self, kind: Union[PanelKind, str]) -> None:
        kind = _as_kind(kind)
        with self._lock:
            panel = self._registry.get(kind)
            self._owned.pop(kind, None)
        # Joins the poller, whose callbacks take self._lock
        if panel is not None:
            panel.close()
        with self._lock:
            self._status[kind] = PanelStatus(kind)

    def close_all(self) -> None:
        for kind in PanelKind:
            self.close(kind)
        log.debug("PanelManager: all panels closed")

    def status(self) -> Dict[PanelKind, PanelStatus]:
        with self._lock:
            return dict(self._status)

    def connected_kinds(self) -> List[PanelKind]:
        return [k for k, s in self.status().items() if s.connected]

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.close_all()

    # ── Pass-throughs ────────────────────────────────────────────────

    def set_radio(self, display: RadioDisplay) -> None:
        self.get(PanelKind.RADIO).set_display(display)

    def set_multi(self, display: MultiDisplay) -> None:
        self.get(PanelKind.MULTI).set_display(display)

    def set_multi_leds(self, leds: int) -> None:
        self.get(PanelKind.MULTI).set_leds(leds)

    def set_gear(self, lights: Union[GearLights, int]) -> None:
        self.get(PanelKind.SWITCH).set_leds(lights)

    def send_fip_image(self, source: Any,
                       options: Optional[FipImageOptions] = None) -> None:
        self.get(PanelKind.FIP).send_image(source, options)

    def send_fip_frame(self, frame: bytes) -> None:
        self.get(PanelKind.FIP).send_frame(frame)

    # ── Observers ────────────────────────────────────────────────────

    def subscribe(self, callback: EventCallback) -> Callable[[], None]:
        """Receive ``(kind, InputEvent)`` from every panel.

        Returns a callable that unsubscribes.
        """
        with self._lock:
            self._subscribers.append(callback)

        def unsubscribe() -> None:
            with self._lock:
                if callback in self._subscribers:
                    self._subscribers.remove(callback)
        return unsubscribe

    def _relay(self, kind: PanelKind, event: InputEvent) -> None:
        with self._lock:
            subscribers = list(self._subscribers)
        for callback in subscribers:
            try:
                callback(kind, event)
            except Exception:
                log.exception("PanelManager: subscriber failed for %s", kind.key)

    def _state_changed(self, kind: PanelKind, state: PanelState) -> None:
        with self._lock:
            current = self._status.get(kind) or PanelStatus(kind)
            connected = state in (PanelState.CONNECTED, PanelState.POLLING)
            self._status[kind] = PanelStatus(
                kind, connected, None if connected else current.error, state)

    def _error(self, kind: PanelKind, message: str) -> None:
        log.warning("PanelManager: %s", message)
        with self._lock:
            current = self._status.get(kind) or PanelStatus(kind)
            self._status[kind] = PanelStatus(kind, current.connected, message,
                                             current.state)


def _as_kind(kind: Union[PanelKind, str]) -> PanelKind:
    return kind if isinstance(kind, PanelKind) else PanelKind.from_key(kind)
