"""
Panel state machine shared by the four panel variants.

States::

    DISCONNECTED --connect()--> CONNECTING --open ok--> CONNECTED --poller--> POLLING
         ^                           |                                          |
         |<-------- open failed -----+                                          |
         |<------------------- close() via CLOSING -----------------------------+
         |<------------------- 3 consecutive read failures ---------------------+

One daemon thread per connected panel polls its input report at a fixed
cadence, diffs it against the cached snapshot and pushes edges into a
bounded, drop-oldest event stream.  Writes from the calling thread and
reads from the poller are serialised by one per-panel lock.

Observer callbacks (all optional)::

    panel.on_event = lambda ev: ...          # InputEvent
    panel.on_state_changed = lambda st: ...  # PanelState
    panel.on_error = lambda msg: ...         # str

State and connect-error callbacks run after the state lock is released, so
they may call back into the panel or take their own locks.
"""
from __future__ import annotations

import logging
import threading
import time
from abc import ABC
from collections import deque
from enum import Enum
from typing import Callable, Deque, Iterator, List, Optional

from .errors import (
    NotFound,
    PanelError,
    PanelNotConnected,
    TransportIo,
    TransportTimeout,
    wrap_usb_exception,
)
from .input_parser import InputEvent, InputSnapshot, InputTracker
from .reports import SET_REPORT
from .usb_transport import DEFAULT_TIMEOUT_MS, EP_IN_01, PanelKind, PanelTransport

log = logging.getLogger(__name__)

DEFAULT_EVENT_BUFFER = 10
MAX_CONSECUTIVE_READ_FAILURES = 3


class PanelState(Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    POLLING = "polling"
    CLOSING = "closing"


_LIVE_STATES = (PanelState.CONNECTED, PanelState.POLLING)


# =========================================================================
# Event stream
# =========================================================================

class EventStream:
    """Bounded single-consumer queue of InputEvents.

    On overflow the oldest event is dropped so the poller never blocks.
    """

    def __init__(self, maxlen: int = DEFAULT_EVENT_BUFFER):
        self._buf: Deque[InputEvent] = deque(maxlen=maxlen)
        self._cond = threading.Condition()
        self._closed = False
        self.dropped = 0

    def put(self, event: InputEvent) -> bool:
        with self._cond:
            if self._closed:
                return False
            if len(self._buf) == self._buf.maxlen:
                self.dropped += 1
            self._buf.append(event)
            self._cond.notify()
            return True

    def get(self, timeout: Optional[float] = None) -> Optional[InputEvent]:
        """Next event, or None on timeout / closed-and-drained."""
        with self._cond:
            self._cond.wait_for(lambda: self._buf or self._closed, timeout)
            if self._buf:
                return self._buf.popleft()
            return None

    def close(self) -> None:
        with self._cond:
            self._closed = True
            self._cond.notify_all()

    @property
    def closed(self) -> bool:
        with self._cond:
            return self._closed

    def __len__(self) -> int:
        with self._cond:
            return len(self._buf)


# =========================================================================
# Panel base
# =========================================================================

class Panel(ABC):
    """Connection, caches and input poller for one panel.

    Subclasses set ``KIND`` and ``POLL_HZ`` and add typed setters that call
    :meth:`_send_report`.

    Args:
        transport: Transport to own.  None means create the best available
            backend on :meth:`connect` (see ``device_factory``).
        poll: Start the background poller on connect.  Tests drive
            :meth:`poll_once` directly with ``poll=False``.
        event_buffer: Event stream capacity.
        timeout_is_idle: Treat a read timeout as "no new report" instead of
            a failure.  For hardware that only reports on change.
    """

    KIND: PanelKind
    POLL_HZ: float = 10.0

    def __init__(
        self,
        transport: Optional[PanelTransport] = None,
        *,
        poll: bool = True,
        event_buffer: int = DEFAULT_EVENT_BUFFER,
        timeout_is_idle: bool = False,
    ):
        self._transport = transport
        self._poll = poll
        self._event_buffer = event_buffer
        self._timeout_is_idle = timeout_is_idle

        self._io_lock = threading.Lock()
        self._state_lock = threading.RLock()
        self._state = PanelState.DISCONNECTED
        # Observer calls queued under _state_lock, fired once it is released
        self._pending: Deque[tuple] = deque()
        self._notify_lock = threading.RLock()

        self._tracker = InputTracker(self.KIND)
        self._events = EventStream(event_buffer)
        self._events.close()  # nothing to deliver until connected
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self._failures = 0
        self._input_endpoint = EP_IN_01
        self._last_report: Optional[bytes] = None

        self.on_event: Optional[Callable[[InputEvent], None]] = None
        self.on_state_changed: Optional[Callable[[PanelState], None]] = None
        self.on_error: Optional[Callable[[str], None]] = None

    # -- Properties -----------------------------------------------------

    @property
    def kind(self) -> PanelKind:
        return self.KIND

    @property
    def name(self) -> str:
        return self.KIND.display_name

    @property
    def state(self) -> PanelState:
        return self._state

    @property
    def is_connected(self) -> bool:
        return self._state in _LIVE_STATES

    @property
    def transport(self) -> Optional[PanelTransport]:
        return self._transport

    @property
    def snapshot(self) -> InputSnapshot:
        """Last decoded input state (all False before the first read)."""
        return self._tracker.snapshot

    @property
    def last_report(self) -> Optional[bytes]:
        """Last output report written successfully."""
        return self._last_report

    @property
    def poll_period(self) -> float:
        return 1.0 / self.POLL_HZ

    @property
    def dropped_events(self) -> int:
        return self._events.dropped

    # -- Lifecycle --------------------------------------------------------

    def connect(self) -> None:
        """Open the transport and start the input poller.

        Raises:
            NotFound: Panel not attached (or no USB backend installed).
            AccessDenied: OS refused to open it.
        """
        try:
            self._connect()
        finally:
            self._flush_notifications()

    def _connect(self) -> None:
        with self._state_lock:
            if self._state in _LIVE_STATES:
                return
            self._set_state(PanelState.CONNECTING)
            try:
                if self._transport is None:
                    self._transport = self._create_transport()
                self._transport.open()
                self._input_endpoint = self._transport.find_input_endpoint(
                    self._tracker.parser.report_length
                )
            except Exception as e:
                err = e if isinstance(e, PanelError) else wrap_usb_exception(
                    e, f"{self.name}: open failed")
                log.warning("%s: connect failed: %s", self.name, err)
                self._pending.append((self._notify_error, str(err)))
                self._set_state(PanelState.DISCONNECTED)
                if err is e:
                    raise
                raise err from e

            self._tracker.reset()
            self._failures = 0
            self._events = EventStream(self._event_buffer)
            self._stop.clear()
            self._set_state(PanelState.CONNECTED)
            log.info("%s: connected (input EP %#04x)", self.name, self._input_endpoint)

            if self._poll:
                self._thread = threading.Thread(
                    target=self._poll_loop,
                    name=f"{self.KIND.key}-poller",
                    daemon=True,
                )
                self._set_state(PanelState.POLLING)
                self._thread.start()

    def close(self) -> None:
        """Stop the poller, release the transport.  Idempotent."""
        with self._state_lock:
            thread = self._thread
            if self._state == PanelState.DISCONNECTED and thread is None:
                return
            if self._state != PanelState.DISCONNECTED:
                self._set_state(PanelState.CLOSING)
            self._stop.set()
        self._flush_notifications()
        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout=self.poll_period + DEFAULT_TIMEOUT_MS / 1000.0 + 1.0)
        with self._state_lock:
            self._thread = None
            self._release()
            if self._state != PanelState.DISCONNECTED:
                self._set_state(PanelState.DISCONNECTED)
        self._flush_notifications()
        log.info("%s: closed", self.name)

    def __enter__(self):
        self.connect()
        return self

    def __exit__(self, *exc):
        self.close()

    def _create_transport(self) -> PanelTransport:
        from .device_factory import create_transport
        try:
            return create_transport(self.KIND)
        except ImportError as e:
            raise NotFound(f"{self.name}: {e}") from e

    def _release(self) -> None:
        if self._transport is not None:
            with self._io_lock:
                try:
                    self._transport.close()
                except Exception:
                    log.debug("%s: transport close failed", self.name, exc_info=True)
        self._events.close()

    # -- Output -------------------------------------------------------------

    def _send_report(self, payload: bytes) -> None:
        """Deliver one SET_REPORT control transfer and cache the payload.

        Raises:
            PanelNotConnected: Panel is not connected.
            TransportIo: The transfer failed (this call only).
        """
        if not self.is_connected or self._transport is None:
            raise PanelNotConnected(f"{self.name} is not connected")
        try:
            with self._io_lock:
                self._transport.control_write(*SET_REPORT, payload)
                self._last_report = bytes(payload)
        except Exception as e:
            err = e if isinstance(e, PanelError) else wrap_usb_exception(
                e, f"{self.name}: write failed")
            if not isinstance(err, TransportIo):
                err = TransportIo(f"{self.name}: write failed: {err}")
            log.warning("%s: write failed: %s", self.name, err)
            self._notify_error(str(err))
            raise err from e
        log.debug("%s: sent %d-byte report", self.name, len(payload))

    # -- Input --------------------------------------------------------------

    def poll_once(self, now: Optional[float] = None) -> List[InputEvent]:
        """One poller tick: read, parse, diff, enqueue.

        Raises:
            PanelNotConnected, TransportIo, ProtocolShape
        """
        if not self.is_connected or self._transport is None:
            raise PanelNotConnected(f"{self.name} is not connected")
        length = self._tracker.parser.report_length
        with self._io_lock:
            data = self._transport.interrupt_read(
                self._input_endpoint, length, DEFAULT_TIMEOUT_MS)
        events = self._tracker.update(data, now)
        for event in events:
            self._events.put(event)
            log.debug("%s: %s -> %s", self.name, event.signal, event.state)
            if self.on_event:
                try:
                    self.on_event(event)
                except Exception:
                    log.exception("%s: on_event callback failed", self.name)
        return events

    def _poll_loop(self) -> None:
        period = self.poll_period
        while not self._stop.is_set():
            started = time.monotonic()
            try:
                self.poll_once()
                self._failures = 0
            except TransportTimeout as e:
                if self._timeout_is_idle:
                    self._failures = 0
                elif self._read_failed(e):
                    return
            except PanelNotConnected:
                return
            except Exception as e:
                if self._read_failed(e):
                    return
            self._stop.wait(max(0.0, period - (time.monotonic() - started)))

    def _read_failed(self, exc: Exception) -> bool:
        """Count a failed tick.  Returns True once the panel is dropped."""
        self._failures += 1
        log.warning("%s: input read failed (%d/%d): %s", self.name,
                    self._failures, MAX_CONSECUTIVE_READ_FAILURES, exc)
        if self._failures < MAX_CONSECUTIVE_READ_FAILURES:
            return False
        log.error("%s: %d consecutive read failures, disconnecting",
                  self.name, self._failures)
        self._notify_error(f"{self.name}: lost connection ({exc})")
        with self._state_lock:
            if self._stop.is_set():
                return True  # close() in progress owns the teardown
            self._stop.set()
            self._release()
            self._set_state(PanelState.DISCONNECTED)
        self._flush_notifications()
        return True

    def input_events(self, timeout: Optional[float] = None) -> Iterator[InputEvent]:
        """Lazy single-consumer sequence of input events.

        Blocks for the next event; ends when the panel disconnects.  With a
        *timeout*, also ends after *timeout* seconds without an event.
        """
        stream = self._events
        while True:
            event = stream.get(timeout)
            if event is None:
                return
            yield event

    def get_event(self, timeout: Optional[float] = 0.0) -> Optional[InputEvent]:
        """Pop one event, or None."""
        return self._events.get(timeout)

    # -- Observers ----------------------------------------------------------

    def _set_state(self, state: PanelState) -> None:
        if state == self._state:
            return
        self._state = state
        log.debug("%s: state -> %s", self.name, state.value)
        self._pending.append((self._notify_state, state))

    def _notify_state(self, state: PanelState) -> None:
        if self.on_state_changed:
            try:
                self.on_state_changed(state)
            except Exception:
                log.exception("%s: on_state_changed callback failed", self.name)

    def _flush_notifications(self) -> None:
        with self._notify_lock:
            while self._pending:
                notify, arg = self._pending.popleft()
                notify(arg)

    def _notify_error(self, message: str) -> None:
        if self.on_error:
            try:
                self.on_error(message)
            except Exception:
                log.exception("%s: on_error callback failed", self.name)

    def __repr__(self) -> str:
        return f"{type(self).__name__}(state={self._state.value})"
