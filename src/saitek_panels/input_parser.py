"""Input report decoding and edge detection.

Each panel kind has a fixed table of ``(byte_offset, mask, signal)``
tuples.  A raw interrupt report decodes into an :class:`InputSnapshot`
(fixed schema, one bool per signal); diffing two snapshots yields one
:class:`InputEvent` per changed signal.

Rotary encoders set their bit only on the read following a detent, so
diffing gives pulse semantics for free: ``(ENC1_INNER_CW, True)`` on the
tick, ``(ENC1_INNER_CW, False)`` on the next quiet read.
"""
from __future__ import annotations

import time
from typing import Dict, List, NamedTuple, Optional, Sequence, Tuple

from .errors import ProtocolShape
from .usb_transport import PanelKind

SignalTable = Tuple[Tuple[int, int, str], ...]


def _byte_table(offset: int, names: Sequence[str]) -> SignalTable:
    """One byte's signals, bit 0 first."""
    return tuple((offset, 1 << bit, name) for bit, name in enumerate(names))


RADIO_SIGNALS: SignalTable = (
    _byte_table(0, ('COM1_1', 'COM1_2', 'NAV1_1', 'NAV1_2',
                    'ADF_1', 'DME_1', 'XPDR_1', 'COM2_1'))
    + _byte_table(1, ('COM2_2', 'NAV2_1', 'NAV2_2', 'ADF_2',
                      'DME_2', 'XPDR_2', 'ACT_STBY_1', 'ACT_STBY_2'))
    + _byte_table(2, ('ENC1_INNER_CW', 'ENC1_INNER_CCW',
                      'ENC1_OUTER_CW', 'ENC1_OUTER_CCW',
                      'ENC2_INNER_CW', 'ENC2_INNER_CCW',
                      'ENC2_OUTER_CW', 'ENC2_OUTER_CCW'))
)

MULTI_SIGNALS: SignalTable = (
    _byte_table(0, ('ALT', 'VS', 'IAS', 'HDG',
                    'CRS', 'ENCODER_CW', 'ENCODER_CCW', 'AP'))
    + _byte_table(1, ('HDG_BTN', 'NAV_BTN', 'IAS_BTN', 'ALT_BTN',
                      'VS_BTN', 'APR_BTN', 'REV_BTN', 'THROTTLE_ARM'))
    + _byte_table(2, ('FLAPS_UP', 'FLAPS_DOWN', 'PITCH_DOWN', 'PITCH_UP'))
)

SWITCH_SIGNALS: SignalTable = (
    _byte_table(0, ('BAT', 'ALT', 'AVIONICS', 'FUEL',
                    'DEICE', 'PITOT', 'COWL', 'PANEL'))
    + _byte_table(1, ('BEACON', 'NAV', 'STROBE', 'TAXI',
                      'LANDING', 'OFF', 'R', 'L'))
    + _byte_table(2, ('BOTH', 'START', 'GEARUP', 'GEARDOWN'))
)

# Buttons 1-8 in byte 0, 9-12 in the low nibble of byte 1.
FIP_SIGNALS: SignalTable = (
    _byte_table(0, tuple(f'BUTTON_{n}' for n in range(1, 9)))
    + _byte_table(1, tuple(f'BUTTON_{n}' for n in range(9, 13)))
)

SIGNAL_TABLES: Dict[PanelKind, SignalTable] = {
    PanelKind.RADIO: RADIO_SIGNALS,
    PanelKind.MULTI: MULTI_SIGNALS,
    PanelKind.SWITCH: SWITCH_SIGNALS,
    PanelKind.FIP: FIP_SIGNALS,
}

REPORT_LENGTHS: Dict[PanelKind, int] = {
    PanelKind.RADIO: 3,
    PanelKind.MULTI: 3,
    PanelKind.SWITCH: 3,
    PanelKind.FIP: 2,
}


class InputEvent(NamedTuple):
    """One signal transition."""
    signal: str
    state: bool
    timestamp: float


class InputSnapshot:
    """Decoded state of every input signal of one panel kind.

    Fixed schema: ``names`` comes from the kind's signal table and never
    changes; ``values`` is a tuple of bools in the same order.
    """

    __slots__ = ('names', 'values')

    def __init__(self, names: Tuple[str, ...], values: Tuple[bool, ...]):
        if len(names) != len(values):
            raise ValueError("snapshot names/values length mismatch")
        self.names = names
        self.values = values

    @classmethod
    def blank(cls, names: Tuple[str, ...]) -> 'InputSnapshot':
        return cls(names, (False,) * len(names))

    def __getitem__(self, name: str) -> bool:
        try:
            return self.values[self.names.index(name)]
        except ValueError:
            raise KeyError(name) from None

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, InputSnapshot):
            return NotImplemented
        return self.names == other.names and self.values == other.values

    def __hash__(self) -> int:
        return hash((self.names, self.values))

    def __repr__(self) -> str:
        active = [n for n, v in zip(self.names, self.values) if v]
        return f"InputSnapshot(active={active})"

    def as_dict(self) -> Dict[str, bool]:
        return dict(zip(self.names, self.values))

    @property
    def active(self) -> List[str]:
        """Names of signals currently set."""
        return [n for n, v in zip(self.names, self.values) if v]


class InputParser:
    """Stateless decoder for one panel kind."""

    def __init__(self, kind: PanelKind):
        self.kind = kind
        self.table = SIGNAL_TABLES[kind]
        self.report_length = REPORT_LENGTHS[kind]
        self.names: Tuple[str, ...] = tuple(name for _, _, name in self.table)

    def parse(self, data: bytes) -> InputSnapshot:
        """Decode a raw input report.

        Raises:
            ProtocolShape: if *data* is shorter than the kind's report.
        """
        if len(data) < self.report_length:
            raise ProtocolShape(
                f"{self.kind.display_name}: input report too short "
                f"({len(data)} < {self.report_length} bytes)"
            )
        values = tuple((data[offset] & mask) != 0 for offset, mask, _ in self.table)
        return InputSnapshot(self.names, values)

    def blank(self) -> InputSnapshot:
        return InputSnapshot.blank(self.names)

    @staticmethod
    def diff(old: InputSnapshot, new: InputSnapshot,
             now: Optional[float] = None) -> List[InputEvent]:
        """One event per signal whose value changed, in table order."""
        if old.names != new.names:
            raise ValueError("cannot diff snapshots of different panel kinds")
        if old.values == new.values:
            return []
        ts = time.monotonic() if now is None else now
        return [
            InputEvent(name, new_val, ts)
            for name, old_val, new_val in zip(new.names, old.values, new.values)
            if old_val != new_val
        ]


class InputTracker:
    """Cached snapshot plus diffing: one call per poller tick."""

    def __init__(self, kind: PanelKind):
        self.parser = InputParser(kind)
        self.snapshot = self.parser.blank()

    def update(self, data: bytes, now: Optional[float] = None) -> List[InputEvent]:
        """Parse *data*, diff against the cache, replace the cache."""
        new = self.parser.parse(data)
        events = self.parser.diff(self.snapshot, new, now)
        self.snapshot = new
        return events

    def reset(self) -> None:
        self.snapshot = self.parser.blank()
