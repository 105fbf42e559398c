"""7-segment field codec for the Radio and Multi panels.

Each display field is five digits wide and is driven by five bytes, one per
digit.  The low nibble of a byte selects the glyph; on the Radio panel the
high nibble 0xD additionally lights that digit's decimal point.

The two panels expose subtly different glyph maps (the Multi panel's minus
sign is 0xDE, the Radio's is 0x0E), so the codec is a value carrying its
table rather than a pair of functions::

    RADIO_CODEC.encode("118.00")   # b'\\x01\\x01\\xd8\\x00\\x00'
    MULTI_CODEC.encode("-250")     # b'\\xde\\x02\\x05\\x00\\x0f'
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict

FIELD_WIDTH = 5

GLYPH_SPACE = 0x0F
GLYPH_MINUS_RADIO = 0x0E
GLYPH_MINUS_MULTI = 0xDE  # hardware quirk: multi minus carries the 0xD nibble

DECIMAL_NIBBLE = 0xD0

_DIGITS: Dict[str, int] = {str(d): d for d in range(10)}


def _glyphs(minus: int) -> Dict[str, int]:
    table = dict(_DIGITS)
    table[' '] = GLYPH_SPACE
    table['-'] = minus
    return table


@dataclass(frozen=True)
class SegmentCodec:
    """Glyph table plus decimal-point strategy for one panel's fields.

    Attributes:
        name: Panel family label, used in logs.
        glyphs: Character -> byte map.
        decimals: Whether '.' lights the previous digit's decimal point.
            When False a '.' is an unknown character and becomes a space.
        width: Digits per field.
    """
    name: str
    glyphs: Dict[str, int] = field(default_factory=dict)
    decimals: bool = False
    width: int = FIELD_WIDTH

    @property
    def space(self) -> int:
        return self.glyphs[' ']

    def encode(self, text: str) -> bytes:
        """Encode *text* into exactly ``width`` bytes.

        Never fails: unknown characters become spaces and anything past the
        fifth placed glyph is dropped.  A leading '.' is ignored.
        """
        out = bytearray([self.space] * self.width)
        pos = 0
        for ch in text:
            if ch == '.' and self.decimals:
                if pos > 0:
                    out[pos - 1] = DECIMAL_NIBBLE | (out[pos - 1] & 0x0F)
                continue
            if pos >= self.width:
                continue  # a later '.' still marks the last digit
            out[pos] = self.glyphs.get(ch, self.space)
            pos += 1
        return bytes(out)

    def decode(self, data: bytes) -> str:
        """Debug inverse of :meth:`encode`.

        Bytes outside the glyph table decode as '?'.
        """
        reverse = {v: k for k, v in self.glyphs.items()}
        low_reverse = {v & 0x0F: k for k, v in self.glyphs.items()}
        chars = []
        for b in data[:self.width]:
            if b in reverse:
                chars.append(reverse[b])
            elif self.decimals and (b & 0xF0) == DECIMAL_NIBBLE:
                chars.append(low_reverse.get(b & 0x0F, '?'))
                chars.append('.')
            else:
                chars.append('?')
        return ''.join(chars)


RADIO_CODEC = SegmentCodec("radio", _glyphs(GLYPH_MINUS_RADIO), decimals=True)
MULTI_CODEC = SegmentCodec("multi", _glyphs(GLYPH_MINUS_MULTI), decimals=False)


def format_frequency(freq: str) -> str:
    """Keep only digits and '.', e.g. ``'COM 118.25 MHz'`` -> ``'118.25'``.

    No truncation: the codec drops glyphs past the fifth.
    """
    return ''.join(ch for ch in freq if ch in _DIGITS or ch == '.')


def format_multi_value(value: str) -> str:
    """Keep digits, '.' and '-', truncated to five characters."""
    kept = ''.join(ch for ch in value if ch in _DIGITS or ch in '.-')
    return kept[:FIELD_WIDTH]
