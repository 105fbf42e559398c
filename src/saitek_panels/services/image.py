"""FIP framebuffer pipeline: load, resize, flatten to RGB888.

Pure Python (PIL + numpy), no USB dependencies.  The FIP takes a raw
320x240 RGB888 frame, row-major, top-left origin, no padding.
"""
from __future__ import annotations

import io
import logging
import os
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, Tuple, Union

import numpy as np
from PIL import Image as PILImage

from ..errors import InvalidArgument, UnsupportedFormat
from ..reports import FIP_HEIGHT, FIP_WIDTH

log = logging.getLogger(__name__)

# Cap decompression well above anything sensible for a 320x240 panel.
# Prevents decompression bombs from crafted images causing OOM.
PILImage.MAX_IMAGE_PIXELS = 1920 * 1080 * 4

SUPPORTED_EXTENSIONS = ('.png', '.jpg', '.jpeg', '.gif')
SUPPORTED_FORMATS = ('PNG', 'JPEG', 'GIF')  # PIL format names

RGB = Tuple[int, int, int]


class ResizePolicy(Enum):
    """How a source image is mapped onto the 320x240 frame."""
    STRETCH = "stretch"  # ignore aspect
    FIT = "fit"          # letterbox with background
    CROP = "crop"        # fill, centre-crop overflow
    CENTER = "center"    # no scaling, clip or pad

    @classmethod
    def from_name(cls, name: Union[str, 'ResizePolicy']) -> 'ResizePolicy':
        if isinstance(name, ResizePolicy):
            return name
        try:
            return cls(str(name).lower())
        except ValueError:
            choices = ", ".join(p.value for p in cls)
            raise InvalidArgument(
                f"Unknown resize policy {name!r} (choose from {choices})"
            ) from None


def clamp_quality(quality: int) -> int:
    return max(1, min(100, int(quality)))


def parse_color(text: str) -> RGB:
    """'#ff8000', 'ff8000' or '255,128,0' -> (255, 128, 0)."""
    s = text.strip()
    try:
        if ',' in s:
            parts = tuple(int(p) for p in s.split(','))
        else:
            s = s.lstrip('#')
            if len(s) != 6:
                raise ValueError(s)
            parts = tuple(int(s[i:i + 2], 16) for i in (0, 2, 4))
    except ValueError:
        raise InvalidArgument(f"Invalid colour: {text!r}") from None
    if len(parts) != 3 or not all(0 <= c <= 255 for c in parts):
        raise InvalidArgument(f"Invalid colour: {text!r}")
    return parts  # type: ignore[return-value]


@dataclass
class FipImageOptions:
    """Rendering options for FIP images.

    ``jpeg_quality`` is clamped to 1..100 and only affects
    :meth:`FramebufferPipeline.encode_jpeg`; the wire frame is raw RGB.
    """
    resize_policy: ResizePolicy = ResizePolicy.FIT
    background: RGB = (0, 0, 0)
    jpeg_quality: int = 90

    def __post_init__(self):
        self.resize_policy = ResizePolicy.from_name(self.resize_policy)
        self.background = tuple(int(c) for c in self.background)  # type: ignore[assignment]
        if len(self.background) != 3 or not all(0 <= c <= 255 for c in self.background):
            raise InvalidArgument(f"Invalid background colour: {self.background!r}")
        self.jpeg_quality = clamp_quality(self.jpeg_quality)


class FramebufferPipeline:
    """Turns images into 230 400-byte FIP frames."""

    def __init__(self, options: FipImageOptions | None = None,
                 width: int = FIP_WIDTH, height: int = FIP_HEIGHT):
        self.options = options or FipImageOptions()
        self.width = width
        self.height = height

    @property
    def frame_size(self) -> int:
        return self.width * self.height * 3

    # ── Loading ──────────────────────────────────────────────────────

    def load(self, path: Union[str, os.PathLike]) -> Any:
        """Open an image file as RGBA (first frame for GIFs).

        Raises:
            UnsupportedFormat: bad extension or undecodable content.
        """
        path = os.fspath(path)
        ext = os.path.splitext(path)[1].lower()
        if ext not in SUPPORTED_EXTENSIONS:
            raise UnsupportedFormat(
                f"Unsupported image type {ext or '(none)'!r}: {path} "
                f"(supported: {', '.join(SUPPORTED_EXTENSIONS)})"
            )
        try:
            with PILImage.open(path) as img:
                img.load()
                return img.convert('RGBA')
        except FileNotFoundError:
            raise
        except (OSError, ValueError, SyntaxError, PILImage.DecompressionBombError) as e:
            raise UnsupportedFormat(f"Cannot decode image {path}: {e}") from e

    def decode(self, data: bytes) -> Any:
        """Decode uploaded image bytes as RGBA (first frame for GIFs).

        Raises:
            UnsupportedFormat: not PNG, JPEG or GIF, or undecodable content.
        """
        try:
            with PILImage.open(io.BytesIO(data)) as img:
                if img.format not in SUPPORTED_FORMATS:
                    raise UnsupportedFormat(
                        f"Unsupported image format {img.format or '(unknown)'}"
                        f" (supported: {', '.join(SUPPORTED_FORMATS)})"
                    )
                img.load()
                return img.convert('RGBA')
        except (OSError, ValueError, SyntaxError, PILImage.DecompressionBombError) as e:
            raise UnsupportedFormat(f"Cannot decode image: {e}") from e

    def _coerce(self, source: Any) -> Any:
        if isinstance(source, PILImage.Image):
            return source
        if isinstance(source, np.ndarray):
            if source.ndim != 3 or source.shape[2] not in (3, 4):
                raise UnsupportedFormat(
                    f"Array must be HxWx3 or HxWx4, got shape {source.shape}"
                )
            return PILImage.fromarray(np.ascontiguousarray(source, dtype=np.uint8))
        if isinstance(source, (str, os.PathLike)):
            return self.load(source)
        raise UnsupportedFormat(f"Cannot render {type(source).__name__} as an image")

    # ── Resize ───────────────────────────────────────────────────────

    def _canvas(self) -> Any:
        return PILImage.new('RGBA', (self.width, self.height),
                            self.options.background + (255,))

    def resize(self, img: Any) -> Any:
        """Map *img* onto a width x height RGBA frame per the resize policy."""
        img = img.convert('RGBA')
        w, h = img.size
        if (w, h) == (self.width, self.height):
            return img
        policy = self.options.resize_policy

        if policy is ResizePolicy.STRETCH:
            return img.resize((self.width, self.height), PILImage.Resampling.BILINEAR)

        if policy is ResizePolicy.FIT:
            scale = min(self.width / w, self.height / h)
            new_size = (max(1, round(w * scale)), max(1, round(h * scale)))
            scaled = img.resize(new_size, PILImage.Resampling.BILINEAR)
            canvas = self._canvas()
            canvas.paste(scaled, ((self.width - new_size[0]) // 2,
                                  (self.height - new_size[1]) // 2))
            return canvas

        if policy is ResizePolicy.CROP:
            scale = max(self.width / w, self.height / h)
            sw, sh = max(self.width, round(w * scale)), max(self.height, round(h * scale))
            scaled = img.resize((sw, sh), PILImage.Resampling.BILINEAR)
            left = (sw - self.width) // 2
            top = (sh - self.height) // 2
            return scaled.crop((left, top, left + self.width, top + self.height))

        # CENTER: clip overflow, pad the rest
        left = max(0, (w - self.width) // 2)
        top = max(0, (h - self.height) // 2)
        clipped = img.crop((left, top,
                            left + min(w, self.width), top + min(h, self.height)))
        canvas = self._canvas()
        canvas.paste(clipped, (max(0, (self.width - w) // 2),
                               max(0, (self.height - h) // 2)))
        return canvas

    # ── Output ───────────────────────────────────────────────────────

    def to_payload(self, img: Any) -> bytes:
        """Flatten to row-major RGB888.  Alpha is dropped, not blended."""
        if img.size != (self.width, self.height):
            img = self.resize(img)
        arr = np.asarray(img.convert('RGBA'), dtype=np.uint8)[:, :, :3]
        payload = np.ascontiguousarray(arr).tobytes()
        if len(payload) != self.frame_size:
            raise InvalidArgument(
                f"Frame is {len(payload)} bytes, expected {self.frame_size}"
            )
        return payload

    def render(self, source: Any) -> bytes:
        """PIL image, numpy array or file path -> FIP frame bytes."""
        img = self._coerce(source)
        log.debug("render: %s %dx%d policy=%s", img.mode, img.width, img.height,
                  self.options.resize_policy.value)
        return self.to_payload(self.resize(img))

    def encode_jpeg(self, img: Any) -> bytes:
        """JPEG preview of *img* at the configured quality."""
        buf = io.BytesIO()
        img.convert('RGB').save(buf, 'JPEG', quality=self.options.jpeg_quality)
        return buf.getvalue()

    # ── Test images ──────────────────────────────────────────────────

    def solid(self, rgb: RGB) -> Any:
        return PILImage.new('RGB', (self.width, self.height), tuple(rgb))

    def test_pattern(self) -> Any:
        """Red ramps left to right, green top to bottom, blue fixed at 128."""
        xs = (np.arange(self.width) * 255 // self.width).astype(np.uint8)
        ys = (np.arange(self.height) * 255 // self.height).astype(np.uint8)
        arr = np.empty((self.height, self.width, 3), dtype=np.uint8)
        arr[:, :, 0] = xs[np.newaxis, :]
        arr[:, :, 1] = ys[:, np.newaxis]
        arr[:, :, 2] = 128
        return PILImage.fromarray(arr)

    def color_bars(self) -> Any:
        """Eight vertical bars, the last one absorbing the remainder."""
        colors = [
            (255, 255, 255), (255, 255, 0), (0, 255, 255), (0, 128, 0),
            (255, 0, 255), (255, 0, 0), (0, 0, 255), (0, 0, 0),
        ]
        arr = np.empty((self.height, self.width, 3), dtype=np.uint8)
        bar = self.width // len(colors)
        for i, color in enumerate(colors):
            x2 = self.width if i == len(colors) - 1 else (i + 1) * bar
            arr[:, i * bar:x2] = color
        return PILImage.fromarray(arr)

    def gradient(self) -> Any:
        """Vertical blend, blue-teal at the top to yellow-white at the bottom."""
        ratio = np.arange(self.height, dtype=np.float64) / self.height
        rows = np.stack([
            255 * ratio,
            128 + 127 * ratio,
            255 * (1.0 - ratio),
        ], axis=1).astype(np.uint8)
        arr = np.repeat(rows[:, np.newaxis, :], self.width, axis=1)
        return PILImage.fromarray(arr)

    @property
    def patterns(self) -> Dict[str, Callable[[], Any]]:
        return {
            'test': self.test_pattern,
            'bars': self.color_bars,
            'gradient': self.gradient,
        }

    def pattern(self, name: str) -> Any:
        try:
            return self.patterns[name]()
        except KeyError:
            raise InvalidArgument(
                f"Unknown pattern {name!r} (choose from {', '.join(self.patterns)})"
            ) from None
