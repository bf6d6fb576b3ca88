"""
Decode and encode JPEG, PNG, WebP and JPEG XL images as numpy pixel buffers.

Pillow handles every format; JPEG XL support comes from pillow-jxl-plugin,
which registers itself with Pillow when imported.
"""

import io
import logging
import os
import shutil
import tempfile
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Optional

import numpy as np
import pillow_jxl  # noqa: F401  (registers the JXL codec with Pillow)
from PIL import Image, UnidentifiedImageError

from common import (
    JPEG_QUALITY,
    JXL_EXTENSION,
    SUPPORTED_EXTENSIONS,
    DecodeError,
    EncodeError,
    FileTask,
    WriteError,
)


FORMAT_BY_EXTENSION: Dict[str, str] = {
    ".jpg": "JPEG",
    ".jpeg": "JPEG",
    ".png": "PNG",
    ".webp": "WEBP",
    ".jxl": "JXL",
}

# Modes whose pixels already map one-to-one onto uint8 channels.
NATIVE_MODES = ("L", "LA", "RGB", "RGBA")
SIXTEEN_BIT_MODES = ("I", "I;16", "I;16L", "I;16B", "I;16N")
# Modes converted to RGB; an ICC profile attached to them no longer applies.
COLOUR_MODEL_MODES = ("CMYK", "YCbCr", "LAB", "HSV")

# Metadata carried from the decoded file to the encoded one.
PRESERVED_INFO_KEYS = ("icc_profile", "exif", "dpi")


@dataclass
class DecodedImage:
    """Pixels of a decoded image plus what is needed to write it back."""
    pixels: np.ndarray
    mode: str
    format: Optional[str]
    info: Dict[str, object] = field(default_factory=dict)

    @property
    def size(self):
        """(width, height) of the image."""
        return (self.pixels.shape[1], self.pixels.shape[0])


def is_supported_image(path: Path) -> bool:
    return path.suffix.lower() in SUPPORTED_EXTENSIONS


def is_jxl_file(path: Path) -> bool:
    return path.suffix.lower() == JXL_EXTENSION


def resolve_output_path(path: Path) -> Path:
    """JXL inputs are written as a sibling PNG; everything else is rewritten in place."""
    if is_jxl_file(path):
        return path.with_suffix(".png")
    return path


def make_task(path: Path) -> FileTask:
    return FileTask(path=path, output_path=resolve_output_path(path), transcode=is_jxl_file(path))


def format_for_path(path: Path) -> str:
    try:
        return FORMAT_BY_EXTENSION[path.suffix.lower()]
    except KeyError:
        raise EncodeError(f"No image format for extension {path.suffix!r}: {path}") from None


def _normalize_mode(img: Image.Image) -> Image.Image:
    """Convert img to one of NATIVE_MODES without touching images already in one."""
    if img.mode in NATIVE_MODES:
        return img
    if img.mode == "1":
        return img.convert("L")
    if img.mode == "P":
        return img.convert("RGBA" if "transparency" in img.info else "RGB")
    if img.mode in SIXTEEN_BIT_MODES:
        # Scale to 8 bits; convert("L") would clip everything above 255 to white.
        wide = np.clip(np.asarray(img).astype(np.int64), 0, 0xFFFF)
        return Image.fromarray((wide >> 8).astype(np.uint8))
    if img.mode == "F":
        return img.convert("L")
    if img.mode == "La":
        return img.convert("LA")
    if img.mode == "RGBa" or "A" in img.getbands():
        return img.convert("RGBA")
    return img.convert("RGB")


def _webp_is_lossless(handle) -> bool:
    """Return True if the RIFF WebP stream in handle holds a VP8L (lossless) bitstream."""
    handle.seek(0)
    header = handle.read(12)
    if len(header) < 12 or header[:4] != b"RIFF" or header[8:12] != b"WEBP":
        return False
    while True:
        chunk = handle.read(8)
        if len(chunk) < 8:
            return False
        fourcc = chunk[:4]
        size = int.from_bytes(chunk[4:], "little")
        if fourcc == b"VP8L":
            return True
        if fourcc == b"VP8 ":
            return False
        handle.seek(size + (size & 1), os.SEEK_CUR)


def decode_image(path: Path) -> DecodedImage:
    """Read path into a uint8 pixel buffer. Raises DecodeError on any failure."""
    try:
        with Image.open(path) as img:
            img.load()
            fmt = img.format
            info = {key: img.info[key] for key in PRESERVED_INFO_KEYS if key in img.info}
            if img.mode in COLOUR_MODEL_MODES:
                # The embedded profile describes the old colour model, not the RGB output.
                info.pop("icc_profile", None)
            normalized = _normalize_mode(img)
            pixels = np.asarray(normalized, dtype=np.uint8)
            mode = normalized.mode
        if fmt == "WEBP":
            with path.open("rb") as handle:
                info["lossless"] = _webp_is_lossless(handle)
    except (
        UnidentifiedImageError,
        Image.DecompressionBombError,
        OSError,
        ValueError,
        SyntaxError,
    ) as exc:
        raise DecodeError(f"Failed to decode {path}: {exc}") from exc

    logging.debug(f"Decoded {path}: format={fmt} mode={mode} size={pixels.shape[1]}x{pixels.shape[0]}")
    return DecodedImage(pixels=pixels, mode=mode, format=fmt, info=info)


def encode_image(
    pixels: np.ndarray,
    fmt: str,
    info: Optional[Dict[str, object]] = None,
) -> bytes:
    """Encode a pixel buffer as fmt and return the file contents. Raises EncodeError."""
    info = info or {}
    try:
        img = Image.fromarray(np.ascontiguousarray(pixels))
        if fmt == "JPEG" and img.mode in ("LA", "RGBA"):
            img = img.convert("L" if img.mode == "LA" else "RGB")

        params: Dict[str, object] = {
            key: info[key] for key in PRESERVED_INFO_KEYS if info.get(key)
        }
        if fmt in ("JPEG", "WEBP"):
            params["quality"] = JPEG_QUALITY
        if fmt == "WEBP" and info.get("lossless"):
            params["lossless"] = True
        if fmt == "PNG":
            params["optimize"] = True

        buffer = io.BytesIO()
        img.save(buffer, format=fmt, **params)
    except (OSError, ValueError, KeyError, TypeError) as exc:
        raise EncodeError(f"Failed to encode {fmt} image: {exc}") from exc
    return buffer.getvalue()


def write_atomic(data: bytes, target: Path, mode_from: Optional[Path] = None) -> None:
    """Write data to target via a temporary sibling file and an atomic rename.

    On failure the temporary file is removed and target is left as it was.
    Permission bits are copied from mode_from (or the existing target).
    """
    template = mode_from if mode_from is not None else target
    fd, tmp_name = tempfile.mkstemp(
        prefix=f".{target.name}.", suffix=".tmp", dir=str(target.parent)
    )
    tmp_path = Path(tmp_name)
    try:
        with os.fdopen(fd, "wb") as handle:
            handle.write(data)
            handle.flush()
            os.fsync(handle.fileno())
        if template.exists():
            shutil.copymode(template, tmp_path)
        os.replace(tmp_path, target)
    except OSError as exc:
        try:
            tmp_path.unlink()
        except FileNotFoundError:
            pass
        except OSError as cleanup_exc:
            logging.warning(f"Could not remove temporary file {tmp_path}: {cleanup_exc}")
        raise WriteError(f"Failed to write {target}: {exc}") from exc
