# src/examlens/pipeline/images.py
from __future__ import annotations
import base64
import io
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Union
from PIL import Image, ImageOps, UnidentifiedImageError

logger = logging.getLogger(__name__)

ImageInput = Union[Path, str, bytes]

# Long-edge bounds used by the different call sites
UPLOAD_MAX_EDGE = 1920
ESSAY_MAX_EDGE = 1024
DEFAULT_QUALITY = 85

_ORIENTATION = 0x0112  # EXIF tag

_MAGIC = (
    (b"\x89PNG\r\n\x1a\n", "image/png"),
    (b"\xff\xd8\xff", "image/jpeg"),
    (b"GIF87a", "image/gif"),
    (b"GIF89a", "image/gif"),
    (b"BM", "image/bmp"),
)


@dataclass(frozen=True)
class PreparedImage:
    """
    An upload-ready image payload.
    compressed=False means the original bytes are carried as-is (see fallback_reason).
    """

    data: bytes
    mime_type: str
    width: Optional[int]
    height: Optional[int]
    compressed: bool
    original_size: int
    source_name: str = "<bytes>"
    fallback_reason: Optional[str] = None

    def b64(self) -> str:
        return base64.b64encode(self.data).decode("ascii")

    def data_url(self) -> str:
        """
        The data URL used for image_url content parts.
        """
        return f"data:{self.mime_type};base64,{self.b64()}"


def sniff_mime(data: bytes) -> str:
    """
    Guess a MIME type from magic bytes. Only used when Pillow cannot decode the input.
    """
    for magic, mime in _MAGIC:
        if data.startswith(magic):
            return mime
    if data[:4] == b"RIFF" and data[8:12] == b"WEBP":
        return "image/webp"
    return "application/octet-stream"


def _read(source: ImageInput) -> tuple[bytes, str]:
    if isinstance(source, bytes):
        return source, "<bytes>"
    p = Path(source)
    return p.read_bytes(), p.name


def fit_within(width: int, height: int, max_edge: int) -> tuple[int, int]:
    """
    Scale (width, height) so the long edge is at most max_edge. Never upscales.
    """
    long_edge = max(width, height)
    if long_edge <= max_edge:
        return width, height
    scale = max_edge / long_edge
    return max(1, round(width * scale)), max(1, round(height * scale))


def _flatten(im: Image.Image) -> Image.Image:
    """
    JPEG has no alpha: paste transparent images onto white.
    """
    if im.mode in ("RGBA", "LA") or (im.mode == "P" and "transparency" in im.info):
        rgba = im.convert("RGBA")
        bg = Image.new("RGB", rgba.size, (255, 255, 255))
        bg.paste(rgba, mask=rgba.split()[-1])
        return bg
    return im.convert("RGB")


def compress_bytes(data: bytes, max_edge: int, quality: int) -> tuple[bytes, int, int, bool]:
    """
    Decode, orient, bound the long edge and re-encode as JPEG.
    The flag tells whether the source was already an upright JPEG of the final size,
    i.e. whether the original bytes are an equivalent payload.
    Raises on anything Pillow cannot handle.
    """
    with Image.open(io.BytesIO(data)) as im:
        as_is = (
            im.format == "JPEG"
            and im.mode in ("RGB", "L")
            and im.getexif().get(_ORIENTATION, 1) == 1
        )
        im = ImageOps.exif_transpose(im)
        im = _flatten(im)
        w, h = fit_within(im.width, im.height, max_edge)
        if (w, h) != im.size:
            im = im.resize((w, h), Image.Resampling.LANCZOS)
            as_is = False
        buf = io.BytesIO()
        im.save(buf, format="JPEG", quality=quality, optimize=False)
        return buf.getvalue(), w, h, as_is


def prepare_image(
    source: ImageInput,
    max_edge: int = UPLOAD_MAX_EDGE,
    quality: int = DEFAULT_QUALITY,
) -> PreparedImage:
    """
    Turn a source image into a size-bounded JPEG payload.

    Compression is best effort: when the input cannot be decoded or re-encoded,
    the original bytes go out unchanged and the result says so. An upright JPEG
    that needs no resize is also sent as-is when re-encoding would not make it smaller.
    """
    if max_edge < 1:
        raise ValueError("max_edge must be positive")
    if not 1 <= quality <= 95:
        raise ValueError("quality must be within 1..95")

    data, name = _read(source)
    try:
        out, w, h, as_is = compress_bytes(data, max_edge, quality)
    except (UnidentifiedImageError, OSError, ValueError, SyntaxError, Image.DecompressionBombError) as e:
        reason = f"{type(e).__name__}: {e}"
        logger.warning("Sending %s uncompressed (%d bytes): %s", name, len(data), reason)
        return PreparedImage(
            data=data,
            mime_type=sniff_mime(data),
            width=None,
            height=None,
            compressed=False,
            original_size=len(data),
            source_name=name,
            fallback_reason=reason,
        )

    if as_is and len(out) >= len(data):
        # the source JPEG is already the smaller payload
        logger.debug("Keeping original %s: re-encoded %d >= %d bytes", name, len(out), len(data))
        return PreparedImage(
            data=data,
            mime_type="image/jpeg",
            width=w,
            height=h,
            compressed=False,
            original_size=len(data),
            source_name=name,
            fallback_reason="re-encoding would not shrink the image",
        )

    logger.debug("Compressed %s: %d -> %d bytes (%dx%d)", name, len(data), len(out), w, h)
    return PreparedImage(
        data=out,
        mime_type="image/jpeg",
        width=w,
        height=h,
        compressed=True,
        original_size=len(data),
        source_name=name,
    )
