import base64, io, logging, os
from typing import BinaryIO, Optional, Union

from PIL import Image, UnidentifiedImageError

from .models import EncodedImage

logger = logging.getLogger(__name__)

_PIL_MIME = {
    "PNG": "image/png",
    "JPEG": "image/jpeg",
    "WEBP": "image/webp",
    "GIF": "image/gif",
    "BMP": "image/bmp",
}


def _read(source: Union[bytes, str, os.PathLike, BinaryIO]) -> bytes:
    if isinstance(source, (bytes, bytearray)):
        return bytes(source)
    if isinstance(source, (str, os.PathLike)):
        with open(source, "rb") as f:
            return f.read()
    return source.read()


def sniff_mime_type(raw: bytes) -> str:
    """Identify an image payload with Pillow; raises OSError when unreadable."""
    try:
        with Image.open(io.BytesIO(raw)) as img:
            fmt = img.format
    except UnidentifiedImageError as e:
        raise OSError(f"unreadable image data: {e}") from e
    return _PIL_MIME.get(fmt, f"image/{(fmt or 'octet-stream').lower()}")


def encode(source: Union[bytes, str, os.PathLike, BinaryIO], mime_type: Optional[str] = None) -> EncodedImage:
    """Turn an uploaded drawing (bytes, path or file object) into a transport-ready payload."""
    raw = _read(source)
    if not raw:
        raise OSError("empty image data")
    mime = mime_type or sniff_mime_type(raw)
    logger.info(f"Encoded {len(raw)} bytes as {mime}")
    return EncodedImage(data=base64.b64encode(raw).decode("ascii"), mime_type=mime)


def encode_snapshot(frame: Image.Image, quality: int = 90) -> EncodedImage:
    """Camera snapshots are flattened to RGB and sent as JPEG."""
    if frame.mode in ("RGBA", "LA"):
        background = Image.new("RGB", frame.size, (255, 255, 255))
        if frame.mode == "LA":
            frame = frame.convert("RGBA")
        background.paste(frame, mask=frame.split()[-1])
        frame = background
    elif frame.mode != "RGB":
        frame = frame.convert("RGB")
    buf = io.BytesIO()
    frame.save(buf, format="JPEG", quality=quality)
    return encode(buf.getvalue(), mime_type="image/jpeg")


def from_data_url(url: str) -> EncodedImage:
    header, _, payload = url.partition(",")
    if not header.startswith("data:") or ";base64" not in header or not payload:
        raise ValueError("not a base64 data URL")
    return EncodedImage(data=payload, mime_type=header[5:].split(";")[0] or "application/octet-stream")
