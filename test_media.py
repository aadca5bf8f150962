"""
Tests for drawing/snapshot encoding
"""
import base64, io

import pytest
from PIL import Image

from comic_strip.media import encode, encode_snapshot, from_data_url, sniff_mime_type


def _png_bytes(mode="RGB", size=(8, 8)):
    buf = io.BytesIO()
    Image.new(mode, size, (255, 0, 0) if mode == "RGB" else (255, 0, 0, 128)).save(buf, format="PNG")
    return buf.getvalue()


def test_encode_png_bytes():
    raw = _png_bytes()
    image = encode(raw)
    assert image.mime_type == "image/png"
    assert image.to_bytes() == raw
    assert not image.data.startswith("data:")


def test_encode_from_path_and_file_object(tmp_path):
    raw = _png_bytes()
    path = tmp_path / "drawing.png"
    path.write_bytes(raw)
    assert encode(str(path)).to_bytes() == raw
    with open(path, "rb") as f:
        assert encode(f).data == base64.b64encode(raw).decode("ascii")


def test_explicit_mime_type_wins():
    assert encode(_png_bytes(), mime_type="image/webp").mime_type == "image/webp"


def test_unreadable_input_raises():
    with pytest.raises(OSError):
        encode(b"")
    with pytest.raises(OSError):
        sniff_mime_type(b"definitely not an image")


def test_snapshot_is_flattened_jpeg():
    frame = Image.new("RGBA", (16, 12), (0, 128, 255, 100))
    image = encode_snapshot(frame)
    assert image.mime_type == "image/jpeg"
    with Image.open(io.BytesIO(image.to_bytes())) as decoded:
        assert decoded.format == "JPEG"
        assert decoded.mode == "RGB"
        assert decoded.size == (16, 12)


def test_data_url_round_trip():
    image = encode(_png_bytes())
    url = image.data_url()
    assert url.startswith("data:image/png;base64,")
    assert from_data_url(url) == image


def test_bad_data_url():
    with pytest.raises(ValueError):
        from_data_url("https://example.com/x.png")
    with pytest.raises(ValueError):
        from_data_url("data:image/png;base64,")
