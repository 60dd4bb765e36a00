import base64
import binascii
import re
from io import BytesIO
from typing import Tuple

from PIL import Image

DATA_URL_RE = re.compile(r"^data:(?P<mime>[\w/+.-]+);base64,(?P<data>.*)$", re.S)


class InvalidImageData(ValueError):
    pass


def decode_data_url(data_url: str) -> Tuple[bytes, str]:
    """Return (bytes, mime type) for a data URL. Bare base64 is treated as JPEG."""
    if not data_url:
        raise InvalidImageData("empty file payload")
    match = DATA_URL_RE.match(data_url)
    if match:
        mime, payload = match.group("mime"), match.group("data")
    else:
        mime, payload = "image/jpeg", data_url
    try:
        return base64.b64decode(payload, validate=False), mime
    except (binascii.Error, ValueError) as e:
        raise InvalidImageData(f"invalid base64 payload: {e}")


def encode_data_url(content: bytes, mime: str = "image/jpeg") -> str:
    return f"data:{mime};base64,{base64.b64encode(content).decode('ascii')}"


def resize_for_analysis(data_url: str, max_side: int = 1024, quality: int = 80) -> str:
    """Shrink an image so its longer side is at most `max_side` and re-encode as JPEG."""
    content, _ = decode_data_url(data_url)
    try:
        img = Image.open(BytesIO(content))
        img.load()
    except Exception as e:
        raise InvalidImageData(f"unreadable image: {e}")

    width, height = img.size
    if width > height:
        if width > max_side:
            height = int(height * max_side / width)
            width = max_side
    elif height > max_side:
        width = int(width * max_side / height)
        height = max_side

    if (width, height) != img.size:
        img = img.resize((max(width, 1), max(height, 1)))
    if img.mode != "RGB":
        img = img.convert("RGB")

    out = BytesIO()
    img.save(out, format="JPEG", quality=quality)
    return encode_data_url(out.getvalue(), "image/jpeg")
