import base64
import binascii
import io
import re

from PIL import Image, UnidentifiedImageError
from google.genai import types

DEFAULT_MIME = "image/jpeg"
JPEG_QUALITY = 85

_DATA_URI = re.compile(r"^data:([a-zA-Z0-9]+/[a-zA-Z0-9-.+]+);base64,(.+)$")
_HEADER_MIME = re.compile(r"data:([^;]+)")
_WHITESPACE = re.compile(r"\s")


class InvalidImageError(ValueError):
    pass


def parse_image_data(image_data):
    """Split a data URI or bare base64 string into (mime_type, payload).

    Whitespace is stripped first. Without a recognizable header the MIME
    type defaults to image/jpeg.
    """
    if not isinstance(image_data, str):
        raise InvalidImageError("Image data must be a string")
    clean = _WHITESPACE.sub("", image_data)

    match = _DATA_URI.match(clean)
    if match:
        return match.group(1), match.group(2)

    mime_type = DEFAULT_MIME
    data = clean
    if "," in clean:
        header, data = clean.split(",", 1)
        header_match = _HEADER_MIME.search(header)
        if header_match:
            mime_type = header_match.group(1)
    if not data:
        raise InvalidImageError("Invalid image data")
    return mime_type, data


def decode_image(image_data):
    mime_type, data = parse_image_data(image_data)
    try:
        return mime_type, base64.b64decode(data, validate=True)
    except (binascii.Error, ValueError) as e:
        raise InvalidImageError(f"Invalid image data: {e}") from e


def image_part(image_data):
    """Build the inline image part for a request, failing before any network call."""
    mime_type, raw = decode_image(image_data)
    return types.Part.from_bytes(data=raw, mime_type=mime_type)


def to_data_uri(raw_bytes, mime_type="image/png"):
    b64 = base64.b64encode(raw_bytes).decode("utf-8")
    return f"data:{mime_type};base64,{b64}"


def encode_frame(frame):
    """Encode a captured still frame as a JPEG data URI.

    ``frame`` may be a PIL image, raw image bytes or an existing data URI;
    anything that does not open as an image raises InvalidImageError.
    """
    if isinstance(frame, Image.Image):
        img = frame
    else:
        raw = decode_image(frame)[1] if isinstance(frame, str) else frame
        try:
            img = Image.open(io.BytesIO(raw))
            img.load()
        except (UnidentifiedImageError, OSError) as e:
            raise InvalidImageError(f"Unreadable image: {e}") from e

    buf = io.BytesIO()
    img.convert("RGB").save(buf, format="JPEG", quality=JPEG_QUALITY)
    return to_data_uri(buf.getvalue(), "image/jpeg")


def upload_to_data_uri(raw_bytes):
    """Keep an uploaded file's own format, as long as it opens as an image."""
    try:
        img = Image.open(io.BytesIO(raw_bytes))
        img.verify()
    except (UnidentifiedImageError, OSError) as e:
        raise InvalidImageError(f"Unreadable image: {e}") from e
    mime_type = Image.MIME.get(img.format or "", DEFAULT_MIME)
    return to_data_uri(raw_bytes, mime_type)
