"""
Signature image capture and persistence.

`capture` turns a free-hand stroke path or a typed value into a PNG data URL
on a fixed canvas; `upload` decodes such a data URL and stores it under
``signatures/{event_id}/{contract_id}/{field_id}_{ts}.png``.
"""
import base64
import binascii
import io
import logging
import re
import time
from numbers import Number
from typing import Optional

from PIL import Image, ImageDraw, ImageFont, UnidentifiedImageError

from modules.contracts.clock import utcnow
from modules.contracts.exceptions import EmptyAssetError, InvalidAssetFormatError
from modules.contracts.models.field_values import SignatureAsset
from modules.contracts.models.signature_field import FieldType

logger = logging.getLogger(__name__)

PNG_DATA_URL_PREFIX = "data:image/png;base64,"
DEFAULT_CANVAS = {
    FieldType.SIGNATURE: (400, 150),
    FieldType.INITIAL: (150, 100),
}
STROKE_WIDTH = 3
INK = (0, 0, 0, 255)

_DATA_URL_RE = re.compile(r"^data:image/[a-zA-Z0-9.+-]+;base64,(?P<payload>.*)$", re.DOTALL)
_UNSAFE_KEY_CHARS = re.compile(r"[^A-Za-z0-9_.-]")


def is_data_url(raw) -> bool:
    return isinstance(raw, str) and raw.startswith("data:image/")


def decode_data_url(encoded: str) -> bytes:
    """Raw image bytes of a base64 data URL; the payload must be a readable image."""
    if not isinstance(encoded, str):
        raise InvalidAssetFormatError("Signature image must be a base64 data URL")
    match = _DATA_URL_RE.match(encoded.strip())
    if not match:
        raise InvalidAssetFormatError("Signature image must be a base64 data URL")
    try:
        data = base64.b64decode(match.group("payload"), validate=True)
    except (binascii.Error, ValueError) as e:
        raise InvalidAssetFormatError("Signature image is not valid base64") from e
    if not data:
        raise EmptyAssetError("Signature image is empty")
    try:
        with Image.open(io.BytesIO(data)) as img:
            img.verify()
    except (UnidentifiedImageError, OSError, SyntaxError) as e:
        raise InvalidAssetFormatError("Signature payload is not a readable image") from e
    return data


def _to_png(data: bytes) -> bytes:
    with Image.open(io.BytesIO(data)) as img:
        if img.format == "PNG":
            return data
        buf = io.BytesIO()
        img.convert("RGBA").save(buf, format="PNG")
        return buf.getvalue()


def _encode_png(img: Image.Image) -> str:
    buf = io.BytesIO()
    img.save(buf, format="PNG")
    return PNG_DATA_URL_PREFIX + base64.b64encode(buf.getvalue()).decode("ascii")


def _parse_strokes(raw):
    strokes = []
    for stroke in raw:
        if not isinstance(stroke, (list, tuple)):
            raise InvalidAssetFormatError("Each stroke must be a list of [x, y] points")
        points = []
        for point in stroke:
            if (not isinstance(point, (list, tuple)) or len(point) != 2
                    or not all(isinstance(c, Number) and not isinstance(c, bool) for c in point)):
                raise InvalidAssetFormatError("Stroke points must be [x, y] number pairs")
            points.append((float(point[0]), float(point[1])))
        if points:
            strokes.append(points)
    return strokes


class SignatureAssetStore:
    def __init__(self, storage):
        self.storage = storage

    @staticmethod
    def canvas_size(field_type: FieldType, width: Optional[int] = None,
                    height: Optional[int] = None):
        default_w, default_h = DEFAULT_CANVAS.get(field_type, DEFAULT_CANVAS[FieldType.SIGNATURE])
        return (width or default_w, height or default_h)

    def capture(self, raw, field_type: FieldType = FieldType.SIGNATURE,
                width: Optional[int] = None, height: Optional[int] = None) -> str:
        """
        Render a capture to a PNG data URL.

        `raw` is a list of strokes (each a list of [x, y] canvas points), a typed
        value, or an already encoded data URL which is validated and returned.
        """
        if is_data_url(raw):
            decode_data_url(raw)
            return raw

        size = self.canvas_size(field_type, width, height)
        img = Image.new("RGBA", size, (0, 0, 0, 0))
        drw = ImageDraw.Draw(img)

        if isinstance(raw, (list, tuple)):
            strokes = _parse_strokes(raw)
            if not strokes:
                raise EmptyAssetError("Signature drawing is empty")
            for poly in strokes:
                if len(poly) >= 2:
                    drw.line(poly, fill=INK, width=STROKE_WIDTH, joint="curve")
                else:
                    x, y = poly[0]
                    r = STROKE_WIDTH / 2
                    drw.ellipse((x - r, y - r, x + r, y + r), fill=INK)
            return _encode_png(img)

        if isinstance(raw, str):
            text = raw.strip()
            if not text:
                raise EmptyAssetError("Typed signature is empty")
            font = ImageFont.load_default(size=max(12, int(size[1] * 0.4)))
            left, top, right, bottom = drw.textbbox((0, 0), text, font=font)
            x = (size[0] - (right - left)) / 2 - left
            y = (size[1] - (bottom - top)) / 2 - top
            drw.text((x, y), text, fill=INK, font=font)
            return _encode_png(img)

        raise InvalidAssetFormatError("Signature must be a stroke path, typed text or image data URL")

    def upload(self, encoded_image: str, contract_id: str, event_id: str, field_id: str,
               signer_role: str, signer_name: Optional[str] = None,
               raw_capture: Optional[str] = None, signed_at=None) -> SignatureAsset:
        data = _to_png(decode_data_url(encoded_image))
        safe_field = _UNSAFE_KEY_CHARS.sub("_", field_id)
        key = f"{self.namespace(event_id, contract_id)}{safe_field}_{time.time_ns() // 1000}.png"

        url = self.storage.put(key, data, "image/png")
        logger.info(f"Stored signature asset {key} ({len(data)} bytes)")

        return SignatureAsset(
            url=url,
            storage_key=key,
            raw_capture=raw_capture if raw_capture is not None else encoded_image,
            signer_name=signer_name,
            signed_at=signed_at or utcnow(),
            field_id=field_id,
            signer_role=signer_role,
            storage_method=self.storage.method,
        )

    def capture_and_upload(self, raw, field_type: FieldType, contract_id: str, event_id: str,
                           field_id: str, signer_role: str, signer_name: Optional[str] = None,
                           width: Optional[int] = None, height: Optional[int] = None,
                           signed_at=None) -> SignatureAsset:
        encoded = self.capture(raw, field_type, width, height)
        return self.upload(encoded, contract_id, event_id, field_id, signer_role,
                           signer_name=signer_name, signed_at=signed_at)

    def read(self, storage_key: str) -> bytes:
        return self.storage.read(storage_key)

    @staticmethod
    def namespace(event_id: str, contract_id: str) -> str:
        return f"signatures/{event_id}/{contract_id}/"

    def delete_namespace(self, event_id: str, contract_id: str) -> int:
        return self.storage.delete_prefix(self.namespace(event_id, contract_id))
