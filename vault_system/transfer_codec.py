"""
Transfer Codec
==============

Moves signed envelopes through the optical channel:

- encode / decode: envelope <-> transport string (compact JSON)
- render: transport string -> QR code image
- scan: image or camera frame -> transport string
"""

import io
import json
import base64
import logging
from pathlib import Path
from typing import Optional, Dict, Any, Union

import cv2
import numpy as np
import qrcode
from qrcode.exceptions import DataOverflowError
from qrcode.image.pil import PilImage
from PIL import Image

from .config import settings
from .models import SignedEnvelope
from .disclosure_builder import canonical_serialize
from .exceptions import (
    PayloadTooLarge,
    NoCodeFound,
    MalformedPayload,
)

logger = logging.getLogger("TransferCodec")

ImageSource = Union[Image.Image, np.ndarray, bytes, str, Path]

EC_LEVELS = {
    "L": qrcode.constants.ERROR_CORRECT_L,
    "M": qrcode.constants.ERROR_CORRECT_M,
    "Q": qrcode.constants.ERROR_CORRECT_Q,
    "H": qrcode.constants.ERROR_CORRECT_H,
}


class TransferCodec:
    """
    Encodes envelopes for QR transport and reads them back

    The transport string is the canonical serialization of the whole
    envelope with ``signature`` as the last key.
    """

    def __init__(
        self,
        error_correction: Optional[str] = None,
        max_version: Optional[int] = None,
        box_size: Optional[int] = None,
        border: Optional[int] = None
    ):
        level = (error_correction or settings.QR_ERROR_CORRECTION).upper()
        if level not in EC_LEVELS:
            raise ValueError(f"Unknown error correction level: {level}")

        self.error_correction = level
        self.max_version = max_version or settings.QR_MAX_VERSION
        self.box_size = box_size or settings.QR_BOX_SIZE
        self.border = settings.QR_BORDER if border is None else border
        self._detector = cv2.QRCodeDetector()

    # ==================== STRING TRANSPORT ====================

    def encode(self, envelope: SignedEnvelope) -> str:
        """Serialize the full envelope (payload + signature)"""
        return canonical_serialize(envelope.to_dict())

    def decode(self, raw: Union[str, bytes]) -> Dict[str, Any]:
        """
        Parse a scanned transport string into a candidate object

        Raises:
            MalformedPayload: if the data is not a JSON object
        """
        try:
            if isinstance(raw, bytes):
                raw = raw.decode("utf-8")
            candidate = json.loads(raw)
        except (UnicodeDecodeError, json.JSONDecodeError) as e:
            raise MalformedPayload(f"Invalid JSON: {e}") from e
        except TypeError as e:
            raise MalformedPayload(f"Unsupported payload type: {type(raw).__name__}") from e

        if not isinstance(candidate, dict):
            raise MalformedPayload("Payload is not a JSON object")

        return candidate

    def parse(self, raw: Union[str, bytes]) -> SignedEnvelope:
        """decode() followed by the structural check"""
        return SignedEnvelope.from_dict(self.decode(raw))

    # ==================== QR RENDERING ====================

    def _build_qr(self, data: str) -> qrcode.QRCode:
        qr = qrcode.QRCode(
            version=None,  # smallest version that fits
            error_correction=EC_LEVELS[self.error_correction],
            box_size=self.box_size,
            border=self.border,
            image_factory=PilImage
        )
        qr.add_data(data)
        try:
            qr.make(fit=True)
        except DataOverflowError as e:
            raise PayloadTooLarge(
                f"Payload of {len(data.encode('utf-8'))} bytes does not fit a QR code "
                f"at error correction {self.error_correction}"
            ) from e

        if qr.version > self.max_version:
            raise PayloadTooLarge(
                f"Payload needs QR version {qr.version}, limit is {self.max_version}"
            )
        return qr

    def render(self, envelope: SignedEnvelope) -> Image.Image:
        """
        Render an envelope as a QR code image

        Raises:
            PayloadTooLarge: if the envelope exceeds the QR capacity
        """
        data = self.encode(envelope)
        qr = self._build_qr(data)
        logger.info(
            "Rendered %d byte envelope as QR version %d",
            len(data.encode("utf-8")), qr.version
        )
        img = qr.make_image(fill_color="black", back_color="white")
        return img.get_image()

    def render_png(self, envelope: SignedEnvelope) -> bytes:
        buffer = io.BytesIO()
        self.render(envelope).save(buffer, format="PNG")
        return buffer.getvalue()

    def render_data_url(self, envelope: SignedEnvelope) -> str:
        """PNG data URL, suitable for download or share sheets"""
        encoded = base64.b64encode(self.render_png(envelope)).decode("ascii")
        return f"data:image/png;base64,{encoded}"

    # ==================== QR SCANNING ====================

    def _to_array(self, source: ImageSource) -> Optional[np.ndarray]:
        if isinstance(source, np.ndarray):
            return source
        if isinstance(source, Image.Image):
            rgb = np.array(source.convert("RGB"))
            return cv2.cvtColor(rgb, cv2.COLOR_RGB2BGR)
        if isinstance(source, (bytes, bytearray)):
            buffer = np.frombuffer(bytes(source), dtype=np.uint8)
            return cv2.imdecode(buffer, cv2.IMREAD_COLOR)
        if isinstance(source, (str, Path)):
            return cv2.imread(str(source), cv2.IMREAD_COLOR)
        raise TypeError(f"Unsupported image source: {type(source).__name__}")

    def scan(self, source: ImageSource) -> str:
        """
        Decode a QR code from pixel data

        Args:
            source: PIL image, BGR/grayscale frame, encoded image bytes or path

        Returns:
            Raw transport string

        Raises:
            NoCodeFound: if no readable code is present
        """
        frame = self._to_array(source)
        if frame is None or frame.size == 0:
            raise NoCodeFound("Image could not be read")

        try:
            data, points, _ = self._detector.detectAndDecode(frame)
        except cv2.error as e:
            raise NoCodeFound(f"QR detection failed: {e}") from e

        if not data:
            raise NoCodeFound("No QR code found in image")

        return data
