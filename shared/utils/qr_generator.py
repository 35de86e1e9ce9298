"""Encoding and decoding of ticket QR payloads"""
import base64
import binascii
import io
import json
import logging
import secrets
from typing import Optional

import qrcode
from pydantic import BaseModel, ValidationError, field_validator

logger = logging.getLogger(__name__)

QR_PREFIX = "FME1."
MAX_PAYLOAD_LENGTH = 2048
TICKET_TYPES = ("individual", "team")

# Compact keys used inside the encoded payload
_FIELD_KEYS = {
    "ticket_token": "t",
    "event_id": "e",
    "user_id": "u",
    "type": "y",
    "issued_at": "i",
}


class QRCodeData(BaseModel):
    """Ticket identity carried by a QR code"""
    ticket_token: str
    event_id: str
    user_id: str
    type: str = "individual"
    issued_at: str

    @field_validator("ticket_token", "event_id", "user_id", "issued_at")
    @classmethod
    def _not_blank(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("empty field")
        return value

    @field_validator("type")
    @classmethod
    def _known_type(cls, value: str) -> str:
        if value not in TICKET_TYPES:
            raise ValueError(f"unknown ticket type: {value}")
        return value


def generate_ticket_token() -> str:
    """
    Generate the opaque token printed in the QR.

    128 random bits; the unique index on tickets.ticket_token is the
    backstop for the (negligible) chance of a collision.
    """
    return secrets.token_urlsafe(16)


def encode_qr_payload(data: QRCodeData) -> str:
    """
    Serialize ticket identity into a scannable string.

    Format: ``FME1.`` followed by unpadded base64url of a compact JSON
    object. Can be decoded without a database round-trip.
    """
    compact = {short: getattr(data, field) for field, short in _FIELD_KEYS.items()}
    raw = json.dumps(compact, separators=(",", ":"), sort_keys=True).encode("utf-8")
    return QR_PREFIX + base64.urlsafe_b64encode(raw).decode("ascii").rstrip("=")


def decode_qr_payload(payload: str) -> Optional[QRCodeData]:
    """
    Parse a scanned string back into QRCodeData.

    Never raises: malformed, truncated or foreign payloads return None so
    the scan loop can report an invalid ticket and keep going. Also accepts
    the plain JSON payloads printed by the first web client.
    """
    if not isinstance(payload, str):
        return None

    payload = payload.strip()
    if not payload or len(payload) > MAX_PAYLOAD_LENGTH:
        return None

    try:
        if payload.startswith(QR_PREFIX):
            body = payload[len(QR_PREFIX):]
            body += "=" * (-len(body) % 4)
            raw = json.loads(base64.urlsafe_b64decode(body.encode("ascii")).decode("utf-8"))
            if not isinstance(raw, dict):
                return None
            values = {field: raw.get(short) for field, short in _FIELD_KEYS.items()}
        elif payload.startswith("{"):
            raw = json.loads(payload)
            if not isinstance(raw, dict):
                return None
            values = {
                "ticket_token": raw.get("ticket_token") or raw.get("ticket_id"),
                "event_id": raw.get("event_id"),
                "user_id": raw.get("user_id"),
                "type": raw.get("type") or "individual",
                "issued_at": raw.get("issued_at"),
            }
        else:
            return None

        if any(not isinstance(value, str) for value in values.values()):
            return None

        return QRCodeData(**values)
    except (ValueError, binascii.Error, UnicodeError, RecursionError, ValidationError) as e:
        logger.debug(f"Unreadable QR payload: {type(e).__name__}: {e}")
        return None


def render_qr_png_base64(qr_data: str) -> str:
    """
    Render a QR payload as a base64 PNG (e-mails and downloads)

    Returns:
        base64 string of the PNG image, empty string on failure
    """
    if not qr_data:
        logger.warning("qr_data is empty, cannot render QR")
        return ""

    try:
        qr = qrcode.QRCode(
            version=None,
            error_correction=qrcode.constants.ERROR_CORRECT_M,
            box_size=10,
            border=2,
        )
        qr.add_data(qr_data)
        qr.make(fit=True)

        img = qr.make_image(fill_color="#007BFF", back_color="white")

        img_buffer = io.BytesIO()
        img.save(img_buffer, format="PNG")
        img_bytes = img_buffer.getvalue()

        if not img_bytes:
            logger.error("QR image produced no bytes")
            return ""

        return base64.b64encode(img_bytes).decode("utf-8")
    except Exception as e:
        logger.error(f"Error rendering QR code: {e}", exc_info=True)
        return ""
