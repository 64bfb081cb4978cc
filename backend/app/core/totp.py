"""RFC 6238 time-based one-time passwords (30 s step, 6 digits)."""

from __future__ import annotations

import base64
import logging
from io import BytesIO

import pyotp
import qrcode

logger = logging.getLogger(__name__)

# 32 base32 characters = 160 bits
SECRET_LENGTH = 32


def generate_secret() -> str:
    return pyotp.random_base32(length=SECRET_LENGTH)


def provisioning_uri(secret: str, label: str, issuer: str) -> str:
    return pyotp.TOTP(secret).provisioning_uri(name=label, issuer_name=issuer)


def verify(secret: str, code: str, window: int = 1) -> bool:
    """Check *code* against *secret*, accepting +/- *window* time steps."""
    code = code.strip().replace(" ", "")
    if not code.isdigit():
        return False
    try:
        return pyotp.TOTP(secret).verify(code, valid_window=window)
    except (ValueError, TypeError):
        # malformed secret
        logger.warning("TOTP verification attempted with an unusable secret")
        return False


def qr_data_uri(text: str) -> str:
    """Render *text* as a PNG QR code and return it as a ``data:`` URI."""
    img = qrcode.make(text)
    buf = BytesIO()
    img.save(buf, "PNG")
    return "data:image/png;base64," + base64.b64encode(buf.getvalue()).decode("ascii")
