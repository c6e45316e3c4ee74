"""TOTP and backup-code primitives.

Pure functions over shared secrets: nothing here touches the database.
"""
import base64
import io
import re
import secrets
import string
from dataclasses import dataclass
from datetime import datetime
from typing import Iterable, List, Optional

import pyotp
import qrcode
from qrcode.exceptions import DataOverflowError

from .config import get_settings

# 32 base32 characters = 160 bits
SECRET_LENGTH = 32
BACKUP_CODE_LENGTH = 8
BACKUP_CODE_ALPHABET = string.ascii_uppercase + string.digits

_TOTP_FORMAT = re.compile(r"\d{6}")
_BACKUP_CODE_FORMAT = re.compile(r"[A-Z0-9]{8}")


class EncodingError(Exception):
    """The enrollment URI could not be rendered as a QR image."""


@dataclass(frozen=True)
class EnrollmentSecret:
    secret: str
    otpauth_url: str


def totp_from_secret(secret: str) -> pyotp.TOTP:
    settings = get_settings()
    return pyotp.TOTP(secret, issuer=settings.totp_issuer)


def generate_secret(email: str) -> EnrollmentSecret:
    settings = get_settings()
    secret = pyotp.random_base32(length=SECRET_LENGTH)
    otpauth_url = pyotp.TOTP(secret).provisioning_uri(
        name=f"Admin ({email})", issuer_name=settings.totp_issuer
    )
    return EnrollmentSecret(secret=secret, otpauth_url=otpauth_url)


def render_enrollment_image(uri: str) -> bytes:
    """Encode an ``otpauth://`` URI as a PNG QR code."""
    if not isinstance(uri, str) or not uri.startswith("otpauth://"):
        raise EncodingError("Enrollment URI must use the otpauth:// scheme")
    qr = qrcode.QRCode(version=None, box_size=10, border=4)
    try:
        qr.add_data(uri)
        qr.make(fit=True)
    except (DataOverflowError, ValueError) as exc:
        raise EncodingError(f"Failed to generate QR code: {exc}") from exc
    img = qr.make_image(fill_color="black", back_color="white")
    buffer = io.BytesIO()
    img.save(buffer, format="PNG")
    return buffer.getvalue()


def enrollment_data_uri(uri: str) -> str:
    encoded = base64.b64encode(render_enrollment_image(uri)).decode("ascii")
    return f"data:image/png;base64,{encoded}"


def is_valid_totp_format(code: str) -> bool:
    return isinstance(code, str) and _TOTP_FORMAT.fullmatch(code) is not None


def is_valid_backup_code_format(code: str) -> bool:
    return isinstance(code, str) and _BACKUP_CODE_FORMAT.fullmatch(code.upper()) is not None


def verify_code(code: str, secret: Optional[str], for_time: Optional[datetime] = None) -> bool:
    """Accept the current 30-second step or up to ``totp_valid_window`` steps either side."""
    if not secret or not is_valid_totp_format(code):
        return False
    settings = get_settings()
    try:
        return totp_from_secret(secret).verify(
            code,
            for_time=for_time,
            valid_window=settings.totp_valid_window,
        )
    except (TypeError, ValueError):
        # malformed base32 secret
        return False


def generate_backup_codes(count: int = 10) -> List[str]:
    # independent draws; uniqueness within a batch is not guaranteed
    return [
        "".join(secrets.choice(BACKUP_CODE_ALPHABET) for _ in range(BACKUP_CODE_LENGTH))
        for _ in range(count)
    ]


def verify_backup_code(code: str, codes: Optional[Iterable[str]]) -> bool:
    if not isinstance(code, str):
        return False
    return code.upper() in set(codes or [])


def consume_backup_code(code: str, codes: Optional[Iterable[str]]) -> List[str]:
    remaining = list(codes or [])
    if not isinstance(code, str):
        return remaining
    used = code.upper()
    return [c for c in remaining if c != used]
