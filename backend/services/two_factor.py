"""
TOTP second factor: 6-digit codes, 30 second step, one step of clock drift
tolerated either side.
"""
import base64
import io
from dataclasses import dataclass

import pyotp
import qrcode
import qrcode.image.svg

from backend.config import get_settings

TOTP_DIGITS = 6
TOTP_INTERVAL = 30
TOTP_VALID_WINDOW = 1


@dataclass
class TwoFactorSetup:
    secret: str
    otpauth_url: str
    qr_code_url: str


def _totp(secret: str) -> pyotp.TOTP:
    return pyotp.TOTP(secret, digits=TOTP_DIGITS, interval=TOTP_INTERVAL)


def qr_code_data_url(data: str) -> str:
    """Render ``data`` as an SVG QR code inside a data: URL"""
    image = qrcode.make(data, image_factory=qrcode.image.svg.SvgPathImage)
    buffer = io.BytesIO()
    image.save(buffer)
    encoded = base64.b64encode(buffer.getvalue()).decode("ascii")
    return f"data:image/svg+xml;base64,{encoded}"


def generate_two_factor_secret(email: str, issuer: str = None) -> TwoFactorSetup:
    """New secret plus the otpauth:// URL and QR code an authenticator app scans"""
    secret = pyotp.random_base32()
    otpauth_url = _totp(secret).provisioning_uri(
        name=email,
        issuer_name=issuer or get_settings().TOTP_ISSUER,
    )
    return TwoFactorSetup(
        secret=secret,
        otpauth_url=otpauth_url,
        qr_code_url=qr_code_data_url(otpauth_url),
    )


def verify_two_factor_code(secret: str, code: str) -> bool:
    """True when ``code`` matches the current, previous or next time step"""
    if not secret or not code:
        return False
    code = code.strip()
    if len(code) != TOTP_DIGITS or not code.isdigit():
        return False
    try:
        return _totp(secret).verify(code, valid_window=TOTP_VALID_WINDOW)
    except (ValueError, TypeError):
        return False


def generate_current_code(secret: str) -> str:
    return _totp(secret).now()
