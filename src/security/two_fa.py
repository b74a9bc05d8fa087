"""TOTP second factor utilities"""

import base64
import io

import pyotp
import qrcode

ISSUER = "StockMaster"


def generate_totp_secret() -> str:
    return pyotp.random_base32()


def get_totp_uri(secret: str, email: str, issuer: str = ISSUER) -> str:
    """Provisioning URI rendered as a QR code by authenticator apps"""
    return pyotp.TOTP(secret).provisioning_uri(name=email, issuer_name=issuer)


def generate_qr_code(uri: str) -> str:
    """Render a provisioning URI as a base64 PNG data URL"""
    qr = qrcode.QRCode(version=1, box_size=10, border=4)
    qr.add_data(uri)
    qr.make(fit=True)

    img = qr.make_image(fill_color="black", back_color="white")
    buffer = io.BytesIO()
    img.save(buffer, format="PNG")
    return "data:image/png;base64," + base64.b64encode(buffer.getvalue()).decode()


def verify_totp_code(secret: str, code: str) -> bool:
    """Check a code against the secret, tolerating one step of clock drift"""
    if not code:
        return False
    return pyotp.TOTP(secret).verify(code.strip(), valid_window=1)
