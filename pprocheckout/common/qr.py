"""QR code rendering for scan-to-pay payloads."""

import base64
from io import BytesIO

import qrcode
from qrcode.constants import ERROR_CORRECT_H

# 8px modules with a 4-module border give roughly a 256px image for short payloads.
BOX_SIZE = 8
BORDER = 4


def render_qr_png(data: str) -> bytes:
    """Encode `data` as a black-on-white PNG QR image with high error correction."""

    if not data:
        raise ValueError("QR payload is empty")
    qr = qrcode.QRCode(error_correction=ERROR_CORRECT_H, box_size=BOX_SIZE, border=BORDER)
    qr.add_data(data)
    qr.make(fit=True)
    buffer = BytesIO()
    qr.make_image(fill_color="black", back_color="white").save(buffer)
    return buffer.getvalue()


def render_qr_data_uri(data: str) -> str:
    png = render_qr_png(data)
    return f"data:image/png;base64,{base64.b64encode(png).decode('ascii')}"
