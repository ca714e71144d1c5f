"""
CardLink Backend — QR Code Rendering
======================================

What:  Renders a URL as a PNG QR code.
Who:   ClientService during vCard artifact generation. The encoded URL is
       the client's public profile page, never the raw storage URL.
"""

import io

import qrcode
from qrcode.image.pil import PilImage


def render_qr_png(data: str, box_size: int = 10, border: int = 4) -> bytes:
    """Return PNG bytes for `data` at medium error correction."""
    qr = qrcode.QRCode(
        error_correction=qrcode.constants.ERROR_CORRECT_M,
        box_size=box_size,
        border=border,
    )
    qr.add_data(data)
    qr.make(fit=True)

    image = qr.make_image(image_factory=PilImage, fill_color="black", back_color="white")
    buffer = io.BytesIO()
    image.save(buffer)
    return buffer.getvalue()
