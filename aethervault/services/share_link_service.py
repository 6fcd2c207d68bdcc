"""Recipient links and their QR codes."""
import base64
import io

import qrcode


def build_share_url(public_base_url: str, file_id: str) -> str:
    return f"{public_base_url.rstrip('/')}/share/{file_id}"


def build_share_link_and_qr(public_base_url: str, file_id: str) -> tuple[str, str]:
    """
    Build the recipient URL and a QR code image (base64-encoded PNG) for it.
    """
    share_url = build_share_url(public_base_url, file_id)

    qr = qrcode.QRCode(version=1, box_size=10, border=4)
    qr.add_data(share_url)
    qr.make(fit=True)
    img = qr.make_image(fill_color="black", back_color="white")

    buffer = io.BytesIO()
    img.save(buffer, format="PNG")
    qr_base64 = base64.b64encode(buffer.getvalue()).decode()

    return share_url, qr_base64
