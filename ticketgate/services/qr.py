import base64
import io

import qrcode
from qrcode.constants import ERROR_CORRECT_H


def make_qr_bytes(payload: str) -> bytes:
    """Return QR PNG bytes for the credential payload."""
    # High error correction: codes are scanned off phone screens with glare
    qr = qrcode.QRCode(error_correction=ERROR_CORRECT_H, box_size=10, border=2)
    qr.add_data(payload)
    qr.make(fit=True)
    img = qr.make_image()
    buf = io.BytesIO()
    img.save(buf, format='PNG')
    return buf.getvalue()


def make_qr_data_url(payload: str) -> str:
    return 'data:image/png;base64,' + base64.b64encode(make_qr_bytes(payload)).decode('ascii')
