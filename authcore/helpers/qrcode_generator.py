import base64
import io

import qrcode


def generate_qr_code_base64(data: str) -> str:
    """Render `data` as a PNG QR code and return it as a data URL."""
    if not data:
        raise ValueError("Cannot generate a QR code for empty data")
    image = qrcode.make(data)
    buffer = io.BytesIO()
    image.save(buffer, format="PNG")
    encoded = base64.b64encode(buffer.getvalue()).decode("ascii")
    return f"data:image/png;base64,{encoded}"
