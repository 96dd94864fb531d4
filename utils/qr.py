import base64
import io

import qrcode


def qr_data_uri(data: str, box_size: int = 10) -> str:
    """
    Renders `data` as a PNG QR code and returns it as a data URI
    (usable directly in <img src="">).
    """
    qr = qrcode.QRCode(
        version=1,
        error_correction=qrcode.constants.ERROR_CORRECT_L,
        box_size=box_size,
        border=4,
    )
    qr.add_data(data)
    qr.make(fit=True)

    img = qr.make_image(fill_color="black", back_color="white")

    buffer = io.BytesIO()
    img.save(buffer, format="PNG")
    return "data:image/png;base64," + base64.b64encode(buffer.getvalue()).decode("ascii")
