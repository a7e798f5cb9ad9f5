from io import BytesIO
from urllib.parse import quote

import qrcode
from PIL import Image
from qrcode.constants import ERROR_CORRECT_M

QR_SIZE = 700


def build_claim_url(base: str, code: str) -> str:
    """
    Claim page link for one code.

    "https://x/claim/{code}" -> path style, "https://x?code=" -> value appended,
    anything else gets ?id=<code>.
    """
    encoded = quote(code, safe="")
    if "{code}" in base:
        return base.replace("{code}", encoded)
    if base.endswith("="):
        return base + encoded
    sep = "&" if "?" in base else "?"
    return f"{base}{sep}id={encoded}"


def render_qr_png(payload: str, size: int = QR_SIZE) -> bytes:
    qr = qrcode.QRCode(
        version=None,
        error_correction=ERROR_CORRECT_M,
        box_size=10,
        border=1,
    )
    qr.add_data(payload)
    qr.make(fit=True)

    img = qr.make_image(fill_color="black", back_color="white").convert("RGB")
    img = img.resize((size, size), Image.Resampling.NEAREST)

    buf = BytesIO()
    img.save(buf, format="PNG")
    return buf.getvalue()
