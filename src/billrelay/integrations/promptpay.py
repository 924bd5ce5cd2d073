"""PromptPay QR payloads and PNG rendering.

The EMVCo merchant-presented payload comes from the ``promptpay`` package;
this module only fixes the amount at two decimals and renders the payload
as a PNG through ``qrcode`` on top of Pillow.
"""

from __future__ import annotations

import base64
import io
import re
from decimal import ROUND_HALF_UP, Decimal, localcontext

import qrcode
from promptpay import qrcode as promptpay_qrcode
from qrcode.constants import ERROR_CORRECT_M

# EMV tag 54 (transaction amount) holds at most 13 characters
MAX_AMOUNT_CHARS = 13

_CENT = Decimal("0.01")


def format_payment_amount(amount: Decimal) -> str:
    """Two-decimal amount for tag 54, rounded half-up.

    Raises ValueError when the amount is negative or does not fit the tag.
    """
    amount = Decimal(amount)
    with localcontext() as ctx:
        ctx.prec = max(amount.adjusted() + 4, 28)
        rounded = amount.quantize(_CENT, rounding=ROUND_HALF_UP)
    if rounded < 0:
        raise ValueError(f"PromptPay amount must not be negative: {amount}")
    text = f"{rounded:.2f}"
    if len(text) > MAX_AMOUNT_CHARS:
        raise ValueError(
            f"PromptPay amount {text} exceeds {MAX_AMOUNT_CHARS} characters"
        )
    return text


def build_payment_payload(payee_id: str, amount: Decimal | None = None) -> str:
    """Return the PromptPay payload string for *payee_id* and *amount*.

    *payee_id* may be a phone number, a 13-digit tax id or a 15-digit
    e-wallet id; separators are ignored. Without an amount the payload is a
    static (reusable) code.
    """
    target = re.sub(r"\D", "", payee_id)
    if not target:
        raise ValueError("PromptPay id must contain digits")
    if not amount:
        return promptpay_qrcode.generate_payload(target)
    return promptpay_qrcode.generate_payload(target, Decimal(format_payment_amount(amount)))


def render_qr_png(payload: str, box_size: int = 10, border: int = 4) -> bytes:
    """Render *payload* as a PNG QR code and return the image bytes."""
    qr = qrcode.QRCode(error_correction=ERROR_CORRECT_M, box_size=box_size, border=border)
    qr.add_data(payload)
    qr.make(fit=True)
    image = qr.make_image(fill_color="black", back_color="white")
    buf = io.BytesIO()
    image.save(buf, format="PNG")
    return buf.getvalue()


def to_data_url(png: bytes) -> str:
    return "data:image/png;base64," + base64.b64encode(png).decode("ascii")
