"""Billing notice composition -- totals, payment reference, LINE Flex layout.

A notice is two Flex messages pushed in order: the PromptPay QR image, then
the itemized statement. Amounts are kept as exact ``Decimal`` values; only
the rendered text is rounded to two places.
"""

from __future__ import annotations

import secrets
from collections.abc import Iterable, Mapping
from decimal import ROUND_HALF_UP, Decimal, Inexact, InvalidOperation, localcontext
from typing import Any

from pydantic import BaseModel, Field

CURRENCY_LABEL = "บาท"
PAYMENT_REF_DIGITS = 10

_CENT = Decimal("0.01")


# ---------------------------------------------------------------------------
# Pydantic schemas
# ---------------------------------------------------------------------------

class LineItem(BaseModel):
    transaction: str = Field(..., min_length=1, max_length=200)
    amount: Decimal = Field(..., ge=0)


# ---------------------------------------------------------------------------
# Amounts
# ---------------------------------------------------------------------------

def to_decimal(value: Any) -> Decimal:
    """Coerce a JSON number or numeric string to an exact, finite Decimal.

    Floats go through ``str`` so 49.5 becomes Decimal("49.5") rather than
    its binary expansion.
    """
    if isinstance(value, bool):
        raise ValueError(f"Not an amount: {value!r}")
    if isinstance(value, Decimal):
        result = value
    else:
        try:
            result = Decimal(str(value).strip())
        except InvalidOperation as exc:
            raise ValueError(f"Not an amount: {value!r}") from exc
    if not result.is_finite():
        raise ValueError(f"Not an amount: {value!r}")
    return result


def _amount_of(item: Any) -> Any:
    if isinstance(item, Mapping):
        return item["amount"]
    return item.amount


def _exact_precision(amounts: list[Decimal]) -> int:
    """Digits needed to hold the sum of *amounts* without rounding."""
    highest = max(a.adjusted() for a in amounts)
    lowest = min(a.as_tuple().exponent for a in amounts)
    # one extra digit per tenfold of terms covers the carries
    return max(highest - lowest + 1 + len(str(len(amounts))), 28)


def compute_total(items: Iterable[Any]) -> Decimal:
    """Exact sum of the items' amounts (LineItem objects or mappings).

    The sum runs in a local context wide enough for every digit, with
    ``Inexact`` trapped so a rounded total can never be returned.
    """
    amounts = [to_decimal(_amount_of(item)) for item in items]
    if not amounts:
        return Decimal("0")
    with localcontext() as ctx:
        ctx.prec = _exact_precision(amounts)
        ctx.traps[Inexact] = True
        return sum(amounts, Decimal("0"))


def format_amount(value: Decimal) -> str:
    """Two-decimal display form, rounded half-up."""
    amount = to_decimal(value)
    with localcontext() as ctx:
        ctx.prec = max(amount.adjusted() + 4, 28)
        return f"{amount.quantize(_CENT, rounding=ROUND_HALF_UP):.2f}"


def new_payment_ref() -> str:
    """Random numeric display reference shown as PAYMENT ID on the statement."""
    return str(secrets.randbelow(10 ** PAYMENT_REF_DIGITS)).zfill(PAYMENT_REF_DIGITS)


# ---------------------------------------------------------------------------
# Flex message builders
# ---------------------------------------------------------------------------

def build_qr_message(qr_code_url: str) -> dict[str, Any]:
    return {
        "type": "flex",
        "altText": "QR Code PromptPay",
        "contents": {
            "type": "bubble",
            "body": {
                "type": "box",
                "layout": "vertical",
                "contents": [
                    {
                        "type": "image",
                        "url": qr_code_url,
                        "size": "full",
                        "aspectMode": "cover",
                        "aspectRatio": "1:1",
                        "gravity": "center",
                    }
                ],
                "paddingAll": "0px",
            },
        },
    }


def _text(text: str, **style: Any) -> dict[str, Any]:
    return {"type": "text", "text": text, **style}


def _separator() -> dict[str, Any]:
    return {"type": "separator", "margin": "xxl"}


def _item_row(item: LineItem) -> dict[str, Any]:
    return {
        "type": "box",
        "layout": "horizontal",
        "contents": [
            _text(item.transaction, size="sm", color="#555555", flex=0),
            _text(
                f"{format_amount(item.amount)} {CURRENCY_LABEL}",
                size="sm", color="#111111", align="end",
            ),
        ],
    }


def build_statement_message(
    statement_month: str,
    total_amount: Decimal,
    items: list[LineItem],
    payment_ref: str,
) -> dict[str, Any]:
    total_text = f"{format_amount(total_amount)} {CURRENCY_LABEL}"
    return {
        "type": "flex",
        "altText": f"บิลใบแจ้งยอดประจำเดือน {statement_month}",
        "contents": {
            "type": "bubble",
            "body": {
                "type": "box",
                "layout": "vertical",
                "contents": [
                    _text("บิลค่าใช้จ่าย", weight="bold", color="#1DB446", size="lg"),
                    _text(f"ยอด : {total_text}", weight="bold", size="xxl", margin="md"),
                    _text(f"ประจำเดือน {statement_month}", size="md", color="#aaaaaa", wrap=True),
                    _separator(),
                    {
                        "type": "box",
                        "layout": "vertical",
                        "margin": "xxl",
                        "spacing": "sm",
                        "contents": [_item_row(item) for item in items],
                    },
                    _separator(),
                    {
                        "type": "box",
                        "layout": "horizontal",
                        "contents": [
                            _text("รวม", size="sm", color="#555555"),
                            _text(total_text, size="sm", color="#111111", align="end"),
                        ],
                    },
                    _separator(),
                    {
                        "type": "box",
                        "layout": "horizontal",
                        "margin": "md",
                        "contents": [
                            _text("PAYMENT ID", size="xs", color="#aaaaaa", flex=0),
                            _text(f"#{payment_ref}", color="#aaaaaa", size="xs", align="end"),
                        ],
                    },
                ],
            },
            "styles": {"footer": {"separator": True}},
        },
    }


def build_notice_view(
    statement_month: str,
    total_amount: Decimal,
    items: list[LineItem],
    payment_ref: str,
    qr_code_url: str,
) -> list[dict[str, Any]]:
    """Return the notice's messages in delivery order: QR image, statement."""
    return [
        build_qr_message(qr_code_url),
        build_statement_message(statement_month, total_amount, items, payment_ref),
    ]
