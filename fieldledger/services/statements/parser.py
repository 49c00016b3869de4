"""
Sales Statement Parser

Reads the transaction exports a small business gets from its payment and
marketplace accounts and turns each sale into a typed row:
1. PayPal activity download ("Date","Time","TimeZone","Name",...)
2. eBay Order earnings report
3. eBay Transaction report (older export, same orders)

This module only parses. Deciding what a row becomes in the ledger
(customer, job, invoice, payment, expenses) belongs to the ledger.

CRITICAL: A file that is neither format is REJECTED. We do not guess at
columns of an unknown export.
"""

import csv
import io
import re
from datetime import date, datetime, time, timezone
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from fieldledger.billing.engine import round_cents
from fieldledger.errors import ValidationError


class StatementFormat(str, Enum):
    PAYPAL = "paypal"
    EBAY = "ebay"


EBAY_EARNINGS_HEADER = ["Order creation date", "Order number", "Item ID"]
EBAY_TRANSACTION_HEADER = ["Transaction creation date", "Type", "Order number"]
PAYPAL_HEADER_MARKER = '"Date","Time","TimeZone","Name"'

# Column positions in the eBay Order earnings report
EARNINGS_COLUMNS = {
    "order_date": 0,
    "order_number": 1,
    "item_title": 3,
    "buyer_name": 4,
    "ship_city": 5,
    "ship_state": 6,
    "ship_zip": 7,
    "ship_country": 8,
    "quantity": 12,
    "item_subtotal": 13,
    "shipping": 14,
    "shipping_labels": 28,
    "refunds": 31,
}
EARNINGS_FEES = {
    "FVF fixed": 19,
    "FVF variable": 20,
    "Below standard": 21,
    "INAD": 22,
    "International": 23,
    "Deposit processing": 24,
    "Regulatory": 25,
    "Promoted listing": 26,
    "Charity": 27,
    "Payment dispute": 29,
}
EARNINGS_MIN_COLUMNS = 33

# Column positions in the eBay Transaction report
TRANSACTION_COLUMNS = {
    "order_date": 0,
    "order_number": 2,
    "buyer_name": 5,
    "ship_city": 6,
    "ship_state": 7,
    "ship_zip": 8,
    "ship_country": 9,
    "item_title": 19,
    "quantity": 21,
    "item_subtotal": 22,
    "shipping": 23,
}
TRANSACTION_FEES = {
    "FVF fixed": 26,
    "FVF variable": 27,
    "Regulatory": 28,
    "INAD": 29,
    "Below standard": 30,
    "International": 31,
    "Charity": 32,
    "Deposit processing": 33,
}
TRANSACTION_MIN_COLUMNS = 38

PAYPAL_MIN_COLUMNS = 15

EMPTY_CELLS = {"", "--"}


class PayPalTransaction(BaseModel):
    """One row of a PayPal activity download."""

    model_config = ConfigDict(frozen=True)

    occurred_at: datetime
    name: str
    type: str
    status: str
    amount_cents: int
    fee_cents: int = Field(default=0, ge=0)
    transaction_id: str
    item_title: str = ""

    @property
    def is_completed_sale(self) -> bool:
        return self.status == "Completed" and bool(self.name) and self.amount_cents > 0


class EbayOrder(BaseModel):
    """One order line from an eBay earnings or transaction report."""

    model_config = ConfigDict(frozen=True)

    order_date: date
    order_number: str
    item_title: str = ""
    buyer_name: str
    ship_to: str = ""
    quantity: int = Field(default=1, ge=1)
    item_subtotal_cents: int = Field(default=0, ge=0)
    shipping_cents: int = Field(default=0, ge=0)
    fees: dict[str, int] = Field(
        default_factory=dict,
        description="Non-zero selling fees by label, in cents"
    )
    shipping_label_cents: int = Field(default=0, ge=0)
    refund_cents: int = Field(default=0, ge=0)

    @property
    def total_fees_cents(self) -> int:
        return sum(self.fees.values())


def detect_format(text: str) -> StatementFormat:
    """
    Identify which export a CSV file is.

    Raises:
        ValidationError: the file is not a known export
    """
    text = text.lstrip("\ufeff")
    ebay_markers = (
        "Order earnings report",
        ",".join(EBAY_EARNINGS_HEADER),
        "Transaction report",
        ",".join(EBAY_TRANSACTION_HEADER),
    )
    if any(marker in text for marker in ebay_markers):
        return StatementFormat.EBAY
    if PAYPAL_HEADER_MARKER in text:
        return StatementFormat.PAYPAL
    raise ValidationError(
        "Unrecognized CSV format. Expected a PayPal activity download or an eBay earnings/transaction report",
        field="csv",
    )


def dollars_to_cents(value: str, row_number: Optional[int] = None) -> int:
    """
    Convert an export's money cell to cents, e.g. "$1,234.56" -> 123456.

    Empty and "--" cells are zero.
    """
    cleaned = re.sub(r"[^0-9.\-]", "", value or "")
    if not cleaned.strip("-."):
        return 0
    try:
        return round_cents(Decimal(cleaned) * 100)
    except InvalidOperation:
        raise ValidationError(f"{_where(row_number)}invalid amount {value!r}", field="csv")


def parse_paypal(text: str) -> list[PayPalTransaction]:
    """Every transaction row of a PayPal activity download."""
    rows = list(csv.reader(io.StringIO(text.lstrip("\ufeff"))))
    transactions = []
    for row_number, row in enumerate(rows[1:], start=2):
        cells = [cell.strip() for cell in row]
        if len(cells) < PAYPAL_MIN_COLUMNS:
            continue
        transactions.append(PayPalTransaction(
            occurred_at=_paypal_timestamp(cells[0], cells[1], row_number),
            name=cells[3],
            type=cells[4],
            status=cells[5],
            amount_cents=dollars_to_cents(cells[7], row_number),
            fee_cents=abs(dollars_to_cents(cells[8], row_number)),
            transaction_id=cells[13],
            item_title=cells[14],
        ))
    return transactions


def parse_ebay(text: str) -> list[EbayOrder]:
    """
    Every order of an eBay earnings or transaction report.

    Reports start with a few lines of preamble; parsing begins after the
    column header row. Rows with no order number or no buyer (payouts,
    adjustments) are left out.
    """
    rows = list(csv.reader(io.StringIO(text.lstrip("\ufeff"))))
    header_index = None
    for index, row in enumerate(rows):
        head = [cell.strip() for cell in row[:3]]
        if head in (EBAY_EARNINGS_HEADER, EBAY_TRANSACTION_HEADER):
            header_index = index
            break
    if header_index is None:
        return []

    earnings = rows[header_index][0].strip() == EBAY_EARNINGS_HEADER[0]
    columns, fee_columns, min_columns = (
        (EARNINGS_COLUMNS, EARNINGS_FEES, EARNINGS_MIN_COLUMNS) if earnings
        else (TRANSACTION_COLUMNS, TRANSACTION_FEES, TRANSACTION_MIN_COLUMNS)
    )

    orders = []
    for row_number, row in enumerate(rows[header_index + 1:], start=header_index + 2):
        cells = [cell.strip() for cell in row]
        if len(cells) < min_columns:
            continue
        if not earnings and cells[1] != "Order":
            continue

        def cell(name: str) -> str:
            position = columns.get(name)
            value = cells[position] if position is not None else ""
            return "" if value in EMPTY_CELLS else value

        if not cell("order_number") or not cell("buyer_name"):
            continue

        fees = {}
        for label, position in fee_columns.items():
            cents = abs(dollars_to_cents(cells[position], row_number))
            if cents:
                fees[label] = cents

        ship_to = ", ".join(
            part for part in (cell("ship_city"), cell("ship_state"), cell("ship_zip"), cell("ship_country"))
            if part
        )
        quantity = cell("quantity")
        orders.append(EbayOrder(
            order_date=parse_ebay_date(cell("order_date"), row_number),
            order_number=cell("order_number"),
            item_title=cell("item_title"),
            buyer_name=cell("buyer_name"),
            ship_to=ship_to,
            quantity=int(quantity) if quantity.isdigit() and int(quantity) > 0 else 1,
            item_subtotal_cents=abs(dollars_to_cents(cell("item_subtotal"), row_number)),
            shipping_cents=abs(dollars_to_cents(cell("shipping"), row_number)),
            fees=fees,
            shipping_label_cents=abs(dollars_to_cents(cell("shipping_labels"), row_number)),
            refund_cents=abs(dollars_to_cents(cell("refunds"), row_number)),
        ))
    return orders


def parse_ebay_date(value: str, row_number: Optional[int] = None) -> date:
    """Parse "24-Feb-25", "24-Feb-2025", "Feb 9, 2026" or ISO dates."""
    for fmt in ["%d-%b-%y", "%d-%b-%Y", "%b %d, %Y", "%Y-%m-%d"]:
        try:
            return datetime.strptime(value, fmt).date()
        except ValueError:
            continue
    raise ValidationError(f"{_where(row_number)}unrecognized date {value!r}", field="csv")


def _paypal_timestamp(day: str, clock: str, row_number: int) -> datetime:
    # The TimeZone column holds abbreviations (PST, PDT) that do not map
    # to a single offset; timestamps are recorded as UTC.
    try:
        service_date = datetime.strptime(day, "%m/%d/%Y").date()
    except ValueError:
        raise ValidationError(f"{_where(row_number)}unrecognized date {day!r}", field="csv")
    try:
        clock_time = datetime.strptime(clock, "%H:%M:%S").time() if clock else time()
    except ValueError:
        raise ValidationError(f"{_where(row_number)}unrecognized time {clock!r}", field="csv")
    return datetime.combine(service_date, clock_time, tzinfo=timezone.utc)


def _where(row_number: Optional[int]) -> str:
    return f"Row {row_number}: " if row_number is not None else ""
