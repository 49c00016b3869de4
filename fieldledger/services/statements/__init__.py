"""Sales statement (PayPal / eBay CSV export) parsing."""

from fieldledger.services.statements.parser import (
    EbayOrder,
    PayPalTransaction,
    StatementFormat,
    detect_format,
    dollars_to_cents,
    parse_ebay,
    parse_ebay_date,
    parse_paypal,
)

__all__ = [
    "EbayOrder",
    "PayPalTransaction",
    "StatementFormat",
    "detect_format",
    "dollars_to_cents",
    "parse_ebay",
    "parse_ebay_date",
    "parse_paypal",
]
