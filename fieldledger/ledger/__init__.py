"""Business facade: the ledger's public operations."""

from fieldledger.ledger.core import LedgerEvent, UnitOfWork
from fieldledger.ledger.facade import Ledger, open_ledger
from fieldledger.ledger.statements import StatementImportResult

__all__ = ["Ledger", "LedgerEvent", "StatementImportResult", "UnitOfWork", "open_ledger"]
