"""
Field Ledger - Source Package

A local-first business ledger for a field-service company: customers,
jobs, invoices, payments, expenses, inventory, reminders and attachments,
persisted on-device with no server.

DESIGN PRINCIPLES:
1. Money is integer cents, never floats
2. Derived money fields are recomputed, never patched
3. Every mutation is audited in the same unit of work
4. Deletes are undoable for a short window
5. Storage layer is swappable
"""

__version__ = "1.0.0"
__author__ = "Field Ledger Team"
