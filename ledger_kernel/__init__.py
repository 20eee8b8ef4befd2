"""
Ledger Kernel - construction firm bookkeeping core.

A single-writer transaction ledger with:
- Invoice/payment matching through a canonical allocation table
- Atomic begin/commit/rollback boundary around every mutation
- Trash staging for cascaded deletes with restore and purge
- Deterministic snapshot export/import for backups
"""

__version__ = "0.1.0"
