"""
Ledger Kernel

Tenant-scoped financial ledger and cash-reconciliation engine:
- Balanced double-entry journal postings
- Accounting periods that lock out stale drafts
- Point-of-sale cash sessions reconciled against movement replay
- Supplier withholding certificates with gapless sequential numbers
"""

__version__ = "0.1.0"
