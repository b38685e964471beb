"""
Loan Amortization Core

Amortization schedule generation and borrower event replay for loans,
with all financial math done in Decimal to avoid cent-level drift.
"""

__version__ = "1.0.0"
