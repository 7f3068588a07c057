"""
Installment Ledger

Weekly installment loan ledger for microfinance field collection: schedule
generation, FIFO payment allocation, loan lifecycle and collection reporting.
All money is handled as Decimal.
"""

__version__ = "1.0.0"
