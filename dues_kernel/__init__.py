"""
Dues Kernel - hall dues ledger

A semester-scoped dues ledger with:
- Atomic semester rollover (exactly one active semester)
- Identifier-aware paid/unpaid resolution
- Payment recording with duplicate rejection
- Revenue, expense and defaulter reporting
"""

__version__ = "0.1.0"
