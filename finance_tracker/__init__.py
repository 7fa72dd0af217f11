"""
Finance Tracker - Source Package

Personal finance tracking core: income and expense transactions
(single, installment-split or recurring), categories, credit cards
and bills to pay, persisted in a per-user document store.

DESIGN PRINCIPLES:
1. A submission expands into its full group before anything is written
2. Groups are written, edited and deleted in one atomic batch
3. No transaction ever points at a category that doesn't exist
4. Every write is auditable
5. Storage and identity are injected, never global
"""

__version__ = "1.0.0"
__author__ = "Finance Tracker Team"
