"""
Finance Core - Source Package

The derived-state consistency and scheduling engine of a personal
finance tracker: budgets, loans and recurring payments kept correct
as ledger transactions change and as calendar time advances.

DESIGN PRINCIPLES:
1. Derived values are recomputed from source data, never patched
2. Every mutation is one atomic unit of work
3. Fail early, fail visibly (tagged error kinds)
4. Every step must be auditable
5. Storage layer is swappable
"""

__version__ = "1.0.0"
__author__ = "Finance Core Team"
