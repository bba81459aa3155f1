"""
Group Ledger - Source Package

Records shared expenses, turns them into pairwise debts, and reduces a
group's debts to a short list of settlement payments.

DESIGN PRINCIPLES:
1. Money is exact: integer minor units, never floats
2. Fail early, fail visibly
3. No silent corrections
4. Every mutation must be auditable
5. Storage layer is swappable
"""

__version__ = "1.0.0"
__author__ = "Group Ledger Team"
