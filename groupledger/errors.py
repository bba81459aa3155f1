"""
Ledger Exceptions

Storage failures live with the storage interface
(groupledger.services.storage); these are the ledger's own errors.
"""


class LedgerError(Exception):
    """Base exception for ledger operations."""
    pass


class InvalidSplitError(LedgerError):
    """
    Split inputs do not reconcile to the expense total.

    This is a user-input error: nothing has been written and the
    caller should ask for corrected amounts.
    """
    pass


class UnbalancedLedgerError(LedgerError):
    """
    Net balances of a group do not sum to zero.

    This signals a programming error upstream; the operation is aborted.
    """

    def __init__(self, message: str, imbalance=None):
        super().__init__(message)
        self.imbalance = imbalance


class InvalidSettlementError(LedgerError):
    """A transfer cannot be settled against the current debts."""
    pass
