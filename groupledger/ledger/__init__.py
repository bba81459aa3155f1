"""Group ledger package: debts, balances, simplification and settlement."""

from groupledger.ledger.ledger import (
    Ledger,
    compute_net_balances,
    debts_for_expense,
)
from groupledger.ledger.settlement import SettlementRecorder, find_debt_path
from groupledger.ledger.simplifier import (
    apply_transfers,
    check_conservation,
    simplify_balances,
)

__all__ = [
    "Ledger",
    "SettlementRecorder",
    "apply_transfers",
    "check_conservation",
    "compute_net_balances",
    "debts_for_expense",
    "find_debt_path",
    "simplify_balances",
]
