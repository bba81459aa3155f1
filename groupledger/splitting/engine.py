"""
Split Engine

Turns an expense total and a split policy into per-participant amounts.

GUARANTEES:
- The returned amounts always add up to the total, to the minor unit
- Leftover cents are assigned deterministically (participant order)
- Inputs are never mutated; the engine has no side effects

IMPORTANT: The engine NEVER silently fixes inputs. Amounts that do not
reconcile are rejected with InvalidSplitError for the user to correct.
"""

from decimal import ROUND_DOWN, Decimal
from typing import Optional, Sequence

from groupledger.config import get_settings
from groupledger.errors import InvalidSplitError
from groupledger.models.ledger import (
    AmountSplit,
    EqualSplit,
    PercentSplit,
    Share,
    SplitPolicy,
)
from groupledger.models.money import Money, total_of


HUNDRED = Decimal("100")


def _check_participants(total: Money, participants: Sequence[str]) -> None:
    if not participants:
        raise InvalidSplitError("At least one participant is required")

    if len(set(participants)) != len(participants):
        raise InvalidSplitError("Each participant may appear only once")

    if not total.is_positive:
        raise InvalidSplitError(f"Total must be greater than zero, got {total}")


def _check_keys(keys, participants: Sequence[str], label: str) -> None:
    """The policy must name exactly the participants, no more, no less."""
    missing = [user_id for user_id in participants if user_id not in keys]
    extra = sorted(set(keys) - set(participants))

    if missing:
        raise InvalidSplitError(f"No {label} given for: {', '.join(missing)}")
    if extra:
        raise InvalidSplitError(f"{label.capitalize()} given for non-participants: {', '.join(extra)}")


def _split_equally(total: Money, participants: Sequence[str]) -> dict[str, Money]:
    parts = total.divide_into(len(participants))
    return dict(zip(participants, parts))


def _split_by_amounts(
    total: Money,
    policy: AmountSplit,
    participants: Sequence[str],
) -> dict[str, Money]:
    _check_keys(policy.amounts, participants, "amount")

    result = {}
    for user_id in participants:
        amount = policy.amounts[user_id]
        if amount.currency != total.currency:
            raise InvalidSplitError(
                f"Amount for {user_id} is in {amount.currency}, expected {total.currency}"
            )
        if amount.is_negative:
            raise InvalidSplitError(f"Amount for {user_id} cannot be negative")
        result[user_id] = amount

    split_total = total_of(result.values(), currency=total.currency)
    if split_total != total:
        raise InvalidSplitError(
            f"Amounts add up to {split_total}, expected {total}"
        )

    return result


def _split_by_percentages(
    total: Money,
    policy: PercentSplit,
    participants: Sequence[str],
    tolerance: Decimal,
) -> dict[str, Money]:
    _check_keys(policy.percentages, participants, "percentage")

    for user_id in participants:
        if policy.percentages[user_id] < 0:
            raise InvalidSplitError(f"Percentage for {user_id} cannot be negative")

    percent_total = sum(
        (policy.percentages[user_id] for user_id in participants),
        Decimal("0"),
    )
    if abs(percent_total - HUNDRED) > tolerance:
        raise InvalidSplitError(
            f"Percentages add up to {percent_total}, expected 100"
        )

    # Everyone but the last participant is rounded down; the last
    # participant receives the remainder.
    result = {}
    for user_id in participants[:-1]:
        ratio = policy.percentages[user_id] / HUNDRED
        result[user_id] = total.multiply_by_ratio(ratio, rounding=ROUND_DOWN)

    last = participants[-1]
    result[last] = total - total_of(result.values(), currency=total.currency)

    # Percentages over 100 (within tolerance) can leave nothing for the last
    # participant
    if result[last].is_negative:
        raise InvalidSplitError(
            f"Percentages for {', '.join(participants[:-1])} exceed the total; "
            f"{last} would owe {result[last]}"
        )

    return result


def compute_split(
    total: Money,
    policy: SplitPolicy,
    participants: Sequence[str],
    percent_tolerance: Optional[Decimal] = None,
) -> dict[str, Money]:
    """
    Compute what each participant owes.

    Args:
        total: Expense total (must be positive)
        policy: EqualSplit, AmountSplit or PercentSplit
        participants: User ids in a stable order; the order decides who
                      receives leftover cents
        percent_tolerance: Allowed deviation of percentages from 100.
                           Defaults to the configured ledger tolerance.

    Returns:
        Mapping user_id -> owed amount, in participant order

    Raises:
        InvalidSplitError: If the policy does not reconcile to the total
    """
    participants = list(participants)
    _check_participants(total, participants)

    if isinstance(policy, EqualSplit):
        return _split_equally(total, participants)
    elif isinstance(policy, AmountSplit):
        return _split_by_amounts(total, policy, participants)
    elif isinstance(policy, PercentSplit):
        if percent_tolerance is None:
            percent_tolerance = get_settings().ledger.percent_tolerance
        return _split_by_percentages(total, policy, participants, percent_tolerance)
    else:
        raise InvalidSplitError(f"Unsupported split policy: {type(policy).__name__}")


def shares_from_split(split: dict[str, Money]) -> tuple[Share, ...]:
    """Convert a compute_split result into the Share tuple stored on an Expense."""
    return tuple(
        Share(user_id=user_id, amount=amount)
        for user_id, amount in split.items()
    )
