"""
Core Data Models for the Group Ledger

These models define the strict schemas for every record the ledger
creates or reads. They are designed to:
1. Enforce invariants at construction time (shares reconcile, no self-debt)
2. Be immutable, so a snapshot handed to a reader can never change under it
3. Be serializable for storage and logging

DESIGN DECISION: Every model is frozen. A Debt is "mutated" only by
writing back `debt.model_copy(update=...)` through storage.
"""

from datetime import date, datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Annotated, Literal, Optional, Union
from uuid import UUID, uuid4

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    field_validator,
    model_validator,
)

from groupledger.models.money import Money, total_of


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


# =============================================================================
# ENUMS - Finite set of valid values
# =============================================================================

class Category(str, Enum):
    """
    Expense categories.

    DESIGN DECISION: A closed set rather than free text. Raw values
    from older records that are not recognised fall back to OTHER.
    """
    DONATION = "donation"
    FOOD = "food"
    ENTERTAINMENT = "entertainment"
    HEALTH = "health"
    SHOPPING = "shopping"
    TRANSPORTATION = "transportation"
    UTILITIES = "utilities"
    OTHER = "other"

    @classmethod
    def parse(cls, raw: Optional[str]) -> "Category":
        """Map a raw stored value to a category, defaulting to OTHER."""
        try:
            return cls((raw or "").strip().lower())
        except ValueError:
            return cls.OTHER


class SplitMethod(str, Enum):
    """How an expense total is divided among participants."""
    EQUAL = "equal"
    AMOUNT = "amount"
    PERCENTAGE = "percentage"


# =============================================================================
# PEOPLE
# =============================================================================

class User(BaseModel):
    """
    A person who can pay for or take part in expenses.

    The id is opaque; the ledger only compares ids for equality and
    uses their ordering to break ties deterministically.
    """
    model_config = ConfigDict(frozen=True, str_strip_whitespace=True)

    id: str = Field(
        default_factory=lambda: str(uuid4()),
        min_length=1,
        description="Opaque user identifier"
    )
    name: str = Field(
        ...,
        min_length=1,
        max_length=200,
        description="Display name"
    )


class Group(BaseModel):
    """A named set of users who share expenses."""
    model_config = ConfigDict(frozen=True, str_strip_whitespace=True)

    id: str = Field(
        default_factory=lambda: str(uuid4()),
        min_length=1,
        description="Opaque group identifier"
    )
    name: str = Field(
        ...,
        min_length=1,
        max_length=200,
        description="Group name"
    )
    member_ids: tuple[str, ...] = Field(
        default_factory=tuple,
        description="Members in display order"
    )

    @field_validator('member_ids')
    @classmethod
    def validate_unique_members(cls, v: tuple[str, ...]) -> tuple[str, ...]:
        if len(set(v)) != len(v):
            raise ValueError("Group members must be unique")
        return v

    def has_member(self, user_id: str) -> bool:
        return user_id in self.member_ids


# =============================================================================
# SPLIT POLICIES
# =============================================================================

class EqualSplit(BaseModel):
    """Divide the total equally; leftover cents go to the first participants."""
    model_config = ConfigDict(frozen=True)

    method: Literal[SplitMethod.EQUAL] = SplitMethod.EQUAL


class AmountSplit(BaseModel):
    """Explicit amount per participant; must add up to the total exactly."""
    model_config = ConfigDict(frozen=True)

    method: Literal[SplitMethod.AMOUNT] = SplitMethod.AMOUNT
    amounts: dict[str, Money] = Field(
        ...,
        description="user_id -> owed amount"
    )


class PercentSplit(BaseModel):
    """Percentage per participant; must add up to 100."""
    model_config = ConfigDict(frozen=True)

    method: Literal[SplitMethod.PERCENTAGE] = SplitMethod.PERCENTAGE
    percentages: dict[str, Decimal] = Field(
        ...,
        description="user_id -> percentage of the total (0-100)"
    )


SplitPolicy = Annotated[
    Union[EqualSplit, AmountSplit, PercentSplit],
    Field(discriminator="method"),
]


# =============================================================================
# EXPENSES
# =============================================================================

class Share(BaseModel):
    """One participant's part of an expense."""
    model_config = ConfigDict(frozen=True)

    user_id: str = Field(..., min_length=1)
    amount: Money


class Expense(BaseModel):
    """
    A single expense, optionally shared within a group.

    CRITICAL: The shares must add up to the expense amount exactly.
    An expense that does not reconcile cannot be constructed.
    """
    model_config = ConfigDict(frozen=True, str_strip_whitespace=True)

    id: UUID = Field(
        default_factory=uuid4,
        description="Unique expense ID"
    )
    name: str = Field(
        default="",
        max_length=200,
        description="What the money was spent on"
    )
    amount: Money = Field(
        ...,
        description="Total paid"
    )
    category: Category = Field(
        default=Category.OTHER,
        description="Expense category"
    )
    expense_date: date = Field(
        default_factory=date.today,
        description="When the expense happened"
    )
    payer_id: str = Field(
        ...,
        min_length=1,
        description="User who paid"
    )
    group_id: Optional[str] = Field(
        default=None,
        description="Owning group; None for a standalone expense"
    )
    shares: tuple[Share, ...] = Field(
        default_factory=tuple,
        description="Who owes what, in participant order"
    )
    split_method: SplitMethod = Field(
        default=SplitMethod.EQUAL,
        description="How the shares were computed"
    )
    created_at: datetime = Field(default_factory=utc_now)

    @property
    def is_group_expense(self) -> bool:
        return self.group_id is not None

    @property
    def participant_ids(self) -> list[str]:
        return [share.user_id for share in self.shares]

    @model_validator(mode='after')
    def validate_shares(self) -> 'Expense':
        """Validate the amount and that shares reconcile to it."""
        if not self.amount.is_positive:
            raise ValueError("Expense amount must be greater than zero")

        if not self.shares:
            return self

        participants = self.participant_ids
        if len(set(participants)) != len(participants):
            raise ValueError("Each participant may appear only once")

        if any(share.amount.is_negative for share in self.shares):
            raise ValueError("Shares cannot be negative")

        shares_total = total_of(
            (share.amount for share in self.shares),
            currency=self.amount.currency,
        )
        if shares_total != self.amount:
            raise ValueError(
                f"Shares total {shares_total} does not match expense amount {self.amount}"
            )

        return self


# =============================================================================
# DEBTS
# =============================================================================

class Debt(BaseModel):
    """
    One directed obligation: `owed_by` owes `owed_to` the amount.

    Created from one expense's payer/participant pair. Multiple debts
    may exist between the same two users across different expenses.
    """
    model_config = ConfigDict(frozen=True)

    id: UUID = Field(default_factory=uuid4)
    expense_id: Optional[UUID] = Field(
        default=None,
        description="Originating expense; None for a debt created by settlement re-routing"
    )
    group_id: str = Field(..., min_length=1)
    owed_by: str = Field(..., min_length=1)
    owed_to: str = Field(..., min_length=1)
    amount: Money
    settled: bool = False
    created_at: datetime = Field(default_factory=utc_now)
    settled_at: Optional[datetime] = None
    parent_id: Optional[UUID] = Field(
        default=None,
        description="Debt this one was split off from during settlement"
    )

    @model_validator(mode='after')
    def validate_debt(self) -> 'Debt':
        if self.owed_by == self.owed_to:
            raise ValueError("A user cannot owe themselves")
        if not self.amount.is_positive:
            raise ValueError("Debt amount must be greater than zero")
        return self

    def mark_settled(self, when: Optional[datetime] = None) -> "Debt":
        """Return a settled copy of this debt."""
        return self.model_copy(update={
            "settled": True,
            "settled_at": when or utc_now(),
        })


class SimplifiedTransfer(BaseModel):
    """
    A suggested payment produced by debt simplification.

    Never stored; always recomputed from the current unsettled debts.
    """
    model_config = ConfigDict(frozen=True)

    from_user: str = Field(..., min_length=1)
    to_user: str = Field(..., min_length=1)
    amount: Money

    @model_validator(mode='after')
    def validate_transfer(self) -> 'SimplifiedTransfer':
        if self.from_user == self.to_user:
            raise ValueError("A transfer needs two different users")
        return self
