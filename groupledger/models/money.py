"""
Money - Fixed-Precision Currency Amount

DESIGN DECISION: Amounts are stored as an integer count of minor units
(cents). Floating point never touches a balance, so a split always
reconciles to the cent and two ledgers built from the same expenses
always agree.

All arithmetic returns new Money values. Mixing currencies is an error;
conversion between currencies is not supported.
"""

from decimal import ROUND_HALF_UP, Decimal
from typing import Union

from pydantic import BaseModel, ConfigDict, Field


MINOR_UNIT_EXPONENT = 2
MINOR_UNITS_PER_MAJOR = 10 ** MINOR_UNIT_EXPONENT
DEFAULT_CURRENCY = "USD"


class CurrencyMismatchError(ValueError):
    """Arithmetic attempted between amounts in different currencies."""
    pass


class Money(BaseModel):
    """
    An exact amount of a single currency.

    Usage:
        price = Money.of("30.00")
        shares = price.divide_into(3)   # 10.00, 10.00, 10.00
    """
    model_config = ConfigDict(frozen=True)

    minor_units: int = Field(
        ...,
        description="Amount in minor units (e.g. cents); may be negative"
    )
    currency: str = Field(
        default=DEFAULT_CURRENCY,
        min_length=3,
        max_length=3,
        description="ISO 4217 currency code"
    )

    # -------------------------------------------------------------------------
    # Constructors
    # -------------------------------------------------------------------------

    @classmethod
    def zero(cls, currency: str = DEFAULT_CURRENCY) -> "Money":
        return cls(minor_units=0, currency=currency)

    @classmethod
    def from_decimal(
        cls,
        amount: Union[Decimal, int, str],
        currency: str = DEFAULT_CURRENCY,
    ) -> "Money":
        """
        Build Money from a major-unit amount.

        Values with more precision than the minor unit are rounded
        half-up, so "0.005" becomes one cent.
        """
        value = Decimal(str(amount)) * MINOR_UNITS_PER_MAJOR
        units = value.quantize(Decimal("1"), rounding=ROUND_HALF_UP)
        return cls(minor_units=int(units), currency=currency)

    @classmethod
    def of(cls, amount: Union[Decimal, int, str], currency: str = DEFAULT_CURRENCY) -> "Money":
        """Shorthand for from_decimal."""
        return cls.from_decimal(amount, currency)

    # -------------------------------------------------------------------------
    # Conversions
    # -------------------------------------------------------------------------

    def to_decimal(self) -> Decimal:
        """Major-unit value, e.g. Decimal('12.34')."""
        return Decimal(self.minor_units).scaleb(-MINOR_UNIT_EXPONENT)

    def __str__(self) -> str:
        return f"{self.to_decimal():.{MINOR_UNIT_EXPONENT}f} {self.currency}"

    # -------------------------------------------------------------------------
    # Predicates
    # -------------------------------------------------------------------------

    @property
    def is_zero(self) -> bool:
        return self.minor_units == 0

    @property
    def is_positive(self) -> bool:
        return self.minor_units > 0

    @property
    def is_negative(self) -> bool:
        return self.minor_units < 0

    # -------------------------------------------------------------------------
    # Arithmetic
    # -------------------------------------------------------------------------

    def _check_currency(self, other: "Money") -> None:
        if self.currency != other.currency:
            raise CurrencyMismatchError(
                f"Cannot combine {self.currency} with {other.currency}"
            )

    def _with_units(self, minor_units: int) -> "Money":
        return Money(minor_units=minor_units, currency=self.currency)

    def __add__(self, other: "Money") -> "Money":
        if not isinstance(other, Money):
            return NotImplemented
        self._check_currency(other)
        return self._with_units(self.minor_units + other.minor_units)

    def __radd__(self, other) -> "Money":
        # Lets the builtin sum() start from the integer 0
        if other == 0:
            return self
        return NotImplemented

    def __sub__(self, other: "Money") -> "Money":
        if not isinstance(other, Money):
            return NotImplemented
        self._check_currency(other)
        return self._with_units(self.minor_units - other.minor_units)

    def __neg__(self) -> "Money":
        return self._with_units(-self.minor_units)

    def __abs__(self) -> "Money":
        return self._with_units(abs(self.minor_units))

    def __lt__(self, other: "Money") -> bool:
        if not isinstance(other, Money):
            return NotImplemented
        self._check_currency(other)
        return self.minor_units < other.minor_units

    def __le__(self, other: "Money") -> bool:
        if not isinstance(other, Money):
            return NotImplemented
        self._check_currency(other)
        return self.minor_units <= other.minor_units

    def __gt__(self, other: "Money") -> bool:
        if not isinstance(other, Money):
            return NotImplemented
        self._check_currency(other)
        return self.minor_units > other.minor_units

    def __ge__(self, other: "Money") -> bool:
        if not isinstance(other, Money):
            return NotImplemented
        self._check_currency(other)
        return self.minor_units >= other.minor_units

    def multiply_by_ratio(
        self,
        ratio: Union[Decimal, int, str],
        rounding: str = ROUND_HALF_UP,
    ) -> "Money":
        """
        Scale by a ratio, rounding the result to a whole minor unit.

        Args:
            ratio: Multiplier, e.g. Decimal("0.25")
            rounding: A decimal rounding mode (ROUND_HALF_UP, ROUND_DOWN, ...)
        """
        scaled = Decimal(self.minor_units) * Decimal(str(ratio))
        return self._with_units(int(scaled.quantize(Decimal("1"), rounding=rounding)))

    def divide_into(self, parts: int) -> list["Money"]:
        """
        Divide into `parts` amounts that sum exactly to this amount.

        The leftover minor units are handed out one at a time to the
        first recipients, so 10.00 / 3 gives [3.34, 3.33, 3.33].
        """
        if parts <= 0:
            raise ValueError(f"Cannot divide into {parts} parts")

        sign = -1 if self.minor_units < 0 else 1
        base, remainder = divmod(abs(self.minor_units), parts)

        return [
            self._with_units(sign * (base + (1 if index < remainder else 0)))
            for index in range(parts)
        ]


def total_of(amounts, currency: str = DEFAULT_CURRENCY) -> Money:
    """Sum an iterable of Money, returning zero for an empty iterable."""
    result = Money.zero(currency)
    for amount in amounts:
        result = result + amount
    return result
