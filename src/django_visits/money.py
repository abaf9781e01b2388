"""Money value object used by the billing gate.

Amounts are Decimal end to end. Floats are refused at construction so a
binary rounding error can never reach the ledger.
"""

from dataclasses import dataclass
from decimal import ROUND_HALF_EVEN, Decimal, InvalidOperation

from .exceptions import ValidationError


# Currency precision rules for settlement
CURRENCY_DECIMALS = {
    "ETB": 2, "USD": 2, "EUR": 2, "GBP": 2, "KES": 2,
    "JPY": 0, "KRW": 0,
}


def currency_decimals(currency: str) -> int:
    return CURRENCY_DECIMALS.get(currency, 2)


def to_decimal(value, field: str = "amount") -> Decimal:
    """Coerce int, str or Decimal to Decimal. Floats and garbage raise ValidationError."""
    if isinstance(value, bool) or isinstance(value, float):
        raise ValidationError(
            f"{field} must be a decimal string or Decimal, not {type(value).__name__}",
            errors={field: ["Invalid type"]},
        )
    if isinstance(value, Decimal):
        result = value
    else:
        try:
            result = Decimal(str(value))
        except (InvalidOperation, ValueError):
            raise ValidationError(f"{field} is not a number: {value!r}", errors={field: ["Not a number"]})
    if not result.is_finite():
        raise ValidationError(f"{field} must be finite", errors={field: ["Not finite"]})
    return result


@dataclass(frozen=True)
class Money:
    """
    Immutable money value.

    Usage:
        fee = Money(Decimal("200.00"), "ETB")
        balance = fee - Money(Decimal("50"), "ETB")
        balance.quantized()  # Money(Decimal("150.00"), "ETB")
    """
    amount: Decimal
    currency: str

    def __post_init__(self):
        object.__setattr__(self, "amount", to_decimal(self.amount))

    def quantized(self) -> "Money":
        """Return quantized to currency decimals using banker's rounding."""
        exponent = Decimal(10) ** -currency_decimals(self.currency)
        return Money(self.amount.quantize(exponent, rounding=ROUND_HALF_EVEN), self.currency)

    def has_valid_precision(self) -> bool:
        """True if the amount needs no rounding in its currency."""
        return self.amount == self.quantized().amount

    def _check_currency(self, other: "Money"):
        if self.currency != other.currency:
            raise ValidationError(f"Currency mismatch: {self.currency} vs {other.currency}")

    def __add__(self, other: "Money") -> "Money":
        self._check_currency(other)
        return Money(self.amount + other.amount, self.currency)

    def __sub__(self, other: "Money") -> "Money":
        self._check_currency(other)
        return Money(self.amount - other.amount, self.currency)

    def __mul__(self, factor: Decimal | int) -> "Money":
        return Money(self.amount * to_decimal(factor, "factor"), self.currency)

    def __rmul__(self, factor: Decimal | int) -> "Money":
        return self.__mul__(factor)

    def is_positive(self) -> bool:
        return self.amount > 0

    def is_negative(self) -> bool:
        return self.amount < 0

    def is_zero(self) -> bool:
        return self.amount == 0

    def __str__(self):
        return f"{self.quantized().amount} {self.currency}"
