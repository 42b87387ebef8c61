"""Stock movement kinds and their effect on an ingredient's quantity."""

from decimal import Decimal
from enum import Enum


class MovementType(str, Enum):
    """Kind of a stock ledger entry.

    ``in`` and ``return`` add stock, ``out`` and ``waste`` remove it. The
    quantity of an ``adjustment`` is a signed delta that is applied as is.
    """

    IN = "in"
    OUT = "out"
    RETURN = "return"
    ADJUSTMENT = "adjustment"
    WASTE = "waste"

    @classmethod
    def from_string(cls, value: str) -> "MovementType":
        try:
            return cls(value.strip().lower())
        except ValueError:
            valid_values = ", ".join(m.value for m in cls)
            raise ValueError(
                f"Invalid movement type: {value}. Valid values are: {valid_values}"
            ) from None

    @property
    def is_signed(self) -> bool:
        """Whether the stored quantity already carries its sign."""
        return self == MovementType.ADJUSTMENT

    def signed_effect(self, quantity: Decimal) -> Decimal:
        """Change in current quantity caused by a movement of ``quantity``."""
        if self in (MovementType.IN, MovementType.RETURN):
            return quantity
        if self in (MovementType.OUT, MovementType.WASTE):
            return -quantity
        return quantity
