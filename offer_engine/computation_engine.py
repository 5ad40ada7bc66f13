"""
Computation engine for offer discount calculations
"""

from decimal import ROUND_HALF_UP, Decimal, InvalidOperation, getcontext, localcontext
from typing import Any, Optional

from loguru import logger

from .exceptions import ComputationError, UnknownDiscountTypeWarning
from .models import DiscountType, Offer


class ComputationEngine:
    """
    Computes the discount an offer grants on a payable amount

    The raw discount depends on the discount type. It is then capped by the
    offer's max_discount, capped by the payable amount, and only then rounded
    to currency precision.
    """

    def __init__(self, precision: int = 2):
        """
        Initialize computation engine

        Args:
            precision: Decimal places of the returned amounts
        """
        self.logger = logger
        self.precision = precision
        self.quantum = Decimal(1).scaleb(-precision)

    def _safe_decimal(self, value: Any, default: str = "0") -> Decimal:
        """
        Safely convert a value to Decimal.

        Any invalid or non-numeric input is logged and replaced by the
        provided default.
        """
        try:
            return value if isinstance(value, Decimal) else Decimal(str(value))
        except (InvalidOperation, ValueError, TypeError) as e:
            self.logger.warning(f"Invalid decimal value '{value}' - using default {default}. Error: {e}")
            return Decimal(default)

    def compute_discount(self, offer: Offer, amount_to_pay: Any) -> Decimal:
        """
        Compute the discount amount for one offer

        Args:
            offer: Canonical offer
            amount_to_pay: Payable amount

        Returns:
            Discount rounded to the configured precision, never above
            max_discount or amount_to_pay
        """
        try:
            amount = self._safe_decimal(amount_to_pay)
            with self._exact_context(amount, offer.discount_value, offer.max_discount):
                discount = self._raw_discount(offer, amount)

                if offer.max_discount is not None and discount > offer.max_discount:
                    self.logger.debug(f"Capping discount {discount} at max_discount {offer.max_discount}")
                    discount = offer.max_discount

                if discount > amount:
                    discount = amount

                return self.round_amount(discount)

        except (InvalidOperation, ArithmeticError) as e:
            self.logger.error(f"Error computing discount for offer {offer.offer_id}: {e}")
            raise ComputationError(f"Discount computation failed: {e}") from e

    def compute_final_amount(self, amount_to_pay: Any, discount: Decimal) -> Decimal:
        amount = self._safe_decimal(amount_to_pay)
        with self._exact_context(amount, discount):
            return amount - discount

    def _exact_context(self, *values: Optional[Decimal]):
        """
        Decimal context with enough digits that amounts of any size keep
        their full currency precision
        """
        context = getcontext().copy()
        digits = max((v.adjusted() + 1 for v in values if v is not None and v.is_finite()), default=1)
        context.prec = max(context.prec, digits + self.precision + 10)
        return localcontext(context)

    def _raw_discount(self, offer: Offer, amount: Decimal) -> Decimal:
        try:
            discount_type = DiscountType(offer.discount_type)
        except ValueError:
            self.logger.warning(str(UnknownDiscountTypeWarning(offer.discount_type, offer.offer_id)))
            return Decimal("0")

        if discount_type == DiscountType.PERCENTAGE:
            return amount * offer.discount_value / Decimal("100")
        elif discount_type == DiscountType.FLAT:
            return offer.discount_value
        else:
            # Cashback is treated as a flat amount bounded by what is paid
            return min(offer.discount_value, amount)

    def round_amount(self, value: Decimal) -> Decimal:
        with self._exact_context(value):
            return value.quantize(self.quantum, rounding=ROUND_HALF_UP)
