"""
Eligibility checking for offers against a request context

The store pre-filters candidates by bank, active flag and validity window, but
that is only an optimization. The checks here are authoritative:
1. Minimum amount - min_amount <= amount_to_pay
2. Instrument - offer unrestricted, or accepts the requested instrument
3. Active flag
4. Validity window - valid_from <= now <= valid_till, open ends allowed
"""

from datetime import datetime, timezone
from typing import List, Optional, Sequence, Tuple

from loguru import logger

from .exceptions import EligibilityError
from .models import Offer, RequestContext


class EligibilityChecker:
    """
    Applies the eligibility predicate offer by offer
    """

    def __init__(self):
        self.logger = logger

    def check_eligibility(
        self, offer: Offer, context: RequestContext, now: Optional[datetime] = None
    ) -> Tuple[bool, List[str]]:
        """
        Check one offer against a request context

        Args:
            offer: Canonical offer
            context: Request context
            now: Reference time; defaults to the current UTC time

        Returns:
            (eligible, reasons) where reasons lists every failed check
        """
        now = now or datetime.now(timezone.utc)
        reasons = []

        if offer.min_amount > context.amount_to_pay:
            reasons.append(f"Minimum amount {offer.min_amount} not met by {context.amount_to_pay}")

        instrument = context.payment_instrument.value
        if not offer.accepts_instrument(instrument):
            reasons.append(
                f"Instrument {instrument} not in {', '.join(offer.payment_instruments)}"
            )

        if not offer.is_active:
            reasons.append("Offer is inactive")

        window_passed, window_reason = self._check_validity_window(offer, now)
        if not window_passed:
            reasons.append(window_reason)

        return len(reasons) == 0, reasons

    def _check_validity_window(self, offer: Offer, now: datetime) -> Tuple[bool, str]:
        if offer.valid_from is not None and offer.valid_from > now:
            return False, f"Offer not yet started (valid from {offer.valid_from.isoformat()})"
        if offer.valid_till is not None and offer.valid_till < now:
            return False, f"Offer expired (valid till {offer.valid_till.isoformat()})"
        return True, ""

    def filter_offers(
        self, offers: Sequence[Offer], context: RequestContext, now: Optional[datetime] = None
    ) -> List[Offer]:
        """
        Keep the offers eligible for a context, preserving input order

        Raises:
            EligibilityError: if an offer cannot be evaluated
        """
        now = now or datetime.now(timezone.utc)
        eligible = []

        for offer in offers:
            try:
                passed, reasons = self.check_eligibility(offer, context, now)
            except (TypeError, ValueError, AttributeError) as e:
                self.logger.error(f"Error checking eligibility of offer {getattr(offer, 'offer_id', '?')}: {e}")
                raise EligibilityError(f"Eligibility check failed: {e}") from e

            if passed:
                eligible.append(offer)
            else:
                self.logger.debug(f"Offer {offer.offer_id} not eligible: {'; '.join(reasons)}")

        self.logger.debug(f"{len(eligible)} of {len(offers)} offers eligible")
        return eligible
