"""
Best-offer selection over eligible offers
"""

from decimal import Decimal
from typing import Any, List, Optional, Sequence

from loguru import logger

from .computation_engine import ComputationEngine
from .models import AlternativeOffer, DiscountResult, Offer, OfferSummary, RankedOffer

NO_OFFERS_MESSAGE = "No applicable offers found"


class BestOfferSelector:
    """
    Ranks eligible offers by computed discount and picks the best one
    """

    def __init__(self, computation_engine: Optional[ComputationEngine] = None, max_alternatives: int = 2):
        self.logger = logger
        self.computation_engine = computation_engine or ComputationEngine()
        self.max_alternatives = max_alternatives

    def rank(self, offers: Sequence[Offer], amount_to_pay: Any) -> List[RankedOffer]:
        """
        Rank offers by discount, highest first

        Each candidate carries its original position and ties are broken on it,
        so equal discounts keep their input order.
        """
        amount = Decimal(str(amount_to_pay))
        ranked = []
        for position, offer in enumerate(offers):
            discount = self.computation_engine.compute_discount(offer, amount)
            ranked.append(
                RankedOffer(
                    offer=offer,
                    discount_amount=discount,
                    final_amount=self.computation_engine.compute_final_amount(amount, discount),
                    position=position,
                )
            )

        ranked.sort(key=lambda item: (-item.discount_amount, item.position))
        return ranked

    def select(self, offers: Sequence[Offer], amount_to_pay: Any) -> DiscountResult:
        """
        Build the discount result for a set of eligible offers

        Args:
            offers: Offers that already passed eligibility
            amount_to_pay: Payable amount

        Returns:
            DiscountResult with the best offer and up to max_alternatives runners-up
        """
        amount = Decimal(str(amount_to_pay))

        if not offers:
            return DiscountResult(
                highest_discount=Decimal("0"),
                final_amount=amount,
                applicable_offer=None,
                alternative_offers=[],
                message=NO_OFFERS_MESSAGE,
            )

        ranked = self.rank(offers, amount)
        best = ranked[0]
        self.logger.debug(f"Best offer {best.offer.offer_id} with discount {best.discount_amount}")

        return DiscountResult(
            highest_discount=best.discount_amount,
            final_amount=best.final_amount,
            applicable_offer=OfferSummary(
                offer_id=best.offer.offer_id,
                title=best.offer.title,
                bank_name=best.offer.bank_name,
                discount_type=best.offer.discount_type,
                discount_value=best.offer.discount_value,
                max_discount=best.offer.max_discount,
            ),
            alternative_offers=[
                AlternativeOffer(
                    offer_id=item.offer.offer_id,
                    title=item.offer.title,
                    discount_amount=item.discount_amount,
                    final_amount=item.final_amount,
                )
                for item in ranked[1 : 1 + self.max_alternatives]
            ],
            message=f"Best offer: {best.offer.title}",
        )
