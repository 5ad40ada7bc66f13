"""
Per-instrument discount summary

Runs the best-discount pipeline once per instrument. Instruments are
independent: a failure on one degrades only that entry.
"""

from concurrent.futures import ThreadPoolExecutor
from decimal import Decimal
from typing import Any, Callable, Dict, List, Optional, Sequence

from loguru import logger

from .models import DiscountResult, InstrumentSummary

# Fixed set and order of instruments in every summary
SUMMARY_INSTRUMENTS = ["CREDIT", "DEBIT", "EMI_OPTIONS", "NET_BANKING"]

ERROR_TITLE = "Error calculating"
NO_OFFERS_TITLE = "No offers"

DiscountCalculator = Callable[[Decimal, str, str], DiscountResult]


class SummaryAggregator:
    """
    Builds a mapping instrument -> InstrumentSummary in a fixed order
    """

    def __init__(
        self,
        calculate: DiscountCalculator,
        instruments: Optional[Sequence[str]] = None,
        parallel: bool = False,
        max_workers: int = 4,
    ):
        """
        Args:
            calculate: Callable (amount, bank_name, instrument) -> DiscountResult
            instruments: Instruments to report, in order
            parallel: Run instruments on a thread pool
            max_workers: Pool size when parallel
        """
        self.calculate = calculate
        self.instruments: List[str] = list(instruments) if instruments is not None else list(SUMMARY_INSTRUMENTS)
        self.parallel = parallel
        self.max_workers = max_workers

    def summarize(self, amount_to_pay: Decimal, bank_name: str) -> Dict[str, InstrumentSummary]:
        """
        Summarize the best discount per instrument

        Returns:
            Dict keyed by every configured instrument, in configured order
        """
        if self.parallel and len(self.instruments) > 1:
            with ThreadPoolExecutor(max_workers=self.max_workers) as pool:
                futures = {
                    instrument: pool.submit(self._summarize_one, amount_to_pay, bank_name, instrument)
                    for instrument in self.instruments
                }
                # Report in configured order, not completion order
                return {instrument: futures[instrument].result() for instrument in self.instruments}

        return {
            instrument: self._summarize_one(amount_to_pay, bank_name, instrument)
            for instrument in self.instruments
        }

    def _summarize_one(self, amount_to_pay: Decimal, bank_name: str, instrument: str) -> InstrumentSummary:
        try:
            result = self.calculate(amount_to_pay, bank_name, instrument)
            return InstrumentSummary(
                discount=result.highest_discount,
                final_amount=result.final_amount,
                offer_title=result.applicable_offer.title if result.applicable_offer else NO_OFFERS_TITLE,
            )
        except Exception as e:  # noqa: BLE001
            logger.warning(f"Error calculating discount for {instrument}: {e}")
            return self.degraded(amount_to_pay)

    @staticmethod
    def degraded(amount_to_pay: Any) -> InstrumentSummary:
        return InstrumentSummary(
            discount=Decimal("0"),
            final_amount=Decimal(str(amount_to_pay)),
            offer_title=ERROR_TITLE,
        )
