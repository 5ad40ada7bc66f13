"""
Core Offer Engine implementation
"""

import re
import sys
from datetime import datetime
from typing import Any, Dict, Optional

import pandas as pd
from loguru import logger
from pydantic import ValidationError

from . import __version__
from .aggregator import SUMMARY_INSTRUMENTS, SummaryAggregator
from .computation_engine import ComputationEngine
from .config import OfferEngineConfig, get_config
from .eligibility_checker import EligibilityChecker
from .exceptions import OfferNotFoundError, ParameterValidationError
from .models import (
    DiscountResult,
    InstrumentSummary,
    Offer,
    RequestContext,
    UpsertResult,
    parse_decimal,
    validate_amount,
    validate_bank_name,
    validate_instrument,
)
from .normalizer import OfferNormalizer
from .selector import BestOfferSelector
from .store import OfferStore, SQLiteOfferStore

LOG_FORMAT = "<green>{time:HH:mm:ss}</green> | <level>{level}</level> | {message}"

# Fields an admin update may touch
UPDATABLE_FIELDS = [
    "title", "description", "discount_value", "min_amount",
    "max_discount", "valid_till", "is_active",
]


def configure_logging(
    log_level: str = "INFO",
    log_file: Optional[str] = None,
    rotation: str = "10 MB",
    retention: str = "30 days",
) -> None:
    """Route loguru output to stderr and, optionally, a rotating file"""
    logger.remove()
    logger.add(sys.stderr, level=log_level, format=LOG_FORMAT)
    if log_file:
        logger.add(log_file, level=log_level, rotation=rotation, retention=retention, format=LOG_FORMAT)


class OfferEngine:
    """
    Main Offer Engine class: ingestion, best-discount queries and admin operations
    """

    def __init__(
        self,
        store: Optional[OfferStore] = None,
        config: Optional[OfferEngineConfig] = None,
        setup_logging: bool = True,
    ):
        """
        Initialize the Offer Engine

        Args:
            store: Offer store; defaults to a SQLiteOfferStore at config.db_path
            config: Engine configuration; defaults to the global configuration
            setup_logging: Configure loguru sinks from the configuration
        """
        self.config = config or get_config()

        if setup_logging:
            configure_logging(
                self.config.log_level,
                self.config.log_file,
                self.config.log_rotation,
                self.config.log_retention,
            )

        self.store = store if store is not None else SQLiteOfferStore(self.config.db_path)
        self.normalizer = OfferNormalizer()
        self.eligibility_checker = EligibilityChecker()
        self.computation_engine = ComputationEngine(precision=self.config.output_precision)
        self.selector = BestOfferSelector(self.computation_engine, max_alternatives=self.config.max_alternatives)

        logger.info(f"Offer Engine initialized with store: {type(self.store).__name__}")

    def ingest_offers(self, raw_payload: Any) -> UpsertResult:
        """
        Normalize a raw upstream payload and upsert the valid offers

        Args:
            raw_payload: Shape-ambiguous JSON document (text or decoded)

        Returns:
            UpsertResult with saved/updated counts and rejected entries

        Raises:
            UpstreamFormatError: if the payload is not decodable
            StoreFailure: if persisting the batch fails (nothing is committed)
        """
        logger.info("Processing offer payload")
        normalized = self.normalizer.normalize(raw_payload)

        if not normalized.offers:
            logger.warning(f"No valid offers found in the payload ({len(normalized.rejected)} rejected)")
            return UpsertResult(rejected_count=len(normalized.rejected))

        result = self.store.bulk_upsert(normalized.offers)
        result.total_processed = len(normalized.offers)
        result.rejected_count = len(normalized.rejected)

        logger.info(
            f"Processed {result.total_processed} offers: {result.saved_count} new, "
            f"{result.updated_count} updated, {result.rejected_count} rejected"
        )
        return result

    def calculate_highest_discount(
        self,
        amount_to_pay: Any,
        bank_name: Any,
        payment_instrument: Any,
        now: Optional[datetime] = None,
    ) -> DiscountResult:
        """
        Find the best discount for an amount, bank and instrument

        Raises:
            ParameterValidationError: listing every invalid parameter, before any lookup
        """
        context = RequestContext.from_params(amount_to_pay, bank_name, payment_instrument)
        logger.info(
            f"Calculating highest discount for amount: {context.amount_to_pay}, "
            f"bank: {context.bank_name}, instrument: {context.payment_instrument.value}"
        )

        candidates = self.store.find_by_criteria(
            bank_name=context.bank_name.upper(),
            min_amount=context.amount_to_pay,
            payment_instrument=context.payment_instrument.value,
            now=now,
        )
        eligible = self.eligibility_checker.filter_offers(candidates, context, now)
        return self.selector.select(eligible, context.amount_to_pay)

    def get_discount_summary(
        self, amount_to_pay: Any, bank_name: Any, now: Optional[datetime] = None
    ) -> Dict[str, InstrumentSummary]:
        """
        Best discount for each of CREDIT, DEBIT, EMI_OPTIONS and NET_BANKING, in that order

        Raises:
            ParameterValidationError: if the amount or bank name is invalid
        """
        errors = validate_amount(amount_to_pay) + validate_bank_name(bank_name)
        if errors:
            raise ParameterValidationError(errors)

        amount = parse_decimal(amount_to_pay)
        logger.info(f"Getting discount summary for amount: {amount}, bank: {bank_name}")

        aggregator = SummaryAggregator(
            lambda a, b, i: self.calculate_highest_discount(a, b, i, now=now),
            instruments=SUMMARY_INSTRUMENTS,
            parallel=self.config.parallel_summary,
            max_workers=self.config.max_workers,
        )
        return aggregator.summarize(amount, str(bank_name).strip())

    def get_available_offers(
        self,
        bank_name: Any,
        payment_instrument: Any = None,
        page: int = 1,
        limit: Optional[int] = None,
    ) -> Dict[str, Any]:
        """
        Active offers for a bank, optionally narrowed to an instrument, paginated

        Raises:
            ParameterValidationError: listing every invalid parameter
        """
        limit = self.config.default_page_limit if limit is None else limit
        errors = validate_bank_name(bank_name) + validate_instrument(payment_instrument, required=False)
        if not isinstance(page, int) or page < 1:
            errors.append("page must be an integer of at least 1")
        if not isinstance(limit, int) or not (1 <= limit <= self.config.max_page_limit):
            errors.append(f"limit must be an integer between 1 and {self.config.max_page_limit}")
        if errors:
            raise ParameterValidationError(errors)

        logger.info(f"Getting available offers for bank: {bank_name}")
        instrument = str(payment_instrument).strip().upper() if payment_instrument else None
        offers = self.store.find_by_criteria(bank_name=str(bank_name), payment_instrument=instrument)

        start = (page - 1) * limit
        end = page * limit
        page_offers = offers[start:end]

        return {
            "results": len(page_offers),
            "total_offers": len(offers),
            "pagination": {
                "page": page,
                "limit": limit,
                "has_next": end < len(offers),
                "has_prev": start > 0,
            },
            "offers": [o.model_dump(by_alias=True, mode="json") for o in page_offers],
        }

    def get_offer_stats(self) -> Dict[str, Any]:
        """
        Active offer count and per-bank statistics

        Returns:
            {"total_offers": int, "bank_stats": [...]} with banks ordered by
            offer count (descending) then name
        """
        logger.info("Getting offer statistics")
        offers = self.store.list_offers(active_only=True)
        if not offers:
            return {"total_offers": 0, "bank_stats": []}

        df = pd.DataFrame(
            [
                {
                    "bank_name": o.bank_name,
                    "discount_value": float(o.discount_value),
                    "min_amount": float(o.min_amount),
                }
                for o in offers
            ]
        )
        grouped = (
            df.groupby("bank_name")
            .agg(
                offer_count=("discount_value", "size"),
                average_discount=("discount_value", "mean"),
                max_discount=("discount_value", "max"),
                min_threshold=("min_amount", "min"),
            )
            .reset_index()
            .sort_values(["offer_count", "bank_name"], ascending=[False, True])
        )

        bank_stats = [
            {
                "bank_name": row.bank_name,
                "offer_count": int(row.offer_count),
                "average_discount": round(float(row.average_discount), 2),
                "max_discount": float(row.max_discount),
                "min_threshold": float(row.min_threshold),
            }
            for row in grouped.itertuples(index=False)
        ]
        return {"total_offers": self.store.count_active(), "bank_stats": bank_stats}

    def delete_offer(self, offer_id: str) -> None:
        """
        Soft-delete an offer by clearing its active flag

        Raises:
            OfferNotFoundError: if the offer does not exist
        """
        logger.info(f"Deleting offer: {offer_id}")
        if not self.store.deactivate(offer_id):
            raise OfferNotFoundError(offer_id)

    def update_offer(self, offer_id: str, updates: Dict[str, Any]) -> Offer:
        """
        Apply an admin update to an existing offer

        Args:
            offer_id: Offer to update
            updates: Field values, camelCase or snake_case; only UPDATABLE_FIELDS apply

        Returns:
            The stored offer after the update

        Raises:
            OfferNotFoundError: if the offer does not exist
            ParameterValidationError: if no updatable field is given or a value is invalid
        """
        logger.info(f"Updating offer: {offer_id}")

        changes = {}
        for key, value in updates.items():
            field = re.sub(r"([A-Z])", r"_\1", key).lower()
            if field in UPDATABLE_FIELDS:
                changes[field] = value

        if not changes:
            raise ParameterValidationError([], message="No valid fields to update")

        existing = self.store.get_offer(offer_id)
        if existing is None:
            raise OfferNotFoundError(offer_id)

        if "valid_till" in changes:
            try:
                changes["valid_till"] = self.normalizer.parse_timestamp(changes["valid_till"])
            except ValueError as e:
                raise ParameterValidationError([str(e)]) from e

        try:
            updated = Offer.model_validate({**existing.model_dump(), **changes})
        except ValidationError as e:
            raise ParameterValidationError(
                [f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in e.errors()]
            ) from e

        self.store.bulk_upsert([updated])
        return updated

    def get_engine_summary(self) -> Dict[str, Any]:
        """Basic facts about the running engine"""
        return {
            "version": __version__,
            "store": type(self.store).__name__,
            "active_offers": self.store.count_active(),
        }
