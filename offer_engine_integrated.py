#!/usr/bin/env python3
"""
Integrated Offer Engine - batch processing and command-line entry point
"""

import argparse
import json
import os
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional

import pandas as pd
from loguru import logger

from offer_engine import OfferEngine, __version__
from offer_engine.config import get_config
from offer_engine.exceptions import OfferEngineError, ParameterValidationError
from offer_engine.models import UpsertResult

# Input columns, keyed by a spelling-insensitive form (lowercase, no underscores)
INPUT_COLUMNS = {
    "amounttopay": "amount_to_pay",
    "bankname": "bank_name",
    "paymentinstrument": "payment_instrument",
}

OUTPUT_COLUMNS = [
    "highest_discount",
    "final_amount",
    "offer_id",
    "offer_title",
    "alternative_offer_ids",
    "message",
    "processed_time",
    "processing_error",
]


def get_utc_timestamp() -> str:
    """Get current UTC timestamp in ISO format"""
    return datetime.now(timezone.utc).isoformat()


def resolve_input_columns(columns: List[str]) -> Dict[str, str]:
    """
    Map canonical input fields to the DataFrame's own column names

    Matching ignores case and underscores, so amount_to_pay, AMOUNT_TO_PAY
    and amountToPay all resolve to the same field.
    """
    resolved = {}
    for column in columns:
        key = str(column).replace("_", "").lower()
        if key in INPUT_COLUMNS and INPUT_COLUMNS[key] not in resolved:
            resolved[INPUT_COLUMNS[key]] = column
    return resolved


class OfferBatchProcessor:
    """
    Runs best-discount queries for every row of a DataFrame or CSV file
    """

    def __init__(self, engine: Optional[OfferEngine] = None):
        """
        Initialize the batch processor

        Args:
            engine: Offer engine to query; defaults to one built from the global configuration
        """
        self.engine = engine or OfferEngine()

    def ingest_file(self, input_file: str) -> UpsertResult:
        """Ingest one raw offer document from disk"""
        logger.info(f"Ingesting offers from {input_file}")
        return self.engine.ingest_offers(Path(input_file).read_bytes())

    def process_dataframe(self, df: pd.DataFrame, now: Optional[datetime] = None) -> pd.DataFrame:
        """
        Compute the best discount for each row

        Args:
            df: Rows with amount_to_pay, bank_name and payment_instrument columns
            now: Evaluation instant for offer validity windows

        Returns:
            Input columns followed by OUTPUT_COLUMNS; rows that fail carry
            processing_error and the batch continues

        Raises:
            ParameterValidationError: if a required input column is missing
        """
        columns = resolve_input_columns(list(df.columns))
        missing = [name for name in INPUT_COLUMNS.values() if name not in columns]
        if missing:
            raise ParameterValidationError([f"Missing input column: {name}" for name in missing])

        if df.empty:
            return pd.DataFrame(columns=list(df.columns) + OUTPUT_COLUMNS)

        results = []
        for index, row in df.iterrows():
            output_row = row.to_dict()
            output_row["processed_time"] = get_utc_timestamp()
            try:
                result = self.engine.calculate_highest_discount(
                    row[columns["amount_to_pay"]],
                    row[columns["bank_name"]],
                    row[columns["payment_instrument"]],
                    now=now,
                )
                offer = result.applicable_offer
                output_row.update({
                    "highest_discount": float(result.highest_discount),
                    "final_amount": float(result.final_amount),
                    "offer_id": offer.offer_id if offer else None,
                    "offer_title": offer.title if offer else None,
                    "alternative_offer_ids": ",".join(alt.offer_id for alt in result.alternative_offers),
                    "message": result.message,
                    "processing_error": None,
                })
            except Exception as e:  # noqa: BLE001
                logger.warning(f"Error processing row {index}: {e}")
                output_row.update({
                    "highest_discount": None,
                    "final_amount": None,
                    "offer_id": None,
                    "offer_title": None,
                    "alternative_offer_ids": None,
                    "message": None,
                    "processing_error": str(e),
                })
            results.append(output_row)

        output_df = pd.DataFrame(results)

        # Text input columns stay text, even when a value came in empty
        for col in output_df.columns.intersection(df.columns):
            if pd.api.types.is_object_dtype(df[col]):
                output_df[col] = output_df[col].fillna("").astype(str)

        input_cols = [c for c in output_df.columns if c not in OUTPUT_COLUMNS]
        return output_df[input_cols + OUTPUT_COLUMNS]

    def process_csv_file(self, input_file: str, output_file: Optional[str] = None) -> Dict[str, Any]:
        """
        Process a CSV of discount queries and write the enriched CSV

        Args:
            input_file: Path to input CSV file
            output_file: Output CSV path (defaults to output/result.csv)

        Returns:
            Dictionary with processing results and statistics
        """
        logger.info(f"Processing CSV: {input_file}")
        output_path = Path(output_file or "output/result.csv")
        output_path.parent.mkdir(parents=True, exist_ok=True)

        try:
            df = pd.read_csv(input_file)
        except (OSError, ValueError) as e:
            return {"success": False, "error": f"Failed to load CSV: {e}"}
        logger.info(f"Loaded {len(df)} rows from CSV")

        try:
            result_df = self.process_dataframe(df)
        except ParameterValidationError as e:
            return {"success": False, "error": str(e)}

        result_df.to_csv(output_path, index=False)
        stats = self._calculate_statistics(result_df)

        return {
            "success": True,
            "input_file": str(input_file),
            "output_file": str(output_path),
            **stats,
            "processing_timestamp": get_utc_timestamp(),
            "offer_engine_version": __version__,
            "processing_environment": {
                "python_version": f"{sys.version_info.major}.{sys.version_info.minor}.{sys.version_info.micro}",
                "platform": os.name,
            },
        }

    def _calculate_statistics(self, results_df: pd.DataFrame) -> Dict[str, Any]:
        if results_df.empty:
            return {"total_rows": 0, "rows_with_offer": 0, "errors": 0}
        return {
            "total_rows": len(results_df),
            "rows_with_offer": int(results_df["offer_id"].notna().sum()),
            "errors": int(results_df["processing_error"].notna().sum()),
        }


def _dump(payload: Any) -> None:
    print(json.dumps(payload, indent=2, default=str))


def _build_engine(args: argparse.Namespace) -> OfferEngine:
    updates = {}
    if args.db:
        updates["db_path"] = args.db
    if args.log_level:
        updates["log_level"] = args.log_level
    config = get_config().model_copy(update=updates)
    return OfferEngine(config=config)


def cmd_ingest(args: argparse.Namespace) -> None:
    processor = OfferBatchProcessor(_build_engine(args))
    _dump(processor.ingest_file(args.file).model_dump(by_alias=True))


def cmd_discount(args: argparse.Namespace) -> None:
    engine = _build_engine(args)
    result = engine.calculate_highest_discount(args.amount, args.bank, args.instrument)
    _dump(result.model_dump(mode="json", by_alias=True))


def cmd_summary(args: argparse.Namespace) -> None:
    engine = _build_engine(args)
    summary = engine.get_discount_summary(args.amount, args.bank)
    _dump({k: v.model_dump(mode="json", by_alias=True) for k, v in summary.items()})


def cmd_offers(args: argparse.Namespace) -> None:
    engine = _build_engine(args)
    _dump(engine.get_available_offers(args.bank, args.instrument, page=args.page, limit=args.limit))


def cmd_stats(args: argparse.Namespace) -> None:
    _dump(_build_engine(args).get_offer_stats())


def cmd_delete(args: argparse.Namespace) -> None:
    _build_engine(args).delete_offer(args.offer_id)
    _dump({"deleted": args.offer_id})


def cmd_update(args: argparse.Namespace) -> None:
    try:
        fields = json.loads(args.fields)
    except json.JSONDecodeError as e:
        raise ParameterValidationError([f"--fields is not valid JSON: {e}"]) from e
    if not isinstance(fields, dict):
        raise ParameterValidationError(["--fields must be a JSON object"])
    offer = _build_engine(args).update_offer(args.offer_id, fields)
    _dump(offer.model_dump(mode="json", by_alias=True))


def cmd_batch(args: argparse.Namespace) -> None:
    processor = OfferBatchProcessor(_build_engine(args))
    result = processor.process_csv_file(args.input, args.output)
    _dump(result)
    if not result.get("success"):
        raise SystemExit(1)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Payment offer engine")
    parser.add_argument("--db", help="SQLite database path (overrides configuration)")
    parser.add_argument("--log-level", help="Log level (overrides configuration)")

    sub = parser.add_subparsers(required=True)

    ingest = sub.add_parser("ingest", help="Ingest a raw offer JSON document")
    ingest.add_argument("file")
    ingest.set_defaults(func=cmd_ingest)

    discount = sub.add_parser("discount", help="Best discount for one payment")
    discount.add_argument("--amount", required=True)
    discount.add_argument("--bank", required=True)
    discount.add_argument("--instrument", required=True)
    discount.set_defaults(func=cmd_discount)

    summary = sub.add_parser("summary", help="Best discount per payment instrument")
    summary.add_argument("--amount", required=True)
    summary.add_argument("--bank", required=True)
    summary.set_defaults(func=cmd_summary)

    offers = sub.add_parser("offers", help="List active offers for a bank")
    offers.add_argument("--bank", required=True)
    offers.add_argument("--instrument")
    offers.add_argument("--page", type=int, default=1)
    offers.add_argument("--limit", type=int)
    offers.set_defaults(func=cmd_offers)

    stats = sub.add_parser("stats", help="Per-bank offer statistics")
    stats.set_defaults(func=cmd_stats)

    delete = sub.add_parser("delete", help="Deactivate an offer")
    delete.add_argument("offer_id")
    delete.set_defaults(func=cmd_delete)

    update = sub.add_parser("update", help="Update fields of an offer")
    update.add_argument("offer_id")
    update.add_argument("--fields", required=True, help='JSON object, e.g. \'{"discountValue": 15}\'')
    update.set_defaults(func=cmd_update)

    batch = sub.add_parser("batch", help="Best discount for every row of a CSV")
    batch.add_argument("input")
    batch.add_argument("output")
    batch.set_defaults(func=cmd_batch)
    return parser


def main(argv: Optional[List[str]] = None) -> None:
    """CLI interface for the integrated offer engine"""
    parser = build_parser()
    args = parser.parse_args(argv)
    try:
        args.func(args)
    except ParameterValidationError as e:
        _dump({"error": str(e), "errors": e.errors})
        raise SystemExit(1)
    except OfferEngineError as e:
        _dump({"error": str(e)})
        raise SystemExit(1)


if __name__ == "__main__":
    main()
