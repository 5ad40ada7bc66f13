"""
Offer store: persistence for canonical offers

Two implementations share one contract:
- SQLiteOfferStore for on-disk storage (one connection per operation, one
  transaction per batch)
- InMemoryOfferStore for tests and embedded use (copy-on-write batches)

Store-side filtering in find_by_criteria is a coarse pre-filter; callers
re-check eligibility in memory.
"""

import json
import sqlite3
import threading
from abc import ABC, abstractmethod
from contextlib import contextmanager
from datetime import datetime, timezone
from decimal import Decimal
from pathlib import Path
from typing import Dict, Iterable, List, Optional

from loguru import logger

from .exceptions import StoreFailure
from .models import Offer, UpsertResult

_TS_FORMAT = "%Y-%m-%d %H:%M:%S.%f"


def _format_ts(value: Optional[datetime]) -> Optional[str]:
    if value is None:
        return None
    return value.astimezone(timezone.utc).strftime(_TS_FORMAT)


def _parse_ts(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    return datetime.strptime(value, _TS_FORMAT).replace(tzinfo=timezone.utc)


class OfferStore(ABC):
    """Contract every offer store implements"""

    @abstractmethod
    def find_by_criteria(
        self,
        bank_name: Optional[str] = None,
        min_amount: Optional[Decimal] = None,
        payment_instrument: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> List[Offer]:
        """
        Active, time-valid offers for a bank, ordered by discount_value descending

        Args:
            bank_name: Bank to match, case-insensitively
            min_amount: Only offers whose min_amount is at most this value
            payment_instrument: Only offers accepting this instrument (or unrestricted)
            now: Reference time for validity; defaults to the current UTC time
        """

    @abstractmethod
    def bulk_upsert(self, offers: Iterable[Offer]) -> UpsertResult:
        """Insert or fully overwrite offers by offer_id; all or nothing"""

    @abstractmethod
    def get_offer(self, offer_id: str) -> Optional[Offer]:
        """Fetch one offer regardless of its active flag"""

    @abstractmethod
    def deactivate(self, offer_id: str) -> bool:
        """Soft-delete an offer; returns False when the id is unknown"""

    @abstractmethod
    def list_offers(self, active_only: bool = True) -> List[Offer]:
        """All stored offers in insertion order"""

    def count_active(self) -> int:
        return len(self.list_offers(active_only=True))

    @staticmethod
    def _matches(
        offer: Offer,
        bank_name: Optional[str],
        min_amount: Optional[Decimal],
        payment_instrument: Optional[str],
        now: datetime,
    ) -> bool:
        if not offer.is_active:
            return False
        if offer.valid_till is not None and offer.valid_till < now:
            return False
        if offer.valid_from is not None and offer.valid_from > now:
            return False
        if bank_name and offer.bank_name != bank_name.strip().upper():
            return False
        if min_amount is not None and offer.min_amount > min_amount:
            return False
        if payment_instrument and not offer.accepts_instrument(payment_instrument):
            return False
        return True


class InMemoryOfferStore(OfferStore):
    """
    Dictionary-backed store

    Batches are staged on a copy and swapped in at the end, so a failing batch
    leaves the visible state untouched.
    """

    def __init__(self, offers: Optional[Iterable[Offer]] = None):
        self._offers: Dict[str, Offer] = {}
        self._lock = threading.Lock()
        if offers:
            self.bulk_upsert(offers)

    def find_by_criteria(self, bank_name=None, min_amount=None, payment_instrument=None, now=None) -> List[Offer]:
        now = now or datetime.now(timezone.utc)
        with self._lock:
            snapshot = list(self._offers.values())
        matches = [o for o in snapshot if self._matches(o, bank_name, min_amount, payment_instrument, now)]
        matches.sort(key=lambda o: o.discount_value, reverse=True)
        return [o.model_copy(deep=True) for o in matches]

    def bulk_upsert(self, offers: Iterable[Offer]) -> UpsertResult:
        with self._lock:
            staged = dict(self._offers)
            saved_count = 0
            updated_count = 0
            for offer in offers:
                if not isinstance(offer, Offer):
                    logger.error(f"Error in bulk save: unsupported record {offer!r}")
                    raise StoreFailure(f"Bulk save failed: unsupported record type {type(offer).__name__}")
                if offer.offer_id in staged:
                    updated_count += 1
                else:
                    saved_count += 1
                staged[offer.offer_id] = offer.model_copy(deep=True)
            self._offers = staged

        logger.info(f"Bulk save completed: {saved_count} new, {updated_count} updated")
        return UpsertResult(
            saved_count=saved_count,
            updated_count=updated_count,
            total_processed=saved_count + updated_count,
        )

    def get_offer(self, offer_id: str) -> Optional[Offer]:
        with self._lock:
            offer = self._offers.get(offer_id)
        return offer.model_copy(deep=True) if offer else None

    def deactivate(self, offer_id: str) -> bool:
        with self._lock:
            offer = self._offers.get(offer_id)
            if offer is None:
                return False
            self._offers[offer_id] = offer.model_copy(update={"is_active": False})
        return True

    def list_offers(self, active_only: bool = True) -> List[Offer]:
        with self._lock:
            snapshot = list(self._offers.values())
        return [o.model_copy(deep=True) for o in snapshot if o.is_active or not active_only]


class SQLiteOfferStore(OfferStore):
    """SQLite-backed store; decimals are kept as text to stay exact"""

    def __init__(self, path: str = "offers.db") -> None:
        self.path = Path(path)
        self._init_schema()

    @contextmanager
    def connect(self):
        try:
            conn = sqlite3.connect(self.path)
        except sqlite3.Error as e:
            logger.error(f"Database connection failed: {e}")
            raise StoreFailure(f"Database connection failed: {e}") from e
        conn.row_factory = sqlite3.Row
        try:
            yield conn
            conn.commit()
        except sqlite3.Error as e:
            conn.rollback()
            logger.error(f"Database query error: {e}")
            raise StoreFailure(f"Database query error: {e}") from e
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

    def _init_schema(self) -> None:
        with self.connect() as conn:
            conn.executescript(
                """
                CREATE TABLE IF NOT EXISTS offers (
                    offer_id TEXT PRIMARY KEY,
                    title TEXT NOT NULL,
                    description TEXT,
                    bank_name TEXT NOT NULL,
                    discount_type TEXT NOT NULL,
                    discount_value TEXT NOT NULL,
                    min_amount TEXT NOT NULL DEFAULT '0',
                    max_discount TEXT,
                    payment_instruments TEXT NOT NULL DEFAULT '[]',
                    valid_from TEXT,
                    valid_till TEXT,
                    is_active INTEGER NOT NULL DEFAULT 1,
                    created_at DATETIME DEFAULT CURRENT_TIMESTAMP,
                    updated_at DATETIME DEFAULT CURRENT_TIMESTAMP
                );

                CREATE INDEX IF NOT EXISTS idx_offers_bank_active ON offers(bank_name, is_active);
                """
            )

    @staticmethod
    def _offer_params(offer: Offer) -> tuple:
        return (
            offer.offer_id,
            offer.title,
            offer.description,
            offer.bank_name,
            offer.discount_type,
            str(offer.discount_value),
            str(offer.min_amount),
            str(offer.max_discount) if offer.max_discount is not None else None,
            json.dumps(offer.payment_instruments),
            _format_ts(offer.valid_from),
            _format_ts(offer.valid_till),
            1 if offer.is_active else 0,
        )

    @staticmethod
    def _row_to_offer(row: sqlite3.Row) -> Offer:
        return Offer(
            offer_id=row["offer_id"],
            title=row["title"],
            description=row["description"],
            bank_name=row["bank_name"],
            discount_type=row["discount_type"],
            discount_value=Decimal(row["discount_value"]),
            min_amount=Decimal(row["min_amount"]),
            max_discount=Decimal(row["max_discount"]) if row["max_discount"] is not None else None,
            payment_instruments=json.loads(row["payment_instruments"] or "[]"),
            valid_from=_parse_ts(row["valid_from"]),
            valid_till=_parse_ts(row["valid_till"]),
            is_active=bool(row["is_active"]),
        )

    def find_by_criteria(self, bank_name=None, min_amount=None, payment_instrument=None, now=None) -> List[Offer]:
        now_ts = _format_ts(now or datetime.now(timezone.utc))
        query = """
            SELECT * FROM offers
            WHERE is_active = 1
            AND (valid_till IS NULL OR valid_till >= ?)
            AND (valid_from IS NULL OR valid_from <= ?)
        """
        params: list = [now_ts, now_ts]

        if bank_name:
            query += " AND bank_name = ?"
            params.append(bank_name.strip().upper())

        if min_amount is not None:
            query += " AND CAST(min_amount AS REAL) <= ?"
            params.append(float(min_amount))

        query += " ORDER BY CAST(discount_value AS REAL) DESC, rowid ASC"

        with self.connect() as conn:
            rows = conn.execute(query, params).fetchall()

        offers = [self._row_to_offer(row) for row in rows]
        if payment_instrument:
            offers = [o for o in offers if o.accepts_instrument(payment_instrument)]
        return offers

    def bulk_upsert(self, offers: Iterable[Offer]) -> UpsertResult:
        saved_count = 0
        updated_count = 0

        with self.connect() as conn:
            for offer in offers:
                existing = conn.execute("SELECT 1 FROM offers WHERE offer_id = ?", (offer.offer_id,)).fetchone()
                if existing:
                    updated_count += 1
                else:
                    saved_count += 1

                conn.execute(
                    """
                    INSERT INTO offers(
                        offer_id, title, description, bank_name, discount_type,
                        discount_value, min_amount, max_discount, payment_instruments,
                        valid_from, valid_till, is_active
                    )
                    VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                    ON CONFLICT(offer_id) DO UPDATE SET
                        title=excluded.title,
                        description=excluded.description,
                        bank_name=excluded.bank_name,
                        discount_type=excluded.discount_type,
                        discount_value=excluded.discount_value,
                        min_amount=excluded.min_amount,
                        max_discount=excluded.max_discount,
                        payment_instruments=excluded.payment_instruments,
                        valid_from=excluded.valid_from,
                        valid_till=excluded.valid_till,
                        is_active=excluded.is_active,
                        updated_at=CURRENT_TIMESTAMP
                    """,
                    self._offer_params(offer),
                )

        logger.info(f"Bulk save completed: {saved_count} new, {updated_count} updated")
        return UpsertResult(
            saved_count=saved_count,
            updated_count=updated_count,
            total_processed=saved_count + updated_count,
        )

    def get_offer(self, offer_id: str) -> Optional[Offer]:
        with self.connect() as conn:
            row = conn.execute("SELECT * FROM offers WHERE offer_id = ?", (offer_id,)).fetchone()
        return self._row_to_offer(row) if row else None

    def deactivate(self, offer_id: str) -> bool:
        with self.connect() as conn:
            result = conn.execute(
                "UPDATE offers SET is_active = 0, updated_at = CURRENT_TIMESTAMP WHERE offer_id = ?",
                (offer_id,),
            )
        return result.rowcount > 0

    def list_offers(self, active_only: bool = True) -> List[Offer]:
        query = "SELECT * FROM offers"
        if active_only:
            query += " WHERE is_active = 1"
        query += " ORDER BY rowid ASC"
        with self.connect() as conn:
            rows = conn.execute(query).fetchall()
        return [self._row_to_offer(row) for row in rows]

    def count_active(self) -> int:
        with self.connect() as conn:
            row = conn.execute("SELECT COUNT(*) AS total FROM offers WHERE is_active = 1").fetchone()
        return int(row["total"]) if row else 0
