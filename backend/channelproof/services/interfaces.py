"""Collaborator interfaces consumed by the attribution and journey services.

WHAT:
    Abstract read/write contracts for transactions, pixel events, the GA4
    feed, ad-platform records, verified conversions and users.

WHY:
    Services take these as constructor arguments. Production wires the
    SQLAlchemy implementations from services/stores.py; tests pass
    in-memory fakes.

REFERENCES:
    - channelproof/services/stores.py (SQL implementations)
    - channelproof/services/factory.py (wiring)
"""

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Dict, Iterable, List, Optional, Sequence, Set, Tuple
from uuid import UUID

from .attribution.types import (
    PixelEventData,
    PlatformRecord,
    TransactionData,
    UserRef,
    VerifiedConversionRecord,
)

# Payment record kinds that count as settled sales
SETTLED_PAYMENT_KINDS: Tuple[Tuple[str, str], ...] = (
    ("stripe", "stripe_charge"),
    ("paypal", "paypal_transaction"),
)


class TransactionSource(ABC):
    @abstractmethod
    def list_transactions(
        self,
        user_id: Optional[UUID],
        event_kinds: Sequence[Tuple[str, str]],
        start: datetime,
        end: datetime,
    ) -> List[TransactionData]:
        """Return transactions in [start, end], oldest first."""


class PixelEventStore(ABC):
    @abstractmethod
    def list_events(
        self,
        pixel_id: str,
        start: datetime,
        end: datetime,
        newest_first: bool = False,
    ) -> List[PixelEventData]:
        """Return pixel events with timestamp in [start, end]."""

    @abstractmethod
    def list_events_by_utm(
        self,
        pixel_id: str,
        start: datetime,
        end: datetime,
        utm_filters: Dict[str, str],
        limit: int = 5,
    ) -> List[PixelEventData]:
        """Events in the window whose UTM fields contain the filter values (case-insensitive)."""

    @abstractmethod
    def find_by_client_id(self, pixel_id: str, client_id: str) -> Optional[PixelEventData]:
        """First event whose metadata carries the given GA4 client id."""

    @abstractmethod
    def list_campaign_events(self, pixel_id: str, start: datetime, end: datetime) -> List[PixelEventData]:
        """Events in the window that carry a utm_campaign."""


class SecondaryAnalyticsFeed(ABC):
    @abstractmethod
    def list_daily_channel_stats(self, user_id: UUID, day: str) -> List[PlatformRecord]:
        """GA4 channel records for a YYYYMMDD day."""


class SpendFeed(ABC):
    @abstractmethod
    def list_spend_records(self, user_id: UUID, start: datetime, end: datetime) -> List[PlatformRecord]:
        """Ad-platform and email-platform cost records in range."""

    @abstractmethod
    def list_claimed_conversion_records(
        self, user_id: UUID, start: datetime, end: datetime
    ) -> List[PlatformRecord]:
        """Platform records that report conversions (meta, GA4) in range."""

    @abstractmethod
    def count_settled_payments(self, user_id: UUID, start: datetime, end: datetime) -> int:
        """Number of settled payment records in range."""


class ConversionRepository(ABC):
    @abstractmethod
    def insert_if_absent(self, record: VerifiedConversionRecord) -> VerifiedConversionRecord:
        """Insert the record, or return the existing row for its transaction id."""

    @abstractmethod
    def get_by_transaction_id(self, transaction_id: str) -> Optional[VerifiedConversionRecord]:
        ...

    @abstractmethod
    def existing_transaction_ids(self, transaction_ids: Iterable[str]) -> Set[str]:
        ...

    @abstractmethod
    def list_by_user(self, user_id: UUID, start: datetime, end: datetime) -> List[VerifiedConversionRecord]:
        """Conversions in range, oldest first."""


class UserDirectory(ABC):
    @abstractmethod
    def find_by_email(self, email: str) -> Optional[UserRef]:
        """Case-insensitive, whitespace-trimmed email lookup."""

    @abstractmethod
    def get(self, user_id: UUID) -> Optional[UserRef]:
        ...

    @abstractmethod
    def list_users_with_payments(self, start: datetime, end: datetime) -> List[UUID]:
        """Users that have settled payment records in range."""
