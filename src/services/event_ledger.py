import hashlib

import structlog
from sqlalchemy.dialects.postgresql import insert
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from src.core.errors import DuplicateEventError, FatalStorageError
from src.db.models.event import ProcessedEvent

logger = structlog.get_logger()

_SIGNED_BIGINT_MASK = (1 << 63) - 1


def derive_event_id(*parts: object) -> int:
    """Stable positive BIGINT id for an inbound event without a native id.

    Identical parts always produce the same id, so a redelivered payload maps
    onto the ledger row of its first delivery.
    """
    key = ":".join("" if part is None else str(part) for part in parts)
    digest = hashlib.blake2b(key.encode("utf-8"), digest_size=8).digest()
    return int.from_bytes(digest, "big") & _SIGNED_BIGINT_MASK


class EventLedger:
    """Exactly-once gate for inbound events under at-least-once delivery."""

    def __init__(self, db: AsyncSession) -> None:
        self.db = db

    async def mark_if_first_seen(self, event_id: int) -> bool:
        """Record `event_id` and report whether this call was the first.

        A single INSERT ... ON CONFLICT DO NOTHING; concurrent deliveries
        are serialized by the primary key, never by a prior lookup.
        """
        stmt = (
            insert(ProcessedEvent)
            .values(event_id=event_id)
            .on_conflict_do_nothing(index_elements=[ProcessedEvent.event_id])
            .returning(ProcessedEvent.event_id)
        )
        try:
            result = await self.db.execute(stmt)
        except SQLAlchemyError as e:
            logger.error("Event ledger write failed", event_id=event_id, error=str(e))
            raise FatalStorageError(f"Event ledger write failed for {event_id}") from e

        first_seen = result.scalar_one_or_none() is not None
        if not first_seen:
            logger.info("Event already processed", event_id=event_id)
        return first_seen

    async def claim(self, event_id: int) -> None:
        """Like `mark_if_first_seen`, but raise DuplicateEventError on a repeat."""
        if not await self.mark_if_first_seen(event_id):
            raise DuplicateEventError(event_id)
