from datetime import datetime

from sqlalchemy import BigInteger, DateTime, Index, String, func
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from src.db.models.base import Base, TimestampMixin


class ProcessedEvent(Base):
    """Append-only ledger of inbound event ids that were already handled."""

    __tablename__ = "processed_events"

    event_id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=False)
    processed_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )

    def __repr__(self) -> str:
        return f"<ProcessedEvent {self.event_id}>"


class WebhookLog(Base, TimestampMixin):
    """Raw inbound webhook payloads, kept for auditing and reprocessing."""

    __tablename__ = "webhook_logs"

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True)
    source: Mapped[str] = mapped_column(String(40), nullable=False)
    payload: Mapped[dict | None] = mapped_column(JSONB)

    __table_args__ = (Index("idx_webhook_logs_source_created", "source", "created_at"),)

    def __repr__(self) -> str:
        return f"<WebhookLog {self.source} id={self.id}>"
