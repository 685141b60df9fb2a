"""SQLAlchemy model for the durable bridge event queue."""

from datetime import datetime

from sqlalchemy import BigInteger, DateTime, Integer, String, Text, UniqueConstraint, func
from sqlalchemy.orm import Mapped, mapped_column

from sheetchain.db.session import Base


class BridgeEvent(Base):
    """Lock/transfer observed on a source chain, awaiting settlement."""

    __tablename__ = "bridge_events"
    __table_args__ = (
        UniqueConstraint(
            "from_chain",
            "from_address",
            "from_amount",
            "to_chain",
            "to_address",
            "to_amount",
            name="uq_bridge_events_route",
        ),
    )

    id: Mapped[int] = mapped_column(
        BigInteger().with_variant(Integer, "sqlite"), primary_key=True, autoincrement=True
    )
    from_chain: Mapped[str] = mapped_column(String(16), nullable=False)
    from_address: Mapped[str] = mapped_column(String(128), nullable=False)
    from_amount: Mapped[str] = mapped_column(String(80), nullable=False)  # u256 as decimal
    to_chain: Mapped[str] = mapped_column(String(16), nullable=False)
    to_address: Mapped[str] = mapped_column(String(128), nullable=False)
    to_amount: Mapped[str] = mapped_column(String(80), nullable=False)
    signature: Mapped[str] = mapped_column(String(128), nullable=False, index=True)
    status: Mapped[str] = mapped_column(
        String(16), nullable=False, default="pending", index=True
    )  # 'pending', 'processed', 'failed'
    settlement_tx: Mapped[str | None] = mapped_column(String(128), nullable=True)
    error: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )
    updated_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True, onupdate=func.now()
    )
