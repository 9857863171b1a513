"""
SQLAlchemy database models for nutwatch.
"""

from typing import Optional

from sqlalchemy import Float, Index, Integer, String
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    """Base class for all database models."""


class HistorySample(Base):
    """
    Persisted UPS history.

    One row per sample the history recorder decided to keep. Timestamps are
    whole seconds since the epoch.
    """
    __tablename__ = "history"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    timestamp: Mapped[int] = mapped_column(Integer, nullable=False)

    input_voltage: Mapped[Optional[float]] = mapped_column(
        Float,
        nullable=True,
        comment="Input voltage from mains power"
    )
    output_voltage: Mapped[Optional[float]] = mapped_column(
        Float,
        nullable=True,
        comment="Output voltage to connected devices"
    )
    load_percent: Mapped[Optional[float]] = mapped_column(
        Float,
        nullable=True,
        comment="UPS load percentage (0-100)"
    )
    battery_charge: Mapped[Optional[float]] = mapped_column(
        Float,
        nullable=True,
        comment="Battery charge percentage (0-100)"
    )
    status: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
        default="",
        comment="UPS status string from NUT daemon"
    )

    __table_args__ = (
        Index("idx_history_timestamp", "timestamp"),
        Index("idx_history_status", "status"),
    )
