from datetime import datetime, timezone
from sqlalchemy import String, DateTime, Boolean, Integer, Float, Index
from sqlalchemy.orm import Mapped, mapped_column, relationship
from typing import Optional, List

from .base import Base


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Olt(Base):
    __tablename__ = "olts"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    brand: Mapped[str] = mapped_column(String(50), nullable=False, default="ZTE")
    ip_address: Mapped[str] = mapped_column(String(255), nullable=False)
    port: Mapped[Optional[int]] = mapped_column(Integer)
    protocol: Mapped[str] = mapped_column(String(20), nullable=False, default="ssh")
    username: Mapped[Optional[str]] = mapped_column(String(255))
    password_encrypted: Mapped[Optional[str]] = mapped_column(String(255))
    snmp_community: Mapped[Optional[str]] = mapped_column(String(255))
    poll_interval_s: Mapped[Optional[float]] = mapped_column(Float)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    status: Mapped[str] = mapped_column(String(20), default="unknown")
    last_polled: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    active_ports: Mapped[int] = mapped_column(Integer, default=0)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, onupdate=utcnow
    )

    # Relationships
    onus: Mapped[List["Onu"]] = relationship("Onu", back_populates="olt")
    alerts: Mapped[List["Alert"]] = relationship("Alert", back_populates="olt")

    __table_args__ = (
        Index("idx_olts_active", "is_active"),
        {"mysql_charset": "utf8mb4", "mysql_collate": "utf8mb4_unicode_ci"},
    )
