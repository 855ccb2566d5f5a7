from datetime import datetime
from sqlalchemy import String, DateTime, Float, Integer, ForeignKey, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship
from typing import Optional

from .base import Base
from .olt import utcnow


class Onu(Base):
    __tablename__ = "onus"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    olt_id: Mapped[int] = mapped_column(ForeignKey("olts.id"), nullable=False)
    pon_port: Mapped[str] = mapped_column(String(50), nullable=False)
    onu_index: Mapped[int] = mapped_column(Integer, nullable=False)
    serial_number: Mapped[str] = mapped_column(String(100), nullable=False)
    name: Mapped[Optional[str]] = mapped_column(String(255))
    status: Mapped[str] = mapped_column(String(20), default="offline")
    rx_power: Mapped[Optional[float]] = mapped_column(Float)
    tx_power: Mapped[Optional[float]] = mapped_column(Float)
    mac_address: Mapped[Optional[str]] = mapped_column(String(17))
    router_name: Mapped[Optional[str]] = mapped_column(String(255))
    last_online: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    last_offline: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, onupdate=utcnow
    )

    # Relationships
    olt: Mapped["Olt"] = relationship("Olt", back_populates="onus")

    __table_args__ = (
        UniqueConstraint("olt_id", "pon_port", "onu_index", name="uq_onu_hardware_slot"),
        {"mysql_charset": "utf8mb4", "mysql_collate": "utf8mb4_unicode_ci"},
    )
