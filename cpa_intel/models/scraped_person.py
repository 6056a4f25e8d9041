"""Scraped professional model, deduplicated by identity hash."""

from datetime import datetime, timezone

from sqlalchemy import DateTime, ForeignKey, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base

STATUS_RAW = "raw"
STATUS_ENRICHED = "enriched"
STATUS_CONTACTED = "contacted"
STATUS_CONVERTED = "converted"


class ScrapedPerson(Base):
    __tablename__ = "scraped_persons"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    source: Mapped[str] = mapped_column(String(50), nullable=False, index=True)

    first_name: Mapped[str] = mapped_column(String(100), default="")
    last_name: Mapped[str] = mapped_column(String(100), default="")
    full_name: Mapped[str] = mapped_column(String(200), nullable=False)
    designation: Mapped[str] = mapped_column(String(200), default="")
    province: Mapped[str] = mapped_column(String(50), nullable=False, index=True)
    city: Mapped[str] = mapped_column(String(100), default="", index=True)
    firm_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    phone: Mapped[str | None] = mapped_column(String(50), nullable=True)
    email: Mapped[str | None] = mapped_column(String(255), nullable=True)

    # SHA-256 hex of normalized (full name, province)
    identity_hash: Mapped[str] = mapped_column(String(64), unique=True, nullable=False)
    status: Mapped[str] = mapped_column(String(20), default=STATUS_RAW, index=True)

    job_id: Mapped[int | None] = mapped_column(Integer, ForeignKey("scrape_jobs.id"), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(timezone.utc)
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "source": self.source,
            "first_name": self.first_name,
            "last_name": self.last_name,
            "full_name": self.full_name,
            "designation": self.designation,
            "province": self.province,
            "city": self.city,
            "firm_name": self.firm_name,
            "phone": self.phone,
            "email": self.email,
            "status": self.status,
            "job_id": self.job_id,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }
