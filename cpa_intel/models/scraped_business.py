"""Scraped business model for registry entities, deduplicated by registry number."""

from datetime import datetime, timezone

from sqlalchemy import DateTime, ForeignKey, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base


class ScrapedBusiness(Base):
    __tablename__ = "scraped_businesses"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    source: Mapped[str] = mapped_column(String(50), nullable=False, index=True)

    business_name: Mapped[str] = mapped_column(String(500), nullable=False)
    registry_number: Mapped[str | None] = mapped_column(String(100), unique=True, nullable=True)
    # Fallback key when the registry assigns no number
    identity_hash: Mapped[str] = mapped_column(String(64), unique=True, nullable=False)

    province: Mapped[str | None] = mapped_column(String(50), nullable=True, index=True)
    city: Mapped[str | None] = mapped_column(String(100), nullable=True, index=True)
    industry_code: Mapped[str | None] = mapped_column(String(20), nullable=True)
    industry: Mapped[str] = mapped_column(String(100), default="Unknown")
    operating_status: Mapped[str | None] = mapped_column(String(50), nullable=True, index=True)
    employee_count: Mapped[int | None] = mapped_column(Integer, nullable=True)

    job_id: Mapped[int | None] = mapped_column(Integer, ForeignKey("scrape_jobs.id"), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(timezone.utc)
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "source": self.source,
            "business_name": self.business_name,
            "registry_number": self.registry_number,
            "province": self.province,
            "city": self.city,
            "industry_code": self.industry_code,
            "industry": self.industry,
            "operating_status": self.operating_status,
            "employee_count": self.employee_count,
            "job_id": self.job_id,
        }
