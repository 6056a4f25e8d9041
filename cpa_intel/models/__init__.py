"""ORM models for the CPA/SME intelligence store."""

from .base import Base, create_db_engine, create_session_factory, get_database_url
from .scrape_job import JOB_COMPLETED, JOB_FAILED, JOB_RUNNING, ScrapeJob
from .scraped_business import ScrapedBusiness
from .scraped_person import (
    STATUS_CONTACTED,
    STATUS_CONVERTED,
    STATUS_ENRICHED,
    STATUS_RAW,
    ScrapedPerson,
)

__all__ = [
    "Base",
    "create_db_engine",
    "create_session_factory",
    "get_database_url",
    "ScrapeJob",
    "ScrapedPerson",
    "ScrapedBusiness",
    "JOB_RUNNING",
    "JOB_COMPLETED",
    "JOB_FAILED",
    "STATUS_RAW",
    "STATUS_ENRICHED",
    "STATUS_CONTACTED",
    "STATUS_CONVERTED",
]
