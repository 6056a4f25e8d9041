"""Persistence handle for scraped professionals, businesses, and scrape jobs."""

import logging
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import delete, func, or_, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from cpa_intel.models import (
    JOB_COMPLETED,
    JOB_FAILED,
    JOB_RUNNING,
    STATUS_ENRICHED,
    STATUS_RAW,
    Base,
    ScrapedBusiness,
    ScrapedPerson,
    ScrapeJob,
    create_db_engine,
    create_session_factory,
    get_database_url,
)

logger = logging.getLogger("cpa_intel.storage")

MAX_PAGE_SIZE = 100


class IntelDatabase:
    """Transactional store shared by scrapers, loaders, and the enrichment pipeline.

    One instance is opened at process start and passed explicitly to every
    component; each operation runs in its own short session so a failure on
    one record never rolls back records already committed.
    """

    def __init__(self, database_url: str = ""):
        self.database_url = get_database_url(database_url)
        self.engine = create_db_engine(self.database_url)
        self._sessions = create_session_factory(self.engine)
        Base.metadata.create_all(self.engine)

    # ------------------------------------------------------------------
    # Professionals
    # ------------------------------------------------------------------

    def person_exists(self, identity_hash: str) -> bool:
        """Check if a professional with this identity hash is already stored."""
        with self._sessions() as session:
            found = session.scalar(
                select(ScrapedPerson.id).where(ScrapedPerson.identity_hash == identity_hash)
            )
            return found is not None

    def insert_person(self, person: ScrapedPerson) -> bool:
        """Insert a professional; returns False if the identity hash already exists.

        The unique constraint on identity_hash makes check-then-insert atomic:
        a concurrent insert of the same key loses with an IntegrityError.
        """
        if self.person_exists(person.identity_hash):
            return False

        with self._sessions() as session:
            session.add(person)
            try:
                session.commit()
            except IntegrityError:
                session.rollback()
                return False
        return True

    def list_persons(
        self,
        province: Optional[str] = None,
        city: Optional[str] = None,
        source: Optional[str] = None,
        status: Optional[str] = None,
        page: int = 1,
        limit: int = 50,
    ) -> tuple[list[ScrapedPerson], int]:
        """Filtered, paginated professionals; returns (items, total)."""
        query = select(ScrapedPerson)
        if province:
            query = query.where(ScrapedPerson.province == province.upper())
        if city:
            query = query.where(func.lower(ScrapedPerson.city) == city.lower())
        if source:
            query = query.where(ScrapedPerson.source == source)
        if status:
            query = query.where(ScrapedPerson.status == status)

        page, limit = _clamp_page(page, limit)
        with self._sessions() as session:
            total = session.scalar(select(func.count()).select_from(query.subquery())) or 0
            items = session.scalars(
                query.order_by(ScrapedPerson.id).offset((page - 1) * limit).limit(limit)
            ).all()
        return list(items), total

    def enrichment_candidates(self, limit: int = 200) -> list[ScrapedPerson]:
        """Unenriched professionals that have a firm name but no email."""
        query = (
            select(ScrapedPerson)
            .where(
                ScrapedPerson.status == STATUS_RAW,
                ScrapedPerson.firm_name.is_not(None),
                ScrapedPerson.firm_name != "",
                or_(ScrapedPerson.email.is_(None), ScrapedPerson.email == ""),
            )
            .order_by(ScrapedPerson.id)
            .limit(limit)
        )
        with self._sessions() as session:
            return list(session.scalars(query).all())

    def mark_enriched(self, person_id: int, email: str) -> None:
        with self._sessions() as session:
            person = session.get(ScrapedPerson, person_id)
            if person is None:
                return
            person.email = email
            person.status = STATUS_ENRICHED
            session.commit()

    # ------------------------------------------------------------------
    # Businesses
    # ------------------------------------------------------------------

    def insert_businesses(self, businesses: list[ScrapedBusiness]) -> tuple[int, int]:
        """Batch insert, skipping known registry numbers / identity hashes.

        A row that fails to persist is logged and counted as skipped.
        Returns (inserted, skipped).
        """
        if not businesses:
            return 0, 0

        numbers = {b.registry_number for b in businesses if b.registry_number}
        hashes = {b.identity_hash for b in businesses}

        with self._sessions() as session:
            known_numbers = set()
            if numbers:
                known_numbers = set(session.scalars(
                    select(ScrapedBusiness.registry_number)
                    .where(ScrapedBusiness.registry_number.in_(numbers))
                ).all())
            known_hashes = set(session.scalars(
                select(ScrapedBusiness.identity_hash)
                .where(ScrapedBusiness.identity_hash.in_(hashes))
            ).all())

            fresh = []
            for business in businesses:
                if business.registry_number and business.registry_number in known_numbers:
                    continue
                if business.identity_hash in known_hashes:
                    continue
                if business.registry_number:
                    known_numbers.add(business.registry_number)
                known_hashes.add(business.identity_hash)
                fresh.append(business)

            session.add_all(fresh)
            try:
                session.commit()
                return len(fresh), len(businesses) - len(fresh)
            except (SQLAlchemyError, OverflowError) as e:
                session.rollback()
                logger.warning("Batch insert failed (%s), retrying %d rows individually", type(e).__name__, len(fresh))

        inserted = 0
        for business in fresh:
            with self._sessions() as session:
                session.add(business)
                try:
                    session.commit()
                    inserted += 1
                except (SQLAlchemyError, OverflowError) as e:
                    session.rollback()
                    logger.warning("Skipping business %r: %s", business.business_name, e)
        return inserted, len(businesses) - inserted

    def list_businesses(
        self,
        province: Optional[str] = None,
        city: Optional[str] = None,
        source: Optional[str] = None,
        status: Optional[str] = None,
        page: int = 1,
        limit: int = 50,
    ) -> tuple[list[ScrapedBusiness], int]:
        query = select(ScrapedBusiness)
        if province:
            query = query.where(ScrapedBusiness.province == province.upper())
        if city:
            query = query.where(func.lower(ScrapedBusiness.city) == city.lower())
        if source:
            query = query.where(ScrapedBusiness.source == source)
        if status:
            query = query.where(func.lower(ScrapedBusiness.operating_status) == status.lower())

        page, limit = _clamp_page(page, limit)
        with self._sessions() as session:
            total = session.scalar(select(func.count()).select_from(query.subquery())) or 0
            items = session.scalars(
                query.order_by(ScrapedBusiness.id).offset((page - 1) * limit).limit(limit)
            ).all()
        return list(items), total

    # ------------------------------------------------------------------
    # Jobs
    # ------------------------------------------------------------------

    def start_job(self, source: str) -> int:
        """Create a running job row and return its id."""
        with self._sessions() as session:
            job = ScrapeJob(source=source, status=JOB_RUNNING)
            session.add(job)
            session.commit()
            return job.id

    def finish_job(
        self,
        job_id: int,
        status: str,
        found: int = 0,
        inserted: int = 0,
        skipped: int = 0,
        error_message: Optional[str] = None,
        failure_kind: Optional[str] = None,
        notes: Optional[str] = None,
    ) -> None:
        """Move a job to its terminal state. Only a running job can be finished."""
        if status not in (JOB_COMPLETED, JOB_FAILED):
            raise ValueError(f"Not a terminal job status: {status}")

        with self._sessions() as session:
            job = session.get(ScrapeJob, job_id)
            if job is None:
                raise LookupError(f"Scrape job {job_id} not found")
            if job.status != JOB_RUNNING:
                logger.warning("Job %d already finished as %s", job_id, job.status)
                return
            job.status = status
            job.records_found = found
            job.records_inserted = inserted
            job.records_skipped = skipped
            job.error_message = error_message
            job.failure_kind = failure_kind
            job.notes = notes
            job.completed_at = datetime.now(timezone.utc)
            session.commit()

    def get_job(self, job_id: int) -> Optional[dict]:
        with self._sessions() as session:
            job = session.get(ScrapeJob, job_id)
            return job.to_dict() if job else None

    def list_jobs(self, limit: int = 20, source: Optional[str] = None) -> list[dict]:
        """Recent jobs, most recent first."""
        query = select(ScrapeJob)
        if source:
            query = query.where(ScrapeJob.source == source)
        _, limit = _clamp_page(1, limit)
        with self._sessions() as session:
            jobs = session.scalars(query.order_by(ScrapeJob.id.desc()).limit(limit)).all()
            return [job.to_dict() for job in jobs]

    # ------------------------------------------------------------------
    # Administration
    # ------------------------------------------------------------------

    def purge_source(self, source: str) -> int:
        """Hard-delete every professional and business record for a source tag."""
        with self._sessions() as session:
            persons = session.execute(delete(ScrapedPerson).where(ScrapedPerson.source == source))
            businesses = session.execute(delete(ScrapedBusiness).where(ScrapedBusiness.source == source))
            session.commit()
            removed = (persons.rowcount or 0) + (businesses.rowcount or 0)
        logger.warning("Purged %d records for source '%s'", removed, source)
        return removed

    def get_stats(self) -> dict:
        """Get database statistics."""
        stats = {}
        with self._sessions() as session:
            stats["total_professionals"] = session.scalar(select(func.count(ScrapedPerson.id))) or 0
            stats["total_businesses"] = session.scalar(select(func.count(ScrapedBusiness.id))) or 0
            stats["total_jobs"] = session.scalar(select(func.count(ScrapeJob.id))) or 0

            for key, column in (
                ("by_province", ScrapedPerson.province),
                ("by_source", ScrapedPerson.source),
                ("by_status", ScrapedPerson.status),
            ):
                rows = session.execute(
                    select(column, func.count(ScrapedPerson.id)).group_by(column)
                ).all()
                stats[key] = {value: count for value, count in rows}

            last = session.scalars(select(ScrapeJob).order_by(ScrapeJob.id.desc()).limit(1)).first()
            stats["last_job"] = last.to_dict() if last else None
        return stats

    def close(self):
        if self.engine is not None:
            self.engine.dispose()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()


def _clamp_page(page: int, limit: int) -> tuple[int, int]:
    return max(1, int(page or 1)), max(1, min(int(limit or 1), MAX_PAGE_SIZE))
