"""Generic directory scraper driven by a declarative per-jurisdiction configuration."""

import logging
import time
from dataclasses import dataclass, field
from typing import Callable, Optional

import requests
from sqlalchemy.exc import SQLAlchemyError

from cpa_intel.config import ScrapingConfig
from cpa_intel.models import JOB_COMPLETED, JOB_FAILED, ScrapedPerson
from cpa_intel.scrapers.errors import (
    FAILURE_ERROR,
    ProtectionWallError,
    RequestFailed,
    ScraperError,
)
from cpa_intel.scrapers.parsers import (
    ColumnMap,
    DetailPageParser,
    GridParser,
    ParsedPerson,
    ParseOutcome,
    ParseStatus,
    ScriptArrayParser,
)
from cpa_intel.scrapers.session import PageResult, SessionHttpClient
from cpa_intel.scrapers.strategies import (
    EnumerationStrategy,
    SearchTerm,
    build_strategy,
    detect_captcha,
)
from cpa_intel.storage.database import IntelDatabase
from cpa_intel.utils.text_processing import identity_hash

logger = logging.getLogger("cpa_intel.scrapers.directory")

PROTOCOL_FORM = "form"    # stateful POST-back form (ASP.NET Web Forms and kin)
PROTOCOL_QUERY = "query"  # plain GET with query-string filters
PROTOCOL_SPA = "spa"      # script-rendered app, GET with query string as a fallback

PARSER_GRID = "grid"
PARSER_DETAIL = "detail"
PARSER_SCRIPT = "script"

SPA_LIMITATION_NOTE = (
    "Directory is a script-rendered single-page application; plain HTTP requests "
    "returned no server-rendered results. {terms} search terms tried, {unrendered} "
    "answered with an unrendered shell. Needs a browser-automation collector."
)


@dataclass(frozen=True)
class DirectoryConfig:
    """Everything that differs between one jurisdiction's directory and another's."""

    name: str
    province: str
    entry_url: str
    strategy: str
    parser: str = PARSER_GRID
    protocol: str = PROTOCOL_FORM
    columns: Optional[ColumnMap] = None
    search_url: Optional[str] = None
    last_name_field: str = "lastName"
    first_name_field: Optional[str] = None
    clear_fields: tuple[str, ...] = ()
    extra_fields: dict[str, str] = field(default_factory=dict)
    required_fields: tuple[str, ...] = ()
    script_variables: tuple[str, ...] = ()
    captcha_probe: bool = False
    description: str = ""


def build_parser(config: DirectoryConfig):
    if config.parser == PARSER_GRID:
        if config.columns is None:
            raise ValueError(f"{config.name}: grid parser needs a column map")
        return GridParser(config.columns)
    if config.parser == PARSER_DETAIL:
        return DetailPageParser(GridParser(config.columns) if config.columns else None)
    if config.parser == PARSER_SCRIPT:
        return ScriptArrayParser(config.script_variables)
    raise ValueError(f"{config.name}: unknown parser kind '{config.parser}'")


class DirectoryScraper:
    """Runs one jurisdiction's enumeration and persists new, non-duplicate professionals.

    Each run is tracked as a ScrapeJob that always ends ``completed`` or
    ``failed``. Single-term failures are logged and skipped; structure
    errors, protection walls and failed session re-establishment end the
    run and propagate after the job row is closed.
    """

    def __init__(
        self,
        config: DirectoryConfig,
        db: IntelDatabase,
        settings: Optional[ScrapingConfig] = None,
        http: Optional[requests.Session] = None,
        strategy: Optional[EnumerationStrategy] = None,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
    ):
        settings = settings or ScrapingConfig()
        self.config = config
        self.db = db
        self.parser = build_parser(config)
        self.strategy = strategy or build_strategy(config.strategy)
        self.client = SessionHttpClient(
            entry_url=config.entry_url,
            http=http,
            request_delay=settings.request_delay,
            timeout=settings.timeout,
            max_consecutive_failures=settings.max_consecutive_failures,
            required_fields=config.required_fields,
            user_agent=settings.user_agent,
            sleep=sleep,
            clock=clock,
        )
        self._terms_tried = 0
        self._unrendered = 0

    def run(self) -> dict:
        """Run the full enumeration. Returns {found, inserted, skipped, job_id}."""
        job_id = self.db.start_job(self.config.name)
        counts = {"found": 0, "inserted": 0, "skipped": 0}
        status = JOB_FAILED
        error_message = failure_kind = notes = None
        logger.info("Scrape of %s started (job %d, strategy %s)", self.config.name, job_id, self.strategy.name)

        try:
            self._open()
            self._enumerate(job_id, counts)
            notes = self._limitation_note(counts)
            status = JOB_COMPLETED
        except ScraperError as e:
            error_message, failure_kind = str(e), e.failure_kind
            logger.error("Scrape of %s failed [%s]: %s", self.config.name, failure_kind, e)
            raise
        except Exception as e:
            error_message, failure_kind = f"{type(e).__name__}: {e}", FAILURE_ERROR
            logger.exception("Scrape of %s crashed", self.config.name)
            raise
        finally:
            self.db.finish_job(
                job_id,
                status,
                found=counts["found"],
                inserted=counts["inserted"],
                skipped=counts["skipped"],
                error_message=error_message,
                failure_kind=failure_kind,
                notes=notes,
            )

        logger.info(
            "Scrape of %s completed: %d found, %d inserted, %d skipped",
            self.config.name, counts["found"], counts["inserted"], counts["skipped"],
        )
        return {**counts, "job_id": job_id}

    # ------------------------------------------------------------------
    # Steps
    # ------------------------------------------------------------------

    def _open(self) -> None:
        """Establish the session (form directories) and probe for a CAPTCHA wall."""
        page: Optional[PageResult] = None
        if self.config.protocol == PROTOCOL_FORM:
            page = self.client.establish_session()
        elif self.config.captcha_probe:
            page = self.client.get(self.config.entry_url)

        if page is not None and self.config.captcha_probe:
            self._check_captcha(page.text)

    def _enumerate(self, job_id: int, counts: dict) -> None:
        every = self.strategy.progress_every
        for index, term in enumerate(self.strategy.terms(), 1):
            self._terms_tried += 1
            try:
                outcome = self.strategy.collect(self.search, term)
            except RequestFailed as e:
                logger.warning("%s: search '%s' failed, moving on: %s", self.config.name, term, e)
                continue

            if outcome.records:
                self._store(outcome.records, job_id, counts)

            if index % every == 0:
                logger.info(
                    "%s: %d terms done (last '%s'), %d found, %d new",
                    self.config.name, index, term, counts["found"], counts["inserted"],
                )

    def search(self, term: SearchTerm) -> ParseOutcome:
        """One round trip for one term, parsed.

        Raises RequestFailed when the response can't be parsed, after
        counting it against the session's consecutive-failure budget.
        """
        page = self._fetch(term)
        if self.config.captcha_probe:
            self._check_captcha(page.text)

        outcome = self.parser.parse(page.text)
        if outcome.status == ParseStatus.UNRECOGNIZED:
            if self.strategy.tolerate_unrecognized:
                self._unrendered += 1
                self.client.record_success()
                return ParseOutcome.results([])
            self.client.record_failure(f"unrecognized response for '{term}'")
            raise RequestFailed(f"Could not parse response for '{term}' from {page.url}")

        self.client.record_success()
        return outcome

    def _fetch(self, term: SearchTerm) -> PageResult:
        cfg = self.config
        params = {cfg.last_name_field: term.last_name}
        if cfg.first_name_field:
            params[cfg.first_name_field] = term.first_name

        if cfg.protocol == PROTOCOL_FORM:
            return self.client.submit_search(
                params,
                url=cfg.search_url,
                clear_fields=cfg.clear_fields,
                extra_fields=cfg.extra_fields,
            )

        query = dict(cfg.extra_fields)
        query.update(params)
        return self.client.get(cfg.search_url or cfg.entry_url, params=query)

    def _check_captcha(self, html: str) -> None:
        marker = detect_captcha(html)
        if marker:
            raise ProtectionWallError(
                f"{self.config.name} is behind a CAPTCHA challenge ({marker}); "
                "this source needs a browser-automation or CAPTCHA-solving collector"
            )

    def _store(self, records: list[ParsedPerson], job_id: int, counts: dict) -> None:
        for record in records:
            counts["found"] += 1
            person = ScrapedPerson(
                source=self.config.name,
                first_name=record.first_name,
                last_name=record.last_name,
                full_name=record.full_name,
                designation=record.designation,
                province=self.config.province,
                city=record.city,
                firm_name=record.firm_name or None,
                identity_hash=identity_hash(record.full_name, self.config.province),
                job_id=job_id,
            )
            try:
                inserted = self.db.insert_person(person)
            except SQLAlchemyError as e:
                logger.warning("%s: could not store %s: %s", self.config.name, record.full_name, e)
                counts["skipped"] += 1
                continue
            counts["inserted" if inserted else "skipped"] += 1

    def _limitation_note(self, counts: dict) -> Optional[str]:
        if not self.strategy.tolerate_unrecognized or counts["found"]:
            return None
        note = SPA_LIMITATION_NOTE.format(terms=self._terms_tried, unrendered=self._unrendered)
        logger.warning("%s: %s", self.config.name, note)
        return note
