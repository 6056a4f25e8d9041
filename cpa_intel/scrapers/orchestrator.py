"""Runs directory scrapers one after another, isolating each one's failures."""

import logging
import time
from typing import Callable, Optional

import requests

from cpa_intel.config import AppConfig
from cpa_intel.scrapers.directory import DirectoryConfig, DirectoryScraper
from cpa_intel.scrapers.errors import FAILURE_ERROR, ScraperError, UnknownSourceError
from cpa_intel.scrapers.jurisdictions import JURISDICTIONS
from cpa_intel.storage.database import IntelDatabase

logger = logging.getLogger("cpa_intel.scrapers.orchestrator")


class ScraperOrchestrator:
    def __init__(
        self,
        db: IntelDatabase,
        config: Optional[AppConfig] = None,
        jurisdictions: Optional[dict[str, DirectoryConfig]] = None,
        http_factory: Optional[Callable[[], requests.Session]] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.db = db
        self.config = config or AppConfig()
        self.jurisdictions = jurisdictions if jurisdictions is not None else JURISDICTIONS
        self.http_factory = http_factory
        self.sleep = sleep

    @property
    def names(self) -> list[str]:
        return list(self.jurisdictions)

    def build_scraper(self, name: str) -> DirectoryScraper:
        return DirectoryScraper(
            self.jurisdictions[name],
            self.db,
            settings=self.config.scraping,
            http=self.http_factory() if self.http_factory else None,
            sleep=self.sleep,
        )

    def run_all(self) -> dict[str, dict]:
        """Run every registered scraper (or the configured subset) sequentially.

        Returns {name: {found, inserted, skipped, job_id}} or {name: {error, failure_kind}}.
        """
        selected = self.config.scraping.sources or self.names
        results = {}
        for name in selected:
            if name not in self.jurisdictions:
                logger.warning("Skipping unknown configured source '%s'", name)
                continue
            results[name] = self._run_isolated(name)

        failed = [name for name, result in results.items() if "error" in result]
        logger.info("Scrape of %d sources finished, %d failed", len(results), len(failed))
        return results

    def run_single(self, name: str) -> dict:
        self._require(name)
        return self._run_isolated(name)

    def rescrape(self, name: str) -> dict:
        """Purge every record for a source, then scrape it again.

        Must not run while a scrape of the same source is in progress.
        """
        self._require(name)
        purged = self.db.purge_source(name)
        result = self._run_isolated(name)
        result["purged"] = purged
        return result

    def _require(self, name: str) -> None:
        if name not in self.jurisdictions:
            raise UnknownSourceError(name, self.names)

    def _run_isolated(self, name: str) -> dict:
        try:
            return self.build_scraper(name).run()
        except ScraperError as e:
            return {"error": str(e), "failure_kind": e.failure_kind}
        except Exception as e:
            logger.error("Scraper %s failed: %s", name, e)
            return {"error": str(e), "failure_kind": FAILURE_ERROR}
