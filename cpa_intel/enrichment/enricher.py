"""Contact enrichment: guess a firm's website and pull a plausible email address from it."""

import logging
import time
from typing import Callable, Optional

import requests

from cpa_intel.config import EnrichmentConfig
from cpa_intel.models import ScrapedPerson
from cpa_intel.storage.database import IntelDatabase
from cpa_intel.utils.http_client import create_session, safe_get
from cpa_intel.utils.text_processing import extract_emails, guess_domains, pick_contact_email

logger = logging.getLogger("cpa_intel.enrichment")


class EnrichmentPipeline:
    """Processes a bounded daily batch of professionals with a firm name but no email.

    Records are only updated on success; failures stay ``raw`` and are picked
    up again on a later run.
    """

    def __init__(
        self,
        db: IntelDatabase,
        config: Optional[EnrichmentConfig] = None,
        http: Optional[requests.Session] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.db = db
        self.config = config or EnrichmentConfig()
        self.http = http if http is not None else create_session(max_retries=0)
        self.sleep = sleep

    def run(self, limit: Optional[int] = None) -> dict:
        limit = self.config.daily_limit if limit is None else min(limit, self.config.daily_limit)
        candidates = self.db.enrichment_candidates(limit)
        logger.info("Enriching %d professionals (daily limit %d)", len(candidates), self.config.daily_limit)

        enriched = 0
        for index, person in enumerate(candidates):
            if index:
                self.sleep(self.config.delay)
            email = self.find_email(person)
            if email:
                self.db.mark_enriched(person.id, email)
                enriched += 1
                logger.info("Enriched %s (%s) -> %s", person.full_name, person.firm_name, email)
            else:
                logger.debug("No contact found for %s (%s)", person.full_name, person.firm_name)

        logger.info("Enrichment done: %d/%d enriched", enriched, len(candidates))
        return {"processed": len(candidates), "enriched": enriched, "failed": len(candidates) - enriched}

    def find_email(self, person: ScrapedPerson) -> Optional[str]:
        """Try each guessed domain in turn, pausing between fetches; first page yielding an address wins."""
        for index, domain in enumerate(guess_domains(person.firm_name or "")):
            if index:
                self.sleep(self.config.delay)
            response = safe_get(f"https://{domain}", session=self.http, timeout=self.config.timeout)
            if response is None:
                continue
            email = pick_contact_email(extract_emails(response.text), person.first_name, person.last_name)
            if email:
                return email
        return None
