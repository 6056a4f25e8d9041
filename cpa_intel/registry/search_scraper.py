"""Search-driven registry scraper: legacy name-search form -> entity ids -> JSON detail records."""

import itertools
import json
import logging
import re
import string
import time
from typing import Callable, Iterable, Iterator, Optional

import requests
from bs4 import BeautifulSoup

from cpa_intel.config import RegistryConfig
from cpa_intel.models import JOB_COMPLETED, JOB_FAILED, ScrapedBusiness
from cpa_intel.registry.naics import industry_label
from cpa_intel.scrapers.errors import FAILURE_ERROR, RequestFailed, ScraperError
from cpa_intel.scrapers.session import SessionHttpClient
from cpa_intel.storage.database import IntelDatabase
from cpa_intel.utils.text_processing import business_identity_hash, clean_text, normalize_province

logger = logging.getLogger("cpa_intel.registry.search")

SOURCE_REGISTRY_SEARCH = "registry_search"

# The search has no "list all" form; these vocabularies approximate coverage
BUSINESS_TOKENS = [
    "accounting", "bakery", "builders", "consulting", "construction", "contracting",
    "dental", "design", "electric", "engineering", "enterprises", "farms", "financial",
    "fisheries", "foods", "group", "health", "holdings", "home", "investments",
    "logistics", "management", "marine", "media", "medical", "motors", "plumbing",
    "properties", "realty", "restaurant", "services", "solutions", "supply",
    "systems", "technologies", "trading", "transport", "trucking", "ventures",
]
STRUCTURE_WORDS = [
    "incorporated", "inc", "limited", "ltd", "corporation", "corp", "company",
    "cooperative", "partnership", "society", "association", "unlimited", "ulc",
]
PLACE_NAMES = [
    "atlantic", "maritime", "canada", "canadian", "nova scotia", "halifax",
    "dartmouth", "sydney", "truro", "yarmouth", "lunenburg", "antigonish",
    "cape breton", "annapolis", "pictou", "bedford", "kentville", "bridgewater",
]

_ENTITY_ID_PARAM = re.compile(r"[?&](?:id|entityId|corpId|companyId|registryId)=([A-Za-z0-9-]+)", re.I)
_ENTITY_ID_PATH = re.compile(r"/(?:entity|company|corporation|business)/([A-Za-z0-9-]+)/?(?:$|[?#])", re.I)

DETAIL_KEYS = {
    "business_name": ("legalName", "businessName", "entityName", "companyName", "name"),
    "registry_number": ("registryNumber", "registrationNumber", "corporationNumber", "entityId", "id"),
    "city": ("city", "municipality", "town"),
    "province": ("province", "jurisdiction", "prov"),
    "operating_status": ("status", "entityStatus", "companyStatus"),
    "industry_code": ("naics", "naicsCode", "industryCode"),
}


def three_letter_prefixes() -> Iterator[str]:
    for letters in itertools.product(string.ascii_lowercase, repeat=3):
        yield "".join(letters)


def default_terms(include_prefixes: bool = False) -> Iterator[str]:
    """Business tokens, then structure words, then place names, then (optionally) aaa..zzz."""
    yield from BUSINESS_TOKENS
    yield from STRUCTURE_WORDS
    yield from PLACE_NAMES
    if include_prefixes:
        yield from three_letter_prefixes()


def extract_entity_ids(html: str) -> list[str]:
    """Opaque entity identifiers from result links, in page order, de-duplicated."""
    soup = BeautifulSoup(html, "lxml")
    ids = []
    for link in soup.find_all("a", href=True):
        href = link["href"]
        match = _ENTITY_ID_PARAM.search(href) or _ENTITY_ID_PATH.search(href)
        if match and match.group(1) not in ids:
            ids.append(match.group(1))
    return ids


def _flatten(record: dict) -> dict:
    """Lift one level of nested objects (e.g. "address": {"city": ...}) to the top."""
    flat = {}
    for key, value in record.items():
        if isinstance(value, dict):
            for inner_key, inner_value in value.items():
                flat.setdefault(inner_key.lower(), inner_value)
        else:
            flat[key.lower()] = value
    return flat


def detail_to_business(
    record: dict,
    entity_id: str,
    source: str = SOURCE_REGISTRY_SEARCH,
    default_province: Optional[str] = None,
    job_id: Optional[int] = None,
) -> Optional[ScrapedBusiness]:
    flat = _flatten(record)

    def pick(target: str) -> Optional[str]:
        for key in DETAIL_KEYS[target]:
            value = flat.get(key.lower())
            if value not in (None, ""):
                return clean_text(str(value))
        return None

    name = pick("business_name")
    if not name:
        return None
    number = pick("registry_number") or entity_id
    city = pick("city")
    province = normalize_province(pick("province")) or default_province
    code = pick("industry_code")

    return ScrapedBusiness(
        source=source,
        business_name=name,
        registry_number=number,
        identity_hash=business_identity_hash(name, city, province, number),
        province=province,
        city=city,
        industry_code=code,
        industry=industry_label(code),
        operating_status=pick("operating_status"),
        job_id=job_id,
    )


class RegistrySearchScraper:
    """Walks a registry's name-search form and resolves every hit to its detail record."""

    def __init__(
        self,
        db: IntelDatabase,
        config: Optional[RegistryConfig] = None,
        http: Optional[requests.Session] = None,
        source: str = SOURCE_REGISTRY_SEARCH,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.db = db
        self.config = config or RegistryConfig()
        self.source = source
        self.client = SessionHttpClient(
            entry_url=self.config.search_url,
            http=http,
            request_delay=self.config.search_delay,
            sleep=sleep,
            clock=clock,
        )

    def run(self, terms: Optional[Iterable[str]] = None) -> dict:
        if terms is None:
            terms = default_terms(self.config.include_prefixes)
        terms = list(terms)
        job_id = self.db.start_job(self.source)
        counts = {"found": 0, "inserted": 0, "skipped": 0}
        status, error_message, failure_kind = JOB_FAILED, None, None
        seen: set[str] = set()

        try:
            self.client.establish_session()
            for index, term in enumerate(terms, 1):
                ids = self._search(term)
                fresh = [entity_id for entity_id in ids if entity_id not in seen]
                seen.update(fresh)

                batch = []
                for entity_id in fresh:
                    business = self._fetch_detail(entity_id, job_id)
                    if business is not None:
                        batch.append(business)
                counts["found"] += len(fresh)
                inserted, skipped = self.db.insert_businesses(batch)
                counts["inserted"] += inserted
                counts["skipped"] += skipped + (len(fresh) - len(batch))

                if index % 10 == 0:
                    logger.info(
                        "Registry search: %d/%d terms, %d entities, %d new",
                        index, len(terms), counts["found"], counts["inserted"],
                    )
            status = JOB_COMPLETED
        except ScraperError as e:
            error_message, failure_kind = str(e), e.failure_kind
            logger.error("Registry search failed [%s]: %s", failure_kind, e)
            raise
        except Exception as e:
            error_message, failure_kind = f"{type(e).__name__}: {e}", FAILURE_ERROR
            logger.exception("Registry search crashed")
            raise
        finally:
            self.db.finish_job(
                job_id, status,
                found=counts["found"], inserted=counts["inserted"], skipped=counts["skipped"],
                error_message=error_message, failure_kind=failure_kind,
            )

        return {**counts, "job_id": job_id}

    def _search(self, term: str) -> list[str]:
        try:
            page = self.client.submit_search({self.config.search_field: term}, url=self.config.search_url)
        except RequestFailed as e:
            logger.warning("Registry search for '%s' failed: %s", term, e)
            return []
        self.client.record_success()
        ids = extract_entity_ids(page.text)
        logger.debug("'%s': %d entities", term, len(ids))
        return ids

    def _fetch_detail(self, entity_id: str, job_id: int) -> Optional[ScrapedBusiness]:
        url = self.config.detail_url.format(entity_id=entity_id)
        try:
            page = self.client.get(url, headers={"Accept": "application/json"})
        except RequestFailed as e:
            logger.warning("Detail for entity %s failed: %s", entity_id, e)
            return None

        try:
            record = json.loads(page.text)
        except json.JSONDecodeError:
            self.client.record_failure(f"detail for {entity_id} is not JSON")
            return None
        if not isinstance(record, dict):
            return None

        self.client.record_success()
        return detail_to_business(
            record, entity_id, self.source, self.config.search_province, job_id
        )
