"""Bulk business-register loader: zip download -> largest CSV -> streamed batch inserts."""

import csv
import io
import logging
import os
import tempfile
import zipfile
from pathlib import Path
from typing import IO, Iterator, Optional

import requests

from cpa_intel.config import RegistryConfig
from cpa_intel.models import JOB_COMPLETED, JOB_FAILED, ScrapedBusiness
from cpa_intel.registry.naics import industry_label
from cpa_intel.scrapers.errors import FAILURE_ERROR, StructureError
from cpa_intel.storage.database import IntelDatabase
from cpa_intel.utils.http_client import create_session
from cpa_intel.utils.text_processing import business_identity_hash, clean_text, normalize_province

logger = logging.getLogger("cpa_intel.registry.bulk")

SOURCE_ODBUS = "odbus"

# Statistics Canada marks missing or suppressed values with these
MISSING_MARKERS = {"", "..", "...", "x", "X"}

# Target attribute -> accepted header names (matched case-insensitively)
COLUMN_ALIASES = {
    "business_name": ("business_name", "legal_name", "operating_name", "name"),
    "registry_number": ("license_number", "licence_number", "business_number", "registration_number", "corporation_number"),
    "city": ("city", "municipality", "csdname"),
    "province": ("prov_terr", "province", "prov"),
    "industry_code": ("derived_naics", "naics", "naics_code"),
    "operating_status": ("status", "business_status"),
    "employee_count": ("total_no_employees", "employees", "employee_count"),
}

CHUNK_SIZE = 1024 * 1024

# Largest value an INTEGER column holds in PostgreSQL
MAX_INT = 2**31 - 1


def clean_value(value: Optional[str]) -> Optional[str]:
    """Trim a CSV cell and turn missing-value markers into None."""
    if value is None:
        return None
    cleaned = clean_text(value)
    return None if cleaned in MISSING_MARKERS else cleaned


def resolve_columns(fieldnames: Optional[list[str]]) -> dict[str, str]:
    """Map target attributes to the header names this file actually uses."""
    if not fieldnames:
        raise StructureError("Registry CSV has no header row")
    by_lower = {name.strip().lower(): name for name in fieldnames if name}
    columns = {}
    for target, aliases in COLUMN_ALIASES.items():
        for alias in aliases:
            if alias in by_lower:
                columns[target] = by_lower[alias]
                break
    if "business_name" not in columns:
        raise StructureError(
            f"Registry CSV has no business name column (expected one of {', '.join(COLUMN_ALIASES['business_name'])})"
        )
    return columns


def _parse_int(value: Optional[str]) -> Optional[int]:
    if value is None:
        return None
    try:
        number = int(float(value.replace(",", "")))
    except (ValueError, OverflowError):
        return None
    if abs(number) > MAX_INT:
        return None
    return number


def row_to_business(
    row: dict[str, str],
    columns: dict[str, str],
    source: str = SOURCE_ODBUS,
    job_id: Optional[int] = None,
) -> Optional[ScrapedBusiness]:
    def get(target: str) -> Optional[str]:
        header = columns.get(target)
        return clean_value(row.get(header)) if header else None

    name = get("business_name")
    if not name:
        return None

    number = get("registry_number")
    city = get("city")
    province = normalize_province(get("province"))
    code = get("industry_code")

    return ScrapedBusiness(
        source=source,
        business_name=name,
        registry_number=number,
        identity_hash=business_identity_hash(name, city, province, number),
        province=province,
        city=city,
        industry_code=code,
        industry=industry_label(code),
        operating_status=get("operating_status"),
        employee_count=_parse_int(get("employee_count")),
        job_id=job_id,
    )


def find_largest_csv(archive: zipfile.ZipFile) -> zipfile.ZipInfo:
    """The main data file is always the largest CSV entry."""
    entries = [info for info in archive.infolist() if info.filename.lower().endswith(".csv")]
    if not entries:
        raise StructureError("Archive contains no CSV file")
    return max(entries, key=lambda info: info.file_size)


class BusinessRegistryLoader:
    """Loads a government open-business-register extract into scraped_businesses."""

    def __init__(
        self,
        db: IntelDatabase,
        config: Optional[RegistryConfig] = None,
        http: Optional[requests.Session] = None,
        source: str = SOURCE_ODBUS,
    ):
        self.db = db
        self.config = config or RegistryConfig()
        self.http = http if http is not None else create_session()
        self.source = source

    def load(self, url: Optional[str] = None, download_dir: Optional[str] = None) -> dict:
        """Download, unpack and load the register. Tracked as a scrape job."""
        url = url or self.config.bulk_url
        job_id = self.db.start_job(self.source)
        counts = {"found": 0, "inserted": 0, "skipped": 0}
        status, error_message, failure_kind = JOB_FAILED, None, None
        path: Optional[Path] = None

        try:
            path = self.download(url, download_dir)
            self.load_archive(path, job_id, counts)
            status = JOB_COMPLETED
        except StructureError as e:
            error_message, failure_kind = str(e), e.failure_kind
            logger.error("Registry load failed: %s", e)
            raise
        except (requests.RequestException, zipfile.BadZipFile, OSError) as e:
            error_message, failure_kind = f"{type(e).__name__}: {e}", FAILURE_ERROR
            logger.error("Registry load failed: %s", error_message)
            raise
        except Exception as e:
            error_message, failure_kind = f"{type(e).__name__}: {e}", FAILURE_ERROR
            logger.exception("Registry load crashed")
            raise
        finally:
            self.db.finish_job(
                job_id, status,
                found=counts["found"], inserted=counts["inserted"], skipped=counts["skipped"],
                error_message=error_message, failure_kind=failure_kind,
            )
            if path is not None and path.exists():
                path.unlink()

        return {**counts, "job_id": job_id}

    def download(self, url: str, download_dir: Optional[str] = None) -> Path:
        """Stream the archive to a temporary file."""
        logger.info("Downloading business register from %s", url)
        fd, name = tempfile.mkstemp(suffix=".zip", dir=download_dir)
        total = 0
        with os.fdopen(fd, "wb") as f:
            try:
                with self.http.get(url, stream=True, timeout=self.config.download_timeout) as response:
                    response.raise_for_status()
                    for chunk in response.iter_content(chunk_size=CHUNK_SIZE):
                        f.write(chunk)
                        total += len(chunk)
            except requests.RequestException:
                f.close()
                os.unlink(name)
                raise
        logger.info("Downloaded %.1f MB", total / 1_000_000)
        return Path(name)

    def load_archive(self, path: Path, job_id: Optional[int] = None, counts: Optional[dict] = None) -> dict:
        with zipfile.ZipFile(path) as archive:
            entry = find_largest_csv(archive)
            logger.info("Loading %s (%.1f MB uncompressed)", entry.filename, entry.file_size / 1_000_000)
            with archive.open(entry) as raw:
                stream = io.TextIOWrapper(raw, encoding="utf-8-sig", errors="replace", newline="")
                return self.load_csv(stream, job_id, counts)

    def load_csv(self, stream: IO[str], job_id: Optional[int] = None, counts: Optional[dict] = None) -> dict:
        """Stream-parse CSV text and insert in batches. Returns {found, inserted, skipped}.

        When `counts` is given it is updated in place after every batch.
        """
        reader = csv.DictReader(stream)
        columns = resolve_columns(reader.fieldnames)
        if counts is None:
            counts = {"found": 0, "inserted": 0, "skipped": 0}

        for batch_number, batch in enumerate(self._batches(reader, columns, job_id, counts), 1):
            inserted, skipped = self.db.insert_businesses(batch)
            counts["inserted"] += inserted
            counts["skipped"] += skipped
            logger.info(
                "Batch %d: %d inserted, %d skipped (%d rows so far)",
                batch_number, inserted, skipped, counts["found"],
            )
        return counts

    def _batches(
        self,
        reader: csv.DictReader,
        columns: dict[str, str],
        job_id: Optional[int],
        counts: dict,
    ) -> Iterator[list[ScrapedBusiness]]:
        batch: list[ScrapedBusiness] = []
        for row in reader:
            counts["found"] += 1
            business = row_to_business(row, columns, self.source, job_id)
            if business is None:
                counts["skipped"] += 1
                continue
            batch.append(business)
            if len(batch) >= self.config.batch_size:
                yield batch
                batch = []
        if batch:
            yield batch
