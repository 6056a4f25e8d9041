"""YAML config loading and validation."""

import os
from dataclasses import dataclass, field
from pathlib import Path

import yaml

from cpa_intel.utils.http_client import DEFAULT_USER_AGENT

ODBUS_URL = "https://www150.statcan.gc.ca/n1/en/pub/21-26-0003/2023001/ODBus_v1.zip"
REGISTRY_SEARCH_URL = "https://rjsc.novascotia.ca/rjsc/search/companySearch.do"
REGISTRY_DETAIL_URL = "https://rjsc.novascotia.ca/rjsc/api/company/{entity_id}"


@dataclass
class DatabaseConfig:
    url: str = "sqlite:///data/cpa_intel.db"


@dataclass
class ScrapingConfig:
    request_delay: float = 2.5  # seconds between requests to one directory
    timeout: float = 20.0
    max_consecutive_failures: int = 5
    user_agent: str = DEFAULT_USER_AGENT
    sources: list[str] = field(default_factory=list)  # empty = all registered


@dataclass
class RegistryConfig:
    bulk_url: str = ODBUS_URL
    batch_size: int = 500
    download_timeout: float = 300.0
    search_delay: float = 2.5
    search_url: str = REGISTRY_SEARCH_URL
    detail_url: str = REGISTRY_DETAIL_URL  # {entity_id} placeholder
    search_field: str = "companyName"
    search_province: str = "NS"
    # Extend the search vocabulary with aaa..zzz
    include_prefixes: bool = True


@dataclass
class EnrichmentConfig:
    daily_limit: int = 200
    delay: float = 3.0
    timeout: float = 8.0


@dataclass
class AppConfig:
    database: DatabaseConfig = field(default_factory=DatabaseConfig)
    scraping: ScrapingConfig = field(default_factory=ScrapingConfig)
    registry: RegistryConfig = field(default_factory=RegistryConfig)
    enrichment: EnrichmentConfig = field(default_factory=EnrichmentConfig)
    data_dir: str = "data"
    log_dir: str = "logs"


def load_config(config_path: str = "config.yaml") -> AppConfig:
    """Load configuration from a YAML file, applying defaults and env overrides."""
    path = Path(config_path)
    if not path.exists():
        raise FileNotFoundError(
            f"Config file not found: {config_path}\n"
            "Copy config.example.yaml to config.yaml and adjust your settings."
        )

    with open(path, "r", encoding="utf-8") as f:
        raw = yaml.safe_load(f) or {}

    config = AppConfig()

    # Database (env var takes precedence)
    db_raw = raw.get("database", {})
    config.database = DatabaseConfig(
        url=os.environ.get("DATABASE_URL", db_raw.get("url", DatabaseConfig.url)),
    )

    # Scraping
    scraping_raw = raw.get("scraping", {})
    config.scraping = ScrapingConfig(
        request_delay=float(scraping_raw.get("request_delay", 2.5)),
        timeout=float(scraping_raw.get("timeout", 20.0)),
        max_consecutive_failures=int(scraping_raw.get("max_consecutive_failures", 5)),
        user_agent=scraping_raw.get("user_agent", DEFAULT_USER_AGENT),
        sources=list(scraping_raw.get("sources", []) or []),
    )

    # Business registry
    registry_raw = raw.get("registry", {})
    config.registry = RegistryConfig(
        bulk_url=registry_raw.get("bulk_url", ODBUS_URL),
        batch_size=int(registry_raw.get("batch_size", 500)),
        download_timeout=float(registry_raw.get("download_timeout", 300.0)),
        search_delay=float(registry_raw.get("search_delay", 2.5)),
        search_url=registry_raw.get("search_url", REGISTRY_SEARCH_URL),
        detail_url=registry_raw.get("detail_url", REGISTRY_DETAIL_URL),
        search_field=registry_raw.get("search_field", "companyName"),
        search_province=registry_raw.get("search_province", "NS"),
        include_prefixes=bool(registry_raw.get("include_prefixes", True)),
    )

    # Enrichment
    enrichment_raw = raw.get("enrichment", {})
    config.enrichment = EnrichmentConfig(
        daily_limit=int(enrichment_raw.get("daily_limit", 200)),
        delay=float(enrichment_raw.get("delay", 3.0)),
        timeout=float(enrichment_raw.get("timeout", 8.0)),
    )

    config.data_dir = raw.get("data_dir", "data")
    config.log_dir = raw.get("log_dir", "logs")

    return config


def validate_config(config: AppConfig) -> list[str]:
    """Return list of validation warnings (empty = OK)."""
    from cpa_intel.scrapers.jurisdictions import JURISDICTIONS

    warnings = []

    if config.scraping.request_delay < 2.0:
        warnings.append(
            f"Request delay {config.scraping.request_delay}s is below 2s - "
            "directories may start returning degraded or empty pages"
        )

    if config.scraping.max_consecutive_failures < 1:
        warnings.append("max_consecutive_failures must be at least 1")

    if config.registry.batch_size < 1:
        warnings.append("Registry batch_size must be at least 1")

    unknown = [s for s in config.scraping.sources if s not in JURISDICTIONS]
    if unknown:
        warnings.append(f"Unknown scraper sources configured: {', '.join(unknown)}")

    if config.database.url.startswith("sqlite"):
        warnings.append("Using SQLite - fine for development, use PostgreSQL for concurrent scrapes")

    return warnings
