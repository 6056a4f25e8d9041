"""HTTP session factory with retry logic and a descriptive User-Agent."""

import logging
from typing import Optional

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

logger = logging.getLogger("cpa_intel.http")

DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (compatible; CPA-Intel-Collector/1.0; "
    "+https://cpa-intel.ca/collector)"
)

DEFAULT_TIMEOUT = 20


def create_session(
    user_agent: str = DEFAULT_USER_AGENT,
    max_retries: int = 2,
    backoff_factor: float = 1.0,
) -> requests.Session:
    """Create a requests session with retry logic for idempotent GETs.

    POSTs are never retried at the adapter level: a replayed view-state POST
    desynchronizes server-side state, so failures surface to the caller.
    """
    session = requests.Session()

    retry_strategy = Retry(
        total=max_retries,
        backoff_factor=backoff_factor,
        status_forcelist=[429, 500, 502, 503, 504],
        allowed_methods=["GET"],
    )

    adapter = HTTPAdapter(max_retries=retry_strategy)
    session.mount("http://", adapter)
    session.mount("https://", adapter)

    session.headers.update({
        "User-Agent": user_agent,
        "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
        "Accept-Language": "en-CA,en;q=0.9,fr-CA;q=0.8",
    })

    return session


def safe_get(
    url: str,
    session: Optional[requests.Session] = None,
    timeout: float = DEFAULT_TIMEOUT,
    **kwargs,
) -> Optional[requests.Response]:
    """Perform a GET request, returning None on failure instead of raising."""
    if session is None:
        session = create_session()

    try:
        response = session.get(url, timeout=timeout, **kwargs)
        response.raise_for_status()
        return response
    except requests.RequestException as e:
        logger.debug("HTTP request failed for %s: %s", url, e)
        return None
