"""Cookie- and view-state-carrying HTTP conversation with a stateful directory."""

import logging
import re
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Optional

import requests
from bs4 import BeautifulSoup

from cpa_intel.scrapers.errors import RequestFailed, SessionExpiredError, StructureError
from cpa_intel.utils.http_client import DEFAULT_TIMEOUT, DEFAULT_USER_AGENT, create_session

logger = logging.getLogger("cpa_intel.scrapers.session")

FORM_CONTENT_TYPE = "application/x-www-form-urlencoded"

# ASP.NET AJAX partial postbacks return "len|hiddenField|__VIEWSTATE|value|" segments
_DELTA_HIDDEN_FIELD = re.compile(r"\|hiddenField\|([^|]+)\|([^|]*)\|")


class SessionState(str, Enum):
    UNINITIALIZED = "uninitialized"
    ESTABLISHED = "session-established"
    SEARCHING = "search-in-progress"
    EXPIRED = "session-expired"


@dataclass
class PageResult:
    """One response in the conversation, with the state to carry forward."""

    url: str
    text: str
    status_code: int = 200
    hidden_fields: dict[str, str] = field(default_factory=dict)
    cookies: dict[str, str] = field(default_factory=dict)


def extract_hidden_fields(html: str) -> dict[str, str]:
    """All hidden form inputs on a page (view state, event validation, tokens)."""
    fields = {}
    for name, value in _DELTA_HIDDEN_FIELD.findall(html):
        fields[name] = value
    if fields:
        return fields

    soup = BeautifulSoup(html, "lxml")
    for inp in soup.find_all("input", attrs={"type": re.compile(r"^hidden$", re.I)}):
        name = inp.get("name")
        if name:
            fields[name] = inp.get("value", "")
    return fields


def extract_form_field_names(html: str) -> set[str]:
    soup = BeautifulSoup(html, "lxml")
    return {
        elem.get("name")
        for elem in soup.find_all(["input", "select", "textarea"])
        if elem.get("name")
    }


class SessionHttpClient:
    """Drives one scraper's conversation with a legacy web application.

    State machine:
        uninitialized --establish--> session-established
        session-established --submit--> search-in-progress --response--> session-established
        any --N consecutive failures--> session-expired --establish--> session-established
        session-expired --establish fails--> SessionExpiredError

    Every request waits out a fixed delay since the previous one; target
    sites degrade or block when approached faster.
    """

    def __init__(
        self,
        entry_url: str,
        http: Optional[requests.Session] = None,
        request_delay: float = 2.5,
        timeout: float = DEFAULT_TIMEOUT,
        max_consecutive_failures: int = 5,
        required_fields: tuple[str, ...] = (),
        user_agent: str = DEFAULT_USER_AGENT,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.entry_url = entry_url
        self.http = http if http is not None else create_session(user_agent=user_agent)
        self.request_delay = request_delay
        self.timeout = timeout
        self.max_consecutive_failures = max_consecutive_failures
        self.required_fields = required_fields
        self.sleep = sleep
        self.clock = clock

        self.state = SessionState.UNINITIALIZED
        self.cookies: dict[str, str] = {}
        self.hidden_fields: dict[str, str] = {}
        self.last_url: Optional[str] = None
        self.consecutive_failures = 0
        self.reestablish_count = 0
        self._last_request_at: Optional[float] = None

    # ------------------------------------------------------------------
    # Conversation
    # ------------------------------------------------------------------

    def establish_session(self, entry_url: Optional[str] = None) -> PageResult:
        """GET the entry page and capture its cookies and hidden form fields.

        Raises StructureError if any configured search field is missing from
        the page, since posting against a guessed layout yields garbage.
        """
        url = entry_url or self.entry_url
        self.cookies = {}
        response = self._send("GET", url)

        html = response.text
        missing = [name for name in self.required_fields if name not in extract_form_field_names(html)]
        if missing:
            raise StructureError(
                f"Search form at {url} is missing expected fields: {', '.join(missing)}"
            )

        self.hidden_fields = extract_hidden_fields(html)
        self.last_url = response.url or url
        self.consecutive_failures = 0
        self.state = SessionState.ESTABLISHED
        logger.debug("Session established at %s (%d hidden fields)", url, len(self.hidden_fields))
        return self._page(response)

    def submit_search(
        self,
        search_params: dict[str, str],
        url: Optional[str] = None,
        clear_fields: tuple[str, ...] = (),
        extra_fields: Optional[dict[str, str]] = None,
    ) -> PageResult:
        """POST a search built on the prior page's hidden fields.

        Prior hidden fields are copied verbatim, the listed fields cleared,
        then the search terms written over them. The refreshed hidden fields
        in the response replace the carried set for the next request.
        """
        if self.state == SessionState.UNINITIALIZED:
            self.establish_session()

        target = url or self.last_url or self.entry_url
        body = dict(self.hidden_fields)
        for name in clear_fields:
            body[name] = ""
        if extra_fields:
            body.update(extra_fields)
        body.update(search_params)

        headers = {"Content-Type": FORM_CONTENT_TYPE}
        if self.last_url:
            headers["Referer"] = self.last_url

        self.state = SessionState.SEARCHING
        response = self._request("POST", target, data=body, headers=headers)

        refreshed = extract_hidden_fields(response.text)
        if refreshed:
            self.hidden_fields = refreshed
        self.last_url = response.url or target
        self.state = SessionState.ESTABLISHED
        return self._page(response)

    def get(self, url: str, params: Optional[dict] = None, headers: Optional[dict] = None) -> PageResult:
        """Plain GET within the session (query-string searches, JSON detail resources)."""
        if self.state == SessionState.UNINITIALIZED:
            self.state = SessionState.ESTABLISHED
        merged = {"Referer": self.last_url} if self.last_url else {}
        merged.update(headers or {})
        response = self._request("GET", url, params=params, headers=merged)
        return self._page(response)

    # ------------------------------------------------------------------
    # Failure accounting
    # ------------------------------------------------------------------

    def record_success(self) -> None:
        self.consecutive_failures = 0

    def record_failure(self, reason: str) -> None:
        """Count a failed round trip; re-establish the session at the threshold.

        Raises SessionExpiredError if re-establishment itself fails.
        """
        self.consecutive_failures += 1
        logger.warning(
            "Request failure %d/%d: %s",
            self.consecutive_failures, self.max_consecutive_failures, reason,
        )
        if self.consecutive_failures < self.max_consecutive_failures:
            return

        self.state = SessionState.EXPIRED
        self.reestablish_count += 1
        logger.warning(
            "%d consecutive failures - re-establishing session at %s",
            self.consecutive_failures, self.entry_url,
        )
        try:
            self.establish_session()
        except (RequestFailed, StructureError) as e:
            raise SessionExpiredError(
                f"Session re-establishment failed after {self.max_consecutive_failures} "
                f"consecutive failures: {e}"
            ) from e

    # ------------------------------------------------------------------
    # Transport
    # ------------------------------------------------------------------

    def _request(self, method: str, url: str, **kwargs) -> requests.Response:
        try:
            return self._send(method, url, **kwargs)
        except RequestFailed as e:
            if self.state == SessionState.SEARCHING:
                self.state = SessionState.ESTABLISHED
            self.record_failure(str(e))
            raise

    def _send(self, method: str, url: str, **kwargs) -> requests.Response:
        self._throttle()
        try:
            if method == "POST":
                response = self.http.post(url, timeout=self.timeout, cookies=dict(self.cookies), **kwargs)
            else:
                response = self.http.get(url, timeout=self.timeout, cookies=dict(self.cookies), **kwargs)
            response.raise_for_status()
        except requests.RequestException as e:
            raise RequestFailed(f"{method} {url} failed: {e}") from e
        finally:
            self._last_request_at = self.clock()

        self._merge_cookies(response)
        return response

    def _throttle(self) -> None:
        if self._last_request_at is None:
            return
        wait = self.request_delay - (self.clock() - self._last_request_at)
        if wait > 0:
            self.sleep(wait)

    def _merge_cookies(self, response: requests.Response) -> None:
        # Same-named cookies are overwritten, new ones added, none removed
        for name, value in response.cookies.items():
            self.cookies[name] = value

    def _page(self, response: requests.Response) -> PageResult:
        return PageResult(
            url=response.url,
            text=response.text,
            status_code=response.status_code,
            hidden_fields=dict(self.hidden_fields),
            cookies=dict(self.cookies),
        )
