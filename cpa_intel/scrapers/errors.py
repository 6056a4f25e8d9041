"""Scraper error taxonomy."""

FAILURE_BLOCKED = "blocked"
FAILURE_STRUCTURE = "structure"
FAILURE_SESSION = "session"
FAILURE_ERROR = "error"


class ScraperError(Exception):
    """Base class for errors that end a scraper's run."""

    failure_kind = FAILURE_ERROR


class RequestFailed(ScraperError):
    """A single request failed (network error, timeout, bad status, unparseable body).

    Not fatal on its own: the enumeration moves on to the next search term.
    """


class StructureError(ScraperError):
    """Expected form fields or result columns were not found on first load."""

    failure_kind = FAILURE_STRUCTURE


class ProtectionWallError(ScraperError):
    """The directory answered with a CAPTCHA or a refusal with no narrowing path."""

    failure_kind = FAILURE_BLOCKED


class SessionExpiredError(ScraperError):
    """Session re-establishment failed after repeated consecutive failures."""

    failure_kind = FAILURE_SESSION


class UnknownSourceError(ValueError):
    """Raised for a scraper name that is not registered."""

    def __init__(self, name: str, valid: list[str]):
        self.name = name
        self.valid = sorted(valid)
        super().__init__(f"Unknown source '{name}'. Valid sources: {', '.join(self.valid)}")
