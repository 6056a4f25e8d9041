"""Search-term enumeration strategies for directories with no "list everything" endpoint."""

import logging
import re
import string
from dataclasses import dataclass
from typing import Callable, Iterator, Optional

from cpa_intel.scrapers.errors import ProtectionWallError, RequestFailed
from cpa_intel.scrapers.parsers import ParseOutcome, ParseStatus

logger = logging.getLogger("cpa_intel.scrapers.strategies")

# Exact-match directories only find what they are asked for; this list of
# frequent Canadian surnames stands in for a full name dictionary.
COMMON_SURNAMES = [
    "Smith", "Brown", "Tremblay", "Martin", "Roy", "Wilson", "MacDonald", "Gagnon",
    "Johnson", "Taylor", "Cote", "Campbell", "Anderson", "Leblanc", "Lee", "Jones",
    "White", "Williams", "Miller", "Thompson", "Gauthier", "Young", "Morin", "Bouchard",
    "Scott", "Stewart", "Belanger", "Reid", "Pelletier", "Moore", "Lavoie", "King",
    "Robinson", "Levesque", "Murphy", "Fortin", "Gagne", "Wong", "Clark", "Johnston",
    "Clarke", "Ross", "Walker", "Thomas", "Boucher", "Landry", "Kelly", "Bergeron",
    "Davis", "Mitchell", "Girard", "Wright", "Chen", "Hall", "Simard", "Roberts",
    "Poirier", "Fraser", "Ouellet", "Patel", "Singh", "Nguyen", "Li", "Wang",
    "Zhang", "Liu", "Kim", "Evans", "Green", "Hughes", "Baker", "Graham",
    "Hamilton", "Bell", "Cameron", "Murray", "Morrison", "Kennedy", "Grant", "Ferguson",
    "MacKenzie", "MacLeod", "Gordon", "Hill", "Lewis", "Harris", "Jackson", "Martel",
    "Caron", "Beaulieu", "Cloutier", "Dube", "Fournier", "Lapointe", "Leclerc", "Lefebvre",
    "Mercier", "Paquette", "Richard", "Sharma",
]

LETTERS = string.ascii_lowercase

CAPTCHA_MARKERS = [
    re.compile(r"class=[\"'][^\"']*g-recaptcha", re.I),
    re.compile(r"google\.com/recaptcha|recaptcha/api\.js", re.I),
    re.compile(r"hcaptcha\.com|class=[\"'][^\"']*h-captcha", re.I),
    re.compile(r"challenges\.cloudflare\.com|cf-turnstile", re.I),
    re.compile(r"<(?:input|div|img)[^>]+(?:id|name)=[\"'][^\"']*captcha", re.I),
]


def detect_captcha(html: str) -> Optional[str]:
    """Return the matched CAPTCHA marker, or None if the page carries no challenge."""
    for pattern in CAPTCHA_MARKERS:
        match = pattern.search(html)
        if match:
            return match.group(0)
    return None


@dataclass(frozen=True)
class SearchTerm:
    last_name: str
    first_name: str = ""

    def __str__(self) -> str:
        return f"{self.last_name}+{self.first_name}" if self.first_name else self.last_name


SearchFn = Callable[[SearchTerm], ParseOutcome]


class EnumerationStrategy:
    """Yields search terms in a fixed order and collects each term's results."""

    name = "base"
    progress_every = 10
    # Script-rendered directories often answer with an empty shell page
    tolerate_unrecognized = False

    def terms(self) -> Iterator[SearchTerm]:
        raise NotImplementedError

    def collect(self, search: SearchFn, term: SearchTerm) -> ParseOutcome:
        outcome = search(term)
        if outcome.status == ParseStatus.TOO_MANY:
            raise ProtectionWallError(
                f"Directory refused '{term}' as too broad and this source has no narrowing path"
            )
        return outcome


class PrefixSweep(EnumerationStrategy):
    """aa, ab, ... zz: 676 last-name prefixes."""

    name = "prefix_sweep"
    progress_every = 26

    def terms(self) -> Iterator[SearchTerm]:
        for first in LETTERS:
            for second in LETTERS:
                yield SearchTerm(first + second)


class ExactNameList(EnumerationStrategy):
    """Exact last-name matches over a curated surname list."""

    name = "exact_list"

    def __init__(self, surnames: Optional[list[str]] = None):
        self.surnames = list(surnames) if surnames is not None else list(COMMON_SURNAMES)

    def terms(self) -> Iterator[SearchTerm]:
        for surname in self.surnames:
            yield SearchTerm(surname)


class AdaptiveNarrowing(ExactNameList):
    """Last name alone; if refused as too broad, last name + each first initial A-Z."""

    name = "narrowing"

    def collect(self, search: SearchFn, term: SearchTerm) -> ParseOutcome:
        outcome = search(term)
        if outcome.status != ParseStatus.TOO_MANY:
            return outcome

        logger.info("'%s' refused as too broad - narrowing by first initial", term)
        aggregated = []
        for initial in LETTERS.upper():
            narrowed = SearchTerm(term.last_name, initial)
            try:
                sub = search(narrowed)
            except RequestFailed as e:
                logger.warning("Narrowed search '%s' failed: %s", narrowed, e)
                continue
            if sub.status == ParseStatus.TOO_MANY:
                logger.warning("'%s' still too broad after narrowing - skipped", narrowed)
                continue
            aggregated.extend(sub.records)
        return ParseOutcome.results(aggregated)


class SpaFallback(ExactNameList):
    """Query-string GETs against a script-rendered directory, hoping for pre-rendered rows."""

    name = "spa_fallback"
    tolerate_unrecognized = True


STRATEGIES = {
    PrefixSweep.name: PrefixSweep,
    ExactNameList.name: ExactNameList,
    AdaptiveNarrowing.name: AdaptiveNarrowing,
    SpaFallback.name: SpaFallback,
}


def build_strategy(name: str, surnames: Optional[list[str]] = None) -> EnumerationStrategy:
    try:
        strategy_cls = STRATEGIES[name]
    except KeyError:
        raise ValueError(f"Unknown enumeration strategy: {name}") from None
    if strategy_cls is PrefixSweep:
        return PrefixSweep()
    return strategy_cls(surnames)
