"""Matcher facade: rank candidate accountants for a client."""

import logging
from typing import Union

from cpa_intel.matching.compatibility import score
from cpa_intel.matching.models import CandidateProfile, ClientProfile, MatchResult

logger = logging.getLogger("cpa_intel.matching")

ERROR_LABEL = "Error"

CandidateInput = Union[CandidateProfile, dict]


def _is_eligible(candidate: CandidateInput) -> bool:
    if isinstance(candidate, CandidateProfile):
        return candidate.verified and candidate.active
    if not isinstance(candidate, dict):
        return False
    return bool(candidate.get("verified")) and bool(candidate.get("active"))


def _error_result(candidate: CandidateInput, error: Exception) -> MatchResult:
    if isinstance(candidate, CandidateProfile):
        candidate_id, name = candidate.id, candidate.name
    else:
        candidate_id, name = candidate.get("id"), str(candidate.get("name") or "")
    return MatchResult(
        candidate_id=str(candidate_id) if candidate_id is not None else None,
        candidate_name=name,
        score=0,
        factors={},
        label=ERROR_LABEL,
        error=str(error),
    )


def score_candidate(client: ClientProfile, candidate: CandidateInput) -> MatchResult:
    """Score one candidate; any failure becomes a zero-score "Error" result."""
    try:
        profile = candidate if isinstance(candidate, CandidateProfile) else CandidateProfile.from_dict(candidate)
        return score(client, profile)
    except (TypeError, ValueError, AttributeError) as e:
        logger.warning("Could not score candidate %r: %s", getattr(candidate, "id", candidate), e)
        return _error_result(candidate, e)


def find_top_matches(
    client: ClientProfile,
    candidates: list[CandidateInput],
    limit: int = 10,
) -> list[MatchResult]:
    """Score verified, active candidates and return the best ``limit``, highest first.

    Equal scores keep their input order.
    """
    eligible = [c for c in candidates if _is_eligible(c)]
    results = [score_candidate(client, candidate) for candidate in eligible]
    ranked = sorted(results, key=lambda r: r.score, reverse=True)

    logger.info(
        "Scored %d/%d eligible candidates, returning top %d",
        len(results), len(candidates), min(limit, len(ranked)),
    )
    return ranked[:max(limit, 0)]
