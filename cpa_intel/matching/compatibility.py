"""Six-factor weighted compatibility score between a client and a candidate accountant."""

import logging
import math

from cpa_intel.matching.models import CandidateProfile, ClientProfile, MatchResult
from cpa_intel.utils.text_processing import province_name

logger = logging.getLogger("cpa_intel.matching.compatibility")

# Scoring weights
WEIGHT_SPECIALIZATION = 0.35
WEIGHT_LOCATION = 0.20
WEIGHT_BUDGET = 0.15
WEIGHT_COMMUNICATION = 0.12
WEIGHT_BUSINESS_SIZE = 0.10
WEIGHT_URGENCY = 0.08

COMPATIBLE_STYLES = {
    ("formal", "professional"),
    ("casual", "friendly"),
    ("direct", "efficient"),
    ("collaborative", "consultative"),
}

SIZE_FIT = {
    "startup": {"solo", "small"},
    "small": {"solo", "small", "medium"},
    "medium": {"small", "medium", "large"},
    "large": {"medium", "large", "big4"},
    "enterprise": {"large", "big4"},
}

URGENT_LEVELS = {"urgent", "immediate"}
RELAXED_LEVELS = {"flexible", "planning"}

LABELS = [
    (90, "Excellent Match"),
    (80, "Very Good Match"),
    (70, "Good Match"),
    (60, "Fair Match"),
]
POOR_LABEL = "Poor Match"


def _norm(value) -> str:
    return str(value or "").strip().lower()


def specialization_score(client: ClientProfile, candidate: CandidateProfile) -> float:
    """Fraction of required services matched (substring, either direction) by a specialization."""
    required = [_norm(s) for s in client.required_services if _norm(s)]
    offered = [_norm(s) for s in candidate.specializations if _norm(s)]
    if not required or not offered:
        return 0.0
    matched = sum(
        1 for service in required
        if any(service in spec or spec in service for spec in offered)
    )
    return matched / len(required)


def location_score(client: ClientProfile, candidate: CandidateProfile) -> float:
    if client.remote_ok and candidate.remote_ok:
        return 1.0
    location = _norm(client.location)
    province = _norm(province_name(candidate.province))
    if location and province and province in location:
        return 0.9
    if client.remote_ok or candidate.remote_ok:
        return 0.7
    return 0.3


def budget_score(client: ClientProfile, candidate: CandidateProfile) -> float:
    bounds = (client.budget_min, client.budget_max, candidate.rate_min, candidate.rate_max)
    if any(b is None for b in bounds):
        return 0.5
    client_min, client_max, cand_min, cand_max = bounds

    start = max(client_min, cand_min)
    end = min(client_max, cand_max)
    if start <= end:
        average_width = ((client_max - client_min) + (cand_max - cand_min)) / 2
        if average_width <= 0:
            return 1.0
        return min((end - start) / average_width, 1.0)

    if client_max <= 0:
        return 0.0
    distance = start - end
    return max(0.0, 1 - distance / client_max)


def communication_score(client: ClientProfile, candidate: CandidateProfile) -> float:
    wanted, offered = _norm(client.communication_style), _norm(candidate.communication_style)
    if not wanted or not offered:
        return 0.7
    if wanted == offered:
        return 1.0
    if (wanted, offered) in COMPATIBLE_STYLES or (offered, wanted) in COMPATIBLE_STYLES:
        return 0.8
    return 0.5


def business_size_score(client: ClientProfile, candidate: CandidateProfile) -> float:
    size, firm = _norm(client.business_size), _norm(candidate.firm_size)
    if not size or not firm:
        return 0.7
    return 1.0 if firm in SIZE_FIT.get(size, set()) else 0.4


def urgency_score(client: ClientProfile, candidate: CandidateProfile) -> float:
    urgency = _norm(client.urgency)
    if not urgency:
        return 0.8
    if urgency in URGENT_LEVELS:
        years = candidate.years_experience or 0
        if years >= 10:
            return 1.0
        if years >= 5:
            return 0.8
        return 0.6
    if urgency in RELAXED_LEVELS:
        return 0.9
    return 0.8


FACTORS = [
    ("specialization", WEIGHT_SPECIALIZATION, specialization_score),
    ("location", WEIGHT_LOCATION, location_score),
    ("budget", WEIGHT_BUDGET, budget_score),
    ("communication", WEIGHT_COMMUNICATION, communication_score),
    ("business_size", WEIGHT_BUSINESS_SIZE, business_size_score),
    ("urgency", WEIGHT_URGENCY, urgency_score),
]


def recommendation_label(total: int) -> str:
    for threshold, label in LABELS:
        if total >= threshold:
            return label
    return POOR_LABEL


def score(client: ClientProfile, candidate: CandidateProfile) -> MatchResult:
    """Weighted sum of the six factors, scaled to 0-100 and rounded half up."""
    factors = {}
    weighted = 0.0
    for name, weight, factor in FACTORS:
        value = factor(client, candidate)
        factors[name] = round(value, 4)
        weighted += weight * value

    total = int(math.floor(weighted * 100 + 0.5))
    total = max(0, min(total, 100))
    return MatchResult(
        candidate_id=candidate.id,
        candidate_name=candidate.name,
        score=total,
        factors=factors,
        label=recommendation_label(total),
    )
