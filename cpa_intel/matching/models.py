"""Matching inputs and outputs. Supplied per request; never persisted here."""

from dataclasses import dataclass, field
from typing import Optional


def _as_list(value) -> list[str]:
    if value is None:
        return []
    if isinstance(value, str):
        return [part.strip() for part in value.split(",") if part.strip()]
    return [str(item) for item in value if item is not None and str(item).strip()]


def _as_float(value) -> Optional[float]:
    if value is None or value == "":
        return None
    return float(value)


def _as_text(value) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


@dataclass
class ClientProfile:
    """What a business is looking for in an accountant."""

    required_services: list[str] = field(default_factory=list)
    location: Optional[str] = None
    remote_ok: bool = False
    budget_min: Optional[float] = None
    budget_max: Optional[float] = None
    communication_style: Optional[str] = None
    business_size: Optional[str] = None
    urgency: Optional[str] = None

    @classmethod
    def from_dict(cls, data: dict) -> "ClientProfile":
        return cls(
            required_services=_as_list(data.get("required_services")),
            location=_as_text(data.get("location")),
            remote_ok=bool(data.get("remote_ok", False)),
            budget_min=_as_float(data.get("budget_min")),
            budget_max=_as_float(data.get("budget_max")),
            communication_style=_as_text(data.get("communication_style")),
            business_size=_as_text(data.get("business_size")),
            urgency=_as_text(data.get("urgency")),
        )


@dataclass
class CandidateProfile:
    """An accountant's profile as seen by the matcher."""

    id: Optional[str] = None
    name: str = ""
    specializations: list[str] = field(default_factory=list)
    province: Optional[str] = None
    remote_ok: bool = False
    rate_min: Optional[float] = None
    rate_max: Optional[float] = None
    communication_style: Optional[str] = None
    firm_size: Optional[str] = None
    years_experience: Optional[float] = None
    verified: bool = False
    active: bool = False

    @classmethod
    def from_dict(cls, data: dict) -> "CandidateProfile":
        """Build from a loosely-typed dict.

        Raises ValueError/TypeError on values that can't be coerced; the
        matcher turns that into an "Error" result for this candidate.
        """
        years = data.get("years_experience")
        return cls(
            id=_as_text(data.get("id")),
            name=_as_text(data.get("name")) or "",
            specializations=_as_list(data.get("specializations")),
            province=_as_text(data.get("province")),
            remote_ok=bool(data.get("remote_ok", False)),
            rate_min=_as_float(data.get("rate_min")),
            rate_max=_as_float(data.get("rate_max")),
            communication_style=_as_text(data.get("communication_style")),
            firm_size=_as_text(data.get("firm_size")),
            years_experience=float(years) if years not in (None, "") else None,
            verified=bool(data.get("verified", False)),
            active=bool(data.get("active", False)),
        )


@dataclass
class MatchResult:
    candidate_id: Optional[str]
    candidate_name: str
    score: int
    factors: dict[str, float]
    label: str
    error: Optional[str] = None

    def to_dict(self) -> dict:
        data = {
            "candidate_id": self.candidate_id,
            "candidate_name": self.candidate_name,
            "score": self.score,
            "factors": self.factors,
            "label": self.label,
        }
        if self.error:
            data["error"] = self.error
        return data
