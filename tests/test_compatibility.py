"""Tests for compatibility scoring and candidate ranking."""

import pytest

from cpa_intel.matching.compatibility import (
    FACTORS,
    budget_score,
    business_size_score,
    communication_score,
    location_score,
    recommendation_label,
    score,
    specialization_score,
    urgency_score,
)
from cpa_intel.matching.matcher import find_top_matches, score_candidate
from cpa_intel.matching.models import CandidateProfile, ClientProfile


def client(**overrides) -> ClientProfile:
    data = dict(
        required_services=["Tax Planning"],
        location="Toronto, Ontario",
        remote_ok=False,
        budget_min=100,
        budget_max=150,
        communication_style="formal",
        business_size="small",
        urgency="urgent",
    )
    data.update(overrides)
    return ClientProfile(**data)


def candidate(**overrides) -> CandidateProfile:
    data = dict(
        id="c1",
        name="Jane Doe",
        specializations=["Tax Planning & Compliance"],
        province="ON",
        remote_ok=False,
        rate_min=100,
        rate_max=150,
        communication_style="formal",
        firm_size="small",
        years_experience=12,
        verified=True,
        active=True,
    )
    data.update(overrides)
    return CandidateProfile(**data)


class TestFactors:
    def test_weights_sum_to_one(self):
        assert sum(weight for _, weight, _ in FACTORS) == pytest.approx(1.0)

    def test_specialization_substring_either_way(self):
        assert specialization_score(client(), candidate()) == 1.0
        assert specialization_score(
            client(required_services=["Tax Planning & Compliance"]), candidate(specializations=["tax planning"])
        ) == 1.0

    def test_specialization_partial_and_empty(self):
        c = client(required_services=["Audit", "Payroll"])
        assert specialization_score(c, candidate(specializations=["audit"])) == 0.5
        assert specialization_score(client(required_services=[]), candidate()) == 0.0
        assert specialization_score(client(), candidate(specializations=[])) == 0.0

    def test_location(self):
        assert location_score(client(remote_ok=True), candidate(remote_ok=True)) == 1.0
        assert location_score(client(), candidate()) == 0.9
        assert location_score(client(), candidate(province="BC", remote_ok=True)) == 0.7
        assert location_score(client(), candidate(province="BC")) == 0.3

    def test_budget_overlap(self):
        c = client(budget_min=100, budget_max=150)
        assert budget_score(c, candidate(rate_min=140, rate_max=200)) == pytest.approx(10 / 55)
        assert budget_score(c, candidate(rate_min=100, rate_max=150)) == 1.0

    def test_budget_point_ranges(self):
        c = client(budget_min=120, budget_max=120)
        assert budget_score(c, candidate(rate_min=120, rate_max=120)) == 1.0

    def test_budget_gap(self):
        c = client(budget_min=100, budget_max=150)
        assert budget_score(c, candidate(rate_min=180, rate_max=250)) == pytest.approx(1 - 30 / 150)
        assert budget_score(c, candidate(rate_min=400, rate_max=500)) == 0.0

    def test_budget_unknown(self):
        assert budget_score(client(budget_max=None), candidate()) == 0.5

    def test_communication(self):
        assert communication_score(client(), candidate()) == 1.0
        assert communication_score(client(), candidate(communication_style="Professional")) == 0.8
        assert communication_score(client(), candidate(communication_style="casual")) == 0.5
        assert communication_score(client(communication_style=None), candidate()) == 0.7

    def test_business_size(self):
        assert business_size_score(client(), candidate(firm_size="medium")) == 1.0
        assert business_size_score(client(business_size="enterprise"), candidate(firm_size="solo")) == 0.4
        assert business_size_score(client(business_size=None), candidate()) == 0.7

    def test_urgency(self):
        assert urgency_score(client(), candidate(years_experience=12)) == 1.0
        assert urgency_score(client(), candidate(years_experience=6)) == 0.8
        assert urgency_score(client(), candidate(years_experience=None)) == 0.6
        assert urgency_score(client(urgency="flexible"), candidate()) == 0.9
        assert urgency_score(client(urgency=None), candidate()) == 0.8


class TestScore:
    def test_strong_match(self):
        result = score(client(), candidate())
        assert result.score == 98
        assert result.label == "Excellent Match"
        assert set(result.factors) == {
            "specialization", "location", "budget", "communication", "business_size", "urgency",
        }

    @pytest.mark.parametrize("total,label", [
        (100, "Excellent Match"), (90, "Excellent Match"), (89, "Very Good Match"),
        (80, "Very Good Match"), (70, "Good Match"), (60, "Fair Match"), (59, "Poor Match"), (0, "Poor Match"),
    ])
    def test_labels(self, total, label):
        assert recommendation_label(total) == label

    def test_deterministic(self):
        assert score(client(), candidate()) == score(client(), candidate())

    def test_sparse_profiles_stay_in_range(self):
        result = score(ClientProfile(), CandidateProfile())
        assert 0 <= result.score <= 100
        # specialization 0, location 0.3, budget 0.5, comm 0.7, size 0.7, urgency 0.8
        assert result.score == 35


class TestRanking:
    def test_unverified_and_inactive_excluded(self):
        pool = [
            candidate(id="ok"),
            candidate(id="unverified", verified=False),
            candidate(id="inactive", active=False),
            {"id": "dict-ok", "specializations": "Tax Planning", "verified": True, "active": True},
            {"id": "dict-inactive", "verified": True},
        ]
        ids = [r.candidate_id for r in find_top_matches(client(), pool)]
        assert set(ids) == {"ok", "dict-ok"}

    def test_highest_first_and_limited(self):
        pool = [
            candidate(id="weak", specializations=["Audit"]),
            candidate(id="best"),
            candidate(id="middle", province="BC"),
        ]
        results = find_top_matches(client(), pool, limit=2)
        assert [r.candidate_id for r in results] == ["best", "middle"]

    def test_ties_keep_input_order(self):
        pool = [candidate(id=str(i)) for i in range(5)]
        assert [r.candidate_id for r in find_top_matches(client(), pool)] == ["0", "1", "2", "3", "4"]

    def test_bad_candidate_becomes_error_result(self):
        pool = [
            {"id": "broken", "name": "Broken", "rate_min": "cheap", "verified": True, "active": True},
            candidate(id="fine"),
        ]
        results = find_top_matches(client(), pool)
        assert [r.candidate_id for r in results] == ["fine", "broken"]
        broken = results[1]
        assert broken.score == 0
        assert broken.label == "Error"
        assert broken.error

    def test_wrongly_typed_profile(self):
        result = score_candidate(client(), candidate(rate_min="a lot"))
        assert result.label == "Error"
        assert result.candidate_id == "c1"

    def test_non_dict_inputs_ignored(self):
        assert find_top_matches(client(), [None, "candidate", 42]) == []

    def test_zero_limit(self):
        assert find_top_matches(client(), [candidate()], limit=0) == []
