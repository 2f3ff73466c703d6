"""Tests for the deterministic risk scorer."""

from datetime import date

import pytest

from risk_service import (
    age_factor,
    age_in_years,
    calculate_risk_score,
    deposit_factor,
    employment_factor,
    income_factor,
    risk_level_for,
    score_bounds,
)

ON = date(2025, 6, 15)


def _born_years_ago(years: int) -> date:
    return date(ON.year - years, ON.month, ON.day)


class TestCalculateRiskScore:
    """Full score examples."""

    def test_young_unemployed_checking_customer_is_high_risk(self):
        customer = {
            "date_of_birth": _born_years_ago(20),
            "annual_income": 20000,
            "employment_status": "UNEMPLOYED",
            "account_type": "CHECKING",
            "initial_deposit": 500,
        }
        result = calculate_risk_score(customer, on=ON)

        assert result.to_dict() == {
            "score": 42,
            "risk_level": "HIGH",
            "age_factor": 10,
            "income_factor": 10,
            "employment_factor": 10,
            "account_type_factor": 7,
            "deposit_factor": 5,
        }

    def test_established_full_time_saver_is_low_risk(self):
        customer = {
            "date_of_birth": _born_years_ago(50),
            "annual_income": 80000,
            "employment_status": "FULL_TIME",
            "account_type": "SAVINGS",
            "initial_deposit": 20000,
        }
        result = calculate_risk_score(customer, on=ON)

        assert (
            result.age_factor,
            result.income_factor,
            result.employment_factor,
            result.account_type_factor,
            result.deposit_factor,
        ) == (3, 3, 2, 5, 1)
        assert result.score == 14
        assert result.risk_level == "LOW"

    def test_empty_customer_uses_defaults(self):
        result = calculate_risk_score({}, on=ON)

        # unknown age 0, income 0 -> 10, unknown employment 5, unknown account 5, deposit 0 -> 5
        assert result.score == 25
        assert result.risk_level == "MEDIUM"

    def test_accepts_objects_and_is_pure(self):
        class Row:
            date_of_birth = "1990-01-01"
            annual_income = "75000"
            employment_status = "SELF_EMPLOYED"
            account_type = "BUSINESS"
            initial_deposit = 12000

        first = calculate_risk_score(Row(), on=ON)
        second = calculate_risk_score(Row(), on=ON)
        assert first == second
        assert first.score == 5 + 3 + 5 + 3 + 1

    def test_to_dict_carries_every_field(self):
        data = calculate_risk_score({}, on=ON).to_dict()
        assert set(data) == {
            "score",
            "risk_level",
            "age_factor",
            "income_factor",
            "employment_factor",
            "account_type_factor",
            "deposit_factor",
        }


class TestFactors:

    @pytest.mark.parametrize(
        "age, expected",
        [(None, 0), (17, 0), (18, 10), (25, 10), (26, 5), (40, 5), (41, 3), (60, 3), (61, 8), (90, 8)],
    )
    def test_age_factor(self, age, expected):
        assert age_factor(age) == expected

    def test_age_counts_whole_calendar_years(self):
        assert age_in_years(date(2000, 6, 16), on=ON) == 24
        assert age_in_years(date(2000, 6, 15), on=ON) == 25
        assert age_in_years("not a date", on=ON) is None
        assert age_in_years(None, on=ON) is None

    @pytest.mark.parametrize(
        "income, expected",
        [(0, 10), (29999.99, 10), (30000, 5), (59999, 5), (60000, 3), (99999, 3), (100000, 1)],
    )
    def test_income_factor(self, income, expected):
        assert income_factor(income) == expected

    @pytest.mark.parametrize("value", [None, "", "abc", float("nan"), True])
    def test_non_numeric_amounts_count_as_zero(self, value):
        assert income_factor(value) == 10
        assert deposit_factor(value) == 5

    @pytest.mark.parametrize(
        "deposit, expected",
        [(999, 5), (1000, 2), (9999, 2), (10000, 1), (49999, 1), (50000, 0)],
    )
    def test_deposit_factor(self, deposit, expected):
        assert deposit_factor(deposit) == expected

    def test_unknown_employment_status_defaults(self):
        assert employment_factor("PART_TIME") == 7
        assert employment_factor("RETIRED") == 5
        assert employment_factor(None) == 5


class TestRiskLevels:

    @pytest.mark.parametrize(
        "score, level",
        [(None, "UNKNOWN"), (0, "LOW"), (20, "LOW"), (21, "MEDIUM"), (40, "MEDIUM"), (41, "HIGH"), (100, "HIGH")],
    )
    def test_thresholds(self, score, level):
        assert risk_level_for(score) == level

    def test_score_bounds_match_thresholds(self):
        assert score_bounds("low") == (None, 21)
        assert score_bounds("MEDIUM") == (21, 41)
        assert score_bounds("HIGH") == (41, None)

    def test_score_bounds_rejects_unknown_level(self):
        with pytest.raises(ValueError):
            score_bounds("EXTREME")
