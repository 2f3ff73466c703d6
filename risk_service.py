"""
Risk Scoring Service - deterministic customer risk score with factor breakdown

The score is the sum of five factors (age, income, employment, account type,
deposit). The level is always derived from the score, never read back from
storage, so every read path agrees with the thresholds below.
"""

from dataclasses import dataclass, asdict
from datetime import date
from typing import Any, Optional, Tuple

from date_utils import parse_date, today as utc_today

HIGH_RISK_THRESHOLD = 41
MEDIUM_RISK_THRESHOLD = 21

RISK_LEVELS = ("LOW", "MEDIUM", "HIGH")

EMPLOYMENT_FACTORS = {
    "UNEMPLOYED": 10,
    "PART_TIME": 7,
    "SELF_EMPLOYED": 5,
    "FULL_TIME": 2,
}
DEFAULT_EMPLOYMENT_FACTOR = 5

ACCOUNT_TYPE_FACTORS = {
    "INVESTMENT": 1,
    "BUSINESS": 3,
    "SAVINGS": 5,
    "CHECKING": 7,
}
DEFAULT_ACCOUNT_TYPE_FACTOR = 5


@dataclass(frozen=True)
class RiskAssessment:
    score: int
    risk_level: str
    age_factor: int
    income_factor: int
    employment_factor: int
    account_type_factor: int
    deposit_factor: int

    def to_dict(self) -> dict:
        return asdict(self)


def risk_level_for(score: Optional[int]) -> str:
    """Map a score to LOW / MEDIUM / HIGH; UNKNOWN when there is no score."""
    if score is None:
        return "UNKNOWN"
    if score >= HIGH_RISK_THRESHOLD:
        return "HIGH"
    if score >= MEDIUM_RISK_THRESHOLD:
        return "MEDIUM"
    return "LOW"


def score_bounds(risk_level: str) -> Tuple[Optional[int], Optional[int]]:
    """Inclusive lower / exclusive upper score bounds of a level, for query filters."""
    level = risk_level.upper()
    if level == "HIGH":
        return HIGH_RISK_THRESHOLD, None
    if level == "MEDIUM":
        return MEDIUM_RISK_THRESHOLD, HIGH_RISK_THRESHOLD
    if level == "LOW":
        return None, MEDIUM_RISK_THRESHOLD
    raise ValueError(f"Unknown risk level: {risk_level}")


def _field(customer: Any, name: str) -> Any:
    if isinstance(customer, dict):
        return customer.get(name)
    return getattr(customer, name, None)


def _to_number(value: Any) -> float:
    """Numeric value of an income/deposit field; missing or garbage counts as 0."""
    if value is None or isinstance(value, bool):
        return 0.0
    try:
        number = float(value)
    except (TypeError, ValueError):
        return 0.0
    if number != number:  # NaN
        return 0.0
    return number


def age_in_years(date_of_birth: Any, on: Optional[date] = None) -> Optional[int]:
    born = parse_date(date_of_birth)
    if born is None:
        return None
    on = on or utc_today()
    return on.year - born.year - ((on.month, on.day) < (born.month, born.day))


def age_factor(age: Optional[int]) -> int:
    if age is None or age < 18:
        return 0
    if age <= 25:
        return 10
    if age <= 40:
        return 5
    if age <= 60:
        return 3
    return 8


def income_factor(annual_income: Any) -> int:
    income = _to_number(annual_income)
    if income < 30000:
        return 10
    if income < 60000:
        return 5
    if income < 100000:
        return 3
    return 1


def employment_factor(employment_status: Any) -> int:
    return EMPLOYMENT_FACTORS.get(employment_status, DEFAULT_EMPLOYMENT_FACTOR)


def account_type_factor(account_type: Any) -> int:
    return ACCOUNT_TYPE_FACTORS.get(account_type, DEFAULT_ACCOUNT_TYPE_FACTOR)


def deposit_factor(initial_deposit: Any) -> int:
    deposit = _to_number(initial_deposit)
    if deposit < 1000:
        return 5
    if deposit < 10000:
        return 2
    if deposit < 50000:
        return 1
    return 0


def calculate_risk_score(customer: Any, on: Optional[date] = None) -> RiskAssessment:
    """
    Score a customer (ORM row or plain dict).

    Args:
        customer: object or mapping with date_of_birth, annual_income,
            employment_status, account_type and initial_deposit
        on: reference date for the age factor, defaults to today (UTC)

    Returns:
        RiskAssessment with the total, the level and every factor
    """
    factors = {
        "age_factor": age_factor(age_in_years(_field(customer, "date_of_birth"), on)),
        "income_factor": income_factor(_field(customer, "annual_income")),
        "employment_factor": employment_factor(_field(customer, "employment_status")),
        "account_type_factor": account_type_factor(_field(customer, "account_type")),
        "deposit_factor": deposit_factor(_field(customer, "initial_deposit")),
    }
    score = sum(factors.values())
    return RiskAssessment(score=score, risk_level=risk_level_for(score), **factors)
