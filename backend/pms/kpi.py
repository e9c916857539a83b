# Overview: KPI vocabulary, scoring constants and period-label parsing shared by the engines.

from __future__ import annotations

import calendar
import re
from decimal import Decimal
from typing import NamedTuple

from .validation import ValidationError


class KpiCategory:
    DEPOSIT_MOBILIZATION = "DEPOSIT_MOBILIZATION"
    DIGITAL_CHANNEL_GROWTH = "DIGITAL_CHANNEL_GROWTH"
    MEMBER_REGISTRATION = "MEMBER_REGISTRATION"
    SHAREHOLDER_RECRUITMENT = "SHAREHOLDER_RECRUITMENT"
    LOAN_NPL = "LOAN_NPL"
    CUSTOMER_BASE = "CUSTOMER_BASE"

    ALL = (
        DEPOSIT_MOBILIZATION,
        DIGITAL_CHANNEL_GROWTH,
        MEMBER_REGISTRATION,
        SHAREHOLDER_RECRUITMENT,
        LOAN_NPL,
        CUSTOMER_BASE,
    )

    LABELS = {
        DEPOSIT_MOBILIZATION: "Deposit Mobilization",
        DIGITAL_CHANNEL_GROWTH: "Digital Channel Growth",
        MEMBER_REGISTRATION: "Member Registration",
        SHAREHOLDER_RECRUITMENT: "Shareholder Recruitment",
        LOAN_NPL: "Loan & NPL",
        CUSTOMER_BASE: "Customer Base",
    }


class TaskType:
    DEPOSIT_MOBILIZATION = "DEPOSIT_MOBILIZATION"
    LOAN_FOLLOW_UP = "LOAN_FOLLOW_UP"
    NEW_CUSTOMER = "NEW_CUSTOMER"
    DIGITAL_ACTIVATION = "DIGITAL_ACTIVATION"
    MEMBER_REGISTRATION = "MEMBER_REGISTRATION"
    SHAREHOLDER_RECRUITMENT = "SHAREHOLDER_RECRUITMENT"

    ALL = (
        DEPOSIT_MOBILIZATION,
        LOAN_FOLLOW_UP,
        NEW_CUSTOMER,
        DIGITAL_ACTIVATION,
        MEMBER_REGISTRATION,
        SHAREHOLDER_RECRUITMENT,
    )

    LABELS = {
        DEPOSIT_MOBILIZATION: "Deposit Mobilization",
        LOAN_FOLLOW_UP: "Loan Follow-up",
        NEW_CUSTOMER: "New Customer",
        DIGITAL_ACTIVATION: "Digital Activation",
        MEMBER_REGISTRATION: "Member Registration",
        SHAREHOLDER_RECRUITMENT: "Shareholder Recruitment",
    }


# Category weights on the 100-point KPI scale
CATEGORY_WEIGHTS = {
    KpiCategory.DEPOSIT_MOBILIZATION: Decimal("25"),
    KpiCategory.DIGITAL_CHANNEL_GROWTH: Decimal("20"),
    KpiCategory.LOAN_NPL: Decimal("20"),
    KpiCategory.CUSTOMER_BASE: Decimal("15"),
    KpiCategory.MEMBER_REGISTRATION: Decimal("10"),
    KpiCategory.SHAREHOLDER_RECRUITMENT: Decimal("10"),
}

MEASURE_DEPOSIT_GROWTH = "DEPOSIT_GROWTH"
MEASURE_TASK_COUNT = "TASK_COUNT"
MEASURE_TASK_AMOUNT = "TASK_AMOUNT"

# category -> (how actuals are measured, task type feeding it)
CATEGORY_MEASURES = {
    KpiCategory.DEPOSIT_MOBILIZATION: (MEASURE_DEPOSIT_GROWTH, None),
    KpiCategory.DIGITAL_CHANNEL_GROWTH: (MEASURE_TASK_COUNT, TaskType.DIGITAL_ACTIVATION),
    KpiCategory.MEMBER_REGISTRATION: (MEASURE_TASK_COUNT, TaskType.MEMBER_REGISTRATION),
    KpiCategory.CUSTOMER_BASE: (MEASURE_TASK_COUNT, TaskType.NEW_CUSTOMER),
    KpiCategory.SHAREHOLDER_RECRUITMENT: (MEASURE_TASK_COUNT, TaskType.SHAREHOLDER_RECRUITMENT),
    KpiCategory.LOAN_NPL: (MEASURE_TASK_AMOUNT, TaskType.LOAN_FOLLOW_UP),
}

MIN_QUALIFYING_BALANCE = Decimal("500")
ACTIVE_WINDOW_DAYS = 15
AMOUNT_TOLERANCE = Decimal("0.01")

KPI_SHARE = Decimal("85")
BEHAVIORAL_SHARE = Decimal("15")
SHARE_TOTAL_LIMIT = Decimal("100")


class Rating:
    OUTSTANDING = "OUTSTANDING"
    VERY_GOOD = "VERY_GOOD"
    GOOD = "GOOD"
    NEEDS_SUPPORT = "NEEDS_SUPPORT"
    UNSATISFACTORY = "UNSATISFACTORY"

    LABELS = {
        OUTSTANDING: "Outstanding",
        VERY_GOOD: "Very Good",
        GOOD: "Good",
        NEEDS_SUPPORT: "Needs Support",
        UNSATISFACTORY: "Unsatisfactory",
    }


# Inclusive lower bounds, highest first
RATING_THRESHOLDS = (
    (Decimal("90"), Rating.OUTSTANDING),
    (Decimal("80"), Rating.VERY_GOOD),
    (Decimal("70"), Rating.GOOD),
    (Decimal("60"), Rating.NEEDS_SUPPORT),
)


def rating_for(final_score: Decimal) -> str:
    for floor, rating in RATING_THRESHOLDS:
        if final_score >= floor:
            return rating
    return Rating.UNSATISFACTORY


# Behavioral competencies and their default weights (sum 100)
COMPETENCY_WEIGHTS = {
    "communication": Decimal("15"),
    "teamwork": Decimal("12"),
    "problem_solving": Decimal("15"),
    "adaptability": Decimal("10"),
    "leadership": Decimal("15"),
    "customer_focus": Decimal("18"),
    "initiative": Decimal("10"),
    "reliability": Decimal("5"),
}
COMPETENCY_MIN_SCORE = 1
COMPETENCY_MAX_SCORE = 5


def _squash(value: str) -> str:
    return re.sub(r"[^a-z0-9]", "", value.lower())


_CATEGORY_ALIASES = {_squash(c): c for c in KpiCategory.ALL}
_CATEGORY_ALIASES.update({_squash(label): code for code, label in KpiCategory.LABELS.items()})
_CATEGORY_ALIASES.update({"loan": KpiCategory.LOAN_NPL, "loanandnpl": KpiCategory.LOAN_NPL, "digital": KpiCategory.DIGITAL_CHANNEL_GROWTH})

_TASK_TYPE_ALIASES = {_squash(t): t for t in TaskType.ALL}
_TASK_TYPE_ALIASES.update({_squash(label): code for code, label in TaskType.LABELS.items()})


def category_from_display(value) -> str:
    if value is None or not str(value).strip():
        raise ValidationError("kpi_category is required")
    code = _CATEGORY_ALIASES.get(_squash(str(value)))
    if code is None:
        raise ValidationError(f"Unknown KPI category: {value}")
    return code


def task_type_from_display(value) -> str:
    if value is None or not str(value).strip():
        raise ValidationError("task_type is required")
    code = _TASK_TYPE_ALIASES.get(_squash(str(value)))
    if code is None:
        raise ValidationError(f"Unknown task type: {value}")
    return code


# ---------------------------------------------------------------------------
# Period labels
# ---------------------------------------------------------------------------

PERIOD_ANNUAL = "ANNUAL"
PERIOD_HALF_YEAR = "HALF_YEAR"
PERIOD_QUARTERLY = "QUARTERLY"
PERIOD_MONTHLY = "MONTHLY"
PERIOD_WEEKLY = "WEEKLY"

PLAN_PERIOD_TYPES = (PERIOD_ANNUAL, PERIOD_HALF_YEAR, PERIOD_QUARTERLY, PERIOD_MONTHLY)

# period type -> (monthly, weekly, daily) divisors for staff target breakdowns
BREAKDOWN_DIVISORS = {
    PERIOD_HALF_YEAR: (6, 26, 183),
    PERIOD_QUARTERLY: (3, 13, 92),
    PERIOD_MONTHLY: (1, 4, 31),
    PERIOD_ANNUAL: (12, 52, 365),
}

_MONTHS = {name.lower(): i for i, name in enumerate(calendar.month_name) if name}
_MONTHS.update({name.lower(): i for i, name in enumerate(calendar.month_abbr) if name})


class PeriodDescriptor(NamedTuple):
    period_type: str
    year: int
    index: int  # half/quarter/month/week number, 0 for a full year

    @property
    def label(self) -> str:
        if self.period_type == PERIOD_ANNUAL:
            return str(self.year)
        if self.period_type == PERIOD_HALF_YEAR:
            return f"{self.year}-H{self.index}"
        if self.period_type == PERIOD_QUARTERLY:
            return f"Q{self.index}-{self.year}"
        if self.period_type == PERIOD_MONTHLY:
            return f"{calendar.month_name[self.index]}-{self.year}"
        return f"{self.year}-W{self.index:02d}"


def parse_period(value) -> PeriodDescriptor:
    """
    Parse a period label into (period_type, year, index).

    Accepted forms: "2025", "2025-H2", "Q4-2025" / "2025-Q4",
    "December-2025" / "Dec-2025" / "2025-12", "2025-W07".
    """
    if value is None:
        raise ValidationError("period is required")
    s = str(value).strip()

    m = re.fullmatch(r"(\d{4})", s)
    if m:
        return PeriodDescriptor(PERIOD_ANNUAL, int(m.group(1)), 0)

    m = re.fullmatch(r"(\d{4})-[Hh]([12])", s)
    if m:
        return PeriodDescriptor(PERIOD_HALF_YEAR, int(m.group(1)), int(m.group(2)))

    m = re.fullmatch(r"[Qq]([1-4])-(\d{4})", s)
    if m:
        return PeriodDescriptor(PERIOD_QUARTERLY, int(m.group(2)), int(m.group(1)))
    m = re.fullmatch(r"(\d{4})-[Qq]([1-4])", s)
    if m:
        return PeriodDescriptor(PERIOD_QUARTERLY, int(m.group(1)), int(m.group(2)))

    m = re.fullmatch(r"(\d{4})-[Ww](\d{1,2})", s)
    if m:
        week = int(m.group(2))
        if 1 <= week <= 53:
            return PeriodDescriptor(PERIOD_WEEKLY, int(m.group(1)), week)

    m = re.fullmatch(r"(\d{4})-(\d{1,2})", s)
    if m:
        month = int(m.group(2))
        if 1 <= month <= 12:
            return PeriodDescriptor(PERIOD_MONTHLY, int(m.group(1)), month)

    m = re.fullmatch(r"([A-Za-z]+)-(\d{4})", s)
    if m and m.group(1).lower() in _MONTHS:
        return PeriodDescriptor(PERIOD_MONTHLY, int(m.group(2)), _MONTHS[m.group(1).lower()])

    raise ValidationError(f"Unrecognized period: {value}")


def parse_plan_period(value) -> PeriodDescriptor:
    period = parse_period(value)
    if period.period_type not in PLAN_PERIOD_TYPES:
        raise ValidationError(f"Plans cannot target a {period.period_type.lower()} period: {value}")
    return period
