"""2024 federal and Florida payroll tax tables.

Bracket rows are (lower bound, upper bound, base tax, marginal rate). The top
bracket has no upper bound.
"""

from decimal import Decimal

TAX_YEAR = 2024


class FilingStatus:
    SINGLE = "SINGLE"
    MARRIED_FILING_JOINTLY = "MARRIED_FILING_JOINTLY"
    MARRIED_FILING_SEPARATELY = "MARRIED_FILING_SEPARATELY"
    HEAD_OF_HOUSEHOLD = "HEAD_OF_HOUSEHOLD"


class PayPeriod:
    WEEKLY = "WEEKLY"
    BI_WEEKLY = "BI_WEEKLY"
    SEMI_MONTHLY = "SEMI_MONTHLY"
    MONTHLY = "MONTHLY"
    YEARLY = "YEARLY"


# Unknown period types are treated as already annual.
PAY_PERIODS_PER_YEAR = {
    PayPeriod.WEEKLY: 52,
    PayPeriod.BI_WEEKLY: 26,
    PayPeriod.SEMI_MONTHLY: 24,
    PayPeriod.MONTHLY: 12,
    PayPeriod.YEARLY: 1,
}

_SINGLE_BRACKETS = [
    (Decimal("0"), Decimal("11600"), Decimal("0"), Decimal("0.10")),
    (Decimal("11600"), Decimal("47150"), Decimal("1160"), Decimal("0.12")),
    (Decimal("47150"), Decimal("100525"), Decimal("5426"), Decimal("0.22")),
    (Decimal("100525"), Decimal("191950"), Decimal("17168.50"), Decimal("0.24")),
    (Decimal("191950"), Decimal("243725"), Decimal("39110.50"), Decimal("0.32")),
    (Decimal("243725"), Decimal("609350"), Decimal("55678.50"), Decimal("0.35")),
    (Decimal("609350"), None, Decimal("183647.25"), Decimal("0.37")),
]

FEDERAL_TAX_BRACKETS = {
    FilingStatus.SINGLE: _SINGLE_BRACKETS,
    FilingStatus.MARRIED_FILING_JOINTLY: [
        (Decimal("0"), Decimal("23200"), Decimal("0"), Decimal("0.10")),
        (Decimal("23200"), Decimal("94300"), Decimal("2320"), Decimal("0.12")),
        (Decimal("94300"), Decimal("201050"), Decimal("10852"), Decimal("0.22")),
        (Decimal("201050"), Decimal("383900"), Decimal("34337"), Decimal("0.24")),
        (Decimal("383900"), Decimal("487450"), Decimal("78221"), Decimal("0.32")),
        (Decimal("487450"), Decimal("731200"), Decimal("111357"), Decimal("0.35")),
        (Decimal("731200"), None, Decimal("196669.50"), Decimal("0.37")),
    ],
    FilingStatus.MARRIED_FILING_SEPARATELY: _SINGLE_BRACKETS[:5] + [
        (Decimal("243725"), Decimal("365600"), Decimal("55678.50"), Decimal("0.35")),
        (Decimal("365600"), None, Decimal("98334.75"), Decimal("0.37")),
    ],
    FilingStatus.HEAD_OF_HOUSEHOLD: [
        (Decimal("0"), Decimal("16550"), Decimal("0"), Decimal("0.10")),
        (Decimal("16550"), Decimal("63100"), Decimal("1655"), Decimal("0.12")),
        (Decimal("63100"), Decimal("100500"), Decimal("7241"), Decimal("0.22")),
        (Decimal("100500"), Decimal("191950"), Decimal("15469"), Decimal("0.24")),
        (Decimal("191950"), Decimal("243700"), Decimal("37417"), Decimal("0.32")),
        (Decimal("243700"), Decimal("609350"), Decimal("53977"), Decimal("0.35")),
        (Decimal("609350"), None, Decimal("181954.50"), Decimal("0.37")),
    ],
}

STANDARD_DEDUCTION = {
    FilingStatus.SINGLE: Decimal("14600"),
    FilingStatus.MARRIED_FILING_JOINTLY: Decimal("29200"),
    FilingStatus.MARRIED_FILING_SEPARATELY: Decimal("14600"),
    FilingStatus.HEAD_OF_HOUSEHOLD: Decimal("21900"),
}

# Pre-2020 W-4 allowances, kept for employees who still file them.
ALLOWANCE_AMOUNT = Decimal("4400")

SOCIAL_SECURITY_RATE = Decimal("0.062")
SOCIAL_SECURITY_WAGE_BASE = Decimal("168600")
MEDICARE_RATE = Decimal("0.0145")
ADDITIONAL_MEDICARE_RATE = Decimal("0.009")
ADDITIONAL_MEDICARE_THRESHOLD = Decimal("200000")

# 6.0% FUTA less the 5.4% credit for paying state unemployment.
FUTA_RATE = Decimal("0.006")
FUTA_WAGE_BASE = Decimal("7000")

FLORIDA_SUI_RATE = Decimal("0.027")
FLORIDA_SUI_WAGE_BASE = Decimal("7000")

OVERTIME_MULTIPLIER = Decimal("1.5")
DOUBLE_TIME_MULTIPLIER = Decimal("2.0")
