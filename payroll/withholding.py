"""Payroll tax withholding calculations.

Pure functions over Decimal amounts: federal income tax (percentage method on
annualized wages), FICA, state unemployment and the employer-side taxes.
Results are rounded half-up to cents.
"""

import logging
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal

from .tax_tables import (
    ADDITIONAL_MEDICARE_RATE,
    ADDITIONAL_MEDICARE_THRESHOLD,
    ALLOWANCE_AMOUNT,
    DOUBLE_TIME_MULTIPLIER,
    FEDERAL_TAX_BRACKETS,
    FLORIDA_SUI_RATE,
    FLORIDA_SUI_WAGE_BASE,
    FUTA_RATE,
    FUTA_WAGE_BASE,
    MEDICARE_RATE,
    OVERTIME_MULTIPLIER,
    PAY_PERIODS_PER_YEAR,
    SOCIAL_SECURITY_RATE,
    SOCIAL_SECURITY_WAGE_BASE,
    STANDARD_DEDUCTION,
    FilingStatus,
    PayPeriod,
)

logger = logging.getLogger(__name__)

ZERO = Decimal("0")
CENT = Decimal("0.01")


@dataclass(frozen=True)
class FicaTaxes:
    social_security: Decimal
    medicare: Decimal
    additional_medicare: Decimal

    @property
    def total(self) -> Decimal:
        return self.social_security + self.medicare + self.additional_medicare


@dataclass(frozen=True)
class PayrollTaxes:
    federal_income_tax: Decimal
    social_security: Decimal
    medicare: Decimal
    additional_medicare: Decimal
    state_income_tax: Decimal
    state_sui: Decimal
    total_taxes: Decimal


@dataclass(frozen=True)
class EmployerTaxes:
    employer_social_security: Decimal
    employer_medicare: Decimal
    federal_unemployment: Decimal
    state_unemployment: Decimal
    total_employer_tax: Decimal


@dataclass(frozen=True)
class OvertimePay:
    regular_pay: Decimal
    overtime_pay: Decimal
    double_time_pay: Decimal
    total: Decimal


def _to_decimal(value, name: str = "amount") -> Decimal:
    amount = Decimal(str(value or 0))
    if amount < 0:
        raise ValueError(f"{name} cannot be negative: {value}")
    return amount


def _money(amount: Decimal) -> Decimal:
    return amount.quantize(CENT, rounding=ROUND_HALF_UP)


def _periods_per_year(pay_period) -> int:
    periods = PAY_PERIODS_PER_YEAR.get(str(pay_period).upper())
    if periods is None:
        logger.debug("Unknown pay period %r treated as annual", pay_period)
        return 1
    return periods


def taxable_within_wage_base(gross_pay, ytd_gross, wage_base) -> Decimal:
    """
    Portion of this paycheck still under an annual wage base:
    clamp(0, gross_pay, wage_base - ytd_gross).
    """
    gross = _to_decimal(gross_pay, "gross_pay")
    ytd = _to_decimal(ytd_gross, "ytd_gross")
    remaining = Decimal(wage_base) - ytd
    return max(ZERO, min(gross, remaining))


def annualize_salary(period_amount, pay_period) -> Decimal:
    return _money(_to_decimal(period_amount, "period_amount") * _periods_per_year(pay_period))


def periodize_tax(annual_tax, pay_period) -> Decimal:
    return _money(_to_decimal(annual_tax, "annual_tax") / _periods_per_year(pay_period))


def bracket_tax(taxable_income: Decimal, brackets) -> Decimal:
    tax = ZERO
    for lower, upper, base, rate in brackets:
        if taxable_income <= lower:
            break
        top = taxable_income if upper is None else min(taxable_income, upper)
        tax = base + (top - lower) * rate
    return tax


def calculate_federal_income_tax(
    annualized_wages,
    filing_status=FilingStatus.SINGLE,
    allowances: int = 0,
    additional_withholding=0,
    pay_period=PayPeriod.YEARLY,
) -> Decimal:
    """
    Federal income tax for one paycheck.

    Standard deduction and allowances come off the annualized wages first;
    the bracket tax is then spread over the pay period and
    ``additional_withholding`` is added on top as a flat per-paycheck amount.
    Unknown filing statuses use the SINGLE tables. Zero wages owe no bracket
    tax but still carry the additional withholding.
    """
    wages = _to_decimal(annualized_wages, "annualized_wages")

    status = filing_status
    if status not in FEDERAL_TAX_BRACKETS:
        logger.warning("Unknown filing status %r; using %s tables", filing_status, FilingStatus.SINGLE)
        status = FilingStatus.SINGLE
    exemptions = STANDARD_DEDUCTION[status] + ALLOWANCE_AMOUNT * max(int(allowances or 0), 0)
    taxable_income = max(ZERO, wages - exemptions)

    annual_tax = bracket_tax(taxable_income, FEDERAL_TAX_BRACKETS[status])
    extra = _to_decimal(additional_withholding, "additional_withholding")
    return _money(periodize_tax(annual_tax, pay_period) + extra)


def calculate_fica_taxes(gross_pay, ytd_gross=0) -> FicaTaxes:
    """
    Employee FICA for one paycheck given wages already paid this year.

    Social Security stops at the wage base; Medicare has no ceiling; the
    Additional Medicare surtax only applies to wages above the threshold.
    """
    gross = _to_decimal(gross_pay, "gross_pay")
    ytd = _to_decimal(ytd_gross, "ytd_gross")

    social_security_wages = taxable_within_wage_base(gross, ytd, SOCIAL_SECURITY_WAGE_BASE)
    additional_medicare_wages = min(gross, max(ZERO, ytd + gross - ADDITIONAL_MEDICARE_THRESHOLD))

    return FicaTaxes(
        social_security=_money(social_security_wages * SOCIAL_SECURITY_RATE),
        medicare=_money(gross * MEDICARE_RATE),
        additional_medicare=_money(additional_medicare_wages * ADDITIONAL_MEDICARE_RATE),
    )


def calculate_state_sui(gross_pay, ytd_gross=0, rate=FLORIDA_SUI_RATE, wage_base=FLORIDA_SUI_WAGE_BASE) -> Decimal:
    taxable = taxable_within_wage_base(gross_pay, ytd_gross, wage_base)
    return _money(taxable * _to_decimal(rate, "rate"))


def calculate_florida_sui(gross_pay, ytd_gross=0) -> Decimal:
    return calculate_state_sui(gross_pay, ytd_gross)


def calculate_payroll_taxes(
    gross_pay,
    pay_period=PayPeriod.BI_WEEKLY,
    filing_status=FilingStatus.SINGLE,
    allowances: int = 0,
    additional_withholding=0,
    ytd_gross=0,
    exempt_federal: bool = False,
    exempt_fica: bool = False,
    sui_rate=FLORIDA_SUI_RATE,
) -> PayrollTaxes:
    """All withholding for one paycheck. Florida has no state income tax."""
    gross = _to_decimal(gross_pay, "gross_pay")

    federal = _money(ZERO)
    if not exempt_federal:
        federal = calculate_federal_income_tax(
            annualize_salary(gross, pay_period),
            filing_status,
            allowances,
            additional_withholding,
            pay_period,
        )

    fica = FicaTaxes(_money(ZERO), _money(ZERO), _money(ZERO))
    if not exempt_fica:
        fica = calculate_fica_taxes(gross, ytd_gross)

    state_income_tax = _money(ZERO)
    state_sui = calculate_state_sui(gross, ytd_gross, rate=sui_rate)

    return PayrollTaxes(
        federal_income_tax=federal,
        social_security=fica.social_security,
        medicare=fica.medicare,
        additional_medicare=fica.additional_medicare,
        state_income_tax=state_income_tax,
        state_sui=state_sui,
        total_taxes=federal + fica.total + state_income_tax + state_sui,
    )


def calculate_employer_taxes(gross_pay, ytd_gross=0) -> EmployerTaxes:
    """Employer share: FICA match (no Additional Medicare), FUTA and SUI."""
    fica = calculate_fica_taxes(gross_pay, ytd_gross)
    futa = _money(taxable_within_wage_base(gross_pay, ytd_gross, FUTA_WAGE_BASE) * FUTA_RATE)
    sui = calculate_florida_sui(gross_pay, ytd_gross)
    return EmployerTaxes(
        employer_social_security=fica.social_security,
        employer_medicare=fica.medicare,
        federal_unemployment=futa,
        state_unemployment=sui,
        total_employer_tax=fica.social_security + fica.medicare + futa + sui,
    )


def calculate_overtime_pay(hourly_rate, regular_hours, overtime_hours=0, double_time_hours=0) -> OvertimePay:
    rate = _to_decimal(hourly_rate, "hourly_rate")
    regular = _money(rate * _to_decimal(regular_hours, "regular_hours"))
    overtime = _money(rate * OVERTIME_MULTIPLIER * _to_decimal(overtime_hours, "overtime_hours"))
    double_time = _money(rate * DOUBLE_TIME_MULTIPLIER * _to_decimal(double_time_hours, "double_time_hours"))
    return OvertimePay(
        regular_pay=regular,
        overtime_pay=overtime,
        double_time_pay=double_time,
        total=regular + overtime + double_time,
    )
