from decimal import Decimal

from django.test import SimpleTestCase

from payroll.tax_tables import FilingStatus, PayPeriod
from payroll.withholding import (
    annualize_salary,
    calculate_employer_taxes,
    calculate_federal_income_tax,
    calculate_fica_taxes,
    calculate_florida_sui,
    calculate_overtime_pay,
    calculate_payroll_taxes,
    calculate_state_sui,
    periodize_tax,
    taxable_within_wage_base,
)


class WageBaseTest(SimpleTestCase):
    def test_clamp(self):
        self.assertEqual(taxable_within_wage_base("5000", "0", "7000"), Decimal("5000"))
        self.assertEqual(taxable_within_wage_base("5000", "4000", "7000"), Decimal("3000"))
        self.assertEqual(taxable_within_wage_base("5000", "7000", "7000"), Decimal("0"))
        self.assertEqual(taxable_within_wage_base("5000", "9000", "7000"), Decimal("0"))

    def test_negative_amounts_rejected(self):
        with self.assertRaises(ValueError):
            taxable_within_wage_base("-1", "0", "7000")
        with self.assertRaises(ValueError):
            calculate_fica_taxes("100", "-5")


class PeriodConversionTest(SimpleTestCase):
    def test_round_trip(self):
        for period in (
            PayPeriod.WEEKLY,
            PayPeriod.BI_WEEKLY,
            PayPeriod.SEMI_MONTHLY,
            PayPeriod.MONTHLY,
            PayPeriod.YEARLY,
            "QUARTERLY",
        ):
            with self.subTest(period=period):
                self.assertEqual(periodize_tax(annualize_salary("1000", period), period), Decimal("1000"))

    def test_period_multipliers(self):
        self.assertEqual(annualize_salary("2000", PayPeriod.BI_WEEKLY), Decimal("52000"))
        self.assertEqual(annualize_salary("5000", PayPeriod.MONTHLY), Decimal("60000"))
        self.assertEqual(annualize_salary("1000", "QUARTERLY"), Decimal("1000"))

    def test_results_are_quantized_to_cents(self):
        self.assertEqual(periodize_tax("1000", PayPeriod.WEEKLY), Decimal("19.23"))
        self.assertEqual(periodize_tax("5216", PayPeriod.BI_WEEKLY), Decimal("200.62"))
        self.assertEqual(annualize_salary("1234.565", PayPeriod.YEARLY), Decimal("1234.57"))
        self.assertEqual(periodize_tax("1000", PayPeriod.WEEKLY).as_tuple().exponent, -2)

    def test_negative_amounts_rejected(self):
        with self.assertRaises(ValueError):
            annualize_salary("-1", PayPeriod.MONTHLY)
        with self.assertRaises(ValueError):
            periodize_tax("-1", PayPeriod.MONTHLY)


class FederalIncomeTaxTest(SimpleTestCase):
    def test_single_annual(self):
        self.assertEqual(calculate_federal_income_tax("60000"), Decimal("5216.00"))

    def test_allowances_reduce_taxable_income(self):
        self.assertEqual(calculate_federal_income_tax("60000", allowances=1), Decimal("4688.00"))

    def test_additional_withholding_is_per_paycheck(self):
        self.assertEqual(
            calculate_federal_income_tax(
                "60000",
                FilingStatus.SINGLE,
                additional_withholding="25",
                pay_period=PayPeriod.BI_WEEKLY,
            ),
            Decimal("225.62"),
        )

    def test_married_filing_jointly(self):
        self.assertEqual(
            calculate_federal_income_tax("100000", FilingStatus.MARRIED_FILING_JOINTLY),
            Decimal("8032.00"),
        )

    def test_top_bracket(self):
        self.assertEqual(calculate_federal_income_tax("700000"), Decimal("211785.75"))

    def test_income_below_standard_deduction(self):
        self.assertEqual(calculate_federal_income_tax("12000"), Decimal("0.00"))

    def test_zero_income(self):
        for status in (FilingStatus.SINGLE, FilingStatus.HEAD_OF_HOUSEHOLD):
            with self.subTest(status=status):
                self.assertEqual(calculate_federal_income_tax("0", status, allowances=3), Decimal("0.00"))

    def test_additional_withholding_applies_at_zero_income(self):
        self.assertEqual(calculate_federal_income_tax("0", additional_withholding="50"), Decimal("50.00"))
        self.assertEqual(calculate_federal_income_tax("0.01", additional_withholding="50"), Decimal("50.00"))

    def test_negative_wages_rejected(self):
        with self.assertRaises(ValueError):
            calculate_federal_income_tax("-100")

    def test_unknown_status_uses_single(self):
        with self.assertLogs("payroll.withholding", level="WARNING"):
            widowed = calculate_federal_income_tax("85000", "WIDOWED")
        self.assertEqual(widowed, calculate_federal_income_tax("85000", FilingStatus.SINGLE))


class FicaTest(SimpleTestCase):
    def test_social_security_stops_at_wage_base(self):
        partial = calculate_fica_taxes("5000", "166600")
        self.assertEqual(partial.social_security, Decimal("124.00"))
        self.assertEqual(partial.medicare, Decimal("72.50"))

        capped = calculate_fica_taxes("5000", "168600")
        self.assertEqual(capped.social_security, Decimal("0.00"))
        self.assertEqual(capped.medicare, Decimal("72.50"))

    def test_additional_medicare_above_threshold(self):
        taxes = calculate_fica_taxes("5000", "198000")

        self.assertEqual(taxes.additional_medicare, Decimal("27.00"))
        self.assertEqual(taxes.medicare, Decimal("72.50"))
        self.assertEqual(calculate_fica_taxes("5000", "0").additional_medicare, Decimal("0.00"))


class StateUnemploymentTest(SimpleTestCase):
    def test_florida_sui(self):
        self.assertEqual(calculate_florida_sui("2000", "6000"), Decimal("27.00"))
        self.assertEqual(calculate_florida_sui("1000", "7000"), Decimal("0.00"))

    def test_custom_rate(self):
        self.assertEqual(calculate_state_sui("1000", rate="0.01", wage_base="9000"), Decimal("10.00"))


class PayrollTaxesTest(SimpleTestCase):
    def test_biweekly_paycheck(self):
        taxes = calculate_payroll_taxes("2000", PayPeriod.BI_WEEKLY, FilingStatus.SINGLE)

        self.assertEqual(taxes.federal_income_tax, Decimal("163.69"))
        self.assertEqual(taxes.social_security, Decimal("124.00"))
        self.assertEqual(taxes.medicare, Decimal("29.00"))
        self.assertEqual(taxes.additional_medicare, Decimal("0.00"))
        self.assertEqual(taxes.state_income_tax, Decimal("0.00"))
        self.assertEqual(taxes.state_sui, Decimal("54.00"))
        self.assertEqual(taxes.total_taxes, Decimal("370.69"))

    def test_exemptions(self):
        taxes = calculate_payroll_taxes("2000", exempt_federal=True, exempt_fica=True)

        self.assertEqual(taxes.federal_income_tax, Decimal("0.00"))
        self.assertEqual(taxes.social_security, Decimal("0.00"))
        self.assertEqual(taxes.medicare, Decimal("0.00"))
        self.assertEqual(taxes.total_taxes, Decimal("54.00"))


class EmployerTaxesTest(SimpleTestCase):
    def test_employer_share(self):
        taxes = calculate_employer_taxes("2000", "6000")

        self.assertEqual(taxes.employer_social_security, Decimal("124.00"))
        self.assertEqual(taxes.employer_medicare, Decimal("29.00"))
        self.assertEqual(taxes.federal_unemployment, Decimal("6.00"))
        self.assertEqual(taxes.state_unemployment, Decimal("27.00"))
        self.assertEqual(taxes.total_employer_tax, Decimal("186.00"))


class OvertimePayTest(SimpleTestCase):
    def test_overtime_and_double_time(self):
        pay = calculate_overtime_pay("20", 40, 5, 2)

        self.assertEqual(pay.regular_pay, Decimal("800.00"))
        self.assertEqual(pay.overtime_pay, Decimal("150.00"))
        self.assertEqual(pay.double_time_pay, Decimal("80.00"))
        self.assertEqual(pay.total, Decimal("1030.00"))
