from core.models import Account


class AccountCodes:
    CASH = "1000"
    BANK = "1100"
    ACCOUNTS_RECEIVABLE = "1200"
    ACCOUNTS_PAYABLE = "2000"
    RETAINED_EARNINGS = "3000"
    SALES_REVENUE = "4000"
    SERVICE_REVENUE = "4100"
    OTHER_INCOME = "4900"
    OPERATING_EXPENSES = "5000"
    SALARIES = "5100"
    RENT = "5200"
    UTILITIES = "5300"
    OTHER_EXPENSES = "5900"


DEFAULT_ACCOUNTS = [
    (AccountCodes.CASH, "Cash", Account.AccountType.ASSET),
    (AccountCodes.BANK, "Bank", Account.AccountType.ASSET),
    (AccountCodes.ACCOUNTS_RECEIVABLE, "Accounts Receivable", Account.AccountType.ASSET),
    (AccountCodes.ACCOUNTS_PAYABLE, "Accounts Payable", Account.AccountType.LIABILITY),
    (AccountCodes.RETAINED_EARNINGS, "Retained Earnings", Account.AccountType.EQUITY),
    (AccountCodes.SALES_REVENUE, "Sales Revenue", Account.AccountType.REVENUE),
    (AccountCodes.SERVICE_REVENUE, "Service Revenue", Account.AccountType.REVENUE),
    (AccountCodes.OTHER_INCOME, "Other Income", Account.AccountType.REVENUE),
    (AccountCodes.OPERATING_EXPENSES, "Operating Expenses", Account.AccountType.EXPENSE),
    (AccountCodes.SALARIES, "Salaries and Wages", Account.AccountType.EXPENSE),
    (AccountCodes.RENT, "Rent", Account.AccountType.EXPENSE),
    (AccountCodes.UTILITIES, "Utilities", Account.AccountType.EXPENSE),
    (AccountCodes.OTHER_EXPENSES, "Other Expenses", Account.AccountType.EXPENSE),
]


def ensure_default_accounts(business=None):
    """
    Ensure the default chart exists and return it keyed by code.

    With no business the global chart (shared by every business) is seeded.
    """
    accounts = {}
    for code, name, type_ in DEFAULT_ACCOUNTS:
        acc, _ = Account.objects.get_or_create(
            business=business,
            code=code,
            defaults={
                "name": name,
                "type": type_,
            },
        )
        accounts[code] = acc
    return accounts
