from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from enum import Enum

# Posted journal entries may differ by at most this much between debits and credits.
BALANCE_TOLERANCE = Decimal("0.01")

CENTS = Decimal("0.01")


def to_amount(value: object) -> Decimal:
    """Coerce a stored or user-supplied value to a 2-place Decimal."""
    if value is None or value == "":
        return Decimal("0.00")
    if isinstance(value, Decimal):
        amount = value
    elif isinstance(value, float):
        amount = Decimal(str(value))
    else:
        try:
            amount = Decimal(str(value).strip())
        except InvalidOperation as e:
            raise ValueError(f"Not a valid amount: {value!r}") from e
    return amount.quantize(CENTS, rounding=ROUND_HALF_UP)


class RecordStatus(str, Enum):
    ACTIVE = "Active"
    INACTIVE = "Inactive"


class NormalBalance(str, Enum):
    DEBIT = "debit"
    CREDIT = "credit"


class AccountType(str, Enum):
    ASSET = "Asset"
    LIABILITY = "Liability"
    EQUITY = "Equity"
    REVENUE = "Revenue"
    EXPENSE = "Expense"

    @property
    def normal_balance(self) -> NormalBalance:
        if self in (AccountType.ASSET, AccountType.EXPENSE):
            return NormalBalance.DEBIT
        return NormalBalance.CREDIT

    def signed(self, debit: Decimal, credit: Decimal) -> Decimal:
        """Net movement expressed in this type's normal-balance direction."""
        if self.normal_balance == NormalBalance.DEBIT:
            return debit - credit
        return credit - debit

    @classmethod
    def from_code(cls, code: str) -> "AccountType | None":
        """Infer the type from a conventional chart-of-accounts number.

        1xxx assets, 2xxx liabilities, 3xxx net assets, 4xxx revenue and
        5xxx-9xxx expenses.
        """
        stripped = code.strip()
        if not stripped or not stripped[0].isdigit():
            return None
        return {
            "1": cls.ASSET,
            "2": cls.LIABILITY,
            "3": cls.EQUITY,
            "4": cls.REVENUE,
        }.get(stripped[0], cls.EXPENSE if stripped[0] != "0" else None)


class FundType(str, Enum):
    UNRESTRICTED = "Unrestricted"
    TEMPORARILY_RESTRICTED = "Temporarily Restricted"
    PERMANENTLY_RESTRICTED = "Permanently Restricted"


class JournalEntryStatus(str, Enum):
    DRAFT = "Draft"
    POSTED = "Posted"
    VOID = "Void"


class ImportJobStatus(str, Enum):
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"
    ROLLED_BACK = "rolled_back"
