from dataclasses import dataclass, field
from datetime import UTC, date, datetime
from decimal import Decimal
from uuid import UUID, uuid4

from dateutil.relativedelta import relativedelta

from fund_ledger.domain.value_objects import AccountType, FundType, RecordStatus


def _utc_now() -> datetime:
    return datetime.now(UTC)


def _parse_month_day(value: str) -> tuple[int, int]:
    try:
        month_str, day_str = value.split("-")
        month, day = int(month_str), int(day_str)
        date(2000, month, day)
    except ValueError as e:
        raise ValueError(f"fiscal_year_start must be MM-DD, got {value!r}") from e
    return month, day


@dataclass
class Entity:
    name: str
    code: str
    id: UUID = field(default_factory=uuid4)
    parent_entity_id: UUID | None = None
    is_consolidated: bool = False
    fiscal_year_start: str = "01-01"
    base_currency: str = "USD"
    status: RecordStatus = RecordStatus.ACTIVE
    created_at: datetime = field(default_factory=_utc_now)
    updated_at: datetime = field(default_factory=_utc_now)

    def __post_init__(self) -> None:
        _parse_month_day(self.fiscal_year_start)
        self.base_currency = self.base_currency.upper()

    @property
    def is_active(self) -> bool:
        return self.status == RecordStatus.ACTIVE

    def fiscal_year_bounds(self, as_of: date) -> tuple[date, date]:
        """First and last day of the fiscal year containing ``as_of``."""
        month, day = _parse_month_day(self.fiscal_year_start)

        # relativedelta(day=...) clamps, so a 02-29 start falls on Feb 28 in common years.
        def start_in(year: int) -> date:
            return date(year, month, 1) + relativedelta(day=day)

        start = start_in(as_of.year)
        if start > as_of:
            start = start_in(as_of.year - 1)
        end = start_in(start.year + 1) - relativedelta(days=1)
        return start, end

    def deactivate(self) -> None:
        self.status = RecordStatus.INACTIVE
        self.updated_at = _utc_now()

    def activate(self) -> None:
        self.status = RecordStatus.ACTIVE
        self.updated_at = _utc_now()


@dataclass
class Account:
    entity_id: UUID
    code: str
    name: str
    account_type: AccountType
    id: UUID = field(default_factory=uuid4)
    description: str = ""
    balance: Decimal = Decimal("0.00")
    status: RecordStatus = RecordStatus.ACTIVE
    created_at: datetime = field(default_factory=_utc_now)
    updated_at: datetime = field(default_factory=_utc_now)

    @property
    def is_active(self) -> bool:
        return self.status == RecordStatus.ACTIVE


@dataclass
class Fund:
    entity_id: UUID
    code: str
    name: str
    fund_type: FundType = FundType.UNRESTRICTED
    id: UUID = field(default_factory=uuid4)
    description: str = ""
    balance: Decimal = Decimal("0.00")
    status: RecordStatus = RecordStatus.ACTIVE
    created_at: datetime = field(default_factory=_utc_now)
    updated_at: datetime = field(default_factory=_utc_now)

    @property
    def is_restricted(self) -> bool:
        return self.fund_type != FundType.UNRESTRICTED
