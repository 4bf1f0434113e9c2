from dataclasses import dataclass, field
from datetime import UTC, date, datetime
from decimal import Decimal
from uuid import UUID, uuid4

from fund_ledger.domain.value_objects import (
    BALANCE_TOLERANCE,
    JournalEntryStatus,
    to_amount,
)
from fund_ledger.exceptions import (
    InvalidImportRowError,
    InvalidStatusTransitionError,
    JournalEntryLockedError,
    UnbalancedJournalEntryError,
    ValidationError,
)


def _utc_now() -> datetime:
    return datetime.now(UTC)


_TRANSITIONS: dict[JournalEntryStatus, frozenset[JournalEntryStatus]] = {
    JournalEntryStatus.DRAFT: frozenset({JournalEntryStatus.POSTED}),
    JournalEntryStatus.POSTED: frozenset({JournalEntryStatus.VOID}),
    JournalEntryStatus.VOID: frozenset(),
}


@dataclass
class JournalEntryLine:
    account_id: UUID
    id: UUID = field(default_factory=uuid4)
    journal_entry_id: UUID | None = None
    fund_id: UUID | None = None
    debit_amount: Decimal = Decimal("0.00")
    credit_amount: Decimal = Decimal("0.00")
    description: str = ""
    # 1-based source file row for imported lines, used to anchor error messages.
    source_row: int | None = field(default=None, compare=False)

    def __post_init__(self) -> None:
        try:
            self.debit_amount = to_amount(self.debit_amount)
            self.credit_amount = to_amount(self.credit_amount)
        except ValueError as e:
            raise InvalidImportRowError(str(e), row=self.source_row) from e
        if self.debit_amount < 0 or self.credit_amount < 0:
            raise ValidationError(
                "Journal entry line amounts must be non-negative",
                context={
                    "debit_amount": str(self.debit_amount),
                    "credit_amount": str(self.credit_amount),
                    "row": self.source_row,
                },
            )

    @property
    def net_amount(self) -> Decimal:
        return self.debit_amount - self.credit_amount

    @property
    def is_debit(self) -> bool:
        return self.debit_amount > 0 and self.credit_amount == 0

    @property
    def is_credit(self) -> bool:
        return self.credit_amount > 0 and self.debit_amount == 0


@dataclass
class JournalEntry:
    entity_id: UUID
    entry_date: date
    reference_number: str
    lines: list[JournalEntryLine] = field(default_factory=list)
    id: UUID = field(default_factory=uuid4)
    description: str = ""
    status: JournalEntryStatus = JournalEntryStatus.DRAFT
    is_inter_entity: bool = False
    target_entity_id: UUID | None = None
    matching_transaction_id: UUID | None = None
    import_id: UUID | None = None
    created_by: str | None = None
    total_amount: Decimal = Decimal("0.00")
    created_at: datetime = field(default_factory=_utc_now)
    updated_at: datetime = field(default_factory=_utc_now)

    def __post_init__(self) -> None:
        for line in self.lines:
            line.journal_entry_id = self.id
        if self.lines:
            self.total_amount = self.computed_total

    @property
    def total_debits(self) -> Decimal:
        return sum((line.debit_amount for line in self.lines), Decimal("0.00"))

    @property
    def total_credits(self) -> Decimal:
        return sum((line.credit_amount for line in self.lines), Decimal("0.00"))

    @property
    def computed_total(self) -> Decimal:
        return max(self.total_debits, self.total_credits)

    @property
    def imbalance(self) -> Decimal:
        return self.total_debits - self.total_credits

    @property
    def is_balanced(self) -> bool:
        return abs(self.imbalance) <= BALANCE_TOLERANCE

    @property
    def is_editable(self) -> bool:
        return self.status == JournalEntryStatus.DRAFT

    def validate_balance(self) -> None:
        if not self.lines:
            raise ValidationError(
                f"Journal entry {self.reference_number} has no lines",
                context={"journal_entry_id": str(self.id)},
            )
        if not self.is_balanced:
            first_row = next(
                (line.source_row for line in self.lines if line.source_row), None
            )
            raise UnbalancedJournalEntryError(
                str(self.total_debits),
                str(self.total_credits),
                reference=self.reference_number,
                row=first_row,
            )

    def can_transition_to(self, status: JournalEntryStatus) -> bool:
        return status in _TRANSITIONS[self.status]

    def _transition(self, status: JournalEntryStatus) -> None:
        if not self.can_transition_to(status):
            raise InvalidStatusTransitionError(
                self.id, self.status.value, status.value
            )
        self.status = status
        self.updated_at = _utc_now()

    def post(self) -> None:
        if self.status != JournalEntryStatus.DRAFT:
            raise InvalidStatusTransitionError(
                self.id, self.status.value, JournalEntryStatus.POSTED.value
            )
        self.validate_balance()
        self._transition(JournalEntryStatus.POSTED)

    def void(self) -> None:
        self._transition(JournalEntryStatus.VOID)

    def ensure_editable(self) -> None:
        if not self.is_editable:
            raise JournalEntryLockedError(self.id, self.status.value)

    def add_line(self, line: JournalEntryLine) -> None:
        self.ensure_editable()
        line.journal_entry_id = self.id
        self.lines.append(line)
        self.total_amount = self.computed_total

    def replace_lines(self, lines: list[JournalEntryLine]) -> None:
        self.ensure_editable()
        for line in lines:
            line.journal_entry_id = self.id
        self.lines = list(lines)
        self.total_amount = self.computed_total
        self.updated_at = _utc_now()


@dataclass(frozen=True)
class LedgerLine:
    """A posted line flattened with the header fields reports need."""

    entry_id: UUID
    entity_id: UUID
    entry_date: date
    reference_number: str
    entry_description: str
    account_id: UUID
    fund_id: UUID | None
    debit_amount: Decimal
    credit_amount: Decimal
    description: str = ""

    @property
    def net_amount(self) -> Decimal:
        return self.debit_amount - self.credit_amount
