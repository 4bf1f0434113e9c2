"""Tests for domain entities, journal entries and value objects."""

from datetime import date
from decimal import Decimal
from uuid import uuid4

import pytest

from fund_ledger.domain.entities import Account, Entity, Fund
from fund_ledger.domain.imports import ImportJob
from fund_ledger.domain.journal import JournalEntry, JournalEntryLine
from fund_ledger.domain.value_objects import (
    AccountType,
    FundType,
    ImportJobStatus,
    JournalEntryStatus,
    NormalBalance,
    RecordStatus,
    to_amount,
)
from fund_ledger.exceptions import (
    InvalidImportRowError,
    InvalidStatusTransitionError,
    JournalEntryLockedError,
    UnbalancedJournalEntryError,
    ValidationError,
)


def _entry(debit: str, credit: str) -> JournalEntry:
    return JournalEntry(
        entity_id=uuid4(),
        entry_date=date(2024, 1, 15),
        reference_number="JE-001",
        lines=[
            JournalEntryLine(account_id=uuid4(), debit_amount=Decimal(debit)),
            JournalEntryLine(account_id=uuid4(), credit_amount=Decimal(credit)),
        ],
    )


class TestToAmount:
    def test_quantizes_to_cents(self):
        assert to_amount("12.345") == Decimal("12.35")
        assert to_amount(Decimal("7")) == Decimal("7.00")

    def test_blank_is_zero(self):
        assert to_amount(None) == Decimal("0.00")
        assert to_amount("") == Decimal("0.00")

    def test_float_goes_through_str(self):
        assert to_amount(0.1) == Decimal("0.10")

    def test_rejects_text(self):
        with pytest.raises(ValueError, match="Not a valid amount"):
            to_amount("abc")


class TestAccountType:
    @pytest.mark.parametrize(
        ("account_type", "expected"),
        [
            (AccountType.ASSET, NormalBalance.DEBIT),
            (AccountType.EXPENSE, NormalBalance.DEBIT),
            (AccountType.LIABILITY, NormalBalance.CREDIT),
            (AccountType.EQUITY, NormalBalance.CREDIT),
            (AccountType.REVENUE, NormalBalance.CREDIT),
        ],
    )
    def test_normal_balance(self, account_type, expected):
        assert account_type.normal_balance == expected

    def test_signed_follows_normal_balance(self):
        assert AccountType.ASSET.signed(Decimal("100"), Decimal("30")) == Decimal("70")
        assert AccountType.REVENUE.signed(Decimal("100"), Decimal("30")) == Decimal("-70")

    @pytest.mark.parametrize(
        ("code", "expected"),
        [
            ("1000", AccountType.ASSET),
            ("2100", AccountType.LIABILITY),
            ("3000", AccountType.EQUITY),
            ("4500", AccountType.REVENUE),
            ("5000", AccountType.EXPENSE),
            ("7200", AccountType.EXPENSE),
            ("0100", None),
            ("CASH", None),
            ("", None),
        ],
    )
    def test_from_code(self, code, expected):
        assert AccountType.from_code(code) == expected


class TestEntity:
    def test_defaults(self):
        entity = Entity(name="The Principle Foundation", code="TPF")

        assert entity.status == RecordStatus.ACTIVE
        assert entity.is_active
        assert entity.base_currency == "USD"
        assert entity.fiscal_year_start == "01-01"
        assert entity.parent_entity_id is None

    def test_currency_is_uppercased(self):
        assert Entity(name="X", code="X", base_currency="cad").base_currency == "CAD"

    def test_rejects_invalid_fiscal_year_start(self):
        with pytest.raises(ValueError, match="MM-DD"):
            Entity(name="X", code="X", fiscal_year_start="13-01")

    def test_fiscal_year_bounds_mid_year_start(self):
        entity = Entity(name="X", code="X", fiscal_year_start="07-01")

        assert entity.fiscal_year_bounds(date(2024, 3, 15)) == (
            date(2023, 7, 1),
            date(2024, 6, 30),
        )
        assert entity.fiscal_year_bounds(date(2024, 7, 1)) == (
            date(2024, 7, 1),
            date(2025, 6, 30),
        )

    def test_fiscal_year_bounds_calendar_year(self):
        entity = Entity(name="X", code="X")

        assert entity.fiscal_year_bounds(date(2024, 12, 31)) == (
            date(2024, 1, 1),
            date(2024, 12, 31),
        )

    def test_deactivate_and_activate(self):
        entity = Entity(name="X", code="X")
        entity.deactivate()
        assert not entity.is_active
        entity.activate()
        assert entity.is_active


class TestAccountAndFund:
    def test_account_starts_at_zero(self):
        account = Account(
            entity_id=uuid4(), code="1000", name="Cash", account_type=AccountType.ASSET
        )
        assert account.balance == Decimal("0.00")
        assert account.is_active

    def test_fund_restriction(self):
        assert not Fund(entity_id=uuid4(), code="GEN", name="General").is_restricted
        restricted = Fund(
            entity_id=uuid4(),
            code="END",
            name="Endowment",
            fund_type=FundType.PERMANENTLY_RESTRICTED,
        )
        assert restricted.is_restricted


class TestJournalEntryLine:
    def test_amounts_are_quantized(self):
        line = JournalEntryLine(account_id=uuid4(), debit_amount=Decimal("10.005"))
        assert line.debit_amount == Decimal("10.01")
        assert line.is_debit
        assert not line.is_credit
        assert line.net_amount == Decimal("10.01")

    def test_rejects_negative_amount(self):
        with pytest.raises(ValidationError, match="non-negative"):
            JournalEntryLine(account_id=uuid4(), credit_amount=Decimal("-5"))

    def test_unparseable_amount_is_anchored_to_row(self):
        with pytest.raises(InvalidImportRowError) as exc_info:
            JournalEntryLine(account_id=uuid4(), debit_amount="abc", source_row=7)

        assert exc_info.value.row == 7
        assert exc_info.value.message.startswith("Row 7:")


class TestJournalEntry:
    def test_totals(self):
        entry = _entry("250.00", "250.00")

        assert entry.total_debits == Decimal("250.00")
        assert entry.total_credits == Decimal("250.00")
        assert entry.total_amount == Decimal("250.00")
        assert entry.is_balanced
        assert all(line.journal_entry_id == entry.id for line in entry.lines)

    def test_one_cent_difference_is_tolerated(self):
        assert _entry("100.00", "99.99").is_balanced

    def test_two_cent_difference_is_unbalanced(self):
        entry = _entry("100.00", "99.98")

        assert not entry.is_balanced
        with pytest.raises(UnbalancedJournalEntryError) as exc_info:
            entry.validate_balance()
        assert exc_info.value.context["debit_total"] == "100.00"
        assert exc_info.value.context["credit_total"] == "99.98"

    def test_validate_balance_requires_lines(self):
        entry = JournalEntry(
            entity_id=uuid4(), entry_date=date(2024, 1, 1), reference_number="JE-0"
        )
        with pytest.raises(ValidationError, match="no lines"):
            entry.validate_balance()

    def test_post_moves_draft_to_posted(self):
        entry = _entry("10.00", "10.00")
        entry.post()
        assert entry.status == JournalEntryStatus.POSTED
        assert not entry.is_editable

    def test_post_rejects_unbalanced_entry(self):
        entry = _entry("10.00", "5.00")
        with pytest.raises(UnbalancedJournalEntryError):
            entry.post()
        assert entry.status == JournalEntryStatus.DRAFT

    def test_void_requires_posted(self):
        entry = _entry("10.00", "10.00")
        with pytest.raises(InvalidStatusTransitionError):
            entry.void()

    def test_void_is_terminal(self):
        entry = _entry("10.00", "10.00")
        entry.post()
        entry.void()

        assert entry.status == JournalEntryStatus.VOID
        with pytest.raises(InvalidStatusTransitionError):
            entry.post()
        with pytest.raises(InvalidStatusTransitionError):
            entry.void()

    def test_posted_entry_lines_are_locked(self):
        entry = _entry("10.00", "10.00")
        entry.post()
        with pytest.raises(JournalEntryLockedError):
            entry.add_line(JournalEntryLine(account_id=uuid4(), debit_amount=Decimal("1")))

    def test_replace_lines_recomputes_total(self):
        entry = _entry("10.00", "10.00")
        entry.replace_lines(
            [
                JournalEntryLine(account_id=uuid4(), debit_amount=Decimal("40")),
                JournalEntryLine(account_id=uuid4(), credit_amount=Decimal("40")),
            ]
        )
        assert entry.total_amount == Decimal("40.00")


class TestImportJob:
    def test_progress_is_a_percentage(self):
        job = ImportJob(total_records=8)
        job.record_progress(2)

        assert job.progress == 25
        assert job.processed_records == 2

    def test_complete(self):
        job = ImportJob(total_records=2)
        job.complete(2)

        assert job.status == ImportJobStatus.COMPLETED
        assert job.progress == 100
        assert job.completed_at is not None
        assert job.can_roll_back

    def test_fail_keeps_message(self):
        job = ImportJob()
        job.fail("Row 3: Account code '9999' not found")

        assert job.status == ImportJobStatus.FAILED
        assert job.errors == ["Row 3: Account code '9999' not found"]
        assert job.entries_created == 0

    def test_processing_job_cannot_roll_back(self):
        assert not ImportJob().can_roll_back
