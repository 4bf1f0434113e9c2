"""Tests for LedgerService implementation."""

from dataclasses import replace
from datetime import date
from decimal import Decimal
from uuid import uuid4

import pytest

from fund_ledger.domain.entities import Account, Entity, Fund
from fund_ledger.domain.journal import JournalEntry, JournalEntryLine
from fund_ledger.domain.value_objects import AccountType, JournalEntryStatus
from fund_ledger.exceptions import (
    AccountInUseError,
    AccountNotFoundError,
    DuplicateCodeError,
    DuplicateReferenceError,
    EntityHasDependentsError,
    EntityNotFoundError,
    FundInUseError,
    HierarchyCycleError,
    InvalidStatusTransitionError,
    JournalEntryLockedError,
    JournalEntryNotFoundError,
    UnbalancedJournalEntryError,
    ValidationError,
)
from fund_ledger.services.ledger import LedgerServiceImpl


def _fresh(ledger: LedgerServiceImpl, account: Account) -> Account:
    return ledger.get_account(account.id)


class TestEntities:
    def test_create_and_get(self, ledger_service):
        entity = ledger_service.create_entity(Entity(name="  Main Org ", code="MAIN"))

        fetched = ledger_service.get_entity(entity.id)
        assert fetched.name == "Main Org"
        assert fetched.code == "MAIN"

    def test_duplicate_code_rejected(self, ledger_service, org):
        with pytest.raises(DuplicateCodeError):
            ledger_service.create_entity(Entity(name="Another", code="TPF"))

    def test_blank_name_rejected(self, ledger_service):
        with pytest.raises(ValidationError, match="name is required"):
            ledger_service.create_entity(Entity(name="   ", code="X"))

    def test_unknown_parent_rejected(self, ledger_service):
        with pytest.raises(EntityNotFoundError):
            ledger_service.create_entity(
                Entity(name="Orphan", code="ORPH", parent_entity_id=uuid4())
            )

    def test_self_parent_is_a_cycle(self, ledger_service, org):
        parent = org["parent"]
        with pytest.raises(HierarchyCycleError):
            ledger_service.update_entity(replace(parent, parent_entity_id=parent.id))

    def test_grandchild_as_parent_is_a_cycle(self, ledger_service, org):
        parent = org["parent"]
        with pytest.raises(HierarchyCycleError):
            ledger_service.update_entity(
                replace(parent, parent_entity_id=org["grandchild"].id)
            )

    def test_update_changes_name(self, ledger_service, org):
        updated = ledger_service.update_entity(
            replace(org["child"], name="Educational Services")
        )
        assert ledger_service.get_entity(updated.id).name == "Educational Services"

    def test_update_to_taken_code_rejected(self, ledger_service, org):
        with pytest.raises(DuplicateCodeError):
            ledger_service.update_entity(replace(org["child"], code="TPF"))

    def test_delete_with_children_rejected(self, ledger_service, org):
        with pytest.raises(EntityHasDependentsError) as exc_info:
            ledger_service.delete_entity(org["parent"].id)

        assert exc_info.value.context["dependents"] == {"child entities": 1}
        assert ledger_service.get_entity(org["parent"].id) is not None

    def test_delete_with_accounts_rejected(self, ledger_service, org, accounts):
        ledger_service.delete_entity(org["grandchild"].id)
        ledger_service.delete_entity(org["child"].id)

        with pytest.raises(EntityHasDependentsError) as exc_info:
            ledger_service.delete_entity(org["parent"].id)
        assert exc_info.value.context["dependents"]["accounts"] == 6

    def test_delete_leaf(self, ledger_service, org):
        ledger_service.delete_entity(org["grandchild"].id)

        with pytest.raises(EntityNotFoundError):
            ledger_service.get_entity(org["grandchild"].id)


class TestAccounts:
    def test_codes_are_unique_per_entity(self, ledger_service, org, accounts):
        with pytest.raises(DuplicateCodeError):
            ledger_service.create_account(
                Account(
                    entity_id=org["parent"].id,
                    code="1000",
                    name="Second Cash",
                    account_type=AccountType.ASSET,
                )
            )

    def test_same_code_in_another_entity(self, ledger_service, accounts, child_accounts):
        assert accounts["cash"].code == child_accounts["cash"].code
        assert accounts["cash"].id != child_accounts["cash"].id

    def test_unknown_entity_rejected(self, ledger_service):
        with pytest.raises(EntityNotFoundError):
            ledger_service.create_account(
                Account(
                    entity_id=uuid4(), code="1000", name="Cash", account_type=AccountType.ASSET
                )
            )

    def test_list_by_entity(self, ledger_service, org, accounts, child_accounts):
        codes = [a.code for a in ledger_service.list_accounts(org["parent"].id)]
        assert codes == ["1000", "1900", "2000", "3000", "4000", "5000"]
        assert len(ledger_service.list_accounts()) == 12

    def test_update_keeps_stored_balance(
        self, ledger_service, org, accounts, entry_factory
    ):
        ledger_service.create_journal_entry(
            entry_factory(
                org["parent"], "JE-1", accounts["cash"], accounts["revenue"], "100", posted=True
            )
        )
        stale = replace(accounts["cash"], name="Checking", balance=Decimal("999"))

        updated = ledger_service.update_account(stale)

        assert updated.balance == Decimal("100.00")
        assert _fresh(ledger_service, accounts["cash"]).name == "Checking"

    def test_type_change_blocked_once_used(
        self, ledger_service, org, accounts, entry_factory
    ):
        ledger_service.create_journal_entry(
            entry_factory(org["parent"], "JE-1", accounts["cash"], accounts["revenue"], "10")
        )
        with pytest.raises(ValidationError, match="Account type cannot change"):
            ledger_service.update_account(
                replace(accounts["cash"], account_type=AccountType.EXPENSE)
            )

    def test_cannot_move_to_another_entity(self, ledger_service, org, accounts):
        with pytest.raises(ValidationError, match="another entity"):
            ledger_service.update_account(
                replace(accounts["cash"], entity_id=org["child"].id)
            )

    def test_delete_in_use_rejected(self, ledger_service, org, accounts, entry_factory):
        ledger_service.create_journal_entry(
            entry_factory(org["parent"], "JE-1", accounts["cash"], accounts["revenue"], "10")
        )
        with pytest.raises(AccountInUseError):
            ledger_service.delete_account(accounts["cash"].id)

    def test_delete_unused(self, ledger_service, accounts):
        ledger_service.delete_account(accounts["payable"].id)
        with pytest.raises(AccountNotFoundError):
            ledger_service.get_account(accounts["payable"].id)


class TestFunds:
    def test_duplicate_code_rejected(self, ledger_service, org, funds):
        with pytest.raises(DuplicateCodeError):
            ledger_service.create_fund(
                Fund(entity_id=org["parent"].id, code="GEN", name="Other General")
            )

    def test_delete_in_use_rejected(
        self, ledger_service, org, accounts, funds, entry_factory
    ):
        ledger_service.create_journal_entry(
            entry_factory(
                org["parent"],
                "JE-1",
                accounts["cash"],
                accounts["revenue"],
                "10",
                fund=funds["general"],
            )
        )
        with pytest.raises(FundInUseError):
            ledger_service.delete_fund(funds["general"].id)

    def test_fund_of_another_entity_rejected_on_entry(
        self, ledger_service, org, child_accounts, funds, entry_factory
    ):
        entry = entry_factory(
            org["child"],
            "JE-1",
            child_accounts["cash"],
            child_accounts["revenue"],
            "10",
            fund=funds["general"],
        )
        with pytest.raises(ValidationError, match="different entity"):
            ledger_service.create_journal_entry(entry)


class TestJournalEntries:
    def test_create_draft_leaves_balances(
        self, ledger_service, org, accounts, entry_factory
    ):
        entry = ledger_service.create_journal_entry(
            entry_factory(org["parent"], "JE-1", accounts["cash"], accounts["revenue"], "250")
        )

        assert entry.status == JournalEntryStatus.DRAFT
        assert ledger_service.get_journal_entry(entry.id).total_amount == Decimal("250.00")
        assert _fresh(ledger_service, accounts["cash"]).balance == Decimal("0.00")

    def test_post_moves_running_balances(
        self, ledger_service, org, accounts, entry_factory
    ):
        entry = ledger_service.create_journal_entry(
            entry_factory(org["parent"], "JE-1", accounts["cash"], accounts["revenue"], "250")
        )

        posted = ledger_service.post_journal_entry(entry.id)

        assert posted.status == JournalEntryStatus.POSTED
        assert _fresh(ledger_service, accounts["cash"]).balance == Decimal("250.00")
        assert _fresh(ledger_service, accounts["revenue"]).balance == Decimal("250.00")

    def test_fund_balance_moves_by_debit_minus_credit(
        self, ledger_service, org, accounts, funds
    ):
        entry = JournalEntry(
            entity_id=org["parent"].id,
            entry_date=date(2024, 2, 1),
            reference_number="JE-2",
            status=JournalEntryStatus.POSTED,
            lines=[
                JournalEntryLine(
                    account_id=accounts["cash"].id,
                    fund_id=funds["scholarship"].id,
                    debit_amount=Decimal("500"),
                ),
                JournalEntryLine(
                    account_id=accounts["revenue"].id,
                    fund_id=funds["general"].id,
                    credit_amount=Decimal("500"),
                ),
            ],
        )
        ledger_service.create_journal_entry(entry)

        assert ledger_service.get_fund(funds["scholarship"].id).balance == Decimal("500.00")
        assert ledger_service.get_fund(funds["general"].id).balance == Decimal("-500.00")

    def test_create_posted_applies_balances(
        self, ledger_service, org, accounts, entry_factory
    ):
        entry = ledger_service.create_journal_entry(
            entry_factory(
                org["parent"], "JE-1", accounts["expense"], accounts["cash"], "75", posted=True
            )
        )

        assert ledger_service.get_journal_entry(entry.id).status == JournalEntryStatus.POSTED
        assert _fresh(ledger_service, accounts["expense"]).balance == Decimal("75.00")
        assert _fresh(ledger_service, accounts["cash"]).balance == Decimal("-75.00")

    def test_create_void_rejected(self, ledger_service, org, accounts, entry_factory):
        entry = entry_factory(org["parent"], "JE-1", accounts["cash"], accounts["revenue"], "1")
        entry.status = JournalEntryStatus.VOID
        with pytest.raises(InvalidStatusTransitionError):
            ledger_service.create_journal_entry(entry)

    def test_unbalanced_post_rejected(self, ledger_service, org, accounts):
        entry = ledger_service.create_journal_entry(
            JournalEntry(
                entity_id=org["parent"].id,
                entry_date=date(2024, 1, 15),
                reference_number="JE-BAD",
                lines=[
                    JournalEntryLine(account_id=accounts["cash"].id, debit_amount=Decimal("300")),
                    JournalEntryLine(
                        account_id=accounts["revenue"].id, credit_amount=Decimal("250")
                    ),
                ],
            )
        )

        with pytest.raises(UnbalancedJournalEntryError):
            ledger_service.post_journal_entry(entry.id)

        assert ledger_service.get_journal_entry(entry.id).status == JournalEntryStatus.DRAFT
        assert _fresh(ledger_service, accounts["cash"]).balance == Decimal("0.00")

    def test_unbalanced_create_posted_writes_nothing(self, ledger_service, org, accounts):
        entry = JournalEntry(
            entity_id=org["parent"].id,
            entry_date=date(2024, 1, 15),
            reference_number="JE-BAD",
            status=JournalEntryStatus.POSTED,
            lines=[
                JournalEntryLine(account_id=accounts["cash"].id, debit_amount=Decimal("300")),
                JournalEntryLine(account_id=accounts["revenue"].id, credit_amount=Decimal("250")),
            ],
        )
        with pytest.raises(UnbalancedJournalEntryError):
            ledger_service.create_journal_entry(entry)

        assert ledger_service.list_journal_entries() == []

    def test_duplicate_reference_rejected(
        self, ledger_service, org, accounts, entry_factory
    ):
        ledger_service.create_journal_entry(
            entry_factory(org["parent"], "JE-1", accounts["cash"], accounts["revenue"], "10")
        )
        with pytest.raises(DuplicateReferenceError):
            ledger_service.create_journal_entry(
                entry_factory(org["parent"], "JE-1", accounts["cash"], accounts["revenue"], "20")
            )

    def test_account_of_another_entity_rejected(
        self, ledger_service, org, accounts, child_accounts, entry_factory
    ):
        entry = entry_factory(
            org["parent"], "JE-1", accounts["cash"], child_accounts["revenue"], "10"
        )
        with pytest.raises(ValidationError, match="different entity"):
            ledger_service.create_journal_entry(entry)

    def test_unknown_account_rejected(self, ledger_service, org, accounts):
        entry = JournalEntry(
            entity_id=org["parent"].id,
            entry_date=date(2024, 1, 15),
            reference_number="JE-1",
            lines=[
                JournalEntryLine(account_id=uuid4(), debit_amount=Decimal("10")),
                JournalEntryLine(account_id=accounts["revenue"].id, credit_amount=Decimal("10")),
            ],
        )
        with pytest.raises(AccountNotFoundError):
            ledger_service.create_journal_entry(entry)

    def test_update_draft(self, ledger_service, org, accounts, entry_factory):
        entry = ledger_service.create_journal_entry(
            entry_factory(org["parent"], "JE-1", accounts["cash"], accounts["revenue"], "10")
        )
        draft = replace(entry, description="Corrected")
        draft.replace_lines(
            [
                JournalEntryLine(account_id=accounts["cash"].id, debit_amount=Decimal("40")),
                JournalEntryLine(account_id=accounts["revenue"].id, credit_amount=Decimal("40")),
            ]
        )

        ledger_service.update_journal_entry(draft)

        stored = ledger_service.get_journal_entry(entry.id)
        assert stored.description == "Corrected"
        assert stored.total_amount == Decimal("40.00")
        assert len(stored.lines) == 2

    def test_posted_entry_cannot_be_updated_or_deleted(
        self, ledger_service, org, accounts, entry_factory
    ):
        entry = ledger_service.create_journal_entry(
            entry_factory(
                org["parent"], "JE-1", accounts["cash"], accounts["revenue"], "10", posted=True
            )
        )
        with pytest.raises(JournalEntryLockedError):
            ledger_service.update_journal_entry(replace(entry, description="changed"))
        with pytest.raises(JournalEntryLockedError):
            ledger_service.delete_journal_entry(entry.id)

    def test_delete_draft(self, ledger_service, org, accounts, entry_factory):
        entry = ledger_service.create_journal_entry(
            entry_factory(org["parent"], "JE-1", accounts["cash"], accounts["revenue"], "10")
        )
        ledger_service.delete_journal_entry(entry.id)

        with pytest.raises(JournalEntryNotFoundError):
            ledger_service.get_journal_entry(entry.id)

    def test_void_reverses_balances(self, ledger_service, org, accounts, entry_factory):
        entry = ledger_service.create_journal_entry(
            entry_factory(
                org["parent"], "JE-1", accounts["cash"], accounts["revenue"], "250", posted=True
            )
        )

        voided = ledger_service.void_journal_entry(entry.id)

        assert voided.status == JournalEntryStatus.VOID
        assert _fresh(ledger_service, accounts["cash"]).balance == Decimal("0.00")
        assert _fresh(ledger_service, accounts["revenue"]).balance == Decimal("0.00")

    def test_void_draft_rejected(self, ledger_service, org, accounts, entry_factory):
        entry = ledger_service.create_journal_entry(
            entry_factory(org["parent"], "JE-1", accounts["cash"], accounts["revenue"], "10")
        )
        with pytest.raises(InvalidStatusTransitionError):
            ledger_service.void_journal_entry(entry.id)

    def test_post_twice_rejected(self, ledger_service, org, accounts, entry_factory):
        entry = ledger_service.create_journal_entry(
            entry_factory(org["parent"], "JE-1", accounts["cash"], accounts["revenue"], "10")
        )
        ledger_service.post_journal_entry(entry.id)

        with pytest.raises(InvalidStatusTransitionError):
            ledger_service.post_journal_entry(entry.id)
        assert _fresh(ledger_service, accounts["cash"]).balance == Decimal("10.00")


class TestBalances:
    @pytest.fixture
    def posted(self, ledger_service, org, accounts, entry_factory):
        parent = org["parent"]
        ledger_service.create_journal_entry(
            entry_factory(
                parent,
                "JE-1",
                accounts["cash"],
                accounts["revenue"],
                "1000",
                entry_date=date(2024, 1, 10),
                posted=True,
            )
        )
        ledger_service.create_journal_entry(
            entry_factory(
                parent,
                "JE-2",
                accounts["expense"],
                accounts["cash"],
                "300",
                entry_date=date(2024, 2, 10),
                posted=True,
            )
        )
        ledger_service.create_journal_entry(
            entry_factory(
                parent,
                "JE-DRAFT",
                accounts["cash"],
                accounts["revenue"],
                "5000",
                entry_date=date(2024, 1, 20),
            )
        )

    def test_account_balance_ignores_drafts(self, ledger_service, accounts, posted):
        assert ledger_service.get_account_balance(accounts["cash"].id) == Decimal("700.00")

    def test_account_balance_as_of(self, ledger_service, accounts, posted):
        balance = ledger_service.get_account_balance(
            accounts["cash"].id, as_of_date=date(2024, 1, 31)
        )
        assert balance == Decimal("1000.00")

    def test_entity_balance(self, ledger_service, org, posted):
        balance = ledger_service.get_entity_balance(org["parent"].id)

        assert balance.by_type[AccountType.ASSET] == Decimal("700.00")
        assert balance.by_type[AccountType.REVENUE] == Decimal("1000.00")
        assert balance.by_type[AccountType.EXPENSE] == Decimal("300.00")
        assert balance.total_debits == balance.total_credits == Decimal("1300.00")
        assert balance.net_assets == Decimal("700.00")
        assert balance.change_in_net_assets == Decimal("700.00")

    def test_fund_balance(self, ledger_service, org, accounts, funds, entry_factory):
        ledger_service.create_journal_entry(
            entry_factory(
                org["parent"],
                "JE-F",
                accounts["cash"],
                accounts["revenue"],
                "120",
                fund=funds["general"],
                posted=True,
            )
        )
        balance = ledger_service.get_fund_balance(funds["general"].id)

        assert balance.total_debits == Decimal("120.00")
        assert balance.total_credits == Decimal("120.00")
        assert balance.balance == Decimal("0.00")

    def test_consolidation_is_one_level_deep(self, ledger_service, org):
        for key in ("parent", "child", "grandchild"):
            entity = org[key]
            cash = ledger_service.create_account(
                Account(
                    entity_id=entity.id,
                    code="1001",
                    name=f"{key} cash",
                    account_type=AccountType.ASSET,
                )
            )
            revenue = ledger_service.create_account(
                Account(
                    entity_id=entity.id,
                    code="4001",
                    name=f"{key} revenue",
                    account_type=AccountType.REVENUE,
                )
            )
            amount = {"parent": "100", "child": "20", "grandchild": "3"}[key]
            ledger_service.create_journal_entry(
                JournalEntry(
                    entity_id=entity.id,
                    entry_date=date(2024, 3, 1),
                    reference_number=f"JE-{key}",
                    status=JournalEntryStatus.POSTED,
                    lines=[
                        JournalEntryLine(account_id=cash.id, debit_amount=Decimal(amount)),
                        JournalEntryLine(account_id=revenue.id, credit_amount=Decimal(amount)),
                    ],
                )
            )

        consolidated = ledger_service.get_consolidated_balance(org["parent"].id)

        assert consolidated.by_type[AccountType.ASSET] == Decimal("120.00")
        assert consolidated.entity_ids == [org["parent"].id, org["child"].id]

    def test_unconsolidated_entity_reports_itself(self, ledger_service, org):
        balance = ledger_service.get_consolidated_balance(org["grandchild"].id)
        assert balance.entity_ids == [org["grandchild"].id]
