"""LedgerService implementation for multi-entity fund accounting."""

from datetime import UTC, date, datetime
from decimal import Decimal
from uuid import UUID

from fund_ledger.domain.entities import Account, Entity, Fund
from fund_ledger.domain.journal import JournalEntry, JournalEntryLine
from fund_ledger.domain.value_objects import JournalEntryStatus
from fund_ledger.exceptions import (
    AccountInUseError,
    AccountNotFoundError,
    DuplicateCodeError,
    DuplicateReferenceError,
    EntityHasDependentsError,
    EntityNotFoundError,
    FundInUseError,
    FundNotFoundError,
    HierarchyCycleError,
    InvalidStatusTransitionError,
    JournalEntryNotFoundError,
    ValidationError,
)
from fund_ledger.logging_config import get_logger
from fund_ledger.repositories.interfaces import (
    AccountRepository,
    Database,
    EntityRepository,
    FundRepository,
    JournalEntryRepository,
)
from fund_ledger.services.interfaces import EntityBalance, FundBalance, LedgerService

logger = get_logger(__name__)


def _utc_now() -> datetime:
    return datetime.now(UTC)


def _require(value: str, field_name: str) -> str:
    stripped = (value or "").strip()
    if not stripped:
        raise ValidationError(
            f"{field_name} is required", context={"field": field_name}
        )
    return stripped


class LedgerServiceImpl(LedgerService):
    """Implementation of LedgerService over the repository interfaces.

    Every operation that writes more than one row runs inside a single
    ``database.transaction()`` so an entry, its lines and the running
    balance adjustments commit or roll back together.
    """

    def __init__(
        self,
        database: Database,
        entity_repo: EntityRepository,
        account_repo: AccountRepository,
        fund_repo: FundRepository,
        journal_repo: JournalEntryRepository,
    ) -> None:
        self._db = database
        self._entity_repo = entity_repo
        self._account_repo = account_repo
        self._fund_repo = fund_repo
        self._journal_repo = journal_repo

    # ------------------------------------------------------------------
    # Entities
    # ------------------------------------------------------------------

    def create_entity(self, entity: Entity) -> Entity:
        entity.name = _require(entity.name, "name")
        entity.code = _require(entity.code, "code")
        if self._entity_repo.get_by_code(entity.code) is not None:
            raise DuplicateCodeError("entity", entity.code)
        self._check_hierarchy(entity)
        self._entity_repo.add(entity)
        logger.info("entity_created", entity_id=str(entity.id), code=entity.code)
        return entity

    def get_entity(self, entity_id: UUID) -> Entity:
        entity = self._entity_repo.get(entity_id)
        if entity is None:
            raise EntityNotFoundError(entity_id)
        return entity

    def list_entities(self) -> list[Entity]:
        return list(self._entity_repo.list_all())

    def update_entity(self, entity: Entity) -> Entity:
        self.get_entity(entity.id)
        entity.name = _require(entity.name, "name")
        entity.code = _require(entity.code, "code")
        other = self._entity_repo.get_by_code(entity.code)
        if other is not None and other.id != entity.id:
            raise DuplicateCodeError("entity", entity.code)
        self._check_hierarchy(entity)
        entity.updated_at = _utc_now()
        self._entity_repo.update(entity)
        logger.info("entity_updated", entity_id=str(entity.id))
        return entity

    def delete_entity(self, entity_id: UUID) -> None:
        """Delete an entity that owns nothing.

        Raises:
            EntityNotFoundError: If the entity does not exist
            EntityHasDependentsError: If child entities, accounts, funds or
                journal entries still reference it
        """
        self.get_entity(entity_id)
        counts = {
            "child entities": len(list(self._entity_repo.list_children(entity_id))),
            "accounts": len(list(self._account_repo.list_by_entity(entity_id))),
            "funds": len(list(self._fund_repo.list_by_entity(entity_id))),
            "journal entries": self._journal_repo.count_by_entity(entity_id),
        }
        dependents = {kind: count for kind, count in counts.items() if count}
        if dependents:
            raise EntityHasDependentsError(entity_id, dependents)
        self._entity_repo.delete(entity_id)
        logger.info("entity_deleted", entity_id=str(entity_id))

    def _check_hierarchy(self, entity: Entity) -> None:
        parent_id = entity.parent_entity_id
        seen: set[UUID] = set()
        while parent_id is not None and parent_id not in seen:
            if parent_id == entity.id:
                raise HierarchyCycleError(entity.id, entity.parent_entity_id)
            seen.add(parent_id)
            parent = self._entity_repo.get(parent_id)
            if parent is None:
                raise EntityNotFoundError(parent_id)
            parent_id = parent.parent_entity_id

    # ------------------------------------------------------------------
    # Accounts
    # ------------------------------------------------------------------

    def create_account(self, account: Account) -> Account:
        self.get_entity(account.entity_id)
        account.code = _require(account.code, "code")
        account.name = _require(account.name, "name")
        if self._account_repo.get_by_code(account.entity_id, account.code) is not None:
            raise DuplicateCodeError("account", account.code, account.entity_id)
        account.balance = Decimal("0.00")
        self._account_repo.add(account)
        logger.info(
            "account_created",
            account_id=str(account.id),
            entity_id=str(account.entity_id),
            code=account.code,
        )
        return account

    def get_account(self, account_id: UUID) -> Account:
        account = self._account_repo.get(account_id)
        if account is None:
            raise AccountNotFoundError(account_id)
        return account

    def list_accounts(self, entity_id: UUID | None = None) -> list[Account]:
        if entity_id is None:
            return list(self._account_repo.list_all())
        return list(self._account_repo.list_by_entity(entity_id))

    def update_account(self, account: Account) -> Account:
        stored = self.get_account(account.id)
        account.code = _require(account.code, "code")
        account.name = _require(account.name, "name")
        if account.entity_id != stored.entity_id:
            raise ValidationError(
                "An account cannot be moved to another entity",
                context={"account_id": str(account.id)},
            )
        other = self._account_repo.get_by_code(account.entity_id, account.code)
        if other is not None and other.id != account.id:
            raise DuplicateCodeError("account", account.code, account.entity_id)
        if (
            account.account_type != stored.account_type
            and self._journal_repo.count_lines_for_account(account.id)
        ):
            raise ValidationError(
                "Account type cannot change once journal entry lines reference the account",
                context={"account_id": str(account.id)},
            )
        account.balance = stored.balance
        account.updated_at = _utc_now()
        self._account_repo.update(account)
        logger.info("account_updated", account_id=str(account.id))
        return account

    def delete_account(self, account_id: UUID) -> None:
        self.get_account(account_id)
        if self._journal_repo.count_lines_for_account(account_id):
            raise AccountInUseError(account_id)
        self._account_repo.delete(account_id)
        logger.info("account_deleted", account_id=str(account_id))

    # ------------------------------------------------------------------
    # Funds
    # ------------------------------------------------------------------

    def create_fund(self, fund: Fund) -> Fund:
        self.get_entity(fund.entity_id)
        fund.code = _require(fund.code, "code")
        fund.name = _require(fund.name, "name")
        if self._fund_repo.get_by_code(fund.entity_id, fund.code) is not None:
            raise DuplicateCodeError("fund", fund.code, fund.entity_id)
        fund.balance = Decimal("0.00")
        self._fund_repo.add(fund)
        logger.info(
            "fund_created",
            fund_id=str(fund.id),
            entity_id=str(fund.entity_id),
            code=fund.code,
        )
        return fund

    def get_fund(self, fund_id: UUID) -> Fund:
        fund = self._fund_repo.get(fund_id)
        if fund is None:
            raise FundNotFoundError(fund_id)
        return fund

    def list_funds(self, entity_id: UUID | None = None) -> list[Fund]:
        if entity_id is None:
            return list(self._fund_repo.list_all())
        return list(self._fund_repo.list_by_entity(entity_id))

    def update_fund(self, fund: Fund) -> Fund:
        stored = self.get_fund(fund.id)
        fund.code = _require(fund.code, "code")
        fund.name = _require(fund.name, "name")
        if fund.entity_id != stored.entity_id:
            raise ValidationError(
                "A fund cannot be moved to another entity",
                context={"fund_id": str(fund.id)},
            )
        other = self._fund_repo.get_by_code(fund.entity_id, fund.code)
        if other is not None and other.id != fund.id:
            raise DuplicateCodeError("fund", fund.code, fund.entity_id)
        fund.balance = stored.balance
        fund.updated_at = _utc_now()
        self._fund_repo.update(fund)
        logger.info("fund_updated", fund_id=str(fund.id))
        return fund

    def delete_fund(self, fund_id: UUID) -> None:
        self.get_fund(fund_id)
        if self._journal_repo.count_lines_for_fund(fund_id):
            raise FundInUseError(fund_id)
        self._fund_repo.delete(fund_id)
        logger.info("fund_deleted", fund_id=str(fund_id))

    # ------------------------------------------------------------------
    # Journal entries
    # ------------------------------------------------------------------

    def create_journal_entry(self, entry: JournalEntry) -> JournalEntry:
        """Save a new entry as a Draft, or post it in the same unit of work.

        Pass an entry whose status is Posted to have it validated and posted
        on creation; Void is never accepted for a new entry.

        Raises:
            ValidationError: If references are missing or inconsistent
            UnbalancedJournalEntryError: If posting and debits != credits
        """
        post = entry.status == JournalEntryStatus.POSTED
        if entry.status == JournalEntryStatus.VOID:
            raise InvalidStatusTransitionError(
                entry.id, "new", JournalEntryStatus.VOID.value
            )
        entry.status = JournalEntryStatus.DRAFT
        entry.reference_number = _require(entry.reference_number, "reference_number")
        self._validate_entry(entry)
        entry.total_amount = entry.computed_total

        with self._db.transaction():
            if post:
                entry.post()
            self._journal_repo.add(entry)
            if post:
                self.apply_running_balances(entry)

        logger.info(
            "journal_entry_created",
            entry_id=str(entry.id),
            reference=entry.reference_number,
            status=entry.status.value,
            total=str(entry.total_amount),
        )
        return entry

    def get_journal_entry(self, entry_id: UUID) -> JournalEntry:
        entry = self._journal_repo.get(entry_id)
        if entry is None:
            raise JournalEntryNotFoundError(entry_id)
        return entry

    def list_journal_entries(self, entity_id: UUID | None = None) -> list[JournalEntry]:
        if entity_id is None:
            return list(self._journal_repo.list_all())
        return list(self._journal_repo.list_by_entity(entity_id))

    def get_journal_entry_lines(self, entry_id: UUID) -> list[JournalEntryLine]:
        return self.get_journal_entry(entry_id).lines

    def update_journal_entry(self, entry: JournalEntry) -> JournalEntry:
        """Rewrite a Draft entry's header and lines.

        The import stamp and the inter-entity link are kept from the stored
        entry; they cannot be changed through an update.

        Raises:
            JournalEntryLockedError: If the stored entry is no longer a Draft
        """
        stored = self.get_journal_entry(entry.id)
        stored.ensure_editable()
        if entry.status != JournalEntryStatus.DRAFT:
            raise InvalidStatusTransitionError(
                entry.id, JournalEntryStatus.DRAFT.value, entry.status.value
            )
        entry.reference_number = _require(entry.reference_number, "reference_number")
        entry.import_id = stored.import_id
        entry.created_at = stored.created_at
        entry.is_inter_entity = stored.is_inter_entity
        entry.target_entity_id = stored.target_entity_id
        entry.matching_transaction_id = stored.matching_transaction_id
        self._validate_entry(entry)
        entry.total_amount = entry.computed_total
        entry.updated_at = _utc_now()
        self._journal_repo.update(entry)
        logger.info("journal_entry_updated", entry_id=str(entry.id))
        return entry

    def delete_journal_entry(self, entry_id: UUID) -> None:
        """Delete a Draft entry, together with its transfer partner if any.

        Raises:
            JournalEntryLockedError: If either side is no longer a Draft
        """
        entry = self.get_journal_entry(entry_id)
        entry.ensure_editable()
        partner = self._partner_of(entry)
        if partner is not None:
            partner.ensure_editable()
        with self._db.transaction():
            self._journal_repo.delete(entry_id)
            if partner is not None:
                self._journal_repo.delete(partner.id)
        logger.info(
            "journal_entry_deleted",
            entry_id=str(entry_id),
            partner_id=str(partner.id) if partner else None,
        )

    def post_journal_entry(self, entry_id: UUID) -> JournalEntry:
        """Move a Draft to Posted after the balance check.

        A Draft transfer partner is posted with it in the same unit of work.

        Raises:
            InvalidStatusTransitionError: If the entry is not a Draft
            UnbalancedJournalEntryError: If debits != credits beyond tolerance
        """
        entry = self.get_journal_entry(entry_id)
        self._validate_entry(entry)
        partner = self._partner_of(entry)
        if partner is not None and partner.status != JournalEntryStatus.DRAFT:
            partner = None
        if partner is not None:
            self._validate_entry(partner)
        with self._db.transaction():
            for posting in (entry, partner):
                if posting is None:
                    continue
                posting.post()
                self._journal_repo.update(posting)
                self.apply_running_balances(posting)
        logger.info(
            "journal_entry_posted",
            entry_id=str(entry.id),
            reference=entry.reference_number,
            total=str(entry.total_amount),
            partner_id=str(partner.id) if partner else None,
        )
        return entry

    def void_journal_entry(self, entry_id: UUID) -> JournalEntry:
        """Void a Posted entry and reverse its effect on running balances.

        The paired entry of an inter-entity transfer is voided with it.
        """
        entry = self.get_journal_entry(entry_id)
        with self._db.transaction():
            entry.void()
            self._journal_repo.update(entry)
            self.apply_running_balances(entry, reverse=True)
            partner = self._partner_of(entry)
            if partner is not None and partner.status == JournalEntryStatus.POSTED:
                partner.void()
                self._journal_repo.update(partner)
                self.apply_running_balances(partner, reverse=True)
        logger.info(
            "journal_entry_voided",
            entry_id=str(entry.id),
            matching_transaction_id=str(entry.matching_transaction_id)
            if entry.matching_transaction_id
            else None,
        )
        return entry

    def _partner_of(self, entry: JournalEntry) -> JournalEntry | None:
        if entry.matching_transaction_id is None:
            return None
        return self._journal_repo.get(entry.matching_transaction_id)

    def apply_running_balances(self, entry: JournalEntry, *, reverse: bool = False) -> None:
        """Move account and fund running balances by a posted entry's lines.

        Accounts move in their normal-balance direction; funds move by
        debit minus credit.
        """
        sign = Decimal(-1) if reverse else Decimal(1)
        accounts: dict[UUID, Account] = {}
        with self._db.transaction():
            for line in entry.lines:
                account = accounts.get(line.account_id)
                if account is None:
                    account = self.get_account(line.account_id)
                    accounts[line.account_id] = account
                delta = account.account_type.signed(line.debit_amount, line.credit_amount)
                if delta:
                    self._account_repo.adjust_balance(line.account_id, delta * sign)
                if line.fund_id is not None and line.net_amount:
                    self._fund_repo.adjust_balance(line.fund_id, line.net_amount * sign)

    def _validate_entry(self, entry: JournalEntry) -> None:
        entity = self._entity_repo.get(entry.entity_id)
        if entity is None:
            raise EntityNotFoundError(entry.entity_id)
        if entry.target_entity_id is not None and self._entity_repo.get(
            entry.target_entity_id
        ) is None:
            raise EntityNotFoundError(entry.target_entity_id)

        existing = self._journal_repo.get_by_reference(entry.reference_number)
        if existing is not None and existing.id != entry.id:
            first_row = next(
                (line.source_row for line in entry.lines if line.source_row), None
            )
            raise DuplicateReferenceError(entry.reference_number, row=first_row)

        accounts: dict[UUID, Account] = {}
        funds: dict[UUID, Fund] = {}
        for line in entry.lines:
            account = accounts.get(line.account_id) or self._account_repo.get(
                line.account_id
            )
            if account is None:
                raise AccountNotFoundError(line.account_id, row=line.source_row)
            if account.entity_id != entry.entity_id:
                raise ValidationError(
                    f"Account {account.code} belongs to a different entity",
                    context={
                        "account_id": str(account.id),
                        "entity_id": str(entry.entity_id),
                        "row": line.source_row,
                    },
                )
            accounts[account.id] = account

            if line.fund_id is None:
                continue
            fund = funds.get(line.fund_id) or self._fund_repo.get(line.fund_id)
            if fund is None:
                raise FundNotFoundError(line.fund_id, row=line.source_row)
            if fund.entity_id != entry.entity_id:
                raise ValidationError(
                    f"Fund {fund.code} belongs to a different entity",
                    context={
                        "fund_id": str(fund.id),
                        "entity_id": str(entry.entity_id),
                        "row": line.source_row,
                    },
                )
            funds[fund.id] = fund

    # ------------------------------------------------------------------
    # Balances
    # ------------------------------------------------------------------

    def get_account_balance(
        self, account_id: UUID, as_of_date: date | None = None
    ) -> Decimal:
        account = self.get_account(account_id)
        lines = self._journal_repo.list_posted_lines(
            account_id=account_id, end_date=as_of_date
        )
        return sum(
            (
                account.account_type.signed(line.debit_amount, line.credit_amount)
                for line in lines
            ),
            Decimal("0.00"),
        )

    def get_fund_balance(
        self, fund_id: UUID, as_of_date: date | None = None
    ) -> FundBalance:
        self.get_fund(fund_id)
        lines = self._journal_repo.list_posted_lines(fund_id=fund_id, end_date=as_of_date)
        return FundBalance(
            fund_id=fund_id,
            total_debits=sum((line.debit_amount for line in lines), Decimal("0.00")),
            total_credits=sum((line.credit_amount for line in lines), Decimal("0.00")),
        )

    def get_entity_balance(
        self, entity_id: UUID, as_of_date: date | None = None
    ) -> EntityBalance:
        self.get_entity(entity_id)
        account_types = {
            account.id: account.account_type
            for account in self._account_repo.list_by_entity(entity_id)
        }
        balance = EntityBalance(entity_id=entity_id)
        for line in self._journal_repo.list_posted_lines(
            entity_id=entity_id, end_date=as_of_date
        ):
            account_type = account_types[line.account_id]
            balance.by_type[account_type] += account_type.signed(
                line.debit_amount, line.credit_amount
            )
            balance.total_debits += line.debit_amount
            balance.total_credits += line.credit_amount
        return balance

    def get_consolidated_balance(
        self, entity_id: UUID, as_of_date: date | None = None
    ) -> EntityBalance:
        """Own balance plus the balances of direct children.

        Only entities flagged ``is_consolidated`` roll up their children,
        and only one level deep: grandchildren are not included.
        """
        entity = self.get_entity(entity_id)
        balance = self.get_entity_balance(entity_id, as_of_date)
        if not entity.is_consolidated:
            return balance
        for child in self._entity_repo.list_children(entity_id):
            balance = balance.combine(self.get_entity_balance(child.id, as_of_date))
        return balance
