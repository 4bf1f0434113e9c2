"""Inter-entity transfer service creating matched journal entry pairs."""

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from uuid import UUID, uuid4

from fund_ledger.domain.entities import Account, Fund
from fund_ledger.domain.journal import JournalEntry, JournalEntryLine
from fund_ledger.domain.value_objects import JournalEntryStatus, to_amount
from fund_ledger.exceptions import (
    AccountNotFoundError,
    EntityNotFoundError,
    FundNotFoundError,
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
from fund_ledger.services.interfaces import LedgerService

logger = get_logger(__name__)


@dataclass
class TransferRequest:
    source_entity_id: UUID
    target_entity_id: UUID
    amount: Decimal
    transfer_date: date
    source_transfer_account_code: str
    target_transfer_account_code: str
    source_cash_account_code: str
    target_cash_account_code: str
    description: str = ""
    source_fund_code: str | None = None
    target_fund_code: str | None = None
    reference_number: str | None = None
    post: bool = True


@dataclass
class InterEntityTransfer:
    source_entry: JournalEntry
    target_entry: JournalEntry | None

    @property
    def reference_number(self) -> str:
        return self.source_entry.reference_number.removesuffix("-SRC")

    @property
    def amount(self) -> Decimal:
        return self.source_entry.total_amount

    @property
    def is_matched(self) -> bool:
        return (
            self.target_entry is not None
            and self.source_entry.matching_transaction_id == self.target_entry.id
            and self.target_entry.matching_transaction_id == self.source_entry.id
        )


def default_reference(transfer_date: date) -> str:
    return f"IE-{transfer_date:%Y%m%d}-{uuid4().hex[:8].upper()}"


class InterEntityTransferService:
    """Records a transfer between two entities as two matched entries.

    The source side debits its inter-entity transfer account and credits
    cash; the target side mirrors it. Each entry carries the other's id in
    ``matching_transaction_id`` and both are written in one unit of work.
    """

    def __init__(
        self,
        database: Database,
        ledger_service: LedgerService,
        entity_repo: EntityRepository,
        account_repo: AccountRepository,
        fund_repo: FundRepository,
        journal_repo: JournalEntryRepository,
    ) -> None:
        self._db = database
        self._ledger = ledger_service
        self._entity_repo = entity_repo
        self._account_repo = account_repo
        self._fund_repo = fund_repo
        self._journal_repo = journal_repo

    def create_transfer(self, request: TransferRequest) -> InterEntityTransfer:
        """Create (and by default post) both sides of an inter-entity transfer.

        Args:
            request: Entities, amount, date and the account and fund codes of
                each side

        Returns:
            The pair of entries, each referencing the other

        Raises:
            ValidationError: If the entities match or the amount is not positive
            EntityNotFoundError: If either entity does not exist
            AccountNotFoundError: If an account code does not resolve
            FundNotFoundError: If a fund code does not resolve
        """
        try:
            amount = to_amount(request.amount)
        except ValueError as e:
            raise ValidationError(str(e), context={"field": "amount"}) from e
        if amount <= 0:
            raise ValidationError(
                "Transfer amount must be greater than zero",
                context={"amount": str(amount)},
            )
        if request.source_entity_id == request.target_entity_id:
            raise ValidationError(
                "Source and target entities must be different",
                context={"entity_id": str(request.source_entity_id)},
            )
        for entity_id in (request.source_entity_id, request.target_entity_id):
            if self._entity_repo.get(entity_id) is None:
                raise EntityNotFoundError(entity_id)

        source_transfer = self._resolve_account(
            request.source_entity_id, request.source_transfer_account_code
        )
        source_cash = self._resolve_account(
            request.source_entity_id, request.source_cash_account_code
        )
        target_transfer = self._resolve_account(
            request.target_entity_id, request.target_transfer_account_code
        )
        target_cash = self._resolve_account(
            request.target_entity_id, request.target_cash_account_code
        )
        source_fund = self._resolve_fund(request.source_entity_id, request.source_fund_code)
        target_fund = self._resolve_fund(request.target_entity_id, request.target_fund_code)

        reference = request.reference_number or default_reference(request.transfer_date)
        status = JournalEntryStatus.POSTED if request.post else JournalEntryStatus.DRAFT
        source_id, target_id = uuid4(), uuid4()
        source_fund_id = source_fund.id if source_fund else None
        target_fund_id = target_fund.id if target_fund else None

        source_entry = JournalEntry(
            id=source_id,
            entity_id=request.source_entity_id,
            entry_date=request.transfer_date,
            reference_number=f"{reference}-SRC",
            description=request.description,
            status=status,
            is_inter_entity=True,
            target_entity_id=request.target_entity_id,
            matching_transaction_id=target_id,
            lines=[
                JournalEntryLine(
                    account_id=source_transfer.id,
                    fund_id=source_fund_id,
                    debit_amount=amount,
                    description=request.description,
                ),
                JournalEntryLine(
                    account_id=source_cash.id,
                    fund_id=source_fund_id,
                    credit_amount=amount,
                    description=request.description,
                ),
            ],
        )
        target_entry = JournalEntry(
            id=target_id,
            entity_id=request.target_entity_id,
            entry_date=request.transfer_date,
            reference_number=f"{reference}-TGT",
            description=request.description,
            status=status,
            is_inter_entity=True,
            target_entity_id=request.source_entity_id,
            matching_transaction_id=source_id,
            lines=[
                JournalEntryLine(
                    account_id=target_cash.id,
                    fund_id=target_fund_id,
                    debit_amount=amount,
                    description=request.description,
                ),
                JournalEntryLine(
                    account_id=target_transfer.id,
                    fund_id=target_fund_id,
                    credit_amount=amount,
                    description=request.description,
                ),
            ],
        )

        with self._db.transaction():
            self._ledger.create_journal_entry(source_entry)
            self._ledger.create_journal_entry(target_entry)

        logger.info(
            "inter_entity_transfer_created",
            reference=reference,
            source_entity_id=str(request.source_entity_id),
            target_entity_id=str(request.target_entity_id),
            amount=str(amount),
            status=status.value,
        )
        return InterEntityTransfer(source_entry=source_entry, target_entry=target_entry)

    def list_transfers(self, entity_id: UUID | None = None) -> list[InterEntityTransfer]:
        """List transfers as source/target pairs, newest first."""
        entries = list(self._journal_repo.list_inter_entity(entity_id))
        by_id = {entry.id: entry for entry in entries}
        transfers: list[InterEntityTransfer] = []
        seen: set[UUID] = set()
        for entry in entries:
            if entry.id in seen:
                continue
            if (
                entry.reference_number.endswith("-TGT")
                and entry.matching_transaction_id in by_id
            ):
                continue
            partner = None
            if entry.matching_transaction_id is not None:
                partner = by_id.get(entry.matching_transaction_id) or self._journal_repo.get(
                    entry.matching_transaction_id
                )
            seen.add(entry.id)
            if partner is not None:
                seen.add(partner.id)
            transfers.append(InterEntityTransfer(source_entry=entry, target_entry=partner))
        return transfers

    def _resolve_account(self, entity_id: UUID, code: str) -> Account:
        account = self._account_repo.get_by_code(entity_id, (code or "").strip())
        if account is None:
            raise AccountNotFoundError(code=code, entity_id=entity_id)
        return account

    def _resolve_fund(self, entity_id: UUID, code: str | None) -> Fund | None:
        if not code:
            return None
        fund = self._fund_repo.get_by_code(entity_id, code.strip())
        if fund is None:
            raise FundNotFoundError(code=code, entity_id=entity_id)
        return fund
