from __future__ import annotations

import logging
from dataclasses import replace
from datetime import datetime
from decimal import Decimal, InvalidOperation
from typing import Any, Callable, Iterable, TypeVar
from uuid import uuid4

from application.documents import DocumentRegistry
from domain.errors import ConfirmationRequiredError, PersistenceError
from domain.models import AccountMetadata, Category, ImportedDocument, Transaction, TransactionDraft
from infrastructure.persistence.state_repository import StateRepository

logger = logging.getLogger(__name__)

T = TypeVar("T")


def _checked_amount(value: Any, field: str = "amount") -> Decimal:
    try:
        amount = value if isinstance(value, Decimal) else Decimal(str(value))
    except (InvalidOperation, ValueError) as exc:
        raise ValueError(f"{field} must be a number, got {value!r}") from exc
    if not amount.is_finite():
        raise ValueError(f"{field} must be finite, got {value!r}")
    if amount < 0:
        raise ValueError(f"{field} must be >= 0, got {value!r}")
    return amount


class TransactionStore:
    """
    Source of truth for classified transactions and imported documents.

    Every mutation is committed as one step: the state is snapshotted, mutated,
    written through the injected repository and restored from the snapshot if
    writing fails. Listeners run only after a successful commit.
    """

    def __init__(
        self,
        repository: StateRepository,
        default_income: Decimal = Decimal("50000"),
        default_currency: str = "CZK",
        clock: Callable[[], datetime] = datetime.now,
        id_factory: Callable[[], str] | None = None,
    ) -> None:
        self._repository = repository
        self._default_currency = default_currency
        self._clock = clock
        self._id_factory = id_factory or (lambda: uuid4().hex)
        self._listeners: list[Callable[[], None]] = []

        self._transactions: list[Transaction] = repository.load_transactions()
        stored_income = repository.load_income()
        self._income: Decimal = stored_income if stored_income is not None else default_income
        self._registry = DocumentRegistry(
            repository.load_documents(),
            default_currency=default_currency,
            on_unregister=self._drop_document_transactions,
            clock=clock,
        )
        logger.info(
            "Store loaded transactions=%d documents=%d income=%s",
            len(self._transactions),
            len(self._registry.all()),
            self._income,
        )

    # ---- reads ----
    @property
    def registry(self) -> DocumentRegistry:
        return self._registry

    @property
    def nominal_income(self) -> Decimal:
        return self._income

    def all(self) -> tuple[Transaction, ...]:
        return tuple(self._transactions)

    def documents(self) -> tuple[ImportedDocument, ...]:
        return self._registry.all()

    def get(self, transaction_id: str) -> Transaction | None:
        return next((t for t in self._transactions if t.id == transaction_id), None)

    def subscribe(self, listener: Callable[[], None]) -> None:
        self._listeners.append(listener)

    # ---- mutations ----
    def add(self, draft: TransactionDraft) -> Transaction:
        txn = self._build(draft, taken={t.id for t in self._transactions})

        def mutate() -> Transaction:
            self._transactions.append(txn)
            return txn

        self._commit(mutate)
        logger.info("Store add id=%s category=%s amount=%s", txn.id, txn.category.value, txn.amount)
        return txn

    def add_batch(
        self,
        drafts: Iterable[TransactionDraft],
        metadata: AccountMetadata | None,
        name: str,
    ) -> tuple[ImportedDocument, list[Transaction]]:
        taken = {t.id for t in self._transactions}
        document_id = self._unique_id({d.id for d in self._registry.all()})
        transactions: list[Transaction] = []
        # Build everything up front so a bad draft aborts before any state changes.
        for draft in drafts:
            txn = replace(self._build(draft, taken=taken), document_id=document_id)
            taken.add(txn.id)
            transactions.append(txn)

        def mutate() -> ImportedDocument:
            document = self._registry.register(metadata, len(transactions), name, document_id=document_id)
            self._transactions.extend(transactions)
            return document

        document = self._commit(mutate)
        logger.info("Store add_batch document_id=%s transactions=%d", document.id, len(transactions))
        return document, transactions

    def remove(self, transaction_id: str) -> bool:
        if self.get(transaction_id) is None:
            logger.info("Store remove no-op id=%s", transaction_id)
            return False

        def mutate() -> None:
            self._transactions = [t for t in self._transactions if t.id != transaction_id]

        self._commit(mutate)
        logger.info("Store remove id=%s", transaction_id)
        return True

    def remove_by_document(self, document_id: str, confirm: bool = False) -> ImportedDocument | None:
        if not confirm:
            raise ConfirmationRequiredError(
                f"Deleting document {document_id} removes all of its transactions; pass confirm=True"
            )
        if self._registry.get(document_id) is None:
            logger.info("Store remove_by_document no-op document_id=%s", document_id)
            return None

        before = len(self._transactions)
        document = self._commit(lambda: self._registry.unregister(document_id))
        logger.info(
            "Store remove_by_document document_id=%s removed_transactions=%d",
            document_id,
            before - len(self._transactions),
        )
        return document

    def reassign_category(self, transaction_id: str, category: Category | str) -> Transaction | None:
        category = Category(category)
        current = self.get(transaction_id)
        if current is None:
            logger.info("Store reassign_category no-op id=%s", transaction_id)
            return None
        if current.category == category:
            return current

        updated = replace(current, category=category)

        def mutate() -> Transaction:
            self._transactions = [updated if t.id == transaction_id else t for t in self._transactions]
            return updated

        self._commit(mutate)
        logger.info(
            "Store reassign_category id=%s from=%s to=%s",
            transaction_id,
            current.category.value,
            category.value,
        )
        return updated

    def set_nominal_income(self, value: Any) -> Decimal:
        income = _checked_amount(value, field="income")

        def mutate() -> Decimal:
            self._income = income
            return income

        self._commit(mutate)
        logger.info("Store nominal income set value=%s", income)
        return income

    # ---- helpers ----
    def _build(self, draft: TransactionDraft, taken: set[str]) -> Transaction:
        amount = _checked_amount(draft.amount)
        return Transaction(
            id=self._unique_id(taken),
            description=draft.description.strip(),
            amount=amount,
            currency=(draft.currency or self._default_currency).strip().upper(),
            category=Category(draft.category),
            date=draft.date or self._clock(),
            is_ai_generated=draft.is_ai_generated,
        )

    def _unique_id(self, taken: set[str]) -> str:
        candidate = self._id_factory()
        while candidate in taken:
            candidate = self._id_factory()
        return candidate

    def _drop_document_transactions(self, document_id: str) -> None:
        self._transactions = [t for t in self._transactions if t.document_id != document_id]

    def _commit(self, mutate: Callable[[], T]) -> T:
        transactions = list(self._transactions)
        documents = self._registry.all()
        income = self._income
        try:
            result = mutate()
            self._repository.save(list(self._transactions), list(self._registry.all()), self._income)
        except Exception as exc:
            self._transactions = transactions
            self._registry.reset(documents)
            self._income = income
            logger.warning("Store commit rolled back: %s", exc)
            if isinstance(exc, PersistenceError):
                raise
            raise PersistenceError(f"Unable to persist budget state: {exc}") from exc

        for listener in list(self._listeners):
            try:
                listener()
            except Exception:
                logger.exception("Store listener failed listener=%r", listener)
        return result
