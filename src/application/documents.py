from __future__ import annotations

import logging
from datetime import datetime
from typing import Callable, Iterable
from uuid import uuid4

from application.aggregation import account_balances
from domain.models import AccountMetadata, ImportedDocument
from domain.schemas import AccountBalance

logger = logging.getLogger(__name__)


class DocumentRegistry:
    """
    Metadata for imported statements.

    Balances are stored exactly as supplied at import time and are never
    recomputed from transactions. `unregister` runs the cascade hook so the
    owning store can drop the document's transactions; persistence of that
    cascade is the store's job (see TransactionStore.remove_by_document).
    """

    def __init__(
        self,
        documents: Iterable[ImportedDocument] | None = None,
        default_currency: str = "CZK",
        on_unregister: Callable[[str], None] | None = None,
        clock: Callable[[], datetime] = datetime.now,
    ) -> None:
        self._documents: list[ImportedDocument] = list(documents or [])
        self._default_currency = default_currency
        self._on_unregister = on_unregister
        self._clock = clock

    def all(self) -> tuple[ImportedDocument, ...]:
        return tuple(self._documents)

    def get(self, document_id: str) -> ImportedDocument | None:
        return next((doc for doc in self._documents if doc.id == document_id), None)

    def register(
        self,
        metadata: AccountMetadata | None,
        transaction_count: int,
        name: str,
        document_id: str | None = None,
    ) -> ImportedDocument:
        metadata = metadata or AccountMetadata()
        document = ImportedDocument(
            id=document_id or uuid4().hex,
            name=name,
            upload_date=self._clock(),
            transaction_count=transaction_count,
            account_name=metadata.account_name,
            account_type=metadata.account_type,
            balance=metadata.balance,
            currency=metadata.currency,
        )
        self._documents.append(document)
        logger.info(
            "Document registered id=%s name=%s transactions=%d balance=%s",
            document.id,
            document.name,
            transaction_count,
            document.balance,
        )
        return document

    def unregister(self, document_id: str) -> ImportedDocument | None:
        document = self.get(document_id)
        if document is None:
            logger.info("Document unregister no-op id=%s", document_id)
            return None
        self._documents = [doc for doc in self._documents if doc.id != document_id]
        if self._on_unregister is not None:
            self._on_unregister(document_id)
        logger.info("Document unregistered id=%s", document_id)
        return document

    def balance_sheet(self) -> list[AccountBalance]:
        return account_balances(self._documents, default_currency=self._default_currency)

    def reset(self, documents: Iterable[ImportedDocument]) -> None:
        self._documents = list(documents)
