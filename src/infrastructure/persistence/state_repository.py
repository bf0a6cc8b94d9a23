from __future__ import annotations

import json
import logging
import os
from abc import ABC, abstractmethod
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any, Iterable

from pydantic import ValidationError

from domain.errors import PersistenceError
from domain.models import ImportedDocument, Transaction
from domain.schemas import DocumentRecord, TransactionRecord

logger = logging.getLogger(__name__)

TRANSACTIONS_KEY = "sb_transactions"
DOCUMENTS_KEY = "sb_documents"
INCOME_KEY = "sb_income"


class StateRepository(ABC):
    """Load/save contract for the three persisted records."""

    @abstractmethod
    def load_transactions(self) -> list[Transaction]:
        raise NotImplementedError

    @abstractmethod
    def load_documents(self) -> list[ImportedDocument]:
        raise NotImplementedError

    @abstractmethod
    def load_income(self) -> Decimal | None:
        raise NotImplementedError

    @abstractmethod
    def save(
        self,
        transactions: list[Transaction],
        documents: list[ImportedDocument],
        income: Decimal,
    ) -> None:
        raise NotImplementedError


class _KeyValueStateRepository(StateRepository):
    """Serializes each record as a plain JSON value under its own key."""

    @abstractmethod
    def _read(self, key: str) -> Any:
        raise NotImplementedError

    @abstractmethod
    def _write(self, records: dict[str, Any]) -> None:
        """Store every record or none of them."""
        raise NotImplementedError

    def load_transactions(self) -> list[Transaction]:
        rows = self._read(TRANSACTIONS_KEY) or []
        transactions: list[Transaction] = []
        for row in rows if isinstance(rows, list) else []:
            try:
                transactions.append(TransactionRecord.model_validate(row).to_domain())
            except ValidationError as exc:
                logger.warning("Skipping malformed stored transaction id=%s: %s", _row_id(row), exc)
        return transactions

    def load_documents(self) -> list[ImportedDocument]:
        rows = self._read(DOCUMENTS_KEY) or []
        documents: list[ImportedDocument] = []
        for row in rows if isinstance(rows, list) else []:
            try:
                documents.append(DocumentRecord.model_validate(row).to_domain())
            except ValidationError as exc:
                logger.warning("Skipping malformed stored document id=%s: %s", _row_id(row), exc)
        return documents

    def load_income(self) -> Decimal | None:
        raw = self._read(INCOME_KEY)
        if raw is None:
            return None
        try:
            value = Decimal(str(raw))
        except InvalidOperation:
            logger.warning("Ignoring unparseable stored income value=%r", raw)
            return None
        if not value.is_finite() or value < 0:
            logger.warning("Ignoring invalid stored income value=%r", raw)
            return None
        return value

    def save(
        self,
        transactions: list[Transaction],
        documents: list[ImportedDocument],
        income: Decimal,
    ) -> None:
        self._write(
            {
                TRANSACTIONS_KEY: [
                    TransactionRecord.from_domain(t).model_dump(mode="json", by_alias=True) for t in transactions
                ],
                DOCUMENTS_KEY: [
                    DocumentRecord.from_domain(d).model_dump(mode="json", by_alias=True) for d in documents
                ],
                INCOME_KEY: str(income),
            }
        )


class InMemoryStateRepository(_KeyValueStateRepository):
    def __init__(self, initial: dict[str, Any] | None = None) -> None:
        self._store: dict[str, Any] = dict(initial or {})
        self.save_count = 0

    def _read(self, key: str) -> Any:
        return self._store.get(key)

    def _write(self, records: dict[str, Any]) -> None:
        self._store.update(records)

    def save(self, transactions, documents, income) -> None:
        super().save(transactions, documents, income)
        self.save_count += 1

    def raw(self, key: str) -> Any:
        return self._store.get(key)


class JsonFileStateRepository(_KeyValueStateRepository):
    """One `<key>.json` file per record inside a data directory."""

    def __init__(self, data_dir: str | Path | None = None) -> None:
        self._data_dir = Path(data_dir or os.getenv("SMARTBUDGET_DATA_DIR", "data"))

    def _path(self, key: str) -> Path:
        return self._data_dir / f"{key}.json"

    def _read(self, key: str) -> Any:
        path = self._path(key)
        if not path.exists():
            return None
        try:
            return json.loads(path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as exc:
            logger.warning("Unable to read state file path=%s: %s", path, exc)
            return None

    def _write(self, records: dict[str, Any]) -> None:
        # Every record is staged before any is replaced; on failure the old files stay in place.
        staged: list[tuple[Path, Path]] = []
        try:
            self._data_dir.mkdir(parents=True, exist_ok=True)
            for key, value in records.items():
                path = self._path(key)
                tmp = path.with_suffix(".json.tmp")
                tmp.write_text(json.dumps(value, indent=2, ensure_ascii=False), encoding="utf-8")
                staged.append((tmp, path))
            previous = {path: path.read_bytes() if path.exists() else None for _, path in staged}
        except OSError as exc:
            _discard(tmp for tmp, _ in staged)
            raise PersistenceError(f"Unable to write state to {self._data_dir}: {exc}") from exc

        replaced: list[Path] = []
        try:
            for tmp, path in staged:
                tmp.replace(path)
                replaced.append(path)
        except OSError as exc:
            _discard(tmp for tmp, path in staged if path not in replaced)
            self._restore(previous, replaced)
            raise PersistenceError(f"Unable to write state to {self._data_dir}: {exc}") from exc
        logger.debug("State files written dir=%s keys=%s", self._data_dir, ",".join(records))

    def _restore(self, previous: dict[Path, bytes | None], paths: list[Path]) -> None:
        for path in paths:
            try:
                content = previous[path]
                if content is None:
                    path.unlink(missing_ok=True)
                else:
                    path.write_bytes(content)
            except OSError:
                logger.exception("Unable to restore state file path=%s", path)


def _discard(paths: Iterable[Path]) -> None:
    for path in paths:
        try:
            path.unlink(missing_ok=True)
        except OSError as exc:
            logger.warning("Unable to remove staged state file path=%s: %s", path, exc)


def _row_id(row: Any) -> Any:
    return row.get("id") if isinstance(row, dict) else None
