from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any

from pydantic import ValidationError

from domain.errors import TransactionNotUnderstoodError
from domain.models import AccountMetadata, TransactionDraft
from domain.schemas import (
    ParsedTransaction,
    StatementAccount,
    StatementEntry,
    StatementParseResult,
    entry_datetime,
)

logger = logging.getLogger(__name__)


@dataclass
class ValidatedStatement:
    drafts: list[TransactionDraft] = field(default_factory=list)
    metadata: AccountMetadata | None = None
    dropped: int = 0


def validate_parsed_transaction(payload: Any, default_currency: str) -> TransactionDraft:
    """Turn classifier output for a manual entry into a draft, or refuse it."""
    if payload is None:
        raise TransactionNotUnderstoodError("Could not understand this transaction")
    try:
        parsed = ParsedTransaction.model_validate(payload)
    except ValidationError as exc:
        logger.info("Rejected classifier output errors=%d", exc.error_count())
        raise TransactionNotUnderstoodError("Could not understand this transaction") from exc

    return TransactionDraft(
        description=parsed.description,
        amount=parsed.amount,
        currency=parsed.currency or default_currency,
        category=parsed.category,
        is_ai_generated=True,
    )


def validate_statement(payload: Any, default_currency: str) -> ValidatedStatement:
    """
    Validate a statement payload entry by entry.

    Malformed entries are dropped and counted; the rest are kept. A malformed
    account block is ignored rather than failing the import.
    """
    result = ValidatedStatement()
    if payload is None:
        return result

    try:
        statement = StatementParseResult.model_validate(payload)
    except ValidationError as exc:
        logger.info("Rejected statement payload errors=%d", exc.error_count())
        return result

    if statement.account is not None:
        try:
            result.metadata = StatementAccount.model_validate(statement.account).to_metadata()
        except ValidationError as exc:
            logger.info("Ignoring malformed statement account block errors=%d", exc.error_count())

    for index, raw in enumerate(statement.transactions):
        try:
            entry = StatementEntry.model_validate(raw)
        except ValidationError as exc:
            result.dropped += 1
            logger.info("Dropped statement entry index=%d errors=%d", index, exc.error_count())
            continue
        result.drafts.append(
            TransactionDraft(
                description=entry.description,
                amount=entry.amount,
                currency=entry.currency or default_currency,
                category=entry.category,
                date=entry_datetime(entry.posted_on),
                is_ai_generated=True,
            )
        )

    logger.info("Statement validated accepted=%d dropped=%d", len(result.drafts), result.dropped)
    return result
