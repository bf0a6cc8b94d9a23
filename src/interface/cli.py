from __future__ import annotations

import argparse
import mimetypes
from pathlib import Path
from typing import Sequence

from application.budget_service import BudgetService
from application.store import TransactionStore
from domain.errors import ClassifierUnavailableError, EmptyStatementError, TransactionNotUnderstoodError
from infrastructure.config import load_budget_config
from infrastructure.llm.llm_client import LLMClient
from infrastructure.persistence.state_repository import JsonFileStateRepository, StateRepository
from llm.advisor import AdvisorLLM
from llm.transaction_parser import TransactionParserLLM


def build_service(repository: StateRepository | None = None, llm_client: LLMClient | None = None) -> BudgetService:
    config = load_budget_config()
    llm_client = llm_client or LLMClient()
    store = TransactionStore(
        repository or JsonFileStateRepository(),
        default_income=config.default_income,
        default_currency=config.default_currency,
    )
    return BudgetService(
        store=store,
        parser=TransactionParserLLM(llm_client, default_currency=config.default_currency),
        advisor=AdvisorLLM(llm_client),
        config=config,
    )


def _parse_args(argv: Sequence[str] | None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(prog="smartbudget", description="40/30/20/10 budget tracker")
    parser.add_argument("text", nargs="*", help="free-text transaction, e.g. 'Dinner with family 1200 CZK'")
    parser.add_argument("--import", dest="statement", type=Path, help="bank statement file to import")
    parser.add_argument("--month", help="dashboard month as YYYY-MM")
    return parser.parse_args(argv)


def main(argv: Sequence[str] | None = None, service: BudgetService | None = None) -> None:
    args = _parse_args(argv)
    service = service or build_service()

    message = " ".join(args.text).strip()
    if not message and args.statement is None:
        message = input("SmartBudget > ").strip()

    try:
        if args.statement is not None:
            mime_type = mimetypes.guess_type(args.statement.name)[0] or "application/pdf"
            result = service.import_statement(args.statement.name, args.statement.read_bytes(), mime_type=mime_type)
            print(f"Imported {result.accepted} transactions from {args.statement.name} (dropped {result.dropped})")
        if message:
            txn = service.add_from_text(message)
            print(f"Added {txn.description}: {txn.amount} {txn.currency} -> {txn.category.value}")
    except TransactionNotUnderstoodError:
        print("Could not understand this transaction. Try rephrasing it.")
    except EmptyStatementError:
        print("No transactions were found in that statement.")
    except ClassifierUnavailableError:
        print("The classifier is not available right now. Please try again later.")

    print(service.dashboard(args.month).model_dump_json(indent=2))


if __name__ == "__main__":
    main()
