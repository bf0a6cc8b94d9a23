from __future__ import annotations

import base64
import binascii
import logging
from functools import lru_cache
from typing import List, Optional

from fastapi import Depends, FastAPI, HTTPException, Query, Request, Response
from fastapi.responses import JSONResponse

from application.budget_service import BudgetService
from domain.errors import (
    ClassifierUnavailableError,
    ConfirmationRequiredError,
    EmptyStatementError,
    PersistenceError,
    SmartBudgetError,
    TransactionNotUnderstoodError,
)
from domain.models import Category
from domain.schemas import (
    AccountBalance,
    AdviceView,
    AnnualReport,
    CategoryBreakdown,
    CategoryUpdateRequest,
    DashboardView,
    DocumentView,
    ImportResult,
    IncomeUpdateRequest,
    ManualTransactionRequest,
    ParseTextRequest,
    StatementUploadRequest,
    TransactionView,
    document_view,
    transaction_view,
)
from interface.cli import build_service

logger = logging.getLogger(__name__)

MONTH_PATTERN = r"^\d{4}-(0[1-9]|1[0-2])$"

_ERROR_STATUS = {
    TransactionNotUnderstoodError: 422,
    EmptyStatementError: 422,
    ConfirmationRequiredError: 409,
    ClassifierUnavailableError: 503,
    PersistenceError: 503,
}

app = FastAPI(title="SmartBudget API")


@lru_cache(maxsize=1)
def get_service() -> BudgetService:
    return build_service()


@app.exception_handler(SmartBudgetError)
async def handle_budget_error(request: Request, exc: SmartBudgetError) -> JSONResponse:
    status = next((code for cls, code in _ERROR_STATUS.items() if isinstance(exc, cls)), 500)
    logger.info("Request failed path=%s status=%d error=%s", request.url.path, status, exc)
    return JSONResponse(status_code=status, content={"detail": str(exc)})


@app.get("/health")
def health() -> dict[str, str]:
    return {"status": "ok"}


# ---- transactions ----
@app.get("/transactions", response_model=List[TransactionView])
def list_transactions(service: BudgetService = Depends(get_service)) -> List[TransactionView]:
    return [transaction_view(txn) for txn in service.store.all()]


@app.post("/transactions/parse", response_model=TransactionView, status_code=201)
def parse_transaction(body: ParseTextRequest, service: BudgetService = Depends(get_service)) -> TransactionView:
    return transaction_view(service.add_from_text(body.text))


@app.post("/transactions", response_model=TransactionView, status_code=201)
def create_transaction(
    body: ManualTransactionRequest,
    service: BudgetService = Depends(get_service),
) -> TransactionView:
    return transaction_view(service.add_manual(body))


@app.delete("/transactions/{transaction_id}", status_code=204)
def delete_transaction(transaction_id: str, service: BudgetService = Depends(get_service)) -> Response:
    service.remove_transaction(transaction_id)
    return Response(status_code=204)


@app.patch("/transactions/{transaction_id}/category", response_model=TransactionView)
def update_category(
    transaction_id: str,
    body: CategoryUpdateRequest,
    service: BudgetService = Depends(get_service),
) -> TransactionView:
    updated = service.reassign_category(transaction_id, body.category)
    if updated is None:
        raise HTTPException(status_code=404, detail=f"Transaction {transaction_id} not found")
    return transaction_view(updated)


# ---- documents ----
@app.post("/documents", response_model=ImportResult, status_code=201)
def upload_statement(body: StatementUploadRequest, service: BudgetService = Depends(get_service)) -> ImportResult:
    try:
        content = base64.b64decode(body.content_base64, validate=True)
    except (binascii.Error, ValueError) as exc:
        raise HTTPException(status_code=400, detail="content_base64 is not valid base64") from exc
    return service.import_statement(body.name, content, mime_type=body.mime_type)


@app.get("/documents", response_model=List[DocumentView])
def list_documents(service: BudgetService = Depends(get_service)) -> List[DocumentView]:
    return [document_view(doc) for doc in service.store.documents()]


@app.delete("/documents/{document_id}", status_code=204)
def delete_document(
    document_id: str,
    confirm: bool = Query(default=False),
    service: BudgetService = Depends(get_service),
) -> Response:
    service.delete_document(document_id, confirm=confirm)
    return Response(status_code=204)


@app.get("/accounts/balances", response_model=List[AccountBalance])
def account_balances(service: BudgetService = Depends(get_service)) -> List[AccountBalance]:
    return service.balances()


# ---- views ----
@app.get("/months")
def months(service: BudgetService = Depends(get_service)) -> dict:
    return {"current": service.months.current, "available": service.months.available}


@app.get("/years")
def years(service: BudgetService = Depends(get_service)) -> dict:
    return {"current": service.years.current, "available": service.years.available}


@app.get("/dashboard", response_model=DashboardView)
def dashboard(
    month: Optional[str] = Query(default=None, pattern=MONTH_PATTERN),
    service: BudgetService = Depends(get_service),
) -> DashboardView:
    return service.dashboard(month)


@app.get("/categories/{category}/breakdown", response_model=CategoryBreakdown)
def category_breakdown(
    category: Category,
    month: Optional[str] = Query(default=None, pattern=MONTH_PATTERN),
    service: BudgetService = Depends(get_service),
) -> CategoryBreakdown:
    return service.category_breakdown(category, month)


@app.get("/reports/annual/{year}", response_model=AnnualReport)
def annual_report(year: int, service: BudgetService = Depends(get_service)) -> AnnualReport:
    return service.annual_report(year)


@app.get("/advice", response_model=AdviceView)
def advice(
    month: Optional[str] = Query(default=None, pattern=MONTH_PATTERN),
    service: BudgetService = Depends(get_service),
) -> AdviceView:
    return service.advice(month)


@app.put("/settings/income")
def update_income(body: IncomeUpdateRequest, service: BudgetService = Depends(get_service)) -> dict:
    return {"income": float(service.set_income(body.amount))}
