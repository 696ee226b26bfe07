import logging
from datetime import date
from typing import Optional

from fastapi import Depends, FastAPI, HTTPException
from sqlalchemy.orm import Session

from config import get_settings
from database import SessionLocal, create_schema
from evaluation import TransactionDraft, TransactionEvaluationError
from frequency import Frequency
from models import Transaction, TransactionType
from schemas import (
    BudgetPercentagesOut,
    CategoryIn,
    CategoryOut,
    ExpressionIn,
    ExpressionResultOut,
    FrequencyOut,
    SummaryOut,
    TransactionIn,
    TransactionOut,
)
from services import (
    CategoryService,
    ReportService,
    TransactionFilters,
    TransactionService,
    build_evaluator,
    get_current_user_id,
)

logging.basicConfig(level=get_settings().log_level)
logger = logging.getLogger(__name__)

app = FastAPI(title="Expression Budget")


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


@app.on_event("startup")
def startup_event():
    create_schema()
    logger.info("startup: schema ready")


def _transaction_out(txn: Transaction) -> TransactionOut:
    return TransactionOut(
        id=txn.id,
        description=txn.description,
        expression=txn.expression,
        amount=txn.amount,
        type=txn.type,
        date=txn.date,
        frequency=txn.frequency,
        category_id=txn.category_id,
        category_name=txn.category.name if txn.category else None,
        notes=txn.notes,
        monthly_equivalent=txn.frequency.normalized_amount_display(txn.amount),
    )


@app.post("/api/expressions/evaluate", response_model=ExpressionResultOut)
async def evaluate_expression(payload: ExpressionIn, db: Session = Depends(get_db)):
    evaluator = build_evaluator(db)
    try:
        result = await evaluator.evaluate(
            TransactionDraft(
                expression=payload.expression,
                frequency=payload.frequency,
                owner_id=get_current_user_id(),
            )
        )
    except TransactionEvaluationError as exc:
        return ExpressionResultOut(
            amount=0,
            type=TransactionType.expense,
            normalized_amount=0,
            is_valid=False,
            error=str(exc),
        )
    return ExpressionResultOut(
        amount=result.amount,
        type=result.type,
        normalized_amount=result.normalized_amount,
        is_valid=True,
    )


@app.get("/api/frequencies", response_model=list[FrequencyOut])
def list_frequencies():
    return Frequency.labels()


@app.get("/api/categories", response_model=list[CategoryOut])
def list_categories(db: Session = Depends(get_db)):
    return CategoryService(db).list_all()


@app.post("/api/categories", response_model=CategoryOut, status_code=201)
def create_category(payload: CategoryIn, db: Session = Depends(get_db)):
    return CategoryService(db).create(payload)


@app.get("/api/transactions", response_model=list[TransactionOut])
def list_transactions(
    type: Optional[TransactionType] = None,
    category_id: Optional[str] = None,
    frequency: Optional[Frequency] = None,
    start: Optional[date] = None,
    end: Optional[date] = None,
    db: Session = Depends(get_db),
):
    filters = TransactionFilters(
        type=type, category_id=category_id, frequency=frequency, start=start, end=end
    )
    return [_transaction_out(txn) for txn in TransactionService(db).list(filters)]


@app.post("/api/transactions", response_model=TransactionOut, status_code=201)
async def create_transaction(payload: TransactionIn, db: Session = Depends(get_db)):
    try:
        txn = await TransactionService(db).create(payload)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return _transaction_out(txn)


@app.get("/api/transactions/summary", response_model=SummaryOut)
def transaction_summary(
    start: Optional[date] = None,
    end: Optional[date] = None,
    db: Session = Depends(get_db),
):
    return ReportService(db).summary(start, end)


@app.get("/api/transactions/budget-percentages", response_model=BudgetPercentagesOut)
def budget_percentages(db: Session = Depends(get_db)):
    return ReportService(db).budget_percentages()


@app.post("/api/transactions/reevaluate")
async def reevaluate_transactions(db: Session = Depends(get_db)):
    changed = await TransactionService(db).reevaluate_all()
    return {"changed": changed}


@app.get("/api/transactions/{transaction_id}", response_model=TransactionOut)
def get_transaction(transaction_id: str, db: Session = Depends(get_db)):
    try:
        txn = TransactionService(db).get(transaction_id)
    except ValueError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    return _transaction_out(txn)


@app.put("/api/transactions/{transaction_id}", response_model=TransactionOut)
async def update_transaction(
    transaction_id: str, payload: TransactionIn, db: Session = Depends(get_db)
):
    service = TransactionService(db)
    try:
        service.get(transaction_id)
    except ValueError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    try:
        txn = await service.update(transaction_id, payload)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return _transaction_out(txn)


@app.delete("/api/transactions/{transaction_id}", status_code=204)
def delete_transaction(transaction_id: str, db: Session = Depends(get_db)):
    try:
        TransactionService(db).delete(transaction_id)
    except ValueError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("main:app", host="0.0.0.0", port=8000, reload=False)
