import logging
from importlib.metadata import PackageNotFoundError, version
from typing import Optional

from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse, Response
from fastapi.encoders import jsonable_encoder
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from auth import read_token
from config import get_settings
from database import get_db
from errors import FinanceError, InternalError, ValidationError
from models import TransactionType, User
from periods import DateRange, resolve_range, resolve_trend_period
from schemas import (
    CategoryBreakdownOut,
    CategoryIn,
    CategoryOut,
    CategoryUpdate,
    SummaryOut,
    TransactionIn,
    TransactionOut,
    TransactionPageOut,
    TransactionUpdate,
    TrendPointOut,
    UserOut,
)
from services import (
    CategoryService,
    CSVService,
    MetricsService,
    TransactionFilters,
    TransactionService,
)

settings = get_settings()
logging.basicConfig(level=settings.log_level)
logger = logging.getLogger(__name__)


def _load_app_version() -> str:
    try:
        return version("finance-tracker")
    except PackageNotFoundError:
        return "unknown"


APP_VERSION = _load_app_version()

app = FastAPI(title="Finance Tracker", version=APP_VERSION)


@app.exception_handler(FinanceError)
def finance_error_handler(request: Request, exc: FinanceError) -> JSONResponse:
    detail = str(exc)
    if isinstance(exc, InternalError):
        detail = "Internal error"
    return JSONResponse(status_code=exc.status_code, content={"detail": detail})


@app.exception_handler(RequestValidationError)
def request_validation_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    errors = [
        {"loc": list(err.get("loc", ())), "msg": err.get("msg", "")}
        for err in exc.errors()
    ]
    return JSONResponse(
        status_code=400,
        content=jsonable_encoder({"detail": "Invalid input", "errors": errors}),
    )


@app.exception_handler(SQLAlchemyError)
def database_error_handler(request: Request, exc: SQLAlchemyError) -> JSONResponse:
    logger.exception(f"database_error: path={request.url.path}")
    return JSONResponse(status_code=500, content={"detail": "Internal error"})


def current_user_id(request: Request, db: Session = Depends(get_db)) -> str:
    header = request.headers.get("Authorization", "")
    scheme, _, token = header.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        raise HTTPException(status_code=401, detail="Not authenticated")
    user_id = read_token(token.strip())
    if user_id is None or db.get(User, user_id) is None:
        raise HTTPException(status_code=401, detail="Not authenticated")
    return user_id


def _query_int(request: Request, name: str, default: int) -> int:
    raw = request.query_params.get(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError as exc:
        raise ValidationError(f"{name} must be an integer") from exc


def _query_type(request: Request) -> Optional[TransactionType]:
    raw = request.query_params.get("type")
    if not raw:
        return None
    try:
        return TransactionType(raw.strip().lower())
    except ValueError as exc:
        raise ValidationError("type must be income or expense") from exc


def range_from_request(request: Request) -> DateRange:
    return resolve_range(
        request.query_params.get("startDate"), request.query_params.get("endDate")
    )


def filters_from_request(request: Request) -> TransactionFilters:
    dates = range_from_request(request)
    category_id = (request.query_params.get("categoryId") or "").strip() or None
    search = (request.query_params.get("search") or "").strip() or None
    return TransactionFilters(
        type=_query_type(request),
        category_id=category_id,
        start_date=dates.start,
        end_date=dates.end,
        search=search,
    )


@app.post("/api/transactions", response_model=TransactionOut, status_code=201)
def create_transaction(
    payload: TransactionIn,
    user_id: str = Depends(current_user_id),
    db: Session = Depends(get_db),
):
    return TransactionService(db, user_id).create(payload)


@app.get("/api/transactions", response_model=TransactionPageOut)
def list_transactions(
    request: Request,
    user_id: str = Depends(current_user_id),
    db: Session = Depends(get_db),
):
    filters = filters_from_request(request)
    page = _query_int(request, "page", 1)
    limit = _query_int(request, "limit", settings.default_page_limit)
    limit = min(max(limit, 1), settings.max_page_limit)
    result = TransactionService(db, user_id).paginate(filters, page=page, limit=limit)
    return TransactionPageOut.model_validate(result)


@app.get("/api/transactions/export")
def export_transactions_csv(
    request: Request,
    user_id: str = Depends(current_user_id),
    db: Session = Depends(get_db),
):
    csv_text = CSVService(db, user_id).export(filters_from_request(request))
    return Response(
        content=csv_text,
        media_type="text/csv",
        headers={"Content-Disposition": 'attachment; filename="transactions.csv"'},
    )


@app.get("/api/transactions/{transaction_id}", response_model=TransactionOut)
def get_transaction(
    transaction_id: str,
    user_id: str = Depends(current_user_id),
    db: Session = Depends(get_db),
):
    return TransactionService(db, user_id).get(transaction_id)


@app.patch("/api/transactions/{transaction_id}", response_model=TransactionOut)
def update_transaction(
    transaction_id: str,
    payload: TransactionUpdate,
    user_id: str = Depends(current_user_id),
    db: Session = Depends(get_db),
):
    return TransactionService(db, user_id).update(transaction_id, payload)


@app.delete("/api/transactions/{transaction_id}", status_code=204)
def delete_transaction(
    transaction_id: str,
    user_id: str = Depends(current_user_id),
    db: Session = Depends(get_db),
):
    TransactionService(db, user_id).delete(transaction_id)
    return Response(status_code=204)


@app.get("/api/dashboard/summary", response_model=SummaryOut)
def dashboard_summary(
    request: Request,
    user_id: str = Depends(current_user_id),
    db: Session = Depends(get_db),
):
    return MetricsService(db, user_id).summary(range_from_request(request))


@app.get("/api/dashboard/trends", response_model=list[TrendPointOut])
def dashboard_trends(
    request: Request,
    user_id: str = Depends(current_user_id),
    db: Session = Depends(get_db),
):
    period = resolve_trend_period(request.query_params.get("period"))
    return MetricsService(db, user_id).trends(period)


@app.get(
    "/api/dashboard/category-breakdown", response_model=list[CategoryBreakdownOut]
)
def dashboard_category_breakdown(
    request: Request,
    user_id: str = Depends(current_user_id),
    db: Session = Depends(get_db),
):
    return MetricsService(db, user_id).category_breakdown(
        _query_type(request), range_from_request(request)
    )


@app.get("/api/categories", response_model=list[CategoryOut])
def list_categories(
    request: Request,
    user_id: str = Depends(current_user_id),
    db: Session = Depends(get_db),
):
    service = CategoryService(db, user_id)
    service.seed_defaults()
    return service.list_all(_query_type(request))


@app.post("/api/categories", response_model=CategoryOut, status_code=201)
def create_category(
    payload: CategoryIn,
    user_id: str = Depends(current_user_id),
    db: Session = Depends(get_db),
):
    service = CategoryService(db, user_id)
    service.seed_defaults()
    return service.create(payload)


@app.get("/api/categories/{category_id}", response_model=CategoryOut)
def get_category(
    category_id: str,
    user_id: str = Depends(current_user_id),
    db: Session = Depends(get_db),
):
    return CategoryService(db, user_id).get(category_id)


@app.patch("/api/categories/{category_id}", response_model=CategoryOut)
def update_category(
    category_id: str,
    payload: CategoryUpdate,
    user_id: str = Depends(current_user_id),
    db: Session = Depends(get_db),
):
    return CategoryService(db, user_id).update(category_id, payload)


@app.delete("/api/categories/{category_id}", status_code=204)
def delete_category(
    category_id: str,
    user_id: str = Depends(current_user_id),
    db: Session = Depends(get_db),
):
    CategoryService(db, user_id).delete(category_id)
    return Response(status_code=204)


@app.get("/api/users/me", response_model=UserOut)
def read_current_user(
    user_id: str = Depends(current_user_id),
    db: Session = Depends(get_db),
):
    return db.get(User, user_id)


def main():
    import uvicorn

    uvicorn.run("main:app", host="0.0.0.0", port=8000, reload=False)


if __name__ == "__main__":
    main()
