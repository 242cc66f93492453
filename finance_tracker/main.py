from dotenv import load_dotenv
from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError

load_dotenv()

from finance_tracker.logging_config import setup_logging, get_logger
from finance_tracker.db.core import (
    LedgerError,
    ValidationError,
    NotFoundError,
    ForbiddenError,
    ConflictError,
)
from finance_tracker.models.error import ErrorKind, ErrorResponse
from finance_tracker.routers.users import router as users_router
from finance_tracker.routers.accounts import router as accounts_router
from finance_tracker.routers.transactions import router as transactions_router
from finance_tracker.routers.budgets import router as budgets_router

setup_logging()
logger = get_logger(__name__)

STATUS_BY_ERROR = {
    ValidationError: status.HTTP_400_BAD_REQUEST,
    NotFoundError: status.HTTP_404_NOT_FOUND,
    ForbiddenError: status.HTTP_403_FORBIDDEN,
    ConflictError: status.HTTP_409_CONFLICT,
}


def error_response(status_code: int, kind: ErrorKind, message: str) -> JSONResponse:
    body = ErrorResponse(kind=kind, message=message)
    return JSONResponse(status_code=status_code, content=body.model_dump(mode="json"))


app = FastAPI(title="Finance Tracker API")


@app.exception_handler(LedgerError)
async def ledger_error_handler(request: Request, exc: LedgerError):
    status_code = next(
        (code for error_type, code in STATUS_BY_ERROR.items() if isinstance(exc, error_type)),
        status.HTTP_500_INTERNAL_SERVER_ERROR,
    )
    if status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
    return error_response(status_code, ErrorKind(exc.kind), exc.message)


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    message = "; ".join(
        f"{'.'.join(str(part) for part in err['loc'])}: {err['msg']}" for err in exc.errors()
    )
    return error_response(status.HTTP_422_UNPROCESSABLE_ENTITY, ErrorKind.VALIDATION_ERROR, message)


@app.exception_handler(SQLAlchemyError)
async def storage_error_handler(request: Request, exc: SQLAlchemyError):
    logger.exception(f"{request.method} {request.url.path} hit a storage error")
    return error_response(status.HTTP_500_INTERNAL_SERVER_ERROR, ErrorKind.INTERNAL, "Internal server error")


app.include_router(users_router)
app.include_router(accounts_router)
app.include_router(transactions_router)
app.include_router(budgets_router)


@app.get("/")
def read_root():
    return "Server is running."
