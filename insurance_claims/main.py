import contextlib
import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from insurance_claims.config import get_log_level
from insurance_claims.errors import (ClaimMismatch, ClaimNumberExhausted, ClaimsError, ConcurrentUpdate,
                                     DuplicateCode, DuplicateCoverageRule, InvalidAmount, InvalidCoverageRule,
                                     InvalidTransition, NotFound, UnknownCurrency)
from insurance_claims.insurance_database import init_db
from insurance_claims.router.claims import router as claims_router
from insurance_claims.router.codes import router as codes_router
from insurance_claims.router.coverage import router as coverage_router

logging.basicConfig(
    level=get_log_level(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

STATUS_FOR_ERROR = (
    (NotFound, 404),
    (InvalidAmount, 422),
    (InvalidCoverageRule, 422),
    (UnknownCurrency, 422),
    (ClaimMismatch, 422),
    (InvalidTransition, 409),
    (DuplicateCode, 409),
    (DuplicateCoverageRule, 409),
    (ConcurrentUpdate, 409),
    (ClaimNumberExhausted, 503),
)


def status_for(exc: ClaimsError) -> int:
    for error_type, status_code in STATUS_FOR_ERROR:
        if isinstance(exc, error_type):
            return status_code
    return 400


@contextlib.asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Creates the tables on startup.
    """
    init_db()
    yield


app = FastAPI(
    title="Insurance Coverage & Claims API",
    lifespan=lifespan,
)


app.include_router(codes_router, prefix="/api")
app.include_router(coverage_router, prefix="/api")
app.include_router(claims_router, prefix="/api")


@app.exception_handler(ClaimsError)
async def claims_error_handler(request: Request, exc: ClaimsError):
    status_code = status_for(exc)
    logger.warning("%s %s -> %s %s: %s", request.method, request.url.path, status_code, exc.code, exc)
    content = {"error": str(exc), "code": exc.code}
    if exc.retryable:
        content["retryable"] = True
    return JSONResponse(status_code=status_code, content=content)
