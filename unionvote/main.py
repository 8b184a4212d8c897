from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from .logging_conf import configure_logging
from .models.exceptions import (
    DecryptionFailedError,
    EncryptionFailedError,
    NotConnectedError,
    NotInitializedError,
    ReadFailedError,
    RevealInProgressError,
    SubmissionFailedError,
    SubmissionRejectedError,
    VoteNotFoundError,
)
from .models.vote_models import format_pydantic_errors
from .routes import sse, votes

logger = structlog.stdlib.get_logger()


@asynccontextmanager
async def lifespan(_: FastAPI) -> AsyncGenerator[None, None]:
    configure_logging()
    logger.info("lifecycle.startup", msg="Application starting up")
    yield
    logger.info("lifecycle.shutdown", msg="Application shutting down")


app = FastAPI(title="UnionVote Orchestrator", lifespan=lifespan)


# --- Exception Handlers ---

ERROR_STATUS: dict[type[Exception], int] = {
    NotConnectedError: 401,
    VoteNotFoundError: 404,
    RevealInProgressError: 409,
    SubmissionRejectedError: 409,
    EncryptionFailedError: 502,
    SubmissionFailedError: 502,
    DecryptionFailedError: 502,
    ReadFailedError: 502,
    NotInitializedError: 503,
}


async def domain_error_handler(_request: Request, exc: Exception) -> JSONResponse:
    status_code = ERROR_STATUS.get(type(exc), 500)
    logger.warning("http.domain_error", error=str(exc), status=status_code)
    return JSONResponse(status_code=status_code, content={"detail": str(exc)})


for _exc_type in ERROR_STATUS:
    app.add_exception_handler(_exc_type, domain_error_handler)


@app.exception_handler(RequestValidationError)
async def validation_error_handler(
    _request: Request, exc: RequestValidationError
) -> JSONResponse:
    error_msg, field_errors = format_pydantic_errors(exc)  # type: ignore[arg-type]
    return JSONResponse(
        status_code=422, content={"detail": error_msg, "fields": field_errors}
    )


# --- Routers ---

app.include_router(votes.router)
app.include_router(sse.router)
