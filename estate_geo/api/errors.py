import structlog
from fastapi import HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from estate_geo.core import exceptions as domain_exceptions

# Client went away while a scan was running (nginx convention)
CLIENT_CLOSED_REQUEST = 499

logger = structlog.get_logger(__name__)


def _http_exception_handler(_: Request, exc: HTTPException) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.detail})


def _validation_exception_handler(_: Request, exc: RequestValidationError) -> JSONResponse:
    # Uniform body instead of FastAPI's per-field list
    return JSONResponse(status_code=422, content={"detail": "Unprocessable Entity"})


def _unhandled_exception_handler(_: Request, exc: Exception) -> JSONResponse:
    return JSONResponse(status_code=500, content={"detail": "Internal Server Error"})


def _bad_request_handler(_: Request, exc: domain_exceptions.DomainError) -> JSONResponse:
    return JSONResponse(status_code=400, content={"detail": str(exc) or "Bad Request"})


def _unavailable_handler(request: Request, exc: domain_exceptions.InfrastructureError):
    logger.warning(
        "geo_service_unavailable",
        path=request.url.path,
        error_type=exc.__class__.__name__,
        error=str(exc),
    )
    return JSONResponse(status_code=503, content={"detail": "Service Unavailable"})


def _cancelled_handler(_: Request, exc: domain_exceptions.QueryCancelled) -> JSONResponse:
    return JSONResponse(status_code=CLIENT_CLOSED_REQUEST, content={"detail": "Query Cancelled"})


def install(app) -> None:
    app.add_exception_handler(HTTPException, _http_exception_handler)
    app.add_exception_handler(RequestValidationError, _validation_exception_handler)
    # DecodeError covers a caller-supplied point in an unknown encoding
    for exc_type in (domain_exceptions.ValidationError, domain_exceptions.DecodeError):
        app.add_exception_handler(exc_type, _bad_request_handler)
    app.add_exception_handler(domain_exceptions.InfrastructureError, _unavailable_handler)
    app.add_exception_handler(domain_exceptions.QueryCancelled, _cancelled_handler)
    app.add_exception_handler(Exception, _unhandled_exception_handler)
