"""Maps application errors onto HTTP responses."""

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from protean.exceptions import ObjectNotFoundError

from ordering.domain import logger
from shared.errors import AgroMartError


async def agromart_error_handler(request: Request, exc: AgroMartError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.warning("request_failed", path=request.url.path, error=exc.message, status=exc.status_code)
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


async def object_not_found_handler(request: Request, exc: ObjectNotFoundError) -> JSONResponse:
    return JSONResponse(status_code=404, content={"error": "Not found"})


def register_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(AgroMartError, agromart_error_handler)
    app.add_exception_handler(ObjectNotFoundError, object_not_found_handler)
