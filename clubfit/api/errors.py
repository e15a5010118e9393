from __future__ import annotations
from typing import Any, Dict, List
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError
from loguru import logger

from clubfit.errors import ClubFitError, ConflictError, RateLimitError

def flatten_pydantic_errors(exc: RequestValidationError) -> List[Dict[str, Any]]:
    """
    Convert pydantic/fastapi error objects into a list of dicts.
    """
    flat: List[Dict[str, Any]] = []
    for err in exc.errors():
        item: Dict[str, Any] = {
            "loc": list(err.get("loc", [])),
            "msg": str(err.get("msg", "")),
            "type": str(err.get("type", ""))
        }
        flat.append(item)
    return flat

def register_exception_handlers(app: FastAPI) -> None:
    """
    Attach global exception handlers. Service errors carry their own status code,
    HTTPException is left to FastAPI.
    """

    @app.exception_handler(ClubFitError)
    async def clubfit_exception_handler(request: Request, exc: ClubFitError):
        content: Dict[str, Any] = {"detail": exc.detail}
        headers = None
        if isinstance(exc, ConflictError) and exc.session_id is not None:
            # lets the client jump to the session it's already in
            content["session_id"] = exc.session_id
        if isinstance(exc, RateLimitError):
            headers = {"Retry-After": str(exc.retry_after)}
            content["retry_after"] = exc.retry_after
        logger.debug(f"{request.method} {request.url.path} -> {exc.status_code}: {exc.detail}")
        return JSONResponse(status_code=exc.status_code, content=content, headers=headers)

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        # bad input is a 400 like every other validation failure
        errors = flatten_pydantic_errors(exc)
        return JSONResponse(
            status_code=400,
            content={
                "detail": "Validation failed",
                "errors": errors
            }
        )

    @app.exception_handler(Exception)
    async def unhandled_exception_handler(request: Request, exc: Exception):
        # Last-resort
        logger.opt(exception=exc).error(f"Unhandled error on {request.method} {request.url.path}")
        return JSONResponse(
            status_code=500,
            content={"detail": "Internal server error"}
        )
