"""Response envelope shared by every endpoint: ``{status, data, errors, meta}``."""

from pydantic import BaseModel


class ApiError(BaseModel):
    """Structured error detail."""

    code: str
    message: str
    field: str | None = None


def success_response(data: object, **meta: object) -> dict:
    """Wrap ``data``; keyword arguments end up in ``meta`` (counts, ids)."""
    return {
        "status": "success",
        "data": data,
        "errors": [],
        "meta": meta,
    }


def error_response(code: str, message: str, field: str | None = None) -> dict:
    """Envelope for a single error, as rendered by the exception handlers."""
    return {
        "status": "error",
        "data": None,
        "errors": [ApiError(code=code, message=message, field=field).model_dump()],
        "meta": {},
    }
