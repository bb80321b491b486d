"""Map service outcomes to HTTP errors."""

from fastapi import HTTPException, status

from app.core.retry import ErrorKind
from app.services.results import ServiceResult

_FAILURE_STATUS = {
    ErrorKind.INVALID_PROMPT: status.HTTP_400_BAD_REQUEST,
    ErrorKind.TRANSIENT_UPSTREAM: status.HTTP_503_SERVICE_UNAVAILABLE,
    ErrorKind.TERMINAL_UPSTREAM: status.HTTP_502_BAD_GATEWAY,
}


def raise_for_result(result: ServiceResult, *, empty_detail: str = "No results found") -> None:
    """Raise unless ``result`` carries data the route can return."""
    if not result.success:
        code = _FAILURE_STATUS.get(result.error_kind, status.HTTP_502_BAD_GATEWAY)
        raise HTTPException(status_code=code, detail=result.message)
    if result.is_empty or result.data is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=result.message or empty_detail,
        )
