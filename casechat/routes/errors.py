from typing import Any

import httpx
from fastapi import status
from fastapi.responses import JSONResponse


def response_body(response: httpx.Response) -> Any:
    try:
        return response.json()
    except ValueError:
        return response.text


def external_error_response(
    message: str,
    error: Exception,
    include_status: bool = False
) -> JSONResponse:
    """
    JSON error body for a failed operation.

    With `include_status`, a chat service rejection passes its status code and
    body through to the caller. Everything else is a 500 `{error, details}`.
    """
    if include_status and isinstance(error, httpx.HTTPStatusError):
        status_code = error.response.status_code
        return JSONResponse(
            status_code=status_code,
            content={
                "error": message,
                "details": response_body(error.response) or str(error),
                "status": status_code,
            }
        )

    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"error": message, "details": str(error)}
    )
