from typing import Any, Optional

from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse


class ApiError(Exception):
    """Error carrying the HTTP status and message shown to the caller."""

    def __init__(self, status_code: int, message: str = "Something went wrong"):
        super().__init__(message)
        self.status_code = status_code
        self.message = message


def api_response(status_code: int, data: Any = None, message: str = "Success") -> JSONResponse:
    """Wrap a payload in the standard success envelope."""
    return JSONResponse(
        status_code=status_code,
        content=jsonable_encoder({
            "statusCode": status_code,
            "data": data if data is not None else {},
            "message": message,
            "success": status_code < 400
        })
    )


def error_response(status_code: int, message: str, errors: Optional[list] = None) -> JSONResponse:
    content = {
        "statusCode": status_code,
        "message": message,
        "success": False
    }
    if errors:
        content["errors"] = errors
    return JSONResponse(status_code=status_code, content=jsonable_encoder(content))


def first_error_message(errors: list) -> str:
    """Human readable message for the first pydantic error."""
    if not errors:
        return "Invalid request"
    error = errors[0]
    message = str(error.get("msg", "Invalid request"))
    if message.startswith("Value error, "):
        return message[len("Value error, "):]
    location = [str(part) for part in error.get("loc", ()) if part not in ("body", "query", "path")]
    return f"{'.'.join(location)}: {message}" if location else message


def error_details(errors: list) -> list:
    """Pydantic errors reduced to field and message pairs."""
    return [
        {
            "field": ".".join(str(part) for part in error.get("loc", ()) if part not in ("body", "query", "path")),
            "message": str(error.get("msg", ""))
        }
        for error in errors
    ]
