import json
from typing import Any, Dict, Tuple

from fastapi import Request
from starlette.datastructures import UploadFile

from ..core.responses import ApiError

# Nested objects arrive as JSON strings when a request is sent as a form.
JSON_FORM_FIELDS = {"contactPerson", "address", "operatingHours", "schedule"}

FORM_CONTENT_TYPES = ("multipart/form-data", "application/x-www-form-urlencoded")


async def read_payload(request: Request) -> Tuple[Dict[str, Any], Dict[str, UploadFile]]:
    """
    Read a JSON or form request body.

    Returns:
        Tuple of the field values and the uploaded files keyed by field name
    """
    content_type = request.headers.get("content-type", "")

    if content_type.startswith(FORM_CONTENT_TYPES):
        form = await request.form()
        payload: Dict[str, Any] = {}
        files: Dict[str, UploadFile] = {}
        for key, value in form.multi_items():
            if isinstance(value, UploadFile):
                files.setdefault(key, value)
            elif key in JSON_FORM_FIELDS:
                try:
                    payload[key] = json.loads(value)
                except ValueError:
                    raise ApiError(400, f"{key} must be valid JSON")
            else:
                payload[key] = value
        return payload, files

    body = await request.body()
    if not body:
        return {}, {}
    try:
        payload = json.loads(body)
    except ValueError:
        raise ApiError(400, "Request body must be valid JSON")
    if not isinstance(payload, dict):
        raise ApiError(400, "Request body must be a JSON object")
    return payload, {}
