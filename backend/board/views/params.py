"""Request parsing helpers shared by the JSON handlers."""

from __future__ import annotations

import json
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from starlette.requests import Request


class BadRequestError(ValueError):
    """Malformed request input; handlers answer 422."""


def query_int(request: Request, name: str, default: int, *, minimum: int = 0, maximum: int | None = None) -> int:
    raw = request.query_params.get(name)
    if raw is None or raw == "":
        return default
    try:
        value = int(raw)
    except ValueError as e:
        raise BadRequestError(f"'{name}' must be an integer") from e
    if value < minimum:
        raise BadRequestError(f"'{name}' must be >= {minimum}")
    if maximum is not None and value > maximum:
        raise BadRequestError(f"'{name}' must be <= {maximum}")
    return value


async def read_json_body(request: Request) -> dict[str, Any]:
    raw_body = await request.body()
    if not raw_body or raw_body.strip() == b"":
        return {}
    try:
        body = json.loads(raw_body)
    except (ValueError, json.JSONDecodeError) as e:  # fmt: skip
        raise BadRequestError("Invalid JSON body") from e
    if not isinstance(body, dict):
        raise BadRequestError("JSON body must be an object")
    return body
