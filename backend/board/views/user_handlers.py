"""User profile and point history endpoints."""

from __future__ import annotations

from typing import TYPE_CHECKING

from starlette.responses import JSONResponse

from board.views.params import BadRequestError, query_int

if TYPE_CHECKING:
    from starlette.requests import Request

    from ranking.service import ScoringService

MAX_HISTORY_PAGE = 500


async def get_user(request: Request) -> JSONResponse:
    service: ScoringService = request.app.state.service
    profile = await service.user_profile(request.path_params["user_id"])
    if profile is None:
        return JSONResponse({"error": "User not found"}, status_code=404)
    # Password hashes never leave the server.
    return JSONResponse(profile.model_dump(mode="json", exclude={"user": {"password_hash"}}))


async def get_user_history(request: Request) -> JSONResponse:
    """GET /api/users/{user_id}/history?limit - newest entries first."""
    service: ScoringService = request.app.state.service
    user_id = request.path_params["user_id"]
    try:
        limit = query_int(request, "limit", 20, minimum=1, maximum=MAX_HISTORY_PAGE)
    except BadRequestError as e:
        return JSONResponse({"error": str(e)}, status_code=422)

    profile = await service.user_profile(user_id)
    if profile is None:
        return JSONResponse({"error": "User not found"}, status_code=404)
    history = await service.user_history(user_id, limit=limit)
    return JSONResponse(
        {
            "user_id": user_id,
            "current_rank": profile.stats.current_rank,
            "history": [entry.model_dump(mode="json") for entry in history],
        },
    )
