"""Leaderboard and rank distribution endpoints."""

from __future__ import annotations

from typing import TYPE_CHECKING

from starlette.responses import JSONResponse

from board.views.params import BadRequestError, query_int

if TYPE_CHECKING:
    from starlette.requests import Request

    from ranking.service import ScoringService

MAX_PAGE_SIZE = 200


async def get_ranking(request: Request) -> JSONResponse:
    """GET /api/ranking?limit&offset&major_rank"""
    service: ScoringService = request.app.state.service
    try:
        limit = query_int(request, "limit", 50, minimum=1, maximum=MAX_PAGE_SIZE)
        offset = query_int(request, "offset", 0)
    except BadRequestError as e:
        return JSONResponse({"error": str(e)}, status_code=422)

    major_rank = request.query_params.get("major_rank") or None
    board = await service.leaderboard(limit=limit, offset=offset, major_rank=major_rank)
    return JSONResponse(board.model_dump(mode="json"))


async def get_ranking_stats(request: Request) -> JSONResponse:
    service: ScoringService = request.app.state.service
    distribution = await service.rank_distribution()
    return JSONResponse(distribution.model_dump(mode="json"))
