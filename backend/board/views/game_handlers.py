"""Game submission and lookup endpoints."""

from __future__ import annotations

from typing import TYPE_CHECKING

import structlog
from pydantic import ValidationError
from starlette.responses import JSONResponse

from board.views.params import BadRequestError, query_int, read_json_body
from board.views.types import SubmitGameRequest
from ranking.exceptions import InvalidGameSubmissionError

if TYPE_CHECKING:
    from starlette.requests import Request

    from ranking.service import ScoringService

logger = structlog.get_logger()

MAX_GAME_PAGE = 100


async def submit_game(request: Request) -> JSONResponse:
    """POST /api/games - record a finished game and return per-seat results."""
    service: ScoringService = request.app.state.service
    try:
        req = SubmitGameRequest(**await read_json_body(request))
    except (BadRequestError, TypeError, ValidationError) as e:
        return JSONResponse({"error": str(e)}, status_code=422)

    try:
        submission = await service.submit_game(req.players, req.scores, req.game_type)
    except InvalidGameSubmissionError as e:
        logger.info("game submission rejected", reason=str(e))
        return JSONResponse({"error": str(e)}, status_code=400)

    return JSONResponse(submission.model_dump(mode="json"), status_code=201)


async def list_games(request: Request) -> JSONResponse:
    """GET /api/games?limit&offset - match history, newest first."""
    service: ScoringService = request.app.state.service
    try:
        limit = query_int(request, "limit", 20, minimum=1, maximum=MAX_GAME_PAGE)
        offset = query_int(request, "offset", 0)
    except BadRequestError as e:
        return JSONResponse({"error": str(e)}, status_code=422)
    games = await service.list_games(limit=limit, offset=offset)
    return JSONResponse(games.model_dump(mode="json"))


async def get_game(request: Request) -> JSONResponse:
    service: ScoringService = request.app.state.service
    detail = await service.game_detail(request.path_params["game_id"])
    if detail is None:
        return JSONResponse({"error": "Game not found"}, status_code=404)
    return JSONResponse(detail.model_dump(mode="json"))
