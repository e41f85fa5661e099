"""Rank configuration: read, edit one tier, regenerate thresholds from curves, forced reload."""

from __future__ import annotations

from typing import TYPE_CHECKING

import structlog
from pydantic import ValidationError
from starlette.responses import JSONResponse

from board.views.params import BadRequestError, read_json_body
from board.views.types import ApplyCurveRequest, UpdateRankRequest
from ranking.curve import apply_curve
from ranking.exceptions import ConfigurationError

if TYPE_CHECKING:
    from collections.abc import Sequence

    from starlette.requests import Request

    from ranking.config_provider import ConfigProvider
    from ranking.settings import RankTier

logger = structlog.get_logger()


def _ranks_response(provider: ConfigProvider, tiers: Sequence[RankTier], **extra: object) -> JSONResponse:
    return JSONResponse(
        {
            "config_hash": provider.snapshot().digest(),
            "ranks": [tier.model_dump(mode="json") for tier in tiers],
            **extra,
        },
    )


async def get_rank_config(request: Request) -> JSONResponse:
    provider: ConfigProvider = request.app.state.config_provider
    return _ranks_response(provider, provider.snapshot().ranks)


async def update_rank(request: Request) -> JSONResponse:
    """PUT /api/config/ranks/{rank_id} - change fields of one tier; the ladder must stay contiguous."""
    provider: ConfigProvider = request.app.state.config_provider
    rank_id: int = request.path_params["rank_id"]
    try:
        req = UpdateRankRequest(**await read_json_body(request))
    except (BadRequestError, TypeError, ValidationError) as e:
        return JSONResponse({"error": str(e)}, status_code=422)
    changes = req.model_dump(exclude_unset=True)
    if not changes:
        return JSONResponse({"error": "no fields to update"}, status_code=422)

    try:
        tier = provider.update_rank_tier(rank_id, **changes)
    except KeyError:
        return JSONResponse({"error": "Rank not found"}, status_code=404)
    except ConfigurationError as e:
        logger.info("rank update rejected", rank_id=rank_id, reason=str(e))
        return JSONResponse({"error": str(e)}, status_code=422)

    logger.info("rank tier updated", rank_id=rank_id, fields=sorted(changes))
    return JSONResponse({"config_hash": provider.snapshot().digest(), "rank": tier.model_dump(mode="json")})


async def apply_rank_curve(request: Request) -> JSONResponse:
    """POST /api/config/ranks/curve - recompute tier thresholds; with preview=true nothing is saved."""
    provider: ConfigProvider = request.app.state.config_provider
    try:
        req = ApplyCurveRequest(**await read_json_body(request))
    except (BadRequestError, TypeError, ValidationError) as e:
        return JSONResponse({"error": str(e)}, status_code=422)

    try:
        tiers = apply_curve(provider.get_rank_tiers(), req.ranges)
        if not req.preview:
            tiers = list(provider.replace_rank_tiers(tiers))
    except ConfigurationError as e:
        logger.info("rank curve rejected", reason=str(e))
        return JSONResponse({"error": str(e)}, status_code=422)

    if not req.preview:
        logger.info("rank curve applied", ranges=len(req.ranges), tiers=len(tiers))
    return _ranks_response(provider, tiers, preview=req.preview)


async def reload_config(request: Request) -> JSONResponse:
    provider: ConfigProvider = request.app.state.config_provider
    try:
        provider.reload()
    except ConfigurationError as e:
        logger.warning("forced configuration reload failed", error=str(e))
        return JSONResponse({"error": str(e)}, status_code=422)
    return JSONResponse({"status": "reloaded", "config_hash": provider.snapshot().digest()})
