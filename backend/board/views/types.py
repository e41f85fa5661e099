from pydantic import BaseModel, ConfigDict, Field

from ranking.curve import CurveRange
from ranking.settings import MinorRankType


class SubmitGameRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    players: list[str] = Field(min_length=4, max_length=4)
    scores: list[int] = Field(min_length=4, max_length=4)
    game_type: str | None = None


class UpdateRankRequest(BaseModel):
    """Partial tier update; only the fields present in the body change."""

    model_config = ConfigDict(extra="forbid")

    rank_name: str | None = None
    min_points: int | None = None
    max_points: int | None = None
    promotion_bonus: int | None = None
    demotion_penalty: int | None = None
    rank_order: int | None = None
    major_rank: str | None = None
    minor_rank_type: MinorRankType | None = None
    minor_rank_range: tuple[int, int] | None = None
    minor_rank: int | None = None


class ApplyCurveRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    ranges: list[CurveRange] = Field(min_length=1)
    preview: bool = False
