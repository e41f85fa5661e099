"""
Rank threshold curves from admin-entered formulas.

A formula such as ``a * x^2 + b * x + c`` maps a tier's rank order ``x`` to its
new min_points. Formulas are parsed with ``ast`` and evaluated by walking the
tree; only the node types and names listed below are accepted, so a formula
can never reach attributes, calls outside the whitelist, or builtins.
"""

from __future__ import annotations

import ast
import math
import operator
from typing import TYPE_CHECKING, Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator

from ranking.exceptions import CurveExpressionError
from ranking.settings import RankTier, validate_rank_tiers

if TYPE_CHECKING:
    from collections.abc import Callable, Iterable, Mapping, Sequence

VARIABLE = "x"
MAX_EXPRESSION_LENGTH = 500
MAX_EXPONENT = 100

_CONSTANTS: dict[str, float] = {"pi": math.pi, "e": math.e}

_FUNCTIONS: dict[str, Callable[..., float]] = {
    "abs": abs,
    "sqrt": math.sqrt,
    "ln": math.log,
    "log": math.log10,
    "exp": math.exp,
    "sin": math.sin,
    "cos": math.cos,
    "tan": math.tan,
    "pow": math.pow,
    "min": min,
    "max": max,
}

_BINARY_OPS: dict[type[ast.operator], Callable[[Any, Any], Any]] = {
    ast.Add: operator.add,
    ast.Sub: operator.sub,
    ast.Mult: operator.mul,
    ast.Div: operator.truediv,
    ast.FloorDiv: operator.floordiv,
    ast.Mod: operator.mod,
    ast.Pow: operator.pow,
}

_UNARY_OPS: dict[type[ast.unaryop], Callable[[Any], Any]] = {
    ast.UAdd: operator.pos,
    ast.USub: operator.neg,
}

RESERVED_NAMES = frozenset({VARIABLE, *_CONSTANTS, *_FUNCTIONS})


class CurveExpression:
    """A parsed, whitelisted formula in one variable ``x`` plus named parameters."""

    def __init__(self, source: str) -> None:
        if len(source) > MAX_EXPRESSION_LENGTH:
            raise CurveExpressionError(f"expression longer than {MAX_EXPRESSION_LENGTH} characters")
        try:
            # "^" is power in formulas, so it must bind like "**" rather than XOR.
            tree = ast.parse(source.strip().replace("^", "**"), mode="eval")
        except SyntaxError as exc:
            raise CurveExpressionError(f"invalid expression: {source!r}") from exc
        self._source = source
        self._tree = tree
        self._names = self._check(tree.body)
        if VARIABLE not in self._names:
            raise CurveExpressionError(f"expression must use the variable {VARIABLE!r}")

    @property
    def source(self) -> str:
        return self._source

    @property
    def parameters(self) -> frozenset[str]:
        """Free names the caller must supply, excluding x, constants and functions."""
        return frozenset(self._names - RESERVED_NAMES)

    def _check(self, node: ast.AST) -> set[str]:
        match node:
            case ast.Constant(value=value) if isinstance(value, int | float) and not isinstance(value, bool):
                return set()
            case ast.Name(id=name):
                if name in _FUNCTIONS:
                    raise CurveExpressionError(f"function {name!r} must be called")
                return {name}
            case ast.BinOp(left=left, op=op, right=right) if type(op) in _BINARY_OPS:
                return self._check(left) | self._check(right)
            case ast.UnaryOp(op=op, operand=operand) if type(op) in _UNARY_OPS:
                return self._check(operand)
            case ast.Call(func=ast.Name(id=name), args=args, keywords=[]) if name in _FUNCTIONS:
                names: set[str] = set()
                for arg in args:
                    names |= self._check(arg)
                return names
            case _:
                raise CurveExpressionError(f"unsupported syntax in expression: {ast.dump(node)[:60]}")

    def evaluate(self, x: float, params: Mapping[str, float] | None = None) -> float:
        params = params or {}
        missing = self.parameters - params.keys()
        if missing:
            raise CurveExpressionError(f"missing parameters: {', '.join(sorted(missing))}")
        env = {**_CONSTANTS, **params, VARIABLE: x}
        try:
            result = self._eval(self._tree.body, env)
            if not isinstance(result, complex):
                result = float(result)
        except (ArithmeticError, ValueError, TypeError) as exc:
            raise CurveExpressionError(f"cannot evaluate {self._source!r} at x={x}: {exc}") from exc
        if isinstance(result, complex) or not math.isfinite(result):
            raise CurveExpressionError(f"{self._source!r} is not a finite real number at x={x}")
        return result

    def _eval(self, node: ast.AST, env: Mapping[str, float]) -> Any:  # noqa: ANN401
        match node:
            case ast.Constant(value=value):
                return value
            case ast.Name(id=name):
                return env[name]
            case ast.BinOp(left=left, op=op, right=right):
                lhs, rhs = self._eval(left, env), self._eval(right, env)
                if isinstance(op, ast.Pow):
                    if abs(rhs) > MAX_EXPONENT:
                        raise ValueError(f"exponent {rhs} is too large")
                    # Float powers overflow instead of growing unbounded integers.
                    lhs, rhs = float(lhs), float(rhs)
                return _BINARY_OPS[type(op)](lhs, rhs)
            case ast.UnaryOp(op=op, operand=operand):
                return _UNARY_OPS[type(op)](self._eval(operand, env))
            case ast.Call(func=ast.Name(id=name), args=args):
                return _FUNCTIONS[name](*(self._eval(a, env) for a in args))
        raise CurveExpressionError(f"unsupported syntax in expression: {ast.dump(node)[:60]}")


class CurveRange(BaseModel):
    """A formula applied to tiers whose rank_order falls in [start_rank, end_rank]."""

    model_config = ConfigDict(frozen=True)

    name: str = ""
    start_rank: int = Field(ge=1)
    end_rank: int = Field(ge=1)
    expression: str
    params: dict[str, float] = Field(default_factory=dict)
    enabled: bool = True

    @model_validator(mode="after")
    def _check_bounds(self) -> CurveRange:
        if self.end_rank < self.start_rank:
            raise ValueError("end_rank must not be before start_rank")
        return self

    def covers(self, rank_order: int) -> bool:
        return self.enabled and self.start_rank <= rank_order <= self.end_rank


def apply_curve(tiers: Iterable[RankTier], ranges: Sequence[CurveRange]) -> list[RankTier]:
    """
    Recompute tier boundaries from curve ranges.

    Each tier takes min_points from the first enabled range covering its
    rank_order, clamped at 0 and rounded; tiers no range covers keep their
    current min_points. The lowest tier is pinned to 0. Every max_points
    becomes the next tier's min_points - 1 and the top tier keeps its
    max_points. Raises CurveExpressionError if the resulting sequence is not
    strictly increasing or does not form a valid ladder.
    """
    ordered = sorted(tiers, key=lambda t: t.rank_order)
    if not ordered:
        return []
    compiled = [(r, CurveExpression(r.expression)) for r in ranges if r.enabled]

    minimums: list[int] = []
    for tier in ordered:
        found = next(((r, expr) for r, expr in compiled if r.covers(tier.rank_order)), None)
        if found is None:
            minimums.append(tier.min_points)
            continue
        curve_range, expression = found
        value = expression.evaluate(tier.rank_order, curve_range.params)
        minimums.append(max(0, round(value)))
    minimums[0] = 0

    for previous, current, tier in zip(minimums, minimums[1:], ordered[1:], strict=False):
        if current <= previous + 1:
            raise CurveExpressionError(
                f"curve is not strictly increasing at {tier.rank_name} (rank {tier.rank_order}): "
                f"{previous} -> {current}",
            )

    result: list[RankTier] = []
    for index, tier in enumerate(ordered):
        is_last = index == len(ordered) - 1
        max_points = tier.max_points if is_last else minimums[index + 1] - 1
        try:
            result.append(
                RankTier.model_validate(
                    {**tier.model_dump(), "min_points": minimums[index], "max_points": max_points},
                ),
            )
        except ValidationError as exc:
            raise CurveExpressionError(f"curve produces an invalid range for {tier.rank_name}: {exc}") from exc
    validate_rank_tiers(result)
    return result
