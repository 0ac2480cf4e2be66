"""
Clause objects for the generated SELECT statements.

Queries are assembled as a small tree (projection, predicates, order items,
limit) and rendered to PostgreSQL text in one pass. Placeholders are
numbered during rendering, so the parameter list always matches ``$1..$n``
in the order they appear in the SQL.
"""
from dataclasses import dataclass, field
from typing import Any, List, Optional


@dataclass(frozen=True)
class Param:
    """A bound value plus an optional SQL cast for its placeholder."""
    value: Any
    cast: Optional[str] = None


@dataclass
class RenderedQuery:
    """SQL text and its positional parameters."""
    sql: str
    params: List[Any]


class RenderContext:
    """Collects parameters and hands out placeholder numbers."""

    def __init__(self):
        self.params: List[Any] = []

    def bind(self, param: Param) -> str:
        self.params.append(param.value)
        return f"${len(self.params)}{param.cast or ''}"


class Predicate:
    """Base class for WHERE clause terms."""

    def render(self, ctx: RenderContext) -> str:
        raise NotImplementedError


@dataclass
class Comparison(Predicate):
    """``<expression> <operator> $n``"""
    expression: str
    operator: str
    param: Param

    def render(self, ctx: RenderContext) -> str:
        return f"{self.expression} {self.operator} {ctx.bind(self.param)}"


@dataclass
class InList(Predicate):
    """``<expression> IN ($n, $n+1, ...)``"""
    expression: str
    params: List[Param]

    def render(self, ctx: RenderContext) -> str:
        placeholders = ", ".join(ctx.bind(param) for param in self.params)
        return f"{self.expression} IN ({placeholders})"


@dataclass
class ILike(Predicate):
    """Case-insensitive pattern match against the text form of an expression."""
    expression: str
    param: Param

    def render(self, ctx: RenderContext) -> str:
        return f"{self.expression} ILIKE {ctx.bind(self.param)}"


@dataclass
class OrderItem:
    expression: str
    direction: str = "ASC"

    def render(self) -> str:
        return f"{self.expression} {self.direction}"


@dataclass
class SelectQuery:
    """A single-table SELECT."""
    projection: List[str]
    source: str
    where: List[Predicate] = field(default_factory=list)
    order_by: List[OrderItem] = field(default_factory=list)
    limit: Optional[Param] = None
    distinct: bool = False

    def render(self) -> RenderedQuery:
        ctx = RenderContext()
        keyword = "SELECT DISTINCT" if self.distinct else "SELECT"
        sql = f"{keyword} {', '.join(self.projection)} FROM {self.source}"

        if self.where:
            sql += " WHERE " + " AND ".join(predicate.render(ctx) for predicate in self.where)

        if self.order_by:
            sql += " ORDER BY " + ", ".join(item.render() for item in self.order_by)

        if self.limit is not None:
            sql += f" LIMIT {ctx.bind(self.limit)}"

        return RenderedQuery(sql=sql, params=ctx.params)
