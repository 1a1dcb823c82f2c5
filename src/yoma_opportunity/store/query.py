"""Composable SQL predicates for opportunity queries."""

from dataclasses import dataclass
from typing import Any, Iterable, Optional

from yoma_opportunity.models.search import OrderField, OrderInstruction, SortOrder

# Base relation every predicate is written against
OPPORTUNITY_FROM = "opportunities o JOIN organizations org ON org.id = o.organization_id"


@dataclass(frozen=True)
class Predicate:
    """SQL boolean expression with positional parameters."""

    sql: str
    params: tuple[Any, ...] = ()


TRUE = Predicate("1 = 1")
FALSE = Predicate("1 = 0")


def and_(*predicates: Optional[Predicate]) -> Predicate:
    """Conjunction; no terms means no restriction."""
    terms = [p for p in predicates if p is not None]
    if not terms:
        return TRUE
    if len(terms) == 1:
        return terms[0]
    return Predicate(
        " AND ".join(f"({p.sql})" for p in terms),
        tuple(v for p in terms for v in p.params),
    )


def or_(*predicates: Optional[Predicate]) -> Predicate:
    """Disjunction; no terms matches nothing."""
    terms = [p for p in predicates if p is not None]
    if not terms:
        return FALSE
    if len(terms) == 1:
        return terms[0]
    return Predicate(
        " OR ".join(f"({p.sql})" for p in terms),
        tuple(v for p in terms for v in p.params),
    )


def in_(column: str, values: Iterable[Any]) -> Predicate:
    """column IN (...); an empty list matches nothing."""
    values = [str(v) for v in values]
    if not values:
        return FALSE
    placeholders = ", ".join("?" for _ in values)
    return Predicate(f"{column} IN ({placeholders})", tuple(values))


def exists_in(join_table: str, column: str, values: Iterable[Any]) -> Predicate:
    """Opportunity has at least one join row in join_table whose column is in values."""
    inner = in_(f"j.{column}", values)
    if inner is FALSE:
        return FALSE
    return Predicate(
        f"EXISTS (SELECT 1 FROM {join_table} j WHERE j.opportunity_id = o.id AND {inner.sql})",
        inner.params,
    )


def like_pattern(value: str) -> str:
    """Substring pattern for LIKE ... ESCAPE '\\'."""
    escaped = value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    return f"%{escaped}%"


def contains(column: str, value: str) -> Predicate:
    """Case-insensitive substring match (SQLite LIKE folds ASCII case)."""
    return Predicate(f"{column} LIKE ? ESCAPE '\\'", (like_pattern(value),))


_ORDER_COLUMNS: dict[OrderField, str] = {
    OrderField.DATE_START: "o.date_start",
    # open-ended opportunities sort as if they end last
    OrderField.DATE_END: "COALESCE(o.date_end, '9999-12-31')",
    OrderField.TITLE: "o.title",
    OrderField.ID: "o.id",
    OrderField.DATE_CREATED: "o.date_created",
    OrderField.DATE_MODIFIED: "o.date_modified",
}


class OpportunityQuery:
    """WHERE and ORDER BY terms over OPPORTUNITY_FROM, built up by the services."""

    def __init__(self) -> None:
        self._predicates: list[Predicate] = []
        self._order: list[tuple[str, tuple[Any, ...]]] = []

    def where(self, predicate: Predicate) -> "OpportunityQuery":
        self._predicates.append(predicate)
        return self

    def order_by(self, expression: str, descending: bool = False, params: tuple[Any, ...] = ()) -> "OpportunityQuery":
        self._order.append((f"{expression} {'DESC' if descending else 'ASC'}", params))
        return self

    def order_by_instruction(self, instruction: OrderInstruction) -> "OpportunityQuery":
        descending = instruction.sort_order == SortOrder.DESCENDING
        if instruction.field == OrderField.SEQUENCE:
            sequence = [str(i) for i in instruction.sequence or []]
            if not sequence:
                return self
            whens = " ".join("WHEN ? THEN ?" for _ in sequence)
            params: tuple[Any, ...] = tuple(v for pos, oid in enumerate(sequence) for v in (oid, pos))
            return self.order_by(f"CASE o.id {whens} ELSE {len(sequence)} END", descending, params)
        return self.order_by(_ORDER_COLUMNS[instruction.field], descending)

    @property
    def predicate(self) -> Predicate:
        return and_(*self._predicates)

    @property
    def ordered(self) -> bool:
        return bool(self._order)

    def order_clause(self) -> tuple[str, tuple[Any, ...]]:
        if not self._order:
            return "", ()
        sql = "ORDER BY " + ", ".join(term for term, _ in self._order)
        return sql, tuple(v for _, params in self._order for v in params)
