"""Unit tests for the SQL predicate builder."""

import uuid

from yoma_opportunity.models.search import OrderField, OrderInstruction, SortOrder
from yoma_opportunity.store.query import (
    FALSE,
    TRUE,
    OpportunityQuery,
    Predicate,
    and_,
    contains,
    exists_in,
    in_,
    like_pattern,
    or_,
)


class TestCombinators:
    """Tests for and_ / or_ / in_."""

    def test_and_without_terms_is_true(self) -> None:
        assert and_() == TRUE

    def test_or_without_terms_is_false(self) -> None:
        assert or_() == FALSE

    def test_single_term_is_returned_unchanged(self) -> None:
        p = Predicate("o.title = ?", ("x",))
        assert and_(p) is p
        assert or_(p) is p

    def test_and_wraps_terms_and_concatenates_params(self) -> None:
        """Params keep the order of the terms."""
        p = and_(Predicate("a = ?", (1,)), None, Predicate("b = ?", (2,)))
        assert p.sql == "(a = ?) AND (b = ?)"
        assert p.params == (1, 2)

    def test_or_nested_in_and(self) -> None:
        p = and_(Predicate("a = 1"), or_(Predicate("b = ?", (2,)), Predicate("c = ?", (3,))))
        assert p.sql == "(a = 1) AND ((b = ?) OR (c = ?))"
        assert p.params == (2, 3)

    def test_in_with_empty_values_matches_nothing(self) -> None:
        assert in_("o.id", []) == FALSE

    def test_in_stringifies_values(self) -> None:
        oid = uuid.uuid4()
        p = in_("o.id", [oid])
        assert p.sql == "o.id IN (?)"
        assert p.params == (str(oid),)

    def test_exists_in_with_empty_values_matches_nothing(self) -> None:
        assert exists_in("opportunity_categories", "category_id", []) == FALSE

    def test_exists_in_correlates_on_opportunity(self) -> None:
        cid = uuid.uuid4()
        p = exists_in("opportunity_categories", "category_id", [cid])
        assert "FROM opportunity_categories j" in p.sql
        assert "j.opportunity_id = o.id" in p.sql
        assert p.params == (str(cid),)


class TestContains:
    """Tests for LIKE patterns."""

    def test_like_pattern_escapes_wildcards(self) -> None:
        assert like_pattern("50%_off\\") == "%50\\%\\_off\\\\%"

    def test_contains_uses_escape_clause(self) -> None:
        p = contains("o.title", "py")
        assert p.sql == "o.title LIKE ? ESCAPE '\\'"
        assert p.params == ("%py%",)


class TestOpportunityQuery:
    """Tests for ordering."""

    def test_unordered_query_has_empty_clause(self) -> None:
        q = OpportunityQuery()
        assert q.ordered is False
        assert q.order_clause() == ("", ())

    def test_order_by_instruction_maps_fields(self) -> None:
        q = OpportunityQuery()
        q.order_by_instruction(OrderInstruction(field=OrderField.DATE_START, sort_order=SortOrder.DESCENDING))
        q.order_by_instruction(OrderInstruction(field=OrderField.TITLE))
        sql, params = q.order_clause()
        assert sql == "ORDER BY o.date_start DESC, o.title ASC"
        assert params == ()

    def test_sequence_orders_by_position(self) -> None:
        """Ids outside the sequence sort after it."""
        a, b = uuid.uuid4(), uuid.uuid4()
        q = OpportunityQuery().order_by_instruction(OrderInstruction(field=OrderField.SEQUENCE, sequence=[a, b]))
        sql, params = q.order_clause()
        assert sql == "ORDER BY CASE o.id WHEN ? THEN ? WHEN ? THEN ? ELSE 2 END ASC"
        assert params == (str(a), 0, str(b), 1)

    def test_empty_sequence_adds_nothing(self) -> None:
        q = OpportunityQuery().order_by_instruction(OrderInstruction(field=OrderField.SEQUENCE, sequence=[]))
        assert q.ordered is False

    def test_predicate_ands_where_terms(self) -> None:
        q = OpportunityQuery().where(Predicate("a = ?", (1,))).where(Predicate("b = ?", (2,)))
        assert q.predicate.params == (1, 2)
