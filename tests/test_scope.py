"""Scope tree parsing, set algebra, catalog validation and overlap detection."""

import pytest

from model import Project
from scope import (
    MalformedScopePolicy,
    OverlapGranularity,
    ScopeError,
    ScopeItem,
    ScopePart,
    WorkUnit,
    build_scope,
    cartesian_size,
    catalogs_of,
    check_scope_overlap,
    intersection,
    parse_scope,
    require_non_empty,
    scope_to_dicts,
    union,
    units_of,
    validate_subset,
    validate_within_catalogs,
)


def _project():
    return Project(name="Hull", divisions=["D1", "D2"], part_nos=["P1", "P2"], work_types=["W1", "W2"])


class TestParseScope:
    def test_parses_json_shape(self):
        tree = parse_scope([{"division": "D1", "parts": [{"name": "P1", "work_types": ["W2", "W1"]}]}])
        assert tree == [ScopeItem("D1", (ScopePart("P1", ("W1", "W2")),))]

    def test_accepts_camel_case_work_types(self):
        tree = parse_scope([{"division": "D1", "parts": [{"name": "P1", "workTypes": ["W1"]}]}])
        assert units_of(tree) == {WorkUnit("D1", "P1", "W1")}

    def test_merges_duplicate_branches(self):
        raw = [
            {"division": "D1", "parts": [{"name": "P1", "work_types": ["W1"]}]},
            {"division": "D1", "parts": [{"name": "P1", "work_types": ["W1", "W2"]}]},
        ]
        tree = parse_scope(raw)
        assert len(tree) == 1
        assert tree[0].parts[0].work_types == ("W1", "W2")

    def test_strips_whitespace(self):
        tree = parse_scope([{"division": " D1 ", "parts": [{"name": "P1 ", "work_types": [" W1"]}]}])
        assert units_of(tree) == {WorkUnit("D1", "P1", "W1")}

    def test_typed_items_pass_through(self):
        typed = build_scope(["D1"], ["P1"], ["W1"])
        assert parse_scope(typed) == typed

    @pytest.mark.parametrize(
        "raw",
        [
            None,
            "D1",
            [42],
            [{"division": "", "parts": []}],
            [{"division": "D1"}],
            [{"division": "D1", "parts": ["P1"]}],
            [{"division": "D1", "parts": [{"name": "P1"}]}],
            [{"division": "D1", "parts": [{"name": "P1", "work_types": [""]}]}],
        ],
    )
    def test_rejects_malformed(self, raw):
        with pytest.raises(ScopeError):
            parse_scope(raw)

    def test_round_trips_through_dicts(self):
        tree = build_scope(["D1", "D2"], ["P1"], ["W1"])
        assert parse_scope(scope_to_dicts(tree)) == tree


class TestSetOperations:
    def test_build_scope_is_cartesian(self):
        tree = build_scope(["D1", "D2"], ["P1", "P2"], ["W1", "W2"])
        assert len(units_of(tree)) == 8
        assert cartesian_size(_project()) == 8

    def test_union_and_intersection(self):
        a = build_scope(["D1"], ["P1", "P2"], ["W1"])
        b = build_scope(["D1"], ["P2"], ["W1", "W2"])
        assert units_of(union(a, b)) == {
            WorkUnit("D1", "P1", "W1"),
            WorkUnit("D1", "P2", "W1"),
            WorkUnit("D1", "P2", "W2"),
        }
        assert units_of(intersection(a, b)) == {WorkUnit("D1", "P2", "W1")}

    def test_empty_intersection_builds_empty_tree(self):
        a = build_scope(["D1"], ["P1"], ["W1"])
        b = build_scope(["D2"], ["P1"], ["W1"])
        assert intersection(a, b) == []

    def test_catalogs_of(self):
        tree = parse_scope([
            {"division": "D2", "parts": [{"name": "P1", "work_types": ["W2"]}]},
            {"division": "D1", "parts": [{"name": "P2", "work_types": ["W1"]}]},
        ])
        assert catalogs_of(tree) == (["D1", "D2"], ["P1", "P2"], ["W1", "W2"])


class TestValidation:
    def test_within_catalogs_passes(self):
        validate_within_catalogs(build_scope(["D1"], ["P2"], ["W2"]), _project())

    @pytest.mark.parametrize(
        "units, bad",
        [
            ((["D9"], ["P1"], ["W1"]), "Division 'D9'"),
            ((["D1"], ["P9"], ["W1"]), "Part 'P9'"),
            ((["D1"], ["P1"], ["W9"]), "Work type 'W9'"),
        ],
    )
    def test_outside_catalog_raises(self, units, bad):
        with pytest.raises(ScopeError, match=bad):
            validate_within_catalogs(build_scope(*units), _project())

    def test_subset(self):
        parent = build_scope(["D1"], ["P1", "P2"], ["W1"])
        validate_subset(build_scope(["D1"], ["P2"], ["W1"]), parent)
        with pytest.raises(ScopeError, match="outside the parent scope"):
            validate_subset(build_scope(["D1"], ["P2"], ["W2"]), parent)

    def test_empty_scope_rejected(self):
        with pytest.raises(ScopeError):
            require_non_empty([])


class TestOverlap:
    CANDIDATE = [{"division": "D1", "parts": [{"name": "P1", "work_types": ["W1"]}]}]

    def test_division_part_ignores_work_type(self):
        rework = [{"division": "D1", "parts": [{"name": "P1", "work_types": ["W2"]}]}]
        assert check_scope_overlap(self.CANDIDATE, rework) is True

    def test_division_part_allows_parts_without_work_types(self):
        rework = [{"division": "D1", "parts": [{"name": "P1"}]}]
        assert check_scope_overlap(self.CANDIDATE, rework) is True

    def test_unit_granularity_needs_full_triple(self):
        rework = [{"division": "D1", "parts": [{"name": "P1", "work_types": ["W2"]}]}]
        assert check_scope_overlap(self.CANDIDATE, rework, OverlapGranularity.UNIT) is False

    def test_disjoint(self):
        rework = [{"division": "D1", "parts": [{"name": "P2", "work_types": ["W1"]}]}]
        assert check_scope_overlap(self.CANDIDATE, rework) is False

    def test_malformed_fail_closed(self):
        with pytest.raises(ScopeError):
            check_scope_overlap("not a scope", self.CANDIDATE)

    def test_malformed_fail_open(self, caplog):
        result = check_scope_overlap(
            "not a scope", self.CANDIDATE, on_malformed=MalformedScopePolicy.FAIL_OPEN
        )
        assert result is False
        assert "Malformed scope ignored" in caplog.text
