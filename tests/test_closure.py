"""Tests for the pure closure computation."""
import uuid

from app.services.hierarchy_service import compute_closure


def ids(*names):
    return {name: uuid.uuid4() for name in names}


def as_set(rows):
    return set(rows)


def test_chain_is_capped_at_three_levels():
    m = ids("A", "B", "C", "D", "E")
    edges = [(m["A"], m["B"]), (m["B"], m["C"]), (m["C"], m["D"]), (m["D"], m["E"])]

    rows = compute_closure([m["A"]], edges)

    assert as_set(rows) == {
        (m["A"], m["B"], 1),
        (m["A"], m["C"], 2),
        (m["A"], m["D"], 3),
    }


def test_every_root_gets_its_own_descendants():
    m = ids("A", "B", "C")
    edges = [(m["A"], m["B"]), (m["B"], m["C"])]

    rows = compute_closure(list(m.values()), edges)

    assert as_set(rows) == {
        (m["A"], m["B"], 1),
        (m["A"], m["C"], 2),
        (m["B"], m["C"], 1),
    }


def test_minimum_depth_is_recorded():
    m = ids("A", "B", "C")
    edges = [(m["A"], m["B"]), (m["B"], m["C"]), (m["A"], m["C"])]

    rows = compute_closure([m["A"]], edges)

    assert as_set(rows) == {(m["A"], m["B"], 1), (m["A"], m["C"], 1)}


def test_cyclic_input_terminates_without_self_relation():
    m = ids("A", "B")
    edges = [(m["A"], m["B"]), (m["B"], m["A"])]

    rows = compute_closure([m["A"]], edges)

    assert rows == [(m["A"], m["B"], 1)]


def test_managers_without_edges_have_no_relations():
    m = ids("A", "B")
    assert compute_closure(list(m.values()), []) == []


def test_custom_max_depth():
    m = ids("A", "B", "C")
    edges = [(m["A"], m["B"]), (m["B"], m["C"])]

    rows = compute_closure([m["A"]], edges, max_depth=1)

    assert rows == [(m["A"], m["B"], 1)]
