"""Tests for the connection graph's single-driver and freeze rules."""

import pytest

from protoelab.elab.graph import ConnectionEdge, ConnectionGraph, EdgeOrigin, FrozenGraphError
from protoelab.errors import MultipleDrivers
from protoelab.model.expr import Not, Or, Reduce, Ref
from protoelab.model.port import SignalRef

DST = SignalRef.parse("b.in.a")
STALL = SignalRef.parse("p.ctrl.stall")


def direct(src, dst=DST, **kwargs):
    return ConnectionEdge(dst=dst, expr=Ref(SignalRef.parse(src)), origin=EdgeOrigin.DIRECT, **kwargs)


def stall_source(expr):
    return ConnectionEdge(dst=STALL, expr=expr, origin=EdgeOrigin.GLUE, stall_source=True)


def test_replayed_edge_is_a_no_op():
    graph = ConnectionGraph()
    assert graph.add(direct("x", label="first"))
    assert not graph.add(direct("x", label="second"), replay=True)
    assert len(graph) == 1


def test_duplicate_edge_is_a_second_driver():
    graph = ConnectionGraph()
    graph.add(direct("x", label="first"))
    with pytest.raises(MultipleDrivers, match=r"connected twice \(first, second\)"):
        graph.add(direct("x", label="second"))
    assert len(graph) == 1


def test_second_driver_is_rejected():
    graph = ConnectionGraph()
    graph.add(direct("x"))
    with pytest.raises(MultipleDrivers) as exc_info:
        graph.add(direct("y"))
    assert exc_info.value.entities == ("b.in.a",)


def test_registered_flag_distinguishes_edges():
    graph = ConnectionGraph()
    graph.add(direct("x"))
    with pytest.raises(MultipleDrivers):
        graph.add(direct("x", registered=True))


def test_stall_sources_are_or_merged():
    graph = ConnectionGraph()
    first = Ref(SignalRef.parse("c.ctrl.stall"))
    second = Not(Ref(SignalRef.parse("d.in.ready")))
    graph.add(stall_source(first))
    graph.add(stall_source(second))
    assert graph.driver(STALL) == Or((first, second))
    assert len(graph.edges_to(STALL)) == 2


def test_stall_source_does_not_merge_with_plain_driver():
    graph = ConnectionGraph()
    graph.add(direct("x", dst=STALL))
    with pytest.raises(MultipleDrivers):
        graph.add(stall_source(Ref(SignalRef.parse("c.ctrl.stuck"))))


def test_frozen_graph():
    graph = ConnectionGraph()
    graph.add(direct("x"))
    graph.freeze()
    assert graph.frozen
    assert not graph.add(direct("x"), replay=True)
    with pytest.raises(FrozenGraphError):
        graph.add(direct("y", dst=SignalRef.parse("b.in.c")))


def test_queries_and_serialization():
    graph = ConnectionGraph()
    graph.add(direct("x"))
    graph.add(stall_source(Ref(SignalRef.parse("c.ctrl.stall"))))
    assert graph.is_driven(DST)
    assert not graph.is_driven(SignalRef.parse("b.in.c"))
    assert graph.driver(SignalRef.parse("b.in.c")) is None
    assert graph.destinations == [DST, STALL]
    assert [e.dst for e in graph.edges_by_origin(EdgeOrigin.GLUE)] == [STALL]
    assert graph.to_dict()[0] == {
        "dst": "b.in.a",
        "expr": "x",
        "sources": ["x"],
        "origin": "direct",
        "registered": False,
        "label": "",
    }


def test_lane_shares_are_and_merged():
    ready = SignalRef.parse("alu.out.ready")
    graph = ConnectionGraph()
    for consumer in ("b", "c"):
        graph.add(direct(f"{consumer}.in.ready", dst=ready, lane_share=True))
    assert graph.driver(ready) == Reduce(
        "and",
        (Ref(SignalRef.parse("b.in.ready")), Ref(SignalRef.parse("c.in.ready"))),
    )


def test_lane_share_does_not_merge_with_plain_driver():
    ready = SignalRef.parse("alu.out.ready")
    graph = ConnectionGraph()
    graph.add(direct("b.in.ready", dst=ready))
    with pytest.raises(MultipleDrivers):
        graph.add(direct("c.in.ready", dst=ready, lane_share=True))
