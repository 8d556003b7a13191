"""Tests for the completeness and combinational-deadlock checks."""

import pytest

from protoelab.elab.checker import ConnectivityChecker, check_design
from protoelab.elab.expansion import CaseExpansionEngine
from protoelab.elab.graph import ConnectionGraph
from protoelab.elab.resolver import BulkConnectionResolver
from protoelab.errors import CombinationalDeadlock, DanglingPort, ElaborationFailed
from protoelab.model import Design
from protoelab.model.design import connect
from protoelab.model.port import SignalRef


def checker_for(modules, connections=(), ports=(), external=()):
    design = Design(
        modules=list(modules),
        ports=[p if isinstance(p, dict) else {"name": p} for p in ports],
        connections=list(connections),
        external=list(external),
    )
    graph = ConnectionGraph()
    BulkConnectionResolver(design, graph).resolve_all()
    engine = CaseExpansionEngine(graph)
    expanded = {m.name: engine.expand(m) for m in design.modules}
    graph.freeze()
    return ConnectivityChecker(design, graph, expanded)


@pytest.fixture
def loop(make_module):
    """Two Decoupled modules feeding each other."""

    def _loop(protocol="decoupled", registered=False):
        a = make_module("a", protocol, inputs=["u"], outputs=["v"])
        b = make_module("b", "decoupled", inputs=["v"], outputs=["u"])
        return checker_for([a, b], [connect("a", "b", registered=registered), connect("b", "a")])

    return _loop


class TestCompleteness:
    def test_fully_connected_design_passes(self, make_module):
        m = make_module("m", "tightly_coupled", inputs=["a"], outputs=["y"])
        checker = checker_for(
            [m],
            [connect(["p"], "m"), connect("m", ["o"])],
            ports=["p", {"name": "o", "direction": "out"}],
            external=["m.ctrl.stall"],
        )
        assert checker.check_all()
        assert "passed" in checker.get_error_summary()

    def test_undriven_inputs_are_dangling(self, make_module):
        m = make_module("m", "tightly_coupled", inputs=["a"])
        checker = checker_for([m])
        assert not checker.check_all()
        assert {e.kind for e in checker.errors} == {"DanglingPort"}
        assert sorted(e.entities[0] for e in checker.errors) == ["m.ctrl.stall", "m.in.a"]

    def test_optional_inputs_may_stay_undriven(self, make_module):
        m = make_module(
            "m", "tightly_coupled", inputs=[{"name": "bias", "optional": True}]
        )
        checker = checker_for([m], external=["m.ctrl.stall"])
        assert checker.check_all()

    def test_undriven_top_level_output(self, make_module):
        m = make_module("m", "tightly_coupled")
        checker = checker_for(
            [m], ports=[{"name": "o", "direction": "out"}], external=["m.ctrl.stall"]
        )
        with pytest.raises(DanglingPort) as exc_info:
            checker.raise_if_errors()
        assert exc_info.value.entities == ("o",)

    def test_external_signal_must_not_be_driven(self, make_module):
        m = make_module("m", "tightly_coupled", inputs=["a"])
        checker = checker_for(
            [m],
            [connect(["p"], "m")],
            ports=["p"],
            external=["m.in.a", "m.ctrl.stall"],
        )
        errors = check_design(checker.design, checker.graph, checker.expanded)
        assert [e.kind for e in errors] == ["MultipleDrivers"]
        assert errors[0].entities == ("m.in.a",)

    def test_external_entry_covers_every_lane(self, make_module):
        from protoelab.model import FunctionCase

        m = make_module(
            "m",
            "tightly_coupled",
            inputs=["a", "b"],
            outputs=["y", "z"],
            cases=[
                FunctionCase(name="f", annotation="@parallel", reads=["a"], writes=["y", "stuck"]),
                FunctionCase(name="g", annotation="@parallel", reads=["b"], writes=["z", "stuck"]),
            ],
        )
        checker = checker_for([m], external=["m.in.a", "m.in.b", "m.ctrl.stall"])
        assert checker.check_all()


class TestDeadlock:
    def test_unbuffered_handshake_loop_deadlocks(self, loop):
        checker = loop()
        with pytest.raises(CombinationalDeadlock) as exc_info:
            checker.raise_if_errors()
        # One cycle through valid, one through ready
        assert len(exc_info.value.errors) == 2
        assert "a.out.valid" in exc_info.value.entities
        assert "b.in.ready" in exc_info.value.entities

    def test_registered_connection_breaks_the_loop(self, loop):
        assert loop(registered=True).check_all()

    def test_buffered_stage_breaks_the_loop(self, loop):
        assert loop(protocol={"type": "decoupled", "preBuf": 1}).check_all()

    def test_control_graph_contains_intrinsic_arcs(self, loop):
        g = loop().control_graph()
        assert g.has_edge(SignalRef.parse("a.in.valid"), SignalRef.parse("a.out.valid"))
        assert g.has_edge(SignalRef.parse("a.out.valid"), SignalRef.parse("b.in.valid"))

    def test_open_chain_reports_only_dangling_ports(self, make_module):
        a = make_module("a", inputs=["u"], outputs=["v"])
        b = make_module("b", inputs=["v"], outputs=["u"])
        checker = checker_for(
            [a, b],
            [connect("a", "b"), connect(["p"], ["a.in.u"]), connect("b", ["o"])],
            ports=["p", {"name": "o", "direction": "out"}],
        )
        with pytest.raises(DanglingPort) as exc_info:
            checker.raise_if_errors()
        assert sorted(exc_info.value.entities) == ["a.in.valid", "b.out.ready"]

    def test_deadlock_and_dangling_together(self, make_module):
        a = make_module("a", inputs=["u"], outputs=["v"])
        b = make_module("b", inputs=["v"], outputs=["u"])
        c = make_module("c", "tightly_coupled", inputs=["k"])
        checker = checker_for(
            [a, b, c], [connect("a", "b"), connect("b", "a")], external=["c.ctrl.stall"]
        )
        with pytest.raises(ElaborationFailed) as exc_info:
            checker.raise_if_errors()
        assert exc_info.value.kinds == [
            "DanglingPort",
            "CombinationalDeadlock",
            "CombinationalDeadlock",
        ]
