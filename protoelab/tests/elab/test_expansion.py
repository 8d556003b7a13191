"""
Tests for case expansion: Pipeline multiplexing, Parallel replication and
the completeness checks on case bodies.
"""

import pytest

from protoelab.elab.expansion import CaseExpansionEngine
from protoelab.elab.graph import ConnectionEdge, ConnectionGraph, EdgeOrigin
from protoelab.errors import AmbiguousPipelineCase, IncompleteCase, MultipleDrivers
from protoelab.model import FunctionCase, Guard
from protoelab.model.expr import CaseValue, Const, GuardTest, Mux, Reduce, Ref
from protoelab.model.port import PortDirection, SignalRef

ADD = Guard.equals("fn", "ADD")
SUB = Guard.equals("fn", "SUB")


def ref(text):
    return SignalRef.parse(text)


def case(name, guard=None, reads=("a", "b"), writes=("y", "stuck"), parallel=False):
    return FunctionCase(
        name=name,
        guard=guard,
        annotation="@parallel" if parallel else "@pipeline",
        reads=list(reads),
        writes=list(writes),
    )


@pytest.fixture
def alu(make_module):
    def _alu(*cases, **kwargs):
        return make_module(
            "alu",
            "tightly_coupled",
            inputs=["a", "b", "c", "fn"],
            outputs=["y", "z"],
            cases=list(cases),
            **kwargs,
        )

    return _alu


def expand(module, graph=None):
    graph = graph if graph is not None else ConnectionGraph()
    return CaseExpansionEngine(graph).expand(module), graph


class TestPipeline:
    def test_single_unguarded_case_drives_directly(self, alu):
        _, graph = expand(alu(case("add")))
        assert graph.driver(ref("alu.out.y")) == CaseValue(
            "add", "y", (ref("alu.in.a"), ref("alu.in.b"))
        )
        assert all(e.origin == EdgeOrigin.BODY for e in graph)

    def test_disjoint_guards_become_a_mux_chain(self, alu):
        module = alu(case("add", ADD), case("sub", SUB), defaults={"y": "7"})
        _, graph = expand(module)
        reads = (ref("alu.in.a"), ref("alu.in.b"))
        tag = ref("alu.in.fn")
        assert graph.driver(ref("alu.out.y")) == Mux(
            GuardTest(tag, ADD),
            CaseValue("add", "y", reads),
            Mux(GuardTest(tag, SUB), CaseValue("sub", "y", reads), Const("7")),
        )
        # Falls back to zero when no default is declared
        stuck = graph.driver(ref("alu.ctrl.stuck"))
        assert stuck.other.other == Const(0)

    def test_qualified_default_wins(self, alu):
        module = alu(case("add", ADD), case("sub", SUB), defaults={"y": "1", "out.y": "2"})
        _, graph = expand(module)
        assert graph.driver(ref("alu.out.y")).other.other == Const("2")

    def test_complementary_guards_are_disjoint(self, alu):
        module = alu(case("add", ADD), case("rest", Guard.not_equals("fn", "ADD")))
        _, graph = expand(module)
        assert graph.is_driven(ref("alu.out.y"))

    def test_identical_guards_are_ambiguous(self, alu):
        with pytest.raises(AmbiguousPipelineCase) as exc_info:
            expand(alu(case("add", ADD), case("add2", ADD)))
        assert exc_info.value.entities == ("alu", "add", "add2")

    def test_unguarded_case_overlaps_everything(self, alu):
        with pytest.raises(AmbiguousPipelineCase):
            expand(alu(case("add", ADD), case("any")))

    def test_shared_protocol_output_needs_disjoint_guards(self, alu):
        module = alu(case("one", writes=["y", "stuck"]), case("two", writes=["z", "stuck"]))
        with pytest.raises(AmbiguousPipelineCase):
            expand(module)
        module = alu(case("one", ADD, writes=["y", "stuck"]), case("two", SUB, writes=["z", "stuck"]))
        _, graph = expand(module)
        assert graph.driver(ref("alu.out.z")) == Mux(
            GuardTest(ref("alu.in.fn"), SUB),
            CaseValue("two", "z", (ref("alu.in.a"), ref("alu.in.b"))),
            Const(0),
        )

    def test_case_must_drive_protocol_outputs(self, alu):
        with pytest.raises(IncompleteCase) as exc_info:
            expand(alu(case("add", writes=["y"])))
        assert exc_info.value.entities == ("alu", "add")

    def test_body_write_collides_with_existing_driver(self, alu):
        graph = ConnectionGraph()
        graph.add(
            ConnectionEdge(
                dst=ref("alu.ctrl.stuck"),
                expr=Ref(ref("x")),
                origin=EdgeOrigin.DIRECT,
            )
        )
        with pytest.raises(MultipleDrivers):
            expand(alu(case("add")), graph)


class TestParallel:
    @pytest.fixture
    def module(self, alu):
        return alu(
            case("add", ADD, parallel=True),
            case("neg", reads=["c"], writes=["z", "stuck"], parallel=True),
        )

    def test_each_case_gets_its_own_lane(self, module):
        expanded, graph = expand(module)
        assert expanded.lane_count == 2
        assert graph.driver(ref("alu.out.y[0]")) == Mux(
            GuardTest(ref("alu.in.fn[0]"), ADD),
            CaseValue("add", "y", (ref("alu.in.a[0]"), ref("alu.in.b[0]"))),
            Const(0),
        )
        assert graph.driver(ref("alu.out.z[1]")) == CaseValue(
            "neg", "z", (ref("alu.in.c[1]"),)
        )

    def test_protocol_outputs_are_reduced(self, module):
        _, graph = expand(module)
        stuck = graph.driver(ref("alu.ctrl.stuck"))
        assert isinstance(stuck, Reduce)
        assert stuck.op == "or"
        assert stuck.operands[1] == CaseValue("neg", "stuck", (ref("alu.in.c[1]"),))

    def test_lanes_only_carry_ports_their_case_uses(self, module):
        expanded, _ = expand(module)
        refs = {str(p.ref) for p in expanded.ports}
        assert {"alu.in.a[0]", "alu.in.b[0]", "alu.in.fn[0]", "alu.out.y[0]"} <= refs
        assert {"alu.in.c[1]", "alu.out.z[1]"} <= refs
        assert "alu.in.a[1]" not in refs
        assert "alu.in.c[0]" not in refs
        assert "alu.in.a" not in refs

    def test_lanes_do_not_share_reads(self, module):
        _, graph = expand(module)
        lane0 = set(graph.driver(ref("alu.out.y[0]")).refs())
        lane1 = set(graph.driver(ref("alu.out.z[1]")).refs())
        assert not lane0 & lane1


class TestPortSet:
    def test_scalar_ports_and_directions(self, alu):
        expanded, _ = expand(alu(case("add")))
        assert expanded.lane_count == 0
        y = expanded.get_port(ref("alu.out.y"))
        assert y.direction == PortDirection.OUT
        assert not y.protocol
        stall = expanded.get_port(ref("alu.ctrl.stall"))
        assert stall.protocol
        assert stall in expanded.inputs
        clear = expanded.get_port(ref("alu.ctrl.clear"))
        assert clear.optional

    def test_symbolic_width_is_resolved(self, make_module):
        module = make_module(
            "m",
            "tightly_coupled",
            inputs=[("d", "W")],
            parameters={"W": 16},
        )
        expanded, _ = expand(module)
        assert expanded.get_port(ref("m.in.d")).width == 16

    def test_dropped_ports_are_reported_separately(self, make_module):
        module = make_module(
            "m", "tightly_coupled", inputs=["a", {"name": "mask", "dropped": True}]
        )
        expanded, _ = expand(module)
        assert expanded.dropped == [ref("m.in.mask")]
        assert expanded.get_port(ref("m.in.mask")) is None
