"""
Case expansion engine.

Turns a module's annotated function cases into concrete edges:

* Pipeline cases share hardware. Cases writing the same output must have
  pairwise-disjoint guards; the output becomes a multiplexer chain in
  declaration order, falling back to the module default.
* Parallel cases are replicated. Case *i* becomes lane *i* of the data ports
  it touches; a guarded case tests lane *i* of its widened tag
  input. Protocol outputs stay scalar and combine the per-lane values.
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Set, Tuple

from protoelab.errors import AmbiguousPipelineCase, IncompleteCase
from protoelab.model.case import FunctionCase
from protoelab.model.expr import CaseValue, Const, Expr, GuardTest, Mux, Reduce
from protoelab.model.module import ModuleInterface
from protoelab.model.port import PortDirection, SignalRef
from protoelab.model.protocol import BUNDLE_NAMES, IN_BUNDLE

from .graph import ConnectionEdge, ConnectionGraph, EdgeOrigin

logger = logging.getLogger(__name__)

PortKey = Tuple[str, str]


@dataclass(frozen=True)
class ExpandedPort:
    """One concrete port after vectorization."""

    ref: SignalRef
    width: int
    direction: PortDirection
    optional: bool = False
    protocol: bool = False


@dataclass
class ExpandedModule:
    """Concrete port set of one module, handed to the back end."""

    name: str
    lane_count: int
    ports: List[ExpandedPort] = field(default_factory=list)
    dropped: List[SignalRef] = field(default_factory=list)

    def get_port(self, ref: SignalRef) -> Optional[ExpandedPort]:
        return next((p for p in self.ports if p.ref == ref), None)

    @property
    def inputs(self) -> List[ExpandedPort]:
        return [p for p in self.ports if p.direction == PortDirection.IN]

    @property
    def outputs(self) -> List[ExpandedPort]:
        return [p for p in self.ports if p.direction == PortDirection.OUT]


class CaseExpansionEngine:
    """Expands function cases of modules into body edges of a graph."""

    def __init__(self, graph: ConnectionGraph):
        self.graph = graph

    def expand(self, module: ModuleInterface) -> ExpandedModule:
        """Expand all cases of ``module`` and return its concrete port set.

        Raises:
            IncompleteCase: A case does not write every protocol output.
            AmbiguousPipelineCase: Two Pipeline guards on a shared output overlap.
            MultipleDrivers: A case writes a port that already has a driver.
        """
        self._check_complete(module)
        self._expand_pipeline(module)
        self._expand_parallel(module)
        expanded = self._port_set(module)
        logger.info(
            "Expanded module '%s': %d case(s), %d lane(s), %d port(s), %d dropped",
            module.name,
            len(module.cases),
            expanded.lane_count,
            len(expanded.ports),
            len(expanded.dropped),
        )
        return expanded

    # --- Checks ---

    @staticmethod
    def _written(module: ModuleInterface, case: FunctionCase) -> Set[PortKey]:
        written = set()
        for name in case.writes:
            bundle, port = module.locate(name)
            written.add((bundle, port.name))
        return written

    def _check_complete(self, module: ModuleInterface) -> None:
        required = [s for s in module.signals if s.is_output]
        for case in module.cases:
            written = self._written(module, case)
            missing = [s.qualified_name for s in required if (s.bundle, s.name) not in written]
            if missing:
                raise IncompleteCase(
                    f"Case does not drive protocol output(s) {', '.join(missing)}",
                    module.name,
                    case.name,
                )

    @staticmethod
    def _check_disjoint(module: ModuleInterface, key: PortKey, cases: List[FunctionCase]) -> None:
        for i, first in enumerate(cases):
            for second in cases[i + 1 :]:
                first_guard = first.guard
                second_guard = second.guard
                overlap = (
                    first_guard is None
                    or second_guard is None
                    or first_guard.overlaps(second_guard)
                )
                if overlap:
                    raise AmbiguousPipelineCase(
                        f"Guards '{first_guard or '*'}' and '{second_guard or '*'}' "
                        f"overlap on '{key[0]}.{key[1]}'",
                        module.name,
                        first.name,
                        second.name,
                    )

    # --- Pipeline ---

    @staticmethod
    def _default(module: ModuleInterface, key: PortKey) -> Const:
        bundle, port = key
        value = module.defaults.get(f"{bundle}.{port}", module.defaults.get(port, 0))
        return Const(value)

    def _expand_pipeline(self, module: ModuleInterface) -> None:
        cases = module.pipeline_cases
        by_port: Dict[PortKey, List[FunctionCase]] = {}
        for case in cases:
            for key in sorted(self._written(module, case)):
                by_port.setdefault(key, []).append(case)

        for key, group in by_port.items():
            self._check_disjoint(module, key, group)
            bundle, port = key
            if len(group) == 1 and not group[0].is_guarded:
                expr: Expr = self._case_value(module, group[0], port, lane=None)
            else:
                expr = self._default(module, key)
                for case in reversed(group):
                    expr = Mux(
                        self._guard_test(module, case, lane=None),
                        self._case_value(module, case, port, lane=None),
                        expr,
                    )
            self.graph.add(
                ConnectionEdge(
                    dst=module.ref(bundle, port),
                    expr=expr,
                    origin=EdgeOrigin.BODY,
                    label=f"{module.name}:" + "|".join(c.name for c in group),
                )
            )

    # --- Parallel ---

    def _expand_parallel(self, module: ModuleInterface) -> None:
        shared: Dict[PortKey, List[Expr]] = {}
        for lane, case in enumerate(module.parallel_cases):
            for key in sorted(self._written(module, case)):
                bundle, port = key
                value: Expr = self._case_value(module, case, port, lane)
                if case.is_guarded:
                    value = Mux(
                        self._guard_test(module, case, lane),
                        value,
                        self._default(module, key),
                    )
                if module.is_protocol_signal(bundle, port):
                    shared.setdefault(key, []).append(value)
                    continue
                self.graph.add(
                    ConnectionEdge(
                        dst=module.ref(bundle, port, lane),
                        expr=value,
                        origin=EdgeOrigin.BODY,
                        label=f"{module.name}:{case.name}",
                    )
                )

        for (bundle, port), values in shared.items():
            spec = module.protocol_signal(bundle, port)
            expr = values[0] if len(values) == 1 else Reduce(spec.reduction or "or", tuple(values))
            self.graph.add(
                ConnectionEdge(
                    dst=module.ref(bundle, port),
                    expr=expr,
                    origin=EdgeOrigin.BODY,
                    label=f"{module.name}:lanes",
                )
            )

    # --- Helpers ---

    @staticmethod
    def _lane_ref(module: ModuleInterface, name: str, lane: Optional[int]) -> SignalRef:
        bundle, port = module.locate(name)
        if lane is not None and module.is_vectorized(bundle, port.name):
            return module.ref(bundle, port.name, lane)
        return module.ref(bundle, port.name)

    def _case_value(
        self, module: ModuleInterface, case: FunctionCase, port: str, lane: Optional[int]
    ) -> CaseValue:
        reads = tuple(self._lane_ref(module, name, lane) for name in case.reads)
        return CaseValue(case.name, port, reads)

    def _guard_test(
        self, module: ModuleInterface, case: FunctionCase, lane: Optional[int]
    ) -> Expr:
        if not case.is_guarded:
            return Const(1)
        tag = module.ref(IN_BUNDLE, case.guard.tag)
        if lane is not None:
            tag = tag.with_lane(lane)
        return GuardTest(tag, case.guard)

    @staticmethod
    def _port_set(module: ModuleInterface) -> ExpandedModule:
        expanded = ExpandedModule(name=module.name, lane_count=module.lane_count)
        vector = set(module.vector_ports)
        lane_sets = [set(module.lane_ports(i)) for i in range(module.lane_count)]
        for bundle in BUNDLE_NAMES:
            for port in module.bundle(bundle).ports:
                if port.dropped:
                    expanded.dropped.append(module.ref(bundle, port.name))
                    continue
                key = (bundle, port.name)
                if key in vector:
                    lanes = [i for i, ports in enumerate(lane_sets) if key in ports]
                else:
                    lanes = [None]
                for lane in lanes:
                    expanded.ports.append(
                        ExpandedPort(
                            ref=module.ref(bundle, port.name, lane),
                            width=module.resolve_width(port),
                            direction=port.effective_direction,
                            optional=port.optional,
                            protocol=module.is_protocol_signal(bundle, port.name),
                        )
                    )
        return expanded
