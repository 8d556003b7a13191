"""
Deadlock/completeness checker.

Whole-graph validation run after resolution and expansion. Unlike the
earlier passes it does not stop at the first problem: every independent
dangling port, conflicting external driver and combinational cycle is
collected before reporting.
"""

import logging
from typing import Dict, List, Set

from networkx.algorithms.components.strongly_connected import strongly_connected_components
from networkx.classes.digraph import DiGraph

from protoelab.errors import (
    CombinationalDeadlock,
    DanglingPort,
    ElaborationError,
    MultipleDrivers,
    combine_errors,
)
from protoelab.model.design import Design
from protoelab.model.port import PortDirection, SignalRef
from protoelab.model.protocol import combinational_arcs

from .expansion import ExpandedModule
from .graph import ConnectionGraph

logger = logging.getLogger(__name__)


class ConnectivityChecker:
    """
    Checks a resolved design for completeness and combinational deadlock.

    Usage:
        checker = ConnectivityChecker(design, graph, expanded)
        if not checker.check_all():
            print(checker.get_error_summary())
    """

    def __init__(
        self,
        design: Design,
        graph: ConnectionGraph,
        expanded: Dict[str, ExpandedModule],
    ):
        self.design = design
        self.graph = graph
        self.expanded = expanded
        self.errors: List[ElaborationError] = []

    def check_all(self) -> bool:
        """
        Run all checks.

        Returns:
            True if no errors were found
        """
        self.errors.clear()
        self.check_drivers()
        self.check_deadlock()
        return len(self.errors) == 0

    def raise_if_errors(self) -> None:
        """Run all checks and raise the collected errors.

        Errors of one kind are raised as that kind; mixed kinds are
        wrapped in ``ElaborationFailed``.
        """
        if not self.check_all():
            raise combine_errors(self.errors)

    # --- Completeness ---

    def check_drivers(self) -> None:
        """Every required input has exactly one driver, externals have none."""
        for module in self.expanded.values():
            for port in module.inputs:
                self._check_sink(port.ref, port.optional)
        for port in self.design.ports:
            if port.effective_direction == PortDirection.OUT:
                self._check_sink(SignalRef(port=port.name), port.optional)

    def _check_sink(self, ref: SignalRef, optional: bool) -> None:
        driven = self.graph.is_driven(ref)
        if self.design.is_external(ref):
            if driven:
                self.errors.append(
                    MultipleDrivers("Signal is driven by the environment and the design", ref)
                )
            return
        if not driven and not optional:
            self.errors.append(DanglingPort("Input has no driver", ref))

    # --- Deadlock ---

    def control_graph(self) -> DiGraph:
        """Same-cycle dependency graph over protocol control signals."""
        control = self._control_signals()
        g = DiGraph()
        g.add_nodes_from(control)
        for edge in self.graph:
            if edge.registered or edge.dst.with_lane(None) not in control:
                continue
            for src in edge.sources:
                src = src.with_lane(None)
                if src in control:
                    g.add_edge(src, edge.dst.with_lane(None))
        for module in self.design.modules:
            for (src_bundle, src_name), (dst_bundle, dst_name) in combinational_arcs(
                module.protocol
            ):
                g.add_edge(module.ref(src_bundle, src_name), module.ref(dst_bundle, dst_name))
        return g

    def _control_signals(self) -> Set[SignalRef]:
        return {
            module.ref(spec.bundle, spec.name)
            for module in self.design.modules
            for spec in module.signals
        }

    def check_deadlock(self) -> None:
        """Report every cycle through control signals with no registered break."""
        g = self.control_graph()
        cycles = [
            sorted(str(n) for n in scc)
            for scc in strongly_connected_components(g)
            if len(scc) > 1 or any(g.has_edge(n, n) for n in scc)
        ]
        for cycle in sorted(cycles):
            logger.debug("Control cycle: %s", " -> ".join(cycle))
            self.errors.append(
                CombinationalDeadlock(
                    "Combinational cycle through control signals without a register",
                    *cycle,
                )
            )

    def get_error_summary(self) -> str:
        """Get human-readable error summary."""
        if not self.errors:
            return "\n✓ All connectivity checks passed"
        lines = [f"\n{len(self.errors)} Error(s):"]
        lines.extend(
            f"  [{err.kind}] {', '.join(err.entities)}: {err.detail}" for err in self.errors
        )
        return "\n".join(lines)


def check_design(
    design: Design, graph: ConnectionGraph, expanded: Dict[str, ExpandedModule]
) -> List[ElaborationError]:
    """
    Convenience function to check a resolved design.

    Returns:
        List of collected errors (empty if valid)
    """
    checker = ConnectivityChecker(design, graph, expanded)
    checker.check_all()
    return list(checker.errors)
