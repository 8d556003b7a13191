"""
Elaboration pipeline.

Runs the passes in order over one design:

1. category conformance (dropped ports are filled in),
2. bulk connection resolution, including protocol glue,
3. case expansion of every module,
4. graph freeze,
5. completeness and deadlock checking.

The first four passes stop at the first error. The checker collects every
independent problem before raising.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from protoelab.model.category import CategoryLibrary, get_category_library
from protoelab.model.design import Design
from protoelab.utils import enum_value

from .checker import ConnectivityChecker
from .expansion import CaseExpansionEngine, ExpandedModule
from .graph import ConnectionEdge, ConnectionGraph, EdgeOrigin
from .resolver import BulkConnectionResolver

logger = logging.getLogger(__name__)


@dataclass
class ElaboratedDesign:
    """Frozen connection graph plus the concrete port set of every module."""

    design: Design
    graph: ConnectionGraph
    modules: Dict[str, ExpandedModule] = field(default_factory=dict)

    def reresolve(self) -> List[ConnectionEdge]:
        """Resolve all connections again against the frozen graph.

        Returns:
            The edges that would be new. Always empty for a successfully
            elaborated design; anything new raises ``FrozenGraphError``.
        """
        return BulkConnectionResolver(self.design, self.graph).resolve_all(replay=True)

    def to_dict(self) -> Dict[str, Any]:
        """Serializable summary for the back end and the CLI."""
        return {
            "name": self.design.name,
            "modules": [
                {
                    "name": m.name,
                    "lanes": m.lane_count,
                    "ports": [
                        {
                            "ref": str(p.ref),
                            "width": p.width,
                            "direction": enum_value(p.direction),
                            "protocol": p.protocol,
                        }
                        for p in m.ports
                    ],
                    "dropped": [str(ref) for ref in m.dropped],
                }
                for m in self.modules.values()
            ],
            "edges": self.graph.to_dict(),
        }


class Elaborator:
    """
    Elaborates a design into an :class:`ElaboratedDesign`.

    Usage:
        result = Elaborator(design).run()
        for edge in result.graph:
            ...
    """

    def __init__(self, design: Design, category_library: Optional[CategoryLibrary] = None):
        self.design = design
        self.category_library = category_library

    def _conform(self) -> Design:
        if not any(m.category for m in self.design.modules):
            return self.design
        library = self.category_library or get_category_library()
        modules = [library.conform(m) for m in self.design.modules]
        return self.design.model_copy(update={"modules": modules})

    def run(self) -> ElaboratedDesign:
        """Run every pass and return the frozen result.

        Raises:
            ElaborationError: The first error of a stop-on-first pass, or the
                errors collected by the checker.
        """
        logger.info(
            "Elaborating design '%s': %d module(s), %d connection(s)",
            self.design.name,
            len(self.design.modules),
            len(self.design.connections),
        )
        design = self._conform()

        graph = ConnectionGraph()
        BulkConnectionResolver(design, graph).resolve_all()

        engine = CaseExpansionEngine(graph)
        modules = {m.name: engine.expand(m) for m in design.modules}
        graph.freeze()

        ConnectivityChecker(design, graph, modules).raise_if_errors()

        logger.info(
            "Design '%s' elaborated: %d edge(s) (%d direct, %d glue, %d body)",
            design.name,
            len(graph),
            len(graph.edges_by_origin(EdgeOrigin.DIRECT)),
            len(graph.edges_by_origin(EdgeOrigin.GLUE)),
            len(graph.edges_by_origin(EdgeOrigin.BODY)),
        )
        return ElaboratedDesign(design=design, graph=graph, modules=modules)


def elaborate(design: Design, category_library: Optional[CategoryLibrary] = None) -> ElaboratedDesign:
    """Convenience function: ``Elaborator(design).run()``."""
    return Elaborator(design, category_library).run()
