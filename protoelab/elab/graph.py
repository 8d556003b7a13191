"""
Connection graph.

Accumulates directed edges as connections, glue rules and case expansion are
processed, enforcing one driver per destination port. Two kinds of
contribution are merged instead of rejected: stall sources from glue rules
are OR-merged into a module's ``stall`` input, and handshake contributions of
lane connections (``alu[i] >>> x``) are AND-merged into the protocol signal
all lanes share.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Iterator, List, Optional

from protoelab.errors import MultipleDrivers
from protoelab.model.expr import Expr, Or, Reduce
from protoelab.model.port import SignalRef

logger = logging.getLogger(__name__)


class EdgeOrigin(str, Enum):
    """Which pass created an edge."""

    DIRECT = "direct"
    GLUE = "glue"
    BODY = "body"


@dataclass(frozen=True)
class ConnectionEdge:
    """``dst := expr``."""

    dst: SignalRef
    expr: Expr
    origin: EdgeOrigin = EdgeOrigin.DIRECT
    registered: bool = False
    # Glue contribution to a stall input; several may be OR-merged
    stall_source: bool = False
    # Lane connection's share of a protocol signal common to every lane
    lane_share: bool = False
    # Connection or case that created the edge, for diagnostics
    label: str = field(default="", compare=False)

    @property
    def sources(self) -> List[SignalRef]:
        return list(dict.fromkeys(self.expr.refs()))

    def __str__(self) -> str:
        register = " (registered)" if self.registered else ""
        return f"{self.dst} := {self.expr}{register}"


class FrozenGraphError(RuntimeError):
    """Raised when a frozen graph would change."""


class ConnectionGraph:
    """
    Directed signal graph with at most one driver per destination.

    An edge identical to one already present is a second driver like any
    other, unless it is added with ``replay=True``: re-resolving the
    connections that built the graph is then a no-op.
    """

    def __init__(self):
        self._edges: List[ConnectionEdge] = []
        self._by_dst: Dict[SignalRef, List[ConnectionEdge]] = {}
        self._frozen = False

    @property
    def frozen(self) -> bool:
        return self._frozen

    def freeze(self) -> None:
        """Reject any further change to the edge set."""
        self._frozen = True
        logger.debug("Connection graph frozen with %d edge(s)", len(self._edges))

    def add(self, edge: ConnectionEdge, replay: bool = False) -> bool:
        """Add ``edge``; return False when replaying an edge already present.

        Raises:
            MultipleDrivers: If the destination already has a driver, or the
                same edge is added twice outside a replay.
            FrozenGraphError: If the graph is frozen and the edge is new.
        """
        existing = self._by_dst.get(edge.dst, [])
        if edge in existing:
            if replay:
                return False
            previous = existing[existing.index(edge)]
            raise MultipleDrivers(
                f"'{edge.dst}' is connected twice ({previous.label}, {edge.label})",
                edge.dst,
            )
        if self._frozen:
            raise FrozenGraphError(f"Cannot add edge to frozen graph: {edge}")
        if existing:
            mergeable = (edge.stall_source and all(e.stall_source for e in existing)) or (
                edge.lane_share and all(e.lane_share for e in existing)
            )
            if not mergeable:
                previous = existing[0]
                raise MultipleDrivers(
                    f"'{edge.dst}' is driven by '{previous.expr}' ({previous.label}) "
                    f"and '{edge.expr}' ({edge.label})",
                    edge.dst,
                )
        self._edges.append(edge)
        self._by_dst.setdefault(edge.dst, []).append(edge)
        logger.debug("Edge %s [%s]", edge, edge.origin.value)
        return True

    def __iter__(self) -> Iterator[ConnectionEdge]:
        return iter(self._edges)

    def __len__(self) -> int:
        return len(self._edges)

    @property
    def edges(self) -> List[ConnectionEdge]:
        return list(self._edges)

    def edges_by_origin(self, origin: EdgeOrigin) -> List[ConnectionEdge]:
        return [e for e in self._edges if e.origin == origin]

    def edges_to(self, dst: SignalRef) -> List[ConnectionEdge]:
        return list(self._by_dst.get(dst, []))

    def is_driven(self, dst: SignalRef) -> bool:
        return dst in self._by_dst

    @property
    def destinations(self) -> List[SignalRef]:
        return list(self._by_dst)

    def driver(self, dst: SignalRef) -> Optional[Expr]:
        """The single expression driving ``dst``.

        Merged stall sources are OR-ed, merged lane shares AND-ed.
        """
        edges = self._by_dst.get(dst)
        if not edges:
            return None
        if len(edges) == 1:
            return edges[0].expr
        if edges[0].lane_share:
            return Reduce("and", tuple(e.expr for e in edges))
        return Or(tuple(e.expr for e in edges))

    def to_dict(self) -> List[Dict[str, Any]]:
        """Serializable edge list for the back end."""
        return [
            {
                "dst": str(edge.dst),
                "expr": str(edge.expr),
                "sources": [str(s) for s in edge.sources],
                "origin": edge.origin.value,
                "registered": edge.registered,
                "label": edge.label,
            }
            for edge in self._edges
        ]
