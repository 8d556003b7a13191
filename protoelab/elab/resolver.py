"""
Bulk connection resolver.

Expands each ``source >>> sink`` connection into explicit point-to-point
edges. Module endpoints expose their data ports by name; bundle literals are
matched by name when named and by position otherwise. Protocol signals are
never matched as data: identical protocols are wired straight through and
differing protocols are joined by the glue generator. A lane endpoint
contributes to the handshake its module shares across lanes; those
contributions are AND-merged by the graph.
"""

import logging
from dataclasses import dataclass, replace
from typing import List, Optional, Sequence

from protoelab.errors import DanglingPort, DirectionMismatch, UnknownSignal, WidthMismatch
from protoelab.model.design import BundleEndpoint, Connection, Design, ModuleEndpoint
from protoelab.model.expr import Ref
from protoelab.model.module import ModuleInterface
from protoelab.model.port import SignalRef
from protoelab.model.protocol import IN_BUNDLE, OUT_BUNDLE

from .glue import glue
from .graph import ConnectionEdge, ConnectionGraph, EdgeOrigin

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Terminal:
    """One matchable signal of an endpoint."""

    key: str
    ref: SignalRef
    optional: bool = False


class BulkConnectionResolver:
    """
    Resolves connections of a design into a connection graph.

    Connections are processed in declaration order, and a port driven by an
    earlier connection rejects any later one, even an identical duplicate.
    Resolving again with ``replay=True`` adds nothing for connections that
    are already in the graph.
    """

    def __init__(self, design: Design, graph: Optional[ConnectionGraph] = None):
        self.design = design
        self.graph = graph if graph is not None else ConnectionGraph()

    def resolve_all(self, replay: bool = False) -> List[ConnectionEdge]:
        """Resolve every connection; return the edges that were new."""
        added: List[ConnectionEdge] = []
        for connection in self.design.connections:
            added.extend(self.resolve(connection, replay))
        logger.info(
            "Resolved %d connection(s): %d new edge(s), %d total",
            len(self.design.connections),
            len(added),
            len(self.graph),
        )
        return added

    def resolve(self, connection: Connection, replay: bool = False) -> List[ConnectionEdge]:
        """Resolve one connection into the graph; return the new edges.

        Raises:
            DanglingPort: If the endpoints' port sets do not match exactly.
            WidthMismatch: If matched ports disagree on width.
            DirectionMismatch: If matched ports are both sources or both sinks.
            MultipleDrivers: If a destination already has a driver.
            UnknownSignal: If an endpoint references something undeclared.
        """
        edges = self.plan(connection)
        added = [edge for edge in edges if self.graph.add(edge, replay)]
        logger.debug("%s: %d edge(s), %d new", connection, len(edges), len(added))
        return added

    def plan(self, connection: Connection) -> List[ConnectionEdge]:
        """Compute the edges of one connection without touching the graph."""
        source, sink = connection.source, connection.sink
        if isinstance(source, ModuleEndpoint) and isinstance(sink, ModuleEndpoint):
            return self._resolve_modules(source, sink, connection)
        if isinstance(source, ModuleEndpoint):
            pairs = self._match(
                self._module_terminals(source, OUT_BUNDLE),
                True,
                self._bundle_terminals(sink),
                sink.named,
            )
        elif isinstance(sink, ModuleEndpoint):
            pairs = self._match(
                self._bundle_terminals(source),
                source.named,
                self._module_terminals(sink, IN_BUNDLE),
                True,
            )
        else:
            pairs = self._match(
                self._bundle_terminals(source),
                source.named,
                self._bundle_terminals(sink),
                sink.named,
            )
        return [self._wire(a, b, connection) for a, b in pairs]

    # --- Endpoints ---

    def _module_terminals(self, endpoint: ModuleEndpoint, bundle: str) -> List[Terminal]:
        """Data ports of one bundle; a lane endpoint exposes only that lane."""
        module = self.design.module(endpoint.instance)
        if endpoint.lane is not None and endpoint.lane >= module.lane_count:
            raise UnknownSignal(
                f"Lane {endpoint.lane} out of range ({module.lane_count} lanes)",
                endpoint,
            )
        terminals = []
        for port in module.data_ports(bundle):
            if port.dropped:
                continue
            if endpoint.lane is None:
                if module.is_vectorized(bundle, port.name):
                    continue
            elif not module.has_lane(bundle, port.name, endpoint.lane):
                continue
            terminals.append(
                Terminal(port.name, module.ref(bundle, port.name, endpoint.lane), port.optional)
            )
        return terminals

    @staticmethod
    def _bundle_terminals(endpoint: BundleEndpoint) -> List[Terminal]:
        return [Terminal(item.key, item.ref) for item in endpoint.items]

    # --- Matching ---

    def _match(
        self,
        left: Sequence[Terminal],
        left_named: bool,
        right: Sequence[Terminal],
        right_named: bool,
    ):
        if left_named and right_named:
            return self._match_by_name(left, right)
        return self._match_by_position(left, right)

    @staticmethod
    def _match_by_name(left: Sequence[Terminal], right: Sequence[Terminal]):
        left_by_key = {t.key: t for t in left}
        right_keys = {t.key for t in right}
        unmatched = [t for t in right if t.key not in left_by_key and not t.optional]
        unmatched += [t for t in left if t.key not in right_keys and not t.optional]
        if unmatched:
            raise DanglingPort(
                "Name-based connection leaves ports without a counterpart",
                *(t.ref for t in unmatched),
            )
        return [(left_by_key[t.key], t) for t in right if t.key in left_by_key]

    @staticmethod
    def _match_by_position(left: Sequence[Terminal], right: Sequence[Terminal]):
        count = min(len(left), len(right))
        extra = [t for t in list(left[count:]) + list(right[count:]) if not t.optional]
        if extra:
            raise DanglingPort(
                f"Positional connection of {len(left)} to {len(right)} signal(s)",
                *(t.ref for t in extra),
            )
        return list(zip(left[:count], right[:count]))

    def _wire(self, a: Terminal, b: Terminal, connection: Connection) -> ConnectionEdge:
        """Create the edge for a matched pair, oriented from source to sink."""
        width_a = self.design.width_of(a.ref)
        width_b = self.design.width_of(b.ref)
        if width_a != width_b:
            raise WidthMismatch(f"{width_a} bit(s) vs {width_b} bit(s)", a.ref, b.ref)
        a_source = self.design.is_source(a.ref)
        b_source = self.design.is_source(b.ref)
        if a_source == b_source:
            role = "sources" if a_source else "sinks"
            raise DirectionMismatch(f"Both signals are {role}", a.ref, b.ref)
        src, dst = (a.ref, b.ref) if a_source else (b.ref, a.ref)
        return ConnectionEdge(
            dst=dst,
            expr=Ref(src),
            origin=EdgeOrigin.DIRECT,
            registered=connection.registered,
            label=str(connection),
        )

    # --- Module to module ---

    def _resolve_modules(
        self, source: ModuleEndpoint, sink: ModuleEndpoint, connection: Connection
    ) -> List[ConnectionEdge]:
        producer = self.design.module(source.instance)
        consumer = self.design.module(sink.instance)
        pairs = self._match(
            self._module_terminals(source, OUT_BUNDLE),
            True,
            self._module_terminals(sink, IN_BUNDLE),
            True,
        )
        edges = [self._wire(a, b, connection) for a, b in pairs]
        if producer.protocol == consumer.protocol:
            control = self._passthrough(producer, consumer, connection)
        else:
            control = glue(producer, consumer, connection.registered, str(connection))
        lane_modules = {e.instance for e in (source, sink) if e.lane is not None}
        for edge in control:
            if edge.dst.instance in lane_modules and not edge.stall_source:
                # Every lane connection contributes to the one shared handshake
                edge = replace(edge, lane_share=True)
            edges.append(edge)
        return edges

    def _passthrough(
        self, producer: ModuleInterface, consumer: ModuleInterface, connection: Connection
    ) -> List[ConnectionEdge]:
        """Wire identically named protocol signals of identical protocols."""
        edges = []
        for spec in producer.signals:
            if spec.bundle != OUT_BUNDLE or not consumer.is_protocol_signal(IN_BUNDLE, spec.name):
                continue
            a = Terminal(spec.name, producer.ref(OUT_BUNDLE, spec.name))
            b = Terminal(spec.name, consumer.ref(IN_BUNDLE, spec.name))
            edges.append(self._wire(a, b, connection))
        return edges
