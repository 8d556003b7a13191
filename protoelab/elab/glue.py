"""
Cross-protocol glue generator.

When a producer and a consumer declare different protocols, the handshake
signals one side expects must be synthesized from the signals the other side
offers. The rules form a fixed table indexed by ``(producer, consumer)``
protocol kinds; the table is checked for totality at import time.
"""

import logging
from itertools import product
from typing import Callable, Dict, List, Tuple

from protoelab.model.expr import Expr, Not, Or, Ref
from protoelab.model.module import ModuleInterface
from protoelab.model.port import SignalRef
from protoelab.model.protocol import (
    CTRL_BUNDLE,
    IN_BUNDLE,
    OUT_BUNDLE,
    READY,
    STALL,
    STUCK,
    VALID,
    ProtocolKind,
)

from .graph import ConnectionEdge, EdgeOrigin

logger = logging.getLogger(__name__)

Assignment = Tuple[SignalRef, Expr]
GlueRule = Callable[[ModuleInterface, ModuleInterface], List[Assignment]]

TC = ProtocolKind.TIGHTLY_COUPLED
VA = ProtocolKind.VALID
DE = ProtocolKind.DECOUPLED
OO = ProtocolKind.OUT_OF_ORDER


def _sig(module: ModuleInterface, bundle: str, name: str) -> Ref:
    return Ref(module.ref(bundle, name))


def _stall(module: ModuleInterface) -> SignalRef:
    return module.ref(CTRL_BUNDLE, STALL)


def _tc_to_tc(p: ModuleInterface, c: ModuleInterface) -> List[Assignment]:
    return [(_stall(c), _sig(p, CTRL_BUNDLE, STUCK))]


def _tc_to_valid(p: ModuleInterface, c: ModuleInterface) -> List[Assignment]:
    return [
        (
            c.ref(IN_BUNDLE, VALID),
            Or((_sig(p, CTRL_BUNDLE, STUCK), _sig(p, CTRL_BUNDLE, STALL))),
        )
    ]


def _tc_to_handshake(p: ModuleInterface, c: ModuleInterface) -> List[Assignment]:
    return [
        (_stall(p), Not(_sig(c, IN_BUNDLE, READY))),
        (
            c.ref(IN_BUNDLE, VALID),
            Or((_sig(p, CTRL_BUNDLE, STALL), _sig(p, CTRL_BUNDLE, STUCK))),
        ),
    ]


def _valid_to_tc(p: ModuleInterface, c: ModuleInterface) -> List[Assignment]:
    return [
        (_stall(p), _sig(c, CTRL_BUNDLE, STUCK)),
        (_stall(c), Not(_sig(p, OUT_BUNDLE, VALID))),
    ]


def _valid_to_valid(p: ModuleInterface, c: ModuleInterface) -> List[Assignment]:
    # The producer's other stall sources are merged into the same driver
    return [
        (c.ref(IN_BUNDLE, VALID), _sig(p, OUT_BUNDLE, VALID)),
        (_stall(p), _sig(c, CTRL_BUNDLE, STALL)),
    ]


def _valid_to_handshake(p: ModuleInterface, c: ModuleInterface) -> List[Assignment]:
    return [
        (c.ref(IN_BUNDLE, VALID), _sig(p, OUT_BUNDLE, VALID)),
        (_stall(p), Not(_sig(c, IN_BUNDLE, READY))),
    ]


def _handshake_to_tc(p: ModuleInterface, c: ModuleInterface) -> List[Assignment]:
    return [
        (
            p.ref(OUT_BUNDLE, READY),
            Or((_sig(c, CTRL_BUNDLE, STUCK), _sig(c, CTRL_BUNDLE, STALL))),
        )
    ]


def _handshake_to_valid(p: ModuleInterface, c: ModuleInterface) -> List[Assignment]:
    return [
        (p.ref(OUT_BUNDLE, READY), _sig(c, CTRL_BUNDLE, STALL)),
        (c.ref(IN_BUNDLE, VALID), _sig(p, OUT_BUNDLE, VALID)),
    ]


def _handshake_to_handshake(p: ModuleInterface, c: ModuleInterface) -> List[Assignment]:
    return [
        (p.ref(OUT_BUNDLE, READY), _sig(c, IN_BUNDLE, READY)),
        (c.ref(IN_BUNDLE, VALID), _sig(p, OUT_BUNDLE, VALID)),
    ]


GLUE_TABLE: Dict[Tuple[ProtocolKind, ProtocolKind], GlueRule] = {
    (TC, TC): _tc_to_tc,
    (TC, VA): _tc_to_valid,
    (TC, DE): _tc_to_handshake,
    (TC, OO): _tc_to_handshake,
    (VA, TC): _valid_to_tc,
    (VA, VA): _valid_to_valid,
    (VA, DE): _valid_to_handshake,
    (VA, OO): _valid_to_handshake,
    (DE, TC): _handshake_to_tc,
    (DE, VA): _handshake_to_valid,
    (DE, DE): _handshake_to_handshake,
    (DE, OO): _handshake_to_handshake,
    (OO, TC): _handshake_to_tc,
    (OO, VA): _handshake_to_valid,
    (OO, DE): _handshake_to_handshake,
    (OO, OO): _handshake_to_handshake,
}
assert set(GLUE_TABLE) == set(product(ProtocolKind, ProtocolKind)), "glue table must be total"


def glue_rule(producer: ProtocolKind, consumer: ProtocolKind) -> GlueRule:
    """Look up the compatibility rule for an ordered protocol pair."""
    return GLUE_TABLE[(producer, consumer)]


def glue(
    producer: ModuleInterface,
    consumer: ModuleInterface,
    registered: bool = False,
    label: str = "",
) -> List[ConnectionEdge]:
    """Synthesize the control edges joining ``producer`` to ``consumer``.

    Edges driving a ``stall`` input are marked as stall sources so that
    several rules feeding the same module can be OR-merged.
    """
    rule = glue_rule(producer.protocol.kind, consumer.protocol.kind)
    edges = []
    for dst, expr in rule(producer, consumer):
        edges.append(
            ConnectionEdge(
                dst=dst,
                expr=expr,
                origin=EdgeOrigin.GLUE,
                registered=registered,
                stall_source=dst.bundle == CTRL_BUNDLE and dst.port == STALL,
                label=label,
            )
        )
    logger.debug(
        "Glue %s -> %s (%s -> %s): %d edge(s)",
        producer.name,
        consumer.name,
        producer.protocol.kind.value,
        consumer.protocol.kind.value,
        len(edges),
    )
    return edges
