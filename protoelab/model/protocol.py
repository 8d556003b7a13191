"""
Protocol catalog.

The four handshake disciplines a module boundary can declare, and the exact
signal shape each one imposes on the module's ``in``, ``out`` and ``ctrl``
bundles. :func:`signal_shape` is the single source of truth for protocol
signal names; other components refer to the constants defined here.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Annotated, Any, Callable, Dict, List, Literal, Optional, Set, Tuple, Union

from pydantic import Field, ValidationInfo, field_validator

from protoelab.errors import InvalidParameter, InvalidTicket, UnknownProtocol

from .base import FrozenModel
from .port import PortDirection

# Bundle names
IN_BUNDLE = "in"
OUT_BUNDLE = "out"
CTRL_BUNDLE = "ctrl"
BUNDLE_NAMES = (IN_BUNDLE, OUT_BUNDLE, CTRL_BUNDLE)

# Protocol signal names
STALL = "stall"
CLEAR = "clear"
STUCK = "stuck"
VALID = "valid"
READY = "ready"
REQUEST_TICKET = "request_ticket_number"
RESPONSE_TICKET = "response_ticket_number"


class ProtocolKind(str, Enum):
    """Closed enumeration of protocol variants."""

    TIGHTLY_COUPLED = "tightly_coupled"
    VALID = "valid"
    DECOUPLED = "decoupled"
    OUT_OF_ORDER = "out_of_order"

    @classmethod
    def from_string(cls, value: str) -> "ProtocolKind":
        """Normalize protocol tag spellings (``TightlyCoupled``, ``tightly-coupled``...)."""
        normalized = "".join(ch for ch in str(value).lower() if ch.isalnum())
        mapping = {
            "tightlycoupled": cls.TIGHTLY_COUPLED,
            "tc": cls.TIGHTLY_COUPLED,
            "valid": cls.VALID,
            "decoupled": cls.DECOUPLED,
            "outoforder": cls.OUT_OF_ORDER,
            "ooo": cls.OUT_OF_ORDER,
        }
        if normalized not in mapping:
            raise UnknownProtocol(f"Unknown protocol tag '{value}'", value)
        return mapping[normalized]

    @property
    def is_handshaked(self) -> bool:
        """Decoupled and OutOfOrder share ready/valid glue rules."""
        return self in (ProtocolKind.DECOUPLED, ProtocolKind.OUT_OF_ORDER)


def _at_least(name: str, v: int, minimum: int) -> int:
    if v < minimum:
        raise InvalidParameter(f"{name} must be >= {minimum}, got {v}", name)
    return v


class TightlyCoupled(FrozenModel):
    """Fixed-latency pipeline stalled from outside; reports ``stuck``."""

    type: Literal["tightly_coupled"] = "tightly_coupled"
    stages: int = Field(default=1, description="Pipeline depth")

    @field_validator("stages")
    @classmethod
    def validate_stages(cls, v: int) -> int:
        return _at_least("stages", v, 1)

    @property
    def kind(self) -> ProtocolKind:
        return ProtocolKind.TIGHTLY_COUPLED


class Valid(FrozenModel):
    """Fixed-latency pipeline whose data is qualified by a ``valid`` bit."""

    type: Literal["valid"] = "valid"
    stages: int = Field(default=1, description="Pipeline depth")

    @field_validator("stages")
    @classmethod
    def validate_stages(cls, v: int) -> int:
        return _at_least("stages", v, 1)

    @property
    def kind(self) -> ProtocolKind:
        return ProtocolKind.VALID


class Decoupled(FrozenModel):
    """Ready/valid handshake on both sides with optional buffering."""

    type: Literal["decoupled"] = "decoupled"
    pre_buf: int = Field(default=0, description="Input buffer depth")
    post_buf: int = Field(default=0, description="Output buffer depth")

    @field_validator("pre_buf", "post_buf")
    @classmethod
    def validate_buffers(cls, v: int, info: ValidationInfo) -> int:
        return _at_least(info.field_name, v, 0)

    @property
    def kind(self) -> ProtocolKind:
        return ProtocolKind.DECOUPLED

    @property
    def is_buffered(self) -> bool:
        return self.pre_buf > 0 or self.post_buf > 0


class OutOfOrder(FrozenModel):
    """Ready/valid handshake whose responses are correlated by ticket number."""

    type: Literal["out_of_order"] = "out_of_order"
    max_outstanding: int = Field(default=1, description="Maximum in-flight requests")

    @field_validator("max_outstanding")
    @classmethod
    def validate_max_outstanding(cls, v: int) -> int:
        return _at_least("max_outstanding", v, 1)

    @property
    def kind(self) -> ProtocolKind:
        return ProtocolKind.OUT_OF_ORDER

    @property
    def ticket_width(self) -> int:
        return ticket_width(self.max_outstanding)


Protocol = Annotated[
    Union[TightlyCoupled, Valid, Decoupled, OutOfOrder], Field(discriminator="type")
]

_VARIANTS: Dict[ProtocolKind, type] = {
    ProtocolKind.TIGHTLY_COUPLED: TightlyCoupled,
    ProtocolKind.VALID: Valid,
    ProtocolKind.DECOUPLED: Decoupled,
    ProtocolKind.OUT_OF_ORDER: OutOfOrder,
}


def make_protocol(tag: Union[str, ProtocolKind], **params: Any) -> Protocol:
    """Build a protocol variant from its tag and parameters.

    Raises:
        UnknownProtocol: If the tag does not name a catalog variant.
        InvalidParameter: If a parameter is unknown or outside its domain.
    """
    kind = tag if isinstance(tag, ProtocolKind) else ProtocolKind.from_string(tag)
    variant = _VARIANTS[kind]
    allowed: Set[str] = set()
    for name, info in variant.model_fields.items():
        if name != "type":
            allowed.add(name)
            if info.alias:
                allowed.add(info.alias)
    for name in params:
        if name not in allowed:
            raise InvalidParameter(
                f"Unknown parameter '{name}' for protocol {kind.value}", kind.value, name
            )
    return variant(**params)


def protocol_from_dict(data: Dict[str, Any]) -> Protocol:
    """Build a protocol variant from ``{"type": tag, **params}``."""
    params = dict(data)
    tag = params.pop("type", None)
    if tag is None:
        raise UnknownProtocol("Protocol declaration is missing its 'type' tag")
    return make_protocol(tag, **params)


def ticket_width(max_outstanding: int) -> int:
    """Bits needed to number ``max_outstanding`` tickets (at least one)."""
    return max(1, (max_outstanding - 1).bit_length())


@dataclass(frozen=True)
class SignalSpec:
    """One protocol-mandated signal on a module boundary."""

    name: str
    bundle: str
    direction: PortDirection
    width: int = 1
    presence: str = "required"
    # How per-lane values are combined when Parallel lanes drive the signal
    reduction: Optional[str] = None

    @property
    def is_required(self) -> bool:
        return self.presence == "required"

    @property
    def is_optional(self) -> bool:
        return self.presence == "optional"

    @property
    def is_output(self) -> bool:
        return self.direction == PortDirection.OUT

    @property
    def qualified_name(self) -> str:
        return f"{self.bundle}.{self.name}"


def _tightly_coupled_shape(protocol: TightlyCoupled) -> List[SignalSpec]:
    return [
        SignalSpec(STALL, CTRL_BUNDLE, PortDirection.IN),
        SignalSpec(CLEAR, CTRL_BUNDLE, PortDirection.IN, presence="optional"),
        SignalSpec(STUCK, CTRL_BUNDLE, PortDirection.OUT, reduction="or"),
    ]


def _valid_shape(protocol: Valid) -> List[SignalSpec]:
    return [
        SignalSpec(VALID, IN_BUNDLE, PortDirection.IN),
        SignalSpec(VALID, OUT_BUNDLE, PortDirection.OUT, reduction="and"),
        SignalSpec(STALL, CTRL_BUNDLE, PortDirection.IN),
        SignalSpec(CLEAR, CTRL_BUNDLE, PortDirection.IN, presence="optional"),
    ]


def _decoupled_shape(protocol: Decoupled) -> List[SignalSpec]:
    return [
        SignalSpec(VALID, IN_BUNDLE, PortDirection.IN),
        SignalSpec(READY, IN_BUNDLE, PortDirection.OUT, reduction="and"),
        SignalSpec(READY, OUT_BUNDLE, PortDirection.IN),
        SignalSpec(VALID, OUT_BUNDLE, PortDirection.OUT, reduction="and"),
    ]


def _out_of_order_shape(protocol: OutOfOrder) -> List[SignalSpec]:
    width = protocol.ticket_width
    return [
        SignalSpec(VALID, IN_BUNDLE, PortDirection.IN),
        SignalSpec(READY, IN_BUNDLE, PortDirection.OUT, reduction="and"),
        SignalSpec(REQUEST_TICKET, IN_BUNDLE, PortDirection.OUT, width, reduction="first"),
        SignalSpec(READY, OUT_BUNDLE, PortDirection.IN),
        SignalSpec(VALID, OUT_BUNDLE, PortDirection.OUT, reduction="and"),
        SignalSpec(RESPONSE_TICKET, OUT_BUNDLE, PortDirection.OUT, width, reduction="first"),
    ]


_SHAPES: Dict[ProtocolKind, Callable[[Any], List[SignalSpec]]] = {
    ProtocolKind.TIGHTLY_COUPLED: _tightly_coupled_shape,
    ProtocolKind.VALID: _valid_shape,
    ProtocolKind.DECOUPLED: _decoupled_shape,
    ProtocolKind.OUT_OF_ORDER: _out_of_order_shape,
}
assert set(_SHAPES) == set(ProtocolKind), "signal shape table must cover every protocol"


def signal_shape(protocol: Protocol) -> List[SignalSpec]:
    """Return the protocol signals a module declaring ``protocol`` must expose."""
    return _SHAPES[protocol.kind](protocol)


def signal_spec(protocol: Protocol, bundle: str, name: str) -> Optional[SignalSpec]:
    """Look up one protocol signal by bundle and name."""
    return next(
        (s for s in signal_shape(protocol) if s.bundle == bundle and s.name == name), None
    )


def combinational_arcs(protocol: Protocol) -> List[Tuple[Tuple[str, str], Tuple[str, str]]]:
    """Same-cycle dependencies between a module's own protocol signals.

    Each arc is ``((bundle, signal), (bundle, signal))`` from the signal read
    to the signal that depends on it. Registered stages contribute no arcs.
    """
    kind = protocol.kind
    if kind == ProtocolKind.TIGHTLY_COUPLED:
        return [((CTRL_BUNDLE, STALL), (CTRL_BUNDLE, STUCK))]
    if kind == ProtocolKind.VALID:
        return []
    if kind == ProtocolKind.DECOUPLED and protocol.is_buffered:
        return []
    return [
        ((IN_BUNDLE, VALID), (OUT_BUNDLE, VALID)),
        ((OUT_BUNDLE, READY), (IN_BUNDLE, READY)),
    ]


def catalog_info() -> List[Dict[str, Any]]:
    """Describe every catalog variant with default parameters (for listings)."""
    info = []
    for kind, variant in _VARIANTS.items():
        protocol = variant()
        info.append(
            {
                "protocol": kind.value,
                "parameters": protocol.model_dump(by_alias=True, exclude={"type"}),
                "signals": [
                    {
                        "bundle": s.bundle,
                        "name": s.name,
                        "direction": s.direction.value,
                        "width": s.width,
                        "presence": s.presence,
                    }
                    for s in signal_shape(protocol)
                ],
            }
        )
    return info


class TicketTracker:
    """
    Checks the OutOfOrder ticket discipline on a request/response trace.

    Requests are issued the lowest free ticket number; a response may only
    carry a ticket that is currently outstanding.
    """

    def __init__(self, max_outstanding: int):
        _at_least("max_outstanding", max_outstanding, 1)
        self.max_outstanding = max_outstanding
        self._outstanding: Set[int] = set()

    @property
    def outstanding(self) -> Set[int]:
        return set(self._outstanding)

    @property
    def is_full(self) -> bool:
        return len(self._outstanding) >= self.max_outstanding

    def issue(self) -> int:
        """Assign a ticket to a new request."""
        if self.is_full:
            raise InvalidTicket(
                f"Cannot issue request: {self.max_outstanding} ticket(s) already outstanding"
            )
        ticket = next(t for t in range(self.max_outstanding) if t not in self._outstanding)
        self._outstanding.add(ticket)
        return ticket

    def retire(self, ticket: int) -> None:
        """Accept a response carrying ``ticket``."""
        if ticket not in self._outstanding:
            raise InvalidTicket(
                f"Response ticket {ticket} is not outstanding "
                f"(outstanding: {sorted(self._outstanding)})",
                ticket,
            )
        self._outstanding.remove(ticket)
