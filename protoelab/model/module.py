"""Module interface model - a module's typed, protocol-tagged boundary."""

from typing import Any, Dict, List, Optional, Set, Tuple

from pydantic import Field, ValidationInfo, field_validator, model_validator

from protoelab.errors import InvalidParameter, UnknownSignal

from .base import StrictModel
from .case import FunctionCase
from .port import Bundle, Port, PortDirection, SignalRef
from .protocol import (
    BUNDLE_NAMES,
    CTRL_BUNDLE,
    IN_BUNDLE,
    OUT_BUNDLE,
    Protocol,
    SignalSpec,
    make_protocol,
    protocol_from_dict,
    signal_shape,
)


class ModuleInterface(StrictModel):
    """
    Boundary of one module instance.

    Only data ports are declared by the user. The ``in``, ``out`` and ``ctrl``
    bundles are derived by merging the protocol catalog's signals with those
    data ports, so the ctrl shape always follows the protocol variant.
    """

    name: str = Field(..., description="Instance name")
    protocol: Protocol = Field(..., description="Handshake protocol variant")
    inputs: List[Port] = Field(default_factory=list, description="Data ports of the in bundle")
    outputs: List[Port] = Field(
        default_factory=list, description="Data ports of the out bundle"
    )
    parameters: Dict[str, int] = Field(
        default_factory=dict, description="Parameter values used by symbolic widths"
    )
    category: Optional[str] = Field(default=None, description="Fixed-ports interface category")
    cases: List[FunctionCase] = Field(default_factory=list, description="Annotated cases")
    defaults: Dict[str, str] = Field(
        default_factory=dict, description="Value of a pipelined output when no guard matches"
    )
    description: str = Field(default="", description="Module description")

    @field_validator("protocol", mode="before")
    @classmethod
    def normalize_protocol(cls, v: Any) -> Any:
        """Build protocol variants through the catalog so bad tags raise UnknownProtocol."""
        if isinstance(v, str):
            return make_protocol(v)
        if isinstance(v, dict):
            return protocol_from_dict(v)
        return v

    @field_validator("name")
    @classmethod
    def validate_name(cls, v: str) -> str:
        v = v.strip()
        if not v or "." in v:
            raise ValueError(f"Invalid module name: '{v}'")
        return v

    @field_validator("inputs", "outputs")
    @classmethod
    def orient_data_ports(cls, v: List[Port], info: ValidationInfo) -> List[Port]:
        """Data ports take the direction of the list they are declared in."""
        expected = PortDirection.IN if info.field_name == "inputs" else PortDirection.OUT
        oriented = []
        for port in v:
            if port.direction == expected:
                oriented.append(port)
                continue
            if "direction" in port.model_fields_set:
                raise ValueError(
                    f"Port '{port.name}' is declared {port.direction.value} "
                    f"but listed in {info.field_name}"
                )
            oriented.append(port.model_copy(update={"direction": expected}))
        return oriented

    @model_validator(mode="after")
    def validate_interface(self) -> "ModuleInterface":
        protocol_names = {s.name for s in self.signals}
        seen: Set[str] = set()
        for port in self.inputs + self.outputs:
            if port.name in seen:
                raise ValueError(f"Module '{self.name}': duplicate data port '{port.name}'")
            if port.name in protocol_names:
                raise ValueError(
                    f"Module '{self.name}': data port '{port.name}' collides with a "
                    f"{self.protocol.kind.value} protocol signal"
                )
            if port.is_symbolic and port.width not in self.parameters:
                raise InvalidParameter(
                    f"Width parameter '{port.width}' is not declared", self.name, port.name
                )
            seen.add(port.name)

        case_names: Set[str] = set()
        pipelined: Set[Tuple[str, str]] = set()
        parallel: Set[Tuple[str, str]] = set()
        for case in self.cases:
            if case.name in case_names:
                raise ValueError(f"Module '{self.name}': duplicate case '{case.name}'")
            case_names.add(case.name)
            for name in case.reads:
                self.locate(name)
            for name in case.writes:
                bundle, port = self.locate(name)
                (pipelined if case.is_pipeline else parallel).add((bundle, port.name))
            if case.is_guarded and not any(p.name == case.guard.tag for p in self.inputs):
                raise UnknownSignal(
                    f"Guard tag '{case.guard.tag}' of case '{case.name}' is not a data input",
                    self.name,
                    case.guard.tag,
                )
        mixed = sorted(f"{b}.{p}" for b, p in pipelined & parallel)
        if mixed:
            raise ValueError(
                f"Module '{self.name}': ports written by both pipeline and parallel "
                f"cases: {', '.join(mixed)}"
            )
        vector = set(self.vector_ports)
        for case in self.pipeline_cases:
            shared = sorted(f"{b}.{p}" for b, p in self._case_data_ports(case) & vector)
            if shared:
                raise ValueError(
                    f"Module '{self.name}': pipeline case '{case.name}' uses vectorized "
                    f"ports: {', '.join(shared)}"
                )
        return self

    # --- Bundles ---

    @property
    def signals(self) -> List[SignalSpec]:
        """Protocol signals this module exposes."""
        return signal_shape(self.protocol)

    def protocol_signal(self, bundle: str, name: str) -> Optional[SignalSpec]:
        return next((s for s in self.signals if s.bundle == bundle and s.name == name), None)

    def is_protocol_signal(self, bundle: str, name: str) -> bool:
        return self.protocol_signal(bundle, name) is not None

    def data_ports(self, bundle: str) -> List[Port]:
        """User-declared data ports of one bundle (ctrl carries none)."""
        if bundle == IN_BUNDLE:
            return list(self.inputs)
        if bundle == OUT_BUNDLE:
            return list(self.outputs)
        return []

    def bundle(self, name: str) -> Bundle:
        """Full bundle: protocol signals first, then data ports."""
        if name not in BUNDLE_NAMES:
            raise UnknownSignal(f"Unknown bundle '{name}'", self.name, name)
        ports = [
            Port(
                name=s.name,
                width=s.width,
                direction=s.direction,
                optional=s.is_optional,
            )
            for s in self.signals
            if s.bundle == name
        ]
        return Bundle(ports=ports + self.data_ports(name))

    @property
    def in_bundle(self) -> Bundle:
        return self.bundle(IN_BUNDLE)

    @property
    def out_bundle(self) -> Bundle:
        return self.bundle(OUT_BUNDLE)

    @property
    def ctrl_bundle(self) -> Bundle:
        return self.bundle(CTRL_BUNDLE)

    def locate(self, name: str) -> Tuple[str, Port]:
        """Resolve a bare or bundle-qualified port name to ``(bundle, port)``.

        Raises:
            UnknownSignal: If the name matches no port, or a bare name is
                ambiguous between bundles.
        """
        if "." in name:
            bundle, _, port_name = name.partition(".")
            port = self.bundle(bundle).get(port_name)
            if port is None:
                raise UnknownSignal(f"No port '{name}'", self.name, name)
            return bundle, port
        matches = [(b, self.bundle(b).get(name)) for b in BUNDLE_NAMES]
        matches = [(b, p) for b, p in matches if p is not None]
        if not matches:
            raise UnknownSignal(f"No port '{name}'", self.name, name)
        if len(matches) > 1:
            bundles = ", ".join(b for b, _ in matches)
            raise UnknownSignal(
                f"Port name '{name}' is ambiguous between bundles {bundles}; qualify it",
                self.name,
                name,
            )
        return matches[0]

    def ref(self, bundle: str, port: str, lane: Optional[int] = None) -> SignalRef:
        return SignalRef(instance=self.name, bundle=bundle, port=port, lane=lane)

    def resolve_width(self, port: Port) -> int:
        """Width of ``port`` with symbolic parameters substituted."""
        if isinstance(port.width, int):
            return port.width
        if port.width not in self.parameters:
            raise InvalidParameter(
                f"Width parameter '{port.width}' is not declared", self.name, port.name
            )
        width = self.parameters[port.width]
        if width <= 0:
            raise InvalidParameter(
                f"Width parameter '{port.width}' must be positive, got {width}",
                self.name,
                port.name,
            )
        return width

    # --- Cases ---

    @property
    def pipeline_cases(self) -> List[FunctionCase]:
        return [c for c in self.cases if c.is_pipeline]

    @property
    def parallel_cases(self) -> List[FunctionCase]:
        return [c for c in self.cases if c.is_parallel]

    @property
    def lane_count(self) -> int:
        """Number of Parallel lanes (0 when the module has no Parallel cases)."""
        return len(self.parallel_cases)

    def _case_data_ports(self, case: FunctionCase) -> Set[Tuple[str, str]]:
        touched: Set[Tuple[str, str]] = set()
        for name in case.reads + case.writes:
            bundle, port = self.locate(name)
            if not self.is_protocol_signal(bundle, port.name):
                touched.add((bundle, port.name))
        if case.is_guarded:
            touched.add((IN_BUNDLE, case.guard.tag))
        return touched

    def _in_declaration_order(self, keys: Set[Tuple[str, str]]) -> List[Tuple[str, str]]:
        ordered = [(IN_BUNDLE, p.name) for p in self.inputs]
        ordered += [(OUT_BUNDLE, p.name) for p in self.outputs]
        return [key for key in ordered if key in keys]

    @property
    def vector_ports(self) -> List[Tuple[str, str]]:
        """Data ports replicated per Parallel lane, in declaration order.

        Every data port read or written by a Parallel case is vectorized, as
        is the tag input of any guarded Parallel case.
        """
        touched: Set[Tuple[str, str]] = set()
        for case in self.parallel_cases:
            touched |= self._case_data_ports(case)
        return self._in_declaration_order(touched)

    def lane_ports(self, lane: int) -> List[Tuple[str, str]]:
        """Vectorized ports present in one lane.

        Lane ``i`` belongs to the ``i``-th Parallel case and only carries the
        data ports that case touches.
        """
        if not 0 <= lane < self.lane_count:
            raise UnknownSignal(
                f"Lane {lane} is out of range for {self.lane_count} lane(s)",
                self.name,
                str(lane),
            )
        return self._in_declaration_order(self._case_data_ports(self.parallel_cases[lane]))

    def is_vectorized(self, bundle: str, port: str) -> bool:
        return (bundle, port) in self.vector_ports

    def has_lane(self, bundle: str, port: str, lane: int) -> bool:
        return 0 <= lane < self.lane_count and (bundle, port) in self.lane_ports(lane)
