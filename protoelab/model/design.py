"""
Design model - the structured AST a front-end hands to the elaborator.

A design is a set of module instances, top-level ports, and an ordered list
of bulk connections (the ``>>>`` expressions of the source language).
"""

from typing import Annotated, Any, Dict, List, Literal, Optional, Tuple, Union

from pydantic import Field, field_validator, model_validator

from protoelab.errors import InvalidParameter, UnknownSignal

from .base import FrozenModel, StrictModel
from .module import ModuleInterface
from .port import Port, PortDirection, SignalRef, coerce_signal_ref


class ModuleEndpoint(FrozenModel):
    """A whole module, or one Parallel lane of it (``alu[1]``)."""

    kind: Literal["module"] = "module"
    instance: str = Field(..., description="Module instance name")
    lane: Optional[int] = Field(default=None, description="Parallel lane index", ge=0)

    @classmethod
    def parse(cls, text: str) -> "ModuleEndpoint":
        text = text.strip()
        if text.endswith("]"):
            head, _, index = text[:-1].partition("[")
            if not index.strip().isdigit():
                raise ValueError(f"Invalid lane index in endpoint: '{text}'")
            return cls(instance=head.strip(), lane=int(index))
        return cls(instance=text)

    def __str__(self) -> str:
        return self.instance if self.lane is None else f"{self.instance}[{self.lane}]"


class BundleItem(FrozenModel):
    """One entry of a bundle literal: a signal, optionally renamed."""

    ref: SignalRef = Field(..., description="Signal carried by this entry")
    name: Optional[str] = Field(default=None, description="Entry name for by-name matching")

    @field_validator("ref", mode="before")
    @classmethod
    def normalize_ref(cls, v: Any) -> Any:
        return coerce_signal_ref(v)

    @property
    def key(self) -> str:
        """Name used for by-name matching."""
        return self.name or self.ref.port


class BundleEndpoint(FrozenModel):
    """Bundle literal used as a connection endpoint."""

    kind: Literal["bundle"] = "bundle"
    items: Tuple[BundleItem, ...] = Field(..., description="Entries in declaration order")
    named: bool = Field(default=False, description="Match by entry name instead of position")

    @field_validator("items", mode="before")
    @classmethod
    def normalize_items(cls, v: Any) -> Any:
        if isinstance(v, (list, tuple)):
            return tuple(
                {"ref": item} if isinstance(item, (str, SignalRef)) else item for item in v
            )
        return v

    @model_validator(mode="after")
    def validate_unique_names(self) -> "BundleEndpoint":
        if self.named:
            keys = [item.key for item in self.items]
            duplicates = sorted({k for k in keys if keys.count(k) > 1})
            if duplicates:
                raise ValueError(f"Duplicate names in bundle: {', '.join(duplicates)}")
        return self

    def __str__(self) -> str:
        return "(" + ", ".join(str(item.ref) for item in self.items) + ")"


Endpoint = Annotated[Union[ModuleEndpoint, BundleEndpoint], Field(discriminator="kind")]


def coerce_endpoint(value: Any) -> Any:
    """Accept ``"inst"``, ``"inst[lane]"`` or a list of signal references."""
    if isinstance(value, str):
        return ModuleEndpoint.parse(value)
    if isinstance(value, (list, tuple)):
        return BundleEndpoint(items=value)
    return value


class Connection(StrictModel):
    """
    One bulk connection ``source >>> sink``.

    ``registered`` places a clocked break on every wire the connection
    creates, which cuts combinational paths through it.
    """

    source: Endpoint = Field(..., description="Producer endpoint")
    sink: Endpoint = Field(..., description="Consumer endpoint")
    registered: bool = Field(default=False, description="Insert a register on every wire")

    @field_validator("source", "sink", mode="before")
    @classmethod
    def normalize_endpoint(cls, v: Any) -> Any:
        return coerce_endpoint(v)

    def __str__(self) -> str:
        return f"{self.source} >>> {self.sink}"


def connect(source: Any, sink: Any, registered: bool = False) -> Connection:
    """Build ``source >>> sink``."""
    return Connection(source=source, sink=sink, registered=registered)


class Design(StrictModel):
    """
    Complete elaboration input.

    ``external`` lists signals the environment drives or consumes; they are
    exempt from the dangling-port check. An entry without a lane covers every
    lane of a vectorized port.
    """

    name: str = Field(default="top", description="Design name")
    modules: List[ModuleInterface] = Field(default_factory=list, description="Instances")
    ports: List[Port] = Field(default_factory=list, description="Top-level ports")
    parameters: Dict[str, int] = Field(
        default_factory=dict, description="Parameters for symbolic top-level widths"
    )
    connections: List[Connection] = Field(
        default_factory=list, description="Bulk connections in declaration order"
    )
    external: List[SignalRef] = Field(
        default_factory=list, description="Signals driven or consumed by the environment"
    )

    @field_validator("external", mode="before")
    @classmethod
    def normalize_external(cls, v: Any) -> Any:
        if isinstance(v, (list, tuple)):
            return [coerce_signal_ref(item) for item in v]
        return v

    @model_validator(mode="after")
    def validate_unique_names(self) -> "Design":
        for label, names in (
            ("module", [m.name for m in self.modules]),
            ("top-level port", [p.name for p in self.ports]),
        ):
            seen = set()
            for name in names:
                if name in seen:
                    raise ValueError(f"Duplicate {label} name: '{name}'")
                seen.add(name)
        return self

    # --- Lookup ---

    def get_module(self, name: str) -> Optional[ModuleInterface]:
        """Get module instance by name."""
        return next((m for m in self.modules if m.name == name), None)

    def module(self, name: str) -> ModuleInterface:
        """Get module instance by name, raising ``UnknownSignal`` if absent."""
        module = self.get_module(name)
        if module is None:
            raise UnknownSignal(f"No module instance '{name}'", name)
        return module

    def get_port(self, name: str) -> Optional[Port]:
        """Get top-level port by name."""
        return next((p for p in self.ports if p.name == name), None)

    def lookup(self, ref: SignalRef) -> Port:
        """Resolve a signal reference to its port declaration.

        Raises:
            UnknownSignal: For unknown instances, ports, or invalid lanes.
        """
        if ref.is_top_level:
            port = self.get_port(ref.port)
            if port is None:
                raise UnknownSignal(f"No top-level port '{ref.port}'", ref)
            if ref.lane is not None:
                raise UnknownSignal("Top-level ports have no lanes", ref)
            return port
        module = self.module(ref.instance)
        port = module.bundle(ref.bundle).get(ref.port)
        if port is None:
            raise UnknownSignal(f"No port '{ref.bundle}.{ref.port}'", ref)
        if ref.lane is not None:
            if not module.is_vectorized(ref.bundle, ref.port):
                raise UnknownSignal("Port is not vectorized by Parallel cases", ref)
            if ref.lane >= module.lane_count:
                raise UnknownSignal(
                    f"Lane {ref.lane} out of range ({module.lane_count} lanes)", ref
                )
            if not module.has_lane(ref.bundle, ref.port, ref.lane):
                raise UnknownSignal("Port is not used by the case of this lane", ref)
        return port

    def width_of(self, ref: SignalRef) -> int:
        """Resolved bit width of a referenced signal."""
        port = self.lookup(ref)
        if not ref.is_top_level:
            return self.module(ref.instance).resolve_width(port)
        if isinstance(port.width, int):
            return port.width
        if port.width not in self.parameters:
            raise InvalidParameter(
                f"Width parameter '{port.width}' is not declared", self.name, port.name
            )
        return self.parameters[port.width]

    def is_source(self, ref: SignalRef) -> bool:
        """True when the signal drives values into the design's wiring.

        Module outputs are sources; top-level inputs are sources because the
        environment drives them.
        """
        port = self.lookup(ref)
        if ref.is_top_level:
            return port.effective_direction == PortDirection.IN
        return port.is_output

    def is_external(self, ref: SignalRef) -> bool:
        return ref in self.external or ref.with_lane(None) in self.external
