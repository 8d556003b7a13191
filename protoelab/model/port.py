"""
Port, bundle and signal-reference definitions.
"""

from enum import Enum
from typing import Any, List, Optional, Union

from pydantic import Field, field_validator, model_validator

from .base import FrozenModel, StrictModel


class PortDirection(str, Enum):
    """Port direction enumeration."""

    IN = "in"
    OUT = "out"

    @classmethod
    def from_string(cls, value: str) -> "PortDirection":
        """Normalize common direction aliases into ``PortDirection``."""
        normalized = value.lower().strip()
        mapping = {
            "in": cls.IN,
            "input": cls.IN,
            "out": cls.OUT,
            "output": cls.OUT,
        }
        if normalized not in mapping:
            raise ValueError(f"Unknown port direction: '{value}'")
        return mapping[normalized]

    @property
    def flipped(self) -> "PortDirection":
        return PortDirection.OUT if self == PortDirection.IN else PortDirection.IN


class Port(StrictModel):
    """
    Typed port record.

    ``width`` is either a bit count or the name of a module parameter that is
    resolved at instantiation time. ``flipped`` inverts the declared direction
    when the port is embedded in a bundle.
    """

    name: str = Field(..., description="Port name")
    width: Union[int, str] = Field(default=1, description="Width in bits or parameter name")
    direction: PortDirection = Field(default=PortDirection.IN, description="Declared direction")
    flipped: bool = Field(default=False, description="Invert direction inside a bundle")
    dropped: bool = Field(
        default=False, description="Canonical category port unused by this implementation"
    )
    optional: bool = Field(default=False, description="Exempt from the dangling-port check")
    description: str = Field(default="", description="Port description")

    @field_validator("direction", mode="before")
    @classmethod
    def normalize_direction(cls, v: Any) -> Any:
        if isinstance(v, str):
            return PortDirection.from_string(v).value
        return v

    @field_validator("name")
    @classmethod
    def validate_name(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("Port name cannot be empty")
        return v

    @field_validator("width")
    @classmethod
    def validate_width(cls, v: Union[int, str]) -> Union[int, str]:
        """Ensure port width is positive or a valid parameter reference."""
        if isinstance(v, int):
            if v <= 0:
                raise ValueError("Port width must be positive")
        elif not v or not v.strip():
            raise ValueError("Port width parameter reference cannot be empty")
        return v

    @property
    def effective_direction(self) -> PortDirection:
        """Direction after applying ``flipped``."""
        return self.direction.flipped if self.flipped else self.direction

    @property
    def is_input(self) -> bool:
        return self.effective_direction == PortDirection.IN

    @property
    def is_output(self) -> bool:
        return self.effective_direction == PortDirection.OUT

    @property
    def is_symbolic(self) -> bool:
        """Check if the width is a parameter reference."""
        return isinstance(self.width, str)


class Bundle(StrictModel):
    """
    Ordered sequence of ports.

    Named bundles are addressed by port name, so names must be unique.
    Positional bundles are matched by index and may repeat names.
    """

    ports: List[Port] = Field(default_factory=list, description="Ports in declaration order")
    named: bool = Field(default=True, description="Address ports by name")

    @model_validator(mode="after")
    def validate_unique_names(self) -> "Bundle":
        if self.named:
            seen = set()
            for port in self.ports:
                if port.name in seen:
                    raise ValueError(f"Duplicate port name in bundle: '{port.name}'")
                seen.add(port.name)
        return self

    @property
    def names(self) -> List[str]:
        return [p.name for p in self.ports]

    def get(self, name: str) -> Optional[Port]:
        """Get port by name."""
        return next((p for p in self.ports if p.name == name), None)


class SignalRef(FrozenModel):
    """
    Hashable reference to one signal in a design.

    Module ports are addressed as ``instance.bundle.port``; a vectorized
    port adds a lane index (``alu.in.a[1]``). Top-level design ports have
    neither instance nor bundle.
    """

    instance: Optional[str] = Field(default=None, description="Module instance name")
    bundle: Optional[str] = Field(default=None, description="Bundle name: in, out or ctrl")
    port: str = Field(..., description="Port name")
    lane: Optional[int] = Field(default=None, description="Parallel lane index", ge=0)

    @model_validator(mode="after")
    def validate_scope(self) -> "SignalRef":
        if (self.instance is None) != (self.bundle is None):
            raise ValueError("Instance and bundle must be given together")
        return self

    @classmethod
    def parse(cls, text: str) -> "SignalRef":
        """Parse ``inst.bundle.port[lane]`` or a bare top-level ``port`` name.

        Example:
            >>> SignalRef.parse("alu.in.a[1]").lane
            1
        """
        text = text.strip()
        lane = None
        if text.endswith("]"):
            head, _, index = text[:-1].partition("[")
            if not index.strip().isdigit():
                raise ValueError(f"Invalid lane index in signal reference: '{text}'")
            text, lane = head, int(index)
        parts = text.split(".")
        if len(parts) == 1:
            return cls(port=parts[0], lane=lane)
        if len(parts) == 3:
            return cls(instance=parts[0], bundle=parts[1], port=parts[2], lane=lane)
        raise ValueError(
            f"Invalid signal reference '{text}': expected 'instance.bundle.port' or 'port'"
        )

    @property
    def is_top_level(self) -> bool:
        return self.instance is None

    def with_lane(self, lane: Optional[int]) -> "SignalRef":
        return self.model_copy(update={"lane": lane})

    def __str__(self) -> str:
        base = self.port if self.is_top_level else f"{self.instance}.{self.bundle}.{self.port}"
        return base if self.lane is None else f"{base}[{self.lane}]"


def coerce_signal_ref(value: Any) -> Any:
    """Accept ``SignalRef`` text forms wherever a reference is expected."""
    if isinstance(value, str):
        return SignalRef.parse(value)
    return value

