"""
Function-case declarations.

A function case is an opaque body attached to a module: the elaborator only
knows which ports it reads and writes, and under which guard it is active.
"""

from enum import Enum
from typing import Any, FrozenSet, List, Optional

from pydantic import Field, field_validator, model_validator

from .base import FrozenModel, StrictModel


class CaseAnnotation(str, Enum):
    """Expansion strategy for a function case."""

    PIPELINE = "pipeline"
    PARALLEL = "parallel"

    @classmethod
    def from_string(cls, value: str) -> "CaseAnnotation":
        """Accept ``pipeline``, ``@pipeline``, ``Parallel`` and similar spellings."""
        normalized = value.strip().lstrip("@").lower()
        try:
            return cls(normalized)
        except ValueError:
            raise ValueError(f"Unknown case annotation: '{value}'") from None


class Guard(FrozenModel):
    """
    Predicate over a tag input port.

    ``tag == C`` is ``Guard(tag, values={C})``; ``tag != C`` sets ``negated``.
    A guard without a tag is always true. Constants are opaque symbols.
    """

    tag: Optional[str] = Field(default=None, description="Tag input port name")
    values: FrozenSet[str] = Field(default_factory=frozenset, description="Constant tags")
    negated: bool = Field(default=False, description="Match tags outside ``values``")

    @field_validator("values", mode="before")
    @classmethod
    def normalize_values(cls, v: Any) -> Any:
        if isinstance(v, (str, int)):
            return frozenset([str(v)])
        if isinstance(v, (list, tuple, set, frozenset)):
            return frozenset(str(item) for item in v)
        return v

    @model_validator(mode="after")
    def validate_shape(self) -> "Guard":
        if self.tag is not None and not self.values:
            raise ValueError(f"Guard on tag '{self.tag}' needs at least one constant")
        if self.tag is None and (self.values or self.negated):
            raise ValueError("Guard constants require a tag port")
        return self

    @classmethod
    def equals(cls, tag: str, *values: Any) -> "Guard":
        return cls(tag=tag, values=values)

    @classmethod
    def not_equals(cls, tag: str, *values: Any) -> "Guard":
        return cls(tag=tag, values=values, negated=True)

    @property
    def is_always(self) -> bool:
        return self.tag is None

    def overlaps(self, other: "Guard") -> bool:
        """Return True unless the two guards provably never hold together.

        Only equality/inequality tests on the same tag port can be proven
        disjoint; anything else is treated as overlapping.
        """
        if self.is_always or other.is_always:
            return True
        if self.tag != other.tag:
            return True
        if not self.negated and not other.negated:
            return bool(self.values & other.values)
        if self.negated and other.negated:
            # Complements of finite sets over an open tag domain always meet
            return True
        positive, negative = (other, self) if self.negated else (self, other)
        return bool(positive.values - negative.values)

    def __str__(self) -> str:
        if self.is_always:
            return "*"
        values = sorted(self.values)
        if len(values) == 1:
            return f"{self.tag} {'!=' if self.negated else '=='} {values[0]}"
        return f"{self.tag} {'not in' if self.negated else 'in'} ({', '.join(values)})"


class FunctionCase(StrictModel):
    """
    One annotated functional case of a module.

    ``reads`` and ``writes`` name ports of the owning module, either bare
    (data ports) or qualified with the bundle (``in.ready``) where a name
    exists in more than one bundle.
    """

    name: str = Field(..., description="Case name")
    annotation: CaseAnnotation = Field(
        default=CaseAnnotation.PIPELINE, description="Expansion strategy"
    )
    guard: Optional[Guard] = Field(default=None, description="Activation predicate")
    reads: List[str] = Field(default_factory=list, description="Ports read by the body")
    writes: List[str] = Field(default_factory=list, description="Ports written by the body")
    body: str = Field(default="", description="Opaque body text")

    @field_validator("annotation", mode="before")
    @classmethod
    def normalize_annotation(cls, v: Any) -> Any:
        if isinstance(v, str):
            return CaseAnnotation.from_string(v).value
        return v

    @property
    def is_pipeline(self) -> bool:
        return self.annotation == CaseAnnotation.PIPELINE

    @property
    def is_parallel(self) -> bool:
        return self.annotation == CaseAnnotation.PARALLEL

    @property
    def is_guarded(self) -> bool:
        return self.guard is not None and not self.guard.is_always
