"""
Signal expressions carried by connection edges.

Expressions are small immutable trees. The elaborator never evaluates them;
it only needs the signals each expression reads (:meth:`refs`) and a stable
text rendering for diagnostics and the back end.
"""

from dataclasses import dataclass
from typing import Any, Iterator, Tuple

from .case import Guard
from .port import SignalRef


class Expr:
    """Base class for signal expressions."""

    def refs(self) -> Iterator[SignalRef]:
        """Yield every signal this expression reads."""
        return iter(())


@dataclass(frozen=True)
class Ref(Expr):
    """Direct wire from ``signal``."""

    signal: SignalRef

    def refs(self) -> Iterator[SignalRef]:
        yield self.signal

    def __str__(self) -> str:
        return str(self.signal)


@dataclass(frozen=True)
class Const(Expr):
    value: Any

    def __str__(self) -> str:
        return str(self.value)


@dataclass(frozen=True)
class Not(Expr):
    operand: Expr

    def refs(self) -> Iterator[SignalRef]:
        yield from self.operand.refs()

    def __str__(self) -> str:
        return f"!{self.operand}"


@dataclass(frozen=True)
class Or(Expr):
    operands: Tuple[Expr, ...]

    def refs(self) -> Iterator[SignalRef]:
        for operand in self.operands:
            yield from operand.refs()

    def __str__(self) -> str:
        return "(" + " | ".join(str(o) for o in self.operands) + ")"


@dataclass(frozen=True)
class GuardTest(Expr):
    """Guard predicate evaluated against a (possibly lane-indexed) tag input."""

    tag: SignalRef
    guard: Guard

    def refs(self) -> Iterator[SignalRef]:
        yield self.tag

    def __str__(self) -> str:
        if self.guard.is_always:
            return "1"
        return str(self.guard).replace(self.guard.tag, str(self.tag), 1)


@dataclass(frozen=True)
class CaseValue(Expr):
    """Opaque value a case body produces for one output port."""

    case: str
    port: str
    reads: Tuple[SignalRef, ...] = ()

    def refs(self) -> Iterator[SignalRef]:
        yield from self.reads

    def __str__(self) -> str:
        return f"{self.case}.{self.port}"


@dataclass(frozen=True)
class Mux(Expr):
    """``then`` when ``cond`` holds, otherwise ``other``."""

    cond: Expr
    then: Expr
    other: Expr

    def refs(self) -> Iterator[SignalRef]:
        yield from self.cond.refs()
        yield from self.then.refs()
        yield from self.other.refs()

    def __str__(self) -> str:
        return f"mux({self.cond}, {self.then}, {self.other})"


@dataclass(frozen=True)
class Reduce(Expr):
    """Combine per-lane values of a shared signal (``and``, ``or`` or ``first``)."""

    op: str
    operands: Tuple[Expr, ...]

    def refs(self) -> Iterator[SignalRef]:
        for operand in self.operands:
            yield from operand.refs()

    def __str__(self) -> str:
        return f"{self.op}(" + ", ".join(str(o) for o in self.operands) + ")"
