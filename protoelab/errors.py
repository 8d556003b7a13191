"""
Elaboration error taxonomy.

Every error carries a stable ``kind`` tag and the identifiers of the
modules/ports it implicates so tests and tools can match on them without
parsing message text. All kinds are fatal.
"""

from typing import List, Sequence, Tuple


class ElaborationError(Exception):
    """Base class for all elaboration errors."""

    kind = "ElaborationError"

    def __init__(self, message: str, *entities: object):
        self.entities: Tuple[str, ...] = tuple(str(e) for e in entities)
        self.detail = message
        super().__init__(self._format_message(message))

    def _format_message(self, message: str) -> str:
        """Format error message with kind tag and entity information."""
        parts = [f"[{self.kind}]"]
        if self.entities:
            parts.append(", ".join(self.entities))
        parts.append(message)
        return " | ".join(parts)


class UnknownProtocol(ElaborationError):
    kind = "UnknownProtocol"


class InvalidParameter(ElaborationError):
    kind = "InvalidParameter"


class UnknownSignal(ElaborationError):
    """Reference to an instance, port or lane that does not exist."""

    kind = "UnknownSignal"


class DanglingPort(ElaborationError):
    kind = "DanglingPort"


class MultipleDrivers(ElaborationError):
    kind = "MultipleDrivers"


class WidthMismatch(ElaborationError):
    kind = "WidthMismatch"


class DirectionMismatch(ElaborationError):
    """Matched ports are both sources or both sinks."""

    kind = "DirectionMismatch"


class AmbiguousPipelineCase(ElaborationError):
    kind = "AmbiguousPipelineCase"


class IncompleteCase(ElaborationError):
    kind = "IncompleteCase"


class CombinationalDeadlock(ElaborationError):
    kind = "CombinationalDeadlock"


class CategoryMismatch(ElaborationError):
    """Module does not fit the canonical port set of its interface category."""

    kind = "CategoryMismatch"


class InvalidTicket(ElaborationError):
    """OutOfOrder response carries a ticket that is not outstanding."""

    kind = "InvalidTicket"


class ElaborationFailed(ElaborationError):
    """Aggregate of independent errors reported by one validation pass."""

    kind = "ElaborationFailed"

    def __init__(self, errors: Sequence[ElaborationError]):
        self.errors: List[ElaborationError] = list(errors)
        entities: List[str] = []
        for err in self.errors:
            entities.extend(err.entities)
        lines = [f"{len(self.errors)} error(s):"]
        lines.extend(f"  {err}" for err in self.errors)
        super().__init__("\n".join(lines), *entities)

    @property
    def kinds(self) -> List[str]:
        """Kind tags of the collected errors, in report order."""
        return [err.kind for err in self.errors]


def combine_errors(errors: Sequence[ElaborationError]) -> ElaborationError:
    """Fold independent errors from one validation pass into one exception.

    Errors of a single kind stay that kind (entities concatenated) so callers
    can catch them by class; mixed kinds become ``ElaborationFailed``.
    """
    if len(errors) == 1:
        return errors[0]
    kinds = {type(err) for err in errors}
    if len(kinds) > 1:
        return ElaborationFailed(errors)
    entities: List[str] = []
    for err in errors:
        entities.extend(err.entities)
    combined = type(errors[0])("; ".join(err.detail for err in errors), *entities)
    combined.errors = list(errors)
    return combined
