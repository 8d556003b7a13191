"""Parser exceptions for design descriptions."""

from pathlib import Path
from typing import Any, Optional


class ParseError(Exception):
    """Error while reading a design description."""

    def __init__(
        self,
        message: str,
        file_path: Optional[Path] = None,
        line: Optional[int] = None,
        column: Optional[int] = None,
    ):
        self.file_path = file_path
        self.line = line
        self.column = column
        super().__init__(self._format_message(message))

    def _format_message(self, message: str) -> str:
        """Prefix the message with whatever location is known."""
        parts = []
        if self.file_path:
            parts.append(f"File: {self.file_path}")
        if self.line is not None:
            location = f"Line: {self.line}"
            if self.column is not None:
                location += f", col {self.column}"
            parts.append(location)
        parts.append(message)
        return " | ".join(parts)

    @classmethod
    def from_yaml_error(cls, error: Any, file_path: Optional[Path] = None) -> "ParseError":
        """Build from a ``yaml.YAMLError``, keeping its 1-based mark if present."""
        mark = getattr(error, "problem_mark", None)
        if mark is None:
            return cls(f"YAML syntax error: {error}", file_path)
        return cls(f"YAML syntax error: {error}", file_path, mark.line + 1, mark.column + 1)


class GuardSyntaxError(ParseError):
    """Guard expression that the guard grammar does not accept."""

    def __init__(self, text: str, detail: str, column: Optional[int] = None):
        self.text = text
        super().__init__(f"Invalid guard '{text}': {detail}", column=column)
