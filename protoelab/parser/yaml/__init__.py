"""
YAML parsers for design definitions.
"""

from .design_parser import YamlDesignParser
from .errors import GuardSyntaxError, ParseError
from .guard_parser import GuardParser, parse_guard

__all__ = ["YamlDesignParser", "GuardParser", "parse_guard", "ParseError", "GuardSyntaxError"]
