"""
Front-end parsers for design descriptions.
"""

from .yaml import GuardParser, ParseError, YamlDesignParser

__all__ = ["YamlDesignParser", "GuardParser", "ParseError"]
