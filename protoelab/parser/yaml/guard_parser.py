"""
Guard expression parser using pyparsing.

Accepted forms::

    *                      always
    always                 always
    fn == ADD
    fn != ADD
    fn in (ADD, SUB)
    fn not in (ADD, SUB)
"""

import logging

from pyparsing import (
    CaselessKeyword,
    Group,
    Literal,
    ParseBaseException,
)
from pyparsing import Optional as Opt
from pyparsing import (
    Suppress,
    Word,
    ZeroOrMore,
    alphanums,
    alphas,
    oneOf,
)

from protoelab.model.case import Guard

from .errors import GuardSyntaxError

logger = logging.getLogger(__name__)


class GuardParser:
    """Parses guard text into :class:`Guard` models."""

    def __init__(self):
        """Initialize the guard grammar."""
        self.identifier = Word(alphas + "_", alphanums + "_")
        self.constant = Word(alphanums + "_")

        self.always = (Literal("*") | CaselessKeyword("always"))("always")

        # tag == C / tag != C
        self.comparison = self.identifier("tag") + oneOf("== !=")("op") + self.constant("value")

        # tag in (A, B) / tag not in (A, B)
        self.value_list = Group(
            Suppress("(")
            + self.constant
            + ZeroOrMore(Suppress(",") + self.constant)
            + Opt(Suppress(","))
            + Suppress(")")
        )("values")
        self.membership = (
            self.identifier("tag")
            + Opt(CaselessKeyword("not"))("negated")
            + Suppress(CaselessKeyword("in"))
            + self.value_list
        )

        self.guard = self.always | self.membership | self.comparison

    def parse(self, text: str) -> Guard:
        """
        Parse one guard expression.

        Raises:
            GuardSyntaxError: If the text is not a valid guard.
        """
        source = str(text).strip()
        if not source:
            raise GuardSyntaxError(source, "empty guard")
        try:
            result = self.guard.parse_string(source, parse_all=True)
        except ParseBaseException as e:
            raise GuardSyntaxError(source, e.msg, column=e.col) from None

        if "always" in result:
            return Guard()
        if "value" in result:
            guard = Guard(tag=result["tag"], values=[result["value"]], negated=result["op"] == "!=")
        else:
            guard = Guard(
                tag=result["tag"],
                values=list(result["values"]),
                negated=bool(result.get("negated")),
            )
        logger.debug("Parsed guard '%s' -> %s", source, guard)
        return guard


_parser = GuardParser()


def parse_guard(text: str) -> Guard:
    """Parse ``text`` with a shared :class:`GuardParser`."""
    return _parser.parse(text)
