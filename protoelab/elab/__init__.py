"""
Elaboration passes: bulk connection resolution, protocol glue, case
expansion and the deadlock/completeness checker.
"""

from .checker import ConnectivityChecker, check_design
from .elaborator import ElaboratedDesign, Elaborator, elaborate
from .expansion import CaseExpansionEngine, ExpandedModule, ExpandedPort
from .glue import glue, glue_rule
from .graph import ConnectionEdge, ConnectionGraph, EdgeOrigin, FrozenGraphError
from .resolver import BulkConnectionResolver

__all__ = [
    "ConnectionGraph",
    "ConnectionEdge",
    "EdgeOrigin",
    "FrozenGraphError",
    "BulkConnectionResolver",
    "glue",
    "glue_rule",
    "CaseExpansionEngine",
    "ExpandedModule",
    "ExpandedPort",
    "ConnectivityChecker",
    "check_design",
    "Elaborator",
    "ElaboratedDesign",
    "elaborate",
]
