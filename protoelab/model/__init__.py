"""
Pydantic-based canonical data models for protocol-aware elaboration.

This module provides the single source of truth for the design AST: ports
and bundles, the protocol catalog, module interfaces with their function
cases, and the design-level connection list.
"""

from .base import ElabBaseModel, FrozenModel, StrictModel
from .case import CaseAnnotation, FunctionCase, Guard
from .category import CategoryLibrary, InterfaceCategory, get_category_library
from .design import (
    BundleEndpoint,
    BundleItem,
    Connection,
    Design,
    ModuleEndpoint,
    connect,
)
from .module import ModuleInterface
from .port import Bundle, Port, PortDirection, SignalRef
from .protocol import (
    Decoupled,
    OutOfOrder,
    Protocol,
    ProtocolKind,
    SignalSpec,
    TicketTracker,
    TightlyCoupled,
    Valid,
    make_protocol,
    signal_shape,
)

__all__ = [
    # Base
    "ElabBaseModel",
    "StrictModel",
    "FrozenModel",
    # Port
    "Port",
    "PortDirection",
    "Bundle",
    "SignalRef",
    # Protocol catalog
    "Protocol",
    "ProtocolKind",
    "TightlyCoupled",
    "Valid",
    "Decoupled",
    "OutOfOrder",
    "SignalSpec",
    "TicketTracker",
    "make_protocol",
    "signal_shape",
    # Cases
    "CaseAnnotation",
    "FunctionCase",
    "Guard",
    # Module
    "ModuleInterface",
    # Categories
    "CategoryLibrary",
    "InterfaceCategory",
    "get_category_library",
    # Design
    "ModuleEndpoint",
    "BundleEndpoint",
    "BundleItem",
    "Connection",
    "Design",
    "connect",
]
