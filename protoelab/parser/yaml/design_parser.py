"""
YAML parser for design descriptions.

Loads a YAML design file and converts it to the canonical ``Design`` model.
Keys are camelCase; connections may be written as ``"src >>> sink"`` strings
or as mappings with ``from``, ``to``, ``named`` and ``registered`` keys.
"""

import logging
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import yaml
from pydantic import ValidationError

from protoelab.model import BundleEndpoint, Connection, Design, FunctionCase, ModuleInterface, Port
from protoelab.utils import filter_none

from .errors import ParseError
from .guard_parser import GuardParser

logger = logging.getLogger(__name__)

CONNECT_OPERATOR = ">>>"


class YamlDesignParser:
    """
    Parser for YAML design definitions.

    Handles:
    - Top-level ports, parameters and external signals
    - Module instances with protocol, category and annotated cases
    - Bulk connections in string or mapping form
    - Validation and error reporting with line numbers
    """

    def __init__(self):
        self.guard_parser = GuardParser()
        self._current_file: Optional[Path] = None

    def parse_file(self, file_path: Union[str, Path]) -> Design:
        """
        Parse a design YAML file.

        Args:
            file_path: Path to the design YAML file

        Returns:
            Design: Validated design model

        Raises:
            ParseError: If parsing or validation fails
            ElaborationError: If a declaration is semantically invalid
                (unknown protocol, undeclared width parameter, ...)
        """
        file_path = Path(file_path).resolve()
        self._current_file = file_path

        if not file_path.exists():
            raise ParseError(f"File not found: {file_path}")

        with open(file_path, "r", encoding="utf-8") as f:
            text = f.read()
        return self.parse_text(text, file_path)

    def parse_text(self, text: str, file_path: Optional[Path] = None) -> Design:
        """Parse design YAML from a string."""
        try:
            data = yaml.safe_load(text)
        except yaml.YAMLError as e:
            raise ParseError.from_yaml_error(e, file_path) from None

        if not isinstance(data, dict):
            raise ParseError("Root element must be a YAML object/dictionary", file_path)

        try:
            design = self._parse_design(data, file_path)
        except ValidationError as e:
            # Convert Pydantic validation errors to ParseError
            errors = []
            for error in e.errors():
                loc = " -> ".join(str(x) for x in error["loc"])
                errors.append(f"{loc}: {error['msg']}")
            raise ParseError("Validation failed:\n  " + "\n  ".join(errors), file_path) from None

        logger.info(
            "Parsed design '%s': %d module(s), %d connection(s)",
            design.name,
            len(design.modules),
            len(design.connections),
        )
        return design

    def _parse_design(self, data: Dict[str, Any], file_path: Optional[Path]) -> Design:
        """Parse the top-level design structure."""
        modules = self._parse_modules(data.get("modules", []), file_path)
        ports = self._parse_ports(data.get("ports", []), file_path, "port")
        connections = self._parse_connections(data.get("connections", []), file_path)

        kwargs = filter_none(
            {
                "name": data.get("design", data.get("name")),
                "parameters": data.get("parameters"),
                "external": data.get("external"),
            }
        )
        return Design(modules=modules, ports=ports, connections=connections, **kwargs)

    def _parse_ports(
        self, data: List[Dict[str, Any]], file_path: Optional[Path], label: str
    ) -> List[Port]:
        """Parse port definitions."""
        ports = []
        for idx, port_data in enumerate(data or []):
            if isinstance(port_data, str):
                port_data = {"name": port_data}
            try:
                ports.append(
                    Port(
                        **filter_none(
                            {
                                "name": port_data.get("name"),
                                "width": port_data.get("width"),
                                "direction": port_data.get("direction"),
                                "optional": port_data.get("optional"),
                                "flipped": port_data.get("flipped"),
                                "description": port_data.get("description"),
                            }
                        )
                    )
                )
            except (AttributeError, TypeError, ValueError) as e:
                raise ParseError(f"Error parsing {label}[{idx}]: {e}", file_path) from None
        return ports

    def _parse_cases(
        self, data: List[Dict[str, Any]], file_path: Optional[Path], module: str
    ) -> List[FunctionCase]:
        """Parse annotated function cases; string guards go through the guard grammar."""
        cases = []
        for idx, case_data in enumerate(data or []):
            try:
                guard = case_data.get("guard")
                if isinstance(guard, str):
                    guard = self.guard_parser.parse(guard)
                cases.append(
                    FunctionCase(
                        **filter_none(
                            {
                                "name": case_data.get("name"),
                                "annotation": case_data.get("annotation"),
                                "guard": guard,
                                "reads": case_data.get("reads"),
                                "writes": case_data.get("writes"),
                                "body": case_data.get("body"),
                            }
                        )
                    )
                )
            except (ParseError, AttributeError, TypeError, ValueError) as e:
                raise ParseError(f"Error parsing {module}.cases[{idx}]: {e}", file_path) from None
        return cases

    def _parse_modules(
        self, data: List[Dict[str, Any]], file_path: Optional[Path]
    ) -> List[ModuleInterface]:
        """Parse module instances."""
        modules = []
        for idx, module_data in enumerate(data or []):
            if not isinstance(module_data, dict):
                raise ParseError(f"modules[{idx}] must be a mapping", file_path)
            name = module_data.get("name", f"modules[{idx}]")
            if "protocol" not in module_data:
                raise ParseError(f"Module '{name}' is missing required field: protocol", file_path)
            inputs = self._parse_ports(module_data.get("inputs", []), file_path, f"{name}.inputs")
            outputs = self._parse_ports(
                module_data.get("outputs", []), file_path, f"{name}.outputs"
            )
            cases = self._parse_cases(module_data.get("cases", []), file_path, name)
            try:
                modules.append(
                    ModuleInterface(
                        inputs=inputs,
                        outputs=outputs,
                        cases=cases,
                        **filter_none(
                            {
                                "name": module_data.get("name"),
                                "protocol": module_data.get("protocol"),
                                "parameters": module_data.get("parameters"),
                                "category": module_data.get("category"),
                                "defaults": self._stringify(module_data.get("defaults")),
                                "description": module_data.get("description"),
                            }
                        ),
                    )
                )
            except (TypeError, ValueError) as e:
                raise ParseError(f"Error parsing module '{name}': {e}", file_path) from None
        return modules

    @staticmethod
    def _stringify(defaults: Optional[Dict[str, Any]]) -> Optional[Dict[str, str]]:
        """YAML reads ``0`` as an int; defaults are opaque constant text."""
        if defaults is None:
            return None
        return {str(k): str(v) for k, v in defaults.items()}

    @staticmethod
    def _parse_endpoint_text(text: str) -> Any:
        """``alu``, ``alu[1]``, or a positional bundle ``(a, b)``."""
        text = text.strip()
        if text.startswith("(") and text.endswith(")"):
            return [item.strip() for item in text[1:-1].split(",") if item.strip()]
        return text

    def _parse_connections(
        self, data: List[Any], file_path: Optional[Path]
    ) -> List[Connection]:
        """Parse bulk connections in declaration order."""
        connections = []
        for idx, conn_data in enumerate(data or []):
            try:
                if isinstance(conn_data, str):
                    source, operator, sink = conn_data.partition(CONNECT_OPERATOR)
                    if not operator:
                        raise ValueError(f"expected 'source {CONNECT_OPERATOR} sink'")
                    connections.append(
                        Connection(
                            source=self._parse_endpoint_text(source),
                            sink=self._parse_endpoint_text(sink),
                        )
                    )
                    continue
                named = bool(conn_data.get("named", False))
                connections.append(
                    Connection(
                        **filter_none(
                            {
                                "source": self._endpoint(conn_data.get("from"), named),
                                "sink": self._endpoint(conn_data.get("to"), named),
                                "registered": conn_data.get("registered"),
                            }
                        )
                    )
                )
            except (AttributeError, TypeError, ValueError) as e:
                raise ParseError(f"Error parsing connections[{idx}]: {e}", file_path) from None
        return connections

    def _endpoint(self, value: Any, named: bool) -> Any:
        """Instance name, ``inst[lane]``, or a list of signal references.

        List entries are reference strings or ``{ref, name}`` mappings; with
        ``named`` the bundle is matched by entry name.
        """
        if isinstance(value, str):
            value = self._parse_endpoint_text(value)
        if isinstance(value, list):
            return BundleEndpoint(items=value, named=named)
        return value
