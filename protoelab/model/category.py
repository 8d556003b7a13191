"""
Interface category library.

Provides access to the fixed-ports interface categories (memory, fifo, ...)
from the categories.yml file. A module that declares a category is
conformed to the category's canonical port set by shape comparison; unused
canonical ports are retained and marked dropped.
"""

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple, Union

import yaml

from protoelab.errors import CategoryMismatch
from protoelab.utils import CATEGORY_DEFINITIONS_PATH, enum_value

from .module import ModuleInterface
from .port import Port, PortDirection
from .protocol import IN_BUNDLE, OUT_BUNDLE

logger = logging.getLogger(__name__)

# Default path to category definitions
DEFAULT_CATEGORY_DEFS_PATH = CATEGORY_DEFINITIONS_PATH


@dataclass
class CategoryPort:
    """Definition of a canonical category port."""

    name: str
    direction: PortDirection
    width: Union[int, str] = 1

    @property
    def bundle(self) -> str:
        return IN_BUNDLE if self.direction == PortDirection.IN else OUT_BUNDLE


@dataclass
class InterfaceCategory:
    """Canonical port template of one category."""

    key: str  # e.g., "memory"
    ports: List[CategoryPort]
    description: str = ""

    def get_port(self, name: str) -> Optional[CategoryPort]:
        return next((p for p in self.ports if p.name == name), None)


class CategoryLibrary:
    """
    Access predefined interface categories.

    Loads category templates from YAML and conforms modules to them.
    """

    def __init__(self, categories: Dict[str, InterfaceCategory]):
        """Initialize with pre-loaded categories."""
        self._categories = categories

    @classmethod
    def load(cls, path: Optional[Path] = None) -> "CategoryLibrary":
        """
        Load category definitions from YAML file.

        Args:
            path: Path to categories.yml (defaults to the bundled library)

        Returns:
            CategoryLibrary instance
        """
        path = path or DEFAULT_CATEGORY_DEFS_PATH

        if not path.exists():
            raise FileNotFoundError(f"Category definitions file not found: {path}")

        with open(path, "r", encoding="utf-8") as f:
            raw_data = yaml.safe_load(f) or {}

        categories = {}
        for key, data in raw_data.items():
            ports = [
                CategoryPort(
                    name=port_data["name"],
                    direction=PortDirection.from_string(port_data.get("direction", "in")),
                    width=port_data.get("width", 1),
                )
                for port_data in data.get("ports", [])
            ]
            categories[key] = InterfaceCategory(
                key=key, ports=ports, description=data.get("description", "")
            )

        logger.debug("Loaded %d interface categories from %s", len(categories), path)
        return cls(categories)

    def list_categories(self) -> List[str]:
        """Get list of available category keys."""
        return list(self._categories.keys())

    def get_category(self, key: str) -> Optional[InterfaceCategory]:
        """Get category by key, or None if not found."""
        return self._categories.get(key)

    def get_category_info(self, key: str, include_ports: bool = False) -> Optional[Dict[str, Any]]:
        """
        Get category information as dictionary (for JSON serialization).

        Args:
            key: Category key
            include_ports: If True, include full port definitions
        """
        category = self.get_category(key)
        if not category:
            return None

        info: Dict[str, Any] = {
            "key": category.key,
            "description": category.description,
            "ports": len(category.ports),
        }
        if include_ports:
            info["ports"] = [
                {"name": p.name, "direction": enum_value(p.direction), "width": p.width}
                for p in category.ports
            ]
        return info

    def get_all_category_info(self, include_ports: bool = False) -> List[Dict[str, Any]]:
        """Get information for all categories."""
        return [
            self.get_category_info(key, include_ports=include_ports)
            for key in self.list_categories()
        ]

    # --- Conformance ---

    @staticmethod
    def _resolve(module: ModuleInterface, width: Union[int, str], port: str) -> int:
        if isinstance(width, int):
            return width
        if width not in module.parameters:
            raise CategoryMismatch(
                f"Category '{module.category}' needs parameter '{width}'", module.name, port
            )
        return module.parameters[width]

    def conform(self, module: ModuleInterface) -> ModuleInterface:
        """
        Shape-check ``module`` against its category's canonical port set.

        Returns:
            The module with data ports in canonical order and every canonical
            port it does not declare added as a dropped port. Modules without
            a category are returned unchanged.

        The canonical order replaces the declaration order, so a positional
        bundle connected to a category module lines up with the template.
        Every width parameter of the template must be declared, including
        those of ports that end up dropped: a dropped port still has a shape.

        Raises:
            CategoryMismatch: Unknown category, extra port, or a port whose
                direction or width disagrees with the template.
        """
        if module.category is None:
            return module
        category = self.get_category(module.category)
        if category is None:
            raise CategoryMismatch(f"Unknown interface category '{module.category}'", module.name)

        declared: Dict[str, Tuple[str, Port]] = {}
        for port in module.inputs:
            declared[port.name] = (IN_BUNDLE, port)
        for port in module.outputs:
            declared[port.name] = (OUT_BUNDLE, port)

        extra = sorted(name for name in declared if category.get_port(name) is None)
        if extra:
            raise CategoryMismatch(
                f"Ports not part of category '{category.key}'", module.name, *extra
            )

        inputs: List[Port] = []
        outputs: List[Port] = []
        for template in category.ports:
            width = self._resolve(module, template.width, template.name)
            if template.name in declared:
                bundle, port = declared[template.name]
                if bundle != template.bundle:
                    raise CategoryMismatch(
                        f"Port belongs to the {template.bundle} bundle in category "
                        f"'{category.key}'",
                        module.name,
                        port.name,
                    )
                actual = module.resolve_width(port)
                if actual != width:
                    raise CategoryMismatch(
                        f"Width {actual} differs from category width {width}",
                        module.name,
                        port.name,
                    )
            else:
                port = Port(
                    name=template.name,
                    width=width,
                    direction=template.direction,
                    dropped=True,
                )
            (inputs if template.bundle == IN_BUNDLE else outputs).append(port)

        dropped = [p.name for p in inputs + outputs if p.dropped]
        if dropped:
            logger.info(
                "Module '%s' (%s): dropped unused port(s) %s",
                module.name,
                category.key,
                ", ".join(dropped),
            )
        return module.model_copy(update={"inputs": inputs, "outputs": outputs})


# Singleton instance for convenience
_library_instance: Optional[CategoryLibrary] = None


def get_category_library() -> CategoryLibrary:
    """Get or create the global CategoryLibrary instance."""
    global _library_instance
    if _library_instance is None:
        _library_instance = CategoryLibrary.load()
    return _library_instance
