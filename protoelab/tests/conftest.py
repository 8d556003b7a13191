import os
import sys

import pytest

# Add the project root to sys.path so that protoelab is importable
# This is needed because of the flat layout structure
project_root = os.path.abspath(os.path.join(os.path.dirname(__file__), "../.."))
if project_root not in sys.path:
    sys.path.insert(0, project_root)


def _ports(specs):
    """Accept ``"name"``, ``("name", width)`` or full port dicts."""
    ports = []
    for spec in specs:
        if isinstance(spec, str):
            ports.append({"name": spec})
        elif isinstance(spec, tuple):
            ports.append({"name": spec[0], "width": spec[1]})
        else:
            ports.append(spec)
    return ports


@pytest.fixture
def make_module():
    """Factory for ModuleInterface instances with terse port specs."""
    from protoelab.model import ModuleInterface

    def _make(name, protocol="decoupled", inputs=(), outputs=(), **kwargs):
        return ModuleInterface(
            name=name,
            protocol=protocol,
            inputs=_ports(inputs),
            outputs=_ports(outputs),
            **kwargs,
        )

    return _make
