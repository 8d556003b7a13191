#!/usr/bin/env python3
"""
protoelab - protocol-aware structural elaborator.

Usage:
    python scripts/protoelab.py elaborate design.yml
    python scripts/protoelab.py elaborate design.yml --json   # machine-readable
    python scripts/protoelab.py list-protocols
    python scripts/protoelab.py list-categories --ports

Subcommands:
    elaborate        Resolve, glue, expand and check a YAML design
    list-protocols   List the protocol catalog with default signal shapes
    list-categories  List fixed-ports interface categories
"""
import argparse
import json
import logging
import sys
from pathlib import Path

# Add project root to path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from protoelab.elab.elaborator import Elaborator
from protoelab.errors import ElaborationError, ElaborationFailed
from protoelab.model.category import get_category_library
from protoelab.model.protocol import catalog_info
from protoelab.parser.yaml.design_parser import YamlDesignParser
from protoelab.parser.yaml.errors import ParseError


def fail(error: Exception, use_json: bool):
    """Report ``error`` and exit with a non-zero status."""
    if use_json:
        payload = {"success": False, "error": str(error)}
        if isinstance(error, ElaborationError):
            payload["kind"] = error.kind
            payload["entities"] = list(error.entities)
            if isinstance(error, ElaborationFailed):
                payload["kinds"] = error.kinds
        print(json.dumps(payload))
    else:
        print(f"Error: {error}")
    sys.exit(1)


def cmd_elaborate(args):
    """Elaborate a YAML design and print the connection graph."""
    try:
        design = YamlDesignParser().parse_file(args.input)
        result = Elaborator(design).run()
    except (ParseError, ElaborationError) as e:
        fail(e, args.json)

    if args.json:
        print(json.dumps({"success": True, **result.to_dict()}))
        return

    print(f"\n✓ Elaborated design '{design.name}': {len(result.graph)} edge(s)")
    for module in result.modules.values():
        lanes = f", {module.lane_count} lane(s)" if module.lane_count else ""
        print(f"\n  {module.name} ({len(module.ports)} port(s){lanes})")
        for ref in module.dropped:
            print(f"    dropped  {ref}")
    print("\nEdges:")
    for edge in result.graph:
        reg = " [reg]" if edge.registered else ""
        print(f"  {edge.origin.value:6} {edge}{reg}")


def cmd_list_protocols(args):
    """List protocol variants and their signals."""
    info = catalog_info()
    if args.json:
        print(json.dumps({"success": True, "protocols": info}))
        return

    print("\nProtocol catalog:")
    for entry in info:
        params = ", ".join(f"{k}={v}" for k, v in entry["parameters"].items())
        print(f"\n  {entry['protocol']} ({params})")
        for signal in entry["signals"]:
            name = f"{signal['bundle']}.{signal['name']}"
            print(f"    {name:32} {signal['direction']:4} [{signal['width']}] {signal['presence']}")


def cmd_list_categories(args):
    """List interface categories from the category library."""
    try:
        library = get_category_library()
    except (OSError, ValueError) as e:
        fail(e, args.json)

    if args.json:
        print(
            json.dumps(
                {"success": True, "categories": library.get_all_category_info(include_ports=True)}
            )
        )
        return

    print("\nAvailable interface categories:")
    for key in library.list_categories():
        info = library.get_category_info(key, include_ports=args.ports)
        if not args.ports:
            print(f"  {key:16} - {info['description']} ({info['ports']} ports)")
            continue
        print(f"\n  {key} - {info['description']}")
        for port in info["ports"]:
            print(f"    {port['name']:20} {port['direction']:4} [{port['width']}]")
    if not args.ports:
        print("\nAdd --ports for the canonical port list")


def main():
    parser = argparse.ArgumentParser(
        prog="protoelab", description="Protocol-aware structural elaborator"
    )
    parser.add_argument("--verbose", "-v", action="count", default=0, help="More log output")
    subparsers = parser.add_subparsers(dest="command", required=True)

    # elaborate subcommand
    elab_parser = subparsers.add_parser("elaborate", help="Elaborate a YAML design")
    elab_parser.add_argument("input", help="Design YAML file")
    elab_parser.add_argument("--json", action="store_true", help="JSON output")
    elab_parser.set_defaults(func=cmd_elaborate)

    # list-protocols subcommand
    proto_parser = subparsers.add_parser("list-protocols", help="List the protocol catalog")
    proto_parser.add_argument("--json", action="store_true", help="JSON output")
    proto_parser.set_defaults(func=cmd_list_protocols)

    # list-categories subcommand
    cat_parser = subparsers.add_parser("list-categories", help="List interface categories")
    cat_parser.add_argument("--ports", action="store_true", help="Show port details")
    cat_parser.add_argument("--json", action="store_true", help="JSON output")
    cat_parser.set_defaults(func=cmd_list_categories)

    args = parser.parse_args()
    level = logging.WARNING if args.verbose == 0 else logging.INFO if args.verbose == 1 else logging.DEBUG
    logging.basicConfig(level=level, format="%(levelname)s %(name)s: %(message)s")
    args.func(args)


if __name__ == "__main__":
    main()
