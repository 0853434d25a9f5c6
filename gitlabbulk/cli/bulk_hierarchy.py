"""
bulk_hierarchy.py

'gitlabbulk' subcommand for turning a nested subgroup tree into a
create-subgroups item list.
"""

# Copyright (C) 2024-2026 gitlabbulk contributors
#
# This program is free software: you can redistribute it and/or modify
# it under the terms of the GNU Affero General Public License as
# published by the Free Software Foundation, either version 3 of the
# License, or (at your option) any later version.
#
# This program is distributed in the hope that it will be useful,
# but WITHOUT ANY WARRANTY; without even the implied warranty of
# MERCHANTABILITY or FITNESS FOR A PARTICULAR PURPOSE.  See the
# GNU Affero General Public License for more details.
#
# You should have received a copy of the GNU Affero General Public License
# along with this program.  If not, see <http://www.gnu.org/licenses/>.

import argparse
import json
import sys

from gitlabbulk.utils import flatten_hierarchy


def setup(subparsers):
    """
    Setup args for hierarchy command.

    Args:
        subparsers: subparser object passed from gitlabbulk.py
    """
    parser = subparsers.add_parser("hierarchy",
                                   help="Flatten a subgroup tree into create-subgroups items")
    parser.add_argument("file",
                        type=argparse.FileType("r"),
                        help=("JSON file with a list of subgroup nodes "
                              "({name, path, description, settings, subgroups}). '-' for stdin."))
    parser.add_argument("-P", "--parent-path",
                        required=True,
                        help="Full path of the existing group the tree is created under.")
    parser.add_argument("-o", "--output",
                        type=argparse.FileType("w"),
                        default=sys.stdout,
                        metavar="FILE",
                        help="Write the JSON-lines item list here (default: stdout).")

    parser.set_defaults(func=lambda args: main(args, parser))


def main(args: argparse.Namespace, parser: argparse.ArgumentParser):
    """
    Main entry point for 'gitlabbulk hierarchy'.
    """
    try:
        tree = json.load(args.file)
    except ValueError as e:
        parser.error(f"invalid JSON in {args.file.name}: {e}")

    if isinstance(tree, dict):
        # Accept a single root node or {"subgroups": [...]}.
        tree = tree["subgroups"] if "name" not in tree and "subgroups" in tree else [tree]
    if not isinstance(tree, list):
        parser.error("expected a list of subgroup nodes")

    try:
        items = flatten_hierarchy(tree, args.parent_path.strip("/"))
    except (KeyError, TypeError) as e:
        parser.error(f"malformed subgroup node: {e}")

    for item in items:
        print(json.dumps(item), file=args.output)
    if args.output is not sys.stdout:
        args.output.close()
