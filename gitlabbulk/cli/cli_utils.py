"""
gitlabbulk.cli.cli_utils

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

from __future__ import annotations

import argparse
import json
import sys
from typing import IO

from gitlabbulk.models import OperationType


def parse_param_value(value: str):
    """Decode ``40``, ``true`` or ``["a"]`` as JSON, else keep the string."""
    try:
        return json.loads(value)
    except ValueError:
        return value


class ParamAction(argparse.Action):
    """Collect ``KEY:VALUE`` pairs into a dict, decoding JSON values."""

    def __call__(self, parser, namespace, values, option_string=None):
        # Initialize the destination as an empty dictionary if it doesn't exist
        if getattr(namespace, self.dest, None) is None:
            setattr(namespace, self.dest, {})

        for pair in values:
            if ":" not in pair and "=" in pair:
                pair = pair.replace("=", ":", 1)
            try:
                key, value = pair.split(":", 1)
            except ValueError:
                parser.error(f"{option_string} must be formatted as 'KEY:VALUE'")
            if not key:
                parser.error(f"{option_string} must be formatted as 'KEY:VALUE'")

            getattr(namespace, self.dest)[key] = parse_param_value(value)


def validate_operation(value: str) -> OperationType:
    try:
        return OperationType.parse(value)
    except ValueError:
        choices = ", ".join(t.value for t in OperationType)
        raise argparse.ArgumentTypeError(
            f"unknown operation '{value}' (choose from {choices})"
        )


def json_object(value: str) -> dict:
    """argparse type for a JSON object given on the command line."""
    try:
        obj = json.loads(value)
    except ValueError as e:
        raise argparse.ArgumentTypeError(f"invalid JSON: {e}")
    if not isinstance(obj, dict):
        raise argparse.ArgumentTypeError("expected a JSON object")
    return obj


def load_itemlist(fp: IO[str]) -> list[dict]:
    """Read items from a JSON-lines file.

    Each line is a JSON object (``{"id": "group:42", "name": ...}``) or
    a bare item id such as ``project:17``. Blank lines and lines starting
    with ``#`` are ignored.

    Raises:
        ValueError: If a line is neither an object nor a bare id.
    """
    items = []
    for lineno, line in enumerate(fp, start=1):
        line = line.strip()
        if not line or line.startswith("#"):
            continue
        if line.startswith("{"):
            try:
                items.append(json.loads(line))
            except ValueError as e:
                raise ValueError(f"line {lineno}: invalid JSON ({e})")
        elif " " in line:
            raise ValueError(f"line {lineno}: expected a JSON object or an item id")
        else:
            items.append({"id": line})
    return items


def exit_on_signal(sig, frame):
    """
    Exit the program cleanly upon receiving a specified signal.

    This function is designed to be used as a signal handler. When a signal
    (such as SIGINT or SIGPIPE) is received, it exits the program with an
    exit code of 128 plus the signal number. This convention helps to
    distinguish between regular exit codes and those caused by signals.
    """
    exit_code = 128 + sig
    sys.exit(exit_code)
