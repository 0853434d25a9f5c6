"""
bulk_run.py

'gitlabbulk' subcommand for applying one operation to a list of groups
and projects.
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
import signal
import sys

from gitlabbulk.api import get_service
from gitlabbulk.bulk.ui import NullUI, PlainUI, ProgressBarUI
from gitlabbulk.cli.cli_utils import (
    ParamAction,
    exit_on_signal,
    json_object,
    load_itemlist,
    validate_operation,
)
from gitlabbulk.exceptions import InvalidSubmission


def setup(subparsers):
    """
    Setup args for run command.

    Args:
        subparsers: subparser object passed from gitlabbulk.py
    """
    parser = subparsers.add_parser("run",
                                   help="Apply one operation to a list of groups and projects")
    parser.add_argument("operation",
                        type=validate_operation,
                        help="Operation to apply, e.g. archive, set-visibility, create-subgroups.")
    parser.add_argument("-i", "--itemlist",
                        type=argparse.FileType("r"),
                        required=True,
                        metavar="FILE",
                        help=("JSON-lines file of items, one object or item id "
                              "per line ('-' for stdin)."))
    parser.add_argument("-p", "--param",
                        nargs="+",
                        action=ParamAction,
                        metavar="KEY:VALUE",
                        help="Operation parameter. Values are decoded as JSON when possible.")
    parser.add_argument("--params-json",
                        type=json_object,
                        metavar="JSON",
                        help="Operation parameters as a JSON object.")

    ui_group = parser.add_mutually_exclusive_group()
    ui_group.add_argument("-q", "--no-ui",
                          action="store_true",
                          help="Don't print progress, only the summary.")
    ui_group.add_argument("-P", "--progress",
                          action="store_true",
                          help="Show a progress bar instead of per-item lines.")

    parser.set_defaults(func=lambda args: main(args, parser))


def get_ui(args: argparse.Namespace):
    if args.no_ui:
        return NullUI()
    if args.progress:
        return ProgressBarUI()
    return PlainUI()


def main(args: argparse.Namespace, parser: argparse.ArgumentParser):
    """
    Main entry point for 'gitlabbulk run'.
    """
    try:
        items = load_itemlist(args.itemlist)
    except ValueError as e:
        parser.error(f"--itemlist: {e}")

    params = dict(args.params_json or {})
    params.update(args.param or {})

    service = get_service(session=args.session)
    try:
        operation_id = service.submit(args.operation, items, params)
    except InvalidSubmission as e:
        service.shutdown(wait=False)
        parser.error(str(e))

    ui = get_ui(args)
    subscription = service.subscribe(operation_id)
    listener = subscription.listen(ui)

    def cancel_on_signal(sig, frame):
        # A second Ctrl-C exits without waiting.
        signal.signal(signal.SIGINT, exit_on_signal)
        print("Cancelling, press Ctrl-C again to quit now...", file=sys.stderr)
        service.cancel(operation_id)

    previous_handler = signal.signal(signal.SIGINT, cancel_on_signal)
    try:
        summary = service.wait(operation_id)
        listener.join(timeout=5)
    finally:
        signal.signal(signal.SIGINT, previous_handler)
        subscription.close()
        ui.close()
        service.shutdown(wait=False)

    print(json.dumps(summary.to_dict(), indent=2))
    if summary.failed_count or summary.status != "completed":
        sys.exit(1)
