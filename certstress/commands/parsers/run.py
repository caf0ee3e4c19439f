"""
Parser for the load test command.

This module defines the command-line interface for the 'run' command, which
generates synthetic certificate requests and submits them to an AD CS CA.
"""

import argparse
from typing import Callable, Tuple

from . import target

# Command name identifier
NAME = "run"


def entry(options: argparse.Namespace) -> None:
    """
    Entry point for the load test command.

    Args:
        options: Parsed command-line arguments
    """
    from certstress.commands import run

    run.entry(options)


def add_subparser(subparsers: argparse._SubParsersAction) -> Tuple[str, Callable]:  # type: ignore
    """
    Add the load test command subparser to the main parser.

    Args:
        subparsers: Parent parser to attach the subparser to

    Returns:
        Tuple of (command_name, entry_function) for command registration
    """
    subparser = subparsers.add_parser(
        NAME,
        help="Run a load test against a CA",
        description=(
            "Generate synthetic certificate requests and submit them to an "
            "Active Directory Certificate Services CA, then report timing and errors. "
            "All requests are generated before the first one is submitted."
        ),
    )

    ca_group = subparser.add_argument_group("certificate authority options")
    ca_group.add_argument(
        "-ca-server",
        action="store",
        metavar="hostname",
        required=True,
        help="Host name of the CA server",
    )
    ca_group.add_argument(
        "-ca",
        action="store",
        dest="ca_name",
        metavar="certificate authority name",
        required=True,
        help="Name of the Certificate Authority",
    )

    load_group = subparser.add_argument_group("load options")
    load_group.add_argument(
        "-template",
        action="store",
        metavar="template name",
        default="User",
        help="Certificate template to request (default: User)",
    )
    load_group.add_argument(
        "-count",
        action="store",
        metavar="number",
        default=10,
        type=int,
        help="Number of requests to generate and submit (default: 10)",
    )
    load_group.add_argument(
        "-workers",
        action="store",
        metavar="number",
        default=4,
        type=int,
        help="Number of concurrent requests per phase (default: 4)",
    )

    output_group = subparser.add_argument_group("output options")
    output_group.add_argument(
        "-out",
        action="store",
        metavar="directory",
        default="certstress-output",
        help="Directory for request and certificate files (default: certstress-output)",
    )

    method_group = subparser.add_argument_group("enrollment options")
    method_group.add_argument(
        "-method",
        action="store",
        choices=["certreq", "rpc"],
        default="certreq",
        help="Enrollment method: certreq.exe or MS-ICPR RPC (default: certreq)",
    )
    method_group.add_argument(
        "-certreq",
        action="store",
        metavar="path",
        default="certreq.exe",
        help="Path to certreq.exe (default: certreq.exe)",
    )

    connection_group = subparser.add_argument_group("connection options")
    connection_group.add_argument(
        "-dynamic-endpoint",
        action="store_true",
        help="Prefer dynamic TCP endpoint over named pipe (rpc method)",
    )

    target.add_argument_group(subparser, connection_options=connection_group)

    return NAME, entry
