"""
Target Configuration Parser Module.

This module adds the connection and authentication options used by the RPC
enrollment method. The certreq method ignores them.
"""

import argparse
from typing import Optional


def add_argument_group(
    parser: argparse.ArgumentParser,
    connection_options: Optional[argparse._ArgumentGroup] = None,
) -> None:
    """
    Add connection and authentication arguments to a parser.

    Args:
        parser: The parser to add argument groups to
        connection_options: Optional existing argument group for connection options
    """
    if connection_options is not None:
        conn_group = connection_options
    else:
        conn_group = parser.add_argument_group("connection options")

    _ = conn_group.add_argument(
        "-dc-ip",
        action="store",
        metavar="ip address",
        help="IP address of the domain controller (KDC for Kerberos authentication)",
    )
    _ = conn_group.add_argument(
        "-target-ip",
        action="store",
        metavar="ip address",
        help=(
            "IP address of the CA server. If omitted, the CA server name is resolved. "
            "Useful when the CA server is a NetBIOS name that cannot be resolved"
        ),
    )
    _ = conn_group.add_argument(
        "-ns",
        action="store",
        metavar="ip address",
        help="Nameserver for DNS resolution",
    )
    _ = conn_group.add_argument(
        "-dns-tcp", action="store_true", help="Use TCP instead of UDP for DNS queries"
    )
    _ = conn_group.add_argument(
        "-timeout",
        action="store",
        metavar="seconds",
        help="Timeout for each connection or certreq invocation in seconds (default: 30)",
        default=30,
        type=int,
    )

    auth_group = parser.add_argument_group("authentication options")

    _ = auth_group.add_argument(
        "-u",
        "-username",
        metavar="username@domain",
        dest="username",
        action="store",
        help="Username to authenticate with",
    )
    _ = auth_group.add_argument(
        "-p",
        "-password",
        metavar="password",
        dest="password",
        action="store",
        help="Password for authentication",
    )
    _ = auth_group.add_argument(
        "-hashes",
        action="store",
        metavar="[lmhash:]nthash",
        help="NTLM hash",
    )
    _ = auth_group.add_argument(
        "-k",
        action="store_true",
        dest="do_kerberos",
        help=(
            "Use Kerberos authentication. Grabs credentials from ccache file "
            "(KRB5CCNAME) based on target parameters"
        ),
    )
    _ = auth_group.add_argument(
        "-aes",
        action="store",
        metavar="hex key",
        help="AES key to use for Kerberos Authentication (128 or 256 bits)",
    )
    _ = auth_group.add_argument(
        "-no-pass",
        action="store_true",
        help="Don't ask for password (useful for -k)",
    )
