"""
Load test command for certstress.

This module wires the command-line options to a LoadTest run:
- selects the enrollment client (certreq.exe or MS-ICPR RPC)
- installs SIGINT/SIGTERM handlers that cancel the run gracefully
- prints the run report
"""

import argparse
import signal
import threading
from typing import Any, Dict

from certstress.lib.enroll import (
    CertreqEnrollmentClient,
    EnrollmentClient,
    RPCEnrollmentClient,
)
from certstress.lib.loadtest import LoadTest
from certstress.lib.logger import logging
from certstress.lib.target import Target


def get_client(options: argparse.Namespace) -> EnrollmentClient:
    """
    Create the enrollment client selected by -method.

    Args:
        options: Command-line arguments

    Returns:
        Enrollment client
    """
    if options.method == "rpc":
        target = Target.from_options(options)
        return RPCEnrollmentClient(target, dynamic=options.dynamic_endpoint)

    return CertreqEnrollmentClient(options.certreq, timeout=options.timeout)


def install_signal_handlers(cancel: threading.Event) -> Dict[int, Any]:
    """
    Set the cancellation event on SIGINT/SIGTERM.

    Returns:
        The previous handlers, keyed by signal number
    """

    def _handler(signum: int, frame: Any) -> None:
        logging.warning(
            f"{signal.Signals(signum).name} received. "
            "Waiting for in-flight requests to complete"
        )
        cancel.set()

    previous = {}
    for signum in (signal.SIGINT, signal.SIGTERM):
        previous[signum] = signal.signal(signum, _handler)

    return previous


def restore_signal_handlers(previous: Dict[int, Any]) -> None:
    for signum, handler in previous.items():
        signal.signal(signum, handler)


def entry(options: argparse.Namespace) -> None:
    """
    Command-line entry point for the load test.

    Args:
        options: Command-line arguments
    """
    client = get_client(options)

    cancel = threading.Event()
    previous = install_signal_handlers(cancel)

    try:
        load_test = LoadTest(client=client, cancel=cancel, **vars(options))
        report = load_test.run()
    finally:
        restore_signal_handlers(previous)

    print(report.render())
