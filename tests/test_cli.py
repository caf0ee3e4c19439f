"""Tests for the command line interface."""

import argparse
import logging
import signal
import sys
import threading
from pathlib import Path
from unittest.mock import MagicMock

import pytest

from certstress import entry
from certstress.commands import run as run_command
from certstress.commands.parsers import run as run_parser
from certstress.lib.enroll import CertreqEnrollmentClient, RPCEnrollmentClient
from certstress.lib.logger import Formatter

from .conftest import FakeEnrollmentClient


def parse(*args: str) -> argparse.Namespace:
    parser = argparse.ArgumentParser()
    subparsers = parser.add_subparsers(dest="action", required=True)
    run_parser.add_subparser(subparsers)
    return parser.parse_args(["run", *args])


class TestRunParser:
    """Tests for the run command options."""

    def test_defaults(self) -> None:
        """Only the CA is required."""
        options = parse("-ca-server", "ca01", "-ca", "CORP-CA")

        assert options.ca_server == "ca01"
        assert options.ca_name == "CORP-CA"
        assert options.template == "User"
        assert options.count == 10
        assert options.workers == 4
        assert options.method == "certreq"
        assert options.certreq == "certreq.exe"
        assert options.timeout == 30

    def test_load_options(self) -> None:
        """Counts are parsed as integers."""
        options = parse(
            "-ca-server", "ca01", "-ca", "CORP-CA", "-count", "500", "-workers", "16",
            "-template", "WebServer", "-out", "results",
        )

        assert (options.count, options.workers) == (500, 16)
        assert options.template == "WebServer"
        assert options.out == "results"

    def test_ca_required(self) -> None:
        """A missing CA name is a usage error."""
        with pytest.raises(SystemExit):
            parse("-ca-server", "ca01")

    def test_unknown_method(self) -> None:
        """Only certreq and rpc are accepted."""
        with pytest.raises(SystemExit):
            parse("-ca-server", "ca01", "-ca", "CORP-CA", "-method", "http")


class TestGetClient:
    """Tests for enrollment client selection."""

    def test_certreq(self) -> None:
        """The certreq client receives the executable and timeout."""
        client = run_command.get_client(
            parse("-ca-server", "ca01", "-ca", "CORP-CA", "-certreq", "C:\\certreq.exe", "-timeout", "5")
        )

        assert isinstance(client, CertreqEnrollmentClient)
        assert client.executable == "C:\\certreq.exe"
        assert client.timeout == 5

    def test_rpc(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """The RPC client targets the CA server with the given credentials."""
        monkeypatch.setattr("certstress.lib.target.Resolver", MagicMock())
        client = run_command.get_client(
            parse(
                "-ca-server", "10.0.0.5", "-ca", "CORP-CA", "-method", "rpc",
                "-u", "alice@corp.local", "-hashes", ":31d6cfe0d16ae931b73c59d7e0c089c0",
                "-dynamic-endpoint",
            )
        )

        assert isinstance(client, RPCEnrollmentClient)
        assert client.dynamic
        assert client.target.target_ip == "10.0.0.5"
        assert client.target.username == "ALICE"
        assert client.target.domain == "CORP.LOCAL"
        assert client.target.nthash == "31d6cfe0d16ae931b73c59d7e0c089c0"


class TestSignalHandlers:
    """Tests for graceful cancellation."""

    def test_sigint_sets_cancel(self) -> None:
        """SIGINT sets the cancellation event instead of killing the run."""
        cancel = threading.Event()
        previous = run_command.install_signal_handlers(cancel)
        try:
            handler = signal.getsignal(signal.SIGINT)
            handler(signal.SIGINT, None)
        finally:
            run_command.restore_signal_handlers(previous)

        assert cancel.is_set()
        assert signal.getsignal(signal.SIGINT) == previous[signal.SIGINT]


class TestFormatter:
    """Tests for the bullet-point log formatter."""

    @pytest.mark.parametrize(
        "level,bullet",
        [(logging.INFO, "[*]"), (logging.DEBUG, "[+]"), (logging.WARNING, "[!]"), (logging.ERROR, "[-]")],
    )
    def test_bullets(self, level: int, bullet: str) -> None:
        """Each level gets its own bullet."""
        record = logging.LogRecord("certstress", level, __file__, 1, "hello", None, None)
        assert Formatter().format(record) == f"{bullet} hello"


@pytest.mark.usefixtures("reset_logger")
class TestMain:
    """Tests for the certstress entry point."""

    def test_run_prints_report(
        self,
        monkeypatch: pytest.MonkeyPatch,
        capsys: pytest.CaptureFixture,
        tmp_path: Path,
    ) -> None:
        """A successful run prints the summary."""
        client = FakeEnrollmentClient()
        monkeypatch.setattr("certstress.commands.run.get_client", lambda options: client)
        monkeypatch.setattr(
            sys,
            "argv",
            ["certstress", "run", "-ca-server", "ca01", "-ca", "CORP-CA", "-count", "3", "-out", str(tmp_path / "out")],
        )

        entry.main()

        output = capsys.readouterr().out
        assert "Load test summary" in output
        assert len(client.submitted) == 3

    def test_setup_failure_exits_with_error(
        self, monkeypatch: pytest.MonkeyPatch, tmp_path: Path
    ) -> None:
        """An unusable output directory aborts with exit code 1."""
        blocker = tmp_path / "file"
        blocker.write_text("")
        client = FakeEnrollmentClient()
        monkeypatch.setattr("certstress.commands.run.get_client", lambda options: client)
        monkeypatch.setattr(
            sys,
            "argv",
            ["certstress", "run", "-ca-server", "ca01", "-ca", "CORP-CA", "-out", str(blocker)],
        )

        with pytest.raises(SystemExit) as excinfo:
            entry.main()

        assert excinfo.value.code == 1
        assert client.created == []
