"""Tests for output directory and artifact handling."""

import os
from pathlib import Path

import pytest

from certstress.lib.errors import SetupError
from certstress.lib.files import (
    REQUEST_SUFFIX,
    artifact_path,
    descriptor_file,
    ensure_output_dir,
    save_file,
)
from certstress.lib.formatting import pretty_format, trim
from certstress.lib.spec import build_request_spec


class TestEnsureOutputDir:
    """Tests for ensure_output_dir."""

    def test_creates_missing_directory(self, tmp_path: Path) -> None:
        """Missing parents are created and the absolute path returned."""
        path = ensure_output_dir(str(tmp_path / "a" / "b"))
        assert os.path.isabs(path)
        assert os.path.isdir(path)

    def test_existing_directory(self, tmp_path: Path) -> None:
        """An existing directory is accepted as is."""
        assert ensure_output_dir(str(tmp_path)) == str(tmp_path)

    def test_file_in_the_way(self, tmp_path: Path) -> None:
        """A regular file at the path is a setup error."""
        path = tmp_path / "file"
        path.write_text("")
        with pytest.raises(SetupError):
            ensure_output_dir(str(path))


class TestArtifacts:
    """Tests for artifact files."""

    def test_artifact_path(self, tmp_path: Path) -> None:
        """Artifacts are named after the request id."""
        assert artifact_path(str(tmp_path), "abc", REQUEST_SUFFIX) == str(tmp_path / "abc.req")

    def test_save_text_and_bytes(self, tmp_path: Path) -> None:
        """Text and binary data are both written."""
        save_file("text", str(tmp_path / "a"))
        save_file(b"\x00\x01", str(tmp_path / "b"))
        assert (tmp_path / "a").read_text() == "text"
        assert (tmp_path / "b").read_bytes() == b"\x00\x01"

    def test_descriptor_removed_after_use(self, tmp_path: Path) -> None:
        """The descriptor exists inside the block only."""
        path = str(tmp_path / "abc.inf")
        with descriptor_file("[NewRequest]", path) as written:
            assert written == path
            assert os.path.exists(path)
        assert not os.path.exists(path)

    def test_descriptor_removed_on_error(self, tmp_path: Path) -> None:
        """The descriptor is removed when the block raises."""
        path = str(tmp_path / "abc.inf")
        with pytest.raises(RuntimeError):
            with descriptor_file("[NewRequest]", path):
                raise RuntimeError("boom")
        assert not os.path.exists(path)

    def test_descriptor_written_untranslated(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        """CRLF content is not doubled when text mode translates newlines."""

        def windows_open(file, mode="r", *args, **kwargs):
            if "b" not in mode:
                kwargs.setdefault("newline", "\r\n")
            return open(file, mode, *args, **kwargs)

        monkeypatch.setattr("certstress.lib.files.open", windows_open, raising=False)
        content = build_request_spec("User", "abc").to_inf()
        path = str(tmp_path / "abc.inf")

        with descriptor_file(content, path):
            with open(path, "rb") as f:
                raw = f.read()

        assert raw == content.encode("utf-8")
        assert b"\r\r\n" not in raw

    def test_descriptor_already_gone(self, tmp_path: Path) -> None:
        """A descriptor removed by the block is not an error."""
        path = str(tmp_path / "abc.inf")
        with descriptor_file("[NewRequest]", path):
            os.remove(path)


class TestFormatting:
    """Tests for report formatting helpers."""

    def test_trim(self) -> None:
        """Whitespace is stripped and long text cut."""
        assert trim("  short \n\n") == "short"
        assert len(trim("x" * 100, limit=20)) == 20

    def test_pretty_format_skips_none(self) -> None:
        """None values are left out."""
        lines = pretty_format({"Shown": 1, "Hidden": None}, padding=10)
        assert lines == ["Shown     : 1"]

    def test_pretty_format_rejects_unknown_types(self) -> None:
        """Unsupported values raise TypeError."""
        with pytest.raises(TypeError):
            pretty_format({"Key": object()})
