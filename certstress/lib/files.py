"""
File handling utilities for certstress.

All artifacts of a run live in one output directory and are named after the
request id, so concurrent workers never write the same path.
"""

import contextlib
import os
from typing import Iterator, Union

from certstress.lib.errors import SetupError
from certstress.lib.logger import logging

DESCRIPTOR_SUFFIX = ".inf"
REQUEST_SUFFIX = ".req"
CERTIFICATE_SUFFIX = ".cer"


def ensure_output_dir(path: str) -> str:
    """
    Create the output directory if needed and make sure it is writable.

    Args:
        path: Directory path

    Returns:
        Absolute path of the directory

    Raises:
        SetupError: If the directory cannot be created or written to
    """
    path = os.path.abspath(path)

    try:
        os.makedirs(path, exist_ok=True)
    except OSError as e:
        raise SetupError(f"Could not create output directory {path!r}: {e}") from e

    if not os.access(path, os.W_OK | os.X_OK):
        raise SetupError(f"Output directory {path!r} is not writable")

    logging.debug(f"Using output directory {path!r}")
    return path


def artifact_path(output_dir: str, subject_id: str, suffix: str) -> str:
    """Path of the artifact with the given suffix for one request."""
    return os.path.join(output_dir, f"{subject_id}{suffix}")


def save_file(data: Union[bytes, str], output_path: str) -> str:
    """
    Write data to a file, replacing any existing content.

    Args:
        data: Data to write (either binary bytes or text string)
        output_path: Path to output file

    Returns:
        The path written to
    """
    logging.debug(f"Writing {output_path!r}")

    mode = "wb" if isinstance(data, bytes) else "w"
    with open(output_path, mode) as f:
        f.write(data)

    return output_path


@contextlib.contextmanager
def descriptor_file(content: str, output_path: str) -> Iterator[str]:
    """
    Write an ephemeral request descriptor and remove it on exit.

    The file is removed whether or not the body raised.

    Args:
        content: Descriptor content
        output_path: Where to write it

    Yields:
        The descriptor path
    """
    try:
        # Content already uses CRLF and must be written untranslated
        yield save_file(content.encode("utf-8"), output_path)
    finally:
        try:
            os.remove(output_path)
        except FileNotFoundError:
            pass
        except OSError as e:
            logging.warning(f"Could not remove descriptor {output_path!r}: {e}")
