"""
Error types and error code translation for certstress.

The per-request failures (CreationError, SubmissionError) are recorded by
the stages and never abort a run. SetupError is the only failure that stops
a run, and only before any request has been generated.

Functions:
    translate_error_code: Convert a Windows error code to a readable message
    handle_error: Print a stack trace in debug mode, a hint otherwise
"""

import traceback
from typing import Tuple

from impacket import hresult_errors

from certstress.lib.logger import is_verbose, logging


class CertstressError(Exception):
    """Base class for all errors raised by certstress."""


class CreationError(CertstressError):
    """A request blob could not be generated."""


class SubmissionError(CertstressError):
    """The CA rejected a request or could not be reached."""


class SetupError(CertstressError):
    """The run could not be prepared (e.g. the output directory)."""


def translate_error_code(error_code: int) -> str:
    """
    Translate a Windows API error code to a human-readable string.

    Args:
        error_code: Windows API error code (HRESULT)

    Returns:
        Formatted error message with code, short description, and detailed explanation

    Example:
        >>> translate_error_code(0x12345678)
        'unknown error code: 0x12345678'
    """
    # Mask to 32 bits to handle sign extension issues
    masked_code = error_code & 0xFFFFFFFF

    if masked_code in hresult_errors.ERROR_MESSAGES:
        error_tuple: Tuple[str, str] = hresult_errors.ERROR_MESSAGES[masked_code]
        error_short, error_detail = error_tuple
        return f"code: 0x{masked_code:x} - {error_short} - {error_detail}"

    return f"unknown error code: 0x{masked_code:x}"


def handle_error(is_warning: bool = False) -> None:
    """
    Report the exception currently being handled.

    Prints the full traceback when verbose output is enabled, otherwise
    logs a hint on how to get it.

    Args:
        is_warning: Log the hint as a warning instead of an error
    """
    if is_verbose():
        traceback.print_exc()
    else:
        msg = "Use -debug to print a stacktrace"
        if is_warning:
            logging.warning(msg)
        else:
            logging.error(msg)
