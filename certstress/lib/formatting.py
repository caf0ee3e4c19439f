"""
Formatting utilities for certstress.

This module provides functions for formatting run data into human-readable
text, including aligned key/value blocks and case conversion.
"""

import datetime
from typing import Any, Dict, List

JsonLike = Dict[str, Any]


def to_pascal_case(snake_str: str) -> str:
    """
    Convert a snake_case string to PascalCase.

    Example:
        >>> to_pascal_case("hello_world")
        "HelloWorld"
    """
    components = snake_str.split("_")
    return "".join(x.title() for x in components)


def trim(text: str, limit: int = 500) -> str:
    """
    Collapse surrounding whitespace and cut a message to at most limit characters.

    Tool output often ends with blank lines or carries a long trailer; only
    the head is useful in a summary.
    """
    text = text.strip()
    if len(text) <= limit:
        return text
    return text[: limit - 3].rstrip() + "..."


def pretty_format(data: JsonLike, indent: int = 0, padding: int = 28) -> List[str]:
    """
    Format a dictionary as aligned "key: value" lines.

    Nested dictionaries are indented below their key. None values are skipped.

    Args:
        data: Dictionary to format
        indent: Initial indentation level
        padding: Left padding for values

    Returns:
        List of formatted lines

    Raises:
        TypeError: If the dictionary contains unsupported types
    """
    lines: List[str] = []
    indent_str = "  " * indent

    for key, value in data.items():
        key_str = f"{indent_str}{key}"
        padded_key = key_str.ljust(padding, " ")

        if isinstance(value, (str, int, float, bool)):
            lines.append(f"{padded_key}: {value}")

        elif isinstance(value, datetime.datetime):
            lines.append(f"{padded_key}: {value.isoformat()}")

        elif isinstance(value, dict):
            lines.append(key_str)
            lines.extend(pretty_format(value, indent=indent + 1, padding=padding))

        elif isinstance(value, list):
            # Continuation lines line up under the first value
            formatted_list = ("\n" + " " * padding + "  ").join(str(x) for x in value)
            lines.append(f"{padded_key}: {formatted_list}")

        elif value is None:
            continue

        else:
            raise TypeError(
                f"Unsupported type for pretty printing: {type(value).__name__}"
            )

    return lines
