"""
Quarry SQL helpers - identifier allow-list and quoting.

Only identifiers are ever interpolated into SQL text; every one of them
passes ``check_identifier`` first. Values always travel as parameters.
"""

from __future__ import annotations

import re

from ..faults.domains import UnsafeIdentifierFault

__all__ = [
    "check_identifier",
    "quote_identifier",
]

_IDENTIFIER_RE = re.compile(r"[A-Za-z0-9_.]+")


def check_identifier(name: str) -> str:
    """
    Validate an identifier against the allow-list (letters, digits,
    underscore, dot). Returns it unchanged.

    Raises:
        UnsafeIdentifierFault: for anything else, including empty dotted parts.
    """
    if not isinstance(name, str) or not _IDENTIFIER_RE.fullmatch(name):
        raise UnsafeIdentifierFault(str(name))
    if any(part == "" for part in name.split(".")):
        raise UnsafeIdentifierFault(name)
    return name


def quote_identifier(name: str) -> str:
    """
    Check and double-quote an identifier, part by part.

        >>> quote_identifier("posts.id")
        '"posts"."id"'
    """
    check_identifier(name)
    return ".".join(f'"{part}"' for part in name.split("."))
