"""Small utilities used across the package.

These helpers are kept independent of any class so they are easy to test in
isolation.  They deal with parser setup, logging and turning lxml error logs
into readable diagnostics.
"""

from __future__ import annotations

import logging
import math
import re
from typing import List, Union

from lxml import etree

import config
from .errors import Violation

_ENCODING_DECL = re.compile(r"encoding=[\"']([^\"']+)[\"']")


def get_logger(name: str) -> logging.Logger:
    """Return a module logger honouring :data:`config.LOG_LEVEL`.

    :param name: Logger name, usually ``__name__``.
    :returns: The configured logger.
    """
    logger = logging.getLogger(name)
    logger.setLevel(getattr(logging, str(config.LOG_LEVEL).upper()))
    return logger


def make_parser() -> etree.XMLParser:
    """Create a parser with the library's safety settings.

    Blank text is preserved so rendering reproduces the input layout, external
    entities are never expanded and network access follows
    :data:`config.NO_NETWORK`.  A new parser is built per call because lxml
    parsers carry per-document resolver registrations.

    :returns: A fresh :class:`lxml.etree.XMLParser`.
    """
    return etree.XMLParser(
        remove_blank_text=False,
        resolve_entities=False,
        no_network=config.NO_NETWORK,
    )


def detect_encoding(data: Union[str, bytes]) -> str:
    """Detect the encoding named in an XML declaration.

    Only the first couple of hundred characters are inspected, which covers
    any well-formed declaration.  When no encoding is declared
    :data:`config.ENCODING` is assumed.

    :param data: Raw XML text or bytes.
    :returns: The encoding name.
    """
    if isinstance(data, bytes):
        header = data[:200].decode("ascii", errors="ignore")
    else:
        header = data[:200]
    if not header.lstrip().startswith("<?xml"):
        return config.ENCODING
    match = _ENCODING_DECL.search(header.split("?>", 1)[0])
    return match.group(1) if match else config.ENCODING


def error_log_text(error_log: etree._ListErrorLog) -> str:
    """Join an lxml error log into a single diagnostic line.

    :param error_log: Log attached to a parser, stylesheet or validator.
    :returns: ``line:column message`` entries separated by ``; ``.
    """
    return "; ".join(
        f"{entry.line}:{entry.column} {entry.message}" for entry in error_log
    )


def violations_from_log(error_log: etree._ListErrorLog) -> List[Violation]:
    """Convert validator log entries into :class:`Violation` records."""
    return [
        Violation(entry.message, entry.line, entry.column) for entry in error_log
    ]


def xpath_string(value: object) -> str:
    """Render a scalar XPath result with XPath ``string()`` semantics.

    lxml returns numbers as floats and booleans as ``bool``; XPath prints
    integral numbers without a fraction and booleans in lower case.
    """
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float):
        if math.isnan(value):
            return "NaN"
        if math.isinf(value):
            return "Infinity" if value > 0 else "-Infinity"
        if value.is_integer():
            return str(int(value))
        return repr(value)
    return str(value)


def escape_unicode(text: str) -> str:
    """Replace control and non-ASCII characters with ``\\uXXXX`` escapes."""
    return "".join(
        ch if 32 <= ord(ch) <= 0x7F else "\\u%X" % ord(ch) for ch in text
    )
