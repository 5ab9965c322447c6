"""Exceptions raised by :mod:`xml_pipeline`.

Every failure coming out of lxml is translated into one of the classes below
with the original exception chained, so callers can catch a single family of
errors while still reaching the engine diagnostic when they need it.  The
classes that describe bad caller input also derive from :class:`ValueError`.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, List, Optional


class XmlPipelineError(Exception):
    """Base class for all library errors."""


class MalformedDocument(XmlPipelineError, ValueError):
    """Input is not well-formed XML."""


class InvalidExpression(XmlPipelineError, ValueError):
    """An XPath expression could not be compiled or evaluated."""

    def __init__(self, message: str, expression: str) -> None:
        super().__init__(message)
        self.expression = expression


class InvalidBinding(XmlPipelineError, ValueError):
    """A namespace prefix could not be bound."""

    def __init__(self, message: str, prefix: object = None) -> None:
        super().__init__(message)
        self.prefix = prefix


class ResolutionError(XmlPipelineError):
    """A referenced resource could not be fetched."""

    def __init__(self, message: str, href: str, base: Optional[str] = None) -> None:
        super().__init__(message)
        self.href = href
        self.base = base


class ResourceNotFound(ResolutionError):
    """Nothing exists at the referenced location."""


class ResourceUnreadable(ResolutionError):
    """The referenced location exists but its content cannot be read."""


class StylesheetCompileError(XmlPipelineError):
    """An XSLT stylesheet could not be compiled."""


class TransformExecutionError(XmlPipelineError):
    """A compiled stylesheet failed while being applied."""


class SchemaCompileError(XmlPipelineError):
    """A schema document could not be turned into a validator."""


class NodeNotFound(XmlPipelineError, IndexError):
    """A query result was indexed past its end."""


@dataclass(frozen=True)
class Violation:
    """One problem reported by a validator.

    ``line`` and ``column`` refer to the rendered form of the validated
    document and are ``None`` when the validator did not report a position.
    """

    message: str
    line: Optional[int] = None
    column: Optional[int] = None

    def __str__(self) -> str:
        where = ""
        if self.line is not None and self.line >= 0:
            where = f"#{self.line}"
            if self.column is not None and self.column >= 0:
                where += f":{self.column}"
            where += " "
        return where + self.message


class SchemaViolation(XmlPipelineError):
    """A document does not conform to its schema.

    :param violations: Every problem the validator reported, in order.
    """

    def __init__(self, violations: Iterable[Violation]) -> None:
        self.violations: List[Violation] = list(violations)
        super().__init__(
            "%d error(s) in XML document: %s"
            % (len(self.violations), "; ".join(str(v) for v in self.violations))
        )
