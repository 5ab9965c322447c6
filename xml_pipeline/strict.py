"""Documents that are known to be schema valid.

:class:`ValidatingDocument` validates the document it wraps while being
constructed and raises :class:`~xml_pipeline.errors.SchemaViolation` when the
content does not conform, so no instance ever exists for an invalid
document.  Once built it delegates every operation to the wrapped document
without validating again.
"""

from __future__ import annotations

from typing import Any, Callable, List, Optional

from lxml import etree

from . import utils
from .context import NamespaceContext
from .document import BaseDocument, Document, Matches
from .errors import SchemaViolation, Violation
from .schema import as_validator

logger = utils.get_logger(__name__)


class ValidatingDocument(BaseDocument):
    """A document that passed validation.

    :param document: Document to check.
    :param validator: A :class:`~xml_pipeline.schema.Schema`, an XSD
        document, a pre-built lxml validator, a
        :class:`~xml_pipeline.schema.SchemaLocator` or a source resolver used
        to fetch the schema the document declares.
    :raises SchemaViolation: If the document does not conform.
    """

    def __init__(self, document: BaseDocument, validator: object) -> None:
        violations = as_validator(validator).validate(document)
        if violations:
            logger.warning(
                "%d XML validation error(s):\n  %s\n%s",
                len(violations),
                "\n  ".join(str(v) for v in violations),
                document.render(),
            )
            raise SchemaViolation(violations)
        self._origin = document

    @property
    def document(self) -> BaseDocument:
        """The wrapped, validated document."""
        return self._origin

    @property
    def context(self) -> NamespaceContext:
        return self._origin.context

    def query(self, query: str) -> Matches:
        return self._origin.query(query)

    def xpath(self, query: str) -> Matches:
        return self._origin.xpath(query)

    def nodes(self, query: str) -> Matches:
        return self._origin.nodes(query)

    def render(self) -> str:
        return self._origin.render()

    # Context changes return plain documents; revalidating is up to the caller.
    def with_namespace(self, prefix: str, value: object) -> Document:
        return self._origin.with_namespace(prefix, value)

    def with_merged_context(self, provider: object) -> Document:
        return self._origin.with_merged_context(provider)

    def with_function(
        self, name: str, func: Callable[..., Any], namespace: Optional[str] = None
    ) -> Document:
        return self._origin.with_function(name, func, namespace)

    def inner(self) -> etree._Element:
        return self._origin.inner()

    def deep_copy(self) -> etree._Element:
        return self._origin.deep_copy()

    def validate(self, validator: object) -> List[Violation]:
        return self._origin.validate(validator)

    def __repr__(self) -> str:
        return f"<ValidatingDocument {self._origin!r}>"
