"""Schema validation.

:class:`Schema` compiles an XSD document with lxml and validates documents
against it, resolving ``xs:import``/``xs:include`` through a
:class:`~xml_pipeline.resolver.SourceResolver`.  :class:`SchemaLocator`
validates against whatever schema the document itself names in
``xsi:schemaLocation`` or ``xsi:noNamespaceSchemaLocation``.

Validation always runs on the rendered form of a document, so reported line
numbers match what :meth:`~xml_pipeline.document.Document.render` returns.
"""

from __future__ import annotations

import os
import pathlib
import threading
from abc import ABC, abstractmethod
from typing import List, Optional, Tuple, Union

from lxml import etree

from . import utils
from .document import BaseDocument, source_bytes
from .errors import MalformedDocument, SchemaCompileError, Violation
from .resolver import NO_RESOLUTION, FileResolver, SourceResolver, as_lxml_resolver

logger = utils.get_logger(__name__)

XSI_NS = "http://www.w3.org/2001/XMLSchema-instance"
XS_NS = "http://www.w3.org/2001/XMLSchema"


class Validator(ABC):
    """Anything able to check a document and list what is wrong with it."""

    @abstractmethod
    def validate(self, document: BaseDocument) -> List[Violation]:
        """Return the violations found in ``document``; empty when valid."""


def _rendered_tree(document: BaseDocument) -> etree._Element:
    return etree.fromstring(document.render().encode("utf-8"), utils.make_parser())


class Schema(Validator):
    """A compiled schema.

    :param source: XSD as a document, text, bytes, path or file object.
    :param resolver: Used for every ``xs:import`` and ``xs:include``.
    :param base: Location of the schema, handed to ``resolver`` as ``base``.
    :raises MalformedDocument: If the XSD is not well-formed XML.
    :raises SchemaCompileError: If lxml rejects the schema.
    :raises ResourceNotFound: If an imported schema cannot be found.
    """

    def __init__(
        self,
        source: object,
        resolver: SourceResolver = NO_RESOLUTION,
        base: Optional[str] = None,
    ) -> None:
        self._lock = threading.Lock()
        self._validator = self._compile(source_bytes(source), resolver, base)

    @classmethod
    def from_path(
        cls,
        path: Union[str, "os.PathLike[str]"],
        resolver: Optional[SourceResolver] = None,
    ) -> "Schema":
        """Load an XSD file; imports resolve next to it by default."""
        path = os.fspath(path)
        if resolver is None:
            resolver = FileResolver(os.path.dirname(os.path.abspath(path)))
        return cls(source_bytes(pathlib.Path(path)), resolver, base=path)

    @classmethod
    def from_validator(cls, validator: etree._Validator) -> "Schema":
        """Wrap a pre-built lxml validator (XMLSchema, RelaxNG, DTD...)."""
        schema = cls.__new__(cls)
        schema._lock = threading.Lock()
        schema._validator = validator
        return schema

    @staticmethod
    def _compile(
        data: bytes, resolver: SourceResolver, base: Optional[str]
    ) -> etree.XMLSchema:
        bridge = as_lxml_resolver(resolver, base)
        parser = utils.make_parser()
        parser.resolvers.add(bridge)
        try:
            tree = etree.fromstring(data, parser)
        except etree.XMLSyntaxError as exc:
            raise MalformedDocument(f"Invalid XSD document: {exc}") from exc
        try:
            validator = etree.XMLSchema(tree)
        except etree.XMLSchemaParseError as exc:
            if bridge.failure is not None:
                raise bridge.failure from exc
            logger.error("XSD compilation failed: %s", utils.error_log_text(exc.error_log))
            raise SchemaCompileError(f"Invalid XSD schema: {exc}") from exc
        if bridge.failure is not None:
            raise bridge.failure
        logger.debug("Compiled XSD schema (base %s)", base)
        return validator

    def validate(self, document: BaseDocument) -> List[Violation]:
        tree = _rendered_tree(document)
        with self._lock:
            if self._validator.validate(tree):
                return []
            return utils.violations_from_log(self._validator.error_log)


class SchemaLocator(Validator):
    """Validate against the schema a document declares for itself.

    Every location named by ``xsi:schemaLocation`` and
    ``xsi:noNamespaceSchemaLocation`` on the root element is fetched through
    ``resolver``.  A document naming no schema yields a single violation.

    :param resolver: Source of the schema documents.
    """

    def __init__(self, resolver: SourceResolver) -> None:
        self.resolver = resolver

    @staticmethod
    def locations(root: etree._Element) -> List[Tuple[Optional[str], str]]:
        """Return ``(namespace, location)`` pairs declared on ``root``."""
        found: List[Tuple[Optional[str], str]] = []
        pairs = (root.get(f"{{{XSI_NS}}}schemaLocation") or "").split()
        if len(pairs) % 2:
            logger.warning("Ignoring unpaired schema location '%s'", pairs[-1])
        for namespace, location in zip(pairs[::2], pairs[1::2]):
            found.append((namespace, location))
        plain = root.get(f"{{{XSI_NS}}}noNamespaceSchemaLocation")
        if plain:
            found.append((None, plain.strip()))
        return found

    def schema(self, locations: List[Tuple[Optional[str], str]]) -> Schema:
        """Compile one schema covering every location.

        A small driver schema imports (or, for the no-namespace schema,
        includes) each location so they are all loaded through the resolver.
        """
        driver = etree.Element(f"{{{XS_NS}}}schema", nsmap={"xs": XS_NS})
        for namespace, location in locations:
            if namespace is None:
                etree.SubElement(driver, f"{{{XS_NS}}}include", schemaLocation=location)
            else:
                etree.SubElement(
                    driver,
                    f"{{{XS_NS}}}import",
                    namespace=namespace,
                    schemaLocation=location,
                )
        return Schema(etree.tostring(driver), self.resolver)

    def validate(self, document: BaseDocument) -> List[Violation]:
        root = _rendered_tree(document)
        locations = self.locations(root)
        if not locations:
            return [
                Violation(
                    f"No schema location declared on <{etree.QName(root).localname}>",
                    root.sourceline,
                )
            ]
        logger.debug("Validating against declared schemas %s", locations)
        return self.schema(locations).validate(document)


def as_validator(validator: object) -> Validator:
    """Turn any supported validator description into a :class:`Validator`.

    Accepted are validators themselves, pre-built lxml validators, XSD
    documents and source resolvers (meaning "use the declared schema").
    """
    if isinstance(validator, Validator):
        return validator
    if isinstance(validator, etree._Validator):
        return Schema.from_validator(validator)
    if isinstance(validator, SourceResolver):
        return SchemaLocator(validator)
    if isinstance(validator, BaseDocument):
        return Schema(validator)
    raise TypeError(f"Unsupported validator: {type(validator).__name__}")
