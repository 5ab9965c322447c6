"""Immutable XML documents queried with XPath.

A :class:`Document` wraps a parsed lxml tree together with the
:class:`~xml_pipeline.context.NamespaceContext` and extension functions used
for its XPath queries.  Nothing in this module mutates the tree; operations
that change the query context return a new :class:`Document` sharing the same
tree.  Elements matched by a query are returned as *leaf* documents: they
share the tree of their owner but render only their own subtree.
"""

from __future__ import annotations

import copy
import os
import urllib.error
import urllib.request
from abc import ABC, abstractmethod
from collections.abc import Sequence
from typing import Any, Callable, Iterator, List, Optional, Tuple, Union

from lxml import etree

import config
from . import utils
from .context import NamespaceContext
from .errors import (
    InvalidExpression,
    MalformedDocument,
    NodeNotFound,
    ResourceNotFound,
    ResourceUnreadable,
    Violation,
)

logger = utils.get_logger(__name__)

XML_DECLARATION = '<?xml version="1.0" encoding="UTF-8"?>'

Function = Tuple[Tuple[Optional[str], str], Callable[..., Any]]


class BaseDocument(ABC):
    """Operations shared by every document flavour.

    :class:`Document` implements them directly; wrappers such as
    :class:`~xml_pipeline.strict.ValidatingDocument` hold a document and
    delegate to it.
    """

    @property
    @abstractmethod
    def context(self) -> NamespaceContext:
        """Namespace bindings used for queries."""

    @abstractmethod
    def query(self, query: str) -> "Matches":
        """Evaluate ``query`` and return every match."""

    @abstractmethod
    def xpath(self, query: str) -> "Matches":
        """Evaluate ``query`` expecting text or attribute values only."""

    @abstractmethod
    def nodes(self, query: str) -> "Matches":
        """Evaluate ``query`` expecting elements only."""

    @abstractmethod
    def render(self) -> str:
        """Serialize the document to text."""

    @abstractmethod
    def with_namespace(self, prefix: str, value: object) -> "Document":
        """Return a document with one more namespace binding."""

    @abstractmethod
    def with_merged_context(self, provider: object) -> "Document":
        """Return a document whose context is merged with ``provider``."""

    @abstractmethod
    def with_function(
        self, name: str, func: Callable[..., Any], namespace: Optional[str] = None
    ) -> "Document":
        """Return a document with one more XPath extension function."""

    @abstractmethod
    def inner(self) -> etree._Element:
        """Return the underlying lxml element."""

    @abstractmethod
    def deep_copy(self) -> etree._Element:
        """Return an independent copy of the underlying element."""

    @abstractmethod
    def validate(self, validator: object) -> List[Violation]:
        """Validate against ``validator`` and return its complaints."""

    def __str__(self) -> str:
        return self.render()

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, BaseDocument):
            return NotImplemented
        return self.render() == other.render()

    def __hash__(self) -> int:
        return hash(self.render())


class Matches(Sequence):
    """Read-only query result.

    Indexing past the end raises :class:`NodeNotFound` naming the query and
    the document it ran against.
    """

    def __init__(self, items: List[Any], query: str, owner: BaseDocument) -> None:
        self._items = tuple(items)
        self._query = query
        self._owner = owner

    def __getitem__(self, index):
        if isinstance(index, slice):
            return list(self._items[index])
        size = len(self._items)
        if index >= size or index < -size:
            raise NodeNotFound(
                "XPath '%s' not found in '%s': Index (%d) is out of bounds (size=%d)"
                % (
                    utils.escape_unicode(self._query),
                    utils.escape_unicode(self._owner.render()),
                    index,
                    size,
                )
            )
        return self._items[index]

    def __iter__(self) -> Iterator[Any]:
        return iter(self._items)

    def __len__(self) -> int:
        return len(self._items)

    def __eq__(self, other: object) -> bool:
        if isinstance(other, (Matches, list, tuple)):
            return list(self._items) == list(other)
        return NotImplemented

    __hash__ = None  # type: ignore[assignment]

    def __repr__(self) -> str:
        return repr(list(self._items))


def _parse(data: bytes, base_url: Optional[str] = None) -> etree._Element:
    if not data.strip():
        raise MalformedDocument("Empty XML input")
    try:
        return etree.fromstring(data, utils.make_parser(), base_url=base_url)
    except etree.XMLSyntaxError as exc:
        raise MalformedDocument(f"Invalid XML: {exc}") from exc


def _encode(text: str) -> bytes:
    encoding = utils.detect_encoding(text)
    try:
        return text.encode(encoding)
    except (LookupError, UnicodeEncodeError) as exc:
        raise MalformedDocument(
            f"XML text cannot be encoded as declared '{encoding}': {exc}"
        ) from exc


def _read_path(path: Union[str, "os.PathLike[str]"]) -> bytes:
    try:
        with open(path, "rb") as fh:
            return fh.read()
    except FileNotFoundError as exc:
        raise ResourceNotFound(f"File '{path}' not found", os.fspath(path)) from exc
    except OSError as exc:
        raise ResourceUnreadable(
            f"Can't read from file '{path}': {exc}", os.fspath(path)
        ) from exc


def source_bytes(source: object) -> bytes:
    """Return the raw XML bytes behind any supported source.

    Documents are rendered, text is encoded as its declaration says, paths
    and file objects are read to the end.
    """
    if isinstance(source, BaseDocument):
        return source.render().encode("utf-8")
    if isinstance(source, bytes):
        return source
    if isinstance(source, str):
        return _encode(source)
    if isinstance(source, os.PathLike):
        return _read_path(source)
    if hasattr(source, "read"):
        data = source.read()
        return _encode(data) if isinstance(data, str) else data
    raise TypeError(f"Unsupported XML source: {type(source).__name__}")


def _load(source: object) -> Tuple[etree._Element, bool]:
    """Turn any supported input into ``(element, leaf)``."""
    if isinstance(source, BaseDocument):
        return source.inner(), source.inner().getparent() is not None
    if isinstance(source, etree._ElementTree):
        return source.getroot(), False
    if isinstance(source, etree._Element):
        return source, source.getparent() is not None
    if isinstance(source, os.PathLike):
        return _parse(_read_path(source), base_url=os.fspath(source)), False
    return _parse(source_bytes(source)), False


class Document(BaseDocument):
    """A parsed XML document or element with its query context.

    :param source: XML text, bytes, a path, a readable file object, an lxml
        element or tree, or another document.
    :param context: Namespace bindings for queries; the conventional prefixes
        from :mod:`config` when omitted.
    :raises MalformedDocument: If the input is not well-formed XML.
    """

    def __init__(
        self, source: object, context: Optional[NamespaceContext] = None
    ) -> None:
        self._node, self._leaf = _load(source)
        self._context = context if context is not None else NamespaceContext.standard()
        self._functions: Tuple[Function, ...] = ()

    @classmethod
    def _wrap(
        cls,
        node: etree._Element,
        context: NamespaceContext,
        leaf: bool,
        functions: Tuple[Function, ...],
    ) -> "Document":
        doc = cls.__new__(cls)
        doc._node = node
        doc._leaf = leaf
        doc._context = context
        doc._functions = functions
        return doc

    @classmethod
    def from_path(cls, path: Union[str, "os.PathLike[str]"]) -> "Document":
        """Parse the file at ``path``.

        :raises ResourceNotFound: If the file does not exist.
        :raises ResourceUnreadable: If the file cannot be read.
        """
        return cls(_parse(_read_path(path), base_url=os.fspath(path)))

    @classmethod
    def from_stream(cls, stream: Any) -> "Document":
        """Read a binary or text file object to its end and parse it."""
        return cls(_load(stream)[0])

    @classmethod
    def from_url(cls, url: str, timeout: float = 30) -> "Document":
        """Download and parse the document at ``url``.

        :raises ResourceNotFound: If the server reports the document missing.
        :raises ResourceUnreadable: If the download fails otherwise.
        """
        logger.info("Downloading XML from %s", url)
        try:
            with urllib.request.urlopen(url, timeout=timeout) as response:
                data = response.read()
        except urllib.error.HTTPError as exc:
            kind = ResourceNotFound if exc.code in (404, 410) else ResourceUnreadable
            raise kind(f"Failed to download '{url}': {exc}", url) from exc
        except (urllib.error.URLError, OSError) as exc:
            raise ResourceUnreadable(f"Failed to download '{url}': {exc}", url) from exc
        return cls(_parse(data, base_url=url))

    @property
    def context(self) -> NamespaceContext:
        return self._context

    @property
    def leaf(self) -> bool:
        """``True`` when the document is an element inside a larger tree."""
        return self._leaf

    def _evaluate(self, query: str) -> Any:
        extensions = {key: func for key, func in self._functions}
        try:
            evaluator = etree.XPath(
                query,
                namespaces=self._context.as_dict(),
                extensions=extensions or None,
                smart_strings=False,
            )
            return evaluator(self._node)
        except etree.XPathError as exc:
            raise InvalidExpression(
                f"Invalid XPath query '{query}' with context {self._context}: {exc}",
                query,
            ) from exc

    def _convert(self, item: Any) -> Any:
        if isinstance(item, etree._ElementTree):
            return Document._wrap(item.getroot(), self._context, False, self._functions)
        if isinstance(item, etree._Element):
            if isinstance(item.tag, str):
                return Document._wrap(item, self._context, True, self._functions)
            return item.text or ""
        if isinstance(item, tuple):
            # namespace axis yields (prefix, uri)
            return item[1]
        return str(item)

    def query(self, query: str) -> Matches:
        """Evaluate an XPath expression against the document.

        Text nodes and attributes come back as strings, elements as leaf
        documents sharing this document's context.  Expressions yielding a
        number, boolean or string produce a single string rendered the way
        XPath ``string()`` would.

        :param query: XPath 1.0 expression.
        :returns: Matches in document order; empty when nothing matches.
        :raises InvalidExpression: On syntax errors or unbound prefixes.
        """
        result = self._evaluate(query)
        if isinstance(result, list):
            items = [self._convert(item) for item in result]
        else:
            items = [utils.xpath_string(result)]
        return Matches(items, query, self)

    def xpath(self, query: str) -> Matches:
        """Evaluate ``query`` and return string values only.

        :raises InvalidExpression: If the query matches an element.
        """
        matches = self.query(query)
        for item in matches:
            if isinstance(item, Document):
                raise InvalidExpression(
                    f"Only text() nodes or attributes are retrievable with xpath() '{query}'",
                    query,
                )
        return matches

    def nodes(self, query: str) -> Matches:
        """Evaluate ``query`` and return element matches as documents.

        :raises InvalidExpression: If the query matches anything but elements.
        """
        matches = self.query(query)
        for item in matches:
            if not isinstance(item, Document):
                raise InvalidExpression(
                    f"Only elements are retrievable with nodes() '{query}'", query
                )
        return matches

    def render(self) -> str:
        """Serialize the document.

        Whole documents start with an XML declaration and keep their doctype;
        leaf documents render just their element.  Parsing the output and
        rendering again yields the same text.
        """
        if self._leaf:
            return etree.tostring(
                self._node,
                encoding="unicode",
                pretty_print=config.PRETTY_PRINT,
                with_tail=False,
            )
        text = etree.tostring(
            self._node.getroottree(),
            encoding="unicode",
            pretty_print=config.PRETTY_PRINT,
        )
        return f"{XML_DECLARATION}\n{text}"

    def with_context(self, context: NamespaceContext) -> "Document":
        """Return the same tree queried through ``context``."""
        return Document._wrap(self._node, context, self._leaf, self._functions)

    def with_namespace(self, prefix: str, value: object) -> "Document":
        return self.with_context(self._context.register(prefix, value))

    def with_merged_context(self, provider: object) -> "Document":
        return self.with_context(self._context.merge(provider))

    def with_function(
        self, name: str, func: Callable[..., Any], namespace: Optional[str] = None
    ) -> "Document":
        """Register an XPath extension function.

        lxml calls ``func(context, *args)``.  A function registered under a
        namespace is called through any prefix bound to that namespace.
        """
        functions = self._functions + (((namespace, name), func),)
        return Document._wrap(self._node, self._context, self._leaf, functions)

    def inner(self) -> etree._Element:
        """Return the shared lxml element.  Callers must not modify it."""
        return self._node

    def deep_copy(self) -> etree._Element:
        return copy.deepcopy(self._node)

    def validate(self, validator: object) -> List[Violation]:
        """Validate the rendered form of this document.

        :param validator: Anything accepted by
            :func:`xml_pipeline.schema.as_validator`.
        :returns: Violations in report order; empty when the document is valid.
        """
        from .schema import as_validator

        return as_validator(validator).validate(self)

    def __repr__(self) -> str:
        kind = "leaf" if self._leaf else "document"
        return f"<Document {kind} {self._node.tag!r} context={self._context}>"
