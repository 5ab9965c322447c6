"""XSLT transformations and chains of them.

A :class:`Stylesheet` is one XSLT program plus the parameters it is applied
with and the :class:`~xml_pipeline.resolver.SourceResolver` that supplies its
``xsl:import``/``xsl:include`` targets.  A :class:`TransformChain` applies
several transforms in order and is itself a :class:`Transform`, so chains
nest.  All of them are immutable: ``with_param``, ``with_resolver`` and
``then`` return new values.

Compilation happens on first use and is remembered.  Variants created by
``with_param`` share the compiled program because lxml binds parameters per
call; ``with_resolver`` compiles again since imports may resolve differently.
"""

from __future__ import annotations

import math
import os
import pathlib
import threading
import time
from abc import ABC, abstractmethod
from decimal import Decimal
from types import MappingProxyType
from typing import Dict, Iterator, Mapping, Optional, Union

from lxml import etree

from . import utils
from .document import BaseDocument, Document, source_bytes
from .errors import StylesheetCompileError, TransformExecutionError
from .resolver import (
    NO_RESOLUTION,
    FileResolver,
    PackageResolver,
    SourceResolver,
    as_lxml_resolver,
)

logger = utils.get_logger(__name__)

# Stylesheets may read through resolvers but never write anything.
_ACCESS = etree.XSLTAccessControl(
    write_file=False, create_dir=False, write_network=False
)


def _xslt_param(name: str, value: object) -> object:
    """Convert a Python value into an lxml XSLT parameter."""
    if isinstance(value, bool):
        return "true()" if value else "false()"
    if isinstance(value, int):
        return str(value)
    if isinstance(value, float):
        if math.isnan(value):
            return "number('NaN')"
        if math.isinf(value):
            return "1 div 0" if value > 0 else "-1 div 0"
        return format(Decimal(repr(value)), "f")
    if isinstance(value, str):
        return etree.XSLT.strparam(value)
    if isinstance(value, etree.XPath):
        return value
    raise TypeError(
        f"Unsupported value for XSLT parameter '{name}': {type(value).__name__}"
    )


class Transform(ABC):
    """Something that turns one document into another."""

    @abstractmethod
    def apply_to(self, document: BaseDocument) -> BaseDocument:
        """Transform ``document`` into a new document."""

    @abstractmethod
    def apply_to_text(self, document: BaseDocument) -> str:
        """Transform ``document`` and return the serialized output."""

    @abstractmethod
    def with_param(self, name: str, value: object) -> "Transform":
        """Return a transform that also binds parameter ``name``."""

    @abstractmethod
    def with_resolver(self, resolver: SourceResolver) -> "Transform":
        """Return a transform resolving imports through ``resolver``."""

    def then(self, other: "Transform") -> "TransformChain":
        """Return a chain applying ``self`` and then ``other``."""
        return TransformChain(self, other)


class _Compiled:
    """Compiled stylesheet shared by the parameter variants of a stylesheet."""

    def __init__(
        self, data: bytes, resolver: SourceResolver, base: Optional[str]
    ) -> None:
        self.data = data
        self.resolver = resolver
        self.base = base
        self.lock = threading.Lock()
        self._compile_lock = threading.Lock()
        self._xslt: Optional[etree.XSLT] = None
        # stays attached to the program for document() calls made while running
        self.bridge = as_lxml_resolver(resolver, base)

    def get(self) -> etree.XSLT:
        with self._compile_lock:
            if self._xslt is None:
                self._xslt = self._compile()
            return self._xslt

    def _compile(self) -> etree.XSLT:
        bridge = self.bridge
        bridge.failure = None
        parser = utils.make_parser()
        parser.resolvers.add(bridge)
        try:
            tree = etree.fromstring(self.data, parser)
        except etree.XMLSyntaxError as exc:
            raise StylesheetCompileError(f"Malformed stylesheet: {exc}") from exc
        start = time.perf_counter()
        try:
            xslt = etree.XSLT(tree, access_control=_ACCESS)
        except etree.XSLTParseError as exc:
            if bridge.failure is not None:
                raise bridge.failure from exc
            details = utils.error_log_text(exc.error_log)
            logger.error("XSLT compilation failed: %s", details)
            raise StylesheetCompileError(
                f"Failed to compile stylesheet: {exc}; {details}"
            ) from exc
        if bridge.failure is not None:
            raise bridge.failure
        logger.debug(
            "Compiled stylesheet (base %s) in %.1f ms",
            self.base,
            (time.perf_counter() - start) * 1000,
        )
        return xslt


class Stylesheet(Transform):
    """One XSLT stylesheet.

    :param source: The stylesheet as a document, text, bytes, path or file
        object.
    :param resolver: Supplies ``xsl:import``/``xsl:include`` targets;
        :data:`~xml_pipeline.resolver.NO_RESOLUTION` for self-contained
        stylesheets.
    :param params: Parameters passed to every application.
    :param base: Location of the stylesheet, handed to ``resolver``.
    :raises TypeError: If a parameter value has an unsupported type.
    """

    def __init__(
        self,
        source: object,
        resolver: SourceResolver = NO_RESOLUTION,
        params: Optional[Mapping[str, object]] = None,
        base: Optional[str] = None,
    ) -> None:
        self._compiled = _Compiled(source_bytes(source), resolver, base)
        self._params: Mapping[str, object] = MappingProxyType(dict(params or {}))
        self._bound: Dict[str, object] = {
            name: _xslt_param(name, value) for name, value in self._params.items()
        }

    @classmethod
    def _derive(cls, compiled: _Compiled, params: Mapping[str, object]) -> "Stylesheet":
        sheet = cls.__new__(cls)
        sheet._compiled = compiled
        sheet._params = MappingProxyType(dict(params))
        sheet._bound = {name: _xslt_param(name, value) for name, value in params.items()}
        return sheet

    @classmethod
    def from_path(
        cls,
        path: Union[str, "os.PathLike[str]"],
        resolver: Optional[SourceResolver] = None,
        params: Optional[Mapping[str, object]] = None,
    ) -> "Stylesheet":
        """Load a stylesheet file; imports resolve next to it by default."""
        path = os.path.abspath(os.fspath(path))
        if resolver is None:
            resolver = FileResolver(os.path.dirname(path))
        return cls(pathlib.Path(path), resolver, params, base=path)

    @classmethod
    def from_package(cls, package: str, name: str) -> "Stylesheet":
        """Load a stylesheet shipped as data of ``package``.

        Imports are resolved inside the same package.
        """
        resolver = PackageResolver(package)
        found = resolver.resolve(name)
        return cls(found.content, resolver, base=found.locator)

    @property
    def params(self) -> Mapping[str, object]:
        """Read-only view of the bound parameters."""
        return self._params

    @property
    def resolver(self) -> SourceResolver:
        return self._compiled.resolver

    def with_param(self, name: str, value: object) -> "Stylesheet":
        params = dict(self._params)
        params[name] = value
        return Stylesheet._derive(self._compiled, params)

    def with_resolver(self, resolver: SourceResolver) -> "Stylesheet":
        compiled = _Compiled(self._compiled.data, resolver, self._compiled.base)
        return Stylesheet._derive(compiled, self._params)

    def _run(self, document: object) -> etree._XSLTResultTree:
        if not isinstance(document, BaseDocument):
            document = Document(document)
        xslt = self._compiled.get()
        start = time.perf_counter()
        bridge = self._compiled.bridge
        with self._compiled.lock:
            bridge.failure = None
            try:
                result = xslt(document.inner(), **self._bound)
            except etree.XSLTApplyError as exc:
                if bridge.failure is not None:
                    raise bridge.failure from exc
                details = utils.error_log_text(xslt.error_log)
                logger.error("XSLT transformation failed: %s", details)
                raise TransformExecutionError(
                    f"Failed to transform by XSLT: {exc}; {details}"
                ) from exc
            for entry in xslt.error_log:
                logger.warning("%s:%s %s", entry.line, entry.column, entry.message)
            if bridge.failure is not None:
                raise bridge.failure
        logger.debug(
            "Transformed XML in %.1f ms", (time.perf_counter() - start) * 1000
        )
        return result

    def apply_to(self, document: BaseDocument) -> Document:
        """Apply the stylesheet.

        The output is a new document with the standard namespace context; the
        input's context is not carried over.

        :raises StylesheetCompileError: If the stylesheet cannot be compiled.
        :raises ResourceNotFound: If an import or a document() target cannot
            be resolved.
        :raises TransformExecutionError: If the transformation fails or
            produces no root element.
        """
        result = self._run(document)
        if result.getroot() is None:
            raise TransformExecutionError(
                "Transformation produced no root element; use apply_to_text()"
            )
        return Document(result)

    def apply_to_text(self, document: BaseDocument) -> str:
        """Apply the stylesheet and serialize the output as ``xsl:output`` says."""
        return str(self._run(document))

    def __str__(self) -> str:
        return self._compiled.data.decode(utils.detect_encoding(self._compiled.data))

    def __repr__(self) -> str:
        return (
            f"<Stylesheet base={self._compiled.base!r} "
            f"resolver={self._compiled.resolver!r} params={dict(self._params)!r}>"
        )


class TransformChain(Transform):
    """Transforms applied one after the other.

    Each stage receives the output of the previous one.  A failing stage stops
    the chain and its exception propagates unchanged.  An empty chain returns
    its input.
    """

    def __init__(self, *transforms: Transform) -> None:
        for transform in transforms:
            if not isinstance(transform, Transform):
                raise TypeError(
                    f"Not a transform: {type(transform).__name__}"
                )
        self._stages = tuple(transforms)

    def apply_to(self, document: BaseDocument) -> BaseDocument:
        output = document
        for pos, stage in enumerate(self._stages, start=1):
            logger.debug("Applying stage %d/%d: %r", pos, len(self._stages), stage)
            output = stage.apply_to(output)
        return output

    def apply_to_text(self, document: BaseDocument) -> str:
        if not self._stages:
            return document.render()
        output = TransformChain(*self._stages[:-1]).apply_to(document)
        return self._stages[-1].apply_to_text(output)

    def with_param(self, name: str, value: object) -> "TransformChain":
        """Bind ``name`` in every stage."""
        return TransformChain(*(stage.with_param(name, value) for stage in self._stages))

    def with_resolver(self, resolver: SourceResolver) -> "TransformChain":
        """Resolve imports of every stage through ``resolver``."""
        return TransformChain(*(stage.with_resolver(resolver) for stage in self._stages))

    def then(self, other: Transform) -> "TransformChain":
        """Return a chain with ``other`` appended as the last stage."""
        return TransformChain(*self._stages, other)

    def __iter__(self) -> Iterator[Transform]:
        return iter(self._stages)

    def __len__(self) -> int:
        return len(self._stages)

    def __repr__(self) -> str:
        return f"<TransformChain of {len(self._stages)}>"


STRIP: Transform = Stylesheet.from_package("xml_pipeline.stylesheets", "strip.xsl")
