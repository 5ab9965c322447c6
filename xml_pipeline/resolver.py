"""Resolution of resources referenced from stylesheets and schemas.

``xsl:import``, ``xsl:include``, ``xs:import`` and ``xs:include`` name other
documents by a relative ``href``.  A :class:`SourceResolver` turns such a
reference into bytes.  Two strategies are provided, one reading from an
installed Python package (the equivalent of a bundled resource tree) and one
reading from a directory on disk.  :data:`NO_RESOLUTION` refuses every lookup
and is used for stylesheets that are known to be self-contained.

lxml does not know about these classes; :func:`as_lxml_resolver` adapts one to
the :class:`lxml.etree.Resolver` protocol so it can be attached to the parser
that reads a stylesheet or schema.
"""

from __future__ import annotations

import os
import posixpath
from abc import ABC, abstractmethod
from dataclasses import dataclass
from importlib import resources
from typing import List, Optional, Tuple, Union
from urllib.parse import unquote

from lxml import etree

from . import utils
from .errors import ResolutionError, ResourceNotFound, ResourceUnreadable

logger = utils.get_logger(__name__)

# Served to lxml in place of a resource that failed to resolve.  It is not a
# stylesheet nor a schema, so compilation fails instead of falling back to
# lxml's default loader.
_UNRESOLVED = b"<unresolved/>"

# Resources served to lxml get a URL of the form
# ``xmlpipeline://<n>/_up_/.../_up_/doc`` so that libxml2 joins the references
# they contain onto it and the adapter can recover ``(href, locator n)``.
# A relative reference may climb at most ``_DEPTH`` folders.
_SCHEME = "xmlpipeline://"
_PAD = "_up_"
_DEPTH = 16


@dataclass(frozen=True)
class ResolvedResource:
    """Content fetched by a resolver.

    :param content: Raw bytes of the resource.
    :param locator: Human readable identity of where the bytes came from.
    """

    content: bytes
    locator: str


class SourceResolver(ABC):
    """Strategy turning ``(href, base)`` into a :class:`ResolvedResource`."""

    @abstractmethod
    def resolve(self, href: str, base: Optional[str] = None) -> ResolvedResource:
        """Fetch the resource named by ``href``.

        :param href: Reference as written in the referencing document.
        :param base: Location of the referencing document, when known.
        :raises ResourceNotFound: If nothing exists at the location.
        :raises ResourceUnreadable: If the location cannot be read.
        """


class NullResolver(SourceResolver):
    """Resolver that never finds anything."""

    def resolve(self, href: str, base: Optional[str] = None) -> ResolvedResource:
        raise ResourceNotFound(
            f'Resource "{href}" cannot be resolved: no resolver configured'
            f' (base "{base}")',
            href,
            base,
        )

    def __repr__(self) -> str:
        return "NO_RESOLUTION"


NO_RESOLUTION: SourceResolver = NullResolver()


class FileResolver(SourceResolver):
    """Resolve references against a directory on disk.

    The configured root is tried first, then the directory of ``base``.

    :param root: Directory that relative references are resolved against;
        the current working directory by default.
    """

    def __init__(self, root: Union[str, "os.PathLike[str]"] = ".") -> None:
        self.root = os.fspath(root)

    def _candidates(self, href: str, base: Optional[str]) -> List[str]:
        candidates = [os.path.join(self.root, href)]
        if base:
            base_dir = base if os.path.isdir(base) else os.path.dirname(base)
            candidates.append(os.path.join(base_dir, href))
        return candidates

    def resolve(self, href: str, base: Optional[str] = None) -> ResolvedResource:
        for path in self._candidates(href, base):
            if not os.path.exists(path):
                continue
            try:
                with open(path, "rb") as fh:
                    content = fh.read()
            except OSError as exc:
                raise ResourceUnreadable(
                    f"Can't read from file '{path}': {exc}", href, base
                ) from exc
            logger.debug("Resolved %s to %s", href, path)
            return ResolvedResource(content, os.path.abspath(path))
        raise ResourceNotFound(
            f'File "{href}" not found in "{self.root}" and in base "{base}"',
            href,
            base,
        )

    def __repr__(self) -> str:
        return f"FileResolver({self.root!r})"


class PackageResolver(SourceResolver):
    """Resolve references against data files of an installed package.

    :param package: Dotted name of the package holding the resources.
    :param prefix: Optional sub-directory inside the package.
    """

    def __init__(self, package: str, prefix: str = "") -> None:
        self.package = package
        self.prefix = prefix.strip("/")

    def _candidates(self, href: str, base: Optional[str]) -> List[str]:
        candidates = ["/".join(p for p in (self.prefix, href) if p)]
        if base:
            # a locator produced by this resolver names a file; use its folder
            if base.startswith(f"{self.package}:"):
                base = posixpath.dirname(base.split(":", 1)[1])
            base = base.strip("/")
            candidates.append("/".join(p for p in (base, href) if p))
        return candidates

    def resolve(self, href: str, base: Optional[str] = None) -> ResolvedResource:
        try:
            top = resources.files(self.package)
        except ModuleNotFoundError as exc:
            raise ResourceNotFound(
                f'Package "{self.package}" not found for resource "{href}"',
                href,
                base,
            ) from exc
        for relative in self._candidates(href, base):
            entry = top
            for part in relative.split("/"):
                entry = entry.joinpath(part)
            if not entry.is_file():
                if entry.is_dir():
                    raise ResourceUnreadable(
                        f'Resource "{relative}" in package "{self.package}"'
                        " is a directory",
                        href,
                        base,
                    )
                continue
            try:
                content = entry.read_bytes()
            except OSError as exc:
                raise ResourceUnreadable(
                    f'Can\'t read resource "{relative}" from package'
                    f' "{self.package}": {exc}',
                    href,
                    base,
                ) from exc
            logger.debug("Resolved %s to %s:%s", href, self.package, relative)
            return ResolvedResource(content, f"{self.package}:{relative}")
        raise ResourceNotFound(
            f'Resource "{href}" not found in package "{self.package}"'
            f' with prefix "{self.prefix}" and base "{base}"',
            href,
            base,
        )

    def __repr__(self) -> str:
        return f"PackageResolver({self.package!r}, {self.prefix!r})"


class ChainedResolver(SourceResolver):
    """Try several resolvers in order; the first hit wins.

    A resource that exists but cannot be read stops the search immediately.
    """

    def __init__(self, *resolvers: SourceResolver) -> None:
        self.resolvers = tuple(resolvers)

    def resolve(self, href: str, base: Optional[str] = None) -> ResolvedResource:
        misses: List[str] = []
        for resolver in self.resolvers:
            try:
                return resolver.resolve(href, base)
            except ResourceNotFound as exc:
                misses.append(str(exc))
        raise ResourceNotFound(
            f'Resource "{href}" not found by any resolver: ' + "; ".join(misses),
            href,
            base,
        )

    def __repr__(self) -> str:
        return "ChainedResolver(%s)" % ", ".join(repr(r) for r in self.resolvers)


class _LxmlResolver(etree.Resolver):
    """Adapter exposing a :class:`SourceResolver` to lxml.

    lxml cannot carry our exceptions through libxml2, so the first failure is
    kept in :attr:`failure` for the caller to raise once lxml returns.
    References made from a served resource are resolved with that resource's
    locator as ``base``; references from the top-level document use the
    adapter's own ``base``.
    """

    def __init__(self, source: SourceResolver, base: Optional[str]) -> None:
        super().__init__()
        self.source = source
        self.base = base
        self.failure: Optional[ResolutionError] = None
        self._served: List[str] = []

    def _base_url(self, locator: str) -> str:
        self._served.append(locator)
        return f"{_SCHEME}{len(self._served) - 1}/" + f"{_PAD}/" * _DEPTH + "doc"

    def split(self, url: str) -> Tuple[str, Optional[str]]:
        """Return the ``(href, base)`` pair that ``url`` from libxml2 stands for."""
        if not url.startswith(_SCHEME):
            return url, self.base
        index, _, path = url[len(_SCHEME):].partition("/")
        parts = path.split("/")
        pads = 0
        while pads < len(parts) - 1 and parts[pads] == _PAD:
            pads += 1
        rest = unquote("/".join(parts[pads:]))
        if pads == 0:
            # absolute path reference
            href = "/" + rest
        else:
            href = "../" * (_DEPTH - pads) + rest
        return href, self._served[int(index)]

    def _fail(self, exc: ResolutionError, context):
        logger.error("%s", exc)
        if self.failure is None:
            self.failure = exc
        return self.resolve_string(_UNRESOLVED, context)

    def resolve(self, system_url, public_id, context):
        if not system_url:
            return self._fail(
                ResourceNotFound("Empty resource reference", "", self.base), context
            )
        href, base = self.split(system_url)
        try:
            found = self.source.resolve(href, base)
        except ResolutionError as exc:
            return self._fail(exc, context)
        return self.resolve_string(
            found.content, context, base_url=self._base_url(found.locator)
        )


def as_lxml_resolver(
    source: SourceResolver, base: Optional[str] = None
) -> _LxmlResolver:
    """Adapt ``source`` so it can be added to ``parser.resolvers``.

    :param source: Resolver consulted for every external reference.
    :param base: Location of the referencing document, passed as ``base``.
    :returns: An :class:`lxml.etree.Resolver` recording its first failure.
    """
    return _LxmlResolver(source, base)
