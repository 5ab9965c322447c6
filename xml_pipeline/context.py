"""Namespace prefix bindings used by XPath queries.

A :class:`NamespaceContext` is an ordered list of ``(prefix, uri)`` pairs.
A prefix may be bound to more than one URI; lookups return the binding that
was registered first, so later merges can never silently override what the
caller registered earlier.  Contexts are immutable: registering or merging
returns a new value.
"""

from __future__ import annotations

from typing import Dict, Iterable, Iterator, List, Mapping, Optional, Tuple

from lxml import etree

import config
from .errors import InvalidBinding

XML_NS = "http://www.w3.org/XML/1998/namespace"
XMLNS_NS = "http://www.w3.org/2000/xmlns/"

# Bound in every context, even an empty one.
IMPLICIT_BINDINGS: Tuple[Tuple[str, str], ...] = (
    ("xml", XML_NS),
    ("xmlns", XMLNS_NS),
)

Binding = Tuple[str, str]


def _normalize(prefix: object, value: object) -> Binding:
    if not isinstance(prefix, str) or not prefix:
        raise InvalidBinding(f"Invalid namespace prefix {prefix!r}", prefix)
    if value is None:
        raise InvalidBinding(f"No namespace given for prefix '{prefix}'", prefix)
    if isinstance(value, etree.QName):
        uri = value.namespace
    else:
        uri = str(value)
    if not uri:
        raise InvalidBinding(f"Empty namespace given for prefix '{prefix}'", prefix)
    return prefix, uri


def _provided_bindings(provider: object) -> Iterable[Tuple[object, object]]:
    if isinstance(provider, NamespaceContext):
        return provider.bindings
    context = getattr(provider, "context", None)
    if isinstance(context, NamespaceContext):
        return context.bindings
    if isinstance(provider, etree._Element):
        return [(p, u) for p, u in provider.nsmap.items() if p is not None]
    if isinstance(provider, Mapping):
        return [(p, u) for p, u in provider.items() if p is not None]
    return provider  # iterable of pairs


class NamespaceContext:
    """Immutable, ordered prefix-to-URI bindings.

    :param bindings: Initial ``(prefix, value)`` pairs, validated the same way
        as :meth:`register`.
    """

    __slots__ = ("_bindings",)

    def __init__(self, bindings: Iterable[Tuple[str, object]] = ()) -> None:
        pairs: List[Binding] = []
        for prefix, value in bindings:
            pair = _normalize(prefix, value)
            if pair not in pairs:
                pairs.append(pair)
        self._bindings: Tuple[Binding, ...] = tuple(pairs)

    @classmethod
    def standard(cls) -> "NamespaceContext":
        """Context holding the conventional prefixes from :mod:`config`."""
        return cls(config.DEFAULT_NAMESPACES.items())

    @classmethod
    def numbered(cls, *uris: object) -> "NamespaceContext":
        """Bind ``ns1``, ``ns2``, ... to ``uris`` in the given order."""
        return cls((f"ns{pos}", uri) for pos, uri in enumerate(uris, start=1))

    @property
    def bindings(self) -> Tuple[Binding, ...]:
        """Explicit bindings in registration order."""
        return self._bindings

    def lookup_uri(self, prefix: str) -> Optional[str]:
        """Return the first URI bound to ``prefix`` or ``None``."""
        for bound, uri in self._bindings + IMPLICIT_BINDINGS:
            if bound == prefix:
                return uri
        return None

    def lookup_prefixes(self, uri: str) -> Tuple[str, ...]:
        """Return every prefix bound to ``uri`` in registration order."""
        return tuple(
            prefix for prefix, bound in self._bindings + IMPLICIT_BINDINGS
            if bound == uri
        )

    def lookup_prefix(self, uri: str) -> Optional[str]:
        """Return the preferred prefix for ``uri`` or ``None``."""
        prefixes = self.lookup_prefixes(uri)
        return prefixes[0] if prefixes else None

    def register(self, prefix: str, value: object) -> "NamespaceContext":
        """Return a new context with one more binding appended.

        :param prefix: Non-empty prefix to bind.
        :param value: URI string, :class:`lxml.etree.QName` or any object whose
            string form is the URI.
        :raises InvalidBinding: If the prefix or the value is unusable.
        """
        return NamespaceContext(self._bindings + (_normalize(prefix, value),))

    def merge(self, provider: object) -> "NamespaceContext":
        """Return a new context extended with the bindings of ``provider``.

        Pairs already present are skipped; a known prefix bound to a different
        URI is kept as an additional, lower precedence binding.

        :param provider: Another context, a mapping, an lxml element, a
            document or an iterable of ``(prefix, uri)`` pairs.
        """
        merged = NamespaceContext(_provided_bindings(provider))
        if not merged._bindings:
            return self
        return NamespaceContext(self._bindings + merged._bindings)

    def as_dict(self) -> Dict[str, str]:
        """First-match view suitable for lxml's ``namespaces`` argument."""
        view: Dict[str, str] = {}
        for prefix, uri in self._bindings:
            view.setdefault(prefix, uri)
        return view

    def __iter__(self) -> Iterator[Binding]:
        return iter(self._bindings)

    def __len__(self) -> int:
        return len(self._bindings)

    def __contains__(self, prefix: object) -> bool:
        return any(bound == prefix for bound, _ in self._bindings)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, NamespaceContext):
            return NotImplemented
        return self._bindings == other._bindings

    def __hash__(self) -> int:
        return hash(self._bindings)

    def __str__(self) -> str:
        ordered = sorted(self._bindings, key=lambda pair: pair[0])
        return "{" + ", ".join(f"{p}={u}" for p, u in ordered) + "}"

    def __repr__(self) -> str:
        return f"NamespaceContext({self})"
