"""Public entry points for :mod:`xml_pipeline`.

This module re-exports the document, transformation and validation classes so
applications can import everything from the package root without touching
the implementation modules.
"""

from .context import NamespaceContext
from .document import BaseDocument, Document, Matches
from .errors import (
    InvalidBinding,
    InvalidExpression,
    MalformedDocument,
    NodeNotFound,
    ResolutionError,
    ResourceNotFound,
    ResourceUnreadable,
    SchemaCompileError,
    SchemaViolation,
    StylesheetCompileError,
    TransformExecutionError,
    Violation,
    XmlPipelineError,
)
from .resolver import (
    NO_RESOLUTION,
    ChainedResolver,
    FileResolver,
    PackageResolver,
    ResolvedResource,
    SourceResolver,
)
from .schema import Schema, SchemaLocator, Validator
from .strict import ValidatingDocument
from .transform import STRIP, Stylesheet, Transform, TransformChain

__all__ = [
    "BaseDocument",
    "ChainedResolver",
    "Document",
    "FileResolver",
    "InvalidBinding",
    "InvalidExpression",
    "MalformedDocument",
    "Matches",
    "NO_RESOLUTION",
    "NamespaceContext",
    "NodeNotFound",
    "PackageResolver",
    "ResolutionError",
    "ResolvedResource",
    "ResourceNotFound",
    "ResourceUnreadable",
    "STRIP",
    "Schema",
    "SchemaCompileError",
    "SchemaLocator",
    "SchemaViolation",
    "SourceResolver",
    "StylesheetCompileError",
    "Stylesheet",
    "Transform",
    "TransformChain",
    "TransformExecutionError",
    "ValidatingDocument",
    "Validator",
    "Violation",
    "XmlPipelineError",
]
