"""Library configuration.

Defaults can be overridden with an external ``TOML`` file so applications and
test suites can change parser and rendering behaviour without patching the
code.  ``XML_PIPELINE_CONFIG`` is consulted first, then a ``config.toml``
placed next to this module.  Values not present in the file keep the shipped
defaults.
"""

from __future__ import annotations

import os
import pytoml

_CONFIG_PATH = os.environ.get(
    "XML_PIPELINE_CONFIG",
    os.path.join(os.path.dirname(__file__), "config.toml"),
)

if os.path.exists(_CONFIG_PATH):
    with open(_CONFIG_PATH, "r", encoding="utf-8") as _cfg:
        _CONF = pytoml.load(_cfg)
else:
    _CONF = {}

# Prefixes every freshly built document can use in XPath queries without
# registering them first.
DEFAULT_NAMESPACES = {
    "xhtml": "http://www.w3.org/1999/xhtml",
    "xs": "http://www.w3.org/2001/XMLSchema",
    "xsi": "http://www.w3.org/2001/XMLSchema-instance",
    "xsl": "http://www.w3.org/1999/XSL/Transform",
    "svg": "http://www.w3.org/2000/svg",
}

# Indent rendered documents.  Rendering is idempotent either way.
PRETTY_PRINT: bool = True

# Forbid the parser from fetching DTDs or entities over the network.
NO_NETWORK: bool = True

# Encoding used for rendered text and for XML given as ``str`` without an
# encoding declaration.
ENCODING: str = "utf-8"

# Level applied to every ``xml_pipeline`` logger.
LOG_LEVEL: str = "INFO"

# Override with TOML values if provided
DEFAULT_NAMESPACES = dict(_CONF.get("DEFAULT_NAMESPACES", DEFAULT_NAMESPACES))
PRETTY_PRINT = bool(_CONF.get("PRETTY_PRINT", PRETTY_PRINT))
NO_NETWORK = bool(_CONF.get("NO_NETWORK", NO_NETWORK))
ENCODING = str(_CONF.get("ENCODING", ENCODING))
LOG_LEVEL = _CONF.get("LOG_LEVEL", LOG_LEVEL)
