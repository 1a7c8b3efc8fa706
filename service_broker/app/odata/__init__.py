"""
OData proxy package for the downstream ERP.
"""

from .client import ODataEntityReference, ODataProxy, escape_odata_literal

__all__ = [
    "ODataEntityReference",
    "ODataProxy",
    "escape_odata_literal",
]
