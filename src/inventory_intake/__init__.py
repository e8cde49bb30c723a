"""
Inventory intake: turns invoice/catalog PDFs and photos into product records.

Shared foundations (config, logging, paths, domain models) live at the top
level; the extraction pipeline, usage metering and HTTP app are subpackages.
"""

__all__ = [
    "config",
    "logging",
    "paths",
]
