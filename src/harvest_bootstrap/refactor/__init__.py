"""Namespace refactoring of source file headers."""

from harvest_bootstrap.refactor.header import (
    ImportDeclaration,
    ParsedHeader,
    parse_header,
    refactor_source,
    rename_name,
    rewrite,
)

__all__ = [
    "ImportDeclaration",
    "ParsedHeader",
    "parse_header",
    "refactor_source",
    "rename_name",
    "rewrite",
]
