"""Namespace header parsing and rewriting.

Only the header of a source file is understood: an optional package
declaration followed by import statements, with comments, whitespace and
package annotations in between. Parsing works on raw bytes and records the
byte span of every name, so a rewrite splices new names into the original
bytes and leaves everything else, the body above all, untouched.

Example:
    parsed = parse_header(b"package com.old.model;\\nimport com.old.util.Helper;\\n...")
    parsed.namespace_declaration    # 'com.old.model'
    parsed.imported_names           # ['com.old.util.Helper']
"""

import re
from dataclasses import dataclass, field

from harvest_bootstrap.core.constants import UTF8_BOM
from harvest_bootstrap.core.errors import HeaderParseError, NamespaceMismatch
from harvest_bootstrap.schemas import RefactorMapping
from harvest_bootstrap.utils.debug import debug

_IDENT = rb"[A-Za-z_$\x80-\xff][\w$\x80-\xff]*"
_NAME = re.compile(_IDENT + rb"(?:\." + _IDENT + rb")*")
_WHITESPACE = re.compile(rb"\s+")
_PACKAGE = re.compile(rb"package\b")
_IMPORT = re.compile(rb"import\b")
_STATIC = re.compile(rb"static\b")
_ANNOTATION = re.compile(rb"@\s*" + _IDENT + rb"(?:\." + _IDENT + rb")*")

Span = tuple[int, int]


@dataclass(frozen=True)
class ImportDeclaration:
    """One import statement.

    Attributes:
        name: Dotted name without any wildcard suffix
        wildcard: True for ``import a.b.*;``
        static: True for ``import static ...;``
        span: Byte span of ``name`` in the original content
    """

    name: str
    wildcard: bool
    static: bool
    span: Span

    @property
    def qualified(self) -> str:
        return self.name + ".*" if self.wildcard else self.name


@dataclass(frozen=True)
class ParsedHeader:
    """Result of ``parse_header``.

    ``content[:start] + content[start:end] + remainder`` is the original file,
    where ``(start, end)`` is ``header_byte_range``.
    """

    namespace_declaration: str | None
    imports: tuple[ImportDeclaration, ...]
    header_byte_range: Span
    content: bytes = field(repr=False)
    namespace_span: Span | None = None

    @property
    def imported_names(self) -> list[str]:
        return [imp.qualified for imp in self.imports]

    @property
    def prefix(self) -> bytes:
        return self.content[: self.header_byte_range[0]]

    @property
    def header(self) -> bytes:
        start, end = self.header_byte_range
        return self.content[start:end]

    @property
    def remainder(self) -> bytes:
        return self.content[self.header_byte_range[1] :]


class _Scanner:
    """Cursor over the header bytes."""

    def __init__(self, content: bytes, pos: int) -> None:
        self.content = content
        self.pos = pos

    def skip_trivia(self) -> None:
        """Skip whitespace, line comments and block comments."""
        content = self.content
        while self.pos < len(content):
            match = _WHITESPACE.match(content, self.pos)
            if match:
                self.pos = match.end()
                continue
            if content.startswith(b"//", self.pos):
                newline = content.find(b"\n", self.pos)
                self.pos = len(content) if newline == -1 else newline + 1
                continue
            if content.startswith(b"/*", self.pos):
                close = content.find(b"*/", self.pos + 2)
                if close == -1:
                    raise HeaderParseError("unterminated block comment", self.pos)
                self.pos = close + 2
                continue
            break

    def at(self, pattern: re.Pattern[bytes]) -> bool:
        return pattern.match(self.content, self.pos) is not None

    def consume(self, pattern: re.Pattern[bytes]) -> Span | None:
        match = pattern.match(self.content, self.pos)
        if match is None:
            return None
        self.pos = match.end()
        return match.span()

    def consume_literal(self, literal: bytes) -> bool:
        if self.content.startswith(literal, self.pos):
            self.pos += len(literal)
            return True
        return False

    def expect_name(self, after: str) -> Span:
        span = self.consume(_NAME)
        if span is None:
            raise HeaderParseError(f"expected dotted name after '{after}'", self.pos)
        return span

    def expect_semicolon(self) -> None:
        self.skip_trivia()
        if not self.consume_literal(b";"):
            raise HeaderParseError("expected ';'", self.pos)

    def skip_annotations(self) -> None:
        """Skip annotations such as ``@Deprecated`` or ``@Foo(bar = "x")``."""
        while self.consume(_ANNOTATION) is not None:
            self.skip_trivia()
            if self.content.startswith(b"(", self.pos):
                self._skip_parenthesized()
                self.skip_trivia()

    def _skip_parenthesized(self) -> None:
        depth = 0
        content = self.content
        while self.pos < len(content):
            char = content[self.pos : self.pos + 1]
            if char in (b'"', b"'"):
                close = content.find(char, self.pos + 1)
                while close != -1 and content[close - 1 : close] == b"\\":
                    close = content.find(char, close + 1)
                if close == -1:
                    raise HeaderParseError("unterminated string in annotation", self.pos)
                self.pos = close + 1
                continue
            self.pos += 1
            if char == b"(":
                depth += 1
            elif char == b")":
                depth -= 1
                if depth == 0:
                    return
        raise HeaderParseError("unbalanced parentheses in annotation", self.pos)


def _decode(name: bytes) -> str:
    return name.decode("utf-8", "surrogateescape")


def _encode(name: str) -> bytes:
    return name.encode("utf-8", "surrogateescape")


def parse_header(content: bytes) -> ParsedHeader:
    """Locate the package declaration and import statements of a file.

    Args:
        content: Raw file bytes

    Returns:
        ParsedHeader describing the header and where it sits in ``content``

    Raises:
        HeaderParseError: If neither a package declaration nor an import
            statement starts the file, or a header statement is malformed
    """
    start = len(UTF8_BOM) if content.startswith(UTF8_BOM) else 0
    scanner = _Scanner(content, start)
    scanner.skip_trivia()

    header_start: int | None = None
    header_end: int | None = None
    namespace: str | None = None
    namespace_span: Span | None = None

    mark = scanner.pos
    scanner.skip_annotations()
    if scanner.consume(_PACKAGE) is not None:
        header_start = mark
        scanner.skip_trivia()
        namespace_span = scanner.expect_name("package")
        namespace = _decode(content[namespace_span[0] : namespace_span[1]])
        scanner.expect_semicolon()
        header_end = scanner.pos
    else:
        # Annotations not followed by 'package' belong to the body.
        scanner.pos = mark

    imports: list[ImportDeclaration] = []
    while True:
        resume = scanner.pos
        scanner.skip_trivia()
        if scanner.consume_literal(b";"):
            # Stray empty declaration between imports
            if header_end is not None:
                header_end = scanner.pos
                continue
            scanner.pos = resume
            break
        statement_start = scanner.pos
        if scanner.consume(_IMPORT) is None:
            scanner.pos = resume
            break

        scanner.skip_trivia()
        is_static = False
        if scanner.at(_STATIC):
            scanner.consume(_STATIC)
            is_static = True
            scanner.skip_trivia()

        name_span = scanner.expect_name("import")
        wildcard = False
        after_name = scanner.pos
        scanner.skip_trivia()
        if scanner.consume_literal(b"."):
            scanner.skip_trivia()
            if not scanner.consume_literal(b"*"):
                raise HeaderParseError("expected '*' after '.'", scanner.pos)
            wildcard = True
        else:
            scanner.pos = after_name
        scanner.expect_semicolon()

        if header_start is None:
            header_start = statement_start
        header_end = scanner.pos
        imports.append(
            ImportDeclaration(
                name=_decode(content[name_span[0] : name_span[1]]),
                wildcard=wildcard,
                static=is_static,
                span=name_span,
            )
        )

    if header_start is None or header_end is None:
        raise HeaderParseError("no package or import declaration found", scanner.pos)

    debug(
        f"Parsed header: package={namespace} imports={len(imports)} "
        f"range=[{header_start}, {header_end})"
    )
    return ParsedHeader(
        namespace_declaration=namespace,
        imports=tuple(imports),
        header_byte_range=(header_start, header_end),
        content=content,
        namespace_span=namespace_span,
    )


def rename_name(name: str, old_prefix: str, new_prefix: str) -> str:
    """Replace a leading dotted prefix of ``name``.

    Only whole segments match: ``com.old`` renames ``com.old`` and
    ``com.old.X`` but never ``com.older``.

    Args:
        name: Dotted name to rename
        old_prefix: Prefix to replace
        new_prefix: Replacement prefix

    Returns:
        Renamed name, or ``name`` unchanged if it is not under ``old_prefix``
    """
    if name == old_prefix:
        return new_prefix
    if name.startswith(old_prefix + "."):
        return new_prefix + name[len(old_prefix) :]
    return name


def rewrite(parsed: ParsedHeader, mapping: RefactorMapping) -> bytes:
    """Rewrite a parsed header according to ``mapping``.

    The declared namespace must equal ``mapping.old_namespace`` exactly. The
    package declaration becomes ``mapping.new_namespace``; imports under the
    mapping's rename root are re-prefixed with their suffix (wildcard
    included) kept verbatim; all other bytes are copied unchanged.

    Args:
        parsed: Result of ``parse_header``
        mapping: Namespace rename for the run

    Returns:
        The rewritten file content

    Raises:
        NamespaceMismatch: If the declared namespace is not the old namespace
    """
    if parsed.namespace_declaration != mapping.old_namespace:
        raise NamespaceMismatch(mapping.old_namespace, parsed.namespace_declaration)
    if mapping.is_identity:
        return parsed.content

    old_root, new_root = mapping.rename_root()
    replacements: list[tuple[Span, bytes]] = []
    if parsed.namespace_span is not None:
        replacements.append((parsed.namespace_span, _encode(mapping.new_namespace)))

    for imp in parsed.imports:
        renamed = rename_name(imp.name, old_root, new_root)
        if renamed != imp.name:
            debug(f"Renamed import: {imp.name} -> {renamed}")
            replacements.append((imp.span, _encode(renamed)))

    pieces: list[bytes] = []
    cursor = 0
    for (begin, end), replacement in sorted(replacements):
        pieces.append(parsed.content[cursor:begin])
        pieces.append(replacement)
        cursor = end
    pieces.append(parsed.content[cursor:])
    return b"".join(pieces)


def refactor_source(content: bytes, mapping: RefactorMapping) -> bytes:
    """Parse and rewrite ``content`` in one step."""
    return rewrite(parse_header(content), mapping)
