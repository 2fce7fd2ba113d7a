from __future__ import annotations

import re
from dataclasses import dataclass, field as dc_field

from .types import (
    DbmlSyntaxError,
    DefaultLiteral,
    Diagnostic,
    Document,
    DocumentEnum,
    DocumentSchema,
    DocumentTable,
    Endpoint,
    EnumValue,
    Field,
    Index,
    Reference,
)

# ============================================================================
# DBML reader
#
# Line-oriented reader for the DBML subset used by the diagram editor.
#
# Supported syntax:
#   Table ecommerce.orders as O [note: 'orders'] {
#     id int [pk, increment]
#     status order_status [not null, default: 'new']
#     total decimal(10,2) [default: 0]
#     user_id int [ref: > users.id]
#     Note: 'table note'
#     indexes {
#       (id, status) [unique, name: 'idx']
#       status [type: hash]
#     }
#   }
#   Enum ecommerce.status {
#     new
#     paid [note: 'settled']
#   }
#   Ref name: a.(x, y) > b.(x, y) [delete: cascade, update: no action]
#   Ref {
#     a.x - b.y
#   }
#   Project / TableGroup / Note / Records blocks are skipped.
#
# Relation operators:
#   >   many-to-one     <   one-to-many
#   -   one-to-one      <>  many-to-many
#
# Braces outside quoted text are cut into their own logical lines first, so
# "Table t { id int }" and a "{" on the line after the header both read the
# same as the layout above.
# ============================================================================

DEFAULT_SCHEMA = "public"

_NAME = r'(?:"[^"]*"|[\w$]+)'
_QUALIFIED = rf"{_NAME}(?:\s*\.\s*{_NAME})*"
_ENDPOINT = rf"{_QUALIFIED}(?:\s*\.\s*\([^)]*\))?"
_OPERATOR = r"(<>|<|>|-)"

_TABLE_RE = re.compile(
    rf"^Table\s+({_QUALIFIED})(?:\s+as\s+({_NAME}))?\s*(\[.*\])?\s*\{{$", re.IGNORECASE
)
_ENUM_RE = re.compile(rf"^Enum\s+({_QUALIFIED})\s*\{{$", re.IGNORECASE)
_REF_SHORT_RE = re.compile(rf"^Ref(?:\s+({_NAME}))?\s*:\s*(.+)$", re.IGNORECASE)
_REF_LONG_RE = re.compile(rf"^Ref(?:\s+({_NAME}))?\s*\{{$", re.IGNORECASE)
_REF_BODY_RE = re.compile(rf"^({_ENDPOINT})\s*{_OPERATOR}\s*({_ENDPOINT})\s*(\[.*\])?$")
_INLINE_REF_RE = re.compile(rf"^{_OPERATOR}\s*({_ENDPOINT})$")
_COMPOSITE_RE = re.compile(rf"^({_QUALIFIED})\s*\.\s*\(([^)]*)\)$")
_SKIPPED_BLOCK_RE = re.compile(
    r"^(Project|TableGroup|TablePartial|Note|Records)\b.*\{$", re.IGNORECASE
)
_TOP_LEVEL_NOTE_RE = re.compile(r"^Note\s*:", re.IGNORECASE)
_NOTE_LINE_RE = re.compile(r"^Note\s*:\s*(.+)$", re.IGNORECASE | re.DOTALL)
_NOTE_BLOCK_RE = re.compile(r"^Note\s*\{$", re.IGNORECASE)
_INDEXES_RE = re.compile(r"^indexes\s*\{$", re.IGNORECASE)
_NUMBER_RE = re.compile(r"^-?\d+(\.\d+)?$")

# (left, right) endpoint markers for each operator
_RELATIONS: dict[str, tuple[str, str]] = {
    ">": ("*", "1"),
    "<": ("1", "*"),
    "-": ("1", "1"),
    "<>": ("*", "*"),
}


@dataclass(slots=True)
class _Line:
    number: int
    column: int
    text: str


@dataclass(slots=True)
class _State:
    lines: list[_Line]
    pos: int = 0
    tables: list[DocumentTable] = dc_field(default_factory=list)
    enums: list[DocumentEnum] = dc_field(default_factory=list)
    # (declaring schema, reference)
    refs: list[tuple[str, Reference]] = dc_field(default_factory=list)


def parse_dbml(text: str) -> Document:
    """Parse DBML text into a Document.

    Raises DbmlSyntaxError with a single diagnostic on the first problem.
    """
    state = _State(lines=_logical_lines(_strip_comments(text)))

    while state.pos < len(state.lines):
        line = state.lines[state.pos]
        state.pos += 1
        _parse_top_level(state, line)

    _check_reference_tables(state)
    return _build_document(state)


# ============================================================================
# Preprocessing
# ============================================================================


def _strip_comments(text: str) -> str:
    """Remove // and /* */ comments outside quoted text, keeping newlines."""
    out: list[str] = []
    quote: str | None = None
    i = 0
    n = len(text)

    while i < n:
        ch = text[i]

        if quote is not None:
            if ch == "\\" and i + 1 < n:
                out.append(text[i : i + 2])
                i += 2
                continue
            if text.startswith(quote, i):
                out.append(quote)
                i += len(quote)
                quote = None
                continue
            out.append(ch)
            i += 1
            continue

        if text.startswith("'''", i):
            quote = "'''"
            out.append(quote)
            i += 3
            continue
        if ch in "'\"`":
            quote = ch
            out.append(ch)
            i += 1
            continue
        if text.startswith("//", i):
            end = text.find("\n", i)
            i = n if end == -1 else end
            continue
        if text.startswith("/*", i):
            end = text.find("*/", i + 2)
            skipped = text[i:] if end == -1 else text[i : end + 2]
            # Keep line numbering stable
            out.append("\n" * skipped.count("\n"))
            i = n if end == -1 else end + 2
            continue

        out.append(ch)
        i += 1

    return "".join(out)


def _logical_lines(text: str) -> list[_Line]:
    """Split into non-empty stripped lines, merging multi-line ''' strings.

    A "{" ends the line it is on and a "}" always stands alone. A "{" with
    nothing before it joins the previous line as that header's opener.
    """
    result: list[_Line] = []
    raw_lines = text.split("\n")
    i = 0

    while i < len(raw_lines):
        raw = raw_lines[i]
        number = i + 1
        i += 1
        # An odd number of ''' means the string continues on later lines
        while raw.count("'''") % 2 == 1 and i < len(raw_lines):
            raw += "\n" + raw_lines[i]
            i += 1

        for offset, piece in _split_braces(raw):
            stripped = piece.strip()
            if not stripped:
                continue
            if stripped == "{" and result:
                result[-1].text += " {"
                continue
            column = offset + len(piece) - len(piece.lstrip()) + 1
            result.append(_Line(number=number, column=column, text=stripped))

    return result


def _split_braces(raw: str) -> list[tuple[int, str]]:
    """Cut after every "{" and around every "}" outside quoted text.

    Returns (offset, piece) pairs covering the whole line.
    """
    pieces: list[tuple[int, str]] = []
    quote: str | None = None
    start = 0
    i = 0
    n = len(raw)

    while i < n:
        if quote is not None:
            if raw[i] == "\\":
                i += 2
            elif raw.startswith(quote, i):
                i += len(quote)
                quote = None
            else:
                i += 1
            continue

        if raw.startswith("'''", i):
            quote = "'''"
            i += 3
            continue
        ch = raw[i]
        if ch in "'\"`":
            quote = ch
        elif ch == "{":
            pieces.append((start, raw[start : i + 1]))
            start = i + 1
        elif ch == "}":
            pieces.append((start, raw[start:i]))
            pieces.append((i, "}"))
            start = i + 1
        i += 1

    pieces.append((start, raw[start:]))
    return pieces


def _error(line: _Line, message: str) -> DbmlSyntaxError:
    return DbmlSyntaxError([Diagnostic(message=message, line=line.number, column=line.column)])


# ============================================================================
# Top-level statements
# ============================================================================


def _parse_top_level(state: _State, line: _Line) -> None:
    text = line.text

    m = _TABLE_RE.match(text)
    if m:
        _parse_table(state, line, m)
        return

    m = _ENUM_RE.match(text)
    if m:
        _parse_enum(state, line, m)
        return

    m = _REF_LONG_RE.match(text)
    if m:
        _parse_long_ref(state, line, m.group(1))
        return

    m = _REF_SHORT_RE.match(text)
    if m:
        ref = _parse_ref_body(line, m.group(2))
        ref.name = _unquote(m.group(1)) if m.group(1) else None
        declaring = ref.endpoints[0].schema or DEFAULT_SCHEMA
        state.refs.append((declaring, ref))
        return

    if _SKIPPED_BLOCK_RE.match(text):
        _skip_block(state, line)
        return

    if _TOP_LEVEL_NOTE_RE.match(text):
        return

    keyword = text.split()[0]
    if keyword.lower() in ("table", "enum", "ref"):
        raise _error(line, f'Expected a valid {keyword} declaration but found "{text}"')
    raise _error(line, f'Expected "Table", "Enum", "Ref" or "Project" but found "{keyword}"')


def _skip_block(state: _State, header: _Line) -> None:
    depth = 1
    while state.pos < len(state.lines):
        line = state.lines[state.pos]
        state.pos += 1
        if line.text == "}":
            depth -= 1
        elif line.text.endswith("{"):
            depth += 1
        if depth <= 0:
            return
    raise _error(header, "Expected '}' to close block")


def _next_body_line(state: _State, header: _Line, what: str) -> _Line:
    if state.pos >= len(state.lines):
        raise _error(header, f"Expected '}}' to close {what}")
    line = state.lines[state.pos]
    state.pos += 1
    return line


# ============================================================================
# Tables
# ============================================================================


def _parse_table(state: _State, header: _Line, m: re.Match[str]) -> None:
    schema, name = _split_table_name(header, m.group(1))
    table = DocumentTable(
        name=name,
        schema=schema,
        alias=_unquote(m.group(2)) if m.group(2) else None,
        line=header.number,
    )
    if m.group(3):
        settings = _parse_settings(header, m.group(3))
        for key, value in settings:
            if key == "note":
                table.note = _parse_string(header, value)
            elif key not in ("headercolor",):
                raise _error(header, f'Unknown table setting "{key}"')

    what = f'table "{name}"'
    while True:
        line = _next_body_line(state, header, what)
        text = line.text

        if text == "}":
            break

        if _INDEXES_RE.match(text):
            _parse_indexes(state, line, table)
            continue

        if _NOTE_BLOCK_RE.match(text):
            table.note = _parse_note_block(state, line)
            continue

        m_note = _NOTE_LINE_RE.match(text)
        if m_note:
            table.note = _parse_string(line, m_note.group(1))
            continue

        table.fields.append(_parse_field(state, line, table))

    state.tables.append(table)


def _split_table_name(line: _Line, qualified: str) -> tuple[str | None, str]:
    parts = _split_qualified(qualified)
    if len(parts) == 1:
        return None, parts[0]
    if len(parts) == 2:
        return parts[0], parts[1]
    raise _error(line, f'Expected "schema.table" but found "{qualified}"')


def _parse_field(state: _State, line: _Line, table: DocumentTable) -> Field:
    text = line.text

    name_match = re.match(rf"^({_NAME})\s+", text)
    if not name_match:
        raise _error(line, f'Expected a column type for "{text}"')
    name = _unquote(name_match.group(1))
    rest = text[name_match.end() :]

    type_text, rest = _read_type(line, rest)
    field = Field(name=name, type_name=type_text, line=line.number)

    enum_match = re.match(r"^enum\s*\((.*)\)$", type_text, re.IGNORECASE)
    if enum_match:
        field.type_name = "enum"
        field.enum_values = [
            _parse_string(line, v) if v[:1] in "'\"" else v
            for v in _split_top_level(enum_match.group(1))
        ]

    rest = rest.strip()
    if not rest:
        return field
    if not rest.startswith("["):
        raise _error(line, f'Expected column settings in "[...]" but found "{rest}"')

    for key, value in _parse_settings(line, rest):
        if key in ("pk", "primary key"):
            field.pk = True
        elif key == "unique":
            field.unique = True
        elif key == "not null":
            field.not_null = True
        elif key == "null":
            field.not_null = False
        elif key == "increment":
            field.increment = True
        elif key == "default":
            field.default = _parse_literal(line, value)
        elif key == "note":
            field.note = _parse_string(line, value)
        elif key == "ref":
            _parse_inline_ref(state, line, table, field.name, value)
        elif key == "check":
            continue
        else:
            raise _error(line, f'Unknown column setting "{key}"')

    return field


def _read_type(line: _Line, text: str) -> tuple[str, str]:
    """Read a column type; returns (type, remainder)."""
    if not text:
        raise _error(line, "Expected a column type")

    i = 0
    if text[0] == '"':
        end = text.find('"', 1)
        if end == -1:
            raise _error(line, "Expected closing '\"' in column type")
        type_text = text[1:end]
        i = end + 1
    else:
        while i < len(text) and not text[i].isspace() and text[i] not in "[(":
            i += 1
        type_text = text[:i]

    if i < len(text) and text[i] == "(":
        end = _find_closing(text, i, "(", ")")
        if end == -1:
            raise _error(line, "Expected ')' to close column type arguments")
        type_text += text[i : end + 1]
        i = end + 1

    if text.startswith("[]", i):
        type_text += "[]"
        i += 2

    if not type_text:
        raise _error(line, "Expected a column type")
    return type_text, text[i:]


def _parse_indexes(state: _State, header: _Line, table: DocumentTable) -> None:
    while True:
        line = _next_body_line(state, header, "indexes")
        text = line.text
        if text == "}":
            return

        index = Index()
        if text.startswith("("):
            end = _find_closing(text, 0, "(", ")")
            if end == -1:
                raise _error(line, "Expected ')' to close index columns")
            index.columns = [_unquote(c) for c in _split_top_level(text[1:end])]
            rest = text[end + 1 :].strip()
        elif text.startswith("`"):
            end = text.find("`", 1)
            if end == -1:
                raise _error(line, "Expected closing '`' in index expression")
            index.columns = [text[: end + 1]]
            rest = text[end + 1 :].strip()
        else:
            m = re.match(rf"^({_NAME})\s*(.*)$", text)
            if not m:
                raise _error(line, f'Expected an index column but found "{text}"')
            index.columns = [_unquote(m.group(1))]
            rest = m.group(2).strip()

        if rest:
            if not rest.startswith("["):
                raise _error(line, f'Expected index settings in "[...]" but found "{rest}"')
            for key, value in _parse_settings(line, rest):
                if key in ("pk", "primary key"):
                    index.pk = True
                elif key == "unique":
                    index.unique = True
                elif key == "type":
                    index.type = value.strip().lower()
                elif key == "name":
                    index.name = _parse_string(line, value)
                elif key == "note":
                    index.note = _parse_string(line, value)
                else:
                    raise _error(line, f'Unknown index setting "{key}"')

        table.indexes.append(index)


def _parse_note_block(state: _State, header: _Line) -> str:
    parts: list[str] = []
    while True:
        line = _next_body_line(state, header, "note")
        if line.text == "}":
            return "\n".join(parts)
        parts.append(_parse_string(line, line.text))


# ============================================================================
# Enums
# ============================================================================


def _parse_enum(state: _State, header: _Line, m: re.Match[str]) -> None:
    schema, name = _split_table_name(header, m.group(1))
    enum = DocumentEnum(name=name, schema=schema)

    while True:
        line = _next_body_line(state, header, f'enum "{name}"')
        text = line.text
        if text == "}":
            break

        vm = re.match(rf"^({_NAME})\s*(\[.*\])?$", text)
        if not vm:
            raise _error(line, f'Expected an enum value but found "{text}"')
        value = EnumValue(name=_unquote(vm.group(1)))
        if vm.group(2):
            for key, raw in _parse_settings(line, vm.group(2)):
                if key != "note":
                    raise _error(line, f'Unknown enum value setting "{key}"')
                value.note = _parse_string(line, raw)
        enum.values.append(value)

    state.enums.append(enum)


# ============================================================================
# References
# ============================================================================


def _parse_long_ref(state: _State, header: _Line, name: str | None) -> None:
    while True:
        line = _next_body_line(state, header, "reference")
        if line.text == "}":
            return
        ref = _parse_ref_body(line, line.text)
        ref.name = _unquote(name) if name else None
        state.refs.append((ref.endpoints[0].schema or DEFAULT_SCHEMA, ref))


def _parse_ref_body(line: _Line, text: str) -> Reference:
    m = _REF_BODY_RE.match(text.strip())
    if not m:
        raise _error(line, f'Expected "<table>.<column> <op> <table>.<column>" but found "{text}"')

    left_rel, right_rel = _RELATIONS[m.group(2)]
    left = _parse_endpoint(line, m.group(1))
    right = _parse_endpoint(line, m.group(3))
    left.relation = left_rel  # type: ignore[assignment]
    right.relation = right_rel  # type: ignore[assignment]

    ref = Reference(endpoints=[left, right], line=line.number)
    if m.group(4):
        _apply_ref_settings(line, ref, m.group(4))
    return ref


def _parse_inline_ref(
    state: _State, line: _Line, table: DocumentTable, column: str, value: str
) -> None:
    m = _INLINE_REF_RE.match(value.strip())
    if not m:
        raise _error(line, f'Expected "ref: <op> <table>.<column>" but found "{value}"')

    left_rel, right_rel = _RELATIONS[m.group(1)]
    left = Endpoint(table=table.name, schema=table.schema, columns=[column], relation=left_rel)  # type: ignore[arg-type]
    right = _parse_endpoint(line, m.group(2))
    right.relation = right_rel  # type: ignore[assignment]

    ref = Reference(endpoints=[left, right], line=line.number)
    state.refs.append((table.schema or DEFAULT_SCHEMA, ref))


def _parse_endpoint(line: _Line, text: str) -> Endpoint:
    text = text.strip()

    composite = _COMPOSITE_RE.match(text)
    if composite:
        path = _split_qualified(composite.group(1))
        columns = [_unquote(c) for c in _split_top_level(composite.group(2))]
    else:
        parts = _split_qualified(text)
        if len(parts) < 2:
            raise _error(line, f'Expected "<table>.<column>" but found "{text}"')
        path, columns = parts[:-1], [parts[-1]]

    if len(path) == 1:
        return Endpoint(table=path[0], columns=columns)
    if len(path) == 2:
        return Endpoint(table=path[1], schema=path[0], columns=columns)
    raise _error(line, f'Expected "schema.table.column" but found "{text}"')


def _apply_ref_settings(line: _Line, ref: Reference, text: str) -> None:
    for key, value in _parse_settings(line, text):
        if key == "delete":
            ref.on_delete = value.strip()
        elif key == "update":
            ref.on_update = value.strip()
        elif key != "color":
            raise _error(line, f'Unknown reference setting "{key}"')


def _check_reference_tables(state: _State) -> None:
    known: set[str] = set()
    for table in state.tables:
        known.add(table.name)
        if table.alias:
            known.add(table.alias)

    for _schema, ref in state.refs:
        for endpoint in ref.endpoints:
            if endpoint.table not in known:
                label = f"{endpoint.schema}.{endpoint.table}" if endpoint.schema else endpoint.table
                raise DbmlSyntaxError(
                    [Diagnostic(message=f"Can't find table \"{label}\"", line=ref.line)]
                )


# ============================================================================
# Document assembly
# ============================================================================


def _build_document(state: _State) -> Document:
    schemas: dict[str, DocumentSchema] = {}

    def schema_for(name: str | None) -> DocumentSchema:
        key = name or DEFAULT_SCHEMA
        if key not in schemas:
            schemas[key] = DocumentSchema(name=key)
        return schemas[key]

    for table in state.tables:
        schema_for(table.schema).tables.append(table)
    for enum in state.enums:
        schema_for(enum.schema).enums.append(enum)
    for declaring, ref in state.refs:
        schema_for(declaring).refs.append(ref)

    return Document(schemas=list(schemas.values()))


# ============================================================================
# Settings and literals
# ============================================================================


def _parse_settings(line: _Line, text: str) -> list[tuple[str, str]]:
    """Split "[a, b: c]" into (lowercased key, raw value) pairs."""
    text = text.strip()
    end = _find_closing(text, 0, "[", "]")
    if not text.startswith("[") or end == -1:
        raise _error(line, "Expected ']' to close settings")
    if text[end + 1 :].strip():
        raise _error(line, f'Unexpected "{text[end + 1:].strip()}" after settings')

    result: list[tuple[str, str]] = []
    for item in _split_top_level(text[1:end]):
        if not item:
            continue
        key, sep, value = item.partition(":")
        key = " ".join(key.split()).lower()
        result.append((key, value.strip() if sep else ""))
    return result


def _parse_literal(line: _Line, text: str) -> DefaultLiteral:
    text = text.strip()
    if text[:1] in ("'", '"'):
        return DefaultLiteral(value=_parse_string(line, text), kind="string")
    if text.startswith("`") and text.endswith("`") and len(text) >= 2:
        return DefaultLiteral(value=text[1:-1], kind="expression")
    lowered = text.lower()
    if lowered in ("true", "false"):
        return DefaultLiteral(value=lowered == "true", kind="boolean")
    if lowered == "null":
        return DefaultLiteral(value=None, kind="null")
    if _NUMBER_RE.match(text):
        number = float(text) if "." in text else int(text)
        return DefaultLiteral(value=number, kind="number")
    raise _error(line, f'Expected a default value but found "{text}"')


def _parse_string(line: _Line, text: str) -> str:
    text = text.strip()
    if text.startswith("'''") and text.endswith("'''") and len(text) >= 6:
        return text[3:-3].strip()
    if len(text) >= 2 and text[0] == text[-1] and text[0] in ("'", '"'):
        quote = text[0]
        return text[1:-1].replace("\\" + quote, quote)
    raise _error(line, f'Expected a quoted string but found "{text}"')


def _split_top_level(text: str) -> list[str]:
    """Split on commas that are outside quotes, parentheses and brackets."""
    parts: list[str] = []
    depth = 0
    quote: str | None = None
    current: list[str] = []

    for i, ch in enumerate(text):
        if quote is not None:
            current.append(ch)
            if ch == quote and (i == 0 or text[i - 1] != "\\"):
                quote = None
            continue
        if ch in "'\"`":
            quote = ch
        elif ch in "([":
            depth += 1
        elif ch in ")]":
            depth -= 1
        elif ch == "," and depth == 0:
            parts.append("".join(current).strip())
            current = []
            continue
        current.append(ch)

    tail = "".join(current).strip()
    if tail or parts:
        parts.append(tail)
    return parts


def _find_closing(text: str, start: int, opener: str, closer: str) -> int:
    """Index of the bracket closing the one at `start`, or -1."""
    depth = 0
    quote: str | None = None
    for i in range(start, len(text)):
        ch = text[i]
        if quote is not None:
            if ch == quote and text[i - 1] != "\\":
                quote = None
            continue
        if ch in "'\"`":
            quote = ch
        elif ch == opener:
            depth += 1
        elif ch == closer:
            depth -= 1
            if depth == 0:
                return i
    return -1


def _split_qualified(text: str) -> list[str]:
    return [_unquote(p) for p in re.findall(_NAME, text)]


def _unquote(name: str) -> str:
    name = name.strip()
    if len(name) >= 2 and name[0] == '"' and name[-1] == '"':
        return name[1:-1]
    return name
