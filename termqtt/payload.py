"""
Payload codec for termqtt.

Converts JSON payloads into flat (path, value) rows for field-by-field
editing and rebuilds payloads from edited rows.

Paths join object keys with '.' and array indices with '[i]', e.g.
'a.b[2].c'. Row values are JSON literals; anything that is not valid
JSON is kept as a plain string, so quoting a value forces a string.
"""

import json
import math
import re

from .errors import ParsePayloadError

# JSON type tags
STRING = 'string'
NUMBER = 'number'
BOOLEAN = 'boolean'
NULL = 'null'
ARRAY = 'array'
OBJECT = 'object'

EMPTY_OBJECT_PATH = '{}'
EMPTY_ARRAY_PATH = '[]'
SCALAR_PATH = 'value'
RAW_KEY = 'payload'

_PATH_TOKEN = re.compile(r'([^.[\]]+)|\[(\d+)\]')
_SPACE_DOT = re.compile(r'\s*\.\s*')
_SPACE_OPEN = re.compile(r'\s*\[\s*')
_SPACE_CLOSE = re.compile(r'\s*\]\s*')

_UNSET = object()


class FlattenedEntry:
    """One leaf of a flattened payload."""
    __slots__ = ('path', 'value', 'type')

    def __init__(self, path, value, type):
        self.path = path
        self.value = value
        self.type = type

    def __eq__(self, other):
        if not isinstance(other, FlattenedEntry):
            return NotImplemented
        return (self.path, self.value, self.type) == (other.path, other.value, other.type)

    def __repr__(self):
        return 'FlattenedEntry(%r, %r, %r)' % (self.path, self.value, self.type)


class TableRow:
    """Editable key/value row; ``value`` is the text typed by the operator."""
    __slots__ = ('key', 'value')

    def __init__(self, key, value=''):
        self.key = key
        self.value = value

    def __eq__(self, other):
        if not isinstance(other, TableRow):
            return NotImplemented
        return self.key == other.key and self.value == other.value

    def __repr__(self):
        return 'TableRow(%r, %r)' % (self.key, self.value)


def _reject_constant(name):
    raise ValueError('Invalid JSON literal: %s' % name)


def _parse_float(text):
    value = float(text)
    if math.isinf(value):
        raise ValueError('Number out of range: %s' % text)
    return value


def _loads(text):
    # NaN and Infinity are not JSON, nor are numbers that overflow to them
    return json.loads(text, parse_constant=_reject_constant, parse_float=_parse_float)


def decode_payload(text):
    """Decode a payload as JSON.

    NUL characters are stripped first; some devices pad payloads with them.

    Raises:
        ParsePayloadError: if the payload is blank or not valid JSON
    """
    cleaned = text.replace('\0', '')
    if not cleaned.strip():
        raise ParsePayloadError('Empty payload', payload=text)
    try:
        return _loads(cleaned)
    except ValueError as e:
        raise ParsePayloadError(str(e), payload=text)


def parse_json(text):
    """Parse an inbound payload without raising.

    Returns:
        (value, error) tuple; error is None on success, otherwise a message
    """
    try:
        return decode_payload(text), None
    except ParsePayloadError as e:
        return None, e.message


def json_type(value):
    """Type tag for a decoded JSON value."""
    if value is None:
        return NULL
    if isinstance(value, bool):
        return BOOLEAN
    if isinstance(value, (int, float)):
        return NUMBER
    if isinstance(value, str):
        return STRING
    if isinstance(value, (list, tuple)):
        return ARRAY
    if isinstance(value, dict):
        return OBJECT
    raise TypeError('Not a JSON value: %r' % (value,))


def flatten(value, prefix=''):
    """
    Flatten a JSON value into leaf entries.

    Empty containers produce a single entry so they stay visible: at the
    root its path is '{}' or '[]'. A scalar root gets the path 'value'.

    Args:
        value: decoded JSON value
        prefix: path of ``value`` inside the enclosing document

    Returns:
        list of FlattenedEntry
    """
    kind = json_type(value)

    if kind == ARRAY:
        if not value:
            return [FlattenedEntry(prefix or EMPTY_ARRAY_PATH, value, ARRAY)]
        entries = []
        for index, item in enumerate(value):
            entries.extend(flatten(item, '%s[%d]' % (prefix, index)))
        return entries

    if kind == OBJECT:
        if not value:
            return [FlattenedEntry(prefix or EMPTY_OBJECT_PATH, value, OBJECT)]
        entries = []
        for key, item in value.items():
            entries.extend(flatten(item, '%s.%s' % (prefix, key) if prefix else key))
        return entries

    return [FlattenedEntry(prefix or SCALAR_PATH, value, kind)]


def format_value(value):
    """Display text for a value: strings verbatim, everything else as JSON."""
    if value is None:
        return 'null'
    if isinstance(value, str):
        return value
    return json.dumps(value, ensure_ascii=False, allow_nan=False, separators=(',', ':'))


def pretty_json(value):
    return json.dumps(value, indent=2, ensure_ascii=False, allow_nan=False)


def rows_from_value(value):
    """Editable rows for a value, leaves rendered as JSON literals."""
    return [TableRow(entry.path, json.dumps(entry.value, ensure_ascii=False, allow_nan=False))
            for entry in flatten(value)]


def normalize_path(path):
    """Trim whitespace around path separators: 'a . b [ 0 ]' -> 'a.b[0]'."""
    path = _SPACE_DOT.sub('.', path.strip())
    path = _SPACE_OPEN.sub('[', path)
    return _SPACE_CLOSE.sub(']', path)


def parse_path(path):
    """
    Split a row key into tokens.

    Identifier tokens are str, bracketed indices are int. The empty
    container sentinels '{}' and '[]' address the root and produce no
    tokens.

    Returns:
        list of str/int
    """
    normalized = normalize_path(path)
    if normalized in (EMPTY_OBJECT_PATH, EMPTY_ARRAY_PATH):
        return []
    tokens = []
    for match in _PATH_TOKEN.finditer(normalized):
        if match.group(1) is not None:
            tokens.append(match.group(1))
        elif match.group(2) is not None:
            tokens.append(int(match.group(2)))
    return tokens


def parse_value(text):
    """Interpret a row value: JSON literal if it parses, else the raw text."""
    trimmed = text.strip()
    if not trimmed:
        return ''
    try:
        return _loads(trimmed)
    except ValueError:
        return text


def _coerce_slot(slot, token):
    """Container able to hold ``token``: lists for indices, dicts for keys."""
    if isinstance(token, int):
        return slot if isinstance(slot, list) else []
    return slot if isinstance(slot, dict) else {}


def _read_slot(container, token):
    if isinstance(container, list):
        return container[token] if token < len(container) else None
    return container.get(token)


def _write_slot(container, token, value):
    if isinstance(container, list):
        if token >= len(container):
            container.extend([None] * (token + 1 - len(container)))
    container[token] = value


def set_by_path(root, tokens, value):
    """
    Assign ``value`` at ``tokens`` inside ``root`` and return the new root.

    Missing containers are created on the way down. A slot is replaced by
    a list only when the token addressing into it is an index, and by a
    dict only when it is a key; existing containers of the right kind are
    reused.
    """
    root = _coerce_slot(root, tokens[0])
    current = root
    last = len(tokens) - 1
    for index, token in enumerate(tokens):
        if index == last:
            _write_slot(current, token, value)
            break
        child = _read_slot(current, token)
        container = _coerce_slot(child, tokens[index + 1])
        if container is not child:
            _write_slot(current, token, container)
        current = container
    return root


def _row_parts(row):
    if isinstance(row, tuple):
        return row
    return row.key, row.value


def _is_raw(rows, raw_mode):
    return raw_mode and len(rows) == 1 and _row_parts(rows[0])[0] == RAW_KEY


def _has_descendant(key, keys):
    return any(other != key and (other.startswith(key + '.') or other.startswith(key + '['))
               for other in keys)


def build_value(rows, preview=False, default=None):
    """
    Rebuild a value from edited rows.

    Rows with a blank key are skipped. A key without tokens replaces the
    whole value. With ``preview`` set, rows with a blank value and rows
    whose key has a more specific key elsewhere in the table are dropped,
    so an edited child wins over its parent's placeholder.

    Returns:
        The rebuilt value, or ``default`` when no row applied.
    """
    rows = [_row_parts(row) for row in rows]
    filled = [key.strip() for key, text in rows if key.strip() and text.strip()]

    root = _UNSET
    for key, text in rows:
        key = key.strip()
        if not key:
            continue
        if preview and (not text.strip() or _has_descendant(key, filled)):
            continue

        tokens = parse_path(key)
        value = parse_value(text)
        if not tokens:
            root = value
            continue
        root = set_by_path(None if root is _UNSET else root, tokens, value)

    return default if root is _UNSET else root


def rebuild_from_rows(rows, raw_mode=False):
    """
    Payload text to publish for the edited rows.

    In raw mode a single 'payload' row is sent verbatim, which lets
    non-JSON payloads round-trip. Otherwise the rebuilt value is returned
    as indented JSON ('{}' when there is nothing to build).
    """
    if _is_raw(rows, raw_mode):
        return _row_parts(rows[0])[1]
    return pretty_json(build_value(rows, default={}))


def preview_from_rows(rows, raw_mode=False):
    """Like rebuild_from_rows(), with preview row rules; '' when empty."""
    if _is_raw(rows, raw_mode):
        return _row_parts(rows[0])[1]
    value = build_value(rows, preview=True, default=_UNSET)
    if value is _UNSET:
        return ''
    return pretty_json(value)
