"""Nested YAML string documents and their flat, dot-joined key view."""
import os
import re
from typing import Any, Dict, Iterator, Optional, Tuple

import yaml

PATH_SEPARATOR = '.'

# Sentinel returned by get_path when nothing lives at a path. None is a
# legitimate YAML value, so it cannot double as "absent".
MISSING = object()


class DocumentError(ValueError):
    """Raised when YAML text cannot be turned into a document mapping."""


class _QuotedString(str):
    pass


class _DocumentLoader(yaml.SafeLoader):
    """
    Safe loader with YAML 1.2 booleans and string mapping keys.

    Only true/false resolve to booleans, so ``yes``/``no``/``on``/``off`` stay
    text. Scalar keys keep the text written in the file (``404``, ``yes``, ``~``)
    instead of being resolved to ints, booleans or null.
    """

    def construct_mapping(self, node, deep=False):
        if isinstance(node, yaml.MappingNode):
            self.flatten_mapping(node)
        mapping = {}
        for key_node, value_node in node.value:
            if isinstance(key_node, yaml.ScalarNode):
                key = key_node.value
            else:
                key = str(self.construct_object(key_node, deep=deep))
            mapping[key] = self.construct_object(value_node, deep=deep)
        return mapping


_BOOL_TAG = 'tag:yaml.org,2002:bool'
_DocumentLoader.yaml_implicit_resolvers = {
    first_char: [(tag, regexp) for tag, regexp in resolvers if tag != _BOOL_TAG]
    for first_char, resolvers in yaml.SafeLoader.yaml_implicit_resolvers.items()
}
_DocumentLoader.add_implicit_resolver(
    _BOOL_TAG, re.compile(r'^(?:true|True|TRUE|false|False|FALSE)$'), list('tTfF'))


class _DocumentDumper(yaml.SafeDumper):
    pass


def _represent_quoted_string(dumper: yaml.SafeDumper, data: _QuotedString) -> yaml.ScalarNode:
    return dumper.represent_scalar('tag:yaml.org,2002:str', str(data), style='"')


_DocumentDumper.add_representer(_QuotedString, _represent_quoted_string)


def join_path(prefix: str, key: Any) -> str:
    return f"{prefix}{PATH_SEPARATOR}{key}" if prefix else str(key)


def iter_leaves(document: Dict, prefix: str = '') -> Iterator[Tuple[str, Any]]:
    """
    Yield ``(path, value)`` for every non-mapping leaf of a document.

    Strings and opaque values (numbers, booleans, null, lists) are both
    yielded. Lists are leaves and are never traversed into.
    """
    for key, value in document.items():
        path = join_path(prefix, key)
        if isinstance(value, dict):
            yield from iter_leaves(value, path)
        else:
            yield path, value


def flatten(document: Dict) -> Dict[str, str]:
    """
    Flatten a nested document into a map of dotted key paths to string values.

    Only string leaves are included; opaque leaves are skipped.

    Args:
        document (Dict): The nested document.

    Returns:
        Dict[str, str]: One entry per string leaf, in the document's insertion order.
    """
    return {path: value for path, value in iter_leaves(document) if isinstance(value, str)}


def set_path(document: Dict, path: str, value: Any) -> None:
    """
    Set ``value`` at a dotted path, creating intermediate mappings as needed.

    A non-mapping value found at an intermediate segment is replaced by a new
    mapping, so the last write always wins.
    """
    parts = path.split(PATH_SEPARATOR)
    current = document
    for part in parts[:-1]:
        if not isinstance(current.get(part), dict):
            current[part] = {}
        current = current[part]
    current[parts[-1]] = value


def get_path(document: Dict, path: str) -> Any:
    """Return the value at a dotted path, or ``MISSING`` when the path does not resolve."""
    current: Any = document
    for part in path.split(PATH_SEPARATOR):
        if not isinstance(current, dict) or part not in current:
            return MISSING
        current = current[part]
    return current


def unflatten(flat: Dict[str, Any]) -> Dict:
    """
    Rebuild a nested document from a map of dotted key paths.

    Args:
        flat (Dict[str, Any]): Dotted key paths mapped to leaf values.

    Returns:
        Dict: The nested document.
    """
    document: Dict = {}
    for path, value in flat.items():
        set_path(document, path, value)
    return document


def load_document(text: Optional[str]) -> Dict:
    """
    Parse YAML text into a document mapping.

    Empty or blank text yields an empty document.

    Raises:
        DocumentError: If the text is not valid YAML or its top level is not a mapping.
    """
    if text is None or not text.strip():
        return {}
    try:
        loaded = yaml.load(text, Loader=_DocumentLoader)
    except yaml.YAMLError as e:
        raise DocumentError(f"Invalid YAML: {e}") from e
    if loaded is None:
        return {}
    if not isinstance(loaded, dict):
        raise DocumentError(f"Expected a YAML mapping at the top level, got {type(loaded).__name__}.")
    return loaded


def _quote_strings(value: Any) -> Any:
    if isinstance(value, dict):
        return {key: _quote_strings(item) for key, item in value.items()}
    if isinstance(value, list):
        return [_quote_strings(item) for item in value]
    if isinstance(value, str):
        return _QuotedString(value)
    return value


def dump_document(document: Dict) -> str:
    """
    Serialize a document to YAML.

    String values are always double-quoted and never wrapped so that diffs of
    the generated files stay stable across runs. Keys keep their plain style
    and their insertion order.
    """
    return yaml.dump(
        _quote_strings(document),
        Dumper=_DocumentDumper,
        allow_unicode=True,
        sort_keys=False,
        width=float('inf'),
        default_flow_style=False,
    )


def read_document_file(file_path: str) -> Dict:
    """Read and parse a YAML document from disk."""
    with open(file_path, 'r', encoding='utf-8') as f:
        return load_document(f.read())


def write_document_file(file_path: str, document: Dict) -> None:
    """Serialize a document and write it to disk, creating parent directories."""
    target_directory = os.path.dirname(file_path)
    if target_directory:
        os.makedirs(target_directory, exist_ok=True)
    with open(file_path, 'w', encoding='utf-8') as f:
        f.write(dump_document(document))
