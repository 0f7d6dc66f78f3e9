"""Comparison of source snapshots and pruning of keys the source no longer has."""
import logging
from typing import Any, Dict, Optional

from locale_sync.document_model import join_path

logger = logging.getLogger(__name__)


def diff(current: Dict, previous: Optional[Any], prefix: str = '') -> Dict[str, str]:
    """
    Find added or modified string values between two document snapshots.

    A string leaf of ``current`` is reported when the value at the same path in
    ``previous`` is different or absent. Comparison is exact, with no whitespace
    normalization. Keys that exist only in ``previous`` are not reported.

    Args:
        current (Dict): The current source document.
        previous (Optional[Any]): The previous snapshot of the same subtree. Anything
            that is not a mapping is treated as having no values at all.
        prefix (str): The dotted path of ``current`` within the full document.

    Returns:
        Dict[str, str]: Dotted key paths mapped to their new string values.
    """
    previous_map = previous if isinstance(previous, dict) else {}
    changes: Dict[str, str] = {}
    for key, current_value in current.items():
        full_key = join_path(prefix, key)
        previous_value = previous_map.get(key)
        if isinstance(current_value, str):
            if current_value != previous_value:
                changes[full_key] = current_value
        elif isinstance(current_value, dict):
            changes.update(diff(current_value, previous_value, full_key))
    return changes


def remove_deleted_keys(target: Dict, source: Dict, prefix: str = '') -> bool:
    """
    Remove, in place, every key of ``target`` whose path does not exist in ``source``.

    Recurses where both sides hold a mapping. Mappings emptied by the removal
    are left in place.

    Args:
        target (Dict): The translated document to prune.
        source (Dict): The current source document.
        prefix (str): The dotted path of ``target`` within the full document.

    Returns:
        bool: True if any key was removed.
    """
    has_deleted = False
    for key in list(target.keys()):
        full_key = join_path(prefix, key)
        if key not in source:
            logger.info(f"Deleting key '{full_key}' from target translations.")
            del target[key]
            has_deleted = True
        elif isinstance(target[key], dict) and isinstance(source[key], dict):
            if remove_deleted_keys(target[key], source[key], full_key):
                has_deleted = True
    return has_deleted
