from typing import Dict, List, Set, Tuple
import re
from collections import Counter

from locale_sync.document_model import flatten

TRANSLATION_ERROR_MARKER = "[Translation Error]"

# Matches placeholders like {0}, {1}, {name}.
PLACEHOLDER_REGEX = re.compile(r'\{([^{}]+)\}')


def check_key_coverage(base_keys: Set[str], target_keys: Set[str]) -> Tuple[Set[str], Set[str]]:
    """
    Compares the flat keys of a target locale document against the source document.

    Args:
        base_keys: The flat key paths of the source document.
        target_keys: The flat key paths of the target locale document.

    Returns:
        A tuple containing two sets:
        - missing_keys: Keys present in the source but missing from the target.
        - extra_keys: Keys present in the target but absent from the source.
    """
    missing_keys = base_keys - target_keys
    extra_keys = target_keys - base_keys
    return missing_keys, extra_keys


def check_placeholder_parity(base_string: str, target_string: str) -> bool:
    """
    Checks if the multiset of placeholders is identical between a source and a translated string.
    Reordering is allowed.

    Args:
        base_string: The source string.
        target_string: The translated string.

    Returns:
        True if both strings carry the same placeholders, False otherwise.
    """
    base_placeholders = Counter(PLACEHOLDER_REGEX.findall(base_string))
    target_placeholders = Counter(PLACEHOLDER_REGEX.findall(target_string))

    return base_placeholders == target_placeholders


def make_error_placeholder(text: str) -> str:
    """Build the tagged value stored in place of a translation that failed."""
    return f"{TRANSLATION_ERROR_MARKER} {text}"


def is_error_placeholder(value: str) -> bool:
    return value.startswith(TRANSLATION_ERROR_MARKER)


def find_error_placeholders(document: Dict) -> List[str]:
    """Return the flat key paths whose value is a translation error placeholder."""
    return [key for key, value in flatten(document).items() if is_error_placeholder(value)]
