"""Durable record of the last source revision that was synchronized."""
import json
import logging
import os
import tempfile
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional, Tuple

import jsonschema

logger = logging.getLogger(__name__)

RUN_STATE_SCHEMA = {
    "type": "object",
    "properties": {
        "last_synchronized_revision": {"type": "string", "minLength": 1},
        "updated_at": {"type": "string"}
    },
    "required": ["last_synchronized_revision"]
}


class StatePersistenceError(RuntimeError):
    """Raised when the run state cannot be written."""


@dataclass(frozen=True)
class RunState:
    last_synchronized_revision: str
    updated_at: Optional[str] = None


def _utc_timestamp() -> str:
    return datetime.now(timezone.utc).strftime('%Y-%m-%dT%H:%M:%SZ')


def read_run_state(state_file_path: str) -> Tuple[Optional[RunState], bool]:
    """
    Load the run state and report whether a state file was present.

    A missing, unreadable or malformed state file yields no state. The second
    element tells a first run (no file) apart from a damaged checkpoint (file
    present but unusable), which must not be replaced by any other baseline.

    Args:
        state_file_path (str): Path to the JSON state file.

    Returns:
        Tuple[Optional[RunState], bool]: The stored state, or None if no usable
        state exists, and whether the state file exists.
    """
    if not os.path.exists(state_file_path):
        logger.info(f"No run state found at '{state_file_path}'. This is treated as a first run.")
        return None, False
    try:
        with open(state_file_path, 'r', encoding='utf-8') as f:
            payload = json.load(f)
        jsonschema.validate(instance=payload, schema=RUN_STATE_SCHEMA)
    except (OSError, UnicodeDecodeError, json.JSONDecodeError) as read_exc:
        logger.warning(f"Could not read run state '{state_file_path}': {read_exc}. "
                       f"Every locale will be translated in full.")
        return None, True
    except jsonschema.ValidationError as schema_exc:
        logger.warning(f"Run state '{state_file_path}' is malformed: {schema_exc.message}. "
                       f"Every locale will be translated in full.")
        return None, True
    state = RunState(
        last_synchronized_revision=payload["last_synchronized_revision"],
        updated_at=payload.get("updated_at")
    )
    return state, True


def load_run_state(state_file_path: str) -> Optional[RunState]:
    """Load the run state, or None when there is no usable state file."""
    return read_run_state(state_file_path)[0]


def save_run_state(state_file_path: str, revision: str) -> RunState:
    """
    Persist ``revision`` as the last synchronized revision.

    The file is replaced atomically so a crash never leaves a half-written state.

    Raises:
        StatePersistenceError: If the state cannot be written.
    """
    state = RunState(last_synchronized_revision=revision, updated_at=_utc_timestamp())
    payload = {
        "last_synchronized_revision": state.last_synchronized_revision,
        "updated_at": state.updated_at
    }
    state_dir = os.path.dirname(os.path.abspath(state_file_path))
    temp_file_path = None
    try:
        os.makedirs(state_dir, exist_ok=True)
        with tempfile.NamedTemporaryFile(mode='w', delete=False, dir=state_dir, suffix='.tmp', encoding='utf-8') as temp_f:
            temp_file_path = temp_f.name
            json.dump(payload, temp_f, indent=2)
            temp_f.write('\n')
        os.replace(temp_file_path, state_file_path)
    except OSError as e:
        if temp_file_path and os.path.exists(temp_file_path):
            os.remove(temp_file_path)
        raise StatePersistenceError(f"Could not write run state '{state_file_path}': {e}") from e
    logger.info(f"Recorded revision '{revision}' as last synchronized in '{state_file_path}'.")
    return state


def should_persist_state(any_locale_changed: bool, previous_state: Optional[RunState]) -> bool:
    """A run records its revision when it changed a locale, or to set the baseline on a first run."""
    return any_locale_changed or previous_state is None
