import os
from typing import Dict, List, Optional, Tuple

from locale_sync.app_config import LocaleDescriptor

FRENCH = LocaleDescriptor(folder="fr-fr", code="fr", name="French")
SPANISH = LocaleDescriptor(folder="es-es", code="es", name="Spanish")


class FakeTranslator:
    """Deterministic translator: prefixes the text with the language name and records every call."""

    def __init__(self, failing_texts=()):
        self.calls: List[Tuple[str, str]] = []
        self.failing_texts = set(failing_texts)

    async def translate(self, text: str, language_name: str) -> str:
        self.calls.append((text, language_name))
        if text in self.failing_texts:
            raise RuntimeError(f"backend rejected '{text}'")
        return f"{language_name}: {text}"


class InMemoryRevisions:
    """Revision content provider backed by a dict of revision -> file content."""

    def __init__(self, contents: Optional[Dict[str, str]] = None):
        self.contents = dict(contents or {})
        self.requests: List[Tuple[str, Optional[str]]] = []

    def __call__(self, file_path: str, revision: Optional[str]) -> Optional[str]:
        self.requests.append((file_path, revision))
        if not revision:
            return None
        return self.contents.get(revision)


def write_text(path, content: str) -> None:
    os.makedirs(os.path.dirname(str(path)), exist_ok=True)
    with open(path, "w", encoding="utf-8") as f:
        f.write(content)


def read_text(path) -> str:
    with open(path, "r", encoding="utf-8") as f:
        return f.read()
