"""Process-scoped identifiers for task log rows.

The task log CSV has no id column, so parsing it always mints new ids. This
cache remembers which ids were handed out for a given file content, keyed by
file path and a digest of the exact text, so repeated reads inside one process
return the same ids until the file changes. Ids are not persisted; a new
process (or ``clear()``) starts over.
"""

import hashlib
from typing import Sequence


def content_digest(content: str) -> str:
    return hashlib.sha256(content.encode("utf-8")).hexdigest()


class EntryIdentityCache:
    def __init__(self) -> None:
        self._entries: dict[str, tuple[str, list[str]]] = {}

    def assign(self, key: str, content: str, fresh_ids: Sequence[str]) -> list[str]:
        """Return the ids for the rows of ``content``.

        Reuses the remembered ids when ``content`` is exactly what was last
        seen under ``key``; otherwise adopts ``fresh_ids`` and remembers them.
        """
        digest = content_digest(content)
        cached = self._entries.get(key)
        if (
            cached is not None
            and cached[0] == digest
            and len(cached[1]) == len(fresh_ids)
        ):
            return list(cached[1])
        self._entries[key] = (digest, list(fresh_ids))
        return list(fresh_ids)

    def remember(self, key: str, content: str, ids: Sequence[str]) -> None:
        self._entries[key] = (content_digest(content), list(ids))

    def forget(self, key: str) -> None:
        self._entries.pop(key, None)

    def clear(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)
