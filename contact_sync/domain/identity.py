"""
contact_sync/domain/identity.py

Working "already synced" state keyed by identity key.
"""

from __future__ import annotations

from typing import Iterable, Iterator


class IdentitySet:
    """
    Insertion-ordered mapping of identity key -> sink handle.

    The handle is optional: keys restored from a checkpoint carry no handle,
    keys created during the current run carry the sink's record id.
    """

    def __init__(self, keys: Iterable[str] = ()) -> None:
        self._handles: dict[str, str | None] = {}
        for key in keys:
            self._handles.setdefault(key, None)

    @classmethod
    def from_handles(cls, handles: dict[str, str | None]) -> "IdentitySet":
        identity_set = cls()
        identity_set._handles.update(handles)
        return identity_set

    def add(self, key: str, handle: str | None = None) -> None:
        if handle is not None or key not in self._handles:
            self._handles[key] = handle

    def merge(self, other: "IdentitySet | Iterable[str]") -> None:
        if isinstance(other, IdentitySet):
            for key, handle in other._handles.items():
                self.add(key, handle)
            return
        for key in other:
            self.add(key)

    def keys(self) -> list[str]:
        return list(self._handles)

    def __contains__(self, key: object) -> bool:
        return key in self._handles

    def __len__(self) -> int:
        return len(self._handles)

    def __iter__(self) -> Iterator[str]:
        return iter(self._handles)

    def __bool__(self) -> bool:
        return bool(self._handles)

    def __repr__(self) -> str:
        return f"IdentitySet(size={len(self._handles)})"
