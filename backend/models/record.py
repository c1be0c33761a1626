"""Record Model

A record is a mapping of field key to value plus a client-generated
identity. It is editable while a batch is being assembled and frozen
once the dispatcher starts working on it.
"""
from __future__ import annotations

from collections.abc import MutableMapping
from typing import Any, Iterator, Mapping
from uuid import uuid4

from core.errors import AppErrorException, state_conflict


class Record(MutableMapping):
    """Field values of one record to be created remotely."""

    __slots__ = ("client_id", "server_id", "_values", "_frozen")

    def __init__(
        self,
        values: Mapping[str, Any] | None = None,
        *,
        client_id: str | None = None,
        **fields: Any,
    ):
        self.client_id = client_id or uuid4().hex
        self.server_id: str | None = None
        self._values: dict[str, Any] = {**(values or {}), **fields}
        self._frozen = False

    @property
    def frozen(self) -> bool:
        return self._frozen

    def freeze(self) -> Record:
        """Make the field values read-only. Idempotent."""
        self._frozen = True
        return self

    def _ensure_mutable(self) -> None:
        if self._frozen:
            raise AppErrorException(state_conflict(
                f"Record {self.client_id}", "frozen", "editable", origin="record",
            ).error)

    def __getitem__(self, key: str) -> Any:
        return self._values[key]

    def __setitem__(self, key: str, value: Any) -> None:
        self._ensure_mutable()
        self._values[key] = value

    def __delitem__(self, key: str) -> None:
        self._ensure_mutable()
        del self._values[key]

    def __iter__(self) -> Iterator[str]:
        return iter(self._values)

    def __len__(self) -> int:
        return len(self._values)

    def to_dict(self) -> dict[str, Any]:
        """Plain copy of the field values."""
        return dict(self._values)

    def __repr__(self) -> str:
        state = " frozen" if self._frozen else ""
        return f"<Record {self.client_id}{state} {self._values!r}>"
