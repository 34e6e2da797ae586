"""
Shared fixtures: an in-memory provider and update-check isolation.
"""

import itertools
import re
from pathlib import Path
from typing import Dict, List, Optional, Tuple

import pytest

from vaultenv.core.errors import ProviderCommandError
from vaultenv.core.provider import (
    FieldSpec,
    ItemSummary,
    ProviderClient,
    RemoteField,
    RemoteItem,
    Vault,
)


REFERENCE = re.compile(r"ref://([^/\s]+)/([^/\s]+)/([^/\s]+)")


class FakeProvider(ProviderClient):
    """
    In-memory ProviderClient.

    Field ids behave like the real provider: an upsert without an id gets a
    fresh one, even when a field with the same label already existed.
    """

    reference_scheme = "ref"

    def __init__(
        self,
        vaults: Tuple[str, ...] = ("Personal",),
        installed: bool = True,
        signed_in: bool = True,
        can_sign_in: bool = True,
        fail: Optional[Dict[str, str]] = None,
    ):
        self.installed = installed
        self.signed_in = signed_in
        self.can_sign_in = can_sign_in
        self.fail = fail or {}
        self.vaults: Dict[str, Vault] = {}
        self.items: Dict[str, RemoteItem] = {}
        self.values: Dict[Tuple[str, str], str] = {}
        self.calls: List[Tuple[str, tuple]] = []
        self._ids = itertools.count(1)
        for name in vaults:
            self.vaults[name] = Vault(id=f"vault-{name.lower()}", name=name)

    def _record(self, name: str, *args) -> None:
        self.calls.append((name, args))
        if name in self.fail:
            raise ProviderCommandError(f"{name} failed", self.fail[name])

    def _new_id(self, prefix: str) -> str:
        return f"{prefix}{next(self._ids)}"

    @property
    def call_names(self) -> List[str]:
        return [name for name, _ in self.calls]

    def calls_to(self, name: str) -> List[tuple]:
        return [args for call, args in self.calls if call == name]

    def add_item(self, vault: str, title: str, values: Dict[str, str]) -> RemoteItem:
        """Seed an existing item without recording a call."""
        item_id = self._new_id("item")
        fields = [RemoteField(id="notesPlain", label="notesPlain", type="STRING", purpose="NOTES")]
        for label, value in values.items():
            field_id = self._new_id("field")
            fields.append(RemoteField(id=field_id, label=label))
            self.values[(item_id, field_id)] = value
        item = RemoteItem(item_id, title, vault, self.vaults[vault].id, fields)
        self.items[item_id] = item
        return item

    def value_of(self, item_id: str, label: str) -> str:
        item = self.items[item_id]
        return self.values[(item_id, item.field_ids[label])]

    def is_installed(self) -> bool:
        self._record("is_installed")
        return self.installed

    def is_signed_in(self) -> bool:
        self._record("is_signed_in")
        return self.signed_in

    def sign_in(self) -> bool:
        self._record("sign_in")
        if self.can_sign_in:
            self.signed_in = True
        return self.can_sign_in

    def list_vaults(self) -> List[Vault]:
        self._record("list_vaults")
        return list(self.vaults.values())

    def create_vault(self, name: str) -> None:
        self._record("create_vault", name)
        self.vaults[name] = Vault(id=f"vault-{name.lower()}", name=name)

    def list_items(self, vault: str) -> List[ItemSummary]:
        self._record("list_items", vault)
        return [ItemSummary(i.id, i.title) for i in self.items.values() if i.vault_name == vault]

    def get_item(self, vault: str, item_id: str) -> RemoteItem:
        self._record("get_item", vault, item_id)
        item = self.items[item_id]
        return RemoteItem(item.id, item.title, item.vault_name, item.vault_id, list(item.fields))

    def create_item(self, vault: str, title: str, fields: List[FieldSpec]) -> RemoteItem:
        self._record("create_item", vault, title, list(fields))
        item_id = self._new_id("item")
        remote_fields = [RemoteField(id="notesPlain", label="notesPlain", type="STRING", purpose="NOTES")]
        for spec in fields:
            field_id = self._new_id("field")
            remote_fields.append(RemoteField(id=field_id, label=spec.label, type=spec.type))
            self.values[(item_id, field_id)] = spec.value
        item = RemoteItem(item_id, title, vault, self.vaults[vault].id, remote_fields)
        self.items[item_id] = item
        return item

    def edit_item(self, item: RemoteItem, delete: List[str], upsert: List[FieldSpec]) -> RemoteItem:
        self._record("edit_item", item.id, list(delete), list(upsert))
        current = self.items[item.id]
        pending = {spec.label: spec for spec in upsert}
        fields: List[RemoteField] = []

        for remote in current.fields:
            if remote.is_builtin:
                fields.append(remote)
            elif remote.label in delete:
                continue
            elif remote.label in pending:
                spec = pending.pop(remote.label)
                field_id = spec.id or self._new_id("field")
                fields.append(RemoteField(id=field_id, label=spec.label, type=spec.type))
                self.values[(item.id, field_id)] = spec.value
            else:
                fields.append(remote)

        for spec in upsert:
            if spec.label in pending:
                field_id = spec.id or self._new_id("field")
                fields.append(RemoteField(id=field_id, label=spec.label, type=spec.type))
                self.values[(item.id, field_id)] = spec.value

        updated = RemoteItem(item.id, current.title, current.vault_name, current.vault_id, fields)
        self.items[item.id] = updated
        return updated

    def inject(self, template_path: str) -> str:
        self._record("inject", template_path)
        content = Path(template_path).read_text(encoding="utf-8")
        return REFERENCE.sub(lambda m: self.values[(m.group(2), m.group(3))], content)


@pytest.fixture
def provider():
    return FakeProvider()


@pytest.fixture(autouse=True)
def isolate_update_check(monkeypatch, tmp_path):
    """Keep tests away from PyPI and the real ~/.vaultenv cache."""
    monkeypatch.setenv("VAULTENV_NO_UPDATE_CHECK", "1")
    monkeypatch.setenv("VAULTENV_CACHE_DIR", str(tmp_path / "cache"))
