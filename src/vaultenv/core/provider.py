"""
Secret provider clients.

ProviderClient is the narrow set of vault operations the synchronizer and
the pull command need. OnePasswordClient implements it by shelling out to
the 1Password CLI (`op`), piping item JSON on stdin for create and edit so
field ids survive an update.
"""

import json
import os
import shlex
import subprocess
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from rich.console import Console

from .errors import ProviderCommandError


DEFAULT_OP_BIN = "op"
SECURE_NOTE = "SECURE_NOTE"
CONCEALED = "CONCEALED"
STRING = "STRING"


@dataclass(frozen=True)
class Vault:
    id: str
    name: str


@dataclass(frozen=True)
class ItemSummary:
    id: str
    title: str


@dataclass(frozen=True)
class RemoteField:
    """A field on a provider item."""
    id: str
    label: str
    type: str = STRING
    purpose: Optional[str] = None  # Set on the provider's built-in fields

    @property
    def is_builtin(self) -> bool:
        return bool(self.purpose)


@dataclass
class RemoteItem:
    """Snapshot of a provider item as returned by get/create/edit."""
    id: str
    title: str
    vault_name: str
    vault_id: str
    fields: List[RemoteField] = field(default_factory=list)
    raw: Dict[str, Any] = field(default_factory=dict, repr=False)

    @property
    def field_ids(self) -> Dict[str, str]:
        """Label to field id for every non built-in field; the first field wins on a repeated label."""
        ids: Dict[str, str] = {}
        for f in self.fields:
            if not f.is_builtin and f.label and f.id:
                ids.setdefault(f.label, f.id)
        return ids


@dataclass(frozen=True)
class FieldSpec:
    """A field as it should exist on the item after a push."""
    label: str
    value: str
    concealed: bool = False
    id: Optional[str] = None  # Existing field id to keep on update

    @property
    def type(self) -> str:
        return CONCEALED if self.concealed else STRING


class ProviderClient(ABC):
    """Vault operations needed by push and pull."""

    reference_scheme = "ref"

    @abstractmethod
    def is_installed(self) -> bool:
        """Whether the provider CLI is available."""

    @abstractmethod
    def is_signed_in(self) -> bool:
        """Whether there is an authenticated session."""

    @abstractmethod
    def sign_in(self) -> bool:
        """Run the interactive sign-in once."""

    @abstractmethod
    def list_vaults(self) -> List[Vault]:
        """All vaults visible to the account."""

    @abstractmethod
    def create_vault(self, name: str) -> None:
        """Create a vault; raises ProviderCommandError on failure."""

    @abstractmethod
    def list_items(self, vault: str) -> List[ItemSummary]:
        """Items in a vault."""

    @abstractmethod
    def get_item(self, vault: str, item_id: str) -> RemoteItem:
        """Full item with its fields."""

    @abstractmethod
    def create_item(self, vault: str, title: str, fields: List[FieldSpec]) -> RemoteItem:
        """Create a Secure Note carrying fields."""

    @abstractmethod
    def edit_item(self, item: RemoteItem, delete: List[str], upsert: List[FieldSpec]) -> RemoteItem:
        """Delete fields by label and write upserts in one request."""

    @abstractmethod
    def inject(self, template_path: str) -> str:
        """Resolve every reference in a template file and return the text."""


def item_from_json(data: Dict[str, Any], vault: str = "") -> RemoteItem:
    """Build a RemoteItem from provider item JSON."""
    vault_data = data.get("vault") or {}
    fields = [
        RemoteField(
            id=f.get("id", ""),
            label=f.get("label", ""),
            type=f.get("type", STRING),
            purpose=f.get("purpose"),
        )
        for f in data.get("fields") or []
    ]
    return RemoteItem(
        id=data.get("id", ""),
        title=data.get("title", ""),
        vault_name=vault_data.get("name") or vault,
        vault_id=vault_data.get("id", ""),
        fields=fields,
        raw=data,
    )


def _field_json(spec: FieldSpec, base: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    payload = dict(base or {})
    if spec.id:
        payload["id"] = spec.id
    payload["type"] = spec.type
    payload["label"] = spec.label
    payload["value"] = spec.value
    return payload


def build_edit_payload(item: RemoteItem, delete: List[str], upsert: List[FieldSpec]) -> Dict[str, Any]:
    """
    Full item JSON for `op item edit`.

    Built-in fields are kept as they are, deleted labels are left out and
    upserted fields replace their existing entry in place (keeping its id)
    or are appended. Only the first field with a given label is kept.
    """
    deleted = set(delete)
    pending = {spec.label: spec for spec in upsert}
    seen = set()
    fields: List[Dict[str, Any]] = []

    for raw_field in item.raw.get("fields") or []:
        label = raw_field.get("label", "")
        if raw_field.get("purpose"):
            fields.append(raw_field)
            continue
        if label and label in seen:
            continue
        seen.add(label)
        if label in deleted:
            continue
        if label in pending:
            fields.append(_field_json(pending.pop(label), raw_field))
        else:
            fields.append(raw_field)

    for spec in upsert:
        if spec.label in pending:
            fields.append(_field_json(spec))

    payload = dict(item.raw)
    payload["fields"] = fields
    return payload


class OnePasswordClient(ProviderClient):
    """ProviderClient backed by the 1Password CLI."""

    reference_scheme = "op"

    def __init__(self, binary: Optional[str] = None, verbose: bool = False, console: Optional[Console] = None):
        """
        Args:
            binary: Path to the op binary (defaults to $VAULTENV_OP_BIN or "op")
            verbose: Echo every op command
            console: Console used for verbose output
        """
        self.binary = binary or os.getenv("VAULTENV_OP_BIN") or DEFAULT_OP_BIN
        self.verbose = verbose
        self.console = console or Console(stderr=True)

    def _echo(self, args: List[str], piped: bool) -> None:
        command = shlex.join([self.binary, *args])
        prefix = "echo '...' | " if piped else ""
        self.console.print(f"[dim]$ {prefix}{command}[/dim]", highlight=False, markup=True)

    def _run(self, args: List[str], stdin: Optional[str] = None, interactive: bool = False) -> subprocess.CompletedProcess:
        """Run op and return the completed process; a missing binary exits 127."""
        if self.verbose:
            self._echo(args, stdin is not None)

        try:
            result = subprocess.run(
                [self.binary, *args],
                input=stdin,
                capture_output=not interactive,
                text=True,
            )
        except (FileNotFoundError, PermissionError) as exc:
            return subprocess.CompletedProcess([self.binary, *args], 127, "", str(exc))

        if self.verbose and result.stderr:
            self.console.print(f"[dim]{result.stderr.rstrip()}[/dim]", highlight=False, markup=False)
        return result

    def _run_json(self, args: List[str], stdin: Optional[str] = None) -> Any:
        result = self._run(args, stdin)
        if result.returncode != 0:
            raise ProviderCommandError(f"op {' '.join(args[:2])} failed", result.stderr or "")
        try:
            return json.loads(result.stdout)
        except json.JSONDecodeError as exc:
            raise ProviderCommandError("op returned invalid JSON", result.stdout or "") from exc

    def is_installed(self) -> bool:
        return self._run(["--version"]).returncode == 0

    def is_signed_in(self) -> bool:
        return self._run(["whoami", "--format", "json"]).returncode == 0

    def sign_in(self) -> bool:
        return self._run(["signin"], interactive=True).returncode == 0

    def list_vaults(self) -> List[Vault]:
        try:
            data = self._run_json(["vault", "list", "--format", "json"])
        except ProviderCommandError:
            return []
        return [Vault(id=v.get("id", ""), name=v.get("name", "")) for v in data or []]

    def create_vault(self, name: str) -> None:
        result = self._run(["vault", "create", name])
        if result.returncode != 0:
            raise ProviderCommandError(f"op vault create {name} failed", result.stderr or "")

    def list_items(self, vault: str) -> List[ItemSummary]:
        try:
            data = self._run_json(["item", "list", "--vault", vault, "--format", "json"])
        except ProviderCommandError:
            return []
        return [ItemSummary(id=i.get("id", ""), title=i.get("title", "")) for i in data or []]

    def get_item(self, vault: str, item_id: str) -> RemoteItem:
        data = self._run_json(["item", "get", item_id, "--vault", vault, "--format", "json"])
        return item_from_json(data, vault)

    def create_item(self, vault: str, title: str, fields: List[FieldSpec]) -> RemoteItem:
        template = {
            "title": title,
            "vault": {"name": vault},
            "category": SECURE_NOTE,
            "fields": [_field_json(spec) for spec in fields],
        }
        data = self._run_json(
            ["item", "create", "--vault", vault, "--format", "json"],
            stdin=json.dumps(template),
        )
        return item_from_json(data, vault)

    def edit_item(self, item: RemoteItem, delete: List[str], upsert: List[FieldSpec]) -> RemoteItem:
        payload = build_edit_payload(item, delete, upsert)
        data = self._run_json(
            ["item", "edit", item.id, "--vault", item.vault_name, "--format", "json"],
            stdin=json.dumps(payload),
        )
        return item_from_json(data, item.vault_name)

    def inject(self, template_path: str) -> str:
        result = self._run(["inject", "-i", template_path])
        if result.returncode != 0:
            raise ProviderCommandError("op inject failed", result.stderr or "")
        return result.stdout
