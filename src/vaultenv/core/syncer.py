"""
Synchronization of .env variables into a provider Secure Note.

Key features:
- Create the item when it does not exist, otherwise edit it in place
- Field diff on update: stale labels deleted, existing field ids kept
- Confirmation before creating a vault or overwriting an item
- Read-only planning so --dry-run can show exactly what would change
"""

from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional

from . import errors
from .errors import OperationCancelled, ProviderCommandError
from .lexer import EnvVariable
from .provider import FieldSpec, ProviderClient, RemoteItem


ConfirmFn = Callable[[str], bool]

CREATED = "created"
UPDATED = "updated"


@dataclass
class FieldDiff:
    """Fields to delete and to (re)write in a single edit."""
    delete: List[str] = field(default_factory=list)
    upsert: List[FieldSpec] = field(default_factory=list)

    @property
    def kept(self) -> List[str]:
        """Labels that already exist and keep their field id."""
        return [spec.label for spec in self.upsert if spec.id]

    @property
    def added(self) -> List[str]:
        return [spec.label for spec in self.upsert if not spec.id]


@dataclass
class SyncPlan:
    """What a push would do, computed without changing anything."""
    vault: str
    title: str
    vault_exists: bool
    fields: List[FieldSpec]
    item: Optional[RemoteItem] = None
    diff: Optional[FieldDiff] = None

    @property
    def action(self) -> str:
        return UPDATED if self.item is not None else CREATED


@dataclass
class SyncResult:
    """Outcome of a push."""
    action: str
    item: RemoteItem
    vault_created: bool = False

    @property
    def field_ids(self) -> Dict[str, str]:
        return self.item.field_ids


def desired_fields(variables: List[EnvVariable], concealed: bool) -> List[FieldSpec]:
    """
    One field per distinct key.

    Keys keep the position of their first occurrence; the last value wins.

    Args:
        variables: Parsed variables, possibly with repeated keys
        concealed: Store values as concealed (password) fields

    Returns:
        Ordered list of FieldSpec
    """
    values: Dict[str, str] = {}
    for variable in variables:
        values[variable.key] = variable.value
    return [FieldSpec(label=key, value=value, concealed=concealed) for key, value in values.items()]


def compute_field_diff(item: RemoteItem, fields: List[FieldSpec]) -> FieldDiff:
    """
    Diff an existing item against the desired fields.

    Built-in fields are never touched. Labels present on the item but not
    desired are deleted; every desired field is written, carrying the
    existing field id when its label is already on the item.

    Args:
        item: Current item snapshot
        fields: Desired fields

    Returns:
        FieldDiff
    """
    existing = item.field_ids
    desired = {spec.label for spec in fields}

    delete = [label for label in existing if label not in desired]
    upsert = [
        FieldSpec(label=spec.label, value=spec.value, concealed=spec.concealed, id=existing.get(spec.label))
        for spec in fields
    ]
    return FieldDiff(delete=delete, upsert=upsert)


def ensure_provider_ready(provider: ProviderClient) -> None:
    """
    Check that the provider CLI is installed and signed in.

    Tries one interactive sign-in when there is no session.

    Raises:
        VaultEnvError: PROVIDER_CLI_MISSING or PROVIDER_AUTH_FAILED
    """
    if not provider.is_installed():
        raise errors.provider_cli_missing()

    if provider.is_signed_in():
        return

    if not provider.sign_in() or not provider.is_signed_in():
        raise errors.provider_auth_failed()


class Synchronizer:
    """
    Pushes variables into a provider item.

    The flow is ensure_ready() -> plan() -> apply(). Confirmation prompts go
    through the confirm callable; with force=True they are skipped.
    """

    def __init__(self, provider: ProviderClient, confirm: Optional[ConfirmFn] = None, force: bool = False):
        self.provider = provider
        self.confirm = confirm or (lambda message: True)
        self.force = force

    def ensure_ready(self) -> None:
        ensure_provider_ready(self.provider)

    def find_item(self, vault: str, title: str) -> Optional[str]:
        """Id of the item whose title matches exactly, if any."""
        for summary in self.provider.list_items(vault):
            if summary.title == title:
                return summary.id
        return None

    def plan(self, vault: str, title: str, variables: List[EnvVariable], concealed: bool = False) -> SyncPlan:
        """
        Work out what a push would do without changing anything.

        Raises:
            VaultEnvError: ITEM_UPDATE_FAILED if the existing item cannot be read
        """
        fields = desired_fields(variables, concealed)
        vault_exists = any(v.name == vault for v in self.provider.list_vaults())

        plan = SyncPlan(vault=vault, title=title, vault_exists=vault_exists, fields=fields)
        if not vault_exists:
            return plan

        item_id = self.find_item(vault, title)
        if item_id is None:
            return plan

        try:
            plan.item = self.provider.get_item(vault, item_id)
        except ProviderCommandError as exc:
            raise errors.item_update_failed(title, exc.diagnostic) from exc
        plan.diff = compute_field_diff(plan.item, fields)
        return plan

    def _confirm_or_cancel(self, message: str, hint: Optional[str] = None) -> None:
        if self.force:
            return
        if not self.confirm(message):
            raise OperationCancelled(hint=hint)

    def apply(self, plan: SyncPlan) -> SyncResult:
        """
        Carry out a plan.

        Raises:
            OperationCancelled: a confirmation was declined
            VaultEnvError: VAULT_CREATE_FAILED, ITEM_CREATE_FAILED or ITEM_UPDATE_FAILED
        """
        vault_created = False
        if not plan.vault_exists:
            self._confirm_or_cancel(
                f'Vault "{plan.vault}" does not exist. Create it?',
                hint='Run "op vault list" to see available vaults',
            )
            try:
                self.provider.create_vault(plan.vault)
            except ProviderCommandError as exc:
                raise errors.vault_create_failed(plan.vault, exc.diagnostic) from exc
            vault_created = True

        if plan.item is None:
            try:
                item = self.provider.create_item(plan.vault, plan.title, plan.fields)
            except ProviderCommandError as exc:
                raise errors.item_create_failed(plan.title, exc.diagnostic) from exc
            return SyncResult(action=CREATED, item=item, vault_created=vault_created)

        self._confirm_or_cancel(f'Item "{plan.title}" already exists in vault "{plan.vault}". Update it?')
        diff = plan.diff or compute_field_diff(plan.item, plan.fields)
        try:
            item = self.provider.edit_item(plan.item, diff.delete, diff.upsert)
        except ProviderCommandError as exc:
            raise errors.item_update_failed(plan.title, exc.diagnostic) from exc
        return SyncResult(action=UPDATED, item=item)

    def push(self, vault: str, title: str, variables: List[EnvVariable], concealed: bool = False) -> SyncResult:
        """Plan and apply in one step."""
        return self.apply(self.plan(vault, title, variables, concealed))
