"""
Error taxonomy for vaultenv.

Every fatal condition is a VaultEnvError tagged with an ErrorKind. The CLI
prints the message, the provider diagnostic and the suggestion, then exits 1.
Declining a confirmation prompt raises OperationCancelled, which is not an
error and exits 0.
"""

from enum import Enum
from typing import Optional


OP_INSTALL_URL = "https://developer.1password.com/docs/cli/get-started/"


class ErrorKind(Enum):
    """Closed set of fatal error kinds."""
    ENV_FILE_NOT_FOUND = "env_file_not_found"
    ENV_FILE_EMPTY = "env_file_empty"
    TEMPLATE_NOT_FOUND = "template_not_found"
    FILE_READ_FAILED = "file_read_failed"
    FILE_WRITE_FAILED = "file_write_failed"
    PROVIDER_CLI_MISSING = "provider_cli_missing"
    PROVIDER_AUTH_FAILED = "provider_auth_failed"
    VAULT_CREATE_FAILED = "vault_create_failed"
    ITEM_CREATE_FAILED = "item_create_failed"
    ITEM_UPDATE_FAILED = "item_update_failed"
    INJECT_FAILED = "inject_failed"
    MISSING_FIELD_ID = "missing_field_id"


class VaultEnvError(Exception):
    """A fatal error with an optional suggestion and provider diagnostic."""

    def __init__(
        self,
        kind: ErrorKind,
        message: str,
        suggestion: Optional[str] = None,
        diagnostic: Optional[str] = None,
    ):
        super().__init__(message)
        self.kind = kind
        self.message = message
        self.suggestion = suggestion
        self.diagnostic = diagnostic

    @property
    def is_defect(self) -> bool:
        """True for internal-consistency failures rather than user errors."""
        return self.kind == ErrorKind.MISSING_FIELD_ID

    def __repr__(self):
        return f"VaultEnvError({self.kind.value}, {self.message!r})"


class OperationCancelled(Exception):
    """The user declined a confirmation prompt."""

    def __init__(self, message: str = "Operation cancelled", hint: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.hint = hint


class ProviderCommandError(Exception):
    """A provider CLI call exited non-zero or returned unusable output."""

    def __init__(self, message: str, stderr: str = ""):
        super().__init__(message)
        self.stderr = stderr

    @property
    def diagnostic(self) -> str:
        return (self.stderr or str(self)).strip()


def env_file_not_found(path: str) -> VaultEnvError:
    return VaultEnvError(
        ErrorKind.ENV_FILE_NOT_FOUND,
        f"File not found: {path}",
        suggestion="Check that the file path is correct",
    )


def env_file_empty(path: str) -> VaultEnvError:
    return VaultEnvError(
        ErrorKind.ENV_FILE_EMPTY,
        f"No valid environment variables found in {path}",
        suggestion="Ensure the file contains KEY=value pairs",
    )


def template_not_found(path: str) -> VaultEnvError:
    return VaultEnvError(
        ErrorKind.TEMPLATE_NOT_FOUND,
        f"Template file not found: {path}",
        suggestion="Ensure the file exists and the path is correct",
    )


def file_read_failed(path: str, diagnostic: str) -> VaultEnvError:
    return VaultEnvError(
        ErrorKind.FILE_READ_FAILED,
        f"Could not read {path}",
        suggestion="Check that the file is readable and saved as UTF-8",
        diagnostic=diagnostic,
    )


def file_write_failed(path: str, diagnostic: str) -> VaultEnvError:
    return VaultEnvError(
        ErrorKind.FILE_WRITE_FAILED,
        f"Could not write {path}",
        suggestion="Check that the directory exists and is writable",
        diagnostic=diagnostic,
    )


def provider_cli_missing() -> VaultEnvError:
    return VaultEnvError(
        ErrorKind.PROVIDER_CLI_MISSING,
        "1Password CLI (op) is not installed",
        suggestion=f"Install it from {OP_INSTALL_URL}",
    )


def provider_auth_failed() -> VaultEnvError:
    return VaultEnvError(
        ErrorKind.PROVIDER_AUTH_FAILED,
        "Not signed in to 1Password CLI",
        suggestion='Run "op signin" to authenticate',
    )


def vault_create_failed(vault: str, diagnostic: str) -> VaultEnvError:
    return VaultEnvError(
        ErrorKind.VAULT_CREATE_FAILED,
        f'Failed to create vault "{vault}"',
        suggestion='Run "op vault list" to see available vaults',
        diagnostic=diagnostic,
    )


def item_create_failed(title: str, diagnostic: str) -> VaultEnvError:
    return VaultEnvError(
        ErrorKind.ITEM_CREATE_FAILED,
        f'Failed to create 1Password item "{title}"',
        diagnostic=diagnostic,
    )


def item_update_failed(title: str, diagnostic: str) -> VaultEnvError:
    return VaultEnvError(
        ErrorKind.ITEM_UPDATE_FAILED,
        f'Failed to update 1Password item "{title}"',
        diagnostic=diagnostic,
    )


def inject_failed(diagnostic: str) -> VaultEnvError:
    return VaultEnvError(
        ErrorKind.INJECT_FAILED,
        "Failed to inject secrets from 1Password",
        suggestion="Check that every reference in the template still exists",
        diagnostic=diagnostic,
    )


def missing_field_id(key: str) -> VaultEnvError:
    return VaultEnvError(
        ErrorKind.MISSING_FIELD_ID,
        f"No field id returned for variable {key}",
        suggestion="This is a bug in vaultenv; please report it",
    )
