"""
.tpl template generation and reading.

A template mirrors the .env it came from line for line: comments and blank
lines are copied verbatim and every variable becomes a reference to the
vault field holding its value:

    DATABASE_URL=op://<vault id>/<item id>/<field id>

Ids are used rather than names so templates keep working when an item or
field is renamed.
"""

import re
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Union

from . import errors
from .lexer import EnvLine, LineType


DEFAULT_SCHEME = "ref"
TEMPLATE_SUFFIX = ".tpl"
REFERENCE_PATTERN = re.compile(
    r"^\s*(?:export\s+)?([A-Za-z_][A-Za-z0-9_]*)=([a-z][a-z0-9+.-]*)://([^/\s]+)/([^/\s]+)/([^/\s]+)\s*$"
)


@dataclass(frozen=True)
class TemplateReference:
    """A variable reference read back from a template."""
    key: str
    scheme: str
    vault_id: str
    item_id: str
    field_id: str
    line: int

    @property
    def uri(self) -> str:
        return build_reference(self.vault_id, self.item_id, self.field_id, self.scheme)


def build_reference(vault_id: str, item_id: str, field_id: str, scheme: str = DEFAULT_SCHEME) -> str:
    return f"{scheme}://{vault_id}/{item_id}/{field_id}"


def generate_template(
    vault_id: str,
    item_id: str,
    lines: List[EnvLine],
    field_ids: Dict[str, str],
    scheme: str = DEFAULT_SCHEME,
) -> str:
    """
    Generate template content from a parsed .env structure.

    Args:
        vault_id: Vault holding the item
        item_id: Item holding the fields
        lines: Structural lines from a ParseResult
        field_ids: Field label to field id, as returned by the provider
        scheme: Reference URI scheme understood by the provider

    Returns:
        Template text

    Raises:
        VaultEnvError: MISSING_FIELD_ID if a variable has no field id
    """
    out = []
    for line in lines:
        if line.type == LineType.EMPTY:
            out.append("")
        elif line.type == LineType.COMMENT:
            out.append(line.content)
        else:
            field_id = field_ids.get(line.key)
            if not field_id:
                raise errors.missing_field_id(line.key)
            export_prefix = "export " if line.has_export else ""
            out.append(f"{export_prefix}{line.key}={build_reference(vault_id, item_id, field_id, scheme)}")
    return "\n".join(out)


def parse_template(content: str) -> List[TemplateReference]:
    """
    Read the references out of a template.

    Lines that are not KEY=scheme://vault/item/field are skipped.
    """
    references = []
    for number, line in enumerate(content.split("\n"), start=1):
        match = REFERENCE_PATTERN.match(line.rstrip("\r"))
        if match:
            key, scheme, vault_id, item_id, field_id = match.groups()
            references.append(TemplateReference(key, scheme, vault_id, item_id, field_id, number))
    return references


def read_template(path: Union[str, Path]) -> str:
    """
    Read a template file.

    Raises:
        VaultEnvError: TEMPLATE_NOT_FOUND or FILE_READ_FAILED
    """
    template_path = Path(path)
    if not template_path.is_file():
        raise errors.template_not_found(str(path))
    try:
        return template_path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as exc:
        raise errors.file_read_failed(str(path), str(exc)) from exc


def write_text(content: str, path: Union[str, Path]) -> None:
    """Write UTF-8 text; raises VaultEnvError FILE_WRITE_FAILED on OS errors."""
    try:
        Path(path).write_text(content, encoding="utf-8")
    except OSError as exc:
        raise errors.file_write_failed(str(path), str(exc)) from exc


def check_writable(path: Union[str, Path]) -> None:
    """Fail early when path cannot be written as a file."""
    target = Path(path)
    parent = target.parent
    if target.is_dir():
        raise errors.file_write_failed(str(path), "Path is a directory")
    if not parent.is_dir():
        raise errors.file_write_failed(str(path), f"No such directory: {parent}")


def write_template(content: str, path: Union[str, Path]) -> None:
    write_text(content, path)


def template_path_for(env_path: Union[str, Path]) -> Path:
    """`.env.production` -> `.env.production.tpl` in the same directory."""
    env_path = Path(env_path)
    return env_path.with_name(env_path.name + TEMPLATE_SUFFIX)


def output_path_for(template_path: Union[str, Path]) -> Path:
    """
    Derive the .env path for a template.

    `.env.tpl` -> `.env`, `.env.local.tpl` -> `.env.local`,
    `secrets` -> `secrets.env`.
    """
    template_path = Path(template_path)
    name = template_path.name
    if name.endswith(TEMPLATE_SUFFIX) and len(name) > len(TEMPLATE_SUFFIX):
        return template_path.with_name(name[:-len(TEMPLATE_SUFFIX)])
    return template_path.with_name(name + ".env")


def usage_instructions(template_path: Union[str, Path]) -> str:
    """Next-step hints shown after a push."""
    name = Path(template_path).name
    return "\n".join([
        f"Commit [cyan]{name}[/cyan]; it holds references, not secrets.",
        "",
        "Regenerate the .env file on any machine with:",
        f"  [cyan]vaultenv pull {name}[/cyan]",
        "",
        "Or run a command with secrets injected:",
        f"  [cyan]op run --env-file {name} -- <command>[/cyan]",
    ])
