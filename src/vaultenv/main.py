"""
vaultenv CLI - Sync .env files with 1Password

Main entry point for the vaultenv command-line tool.
"""

import functools
import sys
from pathlib import Path

import click
from rich import box
from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table

from . import __version__
from .core import errors, lexer, update
from .core.errors import OperationCancelled, ProviderCommandError, VaultEnvError
from .core.headers import prepend_header, strip_headers
from .core.provider import OnePasswordClient, ProviderClient
from .core.syncer import CREATED, SyncPlan, Synchronizer, ensure_provider_ready
from .core.template import (
    check_writable, generate_template, output_path_for, parse_template, read_template,
    template_path_for, usage_instructions, write_template, write_text,
)


console = Console()


def get_provider(verbose: bool = False) -> ProviderClient:
    """Provider used by push and pull."""
    return OnePasswordClient(verbose=verbose, console=console)


def confirm(message: str) -> bool:
    """Ask a yes/no question; no answer counts as no."""
    try:
        return click.confirm(message, default=False)
    except click.Abort:
        return False


def report_error(error: VaultEnvError) -> None:
    label = "Internal error" if error.is_defect else "Error"
    console.print(f"[red]{label}: {escape(error.message)}[/red]")
    if error.diagnostic:
        console.print(f"[dim]{escape(error.diagnostic)}[/dim]")
    if error.suggestion:
        console.print(f"[dim]Suggestion: {escape(error.suggestion)}[/dim]")


def show_update_notification() -> None:
    result = update.pending_notification()
    if result is None:
        return
    console.print()
    console.print(
        f"[yellow]Update available:[/yellow] [dim]{result.current_version}[/dim] → "
        f"[green]{result.latest_version}[/green]"
    )
    console.print("[dim]Run 'vaultenv update' to update.[/dim]")


def command_boundary(func):
    """
    Run a command and turn its outcome into an exit code.

    VaultEnvError exits 1 after printing the message, diagnostic and
    suggestion. OperationCancelled exits 0.
    """
    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        try:
            func(*args, **kwargs)
        except VaultEnvError as error:
            report_error(error)
            sys.exit(1)
        except OperationCancelled as cancelled:
            console.print(f"[yellow]{cancelled.message}[/yellow]")
            if cancelled.hint:
                console.print(f"[dim]{escape(cancelled.hint)}[/dim]")
            sys.exit(0)

        show_update_notification()

    return wrapper


def intro(command: str, dry_run: bool = False) -> None:
    banner = f"[bold cyan]vaultenv {command}[/bold cyan] [dim]v{__version__}[/dim]"
    if dry_run:
        banner += " [yellow][DRY RUN][/yellow]"
    console.print(banner)
    console.print()


def show_plan(plan: SyncPlan, secret: bool) -> None:
    """Print what a push would do."""
    if not plan.vault_exists:
        console.print(f'[yellow]Would create vault "{escape(plan.vault)}"[/yellow]')

    verb = "create" if plan.action == CREATED else "update"
    console.print(f'[yellow]Would {verb} Secure Note "{escape(plan.title)}" in vault "{escape(plan.vault)}"[/yellow]')
    console.print(f"[dim]Field type: {'password (hidden)' if secret else 'text (visible)'}[/dim]")

    table = Table(title="Planned Field Changes", box=box.ROUNDED)
    table.add_column("Field", style="cyan", no_wrap=True)
    table.add_column("Change", style="magenta")

    if plan.diff is None:
        for spec in plan.fields:
            table.add_row(spec.label, "+ create")
    else:
        for spec in plan.diff.upsert:
            table.add_row(spec.label, "~ update (id kept)" if spec.id else "+ add")
        for label in plan.diff.delete:
            table.add_row(label, "[red]- delete[/red]")

    console.print(table)


@click.group()
@click.version_option(__version__, prog_name="vaultenv")
def cli():
    """
    vaultenv - Sync .env files with 1Password
    """


@cli.command()
@click.argument('env_file', type=click.Path())
@click.argument('vault')
@click.argument('item_name')
@click.option('-o', '--output', type=click.Path(), help='Template path (default: <env_file>.tpl)')
@click.option('--dry-run', is_flag=True, help='Preview actions without making changes')
@click.option('--secret', is_flag=True, help='Store all fields as password type (hidden)')
@click.option('-f', '--force', is_flag=True, help='Skip confirmation prompts')
@click.option('--verbose', is_flag=True, help='Show op CLI commands and output')
@command_boundary
def push(env_file, vault, item_name, output, dry_run, secret, force, verbose):
    """
    Push a .env file into a 1Password Secure Note.

    Creates the item (or updates it in place, keeping field ids) and writes
    a .tpl template that references each field.
    """
    intro("push", dry_run)

    result = lexer.parse_file(env_file)
    lexer.validate(result, env_file)

    count = len(result.variables)
    console.print(f"[green]✓ Parsed {Path(env_file).name}[/green] [dim]({count} variable{'' if count == 1 else 's'})[/dim]")
    for message in result.errors:
        console.print(f"[yellow]⚠ {message}[/yellow]")
    for key in lexer.find_duplicate_keys(result.variables):
        console.print(f"[yellow]⚠ {key} is defined more than once; the last value is used[/yellow]")

    provider = get_provider(verbose)
    syncer = Synchronizer(provider, confirm=confirm, force=force)
    syncer.ensure_ready()
    console.print("[green]✓ 1Password CLI ready[/green]")

    plan = syncer.plan(vault, item_name, result.variables, concealed=secret)
    template_path = Path(output) if output else template_path_for(env_file)
    check_writable(template_path)

    if dry_run:
        show_plan(plan, secret)
        console.print(f"[yellow]Would generate template: {template_path}[/yellow]")
        console.print("\n[bold]Dry run complete. No changes made.[/bold]")
        return

    if plan.vault_exists:
        console.print(f'[green]✓ Vault "{escape(vault)}" found[/green]')

    sync = syncer.apply(plan)
    if sync.vault_created:
        console.print(f'[green]✓ Created vault "{escape(vault)}"[/green]')

    verb = "Created" if sync.action == CREATED else "Updated"
    console.print(f'[green]✓ {verb} "{escape(sync.item.title)}" in vault "{escape(sync.item.vault_name)}"[/green]')
    if plan.diff and plan.diff.delete:
        console.print(f"[dim]Removed fields: {', '.join(plan.diff.delete)}[/dim]")

    content = generate_template(
        sync.item.vault_id,
        sync.item.id,
        result.lines,
        sync.field_ids,
        scheme=provider.reference_scheme,
    )
    write_template(content, template_path)
    console.print(f"[green]✓ Generated template: {template_path}[/green]")

    console.print()
    console.print(Panel(
        usage_instructions(template_path),
        title="[bold cyan]Next steps[/bold cyan]",
        border_style="cyan",
        box=box.ROUNDED
    ))
    console.print("[bold green]✓ Done! Your secrets are now in 1Password[/bold green]")


@cli.command()
@click.argument('template_file', type=click.Path())
@click.option('-o', '--output', type=click.Path(), help='Output .env path (default: template without .tpl)')
@click.option('--dry-run', is_flag=True, help='Preview actions without making changes')
@click.option('-f', '--force', is_flag=True, help='Overwrite without prompting')
@click.option('--verbose', is_flag=True, help='Show op CLI commands and output')
@command_boundary
def pull(template_file, output, dry_run, force, verbose):
    """
    Pull secrets from 1Password into a .env file.

    Resolves every reference in TEMPLATE_FILE and writes the result with a
    fresh generated header.
    """
    intro("pull", dry_run)

    template_path = Path(template_file)
    output_path = Path(output) if output else output_path_for(template_path)

    references = parse_template(read_template(template_path))
    console.print(
        f"[green]✓ Found template: {template_path.name}[/green] "
        f"[dim]({len(references)} reference{'' if len(references) == 1 else 's'})[/dim]"
    )

    provider = get_provider(verbose)
    ensure_provider_ready(provider)
    console.print("[green]✓ 1Password CLI ready[/green]")

    if dry_run:
        action = "overwrite" if output_path.exists() else "create"
        console.print(f"[yellow]Would {action}: {output_path}[/yellow]")
        for reference in references:
            console.print(f"  [dim]• {reference.key}[/dim]")
        console.print("\n[bold]Dry run complete. No changes made.[/bold]")
        return

    check_writable(output_path)
    if output_path.exists() and not force:
        if not confirm(f'File "{output_path}" already exists. Overwrite?'):
            raise OperationCancelled()

    try:
        resolved = provider.inject(str(template_path))
    except ProviderCommandError as exc:
        raise errors.inject_failed(exc.diagnostic) from exc

    content = prepend_header(strip_headers(resolved), output_path.name)
    write_text(content, output_path)

    console.print(f"[green]✓ Generated: {output_path}[/green]")
    console.print("[bold green]✓ Done! Your .env file is ready[/bold green]")


@cli.command(name="update")
@click.option('-f', '--force', is_flag=True, help='Install without asking')
def update_command(force):
    """
    Check for a newer vaultenv release and install it.
    """
    console.print("[cyan]Checking for updates...[/cyan]")
    result = update.check_for_update(force_check=True)

    if not result.latest_version:
        console.print("[yellow]⚠ Could not reach PyPI to check for updates[/yellow]")
        return

    if not result.update_available:
        console.print(f"[green]✓ vaultenv {result.current_version} is up to date[/green]")
        return

    console.print(
        f"[green]Update available:[/green] [dim]{result.current_version}[/dim] → "
        f"[green]{result.latest_version}[/green]"
    )
    installer = update.detect_installer()
    console.print(f"[dim]Installed with {installer.display_name}[/dim]")

    if not force:
        choice = click.prompt(
            "Update now?",
            type=click.Choice(["update", "later", "skip"]),
            default="update",
        )
        if choice == "skip":
            update.skip_version(result.latest_version)
            console.print(f"[dim]Skipped version {result.latest_version}[/dim]")
            return
        if choice == "later":
            console.print("[dim]Update postponed[/dim]")
            return

    console.print(f"[cyan]Updating to {result.latest_version}...[/cyan]")
    outcome = update.perform_update(installer)

    if not outcome.success:
        console.print("[red]Error: update failed[/red]")
        if outcome.error:
            console.print(f"[dim]{escape(outcome.error)}[/dim]")
        console.print(f"[dim]Run manually: {' '.join(installer.command)}[/dim]")
        sys.exit(1)

    console.print(f"[green]✓ Updated to {result.latest_version}[/green]")


def main():
    """Main entry point."""
    cli()


if __name__ == '__main__':
    main()
