"""mint command line interface."""

from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass

import typer
from botocore.exceptions import BotoCoreError, ClientError
from rich.console import Console
from rich.panel import Panel
from rich.prompt import Prompt

from mint.activity import ActivityProber
from mint.aws.clients import AWSClients, build_injector
from mint.aws.locator import VM, ResourceLocator
from mint.config import Settings, load_settings
from mint.constants import DEFAULT_VM_NAME, MIN_EXTEND_MINUTES
from mint.exceptions import MintError, SecurityError
from mint.extend import extend as extend_vm
from mint.identity import Identity
from mint.lifecycle.recreate import RecreateOptions, Recreator
from mint.logging import LogConfig, audit, setup_logging, teardown_logging
from mint.remote.hostkeys import HostKeyStore
from mint.remote.keys import CredentialIssuer
from mint.remote.ssh import RemoteExecutor
from mint.remote.tofu import HostVerifier, trusted_runner

app = typer.Typer(
    name="mint",
    help="Manage your mint development VM on AWS.",
    no_args_is_help=True,
)
console = Console()
err_console = Console(stderr=True)


@dataclass(frozen=True, slots=True)
class _Wiring:
    settings: Settings
    clients: AWSClients
    identity: Identity
    locator: ResourceLocator
    host_keys: HostKeyStore
    verifier: HostVerifier
    executor: RemoteExecutor


@app.callback()
def main(
    ctx: typer.Context,
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Show debug logging"),
) -> None:
    ctx.obj = verbose


@contextmanager
def _invocation(ctx: typer.Context) -> Iterator[_Wiring]:
    """Load settings, configure logging and build clients for one command.

    Expected failures are printed and turned into exit code 1.
    """
    handler_ids: list[int] = []
    try:
        settings = load_settings()
        handler_ids = setup_logging(
            LogConfig(
                level="DEBUG" if ctx.obj else "WARNING",
                file=str(settings.log_path),
                audit_file=str(settings.audit_path),
            )
        )
        injector = build_injector(settings)
        clients = injector.get(AWSClients)
        identity = injector.get(Identity)
        host_keys = HostKeyStore(settings.known_hosts_path)
        yield _Wiring(
            settings=settings,
            clients=clients,
            identity=identity,
            locator=ResourceLocator(clients.ec2, identity.owner),
            host_keys=host_keys,
            verifier=HostVerifier(host_keys),
            executor=RemoteExecutor(
                CredentialIssuer(clients.instance_connect, settings.ssh_user),
                username=settings.ssh_user,
                port=settings.ssh_port,
            ),
        )
    except SecurityError as e:
        err_console.print(Panel(str(e), title="SECURITY WARNING", border_style="bold red"))
        raise typer.Exit(1) from e
    except MintError as e:
        err_console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1) from e
    except (ClientError, BotoCoreError) as e:
        err_console.print(f"[red]AWS error:[/red] {e}")
        raise typer.Exit(1) from e
    finally:
        teardown_logging(handler_ids)


def _prompt_confirmation(vm: VM) -> str | None:
    console.print(f"This will destroy and re-provision VM [bold]{vm.name}[/bold] ({vm.instance_id}).")
    console.print(f"  - Instance {vm.instance_id} will be terminated")
    console.print("  - A new VM will be provisioned with the same configuration")
    console.print("  - The project volume and Elastic IP will be preserved")
    try:
        return Prompt.ask(f"\nType the VM name [bold]{vm.name}[/bold] to confirm", console=console)
    except EOFError:
        return None


def _progress(message: str) -> None:
    console.print(f"  [cyan]{message}[/cyan]")


@app.command()
def recreate(
    ctx: typer.Context,
    vm: str = typer.Option(DEFAULT_VM_NAME, "--vm", help="VM name"),
    yes: bool = typer.Option(False, "--yes", "-y", help="Skip the confirmation prompt"),
    force: bool = typer.Option(False, "--force", help="Proceed even if the VM has active sessions"),
) -> None:
    """Destroy and re-provision a VM, keeping its project volume and Elastic IP."""
    with _invocation(ctx) as w:
        audit("recreate", vm_name=vm, caller_arn=w.identity.arn)
        recreator = Recreator(
            clients=w.clients,
            locator=w.locator,
            settings=w.settings,
            identity=w.identity,
            host_keys=w.host_keys,
            verifier=w.verifier,
            executor=w.executor,
            confirm=_prompt_confirmation,
            progress=_progress,
        )
        result = recreator.recreate(RecreateOptions(vm_name=vm, yes=yes, force=force))

    for warning in result.warnings:
        console.print(f"[yellow]Warning:[/yellow] {warning}")
    console.print(f"Recreate complete. New instance: [bold]{result.instance_id}[/bold]")
    console.print("Bootstrap complete. VM is ready.")


@app.command("extend")
def extend_cmd(
    ctx: typer.Context,
    minutes: int = typer.Argument(60, min=MIN_EXTEND_MINUTES, help="Minutes to keep the VM awake"),
    vm: str = typer.Option(DEFAULT_VM_NAME, "--vm", help="VM name"),
) -> None:
    """Keep a VM from idling out for a while."""
    with _invocation(ctx) as w:
        audit("extend", vm_name=vm, caller_arn=w.identity.arn)
        target = w.locator.require_vm(vm)
        run = trusted_runner(w.verifier, w.executor, target, port=w.settings.ssh_port)
        until = extend_vm(run, minutes)
    console.print(f"VM [bold]{vm}[/bold] will stay up until {until:%Y-%m-%d %H:%M:%S %Z}")


@app.command()
def sessions(
    ctx: typer.Context,
    vm: str = typer.Option(DEFAULT_VM_NAME, "--vm", help="VM name"),
) -> None:
    """Show what is keeping a VM busy."""
    with _invocation(ctx) as w:
        target = w.locator.require_vm(vm)
        report = ActivityProber(lambda command: w.executor.run(target, command)).probe()

    for warning in report.warnings():
        console.print(f"[yellow]Warning:[/yellow] {warning}")
    if report.has_activity:
        console.print(f"Active sessions on VM [bold]{vm}[/bold]:\n{report.summary()}")
    else:
        console.print(f"No active sessions on VM [bold]{vm}[/bold].")
