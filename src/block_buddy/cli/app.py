"""CLI for Block Buddy - custody wallets and send funds from the terminal."""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from block_buddy.config import DEFAULT_CONFIG_NAME, BuddyConfig, configure_logging, load_config, save_config
from block_buddy.errors import WalletError
from block_buddy.models import SecretDisclosure, TransferSuccess
from block_buddy.service import WalletService
from block_buddy.wallet.chains import get_chain
from block_buddy.wallet.provider import Web3Provider
from block_buddy.wallet.resolver import NameResolver
from block_buddy.wallet.transfer import to_ether

app = typer.Typer(
    name="block-buddy",
    help="Custody EVM wallets per user and execute transfers on their instruction.",
    no_args_is_help=True,
)
console = Console()

_config_path: Optional[Path] = None


def _version_callback(value: bool):
    if value:
        from importlib.metadata import version
        console.print(f"block-buddy {version('block-buddy')}")
        raise typer.Exit()


@app.callback()
def main(
    config: Optional[Path] = typer.Option(
        None,
        "--config",
        "-c",
        help="Path to block-buddy.yaml",
        envvar="BLOCK_BUDDY_CONFIG",
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging"),
    version: bool = typer.Option(
        False,
        "--version",
        "-V",
        help="Show version and exit",
        callback=_version_callback,
        is_eager=True,
    ),
):
    """Custody EVM wallets per user and execute transfers on their instruction."""
    global _config_path
    _config_path = config
    cfg = load_config(config)
    configure_logging("DEBUG" if verbose else cfg.logging.level)


def _load() -> BuddyConfig:
    cfg = load_config(_config_path)
    if not cfg.cipher.passphrase:
        console.print(
            "[red]No encryption passphrase configured.[/red] "
            "Set BLOCK_BUDDY_ENCRYPTION_KEY or cipher.passphrase."
        )
        raise typer.Exit(1)
    return cfg


async def _with_service(cfg: BuddyConfig, op):
    service = WalletService.from_config(cfg)
    await service.open()
    try:
        return await op(service)
    finally:
        await service.close()


def _show_disclosure(disclosure: SecretDisclosure) -> None:
    console.print(Panel(
        f"Address: [cyan]{disclosure.address}[/cyan]\n\n"
        f"Private key: [bold]{disclosure.private_key}[/bold]\n"
        f"Recovery phrase: [bold]{disclosure.mnemonic}[/bold]\n\n"
        f"[yellow]{disclosure.warning}[/yellow]",
        title="New Wallet Secrets",
    ))


@app.command()
def init(
    backend: str = typer.Option("sqlite", "--backend", "-b", help="Identity store backend (sqlite or hasura)"),
    chain: str = typer.Option("ethereum", "--chain", help="Default chain"),
    force: bool = typer.Option(False, "--force", "-f", help="Overwrite an existing config file"),
):
    """Write a starter block-buddy.yaml. Secrets stay as ${ENV} placeholders."""
    path = _config_path or Path.cwd() / DEFAULT_CONFIG_NAME
    if path.exists() and not force:
        console.print(f"[yellow]{path} already exists.[/yellow] Use --force to overwrite.")
        raise typer.Exit(1)
    if backend not in ("sqlite", "hasura"):
        console.print(f"[red]Unknown backend '{backend}'.[/red] Choose sqlite or hasura.")
        raise typer.Exit(1)
    try:
        get_chain(chain)
    except WalletError as e:
        console.print(f"[red]{e.message}[/red]")
        raise typer.Exit(1)

    cfg = BuddyConfig()
    cfg.store.backend = backend
    cfg.chains.default_chain = chain
    save_config(cfg, path)
    console.print(f"[bold green]Config written to {path}[/bold green]")
    console.print("Set BLOCK_BUDDY_ENCRYPTION_KEY before creating wallets.")


# ------------------------------------------------------------------
# wallet sub-commands
# ------------------------------------------------------------------

wallet_app = typer.Typer(
    name="wallet",
    help="Create wallets, check balances and send funds.",
    no_args_is_help=True,
)
app.add_typer(wallet_app, name="wallet")


@wallet_app.command("create")
def wallet_create(
    handle: str = typer.Argument(help="Identity handle (e.g. phone number)"),
    chain: str = typer.Option(None, "--chain", help="Chain name (ethereum, sepolia, base, polygon)"),
):
    """Create a wallet for HANDLE, or show the existing one."""
    cfg = _load()
    try:
        result = asyncio.run(_with_service(
            cfg, lambda s: s.create_wallet(handle, chain, disclose=_show_disclosure)
        ))
    except WalletError as e:
        console.print(f"[red]{e.message}[/red]")
        raise typer.Exit(1)

    if result.created:
        console.print(f"[bold green]Wallet created![/bold green] Address: [cyan]{result.address}[/cyan]")
    else:
        console.print(f"[yellow]Wallet already exists.[/yellow] Address: [cyan]{result.address}[/cyan]")


@wallet_app.command("balance")
def wallet_balance(
    handle: str = typer.Argument(help="Identity handle"),
    chain: str = typer.Option(None, "--chain", help="Chain name"),
):
    """Show the native balance of HANDLE's wallet."""
    cfg = _load()
    chain_name = chain or cfg.chains.default_chain
    try:
        balance = asyncio.run(_with_service(cfg, lambda s: s.get_balance(handle, chain_name)))
    except WalletError as e:
        console.print(f"[red]{e.message}[/red]")
        raise typer.Exit(1)

    table = Table(title="Wallet Balance")
    table.add_column("Chain", style="cyan")
    table.add_column("Balance", justify="right")
    table.add_column("Wei", justify="right", style="dim")
    table.add_row(chain_name, f"{to_ether(balance)} {get_chain(chain_name).native_symbol}", str(balance))
    console.print(table)


@wallet_app.command("send")
def wallet_send(
    handle: str = typer.Argument(help="Identity handle of the sender"),
    amount: int = typer.Argument(help="Amount in wei"),
    to: str = typer.Option(..., "--to", "-t", help="Recipient address (0x...) or ENS name"),
    chain: str = typer.Option(None, "--chain", help="Chain to send on"),
):
    """Send AMOUNT wei from HANDLE's wallet."""
    cfg = _load()
    try:
        chain_info = get_chain(chain or cfg.chains.default_chain)
    except WalletError as e:
        console.print(f"[red]{e.message}[/red]")
        raise typer.Exit(1)

    console.print(f"\n[bold]Send {to_ether(amount)} {chain_info.native_symbol} on {chain_info.name}[/bold]")
    console.print(f"  To: {to}")
    console.print(f"  Explorer: {chain_info.explorer_url}\n")
    typer.confirm("Confirm this transaction?", abort=True)

    result = asyncio.run(_with_service(cfg, lambda s: s.transfer(handle, to, amount, chain_info.name)))
    if isinstance(result, TransferSuccess):
        console.print(Panel(
            f"[bold green]{result.message}[/bold green]\n\n"
            f"Explorer: {chain_info.explorer_url}/tx/{result.tx_hash}",
            title="Transaction Confirmed",
        ))
        return

    console.print(f"[red]{result.message}[/red] [dim]({result.kind.value})[/dim]")
    if result.tx_hash:
        console.print(f"Explorer: {chain_info.explorer_url}/tx/{result.tx_hash}")
    raise typer.Exit(1)


# ------------------------------------------------------------------
# ens sub-commands
# ------------------------------------------------------------------

ens_app = typer.Typer(name="ens", help="Look up ENS names.", no_args_is_help=True)
app.add_typer(ens_app, name="ens")


@ens_app.command("lookup")
def ens_lookup(
    name: str = typer.Argument(help="ENS name, e.g. vitalik.eth"),
    chain: str = typer.Option(None, "--chain", help="Chain to resolve on"),
):
    """Resolve NAME and show its records."""
    cfg = load_config(_config_path)
    try:
        chain_name = get_chain(chain or cfg.chains.default_chain).name
        # Lookups need no key material or passphrase.
        resolver = NameResolver(Web3Provider(cfg).for_chain(chain_name))
        profile = asyncio.run(resolver.lookup_profile(name))
    except WalletError as e:
        console.print(f"[red]{e.message}[/red]")
        raise typer.Exit(1)

    if profile is None:
        console.print(f"[yellow]ENS name \"{name}\" does not exist or has no address configured.[/yellow]")
        raise typer.Exit(1)

    if not profile.has_resolver:
        console.print(f"ENS found but no resolver configured.\n\nAddress: [cyan]{profile.address}[/cyan]")
        return

    table = Table(title=f"ENS: {profile.name}")
    table.add_column("Field", style="cyan")
    table.add_column("Value")
    table.add_row("Address", profile.address)
    if profile.is_primary:
        table.add_row("Primary name", "yes, this is the primary name")
    else:
        table.add_row("Primary name", profile.primary_name or "-")
    for key, value in profile.text_records.items():
        if value:
            table.add_row(key, value)
    for symbol, value in profile.crypto_addresses.items():
        if value and symbol != "eth":
            table.add_row(symbol.upper(), value)
    if profile.content_hash:
        table.add_row("Content hash", profile.content_hash)
    console.print(table)


if __name__ == "__main__":
    app()
