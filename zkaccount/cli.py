"""CLI for zk-email ledger accounts."""
import asyncio
import json
from pathlib import Path

import click
from rich.console import Console
from rich.live import Live
from rich.panel import Panel
from rich.table import Table

from zkaccount import __version__
from zkaccount.client import BalanceReconciler, LedgerClient, WalletSession, WalletSigner
from zkaccount.core.config import get_settings
from zkaccount.core.errors import APIError
from zkaccount.ledger.derivation import derive_address
from zkaccount.ledger.rent import rent_exempt_reserve, to_decimal
from zkaccount.proofs.decoder import Groth16Proof, decode_public_outputs
from zkaccount.proofs.oidc import fetch_issuer_key_der, parse_oidc_token
from zkaccount.proofs.prover_client import ProofServerClient

console = Console()


def load_proof(path: str) -> Groth16Proof:
    try:
        data = json.loads(Path(path).read_text())
        return Groth16Proof.from_hex(data["proof"], data["public_outputs"])
    except (ValueError, KeyError, TypeError) as e:
        raise click.ClickException(f"{path} is not a proof file: {e}")


def build_signer(key):
    return WalletSigner.from_key(key) if key else WalletSigner.create()


def parse_email_hash(value: str) -> bytes:
    try:
        raw = bytes.fromhex(value[2:] if value.startswith("0x") else value)
    except ValueError:
        raw = b""
    if len(raw) != 32:
        raise click.BadParameter("email hash must be 32 bytes of hex", param_hint="'--email-hash'")
    return raw


def open_session(proof_path) -> WalletSession:
    try:
        return WalletSession.authenticate(load_proof(proof_path))
    except APIError as e:
        raise click.ClickException(f"{e.error_code}: {e.message}")


def resolve_email_hash(proof_path, email_hash) -> bytes:
    if email_hash:
        return parse_email_hash(email_hash)
    if proof_path:
        return open_session(proof_path).email_hash
    raise click.UsageError("Pass --proof or --email-hash")


def run(coro):
    """Run a coroutine and render protocol errors"""
    try:
        return asyncio.run(coro)
    except APIError as e:
        console.print(f"[bold red]✗ {e.error_code or 'Error'}[/bold red]: {e.message}")
        raise SystemExit(1)


@click.group()
@click.version_option(version=__version__)
@click.option('--api-url', envvar='LEDGER_API_URL', default=None, help='Ledger API root URL')
@click.pass_context
def cli(ctx, api_url):
    """
    ZK Email Accounts CLI

    Ledger accounts controlled by a zero-knowledge proof of email ownership.
    """
    ctx.ensure_object(dict)
    ctx.obj['api_url'] = api_url


@cli.command()
@click.argument('token_file', type=click.Path(exists=True))
@click.option('--output', '-o', type=click.Path(), default='proof.json', help='Where to write the proof')
@click.option('--server', default=None, help='Proving server URL')
def prove(token_file, output, server):
    """Request a proof for a Google ID token."""
    try:
        token = parse_oidc_token(Path(token_file).read_text().strip())
    except ValueError as e:
        raise click.ClickException(f"Invalid ID token: {e}")
    console.print(f"Issuer: [cyan]{token.issuer}[/cyan]  Email: [cyan]{token.email}[/cyan]")

    async def _prove():
        try:
            public_key = await fetch_issuer_key_der(token.kid)
        except ValueError as e:
            raise click.ClickException(f"Issuer key lookup failed: {e}")
        prover = ProofServerClient(base_url=server)
        return await prover.request_proof(token, public_key)

    with console.status("[bold green]Generating proof (this can take minutes)..."):
        response = run(_prove())

    Path(output).write_text(json.dumps(response.proof.to_hex(), indent=2))
    console.print(f"[green]Proof ({response.proof_size} bytes) saved to {output}[/green]")


@cli.command()
@click.argument('proof_file', type=click.Path(exists=True))
def decode(proof_file):
    """Show the claims committed by a proof."""
    result = decode_public_outputs(load_proof(proof_file).public_outputs)
    claims = result.claims_or_default()

    table = Table(title="Claims", show_header=False)
    table.add_column("Field", style="cyan")
    table.add_column("Value")
    table.add_row("email_hash", claims.email_hash_hex)
    table.add_row("subject", claims.subject)
    table.add_row("issuer", claims.issuer)
    table.add_row("audience", claims.audience)
    table.add_row("verified", "[green]yes[/green]" if claims.verified else "[red]no[/red]")
    console.print(table)

    if not result.ok:
        console.print(f"[yellow]Decode error: {result.error.describe()}[/yellow]")


@cli.command()
@click.option('--proof', 'proof_path', type=click.Path(exists=True), help='Proof file')
@click.option('--email-hash', help='Email hash as hex')
@click.option('--salt', default='default', show_default=True)
def address(proof_path, email_hash, salt):
    """Derive an account address locally."""
    hash_bytes = resolve_email_hash(proof_path, email_hash)
    try:
        derived, bump = derive_address(hash_bytes, salt)
    except APIError as e:
        console.print(f"[bold red]✗ {e.error_code}[/bold red]: {e.message}")
        raise SystemExit(1)
    console.print(f"{derived} (bump {bump})")


@cli.command()
@click.argument('proof_file', type=click.Path(exists=True))
@click.option('--salt', default='default', show_default=True)
@click.option('--key', envvar='ZKACCOUNT_FEE_PAYER_KEY', help='Fee payer private key')
@click.pass_context
def create(ctx, proof_file, salt, key):
    """Create the account for a proof and salt."""
    proof = load_proof(proof_file)

    async def _create():
        session = WalletSession.authenticate(proof)
        async with LedgerClient(ctx.obj['api_url'], signer=build_signer(key)) as client:
            return await client.create_account(proof, session.email_hash, salt)

    result = run(_create())
    console.print(Panel(
        f"[bold green]✓ Account created[/bold green]\n"
        f"Address: [cyan]{result['address']}[/cyan]\n"
        f"Bump: {result['bump']}\n"
        f"Rent-exempt reserve: {to_decimal(rent_exempt_reserve())}\n"
        f"Signature: {result['signature']}",
        title=f"Salt: {salt}",
        border_style="green"
    ))


@cli.command()
@click.argument('proof_file', type=click.Path(exists=True))
@click.option('--salt', default='default', show_default=True)
@click.option('--amount', type=int, required=True, help='Amount in raw units')
@click.option('--to', 'destination', required=True, help='Destination address')
@click.option('--key', envvar='ZKACCOUNT_FEE_PAYER_KEY', help='Fee payer private key')
@click.pass_context
def transfer(ctx, proof_file, salt, amount, destination, key):
    """Transfer raw units out of an account."""
    proof = load_proof(proof_file)

    async def _transfer():
        session = WalletSession.authenticate(proof)
        async with LedgerClient(ctx.obj['api_url'], signer=build_signer(key)) as client:
            return await client.transfer(proof, session.email_hash, salt, amount, destination)

    signature = run(_transfer())
    console.print(f"[green]✓ Sent {to_decimal(amount)} to {destination}[/green]")
    console.print(f"Signature: {signature}")


@cli.command()
@click.option('--proof', 'proof_path', type=click.Path(exists=True), help='Proof file')
@click.option('--email-hash', help='Email hash as hex')
@click.option('--salt', default='default', show_default=True)
@click.option('--json', 'output_json', is_flag=True, help='Output in JSON format')
@click.pass_context
def balance(ctx, proof_path, email_hash, salt, output_json):
    """Show the available balance of an account."""
    hash_bytes = resolve_email_hash(proof_path, email_hash)

    async def _balance():
        async with LedgerClient(ctx.obj['api_url']) as client:
            return await client.get_balance_details(hash_bytes, salt)

    details = run(_balance())
    if output_json:
        console.print(json.dumps(details, indent=2))
        return

    table = Table(title=f"Balance ({salt})", show_header=False)
    table.add_column("Field", style="cyan")
    table.add_column("Value", justify="right")
    table.add_row("address", details['address'])
    table.add_row("available", str(details['balance']))
    table.add_row("raw balance", str(details['raw_balance']))
    table.add_row("rent-exempt reserve", str(details['rent_exempt_reserve']))
    console.print(table)


@cli.command()
@click.option('--proof', 'proof_path', type=click.Path(exists=True), help='Proof file')
@click.option('--email-hash', help='Email hash as hex')
@click.option('--salt', default='default', show_default=True)
@click.pass_context
def exists(ctx, proof_path, email_hash, salt):
    """Check whether an account has been created."""
    hash_bytes = resolve_email_hash(proof_path, email_hash)

    async def _exists():
        async with LedgerClient(ctx.obj['api_url']) as client:
            return await client.exists(hash_bytes, salt)

    if run(_exists()):
        console.print(f"[green]✓ Account for salt {salt!r} exists[/green]")
    else:
        console.print(f"[yellow]No account for salt {salt!r}[/yellow]")


@cli.command()
@click.argument('proof_file', type=click.Path(exists=True))
@click.option('--salt', 'salts', multiple=True, default=['default'], show_default=True,
              help='Salt to track (repeatable)')
@click.option('--interval', type=float, default=None, help='Polling interval in seconds')
@click.pass_context
def watch(ctx, proof_file, salts, interval):
    """Poll balances of tracked accounts until interrupted."""
    session = open_session(proof_file)
    try:
        for salt in salts:
            session.track(salt)
    except APIError as e:
        session.sign_out()
        raise click.ClickException(f"{e.error_code}: {e.message}")

    def render(balances):
        table = Table(title="Tracked accounts")
        table.add_column("Salt", style="cyan")
        table.add_column("Address")
        table.add_column("Available", justify="right", style="green")
        for salt, addr in session.tracked().items():
            value = balances.get(salt)
            table.add_row(salt, addr, "…" if value is None else str(value))
        return table

    async def _watch():
        async with LedgerClient(ctx.obj['api_url']) as client:
            reconciler = BalanceReconciler(client, session, interval=interval)
            with Live(render({}), console=console, refresh_per_second=4) as live:
                reconciler.add_update_handler(lambda balances: live.update(render(balances)))
                reconciler.start()
                try:
                    while reconciler.running:
                        await asyncio.sleep(0.5)
                finally:
                    await reconciler.stop()

    try:
        run(_watch())
    except KeyboardInterrupt:
        pass
    finally:
        session.sign_out()
    console.print(f"[dim]Stopped watching ({ctx.obj['api_url'] or get_settings().ledger_api_url})[/dim]")


if __name__ == '__main__':
    cli()
