"""
Command-line interface for anonymous group signalling.

Operates on a state directory holding the append-only group, admission and
nullifier logs plus the admission signing key.
"""

import logging
import sys
from pathlib import Path

import click
import trio
from rich.console import Console
from rich.table import Table

from anon_signal import __version__
from anon_signal.network.signalapi import LocalTransport, SignalAPI, SignalClient, SignalSession
from anon_signal.protocol import (
    Commitment,
    IdentityPort,
    RegistrationRequest,
    build_services,
    get_proof_engine,
    load_settings,
)
from anon_signal.protocol.adapters import (
    DeterministicIdentityProvider,
    MockProofEngine,
    RecordingHook,
    SignedAdmissionAuthority,
)
from anon_signal.protocol.config import ProtocolSettings
from anon_signal.protocol.exceptions import PrivacyProtocolError

KEY_FILE_NAME = "admission.key"

console = Console()


def _fail(message: str) -> None:
    click.echo(click.style(f"✗ {message}", fg="red"), err=True)
    sys.exit(1)


def _load_authority(state_dir: Path) -> SignedAdmissionAuthority:
    key_path = state_dir / KEY_FILE_NAME
    if key_path.exists():
        return SignedAdmissionAuthority.from_seed_hex(key_path.read_text().strip())
    authority = SignedAdmissionAuthority.generate()
    state_dir.mkdir(parents=True, exist_ok=True)
    key_path.write_text(authority.seed_hex + "\n")
    key_path.chmod(0o600)
    return authority


def _services(ctx: click.Context):
    settings: ProtocolSettings = ctx.obj["settings"]
    authority = _load_authority(Path(settings.data_dir))
    return build_services(settings, authority, engine=get_proof_engine())


@click.group()
@click.version_option(version=__version__)
@click.option(
    "--state-dir",
    type=click.Path(file_okay=False),
    default="anon_signal_state",
    envvar="ANON_SIGNAL_DATA_DIR",
    show_default=True,
    help="Directory holding the append-only logs and admission key",
)
@click.option(
    "--config",
    "config_path",
    type=click.Path(exists=True, dir_okay=False),
    help="YAML settings file",
)
@click.option("--verbose", is_flag=True, help="Enable debug logging")
@click.pass_context
def main(ctx, state_dir, config_path, verbose):
    """
    Anonymous group signalling.

    Register members into a group, then publish signals that verify as
    coming from some member, at most once per member.
    """
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    try:
        settings = load_settings(config_path, data_dir=state_dir)
    except PrivacyProtocolError as e:
        _fail(str(e))
    ctx.obj = {"settings": settings, "verbose": verbose}


@main.command("create-group")
@click.argument("group_id", type=int)
@click.option("--depth", type=int, default=None, help="Tree depth (default from settings)")
@click.pass_context
def create_group(ctx, group_id, depth):
    """Create an empty group."""
    services = _services(ctx)
    depth = depth or services.settings.depth
    try:
        view = services.accumulator.create_group(group_id, depth)
    except ValueError as e:
        _fail(str(e))
    click.echo(click.style(f"✓ Group {group_id} created (capacity {view.capacity})", fg="green"))


@main.command("issue-ref")
@click.option("--count", type=int, default=1, show_default=True)
@click.pass_context
def issue_ref(ctx, count):
    """Issue signed admission references."""
    authority = _load_authority(Path(ctx.obj["settings"].data_dir))
    for _ in range(count):
        click.echo(authority.issue())


@main.command()
@click.argument("group_id", type=int)
@click.argument("username")
@click.option("--ref", "admission_ref", required=True, help="Admission reference")
@click.option("--commitment", help="Register this commitment instead of deriving one")
@click.option("--challenge", default=None, help="Authenticator challenge (defaults to username)")
@click.pass_context
def register(ctx, group_id, username, admission_ref, commitment, challenge):
    """Register a member commitment into a group."""
    services = _services(ctx)
    if commitment is None:
        port = IdentityPort(DeterministicIdentityProvider())
        commitment = port.commitment_for((challenge or username).encode("utf-8"))
    else:
        try:
            commitment = Commitment.parse(commitment)
        except (TypeError, ValueError) as e:
            _fail(str(e))

    result = services.registration.register(
        RegistrationRequest(
            username=username,
            group_id=group_id,
            commitment=commitment,
            admission_ref=admission_ref,
        )
    )
    if not result.ok:
        _fail(f"{result.error.value}: {result.detail}")
    click.echo(click.style(f"✓ Registered as member {result.value} of group {group_id}", fg="green"))
    click.echo(f"  Commitment: {commitment}")


@main.command()
@click.argument("group_id", type=int)
@click.pass_context
def members(ctx, group_id):
    """List a group's member commitments in index order."""
    services = _services(ctx)
    if not services.accumulator.has_group(group_id):
        _fail(f"group {group_id} does not exist")
    table = Table(title=f"Group {group_id}")
    table.add_column("Index", justify="right")
    table.add_column("Commitment")
    for index, member in enumerate(services.accumulator.members(group_id)):
        table.add_row(str(index), str(member))
    console.print(table)


@main.command()
@click.argument("group_id", type=int)
@click.option("--window", type=int, default=None, help="Number of roots to show")
@click.pass_context
def roots(ctx, group_id, window):
    """Show the current and recent roots of a group, newest first."""
    services = _services(ctx)
    if not services.accumulator.has_group(group_id):
        _fail(f"group {group_id} does not exist")
    info = services.accumulator.describe(group_id)
    recent = services.accumulator.recent_roots(
        group_id, window or services.settings.root_history
    )
    table = Table(title=f"Group {group_id}: {info['size']}/{info['capacity']} members")
    table.add_column("Age", justify="right")
    table.add_column("Root")
    for age, root in enumerate(recent):
        table.add_row(str(age), root.hex())
    console.print(table)


@main.command()
@click.option("--threshold", type=int, default=5, show_default=True)
@click.option("--depth", type=int, default=20, show_default=True)
def demo(threshold, depth):
    """
    Run an in-memory end-to-end scenario with the mock proof engine.

    Registers members one at a time, shows the anonymity gate refusing to
    prove until the threshold is met, then signals twice to show that the
    second attempt is rejected as a replay.
    """
    settings = ProtocolSettings(depth=depth, min_anonymity_set=threshold)
    issuer = SignedAdmissionAuthority.generate()
    hook = RecordingHook()
    services = build_services(settings, issuer, engine=MockProofEngine(), hooks=[hook])
    services.accumulator.create_group(1, depth)
    client = SignalClient(LocalTransport(SignalAPI.from_services(services)), services.coordinator)
    session = SignalSession(group_id=1, depth=depth)
    port = IdentityPort(DeterministicIdentityProvider())

    async def _run():
        for i in range(threshold):
            name = f"member-{i}"
            registered = await client.register(session, name, port, name.encode(), issuer.issue())
            click.echo(f"  register {name}: index {registered.value}")
            outcome = await client.signal(session, port, b"member-0", "hello")
            status = "accepted" if outcome.ok else outcome.error.value
            click.echo(f"  signal with {i + 1} member(s): {status}")
        replay = await client.signal(session, port, b"member-0", "hello again")
        click.echo(f"  second signal by member-0: {replay.error.value if replay.error else 'accepted'}")

    click.echo(click.style("Anonymous signalling demo", fg="cyan", bold=True))
    trio.run(_run)
    click.echo(click.style(f"✓ {len(hook.accepted)} signal(s) accepted", fg="green"))


if __name__ == "__main__":
    main()
