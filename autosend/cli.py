"""
Fuel Auto-Send CLI - Command line interface for the auto-send engine.

Usage:
    autosend --help                     Show all commands
    autosend run                        Send yesterday's entries (like the daily schedule)
    autosend run --from 2025-01-01      Send a specific day or range
    autosend resume <batch-id>          Finish the PENDING items of a batch
    autosend status                     Show recent batches
    autosend create-admin a@b.ba        Create an admin user and a login session
    autosend cron-secret                Print a random CRON_SECRET
"""

import asyncio
import uuid
from datetime import datetime

import typer

app = typer.Typer(
    name="autosend",
    help="Fuel Auto-Send CLI - batch delivery of fuel entry statements",
    no_args_is_help=True,
)


# --- Step printer helpers ---


def _print_success(message: str) -> None:
    """Print a success message."""
    typer.echo(f"  ✅ {message}")


def _print_warning(message: str) -> None:
    """Print a warning message."""
    typer.echo(f"  ⚠️ {message}")


def _print_skipped(message: str) -> None:
    """Print a skipped step message."""
    typer.echo(f"  ⏭️ {message}")


def _print_error(message: str) -> None:
    """Print an error message to stderr."""
    typer.echo(f"❌ {message}", err=True)


@app.command()
def run(
    date_from: datetime | None = typer.Option(
        None, "--from", "-f", formats=["%Y-%m-%d"], help="First day (default: yesterday)"
    ),
    date_to: datetime | None = typer.Option(
        None, "--to", "-t", formats=["%Y-%m-%d"], help="Last day (default: --from)"
    ),
    no_certificates: bool = typer.Option(
        False, "--no-certificates", help="Do not append quality certificates"
    ),
):
    """Plan and send a batch with the configured recipients, waiting for the result."""
    from autosend.core.database import AsyncSessionLocal
    from autosend.core.errors import AutoSendError
    from autosend.core.logging import setup_logging
    from autosend.services.triggers import build_runner

    setup_logging()

    async def _run():
        runner = build_runner(AsyncSessionLocal)
        return await runner.trigger_scheduled(
            date_from=date_from.date() if date_from else None,
            date_to=date_to.date() if date_to else None,
            include_certificates=not no_certificates,
        )

    try:
        result = asyncio.run(_run())
    except AutoSendError as e:
        _print_error(e.message)
        raise typer.Exit(1)

    if result.skipped:
        _print_skipped(result.reason or "Skipped")
        return

    if result.execution is None:
        _print_warning(result.plan.message if result.plan else "Nothing planned")
        return

    summary = result.execution
    typer.echo(f"\n📦 Batch #{summary.sequence} ({summary.batch_id})")
    _print_success(f"{summary.sent} sent")
    if summary.failed:
        _print_error(f"{summary.failed} failed")
    if summary.pending:
        _print_warning(f"{summary.pending} still pending")
    typer.echo(f"  Status: {summary.status.value}\n")
    if summary.failed or summary.pending:
        raise typer.Exit(2)


@app.command()
def resume(batch_id: str = typer.Argument(..., help="Batch id to finish")):
    """Send the remaining PENDING items of an existing batch."""
    from autosend.core.database import AsyncSessionLocal
    from autosend.core.errors import AutoSendError
    from autosend.core.logging import setup_logging
    from autosend.services.triggers import build_runner

    setup_logging()

    try:
        batch_uuid = uuid.UUID(batch_id)
    except ValueError:
        _print_error(f"Invalid batch id: {batch_id}")
        raise typer.Exit(1)

    async def _resume():
        runner = build_runner(AsyncSessionLocal)
        return await runner.executor.execute(batch_uuid)

    try:
        summary = asyncio.run(_resume())
    except AutoSendError as e:
        _print_error(e.message)
        raise typer.Exit(1)

    typer.echo(f"\n📦 Batch #{summary.sequence}: {summary.status.value}")
    typer.echo(f"  sent={summary.sent} failed={summary.failed} pending={summary.pending}\n")


@app.command()
def status(limit: int = typer.Option(10, "--limit", "-l", help="Number of batches to show")):
    """Show the most recent batches and their item counts."""
    from autosend.core.database import AsyncSessionLocal
    from autosend.core.logging import setup_logging
    from autosend.models.batch import ItemStatus
    from autosend.services.history import list_batch_history

    setup_logging()

    async def _status():
        async with AsyncSessionLocal() as db:
            page, _ = await list_batch_history(db, limit=limit)
            return page

    page = asyncio.run(_status())
    if not page.items:
        typer.echo("No batches yet.")
        return

    for batch in page.items:
        statuses = [item.status for item in batch.items]
        typer.echo(
            f"#{batch.sequence:<5} {batch.date_from} - {batch.date_to}  "
            f"{batch.status.value:<12} "
            f"sent={statuses.count(ItemStatus.SENT)} "
            f"failed={statuses.count(ItemStatus.FAILED)} "
            f"pending={statuses.count(ItemStatus.PENDING)}  ({batch.trigger.value})"
        )


@app.command("create-admin")
def create_admin(
    email: str = typer.Argument(..., help="Admin email address"),
    name: str | None = typer.Option(None, "--name", "-n", help="Display name"),
    super_admin: bool = typer.Option(False, "--super", help="Create a SUPER_ADMIN"),
):
    """Create an admin user and print a session id usable as the session_id cookie."""
    from sqlalchemy import select

    from autosend.core.database import AsyncSessionLocal
    from autosend.core.logging import setup_logging
    from autosend.core.security import generate_session_id, get_session_expiry
    from autosend.models.user import Session, User, UserRole

    setup_logging()

    async def _create():
        async with AsyncSessionLocal() as db:
            result = await db.execute(select(User).where(User.email == email.lower()))
            user = result.scalar_one_or_none()
            if user is None:
                user = User(email=email.lower(), name=name)
                db.add(user)
            user.role = UserRole.SUPER_ADMIN if super_admin else UserRole.ADMIN
            user.is_active = True
            await db.flush()

            session = Session(
                id=generate_session_id(),
                user_id=user.id,
                expires_at=get_session_expiry(),
            )
            db.add(session)
            await db.commit()
            return user, session

    user, session = asyncio.run(_create())
    _print_success(f"{user.email} is {user.role.value}")
    typer.echo(f"  session_id={session.id} (expires {session.expires_at:%Y-%m-%d})\n")


@app.command("cron-secret")
def cron_secret():
    """Print a random value for CRON_SECRET."""
    from autosend.core.security import generate_cron_secret

    typer.echo(generate_cron_secret())


@app.command()
def migrate():
    """Run database migrations (alembic upgrade head)."""
    import subprocess

    result = subprocess.run(["alembic", "upgrade", "head"], check=False)
    raise typer.Exit(result.returncode)


@app.command()
def serve(
    reload: bool = typer.Option(False, "--reload", "-r", help="Enable hot reload"),
    port: int = typer.Option(8000, "--port", "-p", help="Port to run on"),
):
    """Start the API server."""
    import subprocess

    cmd = ["uvicorn", "autosend.main:app", "--host", "0.0.0.0", "--port", str(port)]
    if reload:
        cmd.append("--reload")

    subprocess.run(cmd, check=False)


if __name__ == "__main__":
    app()
