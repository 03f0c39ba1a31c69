"""Typer CLI for hubsync."""

import asyncio
from typing import Optional

import typer
from rich.console import Console
from rich.table import Table

app = typer.Typer(name="hubsync", help="hubsync: tenant-scoped issue tracker mirror")
console = Console()


async def _with_db(fn):
    from hubsync.deps import get_db

    db = get_db()
    await db.init()
    await db.create_all()
    try:
        return await fn()
    finally:
        await db.close()


def _counts_table(title: str, counts: dict) -> Table:
    table = Table(title=title)
    table.add_column("Entity")
    table.add_column("Rows", justify="right")
    for kind, n in counts.items():
        table.add_row(kind, str(n))
    return table


@app.command()
def serve(
    host: Optional[str] = typer.Option(None, help="Bind host (default: HUBSYNC_HOST)"),
    port: Optional[int] = typer.Option(None, help="Bind port (default: HUBSYNC_PORT)"),
):
    """Start the hubsync API server."""
    import uvicorn
    from hubsync.app import create_app
    from hubsync.common.config import get_settings

    settings = get_settings()
    host = host or settings.host
    port = port or settings.port
    console.print(f"[bold green]Starting hubsync on {host}:{port}[/bold green]")
    uvicorn.run(create_app(), host=host, port=port)


@app.command()
def sync(
    hub: Optional[str] = typer.Option(None, "--hub", help="Hub id; omit to sync every active hub"),
):
    """Run a full sync from the upstream tracker."""
    from hubsync.common.exceptions import HubSyncError
    from hubsync.common.logging import setup_logging
    from hubsync.common.config import get_settings
    from hubsync.deps import get_sync_service

    setup_logging(get_settings().log_level)
    svc = get_sync_service()

    try:
        if hub:
            result = asyncio.run(_with_db(lambda: svc.run_hub_sync(hub)))
            data = result.to_dict()
            colour = "green" if result.success else "red"
            console.print(f"[bold {colour}]success={result.success}[/bold {colour}] errors={result.errors}")
            if result.error:
                console.print(f"  {result.error}")
        else:
            data = asyncio.run(_with_db(svc.run_all_hubs_sync)).to_dict()
            console.print(f"hubs={data['hubs']} teams={data['teams_synced']} errors={data['errors']}")
    except HubSyncError as e:
        console.print(f"[bold red]{e.code}[/bold red] — {e.message}")
        raise typer.Exit(1)
    console.print(_counts_table("Upserted", data["counts"]))


@app.command()
def reconcile():
    """Run one incremental reconciliation pass."""
    from hubsync.common.exceptions import HubSyncError
    from hubsync.common.logging import setup_logging
    from hubsync.common.config import get_settings
    from hubsync.deps import get_reconciler

    setup_logging(get_settings().log_level)
    try:
        totals = asyncio.run(_with_db(get_reconciler().reconcile_all))
    except HubSyncError as e:
        console.print(f"[bold red]{e.code}[/bold red] — {e.message}")
        raise typer.Exit(1)
    console.print(
        f"hubs={totals.hubs} teams={totals.teams_reconciled} errors={totals.errors}"
    )
    console.print(_counts_table("Reconciled", totals.to_dict()["counts"]))


@app.command("issue-token")
def issue_token(
    user_id: str = typer.Argument(..., help="Identity id"),
    email: Optional[str] = typer.Option(None, help="Email used to claim pending invites"),
):
    """Issue a signed session token (offline, no DB required)."""
    from hubsync.deps import get_identity_provider

    console.print(get_identity_provider().issue_token(user_id, email))


@app.command("grant-admin")
def grant_admin(
    user_id: str = typer.Argument(..., help="Identity id"),
    email: str = typer.Option("", help="Operator email"),
):
    """Add an identity to the global admin allow-list."""
    from hubsync.deps import get_db, get_hub_service

    async def _grant():
        async with get_db().get_session() as session:
            await get_hub_service().add_global_admin(session, user_id, email)

    asyncio.run(_with_db(_grant))
    console.print(f"[bold green]{user_id} is now an operator[/bold green]")


@app.command()
def health(
    url: str = typer.Option("http://localhost:8080", help="Server URL"),
):
    """Check hubsync server health."""
    import httpx

    try:
        resp = httpx.get(f"{url}/health", timeout=5)
        data = resp.json()
        console.print(f"[bold green]{data['status']}[/bold green] — v{data['version']}")
    except Exception as e:
        console.print(f"[bold red]Error:[/bold red] {e}")
        raise typer.Exit(1)


if __name__ == "__main__":
    app()
