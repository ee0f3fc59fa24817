"""
Command-line interface for the interview session engine.

Runs the API server and exposes the maintenance operations that recruiters
and operators run by hand.
"""
import asyncio
import json
import logging

import click

from interview_sessions.core.session_store import ScheduledSessionRepository
from interview_sessions.services.scheduled_sessions import ScheduledSessionService
from interview_sessions.utils.config import get_cleanup_config, log_config
from interview_sessions.utils.db import get_database, get_mongodb_client

logger = logging.getLogger(__name__)


@click.group()
def cli():
    """AI Interview Sessions - session lifecycle engine"""
    pass


@cli.command()
@click.option("--host", default="0.0.0.0", help="Interface to bind")
@click.option("--port", default=8000, type=int, help="Port to listen on")
@click.option("--reload", is_flag=True, help="Reload on code changes")
def serve(host: str, port: int, reload: bool) -> None:
    """Run the API server."""
    import uvicorn

    uvicorn.run("interview_sessions.server:app", host=host, port=port, reload=reload)


async def _cleanup() -> dict:
    client = get_mongodb_client()
    try:
        database = await get_database(client)
        service = ScheduledSessionService(ScheduledSessionRepository(database))
        return await service.cleanup_expired()
    finally:
        client.close()


@cli.command()
def cleanup() -> None:
    """Expire past-window scheduled slots and delete old expired ones."""
    retention = get_cleanup_config()["retention_hours"]
    result = asyncio.run(_cleanup())
    click.echo(f"Expired {result['expiredCount']} slot(s); deleted {result['deletedCount']} older than {retention}h")


@cli.command("show-config")
def show_config() -> None:
    """Log the effective configuration (secrets redacted)."""
    log_config()
    click.echo(json.dumps(get_cleanup_config(), indent=2))


def main():
    cli()


if __name__ == "__main__":
    main()
