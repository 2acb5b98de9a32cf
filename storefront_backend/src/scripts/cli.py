"""Operational CLI for the storefront backend.

Provides commands for catalog sync, search indexing, environment checks and
schema creation.
"""

from typing import Dict, List, Tuple

import typer
from rich.console import Console
from rich.table import Table

from src.core.config import get_settings
from src.core.errors import AppError
from src.core.logging import setup_logging
from src.db.session import SessionLocal, db_healthcheck, init_db
from src.integrations.cms import CMSClient
from src.integrations.search_index import SearchIndexClient
from src.services.sync import BATCH_SIZE, index_products, sync_cms_to_db

app = typer.Typer(
    name="storefront",
    help="Storefront backend - catalog sync, search indexing and environment checks",
    add_completion=False,
)

console = Console()


def _counts_table(title: str, counts: Dict[str, int]) -> Table:
    table = Table(title=title)
    table.add_column("Item", style="cyan")
    table.add_column("Count", justify="right", style="green")
    for key, value in counts.items():
        table.add_row(key.replace("_", " "), str(value))
    return table


@app.command("sync-cms")
def sync_cms(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable verbose output"),
) -> None:
    """Mirror published CMS products, variants and supplier sources into the database."""
    if verbose:
        setup_logging()

    cms = CMSClient()
    db = SessionLocal()
    try:
        counts = sync_cms_to_db(db, cms)
    except AppError as e:
        db.rollback()
        console.print(f"[red]Error:[/red] {e.message}")
        raise typer.Exit(1)
    finally:
        db.close()
        cms.close()

    console.print(_counts_table("CMS sync", counts))
    console.print("[green]Sync complete.[/green]")


@app.command("index-products")
def index_products_command(
    batch_size: int = typer.Option(BATCH_SIZE, "--batch-size", "-b", min=1, help="Records per upload batch"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable verbose output"),
) -> None:
    """Upload every active product to the search index."""
    if verbose:
        setup_logging()

    search = SearchIndexClient()
    if not search.enabled:
        console.print("[red]Error:[/red] Search index is not configured (ALGOLIA_APP_ID / ALGOLIA_ADMIN_KEY).")
        search.close()
        raise typer.Exit(1)

    db = SessionLocal()
    try:
        counts = index_products(db, search, batch_size=batch_size)
    except AppError as e:
        console.print(f"[red]Error:[/red] {e.message}")
        raise typer.Exit(1)
    finally:
        db.close()
        search.close()

    console.print(_counts_table("Search index", counts))


def _environment_checks() -> List[Tuple[str, bool, bool]]:
    """(name, configured, required) for every external dependency."""
    settings = get_settings()
    return [
        ("Database", db_healthcheck(), True),
        ("Stripe", settings.stripe_configured, True),
        ("Stripe webhooks", bool(settings.stripe_webhook_secret), False),
        ("Sanity CMS", bool(settings.sanity_project_id), False),
        ("Algolia search", bool(settings.algolia_app_id and settings.algolia_admin_key), False),
        ("SendGrid email", bool(settings.sendgrid_api_key), False),
        ("GA4 analytics", bool(settings.ga4_measurement_id and settings.ga4_api_secret), False),
        ("Cron secret", bool(settings.cron_secret), False),
    ]


@app.command("validate-env")
def validate_env() -> None:
    """Report which integrations are configured. Exits 1 when a required one is missing."""
    table = Table(title="Environment")
    table.add_column("Service", style="cyan")
    table.add_column("Status")
    table.add_column("Required", justify="center")

    missing_required = []
    for name, ok, required in _environment_checks():
        if ok:
            state = "[green]ok[/green]"
        elif required:
            state = "[red]missing[/red]"
            missing_required.append(name)
        else:
            state = "[yellow]not configured[/yellow]"
        table.add_row(name, state, "yes" if required else "")

    console.print(table)

    if missing_required:
        console.print(f"[red]Missing required configuration:[/red] {', '.join(missing_required)}")
        raise typer.Exit(1)
    console.print("[green]Environment looks good.[/green]")


@app.command("init-db")
def init_db_command() -> None:
    """Create any missing database tables."""
    init_db()
    console.print("[green]Database schema is up to date.[/green]")


if __name__ == "__main__":
    app()
