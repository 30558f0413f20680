"""CLI entry point for the archive ingest status checker.

Provides commands:
  - check: Verify a dataset's archive uploads and report the closeout
  - uploads: List the upload attempts recorded for a dataset
  - register: Record a new upload attempt
  - skip: Mark an upload attempt as manually skipped
  - config: Manage configuration (archive API token)
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Annotated

import typer
from keyring.errors import KeyringError
from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.table import Table

from ingestcheck.config import (
    DEFAULT_CONFIG_PATH,
    SERVICE_NAME,
    TOKEN_ENV_VAR,
    delete_api_token,
    load_checker_config,
    mask_token,
    resolve_api_token,
    store_api_token,
)
from ingestcheck.database import RESULT_OK, Database
from ingestcheck.lifecycle import state_from_row
from ingestcheck.models import CheckerConfig, CheckRequest, CloseoutType
from ingestcheck.status.client import (
    ArchiveStatusClient,
    build_status_locator,
    status_num_from_locator,
)
from ingestcheck.status.orchestrator import ArchiveStatusCheck

logger = logging.getLogger(__name__)

app = typer.Typer(
    help="Archive ingest status checker - verify dataset uploads reached the archive",
    rich_markup_mode="rich",
)
console = Console()

# Config command group
config_app = typer.Typer(help="Manage configuration (archive API token)")
app.add_typer(config_app, name="config")

# Process exit code per closeout; the scheduler retries NOT_READY later
EXIT_CODES = {
    CloseoutType.SUCCESS: 0,
    CloseoutType.FAILED: 1,
    CloseoutType.NOT_READY: 2,
}

_STATE_STYLES = {
    "pending": "yellow",
    "verified": "green",
    "superseded": "dim",
    "skipped": "dim",
}


def _configure_logging(verbose: bool, debug: bool) -> None:
    package_logger = logging.getLogger("ingestcheck")
    if verbose or debug:
        package_logger.setLevel(logging.DEBUG if debug else logging.INFO)
    if verbose:
        handler = RichHandler(console=console, show_path=False)
        handler.setLevel(logging.INFO)
        package_logger.addHandler(handler)
    if debug:
        debug_dir = Path.home() / ".ingestcheck"
        debug_dir.mkdir(exist_ok=True)
        fh = logging.FileHandler(debug_dir / "debug.log")
        fh.setLevel(logging.DEBUG)
        fh.setFormatter(
            logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s")
        )
        package_logger.addHandler(fh)


def _load_config(config_path: Path | None, db_path: Path | None) -> CheckerConfig:
    try:
        config = load_checker_config(config_path)
    except (ValueError, TypeError) as e:
        console.print(f"[red]Invalid configuration:[/red] {e}")
        raise typer.Exit(code=1)
    if db_path is not None:
        config.db_path = str(db_path)
    return config


def _require_db(db_path: Path) -> None:
    if not db_path.exists():
        console.print(
            f"[yellow]Database not found:[/yellow] {db_path}\n"
            "Record uploads with [bold]ingestcheck register[/bold] first."
        )
        raise typer.Exit(code=1)


@app.command()
def check(
    dataset_id: Annotated[
        int, typer.Option("--dataset-id", help="Dataset whose uploads are verified")
    ],
    job: Annotated[
        int, typer.Option("--job", help="Job step running the check")
    ],
    locator: Annotated[
        str | None,
        typer.Option("--locator", help="Only check this status locator"),
    ] = None,
    db_path: Annotated[
        Path | None,
        typer.Option("--db", "-d", help="Path to SQLite database (overrides config)"),
    ] = None,
    config_path: Annotated[
        Path,
        typer.Option("--config", "-c", help="Path to status_check_config.json"),
    ] = DEFAULT_CONFIG_PATH,
    verbose: Annotated[
        bool, typer.Option("--verbose", "-v", help="Show progress log")
    ] = False,
    debug: Annotated[
        bool, typer.Option("--debug", help="Write debug log to ~/.ingestcheck/debug.log")
    ] = False,
) -> None:
    """Verify that a dataset's uploads were ingested by the archive.

    Exit code 0 means verified, 2 means not ready yet (retry later) and
    1 means failed (operator attention needed).
    """
    _configure_logging(verbose, debug)
    config = _load_config(config_path, db_path)
    _require_db(Path(config.db_path))

    request = CheckRequest(dataset_id=dataset_id, job=job, status_uri=locator)

    try:
        with Database(config.db_path) as db, ArchiveStatusClient.from_config(config) as client:
            outcome = ArchiveStatusCheck(db, client, config).run(request)
    except ValueError as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(code=1)

    style = {
        CloseoutType.SUCCESS: "green",
        CloseoutType.NOT_READY: "yellow",
        CloseoutType.FAILED: "red",
    }[outcome.closeout_type]
    body = outcome.closeout_msg or "All uploads verified in the archive"
    console.print(
        Panel(
            f"[{style}]{outcome.closeout_type.name}[/{style}]  {body}\n"
            f"[dim]eval code: {outcome.eval_code.name}[/dim]",
            title=f"Dataset {dataset_id}, job {job}",
        )
    )
    raise typer.Exit(code=EXIT_CODES[outcome.closeout_type])


@app.command()
def uploads(
    dataset_id: Annotated[
        int, typer.Option("--dataset-id", help="Dataset to list")
    ],
    db_path: Annotated[
        Path | None,
        typer.Option("--db", "-d", help="Path to SQLite database (overrides config)"),
    ] = None,
    config_path: Annotated[
        Path,
        typer.Option("--config", "-c", help="Path to status_check_config.json"),
    ] = DEFAULT_CONFIG_PATH,
) -> None:
    """List the upload attempts recorded for a dataset."""
    config = _load_config(config_path, db_path)
    _require_db(Path(config.db_path))

    with Database(config.db_path) as db:
        rows = db.list_upload_attempts(dataset_id)

    if not rows:
        console.print(f"[yellow]No uploads recorded for dataset {dataset_id}[/yellow]")
        raise typer.Exit(code=1)

    table = Table(title=f"Uploads for dataset {dataset_id}")
    table.add_column("Entry", justify="right")
    table.add_column("Job", justify="right")
    table.add_column("Status num", justify="right")
    table.add_column("Subfolder")
    table.add_column("Steps", justify="right")
    table.add_column("State", style="bold")
    table.add_column("Error code", justify="right")
    table.add_column("Entered")

    for row in rows:
        state = state_from_row(row["verified"], row["error_code"]).value
        style = _STATE_STYLES.get(state, "")
        table.add_row(
            str(row["entry_id"]),
            str(row["job"]),
            str(row["status_num"]),
            row["subfolder"] or "[dim](root)[/dim]",
            str(row["ingest_steps_completed"]),
            f"[{style}]{state}[/{style}]" if style else state,
            str(row["error_code"]),
            row["entered"] or "",
        )

    console.print(table)


@app.command()
def register(
    status_num: Annotated[
        int, typer.Argument(help="Status number assigned by the archive")
    ],
    dataset_id: Annotated[
        int, typer.Option("--dataset-id", help="Dataset that was uploaded")
    ],
    job: Annotated[
        int, typer.Option("--job", help="Job step that performed the upload")
    ],
    locator: Annotated[
        str | None,
        typer.Option("--locator", help="Status locator (default: built from status_base_url)"),
    ] = None,
    subfolder: Annotated[
        str, typer.Option("--subfolder", help="Uploaded subdirectory (empty for the whole dataset)")
    ] = "",
    db_path: Annotated[
        Path | None,
        typer.Option("--db", "-d", help="Path to SQLite database (overrides config)"),
    ] = None,
    config_path: Annotated[
        Path,
        typer.Option("--config", "-c", help="Path to status_check_config.json"),
    ] = DEFAULT_CONFIG_PATH,
) -> None:
    """Record an archive upload so later checks can verify it."""
    if status_num <= 0:
        console.print("[red]Error:[/red] Status num must be positive")
        raise typer.Exit(code=1)

    config = _load_config(config_path, db_path)
    status_uri = locator or build_status_locator(config.status_base_url, status_num)

    if locator:
        try:
            parsed = status_num_from_locator(locator)
        except ValueError as e:
            console.print(f"[red]Error:[/red] {e}")
            raise typer.Exit(code=1)
        if parsed != status_num:
            console.print(
                f"[red]Error:[/red] Locator refers to status num {parsed}, not {status_num}"
            )
            raise typer.Exit(code=1)

    with Database(config.db_path) as db:
        entry_id = db.add_upload_attempt(
            job=job,
            dataset_id=dataset_id,
            status_num=status_num,
            status_uri=status_uri,
            subfolder=subfolder,
        )

    console.print(
        f"[green]✓[/green] Recorded upload {status_num} for dataset {dataset_id} "
        f"(entry {entry_id})\n[dim]{status_uri}[/dim]"
    )


@app.command()
def skip(
    status_num: Annotated[
        int, typer.Argument(help="Status number of the upload to skip")
    ],
    dataset_id: Annotated[
        int, typer.Option("--dataset-id", help="Dataset the upload belongs to")
    ],
    db_path: Annotated[
        Path | None,
        typer.Option("--db", "-d", help="Path to SQLite database (overrides config)"),
    ] = None,
    config_path: Annotated[
        Path,
        typer.Option("--config", "-c", help="Path to status_check_config.json"),
    ] = DEFAULT_CONFIG_PATH,
) -> None:
    """Mark an upload as manually skipped so checks ignore it."""
    config = _load_config(config_path, db_path)
    _require_db(Path(config.db_path))

    with Database(config.db_path) as db:
        code, message = db.skip_upload(dataset_id, status_num)

    if code != RESULT_OK:
        console.print(f"[red]Error:[/red] {message}")
        raise typer.Exit(code=1)
    console.print(f"[green]✓[/green] {message}")


# ---------------------------------------------------------------------------
# config
# ---------------------------------------------------------------------------


@config_app.command("set-token")
def set_token(
    token: Annotated[
        str,
        typer.Argument(help="Archive API token to store in system keyring"),
    ],
) -> None:
    """Store the archive API token sent as a bearer token on status lookups."""
    try:
        store_api_token(token)
    except ValueError as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(code=1)
    except KeyringError as e:
        console.print(f"[red]Error:[/red] Keyring rejected the token: {e}")
        raise typer.Exit(code=1)
    console.print(f"[green]✓[/green] Archive API token saved (service: {SERVICE_NAME})")


@config_app.command("get-token")
def show_token() -> None:
    """Show which archive API token status checks will use, and its source."""
    token, source = resolve_api_token()
    if not token:
        console.print(
            "[yellow]No archive API token configured; lookups run anonymously.[/yellow]\n"
            f"Set one with [bold]ingestcheck config set-token[/bold] or {TOKEN_ENV_VAR}."
        )
        raise typer.Exit(code=1)
    console.print(f"[green]API token:[/green] {mask_token(token)}  [dim](from {source})[/dim]")


@config_app.command("remove-token")
def remove_token() -> None:
    """Delete the archive API token from the system keyring."""
    try:
        removed = delete_api_token()
    except KeyringError as e:
        console.print(f"[red]Error:[/red] Keyring refused the delete: {e}")
        raise typer.Exit(code=1)

    if removed:
        console.print("[green]✓[/green] Archive API token removed from keyring")
    else:
        console.print("[yellow]No archive API token in keyring.[/yellow]")

    _, source = resolve_api_token()
    if source == TOKEN_ENV_VAR:
        console.print(
            f"[yellow]Warning:[/yellow] {TOKEN_ENV_VAR} is still set; checks will use it."
        )


if __name__ == "__main__":
    app()
