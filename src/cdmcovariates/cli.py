"""Command-line interface for covariate extraction."""

from pathlib import Path
from typing import Annotated

import typer
from rich.console import Console
from rich.table import Table

app = typer.Typer(
    name="cdmcovariates",
    help="Construct sparse covariates for OMOP CDM cohorts.",
    no_args_is_help=True,
)

console = Console()


@app.command()
def extract(
    config: Annotated[
        Path,
        typer.Option(
            "--config",
            "-c",
            help="Path to configuration YAML file.",
            exists=True,
            dir_okay=False,
        ),
    ],
    output: Annotated[
        Path | None,
        typer.Option(
            "--output",
            "-o",
            help="Base output path (without extension). Default: output/{project}/{name}.",
        ),
    ] = None,
    tidy: Annotated[
        bool,
        typer.Option("--tidy", help="Tidy covariates before saving."),
    ] = False,
) -> None:
    """Extract covariates for a cohort and save them."""
    import sqlite3

    from cdmcovariates.config.loader import load_config
    from cdmcovariates.errors import CovariateExtractionError
    from cdmcovariates.extraction import get_db_covariate_data
    from cdmcovariates.persistence import save_covariate_data
    from cdmcovariates.tidy import tidy_covariate_data
    from cdmcovariates.utils.logging import configure_logging

    console.print(f"[blue]Loading configuration from {config}[/blue]")
    try:
        extraction_config = load_config(config)
        settings = extraction_config.build_settings()
    except (ValueError, CovariateExtractionError) as e:
        console.print(f"[red]Invalid configuration: {e}[/red]")
        raise typer.Exit(code=1) from e

    configure_logging(
        level=extraction_config.logging.level,
        json_output=extraction_config.logging.json_output,
    )

    db = extraction_config.database
    if not db.path.exists():
        console.print(f"[red]Error: database not found: {db.path}[/red]")
        raise typer.Exit(code=1)

    if output is None:
        output = extraction_config.output_path

    console.print(f"[dim]Database: {db.path}[/dim]")
    console.print(f"[dim]Builders: {', '.join(s.builder_id for s in settings)}[/dim]")

    # Pooled builders run on worker threads
    connection = sqlite3.connect(db.path, check_same_thread=False)
    try:
        data = get_db_covariate_data(
            connection,
            db.cdm_database_schema,
            settings,
            cohort_table=db.cohort_table,
            cohort_database_schema=db.cohort_database_schema,
            cohort_ids=extraction_config.cohort.cohort_ids,
            cdm_version=db.cdm_version.value,
            row_id_field=extraction_config.cohort.row_id_field,
            temp_schema=db.temp_schema,
            max_workers=extraction_config.dispatch.max_workers,
            timeout=extraction_config.dispatch.timeout_seconds,
        )
    except (CovariateExtractionError, ValueError) as e:
        console.print(f"[red]Extraction failed: {e}[/red]")
        raise typer.Exit(code=1) from e
    finally:
        connection.close()

    if tidy:
        data = tidy_covariate_data(data)

    data_path, _ = save_covariate_data(data, output)

    console.print()
    table = Table(title="Covariate Extraction Results")
    table.add_column("Builder", style="cyan")
    table.add_column("Seconds", style="green", justify="right")
    for builder_id, seconds in data.metadata["run"]["elapsed_seconds"].items():
        table.add_row(builder_id, f"{seconds:.3f}")
    console.print(table)
    _print_summary(data.summary(), data.metadata["run"]["population_size"])

    console.print(f"\n[green]Saved to: {data_path}[/green]")


@app.command()
def builders() -> None:
    """List registered covariate builders."""
    from cdmcovariates.builders.registry import get_registry

    registry = get_registry()

    table = Table(title="Registered Covariate Builders")
    table.add_column("Builder", style="cyan")
    table.add_column("Settings", style="green")
    table.add_column("Id range")
    table.add_column("Description", style="dim")

    for builder_id in registry.list_builders():
        info = registry.get_info(builder_id)
        id_range = (
            f"{info.covariate_id_range[0]}-{info.covariate_id_range[1]}"
            if info.covariate_id_range
            else "-"
        )
        table.add_row(builder_id, info.settings_type.__name__, id_range, info.description)

    console.print(table)


@app.command()
def inspect(
    path: Annotated[
        Path,
        typer.Argument(help="Saved result (base path or .covariates.joblib file)."),
    ],
) -> None:
    """Print a summary of saved covariate data."""
    from cdmcovariates.persistence import load_covariate_data

    try:
        data, _ = load_covariate_data(path)
    except (FileNotFoundError, TypeError) as e:
        console.print(f"[red]Error: {e}[/red]")
        raise typer.Exit(code=1) from e

    run = data.metadata.get("run", {})
    _print_summary(data.summary(), run.get("population_size"))

    if len(data.analysis_ref) > 0:
        console.print("\n[blue]Analyses:[/blue]")
        for row in data.analysis_ref.itertuples(index=False):
            kind = "binary" if row.is_binary else "continuous"
            console.print(f"  {row.analysis_id}: {row.analysis_name} ({row.domain_id}, {kind})")


@app.command()
def version() -> None:
    """Show version information."""
    from cdmcovariates import __version__

    console.print(f"cdmcovariates version {__version__}")


def _print_summary(summary: dict, population_size: int | None) -> None:
    table = Table(title="Covariate Data Summary")
    table.add_column("Metric", style="cyan")
    table.add_column("Value", style="green")

    if population_size is not None:
        table.add_row("Cohort rows", str(population_size))
    table.add_row("Rows with covariates", str(summary["n_rows"]))
    table.add_row("Covariates", str(summary["n_covariates"]))
    table.add_row("Non-zero values", str(summary["n_values"]))
    table.add_row("Analyses", str(summary["n_analyses"]))
    console.print(table)


if __name__ == "__main__":
    app()
