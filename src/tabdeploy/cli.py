"""Command-line interface for tabdeploy."""

from pathlib import Path
from typing import TYPE_CHECKING, Annotated

import typer
from rich.console import Console
from rich.table import Table

if TYPE_CHECKING:
    import pandas as pd

    from tabdeploy.config.settings import ProjectConfig

app = typer.Typer(
    name="tabdeploy",
    help="Tabular modelling workflows: fit, tune, pin, serve and query models.",
    no_args_is_help=True,
)
pins_app = typer.Typer(help="Inspect the model board.", no_args_is_help=True)
app.add_typer(pins_app, name="pins")

console = Console()

ConfigOption = Annotated[
    Path,
    typer.Option(
        "--config",
        "-c",
        help="Path to configuration YAML file.",
        exists=True,
        dir_okay=False,
    ),
]


@app.callback()
def main(
    verbose: Annotated[
        bool, typer.Option("--verbose", "-v", help="Show debug logs.")
    ] = False,
    json_logs: Annotated[
        bool, typer.Option("--json-logs", help="Emit logs as JSON lines.")
    ] = False,
) -> None:
    """Tabular modelling workflows: fit, tune, pin, serve and query models."""
    from tabdeploy.utils.logging import configure_logging

    configure_logging("DEBUG" if verbose else "INFO", json_output=json_logs)


def _load(config: Path) -> "ProjectConfig":
    from pydantic import ValidationError

    from tabdeploy.config.loader import load_config

    console.print(f"[blue]Loading configuration from {config}[/blue]")
    try:
        return load_config(config)
    except (ValueError, ValidationError) as e:
        console.print(f"[red]Invalid configuration: {e}[/red]")
        raise typer.Exit(code=1) from e


def _frame_table(df: "pd.DataFrame", title: str, max_rows: int = 10) -> Table:
    """Render the head of a frame as a rich table."""
    table = Table(title=title, min_width=len(title) + 4)
    for col in df.columns:
        table.add_column(str(col), style="cyan" if str(col).startswith(".") else None)
    for _, row in df.head(max_rows).iterrows():
        table.add_row(*[_fmt(v) for v in row])
    return table


def _fmt(value: object) -> str:
    if isinstance(value, float):
        return f"{value:.4g}"
    return str(value)


def _print_metrics(metrics: "pd.DataFrame", title: str) -> None:
    table = Table(title=title, min_width=len(title) + 4)
    table.add_column("Metric", style="cyan")
    table.add_column("Estimator", style="dim")
    table.add_column("Estimate", style="green")
    for _, row in metrics.iterrows():
        table.add_row(row[".metric"], row[".estimator"], f"{row['.estimate']:.4f}")
    console.print(table)


def _run(config: Path, *, tune: bool, pin: bool, track: bool | None, n_jobs: int | None) -> None:
    import pandera.errors

    from tabdeploy.deploy.errors import PinError
    from tabdeploy.modeling.pipeline import run_pipeline

    project_config = _load(config)
    console.print(
        f"[blue]{'Tuning' if tune else 'Fitting'} {project_config.model.kind} "
        f"({project_config.mode}) for {project_config.project}[/blue]"
    )

    try:
        result = run_pipeline(project_config, tune=tune, pin=pin, track=track, n_jobs=n_jobs)
    except FileNotFoundError as e:
        console.print(f"[red]Error: {e}[/red]")
        raise typer.Exit(code=1) from e
    except (ValueError, KeyError, PinError, pandera.errors.SchemaError) as e:
        console.print(f"[red]Run failed: {e}[/red]")
        raise typer.Exit(code=1) from e

    console.print(f"\n[dim]Split: {result.split!r}[/dim]")

    if result.tune_results is not None:
        best_table = _frame_table(
            result.tune_results.show_best(project_config.tuning.metric),
            title="Best candidates (resampled)",
        )
        console.print(best_table)
        chosen = ", ".join(f"{k}={v}" for k, v in (result.best or {}).items())
        console.print(f"[green]Selected: {chosen}[/green]")

    _print_metrics(result.metrics, title="Test-set metrics")

    if result.version is not None:
        console.print(
            f"\n[green]Pinned {result.model.name} version {result.version} "
            f"to {project_config.board.path}[/green]"
        )


@app.command()
def fit(
    config: ConfigOption,
    pin: Annotated[
        bool, typer.Option("--pin", help="Pin the fitted model to the configured board.")
    ] = False,
) -> None:
    """Fit the configured workflow on the training split and evaluate on the test split."""
    _run(config, tune=False, pin=pin, track=False, n_jobs=None)


@app.command()
def tune(
    config: ConfigOption,
    mlflow: Annotated[
        bool, typer.Option("--mlflow", help="Log the tuning run to MLflow.")
    ] = False,
    pin: Annotated[
        bool, typer.Option("--pin", help="Pin the finalized model to the configured board.")
    ] = False,
    n_jobs: Annotated[
        int | None,
        typer.Option("--n-jobs", "-j", help="Parallel workers (default: cores minus one)."),
    ] = None,
) -> None:
    """Tune parameters marked tune() over resamples, then fit the best workflow."""
    _run(config, tune=True, pin=pin, track=True if mlflow else None, n_jobs=n_jobs)


@app.command()
def serve(
    config: ConfigOption,
    version: Annotated[
        str | None, typer.Option("--version", help="Pin version (default: latest).")
    ] = None,
    host: Annotated[str | None, typer.Option("--host", help="Interface to bind.")] = None,
    port: Annotated[int | None, typer.Option("--port", "-p", help="HTTP port.")] = None,
) -> None:
    """Serve the pinned model over HTTP."""
    from tabdeploy.deploy.board import FolderBoard, vetiver_pin_read
    from tabdeploy.deploy.errors import PinError
    from tabdeploy.deploy.server import run_api

    project_config = _load(config)
    board = FolderBoard(project_config.board.path, versioned=project_config.board.versioned)

    try:
        model = vetiver_pin_read(board, project_config.deployment.model_name, version)
    except PinError as e:
        console.print(f"[red]Error: {e}[/red]")
        console.print(f"[blue]Fit and pin first: tabdeploy fit --config {config} --pin[/blue]")
        raise typer.Exit(code=1) from e

    run_api(
        model,
        host=host or project_config.server.host,
        port=port if port is not None else project_config.server.port,
    )


@pins_app.command("list")
def pins_list(config: ConfigOption) -> None:
    """List pins on the configured board."""
    from tabdeploy.deploy.board import FolderBoard

    project_config = _load(config)
    board = FolderBoard(project_config.board.path)
    names = board.pin_list()
    if not names:
        console.print(f"[yellow]No pins on board {board.path}[/yellow]")
        return

    table = Table(title=f"Pins in {board.path}")
    table.add_column("Name", style="cyan")
    table.add_column("Versions", style="green")
    table.add_column("Latest")
    for name in names:
        versions = board.pin_versions(name)
        table.add_row(name, str(len(versions)), versions["version"].iloc[-1])
    console.print(table)


@pins_app.command("versions")
def pins_versions(
    config: ConfigOption,
    name: Annotated[
        str | None, typer.Option("--name", "-n", help="Pin name (default: the configured model).")
    ] = None,
) -> None:
    """List versions of a pin, oldest first."""
    from tabdeploy.deploy.board import FolderBoard
    from tabdeploy.deploy.errors import PinNotFoundError

    project_config = _load(config)
    board = FolderBoard(project_config.board.path)
    name = name or project_config.deployment.model_name

    try:
        versions = board.pin_versions(name)
    except PinNotFoundError as e:
        console.print(f"[red]Error: {e}[/red]")
        raise typer.Exit(code=1) from e

    console.print(_frame_table(versions, title=f"Versions of {name}", max_rows=len(versions)))


@app.command()
def docker(
    config: ConfigOption,
    output: Annotated[
        Path, typer.Option("--output", "-o", help="Directory for the build context.")
    ] = Path("."),
    version: Annotated[
        str | None, typer.Option("--version", help="Pin version (default: latest).")
    ] = None,
) -> None:
    """Write app.py, requirements.txt and Dockerfile for the pinned model."""
    from tabdeploy.deploy.board import FolderBoard
    from tabdeploy.deploy.docker import prepare_docker
    from tabdeploy.deploy.errors import PinError

    project_config = _load(config)
    board = FolderBoard(project_config.board.path)

    try:
        written = prepare_docker(
            board,
            project_config.deployment.model_name,
            path=output,
            version=version,
            port=project_config.deployment.docker_port,
            python_version=project_config.deployment.python_version,
        )
    except PinError as e:
        console.print(f"[red]Error: {e}[/red]")
        raise typer.Exit(code=1) from e

    for path in written:
        console.print(f"[green]Wrote {path}[/green]")
    console.print(f"[dim]Build with: docker build -t {project_config.deployment.model_name} {output}[/dim]")


@app.command()
def query(
    url: Annotated[str, typer.Argument(help="Endpoint URL (API root or /predict).")],
    data: Annotated[
        str | None,
        typer.Argument(help="CSV path or URL with rows to predict (default: dataset.new_data)."),
    ] = None,
    config: Annotated[
        Path | None,
        typer.Option(
            "--config",
            "-c",
            help="Project config supplying dataset.new_data and the outcome column.",
            exists=True,
            dir_okay=False,
        ),
    ] = None,
    truth: Annotated[
        str | None,
        typer.Option("--truth", "-t", help="Outcome column to score predictions against."),
    ] = None,
    timeout: Annotated[float, typer.Option("--timeout", help="Request timeout (s).")] = 30.0,
) -> None:
    """Post rows to a running model API and show its predictions."""
    from tabdeploy.deploy.endpoint import ModelEndpoint
    from tabdeploy.deploy.errors import EndpointError
    from tabdeploy.evaluation.metrics import compute_metrics
    from tabdeploy.ingestion.base import read_table

    outcome = None
    if config is not None:
        project_config = _load(config)
        data = data or project_config.dataset.new_data
        outcome = project_config.outcome

    if data is None:
        console.print("[red]Error: no data given and no dataset.new_data configured[/red]")
        raise typer.Exit(code=1)

    try:
        new_data = read_table(data)
    except FileNotFoundError as e:
        console.print(f"[red]Error: {e}[/red]")
        raise typer.Exit(code=1) from e

    if truth is None and outcome is not None and outcome in new_data.columns:
        truth = outcome
    if truth is not None and truth not in new_data.columns:
        console.print(f"[red]Error: truth column '{truth}' not in data[/red]")
        raise typer.Exit(code=1)

    predictors = new_data.drop(columns=[truth]) if truth else new_data
    try:
        preds = ModelEndpoint(url, timeout=timeout).predict(predictors)
    except EndpointError as e:
        console.print(f"[red]Endpoint error: {e}[/red]")
        raise typer.Exit(code=1) from e

    console.print(_frame_table(preds, title=f"Predictions ({len(preds)} rows)"))

    if truth is not None:
        if ".pred_class" in preds.columns:
            metrics = compute_metrics(
                new_data[truth], preds[".pred_class"], "classification", metrics=["accuracy"]
            )
        else:
            metrics = compute_metrics(new_data[truth], preds[".pred"], "regression")
        _print_metrics(metrics, title=f"Metrics against {truth}")


@app.command()
def clean(
    source: Annotated[str, typer.Argument(help="Raw dollar-store CSV path or URL.")],
    output: Annotated[
        Path | None, typer.Option("--output", "-o", help="Write the cleaned table to CSV.")
    ] = None,
) -> None:
    """Clean the dollar-store product export."""
    import pandera.errors

    from tabdeploy.cleaning import clean_dollar_store
    from tabdeploy.ingestion.datasets import DollarStoreLoader

    try:
        raw = DollarStoreLoader(source).load()
        cleaned = clean_dollar_store(raw)
    except FileNotFoundError as e:
        console.print(f"[red]Error: {e}[/red]")
        raise typer.Exit(code=1) from e
    except pandera.errors.SchemaError as e:
        console.print(f"[red]Cleaned data failed validation: {e}[/red]")
        raise typer.Exit(code=1) from e

    table = Table(title=f"Cleaned columns ({len(cleaned)} rows)")
    table.add_column("Column", style="cyan")
    table.add_column("Type")
    table.add_column("Non-null", style="green")
    for col in cleaned.columns:
        table.add_row(str(col), str(cleaned[col].dtype), f"{cleaned[col].notna().sum()}/{len(cleaned)}")
    console.print(table)

    if output is not None:
        output.parent.mkdir(parents=True, exist_ok=True)
        cleaned.to_csv(output, index=False)
        console.print(f"\n[green]Saved to: {output}[/green]")


@app.command()
def version() -> None:
    """Show version information."""
    from tabdeploy import __version__

    console.print(f"tabdeploy version {__version__}")


if __name__ == "__main__":
    app()
