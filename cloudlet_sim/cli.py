"""Command-line interface for the private-cloud simulator."""

import typer
from typing import Optional
from pathlib import Path
from rich.console import Console
from rich.table import Table
import pandas as pd
from loguru import logger

from .core.errors import ConfigurationError
from .evaluation.metrics import RunSummary, cloudlets_to_frame, summarize_run
from .utils.config import (
    build_scenario,
    default_scenario_config,
    load_config,
    save_config,
    save_results,
)

app = typer.Typer(name="cloudlet-sim", help="Private-cloud datacenter simulator")
console = Console()


@app.command()
def run(
    config: Optional[Path] = typer.Option(None, "--config", "-c", help="Scenario file (YAML or JSON)"),
    output: Optional[Path] = typer.Option(None, "--output", "-o", help="Output directory"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose logging"),
) -> None:
    """Run a datacenter simulation and print the cloudlet results."""

    if verbose:
        logger.remove()
        logger.add("logs/simulation_{time}.log", level="DEBUG")
        logger.add(lambda msg: console.print(msg, style="dim", end=""), level="INFO")

    console.print("🚀 Starting datacenter simulation", style="bold blue")

    try:
        if config is not None:
            scenario_config = load_config(config)
            console.print(f"📋 Loaded configuration from {config}")
        else:
            scenario_config = default_scenario_config()
            console.print("📋 Using default private-cloud configuration")
        scenario = build_scenario(scenario_config)
    except (ConfigurationError, FileNotFoundError) as e:
        console.print(f"❌ {e}", style="bold red")
        raise typer.Exit(code=1)

    console.print(
        f"⚡ Running {len(scenario.vms)} VMs and {len(scenario.cloudlets)} cloudlets "
        f"on {len(scenario.datacenter.hosts)} hosts..."
    )
    received = scenario.run()

    frame = cloudlets_to_frame(received)
    summary = summarize_run(scenario.broker, scenario.datacenter)
    display_cloudlet_table(frame)
    display_results_summary(summary)

    if output:
        save_results(summary.to_dict(), frame, output)
        console.print(f"💾 Results saved to {output}")

    console.print("✅ Simulation completed successfully!", style="bold green")


@app.command("init-config")
def init_config(
    path: Path = typer.Argument(Path("configs/private_cloud.yaml"), help="Where to write the scenario"),
) -> None:
    """Write the default private-cloud scenario to a file."""
    try:
        save_config(default_scenario_config(), path)
    except ConfigurationError as e:
        console.print(f"❌ {e}", style="bold red")
        raise typer.Exit(code=1)
    console.print(f"📝 Default configuration written to {path}")


def display_cloudlet_table(frame: pd.DataFrame) -> None:
    """Display one row per received cloudlet."""

    table = Table(title="Cloudlet Results")
    for column, header in [
        ("cloudlet_id", "Cloudlet ID"),
        ("status", "Status"),
        ("datacenter_id", "Datacenter ID"),
        ("vm_id", "VM ID"),
        ("cpu_time", "Time"),
        ("start_time", "Start Time"),
        ("finish_time", "Finish Time"),
    ]:
        table.add_column(header, style="cyan" if column == "cloudlet_id" else None)

    for row in frame.itertuples(index=False):
        table.add_row(
            str(row.cloudlet_id),
            row.status,
            str(row.datacenter_id),
            str(row.vm_id),
            f"{row.cpu_time:.2f}",
            "-" if pd.isna(row.start_time) else f"{row.start_time:.2f}",
            "-" if pd.isna(row.finish_time) else f"{row.finish_time:.2f}",
        )

    console.print(table)


def display_results_summary(summary: RunSummary) -> None:
    """Display simulation results summary."""

    table = Table(title="Simulation Results Summary")
    table.add_column("Metric", style="cyan")
    table.add_column("Value", style="green")
    table.add_column("Unit", style="yellow")

    metrics = [
        ("Cloudlets Received", f"{summary.total_cloudlets}", "count"),
        ("Succeeded", f"{summary.succeeded}", "count"),
        ("Failed", f"{summary.failed}", "count"),
        ("Canceled", f"{summary.canceled}", "count"),
        ("Makespan", f"{summary.makespan:.4f}", "seconds"),
        ("Average Turnaround", f"{summary.avg_turnaround:.4f}", "seconds"),
        ("Processing Cost", f"{summary.total_processing_cost:.2f}", "currency"),
        ("VMs Created", f"{summary.vms_created}", "count"),
        ("VM Creation Failures", f"{summary.vms_failed}", "count"),
    ]

    for metric, value, unit in metrics:
        table.add_row(metric, value, unit)

    console.print(table)


def main() -> None:
    """Main entry point."""
    app()


if __name__ == "__main__":
    main()
