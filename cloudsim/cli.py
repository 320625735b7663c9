"""Command-line interface for the cloud simulator."""

from pathlib import Path
from typing import Optional

import typer
from loguru import logger
from rich.console import Console
from rich.table import Table

from .evaluation.metrics import SimulationAnalyzer
from .scenarios import carbon_aware_scenario, multi_tenant_scenario
from .utils.config import ScenarioConfig, build_simulation, load_config, save_results

app = typer.Typer(name="cloudsim", help="Discrete-event cloud datacenter simulator")
console = Console()


def configure_logging(verbose: bool, log_file: Optional[Path]) -> None:
    logger.remove()
    logger.add(lambda msg: console.print(msg, style="dim", end="", markup=False, highlight=False), level="DEBUG" if verbose else "WARNING")
    if log_file:
        logger.add(str(log_file), level="DEBUG")


@app.command()
def run(
    config: Path = typer.Argument(..., help="Scenario file (YAML or JSON)"),
    output: Optional[Path] = typer.Option(None, "--output", "-o", help="Output directory"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose logging"),
    log_file: Optional[Path] = typer.Option(None, "--log-file", help="Write a debug log to this file"),
) -> None:
    """Run a scenario described in a configuration file."""
    configure_logging(verbose, log_file)
    try:
        scenario = load_config(config)
    except (FileNotFoundError, ValueError) as e:
        console.print(f"Could not load {config}: {e}", style="bold red")
        raise typer.Exit(code=1)
    run_scenario(scenario, output)


@app.command("carbon-example")
def carbon_example(
    carbon_factor: float = typer.Option(0.4, "--carbon-factor", help="Grams of CO2 per kWh"),
    output: Optional[Path] = typer.Option(None, "--output", "-o", help="Output directory"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose logging"),
) -> None:
    """Single host, single Vm, single cloudlet with energy and carbon figures."""
    configure_logging(verbose, None)
    run_scenario(carbon_aware_scenario(carbon_factor), output)


@app.command("multi-tenant")
def multi_tenant(
    tenants: int = typer.Option(3, "--tenants", "-t", min=1, help="Number of tenants"),
    output: Optional[Path] = typer.Option(None, "--output", "-o", help="Output directory"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose logging"),
) -> None:
    """Several tenants sharing one datacenter."""
    configure_logging(verbose, None)
    run_scenario(multi_tenant_scenario(tenants), output)


def run_scenario(scenario: ScenarioConfig, output: Optional[Path]) -> dict:
    console.print(f"Starting scenario {scenario.name}", style="bold blue")

    simulation, _, brokers = build_simulation(scenario)
    simulation.start()

    analysis = SimulationAnalyzer(carbon_factor=scenario.carbon_factor).analyze(simulation)

    for broker in brokers:
        display_cloudlets(broker.name, analysis['cloudlets'], broker.id)
    display_results_summary(analysis)

    if simulation.errors:
        console.print(f"{len(simulation.errors)} event(s) failed during the run", style="bold red")
        for failure in simulation.errors:
            console.print(f"  {failure.origin}: {failure.error}", style="red")

    if output:
        save_results(analysis, output)
        console.print(f"Results saved to {output}")

    console.print("Simulation completed", style="bold green")
    return analysis


def display_cloudlets(title: str, rows: list, broker_id: int) -> None:
    """Display the cloudlets returned to one broker."""

    table = Table(title=f"{title} cloudlets")
    for column in ("Cloudlet ID", "Status", "Datacenter ID", "VM ID", "Time", "Start Time", "Finish Time"):
        table.add_column(column)

    for row in rows:
        if row['broker_id'] != broker_id:
            continue
        table.add_row(
            str(row['cloudlet_id']),
            row['status'].upper(),
            str(row['datacenter_id']),
            str(row['vm_id']),
            f"{row['cpu_time']:.2f}",
            _format_time(row['start_time']),
            _format_time(row['finish_time']),
        )

    console.print(table)


def display_results_summary(analysis: dict) -> None:
    """Display simulation results summary."""

    table = Table(title="Simulation Results Summary")
    table.add_column("Metric", style="cyan")
    table.add_column("Value", style="green")
    table.add_column("Unit", style="yellow")

    summary = analysis.get('summary', {})
    timing = analysis.get('timing', {})
    energy = analysis.get('energy', {})

    metrics = [
        ("Final Clock", f"{summary.get('final_clock', 0):.2f}", "time units"),
        ("Returned Cloudlets", f"{summary.get('returned_cloudlets', 0)}", "count"),
        ("Successful Cloudlets", f"{summary.get('successful_cloudlets', 0)}", "count"),
        ("Binding Failures", f"{summary.get('binding_failures', 0)}", "count"),
        ("Average CPU Time", f"{timing.get('avg_cpu_time', 0):.2f}", "time units"),
        ("Makespan", f"{timing.get('makespan', 0):.2f}", "time units"),
        ("Total Cost", f"{summary.get('total_cost', 0):.2f}", "currency"),
        ("Energy Consumed", f"{energy.get('total_energy_kwh', 0):.6f}", "kWh"),
        ("Carbon Emissions", f"{energy.get('total_carbon_g', 0):.6f}", "gCO2"),
        ("Peak Allocated Energy", f"{energy.get('peak_allocated_energy_kwh', 0):.6f}", "kWh"),
    ]

    for metric, value, unit in metrics:
        table.add_row(metric, value, unit)

    console.print(table)


def _format_time(value) -> str:
    if value is None or value != value:  # NaN from pandas
        return "-"
    return f"{value:.2f}"


def main() -> None:
    """Main entry point."""
    app()


if __name__ == "__main__":
    main()
