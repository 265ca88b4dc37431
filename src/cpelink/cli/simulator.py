"""CLI for the CPE Simulator.

This module provides the command-line interface for running a simulated
TR-069 CPE against an ACS and for inspecting device data models.
"""

import asyncio
import sys
from pathlib import Path
from typing import Optional

import click
import yaml
from rich.console import Console
from rich.table import Table

from cpelink.datamodel import DataModelError, load_device_model
from cpelink.observability.logging import LOG_FORMATS, LoggerManager, LoggingConfig
from cpelink.simulator import (
    CodecError,
    CpeSimulator,
    SimulatorConfig,
    SimulatorError,
    TransportError,
)
from cpelink.simulator.client import DEFAULT_DATA_MODEL

console = Console()


# Configure logging
def setup_logging(
    verbose: bool = False,
    log_format: str = "rich",
    serial_number: Optional[str] = None,
) -> LoggerManager:
    """Set up logging with a Rich handler or structured output."""
    config = LoggingConfig(level="DEBUG" if verbose else "INFO", format=log_format)
    manager = LoggerManager(config, console=console)
    manager.configure(extra_fields={"serial_number": serial_number} if serial_number else None)
    return manager


@click.group()
@click.option("-v", "--verbose", is_flag=True, help="Enable verbose output")
@click.pass_context
def cli(ctx: click.Context, verbose: bool) -> None:
    """CPE Simulator for TR-069 ACS testing.

    Simulates a CWMP device that informs an ACS, answers its RPCs and
    reports bulk data.
    """
    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose


@cli.command()
@click.option(
    "-u", "--acs-url",
    default=None,
    help="ACS URL (e.g. http://127.0.0.1:7547/)",
)
@click.option(
    "-s", "--serial",
    default=None,
    help="Device serial number",
)
@click.option(
    "-m", "--data-model",
    type=click.Path(exists=True, path_type=Path),
    default=None,
    help="Data model file (YAML or JSON)",
)
@click.option(
    "-c", "--config",
    type=click.Path(exists=True, path_type=Path),
    help="YAML configuration file",
)
@click.option(
    "--no-bulk-data",
    is_flag=True,
    help="Disable the bulk data reporter",
)
@click.option(
    "--log-format",
    type=click.Choice(LOG_FORMATS),
    default="rich",
    help="Log output format",
)
@click.pass_context
def run(
    ctx: click.Context,
    acs_url: Optional[str],
    serial: Optional[str],
    data_model: Optional[Path],
    config: Optional[Path],
    no_bulk_data: bool,
    log_format: str,
) -> None:
    """Run the simulated CPE until interrupted.

    Informs the ACS, serves its RPCs and connection requests, and stops
    with an error on the first failed ACS exchange.
    """
    # Build configuration
    if config:
        with open(config) as f:
            config_data = yaml.safe_load(f) or {}
        sim_config = SimulatorConfig.from_dict(config_data)
    else:
        sim_config = SimulatorConfig()

    # Command-line options override the file
    if acs_url:
        sim_config.acs_url = acs_url
    if serial:
        sim_config.serial_number = serial
    if data_model:
        sim_config.data_model = str(data_model)
    if no_bulk_data:
        sim_config.bulk_data.enabled = False

    # Validate config
    try:
        sim_config.validate()
    except ValueError as e:
        console.print(f"[red]Configuration error:[/red] {e}")
        sys.exit(1)

    logging_manager = setup_logging(ctx.obj.get("verbose", False), log_format, sim_config.serial_number)

    console.print("[bold]CPE Simulator[/bold]")
    console.print(f"ACS: {sim_config.acs_url}")
    console.print(f"Serial: {sim_config.serial_number}")
    console.print(f"Data model: {sim_config.data_model or DEFAULT_DATA_MODEL.name}")
    console.print(f"Bulk data: {'enabled' if sim_config.bulk_data.enabled else 'disabled'}")
    console.print()

    try:
        simulator = CpeSimulator(sim_config)
    except (DataModelError, OSError) as e:
        console.print(f"[red]Error loading data model:[/red] {e}")
        logging_manager.shutdown()
        sys.exit(1)

    exit_code = 0
    try:
        asyncio.run(simulator.run())
    except KeyboardInterrupt:
        console.print("\n[yellow]Interrupted[/yellow]")
    except (TransportError, CodecError) as e:
        console.print(f"[red]ACS exchange failed:[/red] {e}")
        exit_code = 1
    except SimulatorError as e:
        console.print(f"[red]Error:[/red] {e}")
        exit_code = 1
    finally:
        logging_manager.shutdown()

    # Print summary
    stats = simulator.statistics
    console.print()
    console.print("[bold]Summary[/bold]")
    console.print(f"  Sessions: {stats.sessions_completed}/{stats.sessions_started}")
    console.print(f"  Exchanges: {stats.total_exchanges}")
    console.print(f"  RPCs handled: {stats.rpcs_handled}")
    console.print(f"  Faults sent: {stats.faults_sent}")
    console.print(f"  Connection requests: {stats.connection_requests}")
    console.print(f"  Reports sent: {stats.reports_sent} (failed: {stats.reports_failed})")
    if stats.avg_session_duration_ms > 0:
        console.print(f"  Avg session time: {stats.avg_session_duration_ms:.1f}ms")

    if exit_code:
        sys.exit(exit_code)


@cli.command()
@click.option(
    "-o", "--output",
    type=click.Path(path_type=Path),
    default=Path("cpe-simulator.yaml"),
    help="Output file path",
)
def config_generate(output: Path) -> None:
    """Generate sample configuration file."""
    sample_config = """\
# CPE Simulator Configuration
# ===========================

# ACS connection settings
acs:
  url: "http://127.0.0.1:7547/"
  socket_timeout: 30.0

# Simulated device
device:
  serial_number: "CPE-SIM-0001"
  # data_model: "my-device.yaml"  # defaults to the packaged IGD model

# CWMP session behavior
session:
  default_inform_interval: 10.0  # used when PeriodicInformInterval is absent
  first_event: "1 BOOT"
  listen_for_connection_requests: true

# Bulk data reporting
bulk_data:
  enabled: true
  interval: 10.0
  max_profiles: 5
  max_parameters: 98
  request_timeout: 2.0
"""

    with open(output, "w") as f:
        f.write(sample_config)

    console.print(f"[green]Generated configuration file:[/green] {output}")


@cli.command()
@click.option(
    "-m", "--data-model",
    type=click.Path(exists=True, path_type=Path),
    default=None,
    help="Data model file (YAML or JSON), defaults to the packaged model",
)
@click.option(
    "-p", "--prefix",
    default="",
    help="Only show parameters under this path",
)
def show_model(data_model: Optional[Path], prefix: str) -> None:
    """Show the parameters of a data model."""
    try:
        model = load_device_model(data_model or DEFAULT_DATA_MODEL)
    except (DataModelError, OSError, yaml.YAMLError, ValueError) as e:
        console.print(f"[red]Error loading data model:[/red] {e}")
        sys.exit(1)

    paths = model.paths(prefix)
    if not paths:
        console.print(f"[yellow]No parameters under:[/yellow] {prefix}")
        return

    table = Table(title=f"Data model ({len(paths)} parameters)")
    table.add_column("Path", style="cyan")
    table.add_column("Writable")
    table.add_column("Type", style="dim")
    table.add_column("Value", style="green")

    for path in paths:
        record = model[path]
        table.add_row(
            path,
            "yes" if record.writable else "no",
            record.type or "object",
            record.value,
        )

    console.print(table)


def main() -> None:
    """Entry point for cpelink CLI."""
    cli()


if __name__ == "__main__":
    main()
