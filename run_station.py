#!/usr/bin/env python3
"""
SatHub station client
Monitors SatDump output directories and uploads completed passes to SatHub.

Usage:
    python run_station.py
    python run_station.py --config /path/to/config.yaml
"""

import argparse
import signal
import sys

from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from station import __version__
from station.pipeline import StationService
from station.pipeline.config import DEFAULT_CONFIG_PATH, StationConfig
from station.pipeline.context import PipelineContext
from station.pipeline.errors import ConfigError, StationError


def create_config_table(config: StationConfig) -> Table:
    """Create a rich table showing the loaded configuration"""
    table = Table(title="Station Configuration", show_header=True, header_style="bold magenta")
    table.add_column("Setting", style="cyan", no_wrap=True)
    table.add_column("Value", style="yellow")

    table.add_row("API URL", config.api_url)
    table.add_row("Watch Paths", "\n".join(str(p) for p in config.watch_paths))
    table.add_row("Processed Dir", str(config.processed_dir))
    table.add_row("Health Check", f"{config.health_check_interval}s")
    table.add_row("Process Delay", f"{config.process_delay}s")
    table.add_row("Sweep Interval", f"{config.sweep_interval}s")
    table.add_row("Insecure TLS", "yes" if config.insecure else "no")
    table.add_row("Verbose", "yes" if config.verbose else "no")

    return table


def create_pipeline_status(service: StationService) -> Table:
    """Create a rich table showing what this run did"""
    table = Table(title="Station Status", show_header=True, header_style="bold magenta")
    table.add_column("Component", style="cyan", no_wrap=True)
    table.add_column("Status", style="green")
    table.add_column("Details", style="yellow")

    status = service.get_status()
    coordinator = status['coordinator']
    stats = coordinator['statistics']
    uploader = coordinator['uploader']['statistics']
    health = status['health_monitor']

    table.add_row("Station", status['station_id'] or "unknown", f"Uptime: {health['uptime_human']}")
    table.add_row("Passes Posted", str(stats['passes_posted']), f"{stats['passes_failed']} failed")
    table.add_row("Files Uploaded", str(uploader['files_uploaded']), f"{uploader['files_failed']} failed")
    table.add_row("Passes Archived", str(uploader['passes_archived']), coordinator['processed_directory'])
    table.add_row("Health Checks", str(health['metrics']['checks_sent']),
                  f"{health['metrics']['checks_failed']} failed")
    table.add_row("Processing Time", f"{stats['processing_time_total']:.1f}s", "")

    return table


def parse_args(argv=None):
    parser = argparse.ArgumentParser(
        prog="sathub-station",
        description="SatHub Data Client for uploading satellite captures",
    )
    parser.add_argument("-c", "--config", default=DEFAULT_CONFIG_PATH,
                        help="Path to configuration file (default: %(default)s)")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    return parser.parse_args(argv)


def main(argv=None) -> int:
    args = parse_args(argv)
    console = Console()
    error_console = Console(stderr=True)

    try:
        config = StationConfig.load_or_default(args.config)
        if not config.token:
            error_console.print("[bold red]Error:[/bold red] station token is not configured")
            error_console.print(f"Please edit your config file at: {config.path}")
            return 1
        config.validate()
    except ConfigError as e:
        error_console.print(f"[bold red]Error loading config:[/bold red] {e}")
        return 1

    console.print(Panel.fit(
        f"[bold blue]SatHub Data Client {__version__}[/bold blue]",
        style="bold white on blue"
    ))
    console.print(create_config_table(config))

    context = PipelineContext.from_config(config)
    service = StationService(context)

    def _on_signal(signum, frame):
        service.request_stop(signal.Signals(signum).name)

    signal.signal(signal.SIGINT, _on_signal)
    signal.signal(signal.SIGTERM, _on_signal)

    try:
        exit_code = service.run()
    except StationError as e:
        error_console.print(f"[bold red]Station client failed:[/bold red] {e}")
        return 1

    console.print(create_pipeline_status(service))
    return exit_code


if __name__ == "__main__":
    sys.exit(main())
