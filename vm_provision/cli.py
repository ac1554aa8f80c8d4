"""
Command-line entry point: load configuration, pick a plan and run it.
"""

import datetime
import os
import signal
import sys
from pathlib import Path
from typing import Any, Dict, Optional

import click
from rich import box
from rich.markup import escape
from rich.table import Table

from . import __version__
from .config import DEFAULT_LOG_DIR, AppConfig
from .context import RunContext
from .errors import ConfigError
from .host import DryRunHost, SystemHost
from .plans import PLANS, build_plan
from .runlog import RunLog, setup_logger
from .runner import StepRunner
from .theme import (
    NordColors,
    console,
    create_header,
    display_panel,
    display_results_table,
    print_error,
    print_message,
    print_step,
    print_warning,
)

APP_NAME = "VM Provision"


# ----------------------------------------------------------------
# Signal Handling
# ----------------------------------------------------------------
def install_signal_handlers(run_log: RunLog) -> Dict[int, Any]:
    def handler(signum: int, frame: Any) -> None:
        sig_name = signal.Signals(signum).name
        run_log.error(f"Provisioning interrupted by {sig_name}.")
        run_log.close()
        sys.exit(130 if signum == signal.SIGINT else 128 + signum)

    previous = {}
    for s in (signal.SIGINT, signal.SIGTERM):
        previous[s] = signal.signal(s, handler)
    return previous


def show_plans() -> None:
    table = Table(
        title="Provisioning Plans",
        box=box.ROUNDED,
        title_style=f"bold {NordColors.FROST_2}",
        border_style=NordColors.FROST_3,
    )
    table.add_column("Plan", style=f"bold {NordColors.FROST_2}", no_wrap=True)
    table.add_column("Steps", justify="right")
    table.add_column("Description", style=NordColors.SNOW_STORM_1)
    config = AppConfig()
    for name, builder in PLANS.items():
        doc = " ".join((builder.__doc__ or "").split())
        table.add_row(name, str(len(builder(config))), doc)
    console.print(table)


def load_config(
    config_file: Optional[Path],
    plan: Optional[str],
    log_dir: Optional[Path],
    dry_run: bool,
) -> AppConfig:
    config = AppConfig.from_file(config_file) if config_file else AppConfig()
    config = config.with_env()
    return config.with_overrides(
        plan=plan, log_dir=log_dir, dry_run=True if dry_run else None
    )


def writes_log_files(config: AppConfig) -> bool:
    # A dry run only writes log files when a log directory was chosen explicitly.
    return not (config.dry_run and Path(config.log_dir) == DEFAULT_LOG_DIR)


def open_run_log(config: AppConfig) -> RunLog:
    if not writes_log_files(config):
        run_log = RunLog()
        run_log.add_console_sinks()
        return run_log
    return RunLog.to_files(
        config.combined_log_path, config.checkpoint_log_path, config.error_log_path
    )


# ----------------------------------------------------------------
# Main
# ----------------------------------------------------------------
@click.command(context_settings={"help_option_names": ["-h", "--help"]})
@click.option(
    "--config",
    "config_file",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    help="JSON file with configuration overrides.",
)
@click.option("--plan", type=click.Choice(sorted(PLANS)), help="Provisioning plan to run.")
@click.option(
    "--log-dir",
    type=click.Path(file_okay=False, path_type=Path),
    help="Directory for the combined, checkpoint and error logs.",
)
@click.option("--dry-run", is_flag=True, help="Show what would run without changing the system.")
@click.option("--list-plans", is_flag=True, help="List available plans and exit.")
@click.option("--skip-root-check", is_flag=True, help="Do not require root privileges.")
@click.option("-v", "--verbose", is_flag=True, help="Show command-level debug output.")
@click.version_option(__version__, prog_name="vm-provision")
def main(
    config_file: Optional[Path],
    plan: Optional[str],
    log_dir: Optional[Path],
    dry_run: bool,
    list_plans: bool,
    skip_root_check: bool,
    verbose: bool,
) -> None:
    """Provision an Ubuntu VM with a desktop, remote access and Firefox profiles."""
    setup_logger(verbose)

    if list_plans:
        show_plans()
        return

    try:
        config = load_config(config_file, plan, log_dir, dry_run)
        steps = build_plan(config)
    except ConfigError as e:
        print_error(str(e))
        sys.exit(2)

    console.print(create_header(APP_NAME, version=__version__))
    if config.dry_run:
        print_warning("Dry run: commands are logged, not executed.")

    if not (config.dry_run or skip_root_check) and os.geteuid() != 0:
        display_panel(
            "This script must be run as root (e.g., using sudo)",
            style=NordColors.RED,
            title="Permission Error",
        )
        sys.exit(1)

    try:
        run_log = open_run_log(config)
    except OSError as e:
        print_error(f"Cannot open log files in {config.log_dir}: {e}")
        sys.exit(1)
    if writes_log_files(config):
        print_message(f"Logging to {config.log_dir}")

    host = DryRunHost(config.os_version) if config.dry_run else SystemHost()
    ctx = RunContext(config=config, log=run_log, host=host)
    runner = StepRunner(ctx)
    previous_handlers = install_signal_handlers(run_log)
    print_step(f"Running plan {config.plan} ({len(steps)} steps)")

    try:
        run_log.checkpoint(
            f"Provisioning started at {datetime.datetime.now():%Y-%m-%d %H:%M:%S} "
            f"(plan: {config.plan}, {len(steps)} steps)"
        )
        result = runner.run(steps)
        if result.success:
            run_log.checkpoint("Provisioning script completed successfully.")
    finally:
        for s, h in previous_handlers.items():
            signal.signal(s, h)
        run_log.close()

    display_results_table(runner.summary_rows())
    if result.success:
        display_panel(
            f"All {len(steps)} steps completed.",
            style=NordColors.GREEN,
            title="Provisioning Complete",
        )
    else:
        display_panel(
            f"Step '{result.step_name}' failed: {escape(result.message)}\n\n"
            f"See {config.error_log_path} for details.",
            style=NordColors.RED,
            title="Provisioning Failed",
        )
    sys.exit(result.exit_code)


if __name__ == "__main__":
    main()
