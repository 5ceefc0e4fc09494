import logging
import signal
import sys

import click

from project_switcher.app import run_picker
from project_switcher.config import ConfigError, load_config
from project_switcher.constants import CACHE_FILE
from project_switcher.services.index import ProjectIndex, StoreError
from project_switcher.services.scanner import CandidateList, ScanGroup
from project_switcher.services.tmux import MultiplexerError, check_prerequisites, reconcile

logger = logging.getLogger(__name__)


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )


def _check_prerequisites() -> None:
    """Verify tmux is available, exit with a helpful message if not."""
    missing = check_prerequisites()
    if missing:
        click.echo("Missing required tools:\n", err=True)
        for m in missing:
            click.echo(f"  • {m}", err=True)
        sys.exit(1)


def _exit_on_signal(signum, frame) -> None:
    raise SystemExit(128 + signum)


def _report_scan_errors(scans: ScanGroup) -> None:
    for error in scans.new_errors():
        logger.warning(
            "Project scan incomplete for %s: %s", error.root.path, error.cause,
            extra={"root": error.root.path, "error": str(error.cause)},
        )


@click.command()
@click.option("--clear", "-c", is_flag=True, help="Clear the project cache before scanning")
@click.option("--prune", is_flag=True, help="Drop cached projects whose directories no longer exist")
@click.option("--verbose", "-v", is_flag=True, help="Log scan and tmux activity to stderr")
def cli(clear: bool, prune: bool, verbose: bool) -> None:
    """Pick a project and open its tmux session."""
    _configure_logging(verbose)
    _check_prerequisites()

    try:
        config = load_config()
    except ConfigError as e:
        click.echo(f"Could not open config file: {e}", err=True)
        raise SystemExit(1)

    try:
        index = ProjectIndex.load(CACHE_FILE, clear=clear)
    except StoreError as e:
        click.echo(f"Could not load project cache: {e}", err=True)
        raise SystemExit(1)

    signal.signal(signal.SIGTERM, _exit_on_signal)
    signal.signal(signal.SIGHUP, _exit_on_signal)

    exit_code = 0
    scans: ScanGroup | None = None
    try:
        if prune:
            removed = index.prune_missing()
            logger.debug("Pruned %d vanished projects from cache", removed, extra={"removed": removed})

        candidates = CandidateList(index.snapshot())
        scans = ScanGroup(config.root_dirs, index, candidates, max_depth=config.max_depth).start()

        selected = run_picker(candidates)
        _report_scan_errors(scans)
        if selected is None:
            exit_code = 1
            return

        try:
            reconcile(candidates[selected])
        except MultiplexerError as e:
            click.echo(str(e), err=True)
            exit_code = 1
    finally:
        if scans is not None:
            _report_scan_errors(scans)
        try:
            index.persist()
        except StoreError as e:
            logger.error(
                "Failed to persist project cache to %s: %s",
                e.path, e.reason,
                extra={"path": str(e.path)},
            )
            click.echo(f"Could not save project cache: {e}", err=True)
            exit_code = exit_code or 1
        if exit_code:
            raise SystemExit(exit_code)
