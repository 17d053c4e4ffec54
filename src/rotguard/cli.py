# src/rotguard/cli.py

import logging
import os
import shutil
import subprocess
import sys
import time
from pathlib import Path

import click
from rich.console import Console

from rotguard import __version__
from rotguard.check import accept_scan, run_check
from rotguard.errors import RotguardError
from rotguard.lock import read_lock_status
from rotguard.manifest import GENERATIONS, ManifestStore
from rotguard.report import print_report, save_check_session
from rotguard.timegate import format_age, parse_age
from rotguard.utils import (
    LOCK_NAME, canonical_scan_root, default_age, find_log_path, find_var_dir, prepare_var_dir,
)

_LOG_SETUP = False
_LOG_FILE = None
_LOG_PATH = None
_RUN_HEADER_EMITTED = False


def _lower_priority() -> str:
    """Drop to nice +15 and the idle IO class; returns a one-line summary."""
    done = []
    try:
        os.nice(15)
        done.append("nice +15")
    except OSError as e:
        done.append(f"nice failed ({e})")
    ionice = shutil.which("ionice")
    if ionice and subprocess.run([ionice, "-c3", "-p", str(os.getpid())], check=False).returncode == 0:
        done.append("ionice idle")
    else:
        done.append("ionice unavailable")
    return ", ".join(done)


class _TeeStream:
    """Console stream that also appends everything written to the master log."""

    def __init__(self, stream, log_file):
        self._stream = stream
        self._log_file = log_file

    def write(self, text):
        written = self._stream.write(text)
        try:
            self._log_file.write(text)
        except OSError:
            # the console stays authoritative if the log volume fills up
            pass
        return written

    def flush(self):
        self._stream.flush()
        try:
            self._log_file.flush()
        except OSError:
            pass

    def __getattr__(self, name):
        return getattr(self._stream, name)


def _setup_master_log() -> None:
    """Tee stdout/stderr into the master log unless ROTGUARD_LOG_DISABLED=1."""
    global _LOG_SETUP, _LOG_FILE, _LOG_PATH
    if _LOG_SETUP:
        return
    _LOG_SETUP = True
    if os.environ.get("ROTGUARD_LOG_DISABLED") == "1":
        return
    log_path = find_log_path()
    try:
        log_path.parent.mkdir(parents=True, exist_ok=True)
        _LOG_FILE = open(log_path, "a", encoding="utf-8", buffering=1)
    except OSError as e:
        click.echo(f"⚠️  Master log disabled: {e}", err=True)
        return
    _LOG_PATH = log_path
    sys.stdout = _TeeStream(sys.stdout, _LOG_FILE)
    sys.stderr = _TeeStream(sys.stderr, _LOG_FILE)


def _setup_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(message)s",
    )


def _emit_run_header() -> None:
    global _RUN_HEADER_EMITTED
    if _RUN_HEADER_EMITTED:
        return
    timestamp = time.strftime("%Y-%m-%dT%H:%M:%S%z")
    click.echo(f"🧾 rotguard v{__version__} @ {timestamp}")
    if _LOG_PATH:
        click.echo(f"🧾 log: {_LOG_PATH}")
    _RUN_HEADER_EMITTED = True


def _fail(error: Exception) -> None:
    click.echo(f"❌ {error}", err=True)
    sys.exit(1)


@click.group()
@click.version_option(__version__)
@click.option("-v", "--verbose", is_flag=True, help="Debug logging.")
def cli(verbose):
    """rotguard — re-read cold files and report silent corruption"""
    _setup_master_log()
    _setup_logging(verbose)
    _emit_run_header()


@cli.command("check")
@click.option("--path", "path", type=click.Path(), default=".", show_default=True,
              help="Directory tree to re-read.")
@click.option("--var", "var_dir", type=click.Path(), default=None,
              help="Working directory for manifests and the lock (default: $ROTGUARD_VAR_DIR or /var/tmp/rotguard).")
@click.option("--age", default=None,
              help="Only read files older than this, N[s|m|h|d|y] (default: $ROTGUARD_AGE or 7d).")
@click.option("--low-priority", is_flag=True, help="Run with nice +15 and idle IO priority.")
@click.option("--no-promote", is_flag=True, help="Never replace the baseline, even on a clean run.")
@click.option("--session-log", is_flag=True, help="Write a JSON summary into the working directory.")
@click.option("--progress/--no-progress", "show_progress", default=None,
              help="Force the progress bar on or off (default: on for a TTY).")
def check_cmd(path, var_dir, age, low_priority, no_promote, session_log, show_progress):
    """Scan PATH, compare against the last baseline, and list corrupted files."""
    try:
        age_seconds = parse_age(age if age is not None else default_age())
        root = canonical_scan_root(path)
        work_dir = prepare_var_dir(find_var_dir(var_dir))
    except RotguardError as e:
        _fail(e)

    if low_priority:
        click.echo(f"🐢 Low priority: {_lower_priority()}")

    click.echo(f"📍 Checking {root} (files older than {format_age(age_seconds)})")
    try:
        report = run_check(
            root=root,
            var_dir=work_dir,
            age_seconds=age_seconds,
            promote=not no_promote,
            show_progress=show_progress,
        )
    except RotguardError as e:
        _fail(e)

    print_report(report, Console(file=sys.stdout, emoji=False, markup=False, soft_wrap=True))
    if session_log:
        out = save_check_session(work_dir / "sessions", report)
        click.echo(f"📝 Saved check session log: {out}")


@cli.command("accept")
@click.option("--var", "var_dir", type=click.Path(), default=None,
              help="Working directory for manifests and the lock.")
def accept_cmd(var_dir):
    """Accept the last scan as the new baseline after reviewing mismatches."""
    try:
        work_dir = prepare_var_dir(find_var_dir(var_dir))
        accept_scan(work_dir)
    except RotguardError as e:
        _fail(e)
    click.echo("✅ Last scan promoted to current baseline.")


@cli.command("status")
@click.option("--var", "var_dir", type=click.Path(), default=None,
              help="Working directory for manifests and the lock.")
def status_cmd(var_dir):
    """Show the lock holder and the size of each manifest generation."""
    work_dir = find_var_dir(var_dir)
    if not work_dir.is_dir():
        click.echo(f"Working directory not found: {work_dir}")
        click.echo("Run 'rotguard check' to create it.")
        return

    try:
        lock = read_lock_status(Path(work_dir) / LOCK_NAME)
        store = ManifestStore(work_dir)
        counts = {gen: store.count(gen) for gen in GENERATIONS if store.exists(gen)}
    except RotguardError as e:
        _fail(e)

    click.echo(f"🗄️  Working dir: {work_dir}")
    if not lock.exists:
        click.echo("🔓 Lock: free")
    else:
        state = "stale" if lock.stale else "held"
        click.echo(
            f"🔒 Lock: {state} by pid {lock.owner_pid or 'unknown'} "
            f"(last heartbeat {lock.heartbeat_age:.0f}s ago)"
        )
    for gen in GENERATIONS:
        if gen in counts:
            click.echo(f"   {gen:<8} {counts[gen]:,} entries")
        else:
            click.echo(f"   {gen:<8} (none)")


def main():
    cli()


if __name__ == "__main__":
    main()
