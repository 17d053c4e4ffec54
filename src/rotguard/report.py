"""
report.py — Console report and JSON session log for a check run
"""

from datetime import datetime, timezone
from pathlib import Path

import orjson
from rich.console import Console

from rotguard import __version__
from rotguard.timegate import format_age

NO_MISMATCHES = "No mismatched checksums discovered."


def print_report(report, console: Console = None) -> None:
    """Print either the no-mismatch line or the list of corrupted files."""
    console = console or Console(emoji=False, markup=False, soft_wrap=True)
    scan = report.scan
    outcome = report.outcome

    console.rule("🧪 rotguard check")
    console.print(f"📂 Path: {report.root}")
    console.print(f"🗄️  Working dir: {report.var_dir}")
    console.print(f"⏳ Older than: {format_age(report.age_seconds)}")
    console.print(
        f"📦 Read {scan.files_hashed:,} files "
        f"({scan.files_too_recent:,} too recent, {scan.files_special:,} special, "
        f"{len(scan.warnings):,} unreadable)"
    )
    for warning in scan.warnings:
        console.print(f"⚠️  Unreadable: {warning.path} ({warning.reason})")

    if not report.had_baseline:
        console.print("ℹ️  No previous baseline; this scan starts one.")

    if outcome.clean:
        console.print(f"✅ {NO_MISMATCHES}")
    else:
        console.print(f"❌ {len(outcome.findings)} mismatched checksum(s):")
        for finding in outcome.findings:
            console.print(f"   {finding.path}")
            console.print(f"      was {finding.baseline_checksum}  now {finding.scan_checksum}")

    if report.promoted:
        console.print("📄 Scan promoted to current baseline.")


def save_check_session(session_dir: Path, report) -> Path:
    """
    Save the outcome of a check run as JSON in SESSION_DIR.
    """
    session_dir = Path(session_dir)
    session_dir.mkdir(parents=True, exist_ok=True)
    timestamp = datetime.now(timezone.utc).strftime("%Y%m%dT%H%M%SZ")
    output_file = session_dir / f"check_session_{timestamp}.json"

    metadata = {
        "tool": "rotguard",
        "version": __version__,
        "timestamp": timestamp,
        "root": str(report.root),
        "age_seconds": report.age_seconds,
        "files_hashed": report.scan.files_hashed,
        "bytes_hashed": report.scan.bytes_hashed,
        "unreadable": [{"path": w.path, "reason": w.reason} for w in report.scan.warnings],
        "mismatches": [
            {
                "path": f.path,
                "mtime": f.mtime,
                "baseline_checksum": f.baseline_checksum,
                "scan_checksum": f.scan_checksum,
            }
            for f in report.outcome.findings
        ],
        "promoted": report.promoted,
    }

    output_file.write_bytes(orjson.dumps(metadata, option=orjson.OPT_INDENT_2))
    return output_file
