"""booking_ops.cli

Unified CLI entrypoint for booking-ops.

Modes (--mode):
  bookings  : ingest a tab-separated booking paste
  accounts  : ingest an email/password paste
  spend     : ingest a date/email/amount/note paste
  blocked   : mass-block the emails in a paste
  report    : print the derived model summary and ready lists
  export    : write the JSON snapshot (accounts with embedded bookings/sales)
  tsv       : write all accounts as email<TAB>password lines

Usage:
    booking-ops --mode bookings \\
        --state-path state/ops.json \\
        --paste-path exports/bookings.tsv \\
        --settings-file config/settings.yml \\
        --rejects-path artifacts/rejects/bookings.csv

    booking-ops --mode report --state-path state/ops.json --as-of 2026-01-31
"""

from __future__ import annotations

import json
import logging
import sys
import uuid
from datetime import date
from pathlib import Path

import click

from booking_ops.controller import OpsController
from booking_ops.parsers import accounts_to_tsv
from booking_ops.rewards import pending_rewards
from booking_ops.settings import SettingsValidationError, load_settings
from booking_ops.shared import RejectWriter, now_iso, write_run_report
from booking_ops.snapshot import (
    SnapshotImportError,
    load_state,
    save_state,
)

PASTE_MODES = ("bookings", "accounts", "spend", "blocked")


def _read_paste(paste_path: str | None, run_id: str) -> str:
    if not paste_path:
        click.echo(f"[{run_id}] ERROR: --paste-path is required for paste modes.", err=True)
        sys.exit(1)
    if paste_path == "-":
        return sys.stdin.read()
    try:
        return Path(paste_path).read_text(encoding="utf-8")
    except OSError as exc:
        click.echo(f"[{run_id}] ERROR: cannot read paste file {paste_path}: {exc}", err=True)
        sys.exit(1)


def _parse_as_of(as_of: str | None) -> date | None:
    if not as_of:
        return None
    try:
        return date.fromisoformat(as_of)
    except ValueError:
        raise click.BadParameter(f"'{as_of}' is not a YYYY-MM-DD date", param_hint="--as-of")


@click.command()
@click.option(
    "--mode",
    default="report",
    type=click.Choice(["bookings", "accounts", "spend", "blocked", "report", "export", "tsv"]),
    show_default=True,
    help="Operation to run",
)
@click.option("--state-path", required=True, type=click.Path(), help="JSON state file (created when missing)")
@click.option("--paste-path", default=None, help="[paste modes] Paste file, or '-' for stdin")
@click.option("--settings-file", default=None, type=click.Path(exists=True), help="YAML settings overrides")
@click.option("--out-path", default=None, type=click.Path(), help="[export|tsv] Output file (stdout when omitted)")
@click.option(
    "--rejects-path",
    default="./artifacts/rejects/booking_ops_rejects.csv",
    show_default=True,
    help="[paste modes] CSV of lines that failed to parse",
)
@click.option("--report-dir", default="./artifacts/reports", show_default=True, type=click.Path())
@click.option("--as-of", default=None, help="Reference date for cooldowns and tiers (YYYY-MM-DD)")
@click.option("--dry-run", is_flag=True, default=False)
@click.option("--run-id", default=None, help="Override UUID for log correlation")
@click.option("--verbose", "-v", is_flag=True, default=False)
def main(
    mode: str,
    state_path: str,
    paste_path: str | None,
    settings_file: str | None,
    out_path: str | None,
    rejects_path: str,
    report_dir: str,
    as_of: str | None,
    dry_run: bool,
    run_id: str | None,
    verbose: bool,
) -> None:
    """Booking rewards operations CLI."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    run_id = run_id or str(uuid.uuid4())
    started_at = now_iso()
    today = _parse_as_of(as_of)

    click.echo(f"[{run_id}] Starting {mode} run (dry_run={dry_run})")

    try:
        state = load_state(Path(state_path))
    except SnapshotImportError as exc:
        click.echo(f"[{run_id}] FATAL: {exc}", err=True)
        sys.exit(1)

    if settings_file:
        try:
            state = state.evolve(settings=load_settings(Path(settings_file), base=state.settings))
        except SettingsValidationError as exc:
            click.echo(f"[{run_id}] FATAL: settings file {settings_file}: {exc}", err=True)
            sys.exit(1)

    controller = OpsController(state, today=(lambda: today) if today else None)

    if mode in PASTE_MODES:
        text = _read_paste(paste_path, run_id)
        if mode == "bookings":
            summary = controller.ingest_bookings(text)
        elif mode == "accounts":
            summary = controller.ingest_accounts(text)
        elif mode == "spend":
            summary = controller.ingest_spend(text)
        else:
            summary = controller.ingest_blocked(text)
        counters = {**summary.to_dict(), "tech_blocks_written": controller.tech_blocks_written}

        if summary.errors:
            with RejectWriter(Path(rejects_path)) as rejects:
                rejects.write_errors(summary.errors, f"{mode}_parse_error")
            click.echo(f"[{run_id}] {len(summary.errors)} rejected line(s) -> {rejects_path}")

        click.echo(f"[{run_id}] {mode}: " + ", ".join(f"{k}={v}" for k, v in counters.items()))
        if dry_run:
            click.echo(f"[{run_id}] [dry-run] State not written.")
        else:
            save_state(controller.state, Path(state_path))
            click.echo(f"[{run_id}] State written: {state_path}")

        report_path = write_run_report(
            Path(report_dir), run_id, started_at, mode, dry_run,
            {"state_path": state_path, "paste_path": paste_path or ""},
            counters,
        )
        click.echo(f"[{run_id}] Run report: {report_path}")
        return

    if mode == "export":
        payload = json.dumps(controller.export_snapshot(), indent=2, ensure_ascii=False)
        if out_path:
            Path(out_path).parent.mkdir(parents=True, exist_ok=True)
            Path(out_path).write_text(payload, encoding="utf-8")
            click.echo(f"[{run_id}] Snapshot written: {out_path}")
        else:
            click.echo(payload)
        return

    if mode == "tsv":
        accounts = controller.state.accounts
        payload = accounts_to_tsv(accounts)
        if out_path:
            Path(out_path).parent.mkdir(parents=True, exist_ok=True)
            Path(out_path).write_text(payload + "\n", encoding="utf-8")
            click.echo(f"[{run_id}] {len(accounts)} account(s) written: {out_path}")
        else:
            click.echo(payload)
        return

    # report
    model = controller.model()
    click.echo(json.dumps(model.summary(), indent=2))
    click.echo(f"[{run_id}] Ready accounts ({len(model.accounts_ready)}):")
    for acc in model.accounts_ready:
        click.echo(f"  {acc.email}  net={acc.net_balance}  tier={acc.tier}  active={acc.active_bookings_count}")
    click.echo(f"[{run_id}] Eligible hotels ({len(model.hotels_eligible)}):")
    for hotel in model.hotels_eligible:
        click.echo(
            f"  {hotel.hotel_id}  {hotel.name}  confirmed={hotel.confirmed}  "
            f"reliability={hotel.reliability:.1f}"
        )
    blocked = [a for a in model.accounts if a.is_blocked]
    if blocked:
        click.echo(f"[{run_id}] Blocked accounts ({len(blocked)}):")
        for acc in blocked:
            click.echo(f"  {acc.email}  {acc.block_reason}")
    pending = pending_rewards(controller.state.bookings, controller.state.settings)
    click.echo(f"[{run_id}] Pending rewards: {len(pending)}")
    for item in pending:
        click.echo(f"  {item.booking.email}  {item.booking.booking_no}  {item.amount}  eta={item.eta or '-'}")


if __name__ == "__main__":
    main()
