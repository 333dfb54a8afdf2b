from __future__ import annotations

import argparse
import json
import logging
import os
import sys
from typing import List, Optional

import curses

from snapper_tui import __version__
from snapper_tui.config import (
    ENV_SNAPPER_TUI_CONFIG,
    ENV_SNAPPER_TUI_LOG_FILE,
    ENV_SNAPPER_TUI_SNAPPER,
    ENV_SNAPPER_TUI_SUDO,
    ENV_SNAPPER_TUI_TIMEOUT,
    Settings,
    load_settings,
)
from snapper_tui.logging_setup import configure_logging
from snapper_tui.models import snapshot_to_json
from snapper_tui.session import AppState
from snapper_tui.snapper import SnapperBackend, SnapperError
from snapper_tui.tui import run_tui


logger = logging.getLogger(__name__)


def cmd_list(backend: SnapperBackend, *, pretty: bool) -> int:
    try:
        snapshots = backend.list_snapshots()
    except SnapperError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    payload = [snapshot_to_json(s) for s in snapshots]
    txt = json.dumps(payload, ensure_ascii=False, indent=2 if pretty else None)
    sys.stdout.write(txt + "\n")
    return 0


def cmd_doctor(backend: SnapperBackend) -> int:
    s = backend.settings
    print(f"snapper-tui {__version__} doctor")
    print("")
    print(f"snapper: {s.snapper_path}")
    print(f"- Tip: set ${ENV_SNAPPER_TUI_SNAPPER} to override")
    print(f"config: {s.config_name or '(snapper default)'}")
    print(f"- Tip: set ${ENV_SNAPPER_TUI_CONFIG} or pass --config")
    print(f"sudo for changes: {'yes (sudo -n)' if s.use_sudo else 'no'}")
    print(f"- Tip: set ${ENV_SNAPPER_TUI_SUDO}=0 when running as root")
    print(f"timeout: {s.timeout_s:g}s (${ENV_SNAPPER_TUI_TIMEOUT})")
    print(f"log file: {s.log_file or 'disabled'} (level {s.log_level})")

    print("")
    try:
        snapshots = backend.list_snapshots()
    except SnapperError as e:
        print(f"Listing failed: {e}")
        return 0
    configs = sorted({x.config for x in snapshots})
    print(f"Listed snapshots: {len(snapshots)}")
    for c in configs:
        print(f"- {c}: {sum(1 for x in snapshots if x.config == c)}")
    return 0


def _prepare_curses_term_for_tui() -> None:
    """
    Best-effort terminal preflight before starting curses.

    Some systems lack terminfo entries for modern $TERM values (e.g.
    "xterm-kitty"); try the current $TERM, then a few common fallbacks.
    """
    current_term = (os.environ.get("TERM") or "").strip()
    candidates: List[str] = []
    if current_term:
        candidates.append(current_term)
    candidates.extend(["xterm-256color", "xterm", "screen-256color", "screen", "vt100", "linux"])
    seen = set()
    for t in candidates:
        if not t or t in seen:
            continue
        seen.add(t)
        try:
            curses.setupterm(term=t, fd=sys.__stdout__.fileno())
        except Exception:
            continue
        if t != current_term:
            logger.info("TERM %r has no terminfo entry; using %r", current_term, t)
            os.environ["TERM"] = t
        return
    # Nothing worked; curses.wrapper() will surface the error.


def _run_tui(state: AppState) -> None:
    _prepare_curses_term_for_tui()
    # Esc closes dialogs; don't wait the default second for an escape sequence.
    os.environ.setdefault("ESCDELAY", "25")
    curses.wrapper(lambda stdscr: run_tui(stdscr, state))


def cmd_tui(backend: SnapperBackend) -> int:
    state = AppState(backend, config_label=backend.settings.config_name or "default")
    try:
        _run_tui(state)
    except curses.error as e:
        term = os.environ.get("TERM")
        msg = str(e) or "curses error"
        logger.error("Terminal UI failed: %s", msg)
        print(f"Error: failed to initialize terminal UI: {msg}", file=sys.stderr)
        if term:
            print(f"Tip: your TERM is {term!r}. If this system lacks terminfo for it, try:", file=sys.stderr)
        else:
            print("Tip: TERM is not set. Try:", file=sys.stderr)
        print("  TERM=xterm-256color snapper-tui", file=sys.stderr)
        print("  TERM=xterm snapper-tui", file=sys.stderr)
        print("Tip: if you are running without a TTY, use `snapper-tui list` or `snapper-tui doctor`.", file=sys.stderr)
        return 2
    except KeyboardInterrupt:
        return 130
    return 0


def _settings_from_args(args: argparse.Namespace) -> Settings:
    return load_settings(
        snapper_path=args.snapper,
        config_name=args.config,
        use_sudo=args.use_sudo,
        timeout_s=args.timeout,
        log_file=args.log_file,
        log_level=args.log_level,
    )


def main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(prog="snapper-tui", description="Terminal dashboard for snapper snapshots")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument(
        "--config",
        "-c",
        dest="config",
        default=None,
        help=f"snapper config name (or set ${ENV_SNAPPER_TUI_CONFIG}).",
    )
    parser.add_argument(
        "--snapper",
        dest="snapper",
        default=None,
        help=f"Path to the snapper executable (or set ${ENV_SNAPPER_TUI_SNAPPER}).",
    )
    p_sudo = parser.add_mutually_exclusive_group()
    p_sudo.add_argument(
        "--sudo",
        dest="use_sudo",
        action="store_true",
        default=None,
        help=f"Run changes through `sudo -n` (default unless root; or set ${ENV_SNAPPER_TUI_SUDO}).",
    )
    p_sudo.add_argument(
        "--no-sudo",
        dest="use_sudo",
        action="store_false",
        default=None,
        help=f"Run snapper directly (or set {ENV_SNAPPER_TUI_SUDO}=0).",
    )
    parser.add_argument(
        "--timeout",
        dest="timeout",
        type=float,
        default=None,
        help=f"Per-command timeout in seconds (or set ${ENV_SNAPPER_TUI_TIMEOUT}).",
    )
    parser.add_argument(
        "--log-file",
        dest="log_file",
        default=None,
        help=f"Write a log file (or set ${ENV_SNAPPER_TUI_LOG_FILE}). Off by default.",
    )
    parser.add_argument("--log-level", dest="log_level", default=None, help="Log level (default INFO).")

    sub = parser.add_subparsers(dest="command")

    sub.add_parser("tui", help="Start the interactive dashboard (default).")

    p_list = sub.add_parser("list", help="Print snapshots as JSON.")
    p_list.add_argument("--pretty", action="store_true", help="Pretty-print JSON.")

    sub.add_parser("doctor", help="Print diagnostics.")

    args = parser.parse_args(argv)

    settings = _settings_from_args(args)
    configure_logging(settings.log_file, level=settings.log_level)
    backend = SnapperBackend(settings)

    cmd = args.command or "tui"
    logger.debug("Starting %s with %s", cmd, settings)
    if cmd == "tui":
        return cmd_tui(backend)
    if cmd == "list":
        return cmd_list(backend, pretty=bool(args.pretty))
    if cmd == "doctor":
        return cmd_doctor(backend)

    parser.print_help()
    return 2
