from __future__ import annotations

import json
import logging
import os
import signal
import subprocess
from typing import Callable, List, Optional, Sequence, Tuple

from snapper_tui.config import Settings
from snapper_tui.models import Snapshot, snapshot_from_json


logger = logging.getLogger(__name__)

LIST_COLUMNS = (
    "config,subvolume,number,type,pre-number,post-number,date,user,"
    "cleanup,description,userdata,used-space,default,active"
)


class SnapperError(Exception):
    """
    A snapper invocation failed to start, exited non-zero, or printed output
    that could not be decoded. The message is meant for the status line.
    """


Runner = Callable[[Sequence[str], float], Tuple[int, str, str]]


def _default_runner(cmd: Sequence[str], timeout_s: float) -> Tuple[int, str, str]:
    env = dict(os.environ)
    # Machine-readable output regardless of the user's locale.
    env["LC_ALL"] = "C.UTF-8"
    p: Optional[subprocess.Popen] = None
    try:
        # Important:
        # - start_new_session=True keeps sudo/snapper away from the curses TTY.
        # - stdin=DEVNULL avoids accidental reads (e.g. a password prompt).
        p = subprocess.Popen(
            list(cmd),
            stdin=subprocess.DEVNULL,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            text=True,
            # snapper prints paths verbatim; they need not be valid UTF-8.
            encoding="utf-8",
            errors="replace",
            env=env,
            start_new_session=True,
        )
        out, err = p.communicate(timeout=timeout_s)
        return p.returncode or 0, out or "", err or ""
    except subprocess.TimeoutExpired:
        # Terminate the whole process group so sudo's child doesn't linger.
        out = ""
        err = ""
        if p is not None:
            try:
                os.killpg(p.pid, signal.SIGTERM)
            except Exception:
                pass
            try:
                out, err = p.communicate(timeout=0.2)
            except Exception:
                out, err = "", ""
            try:
                os.killpg(p.pid, signal.SIGKILL)
            except Exception:
                try:
                    p.kill()
                except Exception:
                    pass
        return 124, (out or "").strip(), (err or "timeout").strip() or "timeout"
    except Exception as e:
        return 127, "", str(e)


def parse_snapshot_listing(text: str) -> List[Snapshot]:
    """
    Decode `snapper --jsonout list` output: {config_name: [record, ...], ...}.

    Every record is tagged with the config it was listed under.
    """
    try:
        payload = json.loads(text)
    except ValueError as e:
        raise SnapperError(f"Failed to parse snapper JSON output: {e}") from e
    if not isinstance(payload, dict):
        raise SnapperError("Failed to parse snapper JSON output: expected an object")

    out: List[Snapshot] = []
    for config_name, entries in payload.items():
        if not isinstance(entries, list):
            continue
        for entry in entries:
            s = snapshot_from_json(entry, config=str(config_name))
            if s is not None:
                out.append(s)
    return out


def _first_line(s: str) -> str:
    for ln in (s or "").splitlines():
        ln = ln.strip()
        if ln:
            return ln
    return ""


class SnapperBackend:
    """
    Thin wrapper around the snapper CLI.

    Listing runs unprivileged; create/delete/rollback/status go through
    `sudo -n` when enabled, so a missing sudo credential fails fast instead of
    prompting behind the curses screen.
    """

    def __init__(self, settings: Settings, *, run: Runner = _default_runner) -> None:
        self.settings = settings
        self._run = run

    def _base(self, *, privileged: bool, config: Optional[str] = None) -> List[str]:
        cmd: List[str] = []
        if privileged and self.settings.use_sudo:
            cmd.extend(["sudo", "-n"])
        cmd.append(self.settings.snapper_path)
        cfg = config or self.settings.config_name
        if cfg:
            cmd.extend(["-c", cfg])
        return cmd

    def _invoke(self, cmd: List[str], *, what: str) -> str:
        logger.debug("Running %s", " ".join(cmd))
        rc, out, err = self._run(cmd, self.settings.timeout_s)
        if rc != 0:
            detail = _first_line(err) or _first_line(out) or f"exit status {rc}"
            logger.warning("%s failed (rc=%s): %s", what, rc, (err or out).strip())
            raise SnapperError(f"{what} failed: {detail}")
        return out

    def list_snapshots(self) -> List[Snapshot]:
        cmd = self._base(privileged=False)
        cmd.extend(["--jsonout", "list", "--columns", LIST_COLUMNS])
        out = self._invoke(cmd, what="Snapper list")
        return parse_snapshot_listing(out)

    def create_snapshot(self, description: str) -> None:
        cmd = self._base(privileged=True)
        cmd.extend(["create", "--description", description])
        self._invoke(cmd, what="Snapshot create")

    def delete_snapshot(self, number: int, *, config: Optional[str] = None) -> None:
        cmd = self._base(privileged=True, config=config)
        cmd.extend(["delete", str(number)])
        self._invoke(cmd, what=f"Delete of snapshot {number}")

    def rollback(self, number: int, *, config: Optional[str] = None) -> None:
        cmd = self._base(privileged=True, config=config)
        cmd.extend(["rollback", str(number)])
        self._invoke(cmd, what=f"Rollback to snapshot {number}")

    def status_between(self, snapshot: Snapshot) -> str:
        start, end = snapshot.status_range
        cmd = self._base(privileged=True, config=snapshot.config or None)
        cmd.extend(["status", f"{start}..{end}"])
        return self._invoke(cmd, what=f"Status of snapshot {snapshot.number}")
