import io
import json
import os
import unittest
from contextlib import redirect_stderr, redirect_stdout
from typing import List
from unittest.mock import patch

import curses

from snapper_tui import cli
from snapper_tui.config import Settings
from snapper_tui.models import Snapshot
from snapper_tui.snapper import SnapperError


class _FakeBackend:
    def __init__(self, snapshots: List[Snapshot], *, error: str = "") -> None:
        self.settings = Settings(snapper_path="/usr/bin/snapper", config_name="root", use_sudo=True)
        self._snapshots = snapshots
        self._error = error

    def list_snapshots(self) -> List[Snapshot]:
        if self._error:
            raise SnapperError(self._error)
        return list(self._snapshots)


class TestCmdTui(unittest.TestCase):
    def test_quit_returns_zero(self) -> None:
        calls = {"n": 0}

        def fake_run_tui(state):
            calls["n"] += 1
            state.quit = True

        with patch("snapper_tui.cli._run_tui", side_effect=fake_run_tui):
            rc = cli.cmd_tui(_FakeBackend([]))
        self.assertEqual(rc, 0)
        self.assertEqual(calls["n"], 1)

    def test_header_label_follows_settings(self) -> None:
        seen = []

        def fake_run_tui(state):
            seen.append(state.config_label)

        backend = _FakeBackend([])
        with patch("snapper_tui.cli._run_tui", side_effect=fake_run_tui):
            cli.cmd_tui(backend)
            backend.settings = Settings(snapper_path="/usr/bin/snapper")
            cli.cmd_tui(backend)
        self.assertEqual(seen, ["root", "default"])

    def test_curses_error_prints_tips_and_returns_two(self) -> None:
        err = io.StringIO()
        with patch("snapper_tui.cli._run_tui", side_effect=curses.error("setupterm: could not find terminal")), patch.dict(
            os.environ, {"TERM": "xterm-kitty"}
        ), redirect_stderr(err):
            rc = cli.cmd_tui(_FakeBackend([]))
        self.assertEqual(rc, 2)
        out = err.getvalue()
        self.assertIn("failed to initialize terminal UI", out)
        self.assertIn("'xterm-kitty'", out)
        self.assertIn("snapper-tui list", out)


class TestCmdList(unittest.TestCase):
    def test_prints_json(self) -> None:
        snaps = [Snapshot(config="root", number=1, description="first", userdata={"important": "yes"})]
        buf = io.StringIO()
        with redirect_stdout(buf):
            rc = cli.cmd_list(_FakeBackend(snaps), pretty=False)
        self.assertEqual(rc, 0)
        payload = json.loads(buf.getvalue())
        self.assertEqual(payload[0]["number"], 1)
        self.assertEqual(payload[0]["config"], "root")
        self.assertEqual(payload[0]["userdata"], {"important": "yes"})

    def test_backend_error_returns_one(self) -> None:
        out = io.StringIO()
        err = io.StringIO()
        with redirect_stdout(out), redirect_stderr(err):
            rc = cli.cmd_list(_FakeBackend([], error="Snapper list failed: no config"), pretty=True)
        self.assertEqual(rc, 1)
        self.assertEqual(out.getvalue(), "")
        self.assertIn("Error: Snapper list failed: no config", err.getvalue())


class TestCmdDoctor(unittest.TestCase):
    def test_reports_settings_and_counts(self) -> None:
        snaps = [Snapshot(config="root", number=1), Snapshot(config="root", number=2), Snapshot(config="home", number=1)]
        buf = io.StringIO()
        with redirect_stdout(buf):
            rc = cli.cmd_doctor(_FakeBackend(snaps))
        self.assertEqual(rc, 0)
        text = buf.getvalue()
        self.assertIn("snapper: /usr/bin/snapper", text)
        self.assertIn("sudo for changes: yes", text)
        self.assertIn("Listed snapshots: 3", text)
        self.assertIn("- root: 2", text)

    def test_listing_failure_is_reported(self) -> None:
        buf = io.StringIO()
        with redirect_stdout(buf):
            rc = cli.cmd_doctor(_FakeBackend([], error="boom"))
        self.assertEqual(rc, 0)
        self.assertIn("Listing failed: boom", buf.getvalue())


class TestMain(unittest.TestCase):
    def tearDown(self) -> None:
        cli.configure_logging(None)

    def test_default_command_is_tui(self) -> None:
        with patch.dict(os.environ, {}, clear=True), patch("snapper_tui.cli.cmd_tui", return_value=0) as cmd_tui:
            rc = cli.main(["--snapper", "/opt/snapper", "--config", "home", "--no-sudo", "--timeout", "5"])
        self.assertEqual(rc, 0)
        backend = cmd_tui.call_args[0][0]
        s = backend.settings
        self.assertEqual(s.snapper_path, "/opt/snapper")
        self.assertEqual(s.config_name, "home")
        self.assertFalse(s.use_sudo)
        self.assertEqual(s.timeout_s, 5.0)

    def test_list_subcommand(self) -> None:
        with patch.dict(os.environ, {}, clear=True), patch("snapper_tui.cli.cmd_list", return_value=0) as cmd_list:
            rc = cli.main(["--snapper", "/opt/snapper", "list", "--pretty"])
        self.assertEqual(rc, 0)
        self.assertTrue(cmd_list.call_args[1]["pretty"])

    def test_doctor_subcommand(self) -> None:
        with patch.dict(os.environ, {}, clear=True), patch("snapper_tui.cli.cmd_doctor", return_value=0) as cmd_doctor:
            rc = cli.main(["--snapper", "/opt/snapper", "--sudo", "doctor"])
        self.assertEqual(rc, 0)
        self.assertTrue(cmd_doctor.call_args[0][0].settings.use_sudo)


if __name__ == "__main__":
    unittest.main()
