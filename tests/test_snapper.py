import json
import subprocess
import unittest
from typing import List, Sequence, Tuple
from unittest.mock import patch

from snapper_tui.config import Settings
from snapper_tui.models import Snapshot
from snapper_tui.snapper import LIST_COLUMNS, SnapperBackend, SnapperError, parse_snapshot_listing


SAMPLE_LISTING = """
{
  "root": [
    {
      "subvolume": "/",
      "number": 0,
      "default": false,
      "active": false,
      "type": "single",
      "pre-number": null,
      "date": "",
      "user": "root",
      "used-space": null,
      "cleanup": "",
      "description": "current",
      "userdata": null
    },
    {
      "subvolume": "/",
      "number": 1,
      "default": false,
      "active": false,
      "type": "pre",
      "pre-number": null,
      "date": "2024-05-01 10:00:00",
      "user": "root",
      "used-space": 16384,
      "cleanup": "number",
      "description": "zypp(zypper)",
      "userdata": {"important": "yes"}
    },
    {
      "subvolume": "/",
      "number": 2,
      "default": true,
      "active": true,
      "type": "post",
      "pre-number": 1,
      "date": "2024-05-01 10:01:00",
      "user": "root",
      "used-space": 1048576,
      "cleanup": "number",
      "description": "",
      "userdata": {"important": "yes"}
    }
  ],
  "home": [
    {"subvolume": "/home", "number": 1, "type": "single", "user": "alice", "description": "timeline"}
  ]
}
"""


class _RecordingRunner:
    def __init__(self, results: List[Tuple[int, str, str]]) -> None:
        self.results = list(results)
        self.calls: List[Tuple[List[str], float]] = []

    def __call__(self, cmd: Sequence[str], timeout_s: float) -> Tuple[int, str, str]:
        self.calls.append((list(cmd), timeout_s))
        return self.results.pop(0) if self.results else (0, "", "")


def _settings(**kw) -> Settings:
    kw.setdefault("snapper_path", "/usr/bin/snapper")
    kw.setdefault("timeout_s", 7.0)
    return Settings(**kw)


class TestParseListing(unittest.TestCase):
    def test_parses_and_tags_config(self) -> None:
        snaps = parse_snapshot_listing(SAMPLE_LISTING)
        self.assertEqual([(s.config, s.number) for s in snaps], [("root", 0), ("root", 1), ("root", 2), ("home", 1)])

        pre = snaps[1]
        self.assertEqual(pre.type, "pre")
        self.assertEqual(pre.used_space, 16384)
        self.assertEqual(pre.cleanup, "number")
        self.assertEqual(pre.userdata, {"important": "yes"})
        self.assertIsNone(pre.pre_number)

        post = snaps[2]
        self.assertEqual(post.pre_number, 1)
        self.assertTrue(post.default)
        self.assertTrue(post.active)

        current = snaps[0]
        self.assertIsNone(current.cleanup)
        self.assertIsNone(current.used_space)
        self.assertEqual(current.userdata, {})

        home = snaps[3]
        self.assertEqual(home.user, "alice")
        self.assertEqual(home.subvolume, "/home")
        self.assertFalse(home.default)

    def test_malformed_json_raises(self) -> None:
        with self.assertRaises(SnapperError) as cm:
            parse_snapshot_listing("{not json")
        self.assertIn("parse", str(cm.exception))

    def test_non_object_payload_raises(self) -> None:
        with self.assertRaises(SnapperError):
            parse_snapshot_listing("[1, 2]")

    def test_records_without_number_are_skipped(self) -> None:
        snaps = parse_snapshot_listing(json.dumps({"root": [{"description": "x"}, {"number": 3}], "odd": "x"}))
        self.assertEqual([s.number for s in snaps], [3])


class TestBackendCommands(unittest.TestCase):
    def test_list_runs_unprivileged_with_all_columns(self) -> None:
        run = _RecordingRunner([(0, SAMPLE_LISTING, "")])
        backend = SnapperBackend(_settings(config_name="root"), run=run)
        snaps = backend.list_snapshots()
        self.assertEqual(len(snaps), 4)
        cmd, timeout = run.calls[0]
        self.assertEqual(cmd, ["/usr/bin/snapper", "-c", "root", "--jsonout", "list", "--columns", LIST_COLUMNS])
        self.assertEqual(timeout, 7.0)

    def test_create_uses_sudo(self) -> None:
        run = _RecordingRunner([(0, "", "")])
        SnapperBackend(_settings(), run=run).create_snapshot("before upgrade")
        self.assertEqual(
            run.calls[0][0], ["sudo", "-n", "/usr/bin/snapper", "create", "--description", "before upgrade"]
        )

    def test_delete_and_rollback_use_snapshot_config(self) -> None:
        run = _RecordingRunner([(0, "", ""), (0, "", "")])
        backend = SnapperBackend(_settings(use_sudo=False), run=run)
        backend.delete_snapshot(12, config="home")
        backend.rollback(5)
        self.assertEqual(run.calls[0][0], ["/usr/bin/snapper", "-c", "home", "delete", "12"])
        self.assertEqual(run.calls[1][0], ["/usr/bin/snapper", "rollback", "5"])

    def test_status_range_uses_pre_number(self) -> None:
        run = _RecordingRunner([(0, "c..... /etc/hosts\n", "")])
        backend = SnapperBackend(_settings(use_sudo=False), run=run)
        out = backend.status_between(Snapshot(config="root", number=9, pre_number=4))
        self.assertEqual(out, "c..... /etc/hosts\n")
        self.assertEqual(run.calls[0][0], ["/usr/bin/snapper", "-c", "root", "status", "4..9"])

    def test_status_range_falls_back_to_previous_number(self) -> None:
        run = _RecordingRunner([(0, "", ""), (0, "", "")])
        backend = SnapperBackend(_settings(use_sudo=False), run=run)
        backend.status_between(Snapshot(config="", number=9))
        backend.status_between(Snapshot(config="", number=0))
        self.assertEqual(run.calls[0][0][-1], "8..9")
        self.assertEqual(run.calls[1][0][-1], "0..0")

    def test_nonzero_exit_raises_with_stderr(self) -> None:
        run = _RecordingRunner([(1, "", "sudo: a password is required\n")])
        backend = SnapperBackend(_settings(), run=run)
        with self.assertLogs("snapper_tui.snapper", level="WARNING"):
            with self.assertRaises(SnapperError) as cm:
                backend.rollback(3)
        self.assertEqual(str(cm.exception), "Rollback to snapshot 3 failed: sudo: a password is required")

    def test_nonzero_exit_without_output(self) -> None:
        run = _RecordingRunner([(3, "", "")])
        with self.assertLogs("snapper_tui.snapper", level="WARNING"):
            with self.assertRaises(SnapperError) as cm:
                SnapperBackend(_settings(), run=run).list_snapshots()
        self.assertIn("exit status 3", str(cm.exception))


class _FakeProc:
    def __init__(self, *, pid: int = 321, communicate_side_effect=None, communicate_result=("out", "err"), returncode: int = 0):
        self.pid = pid
        self._communicate_side_effect = communicate_side_effect
        self._communicate_result = communicate_result
        self.returncode = returncode

    def communicate(self, timeout=None):
        if self._communicate_side_effect is not None:
            raise self._communicate_side_effect
        return self._communicate_result

    def kill(self):
        return


class TestDefaultRunner(unittest.TestCase):
    def test_uses_new_session_devnull_stdin_and_c_locale(self) -> None:
        from snapper_tui import snapper as mod

        captured = {}

        def fake_popen(args, **kwargs):
            captured["args"] = args
            captured["kwargs"] = kwargs
            return _FakeProc(returncode=0)

        with patch.object(mod.subprocess, "Popen", side_effect=fake_popen):
            rc, out, err = mod._default_runner(["snapper", "list"], 1.0)

        self.assertEqual((rc, out, err), (0, "out", "err"))
        self.assertEqual(captured["args"], ["snapper", "list"])
        kw = captured["kwargs"]
        self.assertIs(kw.get("stdin"), subprocess.DEVNULL)
        self.assertTrue(kw.get("text"))
        self.assertTrue(kw.get("start_new_session"))
        self.assertEqual((kw.get("env") or {}).get("LC_ALL"), "C.UTF-8")
        self.assertEqual(kw.get("encoding"), "utf-8")
        self.assertEqual(kw.get("errors"), "replace")

    def test_non_utf8_output_is_decoded_leniently(self) -> None:
        from snapper_tui import snapper as mod

        # A Latin-1 file name in a status report (0xe9 is not valid UTF-8 here).
        rc, out, err = mod._default_runner(["/bin/sh", "-c", "printf 'c..... /home/u/caf\\351.txt\\n'"], 5.0)

        self.assertEqual(rc, 0, err)
        self.assertEqual(out, "c..... /home/u/caf�.txt\n")

    def test_status_survives_non_utf8_paths(self) -> None:
        backend = SnapperBackend(_settings(snapper_path="/bin/sh", use_sudo=False))
        with patch.object(backend, "_base", return_value=["/bin/sh", "-c", "printf 'c..... /home/u/caf\\351.txt\\n'", "sh"]):
            out = backend.status_between(Snapshot(config="root", number=5))
        self.assertIn("/home/u/caf�.txt", out)

    def test_timeout_kills_process_group(self) -> None:
        from snapper_tui import snapper as mod

        fake = _FakeProc(communicate_side_effect=subprocess.TimeoutExpired(cmd="x", timeout=0.01))
        with patch.object(mod.subprocess, "Popen", return_value=fake), patch.object(mod.os, "killpg") as killpg:
            rc, _out, err = mod._default_runner(["snapper", "status", "1..2"], 0.01)

        self.assertEqual(rc, 124)
        self.assertEqual(err, "timeout")
        self.assertTrue(killpg.called)
        self.assertEqual(killpg.call_args_list[0][0][0], 321)

    def test_spawn_failure_is_reported_as_127(self) -> None:
        from snapper_tui import snapper as mod

        with patch.object(mod.subprocess, "Popen", side_effect=FileNotFoundError("no such file: snapper")):
            rc, out, err = mod._default_runner(["snapper", "list"], 1.0)
        self.assertEqual(rc, 127)
        self.assertEqual(out, "")
        self.assertIn("snapper", err)


if __name__ == "__main__":
    unittest.main()
