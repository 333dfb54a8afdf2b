import os
import unittest
from pathlib import Path
from unittest.mock import patch

from snapper_tui import config as cfg


class TestSudoResolution(unittest.TestCase):
    def test_explicit_wins(self) -> None:
        with patch.dict(os.environ, {cfg.ENV_SNAPPER_TUI_SUDO: "1"}):
            self.assertFalse(cfg.should_use_sudo(explicit=False))
        with patch.dict(os.environ, {cfg.ENV_SNAPPER_TUI_SUDO: "0"}):
            self.assertTrue(cfg.should_use_sudo(explicit=True))

    def test_env_truthy_and_falsey(self) -> None:
        for v, expected in (("yes", True), ("ON", True), ("0", False), ("off", False), ("", False)):
            with patch.dict(os.environ, {cfg.ENV_SNAPPER_TUI_SUDO: v}):
                self.assertEqual(cfg.should_use_sudo(), expected, v)

    def test_default_depends_on_euid(self) -> None:
        with patch.dict(os.environ, {}, clear=True):
            with patch.object(cfg.os, "geteuid", return_value=0, create=True):
                self.assertFalse(cfg.should_use_sudo())
            with patch.object(cfg.os, "geteuid", return_value=1000, create=True):
                self.assertTrue(cfg.should_use_sudo())


class TestSnapperPath(unittest.TestCase):
    def test_explicit_then_env_then_path(self) -> None:
        with patch.dict(os.environ, {cfg.ENV_SNAPPER_TUI_SNAPPER: "/opt/snapper"}):
            self.assertEqual(cfg.resolve_snapper_path("/usr/local/bin/snapper"), "/usr/local/bin/snapper")
            self.assertEqual(cfg.resolve_snapper_path(), "/opt/snapper")
        with patch.dict(os.environ, {}, clear=True):
            with patch.object(cfg.shutil, "which", return_value="/usr/bin/snapper"):
                self.assertEqual(cfg.resolve_snapper_path(), "/usr/bin/snapper")
            with patch.object(cfg.shutil, "which", return_value=None):
                self.assertEqual(cfg.resolve_snapper_path(), "snapper")


class TestTimeout(unittest.TestCase):
    def test_resolution(self) -> None:
        with patch.dict(os.environ, {cfg.ENV_SNAPPER_TUI_TIMEOUT: "15"}):
            self.assertEqual(cfg.resolve_timeout(3), 3.0)
            self.assertEqual(cfg.resolve_timeout(), 15.0)
        for bad in ("abc", "-1", "0"):
            with patch.dict(os.environ, {cfg.ENV_SNAPPER_TUI_TIMEOUT: bad}):
                self.assertEqual(cfg.resolve_timeout(), cfg.DEFAULT_TIMEOUT_S, bad)


class TestLoadSettings(unittest.TestCase):
    def test_env_values(self) -> None:
        env = {
            cfg.ENV_SNAPPER_TUI_SNAPPER: "/opt/snapper",
            cfg.ENV_SNAPPER_TUI_CONFIG: " home ",
            cfg.ENV_SNAPPER_TUI_SUDO: "0",
            cfg.ENV_SNAPPER_TUI_LOG_FILE: "/tmp/snapper-tui.log",
            cfg.ENV_SNAPPER_TUI_LOG_LEVEL: "debug",
        }
        with patch.dict(os.environ, env, clear=True):
            s = cfg.load_settings()
        self.assertEqual(s.snapper_path, "/opt/snapper")
        self.assertEqual(s.config_name, "home")
        self.assertFalse(s.use_sudo)
        self.assertEqual(s.timeout_s, cfg.DEFAULT_TIMEOUT_S)
        self.assertEqual(s.log_file, Path("/tmp/snapper-tui.log"))
        self.assertEqual(s.log_level, "DEBUG")

    def test_explicit_overrides_env(self) -> None:
        with patch.dict(os.environ, {cfg.ENV_SNAPPER_TUI_CONFIG: "home"}, clear=True):
            s = cfg.load_settings(snapper_path="/x/snapper", config_name="root", use_sudo=True, log_level="warning")
        self.assertEqual(s.config_name, "root")
        self.assertTrue(s.use_sudo)
        self.assertIsNone(s.log_file)
        self.assertEqual(s.log_level, "WARNING")


if __name__ == "__main__":
    unittest.main()
