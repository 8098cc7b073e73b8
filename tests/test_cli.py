"""
Integration tests for the mirrorsync CLI.

Tests:
  - mirrorsync init: creates a valid .mirrorsync YAML, refuses overwrite without --force
  - mirrorsync status: prints the resolved profile and flags missing settings
  - sync / check: refuse to run with incomplete settings
"""
import os
import subprocess
import sys
import tempfile
import unittest
from pathlib import Path

import yaml

# ── Helpers ───────────────────────────────────────────────────────────────────

REPO_ROOT = Path(__file__).parent.parent


def run_mirrorsync(*args, cwd=None, input_text="", xdg=None):
    """Run the mirrorsync CLI and return (returncode, stdout, stderr)."""
    env = {**os.environ, "PYTHONPATH": str(REPO_ROOT)}
    if xdg is not None:
        env["XDG_CONFIG_HOME"] = str(xdg)
    result = subprocess.run(
        [sys.executable, "-m", "mirrorsync", *args],
        cwd=str(cwd or REPO_ROOT),
        capture_output=True,
        text=True,
        input=input_text,
        env=env,
        timeout=60,
    )
    return result.returncode, result.stdout, result.stderr


class CLITestCase(unittest.TestCase):

    def setUp(self):
        self.tmpdir = tempfile.TemporaryDirectory()
        base = Path(self.tmpdir.name)
        self.cwd = base / "project"
        self.cwd.mkdir()
        self.xdg = base / "xdg"
        self.xdg.mkdir()

    def tearDown(self):
        self.tmpdir.cleanup()

    def run_cli(self, *args):
        return run_mirrorsync(*args, cwd=self.cwd, xdg=self.xdg)


# ── Tests: mirrorsync init ────────────────────────────────────────────────────

class TestInitCommand(CLITestCase):
    """Tests for the 'mirrorsync init' subcommand."""

    def test_init_creates_valid_yaml(self):
        rc, out, err = self.run_cli("init", "--server", "myhost.com", "--port", "2222",
                                    "--user", "deploy", "--remote", "/srv/site")
        self.assertEqual(rc, 0, msg=f"stderr: {err}")
        data = yaml.safe_load((self.cwd / ".mirrorsync").read_text(encoding="utf-8"))
        profile = data["profiles"][0]
        self.assertEqual(profile["name"], "default")
        self.assertEqual(profile["server"], "myhost.com")
        self.assertEqual(profile["port"], 2222)
        self.assertEqual(profile["user"], "deploy")
        self.assertEqual(profile["remote_root"], "/srv/site")
        self.assertTrue((self.cwd / ".syncignore").exists())

    def test_init_quotes_awkward_values(self):
        rc, out, err = self.run_cli("init", "--server", "h", "--user", "o'brien",
                                    "--remote", "/srv/it's here")
        self.assertEqual(rc, 0, msg=f"stderr: {err}")
        profile = yaml.safe_load((self.cwd / ".mirrorsync").read_text(encoding="utf-8"))["profiles"][0]
        self.assertEqual(profile["user"], "o'brien")
        self.assertEqual(profile["remote_root"], "/srv/it's here")

    def test_init_refuses_overwrite(self):
        (self.cwd / ".mirrorsync").write_text("profiles: []\n", encoding="utf-8")
        rc, out, err = self.run_cli("init", "--server", "myhost.com", "--remote", "/srv")
        self.assertNotEqual(rc, 0)
        self.assertIn("already exists", err)
        self.assertEqual((self.cwd / ".mirrorsync").read_text(encoding="utf-8"), "profiles: []\n")

    def test_init_force_overwrites(self):
        (self.cwd / ".mirrorsync").write_text("profiles: []\n", encoding="utf-8")
        rc, out, err = self.run_cli("init", "--server", "newhost.com", "--remote", "/srv",
                                    "--force")
        self.assertEqual(rc, 0, msg=f"stderr: {err}")
        self.assertIn("newhost.com", (self.cwd / ".mirrorsync").read_text(encoding="utf-8"))

    def test_init_dry_run_does_not_write(self):
        rc, out, err = self.run_cli("init", "--server", "myhost.com", "--remote", "/srv",
                                    "--dry-run")
        self.assertEqual(rc, 0, msg=f"stderr: {err}")
        self.assertIn("[dry-run]", out)
        self.assertIn("myhost.com", out)
        self.assertFalse((self.cwd / ".mirrorsync").exists())
        self.assertFalse((self.cwd / ".syncignore").exists())

    def test_init_requires_remote_path(self):
        rc, out, err = self.run_cli("init", "--server", "myhost.com")
        self.assertNotEqual(rc, 0)
        self.assertIn("remote path is required", err)

    def test_init_keeps_existing_ignore_file(self):
        (self.cwd / ".syncignore").write_text("custom/**\n", encoding="utf-8")
        rc, out, err = self.run_cli("init", "--server", "h", "--remote", "/srv")
        self.assertEqual(rc, 0, msg=f"stderr: {err}")
        self.assertEqual((self.cwd / ".syncignore").read_text(encoding="utf-8"), "custom/**\n")


# ── Tests: status / sync / check ─────────────────────────────────────────────

class TestOtherCommands(CLITestCase):

    def _init(self, *extra):
        rc, out, err = self.run_cli("init", "--server", "myhost.com", "--user", "deploy",
                                    "--remote", "/srv/site", *extra)
        self.assertEqual(rc, 0, msg=f"stderr: {err}")

    def test_status_shows_profile_and_missing_password(self):
        self._init()
        rc, out, err = self.run_cli("status")
        self.assertEqual(rc, 0, msg=f"stderr: {err}")
        self.assertIn("deploy@myhost.com:22:/srv/site", out)
        self.assertIn("Incomplete settings: password", out)

    def test_status_found_from_subdirectory(self):
        self._init()
        sub = self.cwd / "src"
        sub.mkdir()
        rc, out, err = run_mirrorsync("status", cwd=sub, xdg=self.xdg)
        self.assertEqual(rc, 0, msg=f"stderr: {err}")
        self.assertIn(str(self.cwd.resolve() / ".mirrorsync"), out)

    def test_status_without_project_file(self):
        rc, out, err = self.run_cli("status")
        self.assertNotEqual(rc, 0)
        self.assertIn("mirrorsync init", err)

    def test_sync_once_with_incomplete_settings_fails(self):
        self._init()
        rc, out, err = self.run_cli("sync", "--once", "--no-prompt")
        self.assertEqual(rc, 1)
        self.assertIn("SFTP settings are incomplete", out)

    def test_sync_once_with_malformed_project_file_fails(self):
        (self.cwd / ".mirrorsync").write_text("profiles: [\n", encoding="utf-8")
        rc, out, err = self.run_cli("sync", "--once", "--no-prompt")
        self.assertEqual(rc, 1)
        self.assertIn("SFTP settings are incomplete", out)
        self.assertNotIn("Traceback", err)

    def test_check_with_incomplete_settings_fails(self):
        self._init()
        rc, out, err = self.run_cli("check")
        self.assertEqual(rc, 1)
        self.assertIn("missing: password", out)

    def test_no_command_prints_help(self):
        rc, out, err = self.run_cli()
        self.assertEqual(rc, 1)
        self.assertIn("usage: mirrorsync", out)


if __name__ == "__main__":
    unittest.main()
