"""
Tests for config loading, profiles and the change-notifying store.
"""
import os
import tempfile
import unittest
from pathlib import Path
from unittest import mock

import yaml

from mirrorsync.config import (ConfigStore, InvalidPortError, SyncConfig, find_project_file,
                               get_profile, parse_port)
from mirrorsync.errors import ErrorCode, MirrorSyncError


class TestProfiles(unittest.TestCase):

    def test_named_profile_merged_with_defaults(self):
        data = {
            "defaults": {"port": 2222, "interval": 5},
            "profiles": [
                {"name": "staging", "server": "stage.example.com"},
                {"name": "prod", "server": "prod.example.com", "interval": 30},
            ],
        }
        prof = get_profile(data, "prod")
        self.assertEqual(prof["server"], "prod.example.com")
        self.assertEqual(prof["port"], 2222)
        self.assertEqual(prof["interval"], 30)

    def test_unknown_profile_falls_back_to_first(self):
        data = {"profiles": [{"name": "a", "server": "a.example.com"}]}
        self.assertEqual(get_profile(data, "missing")["server"], "a.example.com")

    def test_from_profile(self):
        cfg = SyncConfig.from_profile({
            "server": "example.com",
            "port": "2200",
            "user": "deploy",
            "password": "pw",
            "base_remote": "/srv/",
            "remote_root": "site",
            "local_root": "web",
            "max_upload_size": 1024,
        }, base_dir=Path("/work"))
        self.assertEqual(cfg.host, "example.com")
        self.assertEqual(cfg.port, 2200)
        self.assertEqual(cfg.remote_path, "/srv/site")
        self.assertEqual(cfg.local_root, Path("/work/web").resolve())
        self.assertEqual(cfg.max_upload_size, 1024)
        self.assertEqual(cfg.missing_fields(), [])

    def test_missing_fields(self):
        cfg = SyncConfig(host="h")
        self.assertEqual(cfg.missing_fields(), ["user", "password"])
        cfg = SyncConfig(host="h", user="u", key_path="~/.ssh/id_ed25519")
        self.assertEqual(cfg.missing_fields(), [])

    def test_parse_port(self):
        self.assertEqual(parse_port(" 22 "), 22)
        for bad in ("abc", "0", "65536", None):
            with self.assertRaises(InvalidPortError):
                parse_port(bad)


class TestProjectFile(unittest.TestCase):

    def test_found_in_parent_directory(self):
        with tempfile.TemporaryDirectory() as tmp:
            root = Path(tmp).resolve()
            (root / ".mirrorsync").write_text("profiles: []\n", encoding="utf-8")
            nested = root / "a" / "b"
            nested.mkdir(parents=True)
            self.assertEqual(find_project_file(nested), root / ".mirrorsync")


class TestConfigStore(unittest.TestCase):

    def setUp(self):
        self.tmpdir = tempfile.TemporaryDirectory()
        self.base = Path(self.tmpdir.name)
        self.xdg = self.base / "xdg"
        (self.xdg / "mirrorsync").mkdir(parents=True)
        env = mock.patch.dict(os.environ, {"XDG_CONFIG_HOME": str(self.xdg)})
        env.start()
        self.addCleanup(env.stop)
        self.path = self.base / ".mirrorsync"
        with self.path.open("w", encoding="utf-8") as f:
            yaml.safe_dump({"profiles": [{
                "name": "default", "server": "example.com", "user": "deploy",
                "base_remote": "/srv", "remote_root": "site",
            }]}, f)
        self.store = ConfigStore(self.path)

    def tearDown(self):
        self.tmpdir.cleanup()

    def test_global_defaults_are_layered_under_the_profile(self):
        with (self.xdg / "mirrorsync" / "config.yaml").open("w", encoding="utf-8") as f:
            yaml.safe_dump({"defaults": {"port": 2022, "user": "nobody"}}, f)
        cfg = self.store.load()
        self.assertEqual(cfg.port, 2022)
        self.assertEqual(cfg.user, "deploy")
        self.assertEqual(cfg.local_root, self.base.resolve())

    def test_save_round_trip(self):
        cfg = self.store.load()
        cfg.password = "secret"
        cfg.interval = 15.0
        self.store.save(cfg)
        again = self.store.load()
        self.assertEqual(again.password, "secret")
        self.assertEqual(again.interval, 15.0)
        self.assertEqual(again.remote_path, "/srv/site")
        with self.path.open(encoding="utf-8") as f:
            saved = yaml.safe_load(f)["profiles"][0]
        self.assertNotIn("base_remote", saved)

    def test_save_keeps_other_profiles(self):
        with self.path.open("w", encoding="utf-8") as f:
            yaml.safe_dump({"profiles": [
                {"name": "other", "server": "other.example.com"},
                {"name": "default", "server": "example.com", "user": "u"},
            ]}, f)
        cfg = self.store.load()
        cfg.port = 2200
        self.store.save(cfg)
        with self.path.open(encoding="utf-8") as f:
            profiles = yaml.safe_load(f)["profiles"]
        self.assertEqual(profiles[0], {"name": "other", "server": "other.example.com"})
        self.assertEqual(profiles[1]["port"], 2200)

    def test_save_notifies_unless_suppressed(self):
        calls = []
        unsubscribe = self.store.subscribe(lambda: calls.append(1))
        self.store.save(self.store.load(), notify=False)
        self.assertEqual(calls, [])
        self.store.save(self.store.load())
        self.assertEqual(calls, [1])
        unsubscribe()
        self.store.save(self.store.load())
        self.assertEqual(calls, [1])

    def test_poll_notices_external_edits(self):
        calls = []
        self.store.subscribe(lambda: calls.append(1))
        self.assertFalse(self.store.poll())
        st = self.path.stat()
        os.utime(self.path, (st.st_atime, st.st_mtime + 5))
        self.assertTrue(self.store.poll())
        self.assertFalse(self.store.poll())
        self.assertEqual(calls, [1])

    def test_invalid_port_in_file(self):
        with self.path.open("w", encoding="utf-8") as f:
            yaml.safe_dump({"profiles": [{"name": "default", "port": "http"}]}, f)
        with self.assertRaises(InvalidPortError):
            self.store.load()

    def test_unconvertible_values_raise_incomplete_settings(self):
        for key, value in (("interval", "abc"), ("max_upload_size", "x")):
            with self.path.open("w", encoding="utf-8") as f:
                yaml.safe_dump({"profiles": [{"name": "default", key: value}]}, f)
            with self.assertRaises(MirrorSyncError) as ctx:
                self.store.load()
            self.assertEqual(ctx.exception.code, ErrorCode.INCOMPLETE_SETTINGS)

    def test_malformed_yaml_raises_incomplete_settings(self):
        self.path.write_text("profiles: [\n", encoding="utf-8")
        with self.assertRaises(MirrorSyncError) as ctx:
            self.store.load()
        self.assertEqual(ctx.exception.code, ErrorCode.INCOMPLETE_SETTINGS)
        with self.assertRaises(MirrorSyncError):
            self.store.save(SyncConfig(host="example.com"))
        self.assertEqual(self.path.read_text(encoding="utf-8"), "profiles: [\n")

    def test_non_mapping_file_raises_incomplete_settings(self):
        self.path.write_text("- just\n- a list\n", encoding="utf-8")
        with self.assertRaises(MirrorSyncError):
            self.store.load()


if __name__ == "__main__":
    unittest.main()
