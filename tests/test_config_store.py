"""Tests for configuration naming, upload/delete invariants and listing."""

import json
import tempfile
import unittest
from contextlib import asynccontextmanager
from pathlib import Path
from unittest import mock

from mockhost.errors import ConfigInUse, ConfigNotFound, DuplicateName, InvalidFormat, UnknownIO
from mockhost.supervisor.config_store import (
    MAX_CONFIG_BYTES,
    ConfigName,
    ConfigStore,
    format_file_size,
)


class _StaticUsage:
    def __init__(self, names=()):
        self.names = set(names)
        self.lock_entries = 0

    def config_names_in_use(self) -> set[str]:
        return set(self.names)

    @asynccontextmanager
    async def locked(self):
        self.lock_entries += 1
        yield


class ConfigNameTests(unittest.TestCase):
    def test_upload_names_are_sanitized(self) -> None:
        self.assertEqual(ConfigName.from_upload("my config (1).json").value, "my_config__1_.json")
        self.assertEqual(
            ConfigName.from_upload("../../etc/passwd.json").value,
            ".._.._etc_passwd.json",
        )

    def test_missing_suffix_is_appended(self) -> None:
        self.assertEqual(ConfigName.from_upload("petstore").value, "petstore.json")

    def test_empty_name_rejected(self) -> None:
        with self.assertRaises(InvalidFormat):
            ConfigName.from_upload(".json")
        with self.assertRaises(InvalidFormat):
            ConfigName.from_upload("")

    def test_parse_rejects_names_that_cannot_be_stored(self) -> None:
        for raw in ("../a.json", "dir/a.json", "a.txt", "a json.json", ""):
            with self.assertRaises(ConfigNotFound, msg=raw):
                ConfigName.parse(raw)

    def test_parse_accepts_sanitized_output(self) -> None:
        sanitized = ConfigName.from_upload("team api v2.json")
        self.assertEqual(ConfigName.parse(sanitized.value), sanitized)


class FormatFileSizeTests(unittest.TestCase):
    def test_units(self) -> None:
        self.assertEqual(format_file_size(0), "0 Bytes")
        self.assertEqual(format_file_size(500), "500 Bytes")
        self.assertEqual(format_file_size(1536), "1.5 KB")
        self.assertEqual(format_file_size(1024 * 1024), "1 MB")


class ConfigStoreTests(unittest.IsolatedAsyncioTestCase):
    def setUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        base = Path(self._tmp.name)
        self.usage = _StaticUsage()
        self.store = ConfigStore(base / "configs", base / "uploads", usage=self.usage)

    def tearDown(self) -> None:
        self._tmp.cleanup()

    def test_upload_then_download_returns_same_document(self) -> None:
        document = {"routes": [{"method": "get", "endpoint": "pets", "status": 200}], "port": 3000}
        info = self.store.upload("pets.json", json.dumps(document).encode("utf-8"))
        self.assertEqual(info.name, "pets.json")
        self.assertEqual(self.store.download("pets.json"), document)

    def test_duplicate_upload_keeps_original_content(self) -> None:
        self.store.upload("pets.json", b'{"version": 1}')
        with self.assertRaises(DuplicateName):
            self.store.upload("pets.json", b'{"version": 2}')
        self.assertEqual(self.store.download("pets.json"), {"version": 1})

    def test_names_colliding_after_sanitization_are_duplicates(self) -> None:
        self.store.upload("my api.json", b"{}")
        with self.assertRaises(DuplicateName):
            self.store.upload("my:api.json", b"[]")

    def test_invalid_json_rejected_without_file(self) -> None:
        with self.assertRaises(InvalidFormat):
            self.store.upload("broken.json", b"{not json")
        self.assertFalse((self.store.configs_dir / "broken.json").exists())

    def test_oversized_document_rejected(self) -> None:
        content = b'"' + b"a" * MAX_CONFIG_BYTES + b'"'
        with self.assertRaises(InvalidFormat):
            self.store.upload("big.json", content)

    def test_upload_file_discards_spooled_artifact(self) -> None:
        self.store.upload_dir.mkdir(parents=True)
        good = self.store.upload_dir / "upload-1.part"
        good.write_bytes(b'{"ok": true}')
        self.store.upload_file("ok.json", good)
        self.assertFalse(good.exists())

        bad = self.store.upload_dir / "upload-2.part"
        bad.write_bytes(b"nope")
        with self.assertRaises(InvalidFormat):
            self.store.upload_file("bad.json", bad)
        self.assertFalse(bad.exists())
        self.assertEqual(list(self.store.upload_dir.iterdir()), [])

    def test_list_reports_json_files_and_usage(self) -> None:
        self.store.upload("a.json", b"{}")
        self.store.upload("b.json", b'{"x": 1}')
        (self.store.configs_dir / "notes.txt").write_text("ignored", encoding="utf-8")
        self.usage.names = {"b.json"}

        entries = self.store.list()
        self.assertEqual([entry.name for entry in entries], ["a.json", "b.json"])
        self.assertFalse(entries[0].in_use)
        self.assertTrue(entries[1].in_use)
        payload = entries[1].to_dict()
        self.assertEqual(payload["sizeBytes"], 8)
        self.assertEqual(payload["size"], "8 Bytes")
        self.assertTrue(payload["inUse"])

    def test_list_skips_files_no_operation_can_address(self) -> None:
        self.store.upload("a.json", b"{}")
        (self.store.configs_dir / "my config.json").write_text("{}", encoding="utf-8")
        with self.assertLogs("mockhost.supervisor.config_store", level="WARNING"):
            names = [entry.name for entry in self.store.list()]
        self.assertEqual(names, ["a.json"])

    def test_list_uses_supplied_usage_snapshot(self) -> None:
        self.store.upload("a.json", b"{}")
        self.usage.names = {"a.json"}
        entries = self.store.list(in_use=set())
        self.assertFalse(entries[0].in_use)

    def test_upload_leaves_no_staging_files(self) -> None:
        self.store.upload("a.json", b"{}")
        with self.assertRaises(DuplicateName):
            self.store.upload("a.json", b"[]")
        self.assertEqual(
            sorted(p.name for p in self.store.configs_dir.iterdir()),
            ["a.json"],
        )

    def test_failed_publish_never_exposes_final_name(self) -> None:
        with mock.patch(
            "mockhost.supervisor.config_store.os.link",
            side_effect=OSError("cross-device link"),
        ):
            with self.assertRaises(UnknownIO):
                self.store.upload("a.json", b'{"routes": []}')
        self.assertEqual(list(self.store.configs_dir.iterdir()), [])
        with self.assertRaises(ConfigNotFound):
            self.store.download("a.json")

    def test_download_missing_raises_not_found(self) -> None:
        with self.assertRaises(ConfigNotFound):
            self.store.download("missing.json")

    async def test_delete_missing_raises_not_found(self) -> None:
        with self.assertRaises(ConfigNotFound):
            await self.store.delete("missing.json")

    async def test_delete_in_use_keeps_file(self) -> None:
        self.store.upload("a.json", b"{}")
        self.usage.names = {"a.json"}
        with self.assertRaises(ConfigInUse):
            await self.store.delete("a.json")
        self.assertTrue((self.store.configs_dir / "a.json").exists())

    async def test_delete_removes_file_under_registry_lock(self) -> None:
        self.store.upload("a.json", b"{}")
        self.assertEqual(await self.store.delete("a.json"), "a.json")
        self.assertFalse((self.store.configs_dir / "a.json").exists())
        self.assertEqual(self.usage.lock_entries, 1)


if __name__ == "__main__":
    unittest.main()
