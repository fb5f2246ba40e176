import json
import os
import tempfile
import unittest
from pathlib import Path

from calgroups.groups import GroupDefinition, GroupDefinitions, GroupFile


class GroupDefinitionTests(unittest.TestCase):
    def test_accepts_wrapped_and_bare_payloads(self) -> None:
        wrapped = GroupDefinitions.from_payload({"groups": {"work": {"name": "Work", "selection": ["a", "b"]}}})
        bare = GroupDefinitions.from_payload({"work": {"name": "Work", "selection": ["a", "b"]}})
        self.assertEqual(wrapped["work"], bare["work"])
        self.assertEqual(wrapped["work"].selection, ("a", "b"))

    def test_legacy_calendars_key_is_read_as_selection(self) -> None:
        group = GroupDefinition.from_dict("g", {"calendars": ["x"]})
        self.assertEqual(group.selection, ("x",))
        self.assertEqual(group.name, "g")

    def test_rejects_malformed_selection(self) -> None:
        with self.assertRaises(ValueError):
            GroupDefinition.from_dict("g", {"selection": "x"})
        with self.assertRaises(ValueError):
            GroupDefinitions.from_payload(["not", "a", "mapping"])


class GroupFileTests(unittest.TestCase):
    def test_missing_file_reads_as_empty(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            groups = GroupFile(Path(tmp) / "groups.json")
            self.assertEqual(len(groups), 0)
            self.assertIsNone(groups.get("work"))

    def test_reloads_when_file_changes(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            path = Path(tmp) / "groups.json"
            path.write_text(json.dumps({"groups": {"work": {"selection": ["a"]}}}), encoding="utf-8")
            groups = GroupFile(path)
            self.assertEqual(groups["work"].selection, ("a",))

            path.write_text(json.dumps({"groups": {"home": {"selection": ["b"]}}}), encoding="utf-8")
            stat = path.stat()
            os.utime(path, (stat.st_atime, stat.st_mtime + 5))
            self.assertNotIn("work", groups)
            self.assertEqual(groups["home"].selection, ("b",))


if __name__ == "__main__":
    unittest.main()
