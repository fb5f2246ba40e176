import io
import tempfile
import unittest
from contextlib import redirect_stdout
from pathlib import Path
from unittest.mock import patch

from calgroups.cli import _build_parser, build_message, call_command, logs_command


class CLITests(unittest.TestCase):
    def test_build_message_for_activation(self) -> None:
        args = _build_parser().parse_args(["call", "activateGroup", "--group-id", "work", "--select", "a", "--select", "b"])
        self.assertEqual(build_message(args), {"action": "activateGroup", "groupId": "work", "selection": ["a", "b"]})

    def test_build_message_plain_action(self) -> None:
        args = _build_parser().parse_args(["call", "getEntities"])
        self.assertEqual(build_message(args), {"action": "getEntities"})

    def test_unknown_action_is_rejected(self) -> None:
        with redirect_stdout(io.StringIO()), patch("sys.stderr", io.StringIO()):
            with self.assertRaises(SystemExit):
                _build_parser().parse_args(["call", "explode"])

    def test_serve_overrides_default_to_none(self) -> None:
        args = _build_parser().parse_args(["serve"])
        self.assertIsNone(args.settle_ms)
        self.assertIsNone(args.reveal_timeout)
        self.assertEqual(args.cdp_url, "http://127.0.0.1:9222")

    def test_call_command_exits_on_error_response(self) -> None:
        args = _build_parser().parse_args(["call", "activateGroup", "--group-id", "nope"])

        async def fake_request(message, **_kwargs):
            return {"error": "Group not found", "code": "group_not_found"}

        buf = io.StringIO()
        with patch("calgroups.cli.request", side_effect=fake_request), redirect_stdout(buf):
            with self.assertRaises(SystemExit) as ctx:
                call_command(args)
        self.assertEqual(ctx.exception.code, 1)
        self.assertIn("group_not_found", buf.getvalue())

    def test_logs_command_requires_log_path(self) -> None:
        with patch.dict("os.environ", {}, clear=True):
            with self.assertRaises(SystemExit):
                logs_command(10)

    def test_logs_command_prints_tail(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            path = Path(tmp) / "calgroups.log"
            path.write_text("one\ntwo\nthree\n", encoding="utf-8")
            buf = io.StringIO()
            with patch.dict("os.environ", {"CALGROUPS_LOG_PATH": str(path)}, clear=True), redirect_stdout(buf):
                logs_command(2)
        self.assertEqual(buf.getvalue().strip().splitlines(), ["two", "three"])


if __name__ == "__main__":
    unittest.main()
