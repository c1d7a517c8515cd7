"""Tests for the mockhost command line client."""

import io
import json
import tempfile
import unittest
from contextlib import redirect_stdout
from pathlib import Path
from unittest import mock

import httpx
import typer

from mockhost.cli import configs, download, start, status, stop, upload

URL = "http://127.0.0.1:3500"


def _response(status_code: int, payload, method: str = "GET", path: str = "/") -> httpx.Response:
    return httpx.Response(
        status_code,
        json=payload,
        request=httpx.Request(method, f"{URL}{path}"),
    )


class CliClientTests(unittest.TestCase):
    def test_start_posts_port_and_config(self) -> None:
        reply = _response(
            200,
            {"success": True, "port": 9050, "configFile": "a.json", "message": "Mock server started on port 9050"},
        )
        with mock.patch("mockhost.cli.httpx.request", return_value=reply) as request:
            out = io.StringIO()
            with redirect_stdout(out):
                start(9050, "a.json", url=URL)
        request.assert_called_once()
        self.assertEqual(request.call_args.args[:2], ("POST", f"{URL}/api/mock/start"))
        self.assertEqual(request.call_args.kwargs["json"], {"port": 9050, "configFile": "a.json"})
        self.assertIn("Mock server started on port 9050", out.getvalue())

    def test_error_response_exits_nonzero(self) -> None:
        reply = _response(404, {"error": "Instance not found", "code": "INSTANCE_NOT_FOUND"})
        with mock.patch("mockhost.cli.httpx.request", return_value=reply):
            out = io.StringIO()
            with self.assertRaises(typer.Exit) as cm, redirect_stdout(out):
                stop(9050, url=URL)
        self.assertEqual(cm.exception.exit_code, 1)
        self.assertIn("Instance not found", out.getvalue())

    def test_unreachable_server_exits_nonzero(self) -> None:
        error = httpx.ConnectError("refused")
        with mock.patch("mockhost.cli.httpx.request", side_effect=error):
            with self.assertRaises(typer.Exit) as cm, redirect_stdout(io.StringIO()):
                status(url=URL)
        self.assertEqual(cm.exception.exit_code, 1)

    def test_status_lists_instances(self) -> None:
        reply = _response(
            200,
            [{"port": 9050, "configFile": "a.json", "uptime": 125000, "uptimeFormatted": "2m 5s"}],
        )
        with mock.patch("mockhost.cli.httpx.request", return_value=reply):
            out = io.StringIO()
            with redirect_stdout(out):
                status(url=URL)
        self.assertIn("port 9050: a.json (up 2m 5s)", out.getvalue())

    def test_configs_marks_in_use(self) -> None:
        reply = _response(
            200,
            [{"name": "a.json", "size": "2 Bytes", "sizeBytes": 2, "modified": "2026-01-01T00:00:00+00:00", "inUse": True}],
        )
        with mock.patch("mockhost.cli.httpx.request", return_value=reply):
            out = io.StringIO()
            with redirect_stdout(out):
                configs(url=URL)
        self.assertIn("a.json (2 Bytes", out.getvalue())
        self.assertIn("[in use]", out.getvalue())

    def test_upload_sends_multipart_field(self) -> None:
        reply = _response(200, {"success": True, "filename": "a.json", "message": "ok"}, method="POST")
        with tempfile.TemporaryDirectory() as tmpdir:
            path = Path(tmpdir) / "a.json"
            path.write_text("{}", encoding="utf-8")
            with mock.patch("mockhost.cli.httpx.request", return_value=reply) as request:
                with redirect_stdout(io.StringIO()):
                    upload(path, url=URL)
        self.assertIn("config", request.call_args.kwargs["files"])

    def test_download_writes_output_file(self) -> None:
        reply = _response(200, {"routes": []})
        with tempfile.TemporaryDirectory() as tmpdir:
            output = Path(tmpdir) / "out" / "a.json"
            with mock.patch("mockhost.cli.httpx.request", return_value=reply):
                with redirect_stdout(io.StringIO()):
                    download("a.json", output=output, url=URL)
            self.assertEqual(json.loads(output.read_text(encoding="utf-8")), {"routes": []})


if __name__ == "__main__":
    unittest.main()
