"""Scenario tests for the tracking3 CLI."""

from unittest.mock import patch

import yaml

from tracking3.cli import main
from tracking3.errors import RequestConnectionError, RequestTimeoutError
from tests.conftest import FIXTURE_EMAIL, FIXTURE_PASSWORD, make_response

CREDENTIALS = ["--email", FIXTURE_EMAIL, "--password", FIXTURE_PASSWORD]


def _write_config(path, **data):
    path.write_text(yaml.dump(data))


# ── Output ───────────────────────────────────────────────────────────────


class TestOutput:
    @patch("tracking3.executor.RequestHandler")
    def test_status_and_pretty_body(self, mock_handler, runner, tmp_project):
        mock_handler.return_value.do_request.return_value = make_response(body='{"id":1}')
        result = runner.invoke(main, ["GET", "https://api.example.com/x", *CREDENTIALS])
        assert result.exit_code == 0
        assert "STATUS: 200" in result.output
        assert "BODY:" in result.output
        assert '"id": 1' in result.output

    @patch("tracking3.executor.RequestHandler")
    def test_raw(self, mock_handler, runner, tmp_project):
        mock_handler.return_value.do_request.return_value = make_response(body="not json")
        result = runner.invoke(main, ["GET", "https://api.example.com/x", "--raw", *CREDENTIALS])
        assert result.exit_code == 0
        assert result.output.strip() == "not json"

    @patch("tracking3.executor.RequestHandler")
    def test_http_error_status_is_not_a_failure(self, mock_handler, runner, tmp_project):
        mock_handler.return_value.do_request.return_value = make_response(status=404, body="{}")
        result = runner.invoke(main, ["GET", "https://api.example.com/x", *CREDENTIALS])
        assert result.exit_code == 0
        assert "STATUS: 404" in result.output


# ── Request building ─────────────────────────────────────────────────────


class TestRequestArguments:
    @patch("tracking3.executor.RequestHandler")
    def test_body_fields_and_headers(self, mock_handler, runner, tmp_project):
        mock_handler.return_value.do_request.return_value = make_response()
        result = runner.invoke(
            main,
            [
                "post",
                "https://api.example.com/x",
                "-b",
                '{"title": "Report", "meta": {"a": 1}}',
                "-F",
                "title=Override",
                "-H",
                "X-Trace: abc",
                "--timeout",
                "9",
                *CREDENTIALS,
            ],
        )
        assert result.exit_code == 0
        args, kwargs = mock_handler.return_value.do_request.call_args
        method, uri, configuration = args
        assert method == "POST"
        assert uri == "https://api.example.com/x"
        assert configuration.timeout == 9
        assert kwargs["body"] == {"title": "Override", "meta": {"a": 1}}
        assert kwargs["custom_headers"] == {"X-Trace": "abc"}
        assert "file" not in kwargs

    @patch("tracking3.executor.RequestHandler")
    def test_file_upload(self, mock_handler, runner, tmp_project):
        upload = tmp_project / "report.pdf"
        upload.write_bytes(b"%PDF-1.4")
        seen = {}

        def do_request(method, uri, configuration, body=None, file=None, custom_headers=None):
            seen["name"] = file.name
            seen["data"] = file.read()
            return make_response()

        mock_handler.return_value.do_request.side_effect = do_request
        result = runner.invoke(
            main,
            ["POST", "https://api.example.com/x", "--file", str(upload), *CREDENTIALS],
        )
        assert result.exit_code == 0
        assert seen["name"] == str(upload)
        assert seen["data"] == b"%PDF-1.4"

    def test_missing_file_rejected(self, runner, tmp_project):
        result = runner.invoke(
            main,
            ["POST", "https://api.example.com/x", "--file", "nope.pdf", *CREDENTIALS],
        )
        assert result.exit_code == 2

    def test_invalid_body_json(self, runner, tmp_project):
        result = runner.invoke(main, ["POST", "https://api.example.com/x", "-b", "{", *CREDENTIALS])
        assert result.exit_code == 1
        assert "not valid JSON" in result.output

    def test_body_must_be_object(self, runner, tmp_project):
        result = runner.invoke(
            main,
            ["POST", "https://api.example.com/x", "-b", "[1, 2]", *CREDENTIALS],
        )
        assert result.exit_code == 1
        assert "JSON object" in result.output


# ── Config + credentials ─────────────────────────────────────────────────


class TestConfigAndCredentials:
    def test_missing_credentials(self, runner, tmp_project):
        result = runner.invoke(main, ["GET", "https://api.example.com/x"])
        assert result.exit_code == 1
        assert "ERROR: Missing required configuration value: password" in result.output

    @patch("tracking3.executor.RequestHandler")
    def test_credentials_from_env(self, mock_handler, runner, tmp_project):
        mock_handler.return_value.do_request.return_value = make_response()
        result = runner.invoke(
            main,
            ["GET", "https://api.example.com/x"],
            env={
                "TRACKING3_EMAIL": FIXTURE_EMAIL,
                "TRACKING3_PASSWORD": FIXTURE_PASSWORD,
                "TRACKING3_ACCESS_TOKEN": "tok",
            },
        )
        assert result.exit_code == 0
        configuration = mock_handler.return_value.do_request.call_args[0][2]
        assert configuration.email == FIXTURE_EMAIL
        assert configuration.access_token == "tok"

    @patch("tracking3.executor.RequestHandler")
    def test_config_file_and_base_uri(self, mock_handler, runner, tmp_project):
        mock_handler.return_value.do_request.return_value = make_response()
        (tmp_project / ".env").write_text(f"T3_PASSWORD={FIXTURE_PASSWORD}\n")
        _write_config(
            tmp_project / ".tracking3.yaml",
            base_uri="https://api.example.com/",
            env_file=".env",
            configuration={
                "email": FIXTURE_EMAIL,
                "password": "${T3_PASSWORD}",
                "idApplication": "my-app",
                "timeout": 30,
            },
        )
        result = runner.invoke(main, ["GET", "/v1/users/me"])
        assert result.exit_code == 0
        args = mock_handler.return_value.do_request.call_args[0]
        assert args[1] == "https://api.example.com/v1/users/me"
        configuration = args[2]
        assert configuration.password == FIXTURE_PASSWORD
        assert configuration.id_application == "my-app"
        assert configuration.timeout == 30

    def test_invalid_timeout_in_config_file(self, runner, tmp_project):
        _write_config(
            tmp_project / ".tracking3.yaml",
            configuration={"email": FIXTURE_EMAIL, "password": FIXTURE_PASSWORD, "timeout": "soon"},
        )
        result = runner.invoke(main, ["GET", "https://api.example.com/x"])
        assert result.exit_code == 1
        assert "ERROR: Invalid configuration value for timeout" in result.output

    @patch("tracking3.executor.RequestHandler")
    def test_flags_override_config_file(self, mock_handler, runner, tmp_project):
        mock_handler.return_value.do_request.return_value = make_response()
        _write_config(
            tmp_project / ".tracking3.yaml",
            configuration={"email": "file@example.com", "password": "file"},
        )
        result = runner.invoke(main, ["GET", "https://api.example.com/x", "--email", FIXTURE_EMAIL])
        assert result.exit_code == 0
        configuration = mock_handler.return_value.do_request.call_args[0][2]
        assert configuration.email == FIXTURE_EMAIL
        assert configuration.password == "file"


# ── Transport failures ───────────────────────────────────────────────────


class TestFailures:
    @patch("tracking3.executor.RequestHandler")
    def test_timeout(self, mock_handler, runner, tmp_project):
        mock_handler.return_value.do_request.side_effect = RequestTimeoutError(
            "Request exceeded timeout of 60",
            1592833821,
        )
        result = runner.invoke(main, ["GET", "https://api.example.com/x", *CREDENTIALS])
        assert result.exit_code == 1
        assert "ERROR: Request exceeded timeout of 60" in result.output

    @patch("tracking3.executor.RequestHandler")
    def test_connection_error(self, mock_handler, runner, tmp_project):
        mock_handler.return_value.do_request.side_effect = RequestConnectionError(
            "Connection refused",
            7,
        )
        result = runner.invoke(main, ["GET", "https://api.example.com/x", *CREDENTIALS])
        assert result.exit_code == 1
        assert "ERROR: Connection refused" in result.output
