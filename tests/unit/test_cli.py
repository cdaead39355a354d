"""Tests for CLI commands."""
import json
from argparse import Namespace
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from mediaflow.cli import build_parser, cmd_run, cmd_sanitize, cmd_signature, main


@pytest.fixture
def write_json(tmp_path):
    def write(name, data):
        path = tmp_path / name
        path.write_text(json.dumps(data), encoding="utf-8")
        return str(path)

    return write


class TestCmdRun:
    """Test cmd_run function."""

    @patch("mediaflow.cli.setup_logging")
    def test_text_workflow_succeeds(self, mock_logging, write_json, capsys):
        path = write_json(
            "wf.json",
            {"id": "wf_1", "nodes": [{"id": "t", "type": "text", "data": {"text": "hello"}}]},
        )

        result = cmd_run(Namespace(file=path, output=None, no_prepass=False))

        assert result == 0
        run = json.loads(capsys.readouterr().out)
        assert run["status"] == "succeeded"
        assert run["workflowId"] == "wf_1"
        assert run["nodeExecutions"][0]["output"] == "hello"
        mock_logging.assert_called_once()

    @patch("mediaflow.cli.setup_logging")
    def test_failed_node_exit_code(self, mock_logging, write_json, capsys):
        path = write_json("wf.json", {"nodes": [{"id": "c", "type": "crop"}]})

        result = cmd_run(Namespace(file=path, output=None, no_prepass=True))

        assert result == 1
        run = json.loads(capsys.readouterr().out)
        assert run["nodeExecutions"][0]["error"] == "Missing required input: image_url"

    @patch("mediaflow.cli.setup_logging")
    def test_cycle_exit_code(self, mock_logging, write_json, capsys):
        path = write_json(
            "wf.json",
            {
                "nodes": [
                    {"id": "a", "type": "llm", "data": {"prompt": "x"}},
                    {"id": "b", "type": "llm", "data": {"prompt": "y"}},
                ],
                "edges": [
                    {"source": "a", "target": "b", "targetHandle": "user_message"},
                    {"source": "b", "target": "a", "targetHandle": "user_message"},
                ],
            },
        )

        result = cmd_run(Namespace(file=path, output=None, no_prepass=True))

        assert result == 2
        assert "cycle" in capsys.readouterr().err.lower()

    @patch("mediaflow.cli.setup_logging")
    def test_invalid_handle_exit_code(self, mock_logging, write_json, capsys):
        path = write_json(
            "wf.json",
            {
                "nodes": [{"id": "t", "type": "text"}, {"id": "c", "type": "crop"}],
                "edges": [{"source": "t", "target": "c", "targetHandle": "nope"}],
            },
        )

        result = cmd_run(Namespace(file=path, output=None, no_prepass=True))

        assert result == 1
        assert "no input handle 'nope'" in capsys.readouterr().err

    @patch("mediaflow.cli.setup_logging")
    @patch("mediaflow.cli.WorkflowExecutor")
    def test_no_prepass_skips_materialize(self, mock_executor_cls, mock_logging, write_json, tmp_path):
        executor = mock_executor_cls.return_value
        executor.materialize = AsyncMock(return_value=0)
        executor.execute = AsyncMock(return_value=MagicMock())
        executor.execute.return_value.to_wire.return_value = {"status": "succeeded"}
        path = write_json("wf.json", {"nodes": []})
        output = tmp_path / "run.json"

        result = cmd_run(Namespace(file=path, output=str(output), no_prepass=True))

        assert result == 0
        executor.materialize.assert_not_called()
        assert json.loads(output.read_text()) == {"status": "succeeded"}


class TestCmdSanitize:
    def test_strips_runtime_fields(self, write_json, sample_workflow_payload, capsys):
        path = write_json("wf.json", {"id": "wf_1", **sample_workflow_payload})

        result = cmd_sanitize(Namespace(file=path, output=None))

        assert result == 0
        durable = json.loads(capsys.readouterr().out)
        assert durable["id"] == "wf_1"
        assert durable["name"] == "Product shots"
        assert "isLoading" not in durable["nodes"][0]["data"]
        assert "croppedImageUrl" not in durable["nodes"][1]["data"]


class TestCmdSignature:
    def test_prints_signature(self, capsys):
        result = cmd_signature(Namespace())

        assert result == 0
        payload = json.loads(capsys.readouterr().out)
        assert set(payload) == {"url", "params", "signature"}

    def test_missing_credentials(self, monkeypatch, capsys):
        monkeypatch.delenv("MEDIAFLOW_TRANSLOADIT_SECRET")
        from mediaflow.config import reset_settings

        reset_settings()

        assert cmd_signature(Namespace()) == 1
        assert "not configured" in capsys.readouterr().err


class TestMain:
    def test_no_command_prints_help(self, capsys):
        assert main([]) == 1
        assert "usage: mediaflow" in capsys.readouterr().out

    def test_dispatches_sanitize(self, write_json, capsys):
        path = write_json("wf.json", {"nodes": [{"id": "t", "type": "text", "data": {"text": "x"}}]})

        assert main(["sanitize", path]) == 0
        assert json.loads(capsys.readouterr().out)["nodes"][0]["id"] == "t"

    def test_parser_flags(self):
        args = build_parser().parse_args(["run", "wf.json", "--no-prepass", "-o", "out.json"])

        assert args.no_prepass is True
        assert args.output == "out.json"
