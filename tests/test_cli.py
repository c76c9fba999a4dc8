"""Tests for repomanager.cli entry point."""

from unittest.mock import MagicMock, patch

import pytest

from repomanager.cli import _exit_code, _normalize_argv, main, run
from repomanager.reconcile import OperationOutcome, ReconcileReport, ReconcileState


@pytest.fixture
def config_file(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text("organization: my-org\nprefix: team-\nusers:\n  - alice\n")
    return path


class TestNormalizeArgv:
    """Tests for _normalize_argv."""

    def test_splits_combined_args(self):
        assert _normalize_argv(["--repoteam-api"]) == ["--repo", "team-api"]

    def test_leaves_normal_args(self):
        assert _normalize_argv(["--repo", "team-api"]) == ["--repo", "team-api"]

    def test_handles_equals(self):
        assert _normalize_argv(["--config=x.yaml"]) == ["--config=x.yaml"]


class TestExitCode:

    def test_done_clean(self):
        assert _exit_code(ReconcileReport(state=ReconcileState.DONE)) == 0

    def test_user_abort_is_clean(self):
        assert _exit_code(ReconcileReport(state=ReconcileState.ABORTED, aborted_by_user=True)) == 0

    def test_error(self):
        assert _exit_code(ReconcileReport(state=ReconcileState.ABORTED, error="boom")) == 1

    def test_partial_failure(self):
        report = ReconcileReport(
            state=ReconcileState.DONE,
            outcomes=[OperationOutcome("erin", "remove", False, "HTTP 502"), OperationOutcome("bob", "add", True)],
        )
        assert _exit_code(report) == 1


class TestRun:
    """Tests for run() CLI function."""

    def test_version(self):
        with pytest.raises(SystemExit) as exc:
            run(["--version"])
        assert exc.value.code == 0

    def test_no_command(self, capsys):
        assert run([]) == 2

    def test_unknown_command(self):
        with pytest.raises(SystemExit) as exc:
            run(["delete"])
        assert exc.value.code == 2

    def test_missing_config(self, tmp_path, capsys):
        result = run(["manage", "--config", str(tmp_path / "missing.yaml")])
        assert result == 1
        assert "config file not found" in capsys.readouterr().out

    def test_invalid_config(self, tmp_path, capsys):
        path = tmp_path / "config.yaml"
        path.write_text("prefix: x\n")
        assert run(["manage", "--config", str(path)]) == 1
        assert "organization is required" in capsys.readouterr().out

    def test_missing_token(self, config_file, monkeypatch, capsys):
        monkeypatch.delenv("GITHUB_TOKEN", raising=False)
        assert run(["manage", "--config", str(config_file)]) == 1
        assert "GITHUB_TOKEN" in capsys.readouterr().out

    @patch("repomanager.cli.Reconciler")
    @patch("repomanager.cli.GitHubClient")
    def test_manage_dispatch(self, mock_client, mock_reconciler, config_file, monkeypatch):
        monkeypatch.setenv("GITHUB_TOKEN", "env-token")
        monkeypatch.delenv("REPO_MANAGER_API_URL", raising=False)
        mock_reconciler.return_value.manage.return_value = ReconcileReport(state=ReconcileState.DONE)

        result = run(["manage", "--config", str(config_file), "--repo", "team-api", "-n"])

        assert result == 0
        mock_client.assert_called_once_with("env-token", base_url="https://api.github.com")
        mock_reconciler.return_value.manage.assert_called_once_with("team-api")
        assert mock_reconciler.call_args.kwargs["dry_run"] is True

    @patch("repomanager.cli.Reconciler")
    @patch("repomanager.cli.GitHubClient")
    def test_flag_token_overrides_env(self, mock_client, mock_reconciler, config_file, monkeypatch):
        monkeypatch.setenv("GITHUB_TOKEN", "env-token")
        mock_reconciler.return_value.create.return_value = ReconcileReport(state=ReconcileState.DONE)

        result = run(["create", "--config", str(config_file), "--github-token", "flag-token"])

        assert result == 0
        assert mock_client.call_args.args[0] == "flag-token"
        mock_reconciler.return_value.create.assert_called_once_with()

    @patch("repomanager.cli.Reconciler")
    @patch("repomanager.cli.GitHubClient")
    def test_failed_run_returns_1(self, mock_client, mock_reconciler, config_file, monkeypatch):
        monkeypatch.setenv("GITHUB_TOKEN", "t")
        mock_reconciler.return_value.manage.return_value = ReconcileReport(
            state=ReconcileState.ABORTED, error="Bad credentials"
        )
        assert run(["manage", "--config", str(config_file)]) == 1

    @patch("repomanager.cli.Reconciler")
    @patch("repomanager.cli.GitHubClient")
    def test_client_closed(self, mock_client, mock_reconciler, config_file, monkeypatch):
        monkeypatch.setenv("GITHUB_TOKEN", "t")
        mock_reconciler.return_value.manage.return_value = ReconcileReport(state=ReconcileState.DONE)
        client = MagicMock()
        mock_client.return_value.__enter__.return_value = client

        run(["manage", "--config", str(config_file)])

        mock_client.return_value.__exit__.assert_called_once()
        assert mock_reconciler.call_args.args[0] is client


class TestMain:
    """Tests for main() exit handling."""

    @patch("repomanager.cli.run", side_effect=KeyboardInterrupt)
    def test_ctrl_c_exits_130(self, mock_run):
        with pytest.raises(SystemExit) as exc:
            main()
        assert exc.value.code == 130

    @patch("repomanager.cli.run", side_effect=EOFError)
    def test_closed_stdin_exits_1(self, mock_run, capsys):
        with pytest.raises(SystemExit) as exc:
            main()
        assert exc.value.code == 1
        assert "input closed" in capsys.readouterr().out

    @patch("repomanager.cli.run", return_value=0)
    def test_passes_run_result(self, mock_run):
        with pytest.raises(SystemExit) as exc:
            main()
        assert exc.value.code == 0
