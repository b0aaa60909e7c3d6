# Copyright (c) Syntropy Systems
"""Tests for lmevals CLI commands."""

from __future__ import annotations

from pathlib import Path

import httpx
import pytest
from typer.testing import CliRunner

from lmevals.cli.main import app
from lmevals.client import LmevalsClient
from lmevals.controller import RunController
from lmevals.models.api import Completion, RunRequest
from lmevals.models.run import RunStatus
from lmevals.server import EchoBackend, RunStore, create_app

runner = CliRunner()


@pytest.fixture
def store(temp_dir: Path, monkeypatch: pytest.MonkeyPatch) -> RunStore:
    """Route every CLI client to an in-process server backed by this store."""
    store = RunStore(default_credits=5)
    app_ = create_app(EchoBackend(), store)

    def fake_get_client(
        server_url: str,
        token: str | None = None,
        **kwargs: object,
    ) -> LmevalsClient:
        return LmevalsClient(
            server_url,
            token=token or "cli-user",
            transport=httpx.ASGITransport(app=app_),
        )

    monkeypatch.setattr("lmevals.cli.common.get_client", fake_get_client)
    return store


def seed_run(store: RunStore, owner: str = "cli-user") -> str:
    request = RunRequest(models=["a", "b"], prompt="2 + 2?", evalPrompt="4", trials=1)
    run = store.create_run(request, owner=owner)
    _ = store.record(run.run_id, "a", Completion(answer="4", score=1.0))
    _ = store.record(run.run_id, "b", Completion(answer="five", score=0.0))
    return run.run_id


class TestHelp:
    """Tests for the command list."""

    def test_help_lists_commands(self) -> None:
        result = runner.invoke(app, ["--help"])
        assert result.exit_code == 0
        for command in ("run", "show", "completions", "title", "publish", "quota", "server"):
            assert command in result.stdout


class TestRunCommand:
    """Tests for lmevals run."""

    def test_no_models(self, store: RunStore) -> None:
        result = runner.invoke(app, ["run", "hello"])
        assert result.exit_code == 1
        assert "No models selected" in result.stdout

    def test_run_streams_to_completion(self, store: RunStore) -> None:
        result = runner.invoke(
            app,
            ["run", "say three", "-m", "a", "-m", "b", "--rubric", "three", "-n", "2"],
        )

        assert result.exit_code == 0, result.stdout
        assert "Run complete" in result.stdout
        assert len(store.runs) == 1
        run = next(iter(store.runs.values()))
        assert run.run_id in result.stdout
        assert [len(c) for c in run.completions.values()] == [2, 2]

    def test_models_from_config(self, store: RunStore, temp_dir: Path) -> None:
        config_dir = temp_dir / ".lmevals"
        config_dir.mkdir()
        (config_dir / "config.yaml").write_text("models: [x, y]\ndefault_trials: 1\n")

        result = runner.invoke(app, ["run", "hi"])

        assert result.exit_code == 0, result.stdout
        run = next(iter(store.runs.values()))
        assert run.request.model_identifiers == ("x", "y")
        assert run.request.trials_per_model == 1

    def test_out_of_credits(self, store: RunStore) -> None:
        store.default_credits = 0

        result = runner.invoke(app, ["run", "hi", "-m", "a"])

        assert result.exit_code == 1
        assert "out of credits" in result.stdout
        assert store.runs == {}

    def test_trials_out_of_range(self, store: RunStore) -> None:
        result = runner.invoke(app, ["run", "hi", "-m", "a", "-n", "11"])
        assert result.exit_code != 0


class TestShowCommands:
    """Tests for lmevals show and completions."""

    def test_show(self, store: RunStore) -> None:
        run_id = seed_run(store)

        result = runner.invoke(app, ["show", run_id])

        assert result.exit_code == 0, result.stdout
        assert "2 + 2?" in result.stdout
        assert "100%" in result.stdout

    def test_show_missing_run(self, store: RunStore) -> None:
        result = runner.invoke(app, ["show", "nope"])
        assert result.exit_code == 1
        assert "not found" in result.stdout

    def test_show_without_request(self, store: RunStore, monkeypatch: pytest.MonkeyPatch) -> None:
        async def load_nothing(self: RunController, run_id: str) -> RunStatus:
            return RunStatus.SUCCEEDED

        monkeypatch.setattr(RunController, "load", load_nothing)

        result = runner.invoke(app, ["show", "r1"])

        assert result.exit_code == 1
        assert "has no stored request" in result.stdout

    def test_completions(self, store: RunStore) -> None:
        run_id = seed_run(store)

        result = runner.invoke(app, ["completions", run_id, "b"])

        assert result.exit_code == 0, result.stdout
        assert "five" in result.stdout

    def test_completions_unknown_model(self, store: RunStore) -> None:
        run_id = seed_run(store)

        result = runner.invoke(app, ["completions", run_id, "zzz"])

        assert result.exit_code == 0
        assert "No completions for zzz" in result.stdout


class TestTitleCommands:
    """Tests for lmevals title and publish."""

    def test_title(self, store: RunStore) -> None:
        run_id = seed_run(store)

        result = runner.invoke(app, ["title", run_id, "Arithmetic"])

        assert result.exit_code == 0, result.stdout
        assert store.runs[run_id].title == "Arithmetic"
        assert not store.runs[run_id].is_public

    def test_title_and_publish(self, store: RunStore) -> None:
        run_id = seed_run(store)

        result = runner.invoke(app, ["title", run_id, "Arithmetic", "--public"])

        assert result.exit_code == 0, result.stdout
        assert store.runs[run_id].is_public

    def test_empty_title(self, store: RunStore) -> None:
        run_id = seed_run(store)
        result = runner.invoke(app, ["title", run_id, "  "])
        assert result.exit_code == 1

    def test_publish(self, store: RunStore) -> None:
        run_id = seed_run(store)

        result = runner.invoke(app, ["publish", run_id])

        assert result.exit_code == 0, result.stdout
        assert store.runs[run_id].is_public

    def test_publish_someone_elses_public_run(self, store: RunStore) -> None:
        run_id = seed_run(store, owner="someone-else")
        store.runs[run_id].is_public = True

        result = runner.invoke(app, ["publish", run_id])

        assert result.exit_code == 1
        assert "Could not publish" in result.stdout


class TestQuotaCommand:
    """Tests for lmevals quota."""

    def test_remaining(self, store: RunStore) -> None:
        result = runner.invoke(app, ["quota"])
        assert result.exit_code == 0
        assert "5 run(s) left" in result.stdout

    def test_none_left(self, store: RunStore) -> None:
        store.default_credits = 0
        result = runner.invoke(app, ["quota"])
        assert "0 credits left" in result.stdout

    def test_unlimited(self, store: RunStore) -> None:
        store.unlimited_tokens.add("cli-user")
        result = runner.invoke(app, ["quota"])
        assert "Unlimited" in result.stdout
