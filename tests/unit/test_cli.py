from contextlib import contextmanager

import numpy as np
import pytest
from typer.testing import CliRunner

from conftest import START, ZONE, make_post
from opinionmap.cli import app
from opinionmap.config import ConfigModel, save_config
from opinionmap.models import SessionStatus
from opinionmap.store import InMemoryStore

runner = CliRunner()

TEXTS = [
    "energy prices rising heating bills",
    "football cup final tickets sold",
    "election debate candidates polls tonight",
]


@pytest.fixture
def shared_store(monkeypatch):
    store = InMemoryStore()
    for text in TEXTS:
        for _ in range(15):
            store.add_post(make_post(created_at=START, text=text))

    @contextmanager
    def fake_open_store(config):
        yield store

    for module in ("generate", "sessions", "results"):
        monkeypatch.setattr(f"opinionmap.cli.{module}.open_store", fake_open_store)
    monkeypatch.setattr(
        "opinionmap.pipeline.orchestrator.reduce_umap_3d",
        lambda embeddings, **kwargs: np.asarray(embeddings, dtype=np.float64)[:, :3],
    )
    return store


@pytest.fixture
def config_file(tmp_path):
    path = tmp_path / "config.yaml"
    save_config(
        ConfigModel(
            embedding={"provider": "mock", "dimensions": 32},
            llm={"provider": "mock"},
            vectorization={"inter_batch_delay": 0},
        ),
        path,
    )
    return path


def invoke(config_file, *args):
    return runner.invoke(app, ["--config", str(config_file), *args])


def generate(config_file, *extra):
    return invoke(
        config_file, "generate", ZONE,
        "--start", "2024-03-01", "--end", "2024-03-04",
        "--k", "3", "--seed", "1", *extra,
    )


def test_generate_runs_pipeline(shared_store, config_file):
    result = generate(config_file)

    assert result.exit_code == 0, result.output
    session = shared_store.get_latest_session(ZONE)
    assert session.status == SessionStatus.COMPLETED
    assert session.total_clusters == 3
    assert len(shared_store.get_clusters(ZONE, session.session_id)) == 3


def test_generate_no_run_then_cancel(shared_store, config_file):
    result = generate(config_file, "--no-run")
    assert result.exit_code == 0, result.output
    session = shared_store.get_latest_session(ZONE)
    assert session.status == SessionStatus.PENDING

    again = generate(config_file, "--no-run")
    assert again.exit_code == 0
    assert "already has an active session" in again.output

    cancelled = invoke(config_file, "cancel", session.session_id)
    assert cancelled.exit_code == 0
    assert "Cancelled session" in cancelled.output
    assert shared_store.get_session(session.session_id).status == SessionStatus.CANCELLED

    repeat = invoke(config_file, "cancel", session.session_id)
    assert repeat.exit_code == 0
    assert "already cancelled" in repeat.output


def test_generate_without_posts_fails(shared_store, config_file):
    result = invoke(config_file, "generate", "empty-zone", "--start", "2024-03-01", "--end", "2024-03-04")

    assert result.exit_code == 1
    assert "No posts found" in result.output


def test_generate_rejects_bad_date(shared_store, config_file):
    result = invoke(config_file, "generate", ZONE, "--start", "not-a-date")
    assert result.exit_code != 0


def test_result_commands_after_run(shared_store, config_file):
    assert generate(config_file).exit_code == 0
    session = shared_store.get_latest_session(ZONE)

    for args in (["status", session.session_id], ["latest", ZONE], ["evolution", ZONE], ["stats", ZONE]):
        result = invoke(config_file, *args)
        assert result.exit_code == 0, (args, result.output)


def test_result_commands_without_map(shared_store, config_file):
    for command in ("latest", "evolution", "stats"):
        result = invoke(config_file, command, ZONE)
        assert result.exit_code == 0
        assert "No completed opinion map" in result.output


def test_status_unknown_session(shared_store, config_file):
    result = invoke(config_file, "status", "zone_x_missing")

    assert result.exit_code == 1
    assert "Session not found" in result.output
