import json

import pytest
import yaml

from shardgen.cli import main
from tests.test_utils import make_inputs, shard_files, write_script


@pytest.fixture
def run_config(tmp_path):
    """Write a config pointing at tmp directories and return its path."""
    cfg = {
        "paths": {"input_dir": str(tmp_path / "pgn"), "output_dir": str(tmp_path / "model_data")},
        "pipeline": {"workers": 2},
        "sharding": {"samples_per_shard": 10},
    }
    path = tmp_path / "config.yaml"
    path.write_text(yaml.safe_dump(cfg))
    return path


@pytest.mark.integration
def test_generate_succeeds(tmp_path, run_config, monkeypatch):
    script = write_script(tmp_path / "conv.sh", 'seq 1 30 > "$4"')
    monkeypatch.setenv("PRINCHESS", str(script))
    make_inputs(tmp_path / "pgn", ["a.pgn"])
    log_dir = tmp_path / "logs"

    code = main(["--config", str(run_config), "--log-dir", str(log_dir), "--no-progress"])

    assert code == 0
    assert [p.name for p in shard_files(tmp_path / "model_data")] == [
        "a.pgn.libsvm.aa", "a.pgn.libsvm.ab", "a.pgn.libsvm.ac",
    ]
    assert (log_dir / "shardgen.log").exists()
    records = [json.loads(line) for line in (log_dir / "structured.jsonl").read_text().splitlines()]
    assert any(r.get("input", "").endswith("a.pgn") and r.get("shards") == 3 for r in records)


@pytest.mark.integration
@pytest.mark.error_handling
def test_generate_reports_failing_input(tmp_path, run_config, monkeypatch):
    script = write_script(tmp_path / "conv.sh", 'echo "corrupt game" >&2\nexit 2')
    monkeypatch.setenv("PRINCHESS", str(script))
    make_inputs(tmp_path / "pgn", ["broken.pgn"])
    log_dir = tmp_path / "logs"

    code = main(["--config", str(run_config), "--log-dir", str(log_dir), "--no-progress"])

    assert code == 1
    assert shard_files(tmp_path / "model_data") == []
    log_text = (log_dir / "shardgen.log").read_text()
    assert "broken.pgn" in log_text
    assert "convert" in log_text
    records = [json.loads(line) for line in (log_dir / "structured.jsonl").read_text().splitlines()]
    aborts = [r for r in records if r.get("phase") == "convert"]
    assert aborts and aborts[0]["input"].endswith("broken.pgn")
    assert aborts[0]["level"] == "ERROR"


def test_command_line_overrides(tmp_path, run_config, monkeypatch):
    monkeypatch.setenv("PRINCHESS", "/nonexistent/princhess")
    other = tmp_path / "other"
    other.mkdir()

    code = main(["--config", str(run_config), "--input-dir", str(other),
                 "--output-dir", str(tmp_path / "out"), "--workers", "1", "--log-dir", "", "--no-progress"])

    assert code == 0
    assert (tmp_path / "out").is_dir()


def test_invalid_worker_count_fails(run_config):
    assert main(["--config", str(run_config), "--workers", "0", "--log-dir", ""]) == 1


def test_missing_config_file_fails(tmp_path):
    assert main(["--config", str(tmp_path / "missing.yaml")]) == 1


def test_match_dry_run_prints_command(repo_config_path, capsys):
    code = main(["--config", str(repo_config_path), "--log-dir", "", "match", "sprt_gain", "--dry-run"])

    assert code == 0
    out = capsys.readouterr().out.strip()
    assert out.startswith("cutechess-cli -engine cmd=/engines/princhess name=princhess")
    assert "-sprt elo0=0 elo1=5 alpha=0.05 beta=0.05" in out


def test_unknown_match_profile(repo_config_path):
    assert main(["--config", str(repo_config_path), "--log-dir", "", "match", "nope", "--dry-run"]) == 1


def test_self_play_dry_run_writes_into_pgn_dir(repo_config_path, capsys):
    code = main(["--config", str(repo_config_path), "--log-dir", "", "match", "self_play", "--dry-run"])

    assert code == 0
    out = capsys.readouterr().out.strip()
    assert out.endswith("-pgnout /pgn/self_play-0.12.0.pgn min fi")
    assert "-games" not in out
