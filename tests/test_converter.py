"""ExternalConverter against small /bin/sh stand-ins for the converter binary."""

import os
from pathlib import Path

import pytest

from shardgen.converter import ExternalConverter, sample_path_for
from shardgen.pipeline import ShardGenerator
from shardgen.utils.error_utils import ConversionError
from tests.test_utils import make_inputs, shard_files, write_script


@pytest.fixture
def game(tmp_path) -> Path:
    return make_inputs(tmp_path / "pgn", ["game.pgn"])[0]


def test_sample_path_is_beside_input():
    assert sample_path_for(Path("pgn/a.pgn"), "libsvm") == Path("pgn/a.pgn.libsvm")
    assert sample_path_for("pgn/a.pgn", ".libsvm") == Path("pgn/a.pgn.libsvm")


def test_command_uses_input_and_output_flags():
    conv = ExternalConverter("/bin/princhess")
    assert conv.command(Path("pgn/a.pgn"), Path("pgn/a.pgn.libsvm")) == [
        "/bin/princhess", "-t", "pgn/a.pgn", "-o", "pgn/a.pgn.libsvm",
    ]


def test_successful_conversion(tmp_path, game):
    script = write_script(tmp_path / "conv.sh", 'printf "1 1:0\\n-1 2:1\\n" > "$4"')
    out = ExternalConverter(script).convert(game)

    assert out == game.with_name("game.pgn.libsvm")
    assert out.read_text() == "1 1:0\n-1 2:1\n"


@pytest.mark.error_handling
def test_nonzero_exit_names_input_and_discards_partial_output(tmp_path, game):
    script = write_script(tmp_path / "conv.sh", 'echo "1 1:0" > "$4"\necho "bad movetext" >&2\nexit 3')

    with pytest.raises(ConversionError) as excinfo:
        ExternalConverter(script).convert(game)

    err = excinfo.value
    assert err.path == game
    assert "code 3" in str(err)
    assert "bad movetext" in str(err)
    assert err.context_data["returncode"] == 3
    assert not sample_path_for(game, "libsvm").exists()


@pytest.mark.error_handling
def test_missing_output_is_failure(tmp_path, game):
    script = write_script(tmp_path / "conv.sh", "exit 0")

    with pytest.raises(ConversionError, match="no output"):
        ExternalConverter(script).convert(game)


@pytest.mark.error_handling
def test_empty_output_is_failure(tmp_path, game):
    script = write_script(tmp_path / "conv.sh", ': > "$4"')

    with pytest.raises(ConversionError, match="empty"):
        ExternalConverter(script).convert(game)
    assert not sample_path_for(game, "libsvm").exists()


@pytest.mark.error_handling
def test_timeout_is_failure(tmp_path, game):
    script = write_script(tmp_path / "conv.sh", "exec sleep 5")

    with pytest.raises(ConversionError, match="timed out") as excinfo:
        ExternalConverter(script, timeout=0.2).convert(game)
    assert excinfo.value.path == game


@pytest.mark.error_handling
def test_missing_binary(tmp_path, game):
    conv = ExternalConverter(tmp_path / "nope")

    with pytest.raises(ConversionError, match="not found"):
        conv.check()
    with pytest.raises(ConversionError) as excinfo:
        conv.convert(game)
    assert excinfo.value.path == game


@pytest.mark.error_handling
def test_non_executable_binary(tmp_path):
    path = tmp_path / "conv.sh"
    path.write_text("#!/bin/sh\n")
    path.chmod(0o644)

    with pytest.raises(ConversionError, match="not executable"):
        ExternalConverter(path).check()


def test_bare_command_name_resolves_through_path(tmp_path, game, monkeypatch):
    bin_dir = tmp_path / "bin"
    bin_dir.mkdir()
    write_script(bin_dir / "princhess", 'printf "1 1:0\\n" > "$4"')
    monkeypatch.setenv("PATH", str(bin_dir) + os.pathsep + os.environ.get("PATH", ""))
    conv = ExternalConverter("princhess")

    conv.check()
    assert conv.convert(game).read_text() == "1 1:0\n"


@pytest.mark.error_handling
def test_bare_command_name_missing_from_path(tmp_path, monkeypatch):
    monkeypatch.setenv("PATH", str(tmp_path))

    with pytest.raises(ConversionError, match="not found"):
        ExternalConverter("princhess").check()


@pytest.mark.integration
def test_pipeline_with_converter_on_path(settings, tmp_path, input_dir, output_dir, monkeypatch):
    bin_dir = tmp_path / "bin"
    bin_dir.mkdir()
    write_script(bin_dir / "princhess", 'seq 1 5 > "$4"')
    monkeypatch.setenv("PATH", str(bin_dir) + os.pathsep + os.environ.get("PATH", ""))
    settings.converter_binary = "princhess"
    make_inputs(input_dir, ["a.pgn"])

    summary = ShardGenerator(settings).run(progress=False)

    assert summary.total_shards == 1
    assert [p.read_text() for p in shard_files(output_dir, "a.pgn")] == ["1\n2\n3\n4\n5\n"]


@pytest.mark.integration
def test_pipeline_with_external_converter(settings, tmp_path, input_dir, output_dir):
    script = write_script(tmp_path / "conv.sh", 'seq 1 25 > "$4"')
    settings.converter_binary = str(script)
    make_inputs(input_dir, ["a.pgn", "b.pgn"])

    summary = ShardGenerator(settings).run(progress=False)

    assert summary.total_shards == 4
    for name in ("a.pgn", "b.pgn"):
        shards = shard_files(output_dir, name)
        assert "".join(p.read_text() for p in shards) == "".join(f"{i}\n" for i in range(1, 26))
    assert sorted(p.name for p in input_dir.iterdir()) == ["a.pgn", "b.pgn"]


@pytest.mark.integration
def test_pipeline_fails_fast_on_bad_binary(settings, input_dir):
    settings.converter_binary = "/nonexistent/princhess"
    make_inputs(input_dir, ["a.pgn"])

    with pytest.raises(ConversionError, match="not found"):
        ShardGenerator(settings).run(progress=False)
