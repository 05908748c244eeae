"""Pytest configuration and shared fixtures for the shardgen test suite."""

import logging
from pathlib import Path
from typing import Any, Dict

import pytest
import yaml

from shardgen.config import Config, ShardGenSettings


# Configure test logging
logging.basicConfig(
    level=logging.WARNING,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)


def pytest_configure(config):
    """Register custom pytest markers."""
    config.addinivalue_line(
        "markers", "integration: Tests that run the real external-process converter"
    )
    config.addinivalue_line(
        "markers", "slow: Tests that write millions of sample lines"
    )
    config.addinivalue_line(
        "markers", "error_handling: Failure propagation and cleanup tests"
    )


@pytest.fixture(scope="session")
def repo_config_path() -> Path:
    return Path(__file__).parent.parent / "config.yaml"


@pytest.fixture(scope="session")
def test_config_dict(repo_config_path) -> Dict[str, Any]:
    """Load the shipped config.yaml."""
    with open(repo_config_path) as f:
        return yaml.safe_load(f)


@pytest.fixture(scope="session")
def test_config(test_config_dict) -> Config:
    return Config(test_config_dict)


@pytest.fixture(scope="function")
def input_dir(tmp_path) -> Path:
    path = tmp_path / "pgn"
    path.mkdir()
    return path


@pytest.fixture(scope="function")
def output_dir(tmp_path) -> Path:
    return tmp_path / "model_data"


@pytest.fixture(scope="function")
def settings(input_dir, output_dir) -> ShardGenSettings:
    """Settings with a small shard threshold so tests stay fast."""
    return ShardGenSettings(
        input_dir=input_dir,
        output_dir=output_dir,
        converter_binary="/nonexistent/princhess",
        workers=3,
        samples_per_shard=10,
    )


@pytest.fixture(scope="function", autouse=True)
def reset_shardgen_logger():
    """Undo setup_logging() so handlers and propagation don't leak between tests."""
    yield
    logger = logging.getLogger("shardgen")
    for handler in logger.handlers[:]:
        handler.close()
        logger.removeHandler(handler)
    logger.propagate = True
    logger.setLevel(logging.NOTSET)
