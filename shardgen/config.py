from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional

import yaml

from .utils.error_utils import ConfigurationError

CONVERTER_ENV_VAR = "PRINCHESS"
DEFAULT_CONVERTER = "../target/release/princhess"
INDEX_STYLES = ("alpha", "numeric")


@dataclass
class Config:
    raw: Dict[str, Any]

    @staticmethod
    def load(path: str = "config.yaml") -> "Config":
        """Load configuration data from a YAML file."""
        try:
            with open(path, "r") as f:
                data = yaml.safe_load(f)
        except OSError as e:
            raise ConfigurationError(f"Cannot read config file {path}: {e.strerror or e}", path=path) from e
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Invalid YAML in {path}: {e}", path=path) from e
        if data is None:
            data = {}
        if not isinstance(data, dict):
            raise ConfigurationError(f"Config file {path} must contain a mapping", path=path)
        return Config(data)

    @staticmethod
    def load_or_default(path: Optional[str] = None) -> "Config":
        """Load ``path`` if given, else ``config.yaml`` if present, else empty defaults."""
        if path:
            return Config.load(path)
        if Path("config.yaml").exists():
            return Config.load("config.yaml")
        return Config({})

    def get(self, key: str, default: Any = None) -> Any:
        """Return a configuration value or the provided default."""
        return self.raw.get(key, default)

    def to_dict(self) -> Dict[str, Any]:
        """Return the underlying configuration dictionary."""
        return self.raw

    # Convenience nested getters
    def paths(self) -> Dict[str, Any]:
        """Input and output directory section."""
        return self.raw.get("paths", {}) or {}

    def converter(self) -> Dict[str, Any]:
        """External converter section."""
        return self.raw.get("converter", {}) or {}

    def sharding(self) -> Dict[str, Any]:
        """Shard sizing and naming section."""
        return self.raw.get("sharding", {}) or {}

    def pipeline(self) -> Dict[str, Any]:
        """Worker pool section."""
        return self.raw.get("pipeline", {}) or {}

    def logging(self) -> Dict[str, Any]:
        """Logging section."""
        return self.raw.get("logging", {}) or {}

    def matches(self) -> Dict[str, Any]:
        """Match profile section."""
        return self.raw.get("matches", {}) or {}


def _positive_int(section: str, key: str, value: Any) -> int:
    try:
        number = int(value)
    except (TypeError, ValueError) as e:
        raise ConfigurationError(f"{section}.{key} must be an integer, got {value!r}") from e
    if number <= 0:
        raise ConfigurationError(f"{section}.{key} must be positive, got {number}")
    return number


@dataclass
class ShardGenSettings:
    """Validated settings for one shard generation run."""
    input_dir: Path = Path("pgn")
    output_dir: Path = Path("model_data")
    game_extension: str = "pgn"
    converter_binary: str = DEFAULT_CONVERTER
    input_flag: str = "-t"
    output_flag: str = "-o"
    sample_suffix: str = "libsvm"
    converter_timeout: Optional[float] = None
    workers: int = 9
    samples_per_shard: int = 1_000_000
    index_style: str = "alpha"
    suffix_length: int = 2
    compressed_suffixes: List[str] = field(default_factory=lambda: [".gz"])

    def __post_init__(self):
        self.input_dir = Path(self.input_dir)
        self.output_dir = Path(self.output_dir)
        self.game_extension = self.game_extension.lstrip(".")
        self.sample_suffix = self.sample_suffix.lstrip(".")
        self.validate()

    def validate(self) -> None:
        if not self.game_extension:
            raise ConfigurationError("pipeline.game_extension must not be empty")
        if not self.sample_suffix:
            raise ConfigurationError("converter.sample_suffix must not be empty")
        if not self.converter_binary:
            raise ConfigurationError("converter.binary must not be empty")
        self.workers = _positive_int("pipeline", "workers", self.workers)
        self.samples_per_shard = _positive_int("sharding", "samples_per_shard", self.samples_per_shard)
        self.suffix_length = _positive_int("sharding", "suffix_length", self.suffix_length)
        if self.index_style not in INDEX_STYLES:
            raise ConfigurationError(
                f"sharding.index_style must be one of {', '.join(INDEX_STYLES)}, got {self.index_style!r}"
            )
        if self.converter_timeout is not None:
            try:
                self.converter_timeout = float(self.converter_timeout)
            except (TypeError, ValueError) as e:
                raise ConfigurationError(f"converter.timeout must be a number, got {self.converter_timeout!r}") from e
            if self.converter_timeout <= 0:
                raise ConfigurationError(f"converter.timeout must be positive, got {self.converter_timeout}")

    @staticmethod
    def from_config(cfg: Config, env: Optional[Mapping[str, str]] = None) -> "ShardGenSettings":
        """Build settings from ``cfg``; ``PRINCHESS`` in ``env`` overrides the converter path."""
        if env is None:
            env = os.environ
        paths = cfg.paths()
        conv = cfg.converter()
        shard = cfg.sharding()
        pipe = cfg.pipeline()

        binary = env.get(CONVERTER_ENV_VAR) or conv.get("binary", DEFAULT_CONVERTER)

        return ShardGenSettings(
            input_dir=Path(paths.get("input_dir", "pgn")),
            output_dir=Path(paths.get("output_dir", "model_data")),
            game_extension=str(pipe.get("game_extension", "pgn")),
            converter_binary=str(binary),
            input_flag=str(conv.get("input_flag", "-t")),
            output_flag=str(conv.get("output_flag", "-o")),
            sample_suffix=str(conv.get("sample_suffix", "libsvm")),
            converter_timeout=conv.get("timeout"),
            workers=pipe.get("workers", 9),
            samples_per_shard=shard.get("samples_per_shard", 1_000_000),
            index_style=str(shard.get("index_style", "alpha")),
            suffix_length=shard.get("suffix_length", 2),
            compressed_suffixes=list(shard.get("compressed_suffixes", [".gz"])),
        )
