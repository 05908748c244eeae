# Match profiles for cutechess-cli
"""
Declarative match profiles rendered into a ``cutechess-cli`` command line:
Elo gauntlets, SPRT tests, tuning gauntlets, and self-play or debug runs
whose PGN output feeds the shard generator. Results are left to the match tool.
"""

from __future__ import annotations

import logging
import shlex
import subprocess
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional

from .config import Config
from .utils.error_utils import ConfigurationError

logger = logging.getLogger(__name__)

DEFAULT_TOOL = "cutechess-cli"


@dataclass
class EngineSpec:
    """One engine taking part in a match."""
    name: str
    cmd: str
    options: Dict[str, Any] = field(default_factory=dict)
    # Raw tokens appended after the engine's options
    args: List[str] = field(default_factory=list)


@dataclass
class SprtSpec:
    """Sequential probability ratio test bounds."""
    elo0: float = 0.0
    elo1: float = 5.0
    alpha: float = 0.05
    beta: float = 0.05


@dataclass
class OpeningsSpec:
    """Opening book used to start games."""
    file: str
    format: str = "epd"
    order: str = "random"


@dataclass
class MatchProfile:
    """Configuration for a single match run.

    ``None`` for ``games``, ``rating_interval`` or ``concurrency`` leaves the
    flag out so the match tool's own default applies.
    """
    name: str
    engines: List[EngineSpec]
    time_control: str = "8+0.08"
    options: Dict[str, Any] = field(default_factory=dict)
    openings: Optional[OpeningsSpec] = None
    games: Optional[int] = 2
    rounds: int = 1000
    concurrency: Optional[int] = 1
    sprt: Optional[SprtSpec] = None
    tournament: Optional[str] = None
    repeat: bool = True
    recover: bool = True
    debug: bool = False
    rating_interval: Optional[int] = 10
    protocol: str = "uci"
    # PGN output file followed by cutechess-cli's pgnout flags, e.g. ["/pgn/out.pgn", "min", "fi"]
    pgnout: List[str] = field(default_factory=list)


def _format_value(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def _option_args(options: Mapping[str, Any]) -> List[str]:
    return [f"option.{key}={_format_value(value)}" for key, value in options.items() if value is not None]


def _optional_int(value: Any) -> Optional[int]:
    return None if value is None else int(value)


def _tokens(value: Any) -> List[str]:
    if not value:
        return []
    if isinstance(value, str):
        return shlex.split(value)
    return [str(v) for v in value]


def _parse_engine(profile: str, entry: Any) -> EngineSpec:
    if not isinstance(entry, Mapping) or "name" not in entry or "cmd" not in entry:
        raise ConfigurationError(f"Match profile '{profile}': each engine needs 'name' and 'cmd', got {entry!r}")
    return EngineSpec(
        name=str(entry["name"]),
        cmd=str(entry["cmd"]),
        options=dict(entry.get("options") or {}),
        args=_tokens(entry.get("args")),
    )


def _parse_profile(name: str, data: Mapping[str, Any], defaults: Mapping[str, Any]) -> MatchProfile:
    merged: Dict[str, Any] = dict(defaults)
    merged.update(data)
    # A profile option set to null drops the default
    options = dict(defaults.get("options", {}) or {})
    options.update(data.get("options", {}) or {})

    try:
        engines = [_parse_engine(name, entry) for entry in merged.get("engines") or []]
    except (TypeError, ValueError) as e:
        raise ConfigurationError(f"Match profile '{name}' has an invalid engine: {e}") from e
    if len(engines) < 2:
        raise ConfigurationError(f"Match profile '{name}' needs at least two engines")

    openings = None
    if merged.get("openings"):
        openings_data = merged["openings"]
        if "file" not in openings_data:
            raise ConfigurationError(f"Match profile '{name}': openings need a 'file'")
        openings = OpeningsSpec(
            file=str(openings_data["file"]),
            format=str(openings_data.get("format", "epd")),
            order=str(openings_data.get("order", "random")),
        )

    try:
        sprt = SprtSpec(**merged["sprt"]) if merged.get("sprt") else None
        tournament = merged.get("tournament")
        return MatchProfile(
            name=name,
            engines=engines,
            time_control=str(merged.get("time_control", "8+0.08")),
            options=options,
            openings=openings,
            games=_optional_int(merged.get("games", 2)),
            rounds=int(merged.get("rounds", 1000)),
            concurrency=_optional_int(merged.get("concurrency", 1)),
            sprt=sprt,
            tournament=str(tournament) if tournament else None,
            repeat=bool(merged.get("repeat", True)),
            recover=bool(merged.get("recover", True)),
            debug=bool(merged.get("debug", False)),
            rating_interval=_optional_int(merged.get("rating_interval", 10)),
            protocol=str(merged.get("protocol", "uci")),
            pgnout=_tokens(merged.get("pgnout")),
        )
    except (TypeError, ValueError) as e:
        raise ConfigurationError(f"Match profile '{name}' is invalid: {e}") from e


def load_profiles(cfg: Config) -> Dict[str, MatchProfile]:
    """Parse every profile in the ``matches`` config section."""
    section = cfg.matches()
    defaults = section.get("defaults", {}) or {}
    profiles = section.get("profiles", {}) or {}
    return {name: _parse_profile(name, data or {}, defaults) for name, data in profiles.items()}


def build_command(profile: MatchProfile, tool: str = DEFAULT_TOOL) -> List[str]:
    """Render ``profile`` as a cutechess-cli argv."""
    cmd = [tool]
    for engine in profile.engines:
        cmd += ["-engine", f"cmd={engine.cmd}", f"name={engine.name}"]
        cmd += _option_args(engine.options) + engine.args

    cmd += ["-each", f"proto={profile.protocol}", f"tc={profile.time_control}"]
    cmd += _option_args(profile.options)

    if profile.sprt is not None:
        s = profile.sprt
        cmd += ["-sprt", f"elo0={s.elo0:g}", f"elo1={s.elo1:g}", f"alpha={s.alpha:g}", f"beta={s.beta:g}"]
    if profile.tournament:
        cmd += ["-tournament", profile.tournament]
    if profile.openings is not None:
        o = profile.openings
        cmd += ["-openings", f"file={o.file}", f"format={o.format}", f"order={o.order}"]

    if profile.games is not None:
        cmd += ["-games", str(profile.games)]
    if profile.repeat:
        cmd.append("-repeat")
    if profile.debug:
        cmd.append("-debug")
    cmd += ["-rounds", str(profile.rounds)]
    if profile.recover:
        cmd.append("-recover")
    if profile.rating_interval is not None:
        cmd += ["-ratinginterval", str(profile.rating_interval)]
    if profile.concurrency is not None:
        cmd += ["-concurrency", str(profile.concurrency)]
    if profile.pgnout:
        cmd += ["-pgnout"] + profile.pgnout
    return cmd


def run_match(profile: MatchProfile, tool: str = DEFAULT_TOOL) -> int:
    """Run the match tool in the foreground and return its exit code."""
    cmd = build_command(profile, tool)
    logger.info("Starting %s: %s", profile.name, shlex.join(cmd))
    try:
        return subprocess.run(cmd).returncode
    except OSError as e:
        raise ConfigurationError(f"Cannot start match tool {tool}: {e.strerror or e}", path=tool) from e
