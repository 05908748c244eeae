"""
Shard sizing, naming and splitting for converted sample files.

A sample file with ``n`` lines is split into ``n // samples_per_shard`` shards
of ``n // shard_count + 1`` lines each (the last one shorter). Files below the
threshold become a single shard. Shards are byte-exact slices of the source,
so concatenating them in index order reproduces it.
"""

from __future__ import annotations

import logging
import re
import string
from dataclasses import dataclass
from itertools import islice
from pathlib import Path
from typing import BinaryIO, Iterable, List, Optional, Sequence

from .utils.error_utils import ErrorCategory, ShardGenError, SplitError, safe_operation

logger = logging.getLogger(__name__)

DEFAULT_SAMPLES_PER_SHARD = 1_000_000
PARTIAL_SUFFIX = ".tmp"
# Index characters allowed beyond suffix_length; four alpha characters already name 456,976 shards.
MAX_EXTRA_WIDTH = 2
_READ_BLOCK = 1 << 20


@dataclass(frozen=True)
class SplitPlan:
    """How one sample file is cut into shards."""
    line_count: int
    shard_count: int
    shard_size: int

    @property
    def chunk_count(self) -> int:
        """Number of shard files the split actually produces."""
        if self.line_count == 0 or self.shard_size == 0:
            return 0
        return -(-self.line_count // self.shard_size)


def plan_split(line_count: int, samples_per_shard: int = DEFAULT_SAMPLES_PER_SHARD) -> SplitPlan:
    """Compute the split plan for ``line_count`` samples.

    Below ``samples_per_shard`` the whole file becomes one shard.
    """
    if line_count < 0:
        raise ValueError(f"line_count must be non-negative, got {line_count}")
    if samples_per_shard <= 0:
        raise ValueError(f"samples_per_shard must be positive, got {samples_per_shard}")
    if line_count == 0:
        return SplitPlan(line_count=0, shard_count=0, shard_size=0)

    shard_count = line_count // samples_per_shard
    if shard_count == 0:
        return SplitPlan(line_count=line_count, shard_count=1, shard_size=line_count)
    return SplitPlan(line_count=line_count, shard_count=shard_count,
                     shard_size=line_count // shard_count + 1)


def count_lines(path: Path) -> int:
    """Count samples in ``path``; a final line without newline still counts."""
    path = Path(path)
    count = 0
    last = b""
    with safe_operation(ErrorCategory.SPLIT, path, "count lines"):
        with path.open("rb") as f:
            while True:
                block = f.read(_READ_BLOCK)
                if not block:
                    break
                count += block.count(b"\n")
                last = block[-1:]
    if last and last != b"\n":
        count += 1
    return count


def _base(style: str) -> int:
    if style == "alpha":
        return 26
    if style == "numeric":
        return 10
    raise ValueError(f"Unknown shard index style: {style!r}")


def suffix_width(chunks: int, suffix_length: int = 2, style: str = "alpha") -> int:
    """Smallest width >= ``suffix_length`` that can name ``chunks`` shards."""
    base = _base(style)
    width = max(1, suffix_length)
    while base ** width < chunks:
        width += 1
    if width > max(1, suffix_length) + MAX_EXTRA_WIDTH:
        raise ValueError(f"{chunks} shards need a {width}-character {style} index, "
                         f"more than suffix_length + {MAX_EXTRA_WIDTH}")
    return width


def shard_suffix(index: int, width: int = 2, style: str = "alpha") -> str:
    """Index suffix for shard ``index``: ``aa, ab, ...`` or ``00, 01, ...``."""
    base = _base(style)
    if index < 0 or index >= base ** width:
        raise ValueError(f"Shard index {index} does not fit in {width} {style} characters")
    if style == "numeric":
        return str(index).zfill(width)
    chars = []
    for _ in range(width):
        index, rem = divmod(index, 26)
        chars.append(string.ascii_lowercase[rem])
    return "".join(reversed(chars))


def shard_name(basename: str, sample_suffix: str, index: int, width: int = 2, style: str = "alpha") -> str:
    return f"{basename}.{sample_suffix}.{shard_suffix(index, width, style)}"


def _shard_pattern(sample_suffix: str, style: str, suffix_length: int) -> "re.Pattern[str]":
    alphabet = "[a-z]" if _base(style) == 26 else "[0-9]"
    low = max(1, suffix_length)
    high = low + MAX_EXTRA_WIDTH
    return re.compile(rf"^(?P<base>.+)\.{re.escape(sample_suffix)}\.(?P<index>{alphabet}{{{low},{high}}})$")


def is_shard_name(name: str, sample_suffix: str, basename: Optional[str] = None, style: str = "alpha",
                  suffix_length: int = 2) -> bool:
    """True for ``<base>.<suffix>.<index>`` names and their partial ``.tmp`` forms.

    The index must be one ``split_file`` could have written with the given
    style and ``suffix_length``, so ``notes.libsvm.backup`` is not a shard.
    """
    if name.endswith(PARTIAL_SUFFIX):
        name = name[: -len(PARTIAL_SUFFIX)]
    match = _shard_pattern(sample_suffix, style, suffix_length).match(name)
    if match is None:
        return False
    return basename is None or match.group("base") == basename


def is_compressed_artifact(name: str, sample_suffix: str, compressed_suffixes: Sequence[str] = (".gz",),
                           basename: Optional[str] = None, style: str = "alpha", suffix_length: int = 2) -> bool:
    """True for compressed shards such as ``game.pgn.libsvm.aa.gz``.

    Only a full shard name plus a compressed suffix qualifies. In alpha style
    ``game.pgn.libsvm.gz`` is shard 181, not a compressed sample file.
    """
    for suffix in compressed_suffixes:
        if suffix and name.endswith(suffix):
            stem = name[: -len(suffix)]
            if not stem.endswith(PARTIAL_SUFFIX) and is_shard_name(stem, sample_suffix, basename, style,
                                                                    suffix_length):
                return True
    return False


def _copy_lines(src: BinaryIO, dst: BinaryIO, limit: int) -> int:
    """Copy up to ``limit`` lines from ``src`` to ``dst``; return how many were copied."""
    copied = 0
    for line in islice(src, limit):
        dst.write(line)
        copied += 1
    return copied


def _remove_quietly(paths: Iterable[Path]) -> None:
    for path in paths:
        try:
            path.unlink()
        except FileNotFoundError:
            pass
        except OSError as e:
            logger.warning("Could not remove partial shard %s: %s", path, e)


def split_file(source: Path, output_dir: Path, basename: str, plan: SplitPlan, sample_suffix: str = "libsvm",
               style: str = "alpha", suffix_length: int = 2) -> List[Path]:
    """Write ``source`` into shard files following ``plan``.

    Returns shard paths in index order. On failure every shard written for
    this source is removed and ``SplitError`` is raised.
    """
    source = Path(source)
    output_dir = Path(output_dir)
    if plan.chunk_count == 0:
        return []

    try:
        width = suffix_width(plan.chunk_count, suffix_length, style)
    except ValueError as e:
        raise SplitError(f"Cannot name shards for {source}: {e}", path=source, operation="split") from e
    written: List[Path] = []
    partial: Optional[Path] = None
    lines_written = 0
    leftover = False
    try:
        with safe_operation(ErrorCategory.SPLIT, source, "read samples"):
            f = source.open("rb")
        with f:
            for index in range(plan.chunk_count):
                target = output_dir / shard_name(basename, sample_suffix, index, width, style)
                partial = target.with_name(target.name + PARTIAL_SUFFIX)
                with safe_operation(ErrorCategory.SPLIT, partial, "write shard"):
                    with partial.open("wb") as out:
                        copied = _copy_lines(f, out, plan.shard_size)
                    if copied == 0:
                        partial.unlink()
                        partial = None
                        break
                    partial.replace(target)
                partial = None
                written.append(target)
                lines_written += copied
                logger.debug("Wrote %s (%d samples)", target.name, copied)
            leftover = bool(f.read(1))
    except ShardGenError:
        _remove_quietly(written + ([partial] if partial else []))
        raise
    except OSError as e:
        _remove_quietly(written + ([partial] if partial else []))
        raise SplitError(f"Splitting {source} failed: {e}", path=source, operation="split") from e

    if lines_written != plan.line_count or leftover:
        _remove_quietly(written)
        raise SplitError(
            f"{source} changed while splitting: expected {plan.line_count} samples, found a different count",
            path=source, operation="split",
        )
    return written
