"""
Shard Generator: game-record files in, size-bounded sample shards out.

Workflow:
1. Discover: list ``<input_dir>/*.<game_extension>``.
2. Pre-clean: drop shards and compressed shards left in the output directory
   by an earlier run, plus stale intermediates beside the inputs.
3. Convert: run the converter once per input on a bounded thread pool; each
   worker blocks on its converter process, so at most ``workers`` converters
   run at once.
4. Split: count the converted samples, plan the split and write shards.
5. Cleanup: delete the intermediate sample file and any compressed shards.

The first failure aborts the run. Inputs already sharded stay in place and
inputs not yet started are never touched.
"""

from __future__ import annotations

import logging
import threading
import time
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional

from tqdm import tqdm

from .config import ShardGenSettings
from .converter import Converter, ExternalConverter, sample_path_for
from .sharding import SplitPlan, count_lines, is_compressed_artifact, is_shard_name, plan_split, split_file
from .utils.error_utils import ErrorCategory, ShardGenError, safe_operation

logger = logging.getLogger(__name__)


@dataclass
class ShardResult:
    """Shards produced for one input file."""
    input_path: Path
    plan: SplitPlan
    shards: List[Path]

    @property
    def samples(self) -> int:
        return self.plan.line_count


@dataclass
class RunSummary:
    """Outcome of one shard generation run."""
    results: List[ShardResult] = field(default_factory=list)
    removed: List[Path] = field(default_factory=list)
    elapsed: float = 0.0

    @property
    def total_samples(self) -> int:
        return sum(r.samples for r in self.results)

    @property
    def total_shards(self) -> int:
        return sum(len(r.shards) for r in self.results)


class ShardGenerator:
    """Converts every game-record file in the input directory into shards."""

    def __init__(self, settings: ShardGenSettings, converter: Optional[Converter] = None):
        self.settings = settings
        self.converter: Converter = converter or ExternalConverter.from_settings(settings)
        self._abort = threading.Event()

    def discover(self) -> List[Path]:
        """Return the input files, sorted by name."""
        input_dir = self.settings.input_dir
        suffix = f".{self.settings.game_extension}"
        with safe_operation(ErrorCategory.DISCOVERY, input_dir, "list input directory"):
            inputs = [p for p in input_dir.iterdir() if p.suffix == suffix and p.is_file()]
        inputs.sort()
        logger.info("Found %d input files in %s", len(inputs), input_dir)
        return inputs

    def preclean(self, inputs: List[Path]) -> List[Path]:
        """Remove output left by an earlier run. Returns the removed paths."""
        s = self.settings
        output_dir = s.output_dir
        sample_suffix = s.sample_suffix
        naming = {"style": s.index_style, "suffix_length": s.suffix_length}

        with safe_operation(ErrorCategory.DISCOVERY, output_dir, "create output directory"):
            output_dir.mkdir(parents=True, exist_ok=True)
        with safe_operation(ErrorCategory.DISCOVERY, output_dir, "list output directory"):
            stale = [
                p for p in output_dir.iterdir()
                if p.is_file()
                and (is_shard_name(p.name, sample_suffix, **naming)
                     or is_compressed_artifact(p.name, sample_suffix, s.compressed_suffixes, **naming))
            ]
        stale.extend(
            intermediate for intermediate in (sample_path_for(p, sample_suffix) for p in inputs)
            if intermediate.is_file()
        )

        for path in sorted(stale):
            with safe_operation(ErrorCategory.CLEANUP, path, "remove stale file"):
                path.unlink()
            logger.debug("Removed stale %s", path)
        if stale:
            logger.info("Removed %d stale files from a previous run", len(stale))
        return stale

    def _remove_intermediate(self, sample_path: Path) -> None:
        with safe_operation(ErrorCategory.CLEANUP, sample_path, "remove intermediate sample file"):
            sample_path.unlink(missing_ok=True)

    def _remove_compressed(self, basename: str, keep: List[Path]) -> None:
        """Delete compressed shards of ``basename``, never one of ``keep``."""
        s = self.settings
        kept = {p.name for p in keep}
        with safe_operation(ErrorCategory.CLEANUP, s.output_dir, "list output directory"):
            artifacts = [
                p for p in s.output_dir.iterdir()
                if p.name not in kept
                and is_compressed_artifact(p.name, s.sample_suffix, s.compressed_suffixes, basename=basename,
                                           style=s.index_style, suffix_length=s.suffix_length)
            ]
        for path in artifacts:
            with safe_operation(ErrorCategory.CLEANUP, path, "remove compressed shard"):
                path.unlink()
            logger.debug("Removed compressed artifact %s", path)

    def split(self, input_path: Path, sample_path: Path) -> ShardResult:
        """Size and split one converted sample file."""
        s = self.settings
        plan = plan_split(count_lines(sample_path), s.samples_per_shard)
        logger.info("Splitting %s: %d samples into %d shards of up to %d",
                    sample_path.name, plan.line_count, plan.chunk_count, plan.shard_size)
        shards = split_file(sample_path, s.output_dir, input_path.name, plan,
                            sample_suffix=s.sample_suffix, style=s.index_style,
                            suffix_length=s.suffix_length)
        return ShardResult(input_path=input_path, plan=plan, shards=shards)

    def process(self, input_path: Path) -> Optional[ShardResult]:
        """Convert, split and clean up one input file.

        Returns ``None`` without touching anything once another input failed.
        """
        if self._abort.is_set():
            logger.debug("Skipping %s after an earlier failure", input_path.name)
            return None
        try:
            logger.info("Sampling %s", input_path.name)
            sample_path = self.converter.convert(input_path)
            try:
                result = self.split(input_path, sample_path)
            except ShardGenError:
                # The intermediate must not outlive a failed split.
                try:
                    self._remove_intermediate(sample_path)
                except ShardGenError as cleanup_error:
                    logger.error("%s", cleanup_error)
                raise
            self._remove_intermediate(sample_path)
            self._remove_compressed(input_path.name, keep=result.shards)
        except ShardGenError as e:
            self._abort.set()
            e.context_data.setdefault("input", str(input_path))
            raise
        logger.info("Finished %s: %d shards", input_path.name, len(result.shards),
                    extra={"input": str(input_path), "shards": len(result.shards), "samples": result.samples})
        return result

    def run(self, progress: bool = True) -> RunSummary:
        """Process every input. Raises the first ``ShardGenError`` encountered."""
        start = time.time()
        inputs = self.discover()
        check = getattr(self.converter, "check", None)
        if inputs and callable(check):
            check()

        summary = RunSummary(removed=self.preclean(inputs))
        if not inputs:
            logger.warning("Nothing to do: no *.%s files in %s", self.settings.game_extension, self.settings.input_dir)
            summary.elapsed = time.time() - start
            return summary

        workers = self.settings.workers
        logger.info("Converting %d files with up to %d concurrent converters", len(inputs), workers)
        self._abort.clear()
        results: Dict[Path, ShardResult] = {}
        executor = ThreadPoolExecutor(max_workers=workers, thread_name_prefix="shardgen")
        try:
            futures = {executor.submit(self.process, path): path for path in inputs}
            with tqdm(total=len(inputs), desc="Sharding", unit="file", disable=not progress) as pbar:
                for future in as_completed(futures):
                    result = future.result()
                    if result is not None:
                        results[futures[future]] = result
                    pbar.update(1)
        except ShardGenError as e:
            failed = e.context_data.get("input", e.path)
            logger.error("Aborting run: %s phase failed for %s", e.category.value, failed,
                         extra={"input": str(failed), "phase": e.category.value})
            raise
        finally:
            executor.shutdown(wait=True, cancel_futures=True)

        summary.results = [results[path] for path in inputs]
        summary.elapsed = time.time() - start
        logger.info("Wrote %d shards (%d samples) from %d files in %.1fs",
                    summary.total_shards, summary.total_samples, len(inputs), summary.elapsed)
        return summary
