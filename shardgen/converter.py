"""
Converter capability: turn one game-record file into a line-oriented sample file.

The pipeline only depends on the ``Converter`` protocol, so tests can swap in a
fake implementation instead of the real external binary.
"""

from __future__ import annotations

import logging
import shutil
import subprocess
from pathlib import Path
from typing import List, Optional, Protocol, Union

from .utils.error_utils import ConversionError

logger = logging.getLogger(__name__)

# Lines of converter stderr kept in error messages
STDERR_TAIL_LINES = 5


class Converter(Protocol):
    """Anything that can convert a game-record file into a sample file."""

    sample_suffix: str

    def convert(self, input_path: Path) -> Path:
        """Convert ``input_path`` and return the sample file path.

        Raises ``ConversionError`` naming ``input_path`` on failure.
        """
        ...


def sample_path_for(input_path: Union[str, Path], suffix: str) -> Path:
    """Return the intermediate sample path beside ``input_path``."""
    input_path = Path(input_path)
    return input_path.with_name(f"{input_path.name}.{suffix.lstrip('.')}")


def _stderr_tail(stderr: Optional[str]) -> str:
    if not stderr:
        return ""
    lines = [line for line in stderr.strip().splitlines() if line.strip()]
    return " | ".join(lines[-STDERR_TAIL_LINES:])


def _discard(path: Path) -> None:
    """Remove a partial converter output, if any."""
    try:
        path.unlink()
    except FileNotFoundError:
        pass


class ExternalConverter:
    """Runs the converter binary as ``<binary> -t <input> -o <input>.<suffix>``."""

    def __init__(self, binary: Union[str, Path], input_flag: str = "-t", output_flag: str = "-o",
                 sample_suffix: str = "libsvm", timeout: Optional[float] = None):
        self.binary = str(binary)
        self.input_flag = input_flag
        self.output_flag = output_flag
        self.sample_suffix = sample_suffix.lstrip(".")
        self.timeout = timeout

    @classmethod
    def from_settings(cls, settings) -> "ExternalConverter":
        return cls(
            settings.converter_binary,
            input_flag=settings.input_flag,
            output_flag=settings.output_flag,
            sample_suffix=settings.sample_suffix,
            timeout=settings.converter_timeout,
        )

    def command(self, input_path: Path, output_path: Path) -> List[str]:
        return [self.binary, self.input_flag, str(input_path), self.output_flag, str(output_path)]

    def check(self) -> None:
        """Fail fast when the converter binary cannot be executed.

        A bare command name is looked up on ``PATH`` the way ``subprocess`` will.
        """
        if shutil.which(self.binary) is not None:
            return
        path = Path(self.binary)
        if path.is_file():
            raise ConversionError(f"Converter binary is not executable: {self.binary}", path=path, operation="check")
        raise ConversionError(f"Converter binary not found: {self.binary}", path=path, operation="check")

    def convert(self, input_path: Path) -> Path:
        input_path = Path(input_path)
        output_path = sample_path_for(input_path, self.sample_suffix)
        cmd = self.command(input_path, output_path)
        logger.debug("Running converter: %s", " ".join(cmd))

        try:
            proc = subprocess.run(
                cmd,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.DEVNULL,
                stderr=subprocess.PIPE,
                text=True,
                errors="replace",
                timeout=self.timeout,
            )
        except subprocess.TimeoutExpired as e:
            _discard(output_path)
            raise ConversionError(
                f"Converter timed out after {self.timeout}s on {input_path}",
                path=input_path, operation="convert",
            ) from e
        except OSError as e:
            _discard(output_path)
            raise ConversionError(
                f"Could not start converter {self.binary} for {input_path}: {e.strerror or e}",
                path=input_path, operation="convert",
            ) from e

        if proc.returncode != 0:
            _discard(output_path)
            detail = _stderr_tail(proc.stderr)
            message = f"Converter exited with code {proc.returncode} on {input_path}"
            if detail:
                message += f": {detail}"
            raise ConversionError(message, path=input_path, operation="convert",
                                  context_data={"returncode": proc.returncode})

        if not output_path.exists():
            raise ConversionError(
                f"Converter produced no output for {input_path} (expected {output_path})",
                path=input_path, operation="convert",
            )
        if output_path.stat().st_size == 0:
            _discard(output_path)
            raise ConversionError(
                f"Converter produced an empty sample file for {input_path}",
                path=input_path, operation="convert",
            )
        return output_path
