"""robocopy command construction, invocation and exit code classification."""

from __future__ import annotations

import logging
import subprocess
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Callable, List, Optional

from .config import BackupJob

DEFAULT_TOOL = "robocopy"
RETRY_COUNT = 3
RETRY_WAIT_SECONDS = 10
FATAL_THRESHOLD = 8
# robocopy uses 16 for "serious error, nothing copied"; reused when the tool cannot start.
LAUNCH_FAILURE_CODE = 16


class ExitOutcome(Enum):
    """Classified robocopy exit code."""

    NO_CHANGE = "No files were copied; source and destination are in sync."
    COPIED = "One or more files were copied successfully."
    EXTRA_FILES_DETECTED = "Extra files or directories were detected; no files were copied."
    COPIED_WITH_EXTRAS = "Some files were copied; additional files were present."
    MISMATCH_WARNING = "Some mismatched files or directories were detected."
    COPIED_WITH_MISMATCH = "Some files were copied; some files were mismatched."
    MISMATCH_AND_EXTRAS = "Additional and mismatched files exist; no files were copied."
    COPIED_WITH_MISMATCH_AND_EXTRAS = (
        "Files were copied, mismatched files and additional files were present."
    )
    FATAL = "At least one file or directory could not be copied (fatal error)."

    @property
    def message(self) -> str:
        return self.value

    @property
    def success(self) -> bool:
        """Codes 0-7 count as success, warnings included."""
        return self is not ExitOutcome.FATAL


_OUTCOMES_BY_CODE = (
    ExitOutcome.NO_CHANGE,
    ExitOutcome.COPIED,
    ExitOutcome.EXTRA_FILES_DETECTED,
    ExitOutcome.COPIED_WITH_EXTRAS,
    ExitOutcome.MISMATCH_WARNING,
    ExitOutcome.COPIED_WITH_MISMATCH,
    ExitOutcome.MISMATCH_AND_EXTRAS,
    ExitOutcome.COPIED_WITH_MISMATCH_AND_EXTRAS,
)


def classify_exit_code(code: int) -> ExitOutcome:
    """Map a robocopy exit code to its outcome; anything outside 0-7 is fatal."""
    if 0 <= code < FATAL_THRESHOLD:
        return _OUTCOMES_BY_CODE[code]
    return ExitOutcome.FATAL


@dataclass(frozen=True)
class ToolResult:
    exit_code: int
    output: str = ""


@dataclass(frozen=True)
class RunRequest:
    """One backup execution: where from, where to, and how."""

    source: Path
    destination: Path
    mirror: bool = False
    dry_run: bool = False
    name: str = "manual"

    @classmethod
    def from_job(cls, job: BackupJob, base_dir: Path, dry_run: bool = False) -> RunRequest:
        source, destination = job.resolve_paths(base_dir)
        return cls(
            source=source,
            destination=destination,
            mirror=job.mirror,
            dry_run=dry_run,
            name=job.name,
        )

    @property
    def mode(self) -> str:
        return "MIRROR" if self.mirror else "ADDITIVE"


LineHandler = Callable[[str], None]
ToolRunner = Callable[..., ToolResult]


def run_tool(cmd: List[str], on_line: Optional[LineHandler] = None) -> ToolResult:
    """
    Run the copy tool and stream its console output as it is produced.

    Args:
        cmd: Command list to execute
        on_line: Called with each output line (stderr merged into stdout)

    Returns:
        Exit code and the full collected output
    """
    try:
        process = subprocess.Popen(
            cmd,
            stdout=subprocess.PIPE,
            stderr=subprocess.STDOUT,
            text=True,
            errors="replace",
        )
    except (FileNotFoundError, PermissionError, subprocess.SubprocessError) as e:
        message = f"Could not start {cmd[0]}: {e}"
        if on_line is not None:
            on_line(message)
        return ToolResult(LAUNCH_FAILURE_CODE, message)

    lines = []
    with process:
        for line in process.stdout:
            lines.append(line)
            if on_line is not None:
                on_line(line)
    return ToolResult(process.returncode, "".join(lines))


class RobocopyManager:
    """Builds robocopy command lines and runs them."""

    def __init__(self, tool: str = DEFAULT_TOOL, runner: ToolRunner = run_tool):
        self.tool = tool
        self.runner = runner
        self.logger = logging.getLogger(__name__)

    def build_command(self, request: RunRequest, log_file: Path) -> List[str]:
        """
        Build the robocopy argument list for a request.

        Args:
            request: What to copy and in which mode
            log_file: Per-run log that robocopy appends its report to

        Returns:
            Command list suitable for subprocess
        """
        cmd = [
            self.tool,
            str(request.source),
            str(request.destination),
            # /MIR deletes extraneous destination entries, /E only adds.
            "/MIR" if request.mirror else "/E",
            f"/R:{RETRY_COUNT}",
            f"/W:{RETRY_WAIT_SECONDS}",
            f"/LOG+:{log_file}",
            "/TEE",
        ]

        if request.dry_run:
            cmd.append("/L")

        return cmd

    def execute(self, cmd: List[str]) -> ToolResult:
        """Run a prepared command; launch failures come back as a fatal result."""
        self.logger.info(f"Running command: {' '.join(cmd)}")
        return self.runner(cmd, on_line=self._log_line)

    def _log_line(self, line: str) -> None:
        if line.strip():
            self.logger.info(f"  {line.rstrip()}")
