"""Core backup orchestration: run robocopy per job, log each run, prune old logs."""

import logging
from datetime import datetime
from pathlib import Path
from typing import List, Optional

from .config import BackupJob, JobRegistry
from .robocopy import (
    DEFAULT_TOOL,
    ExitOutcome,
    RobocopyManager,
    RunRequest,
    ToolRunner,
    classify_exit_code,
    run_tool,
)
from .schedule_checker import ScheduleChecker

JOB_LOG_PATTERN = "backup_*.log"
MAX_JOB_LOGS = 100
LOG_TIMESTAMP_FORMAT = "%Y%m%d_%H%M%S_%f"
HEADER_TIME_FORMAT = "%Y-%m-%d %H:%M:%S"


class BackupResult:
    """Result of a backup operation."""

    def __init__(
        self,
        backup_name: str,
        request: RunRequest,
        exit_code: int,
        log_file: Path,
        execution_time: float = 0.0,
        deleted_logs: int = 0,
    ):
        self.backup_name = backup_name
        self.request = request
        self.exit_code = exit_code
        self.outcome = classify_exit_code(exit_code)
        self.log_file = log_file
        self.execution_time = execution_time
        self.deleted_logs = deleted_logs

    @property
    def success(self) -> bool:
        return self.outcome.success

    @property
    def message(self) -> str:
        return self.outcome.message


def format_duration(seconds: float) -> str:
    """Format duration in human-readable format."""
    if seconds < 60:
        return f"{seconds:.0f}s"
    elif seconds < 3600:
        return f"{seconds // 60:.0f}m {seconds % 60:.0f}s"
    else:
        return f"{seconds // 3600:.0f}h {(seconds % 3600) // 60:.0f}m"


def _creation_time(path: Path) -> float:
    stat = path.stat()
    return getattr(stat, "st_birthtime", stat.st_ctime)


def prune_logs(log_dir: Path, pattern: str = JOB_LOG_PATTERN, keep: int = MAX_JOB_LOGS) -> int:
    """
    Delete log files beyond the ``keep`` most recent.

    Args:
        log_dir: Directory holding the logs
        pattern: Glob selecting which files take part in rotation
        keep: Number of newest files to retain

    Returns:
        Number of files deleted
    """
    logger = logging.getLogger(__name__)
    log_files = [p for p in Path(log_dir).glob(pattern) if p.is_file()]
    # Newest first; names carry a sortable timestamp for creation-time ties.
    log_files.sort(key=lambda p: (_creation_time(p), p.name), reverse=True)

    deleted = 0
    for old_log in log_files[keep:]:
        try:
            old_log.unlink()
            deleted += 1
        except OSError as e:
            logger.warning(f"Could not delete old log {old_log}: {e}")

    if deleted:
        logger.info(f"Deleted {deleted} old log file(s) from {log_dir}")
    return deleted


class BackupManager:
    """Main backup management class."""

    def __init__(
        self,
        log_dir: Path,
        tool: str = DEFAULT_TOOL,
        runner: ToolRunner = run_tool,
        max_logs: int = MAX_JOB_LOGS,
    ):
        self.log_dir = Path(log_dir).resolve()
        self.max_logs = max_logs
        self.robocopy = RobocopyManager(tool=tool, runner=runner)
        self.logger = logging.getLogger(__name__)

    def _new_log_file(self, started: datetime) -> Path:
        log_file = self.log_dir / f"backup_{started.strftime(LOG_TIMESTAMP_FORMAT)}.log"
        # Two runs inside the same microsecond would otherwise share a log.
        suffix = 1
        while log_file.exists():
            log_file = self.log_dir / (
                f"backup_{started.strftime(LOG_TIMESTAMP_FORMAT)}_{suffix}.log"
            )
            suffix += 1
        return log_file

    def _write_header(self, log_file: Path, request: RunRequest, started: datetime) -> None:
        lines = [
            "=" * 70,
            f"Backup started: {started.strftime(HEADER_TIME_FORMAT)}",
            f"Job:            {request.name}",
            f"Source:         {request.source}",
            f"Destination:    {request.destination}",
            f"Mode:           {request.mode}",
        ]
        if request.dry_run:
            lines.append("DRY RUN:        no files will be changed (/L)")
        lines.append("=" * 70)
        with open(log_file, "w", encoding="utf-8") as f:
            f.write("\n".join(lines) + "\n")

    def _write_footer(self, log_file: Path, exit_code: int, outcome: ExitOutcome) -> None:
        lines = [
            "",
            "=" * 70,
            f"Backup finished: {datetime.now().strftime(HEADER_TIME_FORMAT)}",
            f"Exit code:       {exit_code}",
            f"Result:          {outcome.message}",
            "=" * 70,
        ]
        with open(log_file, "a", encoding="utf-8") as f:
            f.write("\n".join(lines) + "\n")

    def run(self, request: RunRequest) -> BackupResult:
        """Run one backup request through robocopy and record it."""
        start_time = datetime.now()
        self.log_dir.mkdir(parents=True, exist_ok=True)
        log_file = self._new_log_file(start_time)

        self.logger.info(
            f"Starting backup '{request.name}': {request.source} -> {request.destination} "
            f"({request.mode}{', DRY RUN' if request.dry_run else ''})"
        )
        self._write_header(log_file, request, start_time)

        cmd = self.robocopy.build_command(request, log_file)
        tool_result = self.robocopy.execute(cmd)
        outcome = classify_exit_code(tool_result.exit_code)
        self._write_footer(log_file, tool_result.exit_code, outcome)

        execution_time = (datetime.now() - start_time).total_seconds()
        if outcome.success:
            self.logger.info(
                f"✅ Backup '{request.name}' finished with code {tool_result.exit_code}: "
                f"{outcome.message}"
            )
        else:
            self.logger.error(
                f"❌ Backup '{request.name}' failed with code {tool_result.exit_code}: "
                f"{outcome.message}"
            )
        self.logger.info(f"Log file: {log_file}")

        deleted = prune_logs(self.log_dir, JOB_LOG_PATTERN, self.max_logs)

        return BackupResult(
            backup_name=request.name,
            request=request,
            exit_code=tool_result.exit_code,
            log_file=log_file,
            execution_time=execution_time,
            deleted_logs=deleted,
        )

    def run_job(self, job: BackupJob, base_dir: Path, dry_run: bool = False) -> BackupResult:
        """Run a configured job, resolving its paths against base_dir."""
        return self.run(RunRequest.from_job(job, base_dir, dry_run=dry_run))

    def run_jobs(
        self, jobs: List[BackupJob], base_dir: Path, dry_run: bool = False
    ) -> List[BackupResult]:
        """Run jobs one after another; a failing job does not stop the rest."""
        results = []
        for job in jobs:
            self.logger.info(f"Processing backup: {job.name}")
            results.append(self.run_job(job, base_dir, dry_run=dry_run))
        return results

    def run_all(self, registry: JobRegistry, dry_run: bool = False) -> List[BackupResult]:
        """Run every configured job in file order."""
        jobs = registry.require_jobs()
        self.logger.info(f"Running all {len(jobs)} configured backups")
        return self.run_jobs(jobs, registry.base_dir, dry_run=dry_run)

    def run_scheduled(
        self,
        registry: JobRegistry,
        dry_run: bool = False,
        current_time: Optional[datetime] = None,
    ) -> List[BackupResult]:
        """Run only the jobs whose schedule fired today."""
        jobs = registry.require_jobs()
        scheduled = ScheduleChecker.get_scheduled_jobs(jobs, current_time)
        skipped = [job.name for job in jobs if job not in scheduled]
        if skipped:
            self.logger.info(f"Skipping {len(skipped)} backups not scheduled today: {skipped}")
        if not scheduled:
            self.logger.info("No backups scheduled to run today")
        return self.run_jobs(scheduled, registry.base_dir, dry_run=dry_run)
