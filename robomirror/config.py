"""Configuration management for robomirror backup jobs."""

from __future__ import annotations

import json
import logging
import os
import shutil
from contextlib import contextmanager
from importlib import resources
from pathlib import Path
from typing import Dict, Iterator, List, Optional, Tuple

import yaml
from croniter import croniter
from pydantic import BaseModel, Field, StrictBool, ValidationError, field_validator, model_validator

DEFAULT_CONFIG_NAMES = ("backup_jobs.json", "backup_jobs.yaml", "backup_jobs.yml")
JOBS_KEY = "jobs"
LEGACY_JOBS_KEY = "backupJobs"
TEMPLATE_NAME = "backup_jobs.template.json"

logger = logging.getLogger(__name__)


class ConfigNotFound(FileNotFoundError):
    """An explicitly requested configuration file does not exist."""


class MalformedConfig(ValueError):
    """The configuration file cannot be parsed or has the wrong shape."""


class JobValidationError(ValueError):
    """A job entry is missing a required field or holds an invalid value."""


class JobNotFound(LookupError):
    """A named job is not present in the registry."""


class NoConfigLoaded(LookupError):
    """A job-based mode was requested but no jobs are configured."""


class BackupJob(BaseModel):
    """Configuration for a single backup job."""

    name: str = Field(min_length=1, description="Unique job identifier")
    source: str = Field(min_length=1, description="Directory to back up")
    destination: str = Field(min_length=1, description="Directory receiving the copy")
    mirror: StrictBool = Field(
        description="True removes extraneous destination entries, False only adds"
    )
    schedule: Optional[str] = Field(
        default=None,
        description="Cron-like schedule: 'minute hour day-of-month month day-of-week'",
    )

    @field_validator("name", "source", "destination")
    @classmethod
    def validate_not_blank(cls, v: str) -> str:
        """Reject values made only of whitespace."""
        v = v.strip()
        if not v:
            raise ValueError("must not be empty")
        return v

    @field_validator("schedule")
    @classmethod
    def validate_schedule(cls, v: Optional[str]) -> Optional[str]:
        """Validate the cron schedule format."""
        if v is None:
            return v

        if len(v.strip().split()) != 5:
            raise ValueError(
                "Schedule must have 5 fields: 'minute hour day-of-month month day-of-week'"
            )

        try:
            croniter(v)
            return v
        except Exception as e:
            raise ValueError(f"Invalid cron schedule format: {e}")

    def resolve_paths(self, base_dir: Path) -> Tuple[Path, Path]:
        """Return (source, destination), resolving relative paths against base_dir."""
        return _resolve(self.source, base_dir), _resolve(self.destination, base_dir)


def _resolve(value: str, base_dir: Path) -> Path:
    path = Path(value).expanduser()
    if not path.is_absolute():
        path = base_dir / path
    return path


class ConfigFile(BaseModel):
    """Top-level contents of a job file."""

    log_level: str = Field(
        default="INFO", description="Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)"
    )
    jobs: List[BackupJob] = Field(description="Backup jobs, run in file order")

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level."""
        valid_levels = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        v_upper = v.upper()
        if v_upper not in valid_levels:
            raise ValueError(f"log_level must be one of: {', '.join(sorted(valid_levels))}")
        return v_upper

    @model_validator(mode="after")
    def validate_job_names_unique(self) -> ConfigFile:
        """Ensure job names are unique."""
        names = [job.name for job in self.jobs]
        duplicates = sorted({name for name in names if names.count(name) > 1})
        if duplicates:
            raise ValueError(f"Job names must be unique, duplicated: {', '.join(duplicates)}")
        return self


class JobRegistry:
    """Ordered name -> BackupJob mapping loaded from one job file."""

    def __init__(
        self,
        jobs: Optional[List[BackupJob]] = None,
        source: Optional[Path] = None,
        log_level: str = "INFO",
    ):
        self._jobs: Dict[str, BackupJob] = {}
        for job in jobs or []:
            if job.name in self._jobs:
                raise JobValidationError(f"Duplicate job name: {job.name}")
            self._jobs[job.name] = job
        self.source = source
        self.log_level = log_level

    @property
    def base_dir(self) -> Path:
        """Directory that relative job paths are resolved against."""
        if self.source is not None:
            return self.source.parent
        return Path.cwd()

    @property
    def is_empty(self) -> bool:
        return not self._jobs

    def __len__(self) -> int:
        return len(self._jobs)

    def __iter__(self) -> Iterator[BackupJob]:
        return iter(list(self._jobs.values()))

    def __contains__(self, name: object) -> bool:
        return name in self._jobs

    def names(self) -> List[str]:
        return list(self._jobs)

    def require_jobs(self) -> List[BackupJob]:
        """Return all jobs in file order, failing if none are configured."""
        if self.is_empty:
            raise NoConfigLoaded("No backup jobs are configured; load a job file first")
        return list(self._jobs.values())

    def get(self, name: str) -> BackupJob:
        """Look up a job by name."""
        self.require_jobs()
        try:
            return self._jobs[name]
        except KeyError:
            raise JobNotFound(
                f"Job '{name}' not found. Available jobs: {', '.join(self._jobs)}"
            ) from None


def resolve_config_path(
    explicit: Optional[str] = None, search_dir: Optional[Path] = None
) -> Optional[Path]:
    """
    Locate the job file to use.

    Args:
        explicit: Path given on the command line; must exist when set
        search_dir: Directory probed for the default file names (defaults to cwd)

    Returns:
        Absolute path of the job file, or None if no default file exists
    """
    if explicit:
        config_file = Path(explicit).expanduser()
        if not config_file.is_file():
            raise ConfigNotFound(f"Configuration file not found: {explicit}")
        return config_file.resolve()

    directory = Path(search_dir) if search_dir is not None else Path.cwd()
    for candidate_name in DEFAULT_CONFIG_NAMES:
        candidate = directory / candidate_name
        if candidate.is_file():
            return candidate.resolve()

    return None


def _read_config_data(config_file: Path) -> object:
    try:
        with open(config_file, "r", encoding="utf-8-sig") as f:
            if config_file.suffix.lower() in (".yaml", ".yml"):
                return yaml.safe_load(f)
            return json.load(f)
    except (json.JSONDecodeError, yaml.YAMLError) as e:
        raise MalformedConfig(f"Cannot parse configuration file {config_file}: {e}")
    except OSError as e:
        raise MalformedConfig(f"Cannot read configuration file {config_file}: {e}")


def load_config(config_path: Path) -> JobRegistry:
    """Load and validate the job file, returning a registry in file order."""
    config_file = Path(config_path)
    if not config_file.is_file():
        raise ConfigNotFound(f"Configuration file not found: {config_path}")

    config_data = _read_config_data(config_file)
    if not isinstance(config_data, dict):
        raise MalformedConfig(f"Configuration file {config_file} must contain an object")

    if JOBS_KEY in config_data:
        key, legacy = JOBS_KEY, False
    elif LEGACY_JOBS_KEY in config_data:
        key, legacy = LEGACY_JOBS_KEY, True
    else:
        raise MalformedConfig(f"Configuration file {config_file} has no '{JOBS_KEY}' list")

    raw_jobs = config_data[key]
    if not isinstance(raw_jobs, list):
        raise MalformedConfig(f"'{key}' in {config_file} must be a list")

    if legacy:
        # The older schema has no mirror flag; those jobs always mirrored.
        logger.warning(f"{config_file} uses the legacy '{LEGACY_JOBS_KEY}' key; mirror is forced on")
        raw_jobs = [
            {**job, "mirror": True} if isinstance(job, dict) else job for job in raw_jobs
        ]

    try:
        parsed = ConfigFile.model_validate(
            {"log_level": config_data.get("log_level", "INFO"), "jobs": raw_jobs}
        )
    except ValidationError as e:
        raise JobValidationError(f"Invalid job definition in {config_file}: {e}")

    logger.debug(f"Loaded {len(parsed.jobs)} jobs from {config_file}")
    return JobRegistry(parsed.jobs, source=config_file.resolve(), log_level=parsed.log_level)


@contextmanager
def working_directory(path: Path) -> Iterator[Path]:
    """Change the process working directory, restoring it on every exit path."""
    previous = Path.cwd()
    os.chdir(path)
    try:
        yield Path(path)
    finally:
        os.chdir(previous)


def create_config(target: Path, overwrite: bool = False) -> Path:
    """Copy the bundled job file template to target."""
    target = Path(target)
    if target.exists() and not overwrite:
        raise FileExistsError(f"Configuration file already exists: {target}")

    target.parent.mkdir(parents=True, exist_ok=True)
    template = resources.files("robomirror").joinpath("templates").joinpath(TEMPLATE_NAME)
    with resources.as_file(template) as template_path:
        shutil.copyfile(template_path, target)

    logger.info(f"Created configuration file: {target}")
    return target
