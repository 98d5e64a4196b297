"""Schedule checking logic for cron-based job selection."""

import logging
from datetime import datetime
from typing import List, Optional

from croniter import croniter

from .config import BackupJob


class ScheduleChecker:
    """Handles evaluation of cron-based job schedules."""

    @staticmethod
    def should_run_job(job: BackupJob, current_time: Optional[datetime] = None) -> bool:
        """
        Check if a job should run based on its cron schedule.

        Jobs without a schedule run on every scheduled invocation.

        Args:
            job: The backup job
            current_time: Current time (defaults to now)

        Returns:
            True if the schedule fired between midnight and current_time
        """
        if job.schedule is None:
            return True

        if current_time is None:
            current_time = datetime.now()

        schedule = job.schedule.strip()

        try:
            cron = croniter(schedule, current_time)
            prev_occurrence = cron.get_prev(datetime)
        except Exception as e:
            raise ValueError(
                f"Error evaluating schedule '{schedule}' for job '{job.name}': {e}"
            )

        # The OS scheduler starts us once a day, so "fired today" means due.
        today_start = current_time.replace(hour=0, minute=0, second=0, microsecond=0)
        return prev_occurrence >= today_start

    @staticmethod
    def get_scheduled_jobs(
        jobs: List[BackupJob], current_time: Optional[datetime] = None
    ) -> List[BackupJob]:
        """Filter jobs down to those scheduled to run today, preserving order."""
        scheduled = []

        for job in jobs:
            try:
                if ScheduleChecker.should_run_job(job, current_time):
                    scheduled.append(job)
            except ValueError as e:
                logging.getLogger(__name__).warning(
                    f"Could not evaluate schedule for job '{job.name}': {e}"
                )

        return scheduled

    @staticmethod
    def next_run_time(job: BackupJob, current_time: Optional[datetime] = None) -> Optional[datetime]:
        """Get the next time this job is scheduled to run, or None if unscheduled."""
        if job.schedule is None:
            return None

        if current_time is None:
            current_time = datetime.now()

        try:
            return croniter(job.schedule.strip(), current_time).get_next(datetime)
        except Exception as e:
            raise ValueError(f"Error calculating next run time for job '{job.name}': {e}")
