"""Periodic maintenance jobs, triggered by external cron through the CLI."""

from selliox.scheduler.jobs import expire_entries_job, run_monthly_draw_job, send_draw_reminders_job
from selliox.scheduler.models import JobRun

__all__ = ["JobRun", "expire_entries_job", "run_monthly_draw_job", "send_draw_reminders_job"]
