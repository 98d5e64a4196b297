"""
robomirror: Directory backups driven by a job file and executed with robocopy.

This package resolves a JSON/YAML list of backup jobs, runs each job through
robocopy in mirror or additive mode, and keeps per-run and session logs.
"""

__version__ = "0.1.0"
