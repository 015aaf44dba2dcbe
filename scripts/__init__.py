"""
Scripts for AdherenceEngine
Utility scripts for seeding and running the reminder jobs
"""

from .seed_data import seed_all, create_tables
from .run_jobs import run_jobs

__all__ = [
    "seed_all",
    "create_tables",
    "run_jobs"
]
