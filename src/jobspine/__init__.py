"""jobspine — in-process job scheduler with cron, fixed-delay and cluster locks."""

__version__ = "0.1.0"
