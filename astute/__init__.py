"""astute - session synchronization and conversation memory core."""

__version__ = "0.1.0"
