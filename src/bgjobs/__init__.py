"""bgjobs: in-process, priority-aware background job engine."""

__version__ = "0.1.0"
