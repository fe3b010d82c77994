"""Service wiring for feedlens."""

from .orchestrator import Pipeline

__all__ = ["Pipeline"]
