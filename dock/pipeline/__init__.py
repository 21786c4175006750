"""Processing pipeline for one plugged device."""

from .session import Session, SessionStage
from .pipeline import DevicePipeline

__all__ = ["Session", "SessionStage", "DevicePipeline"]
