"""Supervision of external helper programs."""

from .supervisor import HelperProcess, ProcessSupervisor

__all__ = ["HelperProcess", "ProcessSupervisor"]
