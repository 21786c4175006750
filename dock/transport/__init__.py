"""Publish transport for decoded records."""

from .base import Publisher
from .mqtt import MqttPublisher

__all__ = ["Publisher", "MqttPublisher"]
