"""
Web module for Print Relay.

Exposes blueprints for:
- Print queue API: queue_bp
- Health endpoint: health_bp
"""

from .health import health_bp
from .queue import queue_bp

__all__ = ["health_bp", "queue_bp"]
