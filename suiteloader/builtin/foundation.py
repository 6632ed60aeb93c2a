"""
Foundation registry component.

Loaded first; publishes the shared helpers every later component relies on.
Locator: ``module:suiteloader.builtin.foundation``
"""

import uuid
from datetime import datetime
from typing import Callable, Dict, Optional


class Foundation:
    version = "1.0.0"

    def __init__(self):
        self.context = None

    def generate_uid(self, prefix: str = "uid") -> str:
        return f"{prefix}-{uuid.uuid4().hex[:12]}"

    @staticmethod
    def format_timestamp(value: Optional[datetime] = None, fmt: str = "%Y-%m-%d %H:%M:%S") -> str:
        return (value or datetime.now()).strftime(fmt)

    def utilities(self) -> Dict[str, Callable]:
        return {
            "generate_uid": self.generate_uid,
            "format_timestamp": self.format_timestamp,
        }

    def on_load(self, context):
        self.context = context
        context.register(self, version=self.version)
        context.logger.info("Foundation registry ready")

    def on_unload(self):
        if self.context is not None:
            self.context.logger.info("Foundation registry unloaded")
        self.context = None


component = Foundation()
