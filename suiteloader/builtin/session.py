"""
Session component.

Resolves the current user through the host and shares it as the
``get_current_user`` utility. Expects the foundation registry to be loaded.
"""

import uuid
from typing import Optional

FOUNDATION_ID = "foundation-registry"


class Session:
    version = "1.0.0"

    def __init__(self):
        self.context = None
        self.session_id: Optional[str] = None

    def get_current_user(self) -> Optional[str]:
        if self.context is None:
            return None
        return self.context.current_user()

    def describe(self) -> str:
        return f"{self.get_current_user() or 'anonymous'} ({self.session_id})"

    async def on_load(self, context):
        self.context = context
        generate_uid = context.directory.get_utility("generate_uid")
        if not context.directory.has(FOUNDATION_ID) or generate_uid is None:
            context.logger.warning(f"{FOUNDATION_ID} not available, using a local session id")
            self.session_id = f"session-{uuid.uuid4().hex[:12]}"
        else:
            self.session_id = generate_uid("session")

        context.register(self, version=self.version, dependencies=[FOUNDATION_ID])
        context.register_utility("get_current_user", self.get_current_user)
        context.add_command("Show current user", self.describe)
        context.logger.info(f"Session {self.session_id} started for {self.get_current_user() or 'anonymous'}")

    def on_unload(self):
        self.context = None
        self.session_id = None


component = Session()
