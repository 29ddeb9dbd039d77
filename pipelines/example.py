"""
Example pipeline with valves and inlet/outlet filters.

Shows how to:
- declare configurable valves as a pydantic model
- pre-process the request body (inlet) and post-process the result (outlet)
- accept valve updates from the host (update_valves)
"""

import logging
from datetime import datetime, timezone
from typing import Optional

from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)


class Pipeline:
    class Valves(BaseModel):
        prefix: str = Field(default="", description="Text prepended to every processed message")
        uppercase: bool = Field(default=True, description="Upper-case the message")
        max_length: int = Field(default=2000, description="Processed messages are cut to this length")

    def __init__(self):
        self.name = "Example Pipeline"
        self.description = "A simple example pipeline for demonstration"
        self.type = "pipe"
        self.valves = self.Valves()

    def update_valves(self, values: dict) -> Valves:
        # partial updates keep the current values for unspecified keys
        self.valves = self.Valves(**{**self.valves.model_dump(), **values})
        return self.valves

    def inlet(self, body: dict, user: Optional[dict] = None) -> dict:
        if isinstance(body, dict) and "message" not in body:
            for message in reversed(body.get("messages") or []):
                if message.get("role") == "user":
                    body = {**body, "message": message.get("content")}
                    break
        return body

    def pipe(self, body: dict, user: Optional[dict] = None) -> dict:
        logger.info(f"Example pipeline executing with body: {body!r}")
        message = str(body.get("message", "Hello, World!"))

        processed = message.upper() if self.valves.uppercase else message
        processed = f"{self.valves.prefix}{processed}"[: self.valves.max_length]

        return {
            "original_message": message,
            "processed_message": processed,
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "user": user,
            "pipeline": "example_pipeline",
        }

    def outlet(self, body: dict, user: Optional[dict] = None) -> dict:
        return {**body, "completed": True}
