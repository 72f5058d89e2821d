"""
Worker trigger response schema.
"""

from pydantic import BaseModel


class DeliverySweepResponse(BaseModel):
    """Result of one delivery sweep run."""

    processed: int
    errors: list[str] = []
    duration_ms: int
