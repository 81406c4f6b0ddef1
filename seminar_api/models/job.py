from pydantic import BaseModel
from typing import List
from datetime import datetime


class SweepResult(BaseModel):
    processed: int = 0
    errors: int = 0
    order_numbers: List[str] = []


class ReconciliationResult(BaseModel):
    """Summary of one reconciliation run"""
    job_name: str
    status: str
    started_at: datetime
    completed_at: datetime
    expired: SweepResult
    reminders: SweepResult

    @property
    def processed_count(self) -> int:
        return self.expired.processed + self.reminders.processed

    @property
    def error_count(self) -> int:
        return self.expired.errors + self.reminders.errors
