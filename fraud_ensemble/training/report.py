"""
Structured training outcomes: one record per component fit, one summary per
component across batches, and the overall report returned by train_all().
"""
from datetime import datetime
from typing import Dict, Optional

import pandas as pd
from pydantic import BaseModel, Field


class ComponentTrainingResult(BaseModel):
    """Outcome of a single component.train() call."""
    component_id: str
    success: bool
    iterations: int = 0
    final_error: Optional[float] = None
    samples: int = 0


class ComponentTrainingSummary(BaseModel):
    """Per-component accumulation across batches."""
    component_id: str
    tier: int
    successful_batches: int = 0
    failed_batches: int = 0
    iterations: int = 0
    final_error: Optional[float] = None
    last_error: Optional[str] = None

    @property
    def success(self) -> bool:
        return self.successful_batches > 0 and self.failed_batches == 0


class TrainingReport(BaseModel):
    """Report returned by TrainingPipeline.train_all()."""
    started_at: datetime = Field(default_factory=datetime.now)
    samples: int = 0
    batches: int = 0
    batch_size: int = 0
    total_time_ms: float = 0.0
    per_component: Dict[str, ComponentTrainingSummary] = Field(default_factory=dict)

    @property
    def successful_components(self) -> int:
        return sum(1 for s in self.per_component.values() if s.success)

    @property
    def failed_components(self) -> int:
        return len(self.per_component) - self.successful_components

    def to_frame(self) -> pd.DataFrame:
        """One row per component, ordered by tier."""
        rows = []
        for summary in self.per_component.values():
            row = summary.model_dump()
            row["success"] = summary.success
            rows.append(row)
        if not rows:
            return pd.DataFrame(columns=["component_id", "tier", "success"])
        return pd.DataFrame(rows).sort_values(["tier", "component_id"]).reset_index(drop=True)
