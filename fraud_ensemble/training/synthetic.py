"""
Synthetic Context Generator

Purpose:
Tier-2, Tier-3 and fusion components are trained on labeled snapshots, but
their features are lower-tier results. This generator fabricates plausible
lower-tier result sets around a sample's label.

This is a training-time approximation, not ground truth: every synthetic
score is the label plus uniform jitter of a configured width (label ± width/2),
clipped to [0, 1]. The widths are tunable settings, not fixed constants.
"""

import math
from typing import Dict, Optional

import numpy as np

from fraud_ensemble.components.catalog import TIER1_IDS, TIER2_IDS, TIER3_IDS
from fraud_ensemble.config import settings
from fraud_ensemble.schema import AnalyzerResult, CombinerResult, DeepResult


SYNTHETIC_VERSION = "synthetic"


class SyntheticContextGenerator:
    """
    Seeded source of jittered lower-tier results.

    Args:
        jitter_tier1: Total jitter width for Tier-1 scores
        jitter_tier2: Total jitter width for Tier-2 scores
        jitter_tier3: Total jitter width for Tier-3 scores
        seed: RNG seed (None for non-reproducible output)
    """

    def __init__(
        self,
        jitter_tier1: float = 0.20,
        jitter_tier2: float = 0.15,
        jitter_tier3: float = 0.10,
        seed: Optional[int] = 42
    ):
        for name, width in (("jitter_tier1", jitter_tier1), ("jitter_tier2", jitter_tier2),
                            ("jitter_tier3", jitter_tier3)):
            if width < 0:
                raise ValueError(f"{name} must be >= 0, got {width}")
        self.jitter = {1: jitter_tier1, 2: jitter_tier2, 3: jitter_tier3}
        self.seed = seed
        self._rng = np.random.default_rng(seed)

    @classmethod
    def from_settings(cls, config=None) -> "SyntheticContextGenerator":
        config = config or settings
        return cls(
            jitter_tier1=config.SYNTHETIC_JITTER_TIER1,
            jitter_tier2=config.SYNTHETIC_JITTER_TIER2,
            jitter_tier3=config.SYNTHETIC_JITTER_TIER3,
            seed=config.SYNTHETIC_SEED
        )

    def reseed(self, seed: Optional[int] = None) -> None:
        self._rng = np.random.default_rng(self.seed if seed is None else seed)

    def jittered(self, label: float, tier: int) -> float:
        width = self.jitter[tier]
        value = label + self._rng.uniform(-width / 2, width / 2)
        return float(np.clip(value, 0.0, 1.0))

    # ------------------------------------------------------------------
    # Result sets
    # ------------------------------------------------------------------

    def tier1_results(self, label: float) -> Dict[str, AnalyzerResult]:
        return {
            cid: AnalyzerResult(
                component_id=cid,
                score=self.jittered(label, 1),
                confidence=0.8,
                heuristic=False,
                version=SYNTHETIC_VERSION
            )
            for cid in TIER1_IDS
        }

    def tier2_results(self, label: float) -> Dict[str, CombinerResult]:
        results = {}
        for cid in TIER2_IDS:
            score = self.jittered(label, 2)
            results[cid] = CombinerResult(
                component_id=cid,
                score=score,
                confidence=0.8,
                sub_scores={"anomaly_concentration": score, "overall_consistency": 1 - score},
                heuristic=False,
                version=SYNTHETIC_VERSION
            )
        return results

    def tier3_results(self, label: float) -> Dict[str, DeepResult]:
        results = {}
        for cid in TIER3_IDS:
            score = self.jittered(label, 3)
            results[cid] = DeepResult(
                component_id=cid,
                score=score,
                confidence=0.8,
                structured_assessment={
                    "types_detected": math.floor(score * 8),
                    "critical_factors": math.floor(score * 5),
                },
                heuristic=False,
                version=SYNTHETIC_VERSION
            )
        return results
