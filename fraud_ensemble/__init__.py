"""
Multi-Tier Fraud Scoring Ensemble
=================================

This package scores a single financial transaction with 23 independently
trainable components arranged in four sequential tiers:
- Tier 1: 12 variable analyzers (amount, location, time, ...)
- Tier 2: 6 combiners over themed subsets of Tier-1 scores
- Tier 3: 4 deep validators (risk, anomaly, behavior coherence, context)
- Tier 4: decision fusion (consensus, critical patterns, mitigation)

Every component falls back to a deterministic heuristic when its learned
model is absent, so the pipeline always produces a complete decision.
"""

__version__ = "1.0.0"
__author__ = "Parth Tiwari"
__status__ = "Production"
