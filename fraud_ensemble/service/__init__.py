"""Service facade: analysis, training, persistence, alerting and metrics."""
