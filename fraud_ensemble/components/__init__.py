"""
Shared machinery for the 23 trainable components: tagged model state,
heuristic/learned scoring strategies, estimator factory and registry.
"""
