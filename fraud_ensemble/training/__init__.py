"""
Batched training, synthetic lower-tier context and model persistence.
"""
