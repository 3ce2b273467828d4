"""
Evaluation layer: metric sets and experiment tracking.
"""
