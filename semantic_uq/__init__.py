"""Semantic Uncertainty Quantification Engine.

Estimates how trustworthy an LLM answer is by measuring semantic agreement
across several candidate responses to the same query.
"""

__version__ = "0.1.0"
