"""Semantic Uncertainty Analysis Engine.

Pipeline over a set of candidate responses to one query:
  1. Semantic Feature Extractor (LLM rating, lexical fallback)
  2. Entailment Analyzer (pairwise NLI)
  3. Similarity Fusion (cosine + entailment)
  4. Cluster Engine (relocation, silhouette-selected k)
  5. Entropy & Uncertainty Calculator
  6. Confidence Aggregator

Input:  query + list of response texts
Output: ConfidenceResult
"""
