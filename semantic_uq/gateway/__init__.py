"""Text-generation gateway.

Async access to the external language model with:
  - Provider adapters (OpenAI-compatible chat completions over httpx)
  - Circuit breaker with exponential backoff and jitter
  - Bounded concurrency for fan-out from the analysis pipeline
  - Response normalizer (reasoning-block stripping, token totals)
"""
