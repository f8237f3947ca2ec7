from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    # Text-generation service
    llm_provider: str = "openai"  # openai | deepseek | openai_compatible
    llm_api_key: str = ""
    llm_api_url: str = ""  # override the provider's default endpoint (vLLM, Ollama, proxies)
    llm_model: str = ""  # empty -> provider default
    llm_timeout_seconds: float = 60.0
    llm_max_concurrent: int = 8
    llm_max_retries: int = 2
    llm_base_retry_delay: float = 1.0
    llm_max_retry_delay: float = 20.0
    llm_max_tokens: int = 512

    # Sampling temperatures per call type
    feature_temperature: float = 0.1
    entailment_temperature: float = 0.1
    rubric_temperature: float = 0.1

    # Similarity fusion
    cosine_weight: float = 0.6
    entailment_weight: float = 0.4

    # Confidence blend
    von_neumann_weight: float = 0.6
    semantic_entropy_weight: float = 0.4

    # Clustering
    max_clusters: int = 5
    max_relocation_iterations: int = 10
    min_cluster_weight: float = 0.1
    equivalence_threshold: float = 0.85
    structureless_cohesion: float = 0.75

    # App
    app_env: str = "development"
    app_host: str = "0.0.0.0"
    app_port: int = 8000

    # Logging
    log_level: str = "INFO"
    log_json: bool = False  # set True in production for structured JSON logs


settings = Settings()


def validate_settings_for_production() -> None:
    """Validate critical settings. Called on startup in non-test environments."""
    errors: list[str] = []

    if abs(settings.cosine_weight + settings.entailment_weight - 1.0) > 1e-6:
        errors.append("COSINE_WEIGHT + ENTAILMENT_WEIGHT must sum to 1.0")

    if abs(settings.von_neumann_weight + settings.semantic_entropy_weight - 1.0) > 1e-6:
        errors.append("VON_NEUMANN_WEIGHT + SEMANTIC_ENTROPY_WEIGHT must sum to 1.0")

    if settings.max_clusters < 2:
        errors.append("MAX_CLUSTERS must be at least 2")

    if not 0.0 < settings.equivalence_threshold <= 1.0:
        errors.append("EQUIVALENCE_THRESHOLD must be in (0, 1]")

    if not 0.0 < settings.structureless_cohesion <= 1.0:
        errors.append("STRUCTURELESS_COHESION must be in (0, 1]")

    if settings.llm_max_concurrent < 1:
        errors.append("LLM_MAX_CONCURRENT must be at least 1")

    if settings.app_env == "production" and not settings.llm_api_key:
        errors.append("LLM_API_KEY must be set in production")

    if errors:
        raise SystemExit("Configuration errors:\n  - " + "\n  - ".join(errors))
