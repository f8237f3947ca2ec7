from fastapi import Request

from semantic_uq.analysis.engine import SemanticEntropyEngine


def get_engine(request: Request) -> SemanticEntropyEngine:
    """The engine built at startup (see main.lifespan)."""
    return request.app.state.engine
