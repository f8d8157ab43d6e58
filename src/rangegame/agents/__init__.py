from rangegame.agents.gateway import LLMGateway, LLMResponse, ProviderConfig
from rangegame.agents.insights import MarketInsightService, fallback_catalysts

__all__ = [
    "LLMGateway",
    "LLMResponse",
    "MarketInsightService",
    "ProviderConfig",
    "fallback_catalysts",
]
