from .llm import LLMClientPort
from .oracles import ClassificationOraclePort, EnrichmentOraclePort
from .repos import AccountPoolPort

__all__ = [
    "LLMClientPort",
    "ClassificationOraclePort",
    "EnrichmentOraclePort",
    "AccountPoolPort",
]
