from racesight.ai.client import AIClient
from racesight.ai.extractor import ResilientBatchFetch, StatsExtractor
from racesight.ai.insights import InsightGenerator
from racesight.ai.mock_client import MockAIClient
from racesight.ai.quota import QuotaLimiter

__all__ = [
    "AIClient",
    "InsightGenerator",
    "MockAIClient",
    "QuotaLimiter",
    "ResilientBatchFetch",
    "StatsExtractor",
]
