"""AI Agents package."""

from bizledger.agents.categorizer import (
    CategorySuggestion,
    SimilarTransaction,
    SuggestionSource,
    TransactionCategorizer,
    dominant_category,
    find_similar,
)

__all__ = [
    "CategorySuggestion",
    "SimilarTransaction",
    "SuggestionSource",
    "TransactionCategorizer",
    "dominant_category",
    "find_similar",
]
