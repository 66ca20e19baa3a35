"""
AI Categorization Agent for BizLedger

Suggests a category for a transaction from its description.

DESIGN DECISION: History first, LLM second.
1. Look for similar, already categorized transactions of the company
2. If they clearly agree on one category, use it without calling the LLM
3. Otherwise ask Gemini, giving it the category list and the similar history

CRITICAL BOUNDARIES:
- CAN: Suggest one of the company's existing categories
- CANNOT: Invent a category; an answer naming an unknown category is rejected
- CANNOT: Persist anything; the caller decides whether to apply the suggestion

The LLM is a CLASSIFIER over a closed list, not a source of new data.
"""

import json
from difflib import SequenceMatcher
from typing import Iterable, Optional
from uuid import UUID

import google.generativeai as genai
import structlog
from pydantic import BaseModel, Field

from bizledger.config import get_settings
from bizledger.models.finance import Category, Transaction

logger = structlog.get_logger(__name__)

SIMILARITY_THRESHOLD = 0.75
MAX_SIMILAR = 10
PATTERN_SHARE_PERCENT = 70
PATTERN_MIN_SIMILARITY = 0.8
MAX_HISTORY_CONFIDENCE = 0.95
FALLBACK_CONFIDENCE = 0.3
UNCATEGORIZED = "uncategorized"


class SuggestionSource:
    HISTORY = "history"
    LLM = "llm"
    FALLBACK = "fallback"


class SimilarTransaction(BaseModel):
    description: str
    category_id: UUID
    category_name: str
    similarity: float = Field(ge=0.0, le=1.0)


class CategorySuggestion(BaseModel):
    """AI's suggestion for a transaction category."""

    category_id: Optional[UUID] = None
    category_name: str
    confidence: float = Field(ge=0.0, le=1.0)
    reasoning: str
    source: str = SuggestionSource.FALLBACK
    similar: list[SimilarTransaction] = Field(default_factory=list)
    error: Optional[str] = Field(
        default=None,
        description="Why the model could not be used, when it failed"
    )

    @property
    def is_uncategorized(self) -> bool:
        return self.category_id is None


def describe(tx: Transaction) -> str:
    """Text used for matching: the note, else the counterparty."""
    return (tx.note or tx.counterparty or "").strip()


def similarity(a: str, b: str) -> float:
    return SequenceMatcher(None, a.lower().strip(), b.lower().strip()).ratio()


def find_similar(
    description: str,
    history: Iterable[Transaction],
    categories: dict[UUID, Category],
    threshold: float = SIMILARITY_THRESHOLD,
    limit: int = MAX_SIMILAR,
) -> list[SimilarTransaction]:
    """Categorized transactions whose description resembles this one, best first."""
    matches = []
    for tx in history:
        if tx.category_id is None or tx.category_id not in categories:
            continue
        text = describe(tx)
        if not text:
            continue
        score = similarity(description, text)
        if score >= threshold:
            matches.append(SimilarTransaction(
                description=text,
                category_id=tx.category_id,
                category_name=categories[tx.category_id].name,
                similarity=round(score, 4),
            ))
    matches.sort(key=lambda m: m.similarity, reverse=True)
    return matches[:limit]


def dominant_category(similar: list[SimilarTransaction]) -> Optional[CategorySuggestion]:
    """
    The category most similar transactions agree on, if the pattern is clear.

    Clear means more than 70% of the matches share the category and their
    average similarity is above 0.8.
    """
    if not similar:
        return None

    groups: dict[UUID, list[SimilarTransaction]] = {}
    for match in similar:
        groups.setdefault(match.category_id, []).append(match)

    def avg(matches: list[SimilarTransaction]) -> float:
        return sum(m.similarity for m in matches) / len(matches)

    category_id, matches = max(
        groups.items(),
        key=lambda item: (len(item[1]), avg(item[1])),
    )
    share = len(matches) / len(similar) * 100
    average = avg(matches)
    if share <= PATTERN_SHARE_PERCENT or average <= PATTERN_MIN_SIMILARITY:
        return None

    name = matches[0].category_name
    return CategorySuggestion(
        category_id=category_id,
        category_name=name,
        confidence=round(min(MAX_HISTORY_CONFIDENCE, average), 4),
        reasoning=(
            f"Found {len(matches)} similar transactions in '{name}' "
            f"({share:.0f}% of matches, average similarity {average * 100:.0f}%)"
        ),
        source=SuggestionSource.HISTORY,
        similar=similar[:3],
    )


def fallback_suggestion(
    reason: str,
    similar: Optional[list[SimilarTransaction]] = None,
    error: Optional[str] = None,
) -> CategorySuggestion:
    return CategorySuggestion(
        category_name=UNCATEGORIZED,
        confidence=FALLBACK_CONFIDENCE,
        reasoning=reason,
        source=SuggestionSource.FALLBACK,
        similar=(similar or [])[:3],
        error=error,
    )


class TransactionCategorizer:
    """
    Suggests categories for transactions.

    RESPONSIBILITIES:
    - Match the description against the company's categorized history
    - Ask Gemini when the history is not conclusive

    BOUNDARIES:
    - NEVER persists data
    - ONLY returns categories from the list it was given
    """

    def __init__(self, model=None):
        """
        Args:
            model: Object with an async generate_content_async(prompt);
                a Gemini model is configured from settings when omitted
        """
        if model is None:
            model = self._configure_genai()
        self._model = model

    @staticmethod
    def _configure_genai():
        settings = get_settings().gemini
        genai.configure(api_key=settings.api_key)
        return genai.GenerativeModel(
            model_name=settings.model_name,
            generation_config={
                "temperature": settings.temperature,
                "max_output_tokens": settings.max_tokens,
            },
        )

    def _build_prompt(
        self,
        description: str,
        categories: list[Category],
        similar: list[SimilarTransaction],
    ) -> str:
        category_list = "\n".join(f"- {c.name} ({c.kind.value})" for c in categories)
        history = ""
        if similar:
            lines = [
                f'{i}. "{m.description}" -> {m.category_name} '
                f"(similarity {m.similarity * 100:.0f}%)"
                for i, m in enumerate(similar[:5], start=1)
            ]
            history = "\n\nSimilar transactions from the company's history:\n" + "\n".join(lines)

        return f"""You are helping categorize a business transaction.

Transaction description: "{description}"

Available categories:
{category_list}{history}

Pick the most appropriate category from the list. Do not invent categories.

Respond with ONLY a JSON object in this exact format:
{{"category": "category name", "confidence": 0.8, "reasoning": "brief explanation"}}"""

    async def _ask_llm(
        self,
        description: str,
        categories: list[Category],
        similar: list[SimilarTransaction],
    ) -> CategorySuggestion:
        """
        Raises:
            ValueError: If the answer is not JSON or names an unknown category
        """
        response = await self._model.generate_content_async(
            self._build_prompt(description, categories, similar)
        )
        text = response.text.strip()

        start = text.find("{")
        end = text.rfind("}") + 1
        if start < 0 or end <= start:
            raise ValueError("No JSON object in model response")
        data = json.loads(text[start:end])

        name = str(data.get("category", "")).strip().lower()
        category = next((c for c in categories if c.name.lower() == name), None)
        if category is None:
            raise ValueError(f"Model suggested unknown category: {name!r}")

        confidence = min(1.0, max(0.0, float(data.get("confidence", 0.7))))
        return CategorySuggestion(
            category_id=category.id,
            category_name=category.name,
            confidence=confidence,
            reasoning=data.get("reasoning") or "Chosen by AI using similar transactions",
            source=SuggestionSource.LLM,
            similar=similar[:3],
        )

    async def suggest(
        self,
        description: str,
        categories: list[Category],
        history: Iterable[Transaction] = (),
    ) -> CategorySuggestion:
        """
        Suggest a category for a transaction description.

        Args:
            description: Transaction note or counterparty
            categories: The company's categories; the answer is one of these
            history: The company's past transactions

        Returns:
            A suggestion the user can accept or override
        """
        description = description.strip()
        if not description or not categories:
            return fallback_suggestion("Nothing to categorize - please select manually")

        by_id = {c.id: c for c in categories}
        similar = find_similar(description, history, by_id)

        pattern = dominant_category(similar)
        if pattern is not None:
            logger.info(
                "category_suggested_from_history",
                category=pattern.category_name,
                matches=len(similar),
            )
            return pattern

        try:
            suggestion = await self._ask_llm(description, categories, similar)
        except Exception as e:
            logger.warning("category_suggestion_failed", error=str(e))
            return fallback_suggestion(
                "Could not determine category - please select manually",
                similar,
                error=str(e),
            )

        logger.info(
            "category_suggested_by_llm",
            category=suggestion.category_name,
            confidence=suggestion.confidence,
        )
        return suggestion
