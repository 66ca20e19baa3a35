"""Tests for the categorization agent (the LLM is replaced by a stub)."""

import asyncio
from datetime import date
from uuid import uuid4

from bizledger.agents import (
    SimilarTransaction,
    SuggestionSource,
    TransactionCategorizer,
    dominant_category,
    find_similar,
)


def match(category_id, similarity, name="Fuel"):
    return SimilarTransaction(
        description="x", category_id=category_id, category_name=name, similarity=similarity
    )


class TestHistoryMatching:
    """Tests for similarity search and pattern detection."""

    def test_find_similar_skips_uncategorized(self, categories, tx_factory):
        """Test only categorized, similar transactions are returned."""
        fuel = categories["fuel"]
        history = [
            tx_factory(10, date(2024, 6, 1), fuel, note="Shell fuel station"),
            tx_factory(10, date(2024, 6, 2), None, note="Shell fuel station"),
            tx_factory(10, date(2024, 6, 3), fuel, note="Bakery"),
        ]
        by_id = {c.id: c for c in categories.values()}

        similar = find_similar("Shell fuel station 12", history, by_id)

        assert len(similar) == 1
        assert similar[0].category_name == "Fuel"
        assert similar[0].similarity > 0.9

    def test_dominant_category_needs_clear_majority(self):
        """Test a split history is not a pattern."""
        fuel, office = uuid4(), uuid4()
        assert dominant_category([match(fuel, 0.9), match(office, 0.9, "Office")]) is None
        assert dominant_category([]) is None

    def test_dominant_category_needs_high_similarity(self):
        """Test agreeing but weak matches are not a pattern."""
        fuel = uuid4()
        assert dominant_category([match(fuel, 0.78), match(fuel, 0.79)]) is None

    def test_dominant_category_confidence_is_capped(self):
        """Test identical history gives at most 0.95 confidence."""
        fuel = uuid4()
        suggestion = dominant_category([match(fuel, 1.0)] * 4)
        assert suggestion.category_id == fuel
        assert suggestion.confidence == 0.95
        assert suggestion.source == SuggestionSource.HISTORY


class TestTransactionCategorizer:
    """Tests for TransactionCategorizer.suggest."""

    def test_history_pattern_skips_llm(self, stub_model, categories, tx_factory):
        """Test a clear history answer never calls the model."""
        fuel = categories["fuel"]
        history = [
            tx_factory(10, date(2024, 6, d), fuel, note="Shell fuel station") for d in (1, 2, 3)
        ]
        model = stub_model()

        suggestion = asyncio.run(TransactionCategorizer(model).suggest(
            "Shell fuel station 12", list(categories.values()), history
        ))

        assert suggestion.category_id == fuel.id
        assert suggestion.source == SuggestionSource.HISTORY
        assert model.prompts == []

    def test_llm_answer_is_matched_to_category(self, stub_model, categories):
        """Test the model's JSON answer resolves to one of the company's categories."""
        model = stub_model(
            '```json\n{"category": "office", "confidence": 0.9, "reasoning": "Stationery"}\n```'
        )

        suggestion = asyncio.run(TransactionCategorizer(model).suggest(
            "Printer paper", list(categories.values())
        ))

        assert suggestion.category_id == categories["office"].id
        assert suggestion.category_name == "Office"
        assert suggestion.confidence == 0.9
        assert suggestion.source == SuggestionSource.LLM
        assert "Printer paper" in model.prompts[0]
        assert "- Sales (income)" in model.prompts[0]

    def test_unknown_category_falls_back(self, stub_model, categories):
        """Test an invented category is rejected."""
        model = stub_model('{"category": "Travel", "confidence": 0.99}')

        suggestion = asyncio.run(TransactionCategorizer(model).suggest(
            "Hotel", list(categories.values())
        ))

        assert suggestion.is_uncategorized
        assert suggestion.confidence == 0.3
        assert suggestion.source == SuggestionSource.FALLBACK
        assert "unknown category" in suggestion.error

    def test_model_failure_falls_back(self, stub_model, categories):
        """Test an exception from the model becomes a fallback suggestion."""
        model = stub_model(error=RuntimeError("quota exceeded"))

        suggestion = asyncio.run(TransactionCategorizer(model).suggest(
            "Hotel", list(categories.values())
        ))

        assert suggestion.category_name == "uncategorized"
        assert suggestion.error == "quota exceeded"

    def test_non_json_answer_falls_back(self, stub_model, categories):
        """Test prose without JSON is treated as a failure."""
        suggestion = asyncio.run(TransactionCategorizer(stub_model("I think Office")).suggest(
            "Paper", list(categories.values())
        ))
        assert suggestion.error == "No JSON object in model response"

    def test_nothing_to_categorize(self, stub_model, categories):
        """Test an empty description or category list needs no model."""
        model = stub_model()
        categorizer = TransactionCategorizer(model)

        empty_text = asyncio.run(categorizer.suggest("   ", list(categories.values())))
        no_categories = asyncio.run(categorizer.suggest("Paper", []))

        assert empty_text.source == SuggestionSource.FALLBACK
        assert no_categories.is_uncategorized
        assert model.prompts == []
