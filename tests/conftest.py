"""Shared fixtures: an in-memory backend and a company with a few records."""

from datetime import date
from decimal import Decimal
from types import SimpleNamespace
from uuid import uuid4

import pytest

from bizledger.config.settings import AppSettings
from bizledger.models.finance import (
    Account,
    Category,
    CategoryKind,
    Transaction,
    TransactionDirection,
)
from bizledger.services.storage import InMemoryStorage


@pytest.fixture
def company_id():
    return uuid4()


@pytest.fixture
def storage():
    return InMemoryStorage()


@pytest.fixture
def app_settings():
    return AppSettings()


@pytest.fixture
def account(company_id):
    return Account(company_id=company_id, name="Main account")


@pytest.fixture
def categories(company_id):
    return {
        "office": Category(company_id=company_id, name="Office"),
        "fuel": Category(company_id=company_id, name="Fuel"),
        "sales": Category(company_id=company_id, name="Sales", kind=CategoryKind.INCOME),
    }


def make_transaction(company_id, account_id, amount, occurred_at, category_id=None,
                     direction=TransactionDirection.EXPENSE, note=None):
    return Transaction(
        company_id=company_id,
        account_id=account_id,
        category_id=category_id,
        direction=direction,
        amount=Decimal(str(amount)),
        occurred_at=occurred_at,
        note=note,
    )


@pytest.fixture
def tx_factory(company_id, account):
    def factory(amount, occurred_at=date(2024, 6, 10), category=None, **kwargs):
        return make_transaction(
            company_id,
            account.id,
            amount,
            occurred_at,
            category_id=category.id if category else None,
            **kwargs,
        )
    return factory


class StubModel:
    """Stands in for the Gemini model: answers with a fixed text, or raises."""

    def __init__(self, text="", error=None):
        self.text = text
        self.error = error
        self.prompts = []

    async def generate_content_async(self, prompt):
        self.prompts.append(prompt)
        if self.error:
            raise self.error
        return SimpleNamespace(text=self.text)


@pytest.fixture
def stub_model():
    return StubModel
