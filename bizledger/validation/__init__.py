"""Validation package."""

from bizledger.validation.validator import TransactionValidator

__all__ = ["TransactionValidator"]
