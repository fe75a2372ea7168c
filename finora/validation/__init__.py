"""Validation package."""

from finora.validation.validator import ENTITY_MODELS, RecordValidator

__all__ = [
    "ENTITY_MODELS",
    "RecordValidator",
]
