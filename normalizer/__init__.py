"""
Normalizer module for parsing balance amounts.
"""
from .amount_parser import (
    NoNumericContent,
    RoundingPolicy,
    find_amounts,
    has_valid_amount,
    normalize,
    render,
)

__all__ = [
    'NoNumericContent', 'RoundingPolicy', 'find_amounts',
    'has_valid_amount', 'normalize', 'render',
]
