"""
Matching Engine Utilities
"""

from .helpers import (
    normalize_label,
    label_map,
    extract_keywords,
    round_half_up,
    ordered_pair,
    chunked,
    embedding_to_json,
    json_to_embedding
)

__all__ = [
    'normalize_label',
    'label_map',
    'extract_keywords',
    'round_half_up',
    'ordered_pair',
    'chunked',
    'embedding_to_json',
    'json_to_embedding'
]
