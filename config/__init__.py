"""Config loader for matching defaults and scoring tables"""
import json
import os
from functools import lru_cache
from typing import Dict, Any, List

CONFIG_PATH = os.path.join(os.path.dirname(__file__), 'matching.json')


@lru_cache(maxsize=1)
def load_matching_config() -> Dict[str, Any]:
    """Load and cache matching config from JSON file"""
    with open(CONFIG_PATH, 'r') as f:
        return json.load(f)


def get_default_rules() -> Dict[str, Any]:
    """Get default MatchingRules values (used for null columns and new events)"""
    return dict(load_matching_config()['default_rules'])


def get_intent_compatibility() -> Dict[str, Dict[str, int]]:
    """Get the symmetric intent compatibility table (0-100)"""
    return load_matching_config()['intent_compatibility']


def get_intent_labels() -> Dict[str, str]:
    """Get display labels for intents ('selling' -> 'Seller')"""
    return load_matching_config()['intent_labels']


def get_industry_adjacency() -> Dict[str, List[str]]:
    """Get related-industry lists, keyed by lowercase industry name"""
    return load_matching_config()['industry_adjacency']


def get_company_size_buckets() -> List[str]:
    """Get company size buckets, smallest first"""
    return load_matching_config()['company_size_buckets']


def get_priority_boost() -> int:
    """Get the additive boost for sponsor/VIP prioritization"""
    return load_matching_config().get('priority_boost', 10)


def get_max_match_reasons() -> int:
    """Get how many reasons a match carries at most"""
    return load_matching_config().get('max_match_reasons', 3)


def get_max_candidates() -> int:
    """Get the largest approved-participant count a generation run accepts"""
    return load_matching_config().get('max_candidates', 5000)


def get_match_batch_size() -> int:
    """Get rows per upsert request for match rows"""
    return load_matching_config().get('match_batch_size', 500)


def get_embedding_settings() -> Dict[str, Any]:
    """Get embedding model name and batch size"""
    return load_matching_config()['embedding']


def get_classifier_settings() -> Dict[str, Any]:
    """
    Get AI intent classifier settings.

    Returns:
        Dict with 'model', 'temperature', 'max_tokens' and 'min_text_length'
    """
    return load_matching_config()['classifier']


def get_interaction_settings() -> Dict[str, int]:
    """Get limits for behavioral signal collection (messages, meeting notes)"""
    return load_matching_config()['interaction_signals']
