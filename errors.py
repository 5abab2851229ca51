"""
Exceptions raised by the matching engine
"""


class MatchingError(Exception):
    """Base class for matching engine errors"""
    pass


class MatchingConfigError(MatchingError):
    """MatchingRules missing or unusable for an event"""
    pass


class CandidateLimitError(MatchingError):
    """Event has more approved participants than one generation run accepts"""
    pass


class EmbeddingError(MatchingError):
    """Embedding API call failed or returned an unusable response"""
    pass


class ClassificationError(MatchingError):
    """AI intent classification failed or returned invalid output"""
    pass


class InvalidStatusTransition(MatchingError):
    """Requested match status change is not allowed"""
    pass
