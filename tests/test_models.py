"""
Tests for domain types: participants, rules snapshot, match rows, status changes
"""

import pytest

from conftest import load_fixture
from errors import InvalidStatusTransition, MatchingConfigError
from models import (
    ABSENT, IntentResult, MatchingRules, Participant, Present, ScoredMatch,
    clean_intents, validate_status_transition
)


class TestParticipant:
    """Test building participants from joined rows"""

    def test_from_row_reads_profile_fields(self):
        row = load_fixture('participants.json')[0]
        participant = Participant.from_row(row)

        assert participant.id == 'p01'
        assert participant.full_name == 'Alice Moreau'
        assert participant.industry == 'Fintech'
        assert participant.intents == ('buying',)
        assert participant.expertise_areas == ('Payments', 'Risk')

    def test_from_row_defaults_missing_values(self):
        row = load_fixture('participants.json')[5]
        participant = Participant.from_row(row)

        assert participant.role == ''
        assert participant.intents == ()
        assert participant.expertise_areas == ()
        assert participant.looking_for == ''
        assert participant.intent_vector is None

    def test_profiles_as_list(self):
        participant = Participant.from_row({'id': 'x', 'profiles': [{'full_name': 'Listed'}]})
        assert participant.full_name == 'Listed'

    def test_legacy_single_intent(self):
        participant = Participant.from_row({'id': 'x', 'intent': 'Selling', 'intents': []})
        assert participant.intents == ('selling',)

    def test_clean_intents_drops_unknown_and_caps_at_three(self):
        values = ['buying', 'BUYING', 'dancing', 'selling', 'learning', 'networking']
        assert clean_intents(values) == ['buying', 'selling', 'learning']


class TestMatchingRules:
    """Test rules snapshot and validation"""

    def test_null_columns_take_defaults(self):
        rules = MatchingRules.from_row({'event_id': 'e1', 'intent_weight': None, 'minimum_score': 55})

        assert rules.intent_weight == 0.35
        assert rules.minimum_score == 55
        assert rules.max_recommendations == 20
        assert rules.exclude_same_company is True

    def test_fraction_minimum_score_is_percentage(self):
        rules = MatchingRules.from_row({'minimum_score': 0.4, 'intent_confidence_threshold': 0.5}, 'e1')
        assert rules.minimum_score == pytest.approx(40)
        assert rules.intent_confidence_threshold == pytest.approx(50)

    def test_negative_weight_rejected(self):
        with pytest.raises(MatchingConfigError, match="negative"):
            MatchingRules.from_row({'industry_weight': -0.1}, 'e1')

    def test_embedding_only_weights_allowed(self):
        row = {'intent_weight': 0, 'industry_weight': 0, 'interest_weight': 0,
               'complementarity_weight': 0, 'embedding_weight': 1}
        rules = MatchingRules.from_row(row, 'e1')
        assert rules.weights['embedding'] == 1

    def test_all_weights_zero_rejected(self):
        row = {'intent_weight': 0, 'industry_weight': 0, 'interest_weight': 0,
               'complementarity_weight': 0, 'embedding_weight': 0}
        with pytest.raises(MatchingConfigError, match="positive"):
            MatchingRules.from_row(row, 'e1')

    def test_max_recommendations_must_be_positive(self):
        with pytest.raises(MatchingConfigError, match="max_recommendations"):
            MatchingRules.from_row({'max_recommendations': 0}, 'e1')

    def test_non_numeric_weight_rejected(self):
        with pytest.raises(MatchingConfigError):
            MatchingRules.from_row({'intent_weight': 'heavy'}, 'e1')

    def test_snapshot_is_immutable(self):
        rules = MatchingRules.from_row({}, 'e1')
        with pytest.raises(Exception):
            rules.minimum_score = 0


class TestIntentResult:
    """Test intent result helpers"""

    def test_empty_is_unknown(self):
        assert IntentResult().is_empty
        assert IntentResult().primary_intent() is None

    def test_primary_intent_tie_uses_enum_order(self):
        result = IntentResult({'selling': 0.5, 'buying': 0.5}, 60)
        assert result.primary_intent() == 'buying'


class TestScoredMatch:
    """Test match rows"""

    def test_row_has_no_status_and_null_embedding(self):
        match = ScoredMatch('a', 'b', 87.5, 100.0, 100.0, 70.0, ABSENT, 91, ['Buyer ↔ Seller intent match'])
        row = match.to_row('e1')

        assert 'status' not in row
        assert row['embedding_score'] is None
        assert row['score'] == 91
        assert match.key == ('a', 'b')

    def test_present_embedding_is_stored(self):
        match = ScoredMatch('a', 'b', 50.0, 50.0, 50.0, 50.0, Present(82.25), 55)
        assert match.to_row('e1')['embedding_score'] == 82.25


class TestStatusTransitions:
    """Test the match status state machine"""

    @pytest.mark.parametrize("current,new", [
        ('pending', 'saved'),
        ('pending', 'dismissed'),
        ('pending', 'accepted'),
        ('saved', 'accepted'),
    ])
    def test_allowed(self, current, new):
        validate_status_transition(current, new)

    @pytest.mark.parametrize("current,new", [
        ('dismissed', 'pending'),
        ('accepted', 'saved'),
        ('saved', 'dismissed'),
        ('pending', 'archived'),
    ])
    def test_rejected(self, current, new):
        with pytest.raises(InvalidStatusTransition):
            validate_status_transition(current, new)
