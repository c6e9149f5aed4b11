"""
Tests for nearest-reference matching and confidence formatting.
"""
import pytest

from facematch.core.matcher import (
    UNKNOWN_LABEL,
    FaceMatcher,
    euclidean_distance,
    format_confidence,
    to_match_entry,
)
from tests.fakes import face


@pytest.fixture
def reference_set():
    return [
        {'label': 'alice', 'descriptors': [face(0.0, 0.0)]},
        {'label': 'bob', 'descriptors': [face(1.0, 0.0)]},
    ]


class TestFaceMatcher:

    def test_picks_closest_label(self, reference_set):
        matcher = FaceMatcher(reference_set, threshold=0.6)
        result = matcher.match(face(0.9, 0.0))
        assert result['label'] == 'bob'
        assert result['distance'] == pytest.approx(0.1)

    def test_unknown_when_nothing_within_threshold(self, reference_set):
        matcher = FaceMatcher(reference_set, threshold=0.6)
        result = matcher.match(face(0.0, 3.0))
        assert result['label'] == UNKNOWN_LABEL
        assert result['distance'] == pytest.approx(3.0)

    def test_distance_equal_to_threshold_is_not_a_match(self):
        matcher = FaceMatcher([{'label': 'alice', 'descriptors': [face(0.0, 0.0)]}], threshold=0.5)
        assert matcher.match(face(0.5, 0.0))['label'] == UNKNOWN_LABEL
        assert matcher.match(face(0.49, 0.0))['label'] == 'alice'

    def test_tie_goes_to_latest_reference(self):
        matcher = FaceMatcher([
            {'label': 'first', 'descriptors': [face(1.0, 0.0)]},
            {'label': 'second', 'descriptors': [face(-1.0, 0.0)]},
        ], threshold=2.0)
        assert matcher.match(face(0.0, 0.0))['label'] == 'second'

    def test_same_photo_under_two_ids_reports_later_id(self):
        photo = face(0.2, 0.3)
        matcher = FaceMatcher([
            {'label': '1', 'descriptors': [photo]},
            {'label': '2', 'descriptors': [photo.copy()]},
        ])
        assert matcher.match(face(0.2, 0.35)) == {'label': '2', 'distance': pytest.approx(0.05)}

    def test_mean_distance_over_descriptors(self):
        matcher = FaceMatcher([
            {'label': 'carol', 'descriptors': [face(0.0, 0.0), face(0.4, 0.0)]},
        ], threshold=0.6)
        result = matcher.match(face(0.0, 0.0))
        assert result == {'label': 'carol', 'distance': pytest.approx(0.2)}

    def test_uses_supplied_distance_function(self, reference_set):
        calls = []

        def constant_distance(known, query):
            calls.append(len(known))
            return euclidean_distance(known, query) * 0 + 0.3

        matcher = FaceMatcher(reference_set, threshold=0.6, distance=constant_distance)
        assert matcher.match(face(5.0, 5.0)) == {'label': 'alice', 'distance': pytest.approx(0.3)}
        assert calls == [1, 1]

    def test_requires_references(self):
        with pytest.raises(ValueError):
            FaceMatcher([])


class TestConfidence:

    @pytest.mark.parametrize("distance, expected", [
        (0.0, "100.00%"),
        (0.25, "75.00%"),
        (0.4567, "54.33%"),
        (1.0, "0.00%"),
        (1.3, "0.00%"),
    ])
    def test_format_confidence(self, distance, expected):
        assert format_confidence(distance) == expected

    def test_match_entry_shape(self):
        entry = to_match_entry({'label': '7', 'distance': 0.125})
        assert entry == {'label': '7', 'distance': 0.125, 'confidence': '87.50%'}
        assert 0 <= float(entry['confidence'].rstrip('%')) <= 100
