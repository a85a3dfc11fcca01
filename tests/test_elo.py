"""Tests for Elo rating updates."""

import pytest

from blind_ranker.elo import expected_score, k_factor, record_result, update_ratings
from blind_ranker.models import GroupModel, Image, Initialized


class TestKFactor:
    """K-factor schedule."""

    @pytest.mark.parametrize("matches,expected", [
        (0, 64), (9, 64), (10, 48), (19, 48), (20, 32), (29, 32), (30, 24), (500, 24),
    ])
    def test_schedule(self, matches, expected):
        assert k_factor(matches) == expected


class TestUpdateRatings:
    """Elo update rule."""

    def test_equal_ratings_first_match(self):
        """1000 vs 1000 with no matches moves 32 points each way."""
        winner, loser = update_ratings(Initialized(1000.0, 0), Initialized(1000.0, 0))
        assert winner.rating == pytest.approx(1032.0)
        assert loser.rating == pytest.approx(968.0)
        assert winner.matches == 1
        assert loser.matches == 1

    def test_expected_score_symmetry(self):
        assert expected_score(1200, 1000) + expected_score(1000, 1200) == pytest.approx(1.0)
        assert expected_score(1000, 1000) == pytest.approx(0.5)

    def test_winner_gains_loser_loses(self):
        """Upsets move ratings further than expected wins."""
        favourite = Initialized(1400.0, 5)
        underdog = Initialized(1000.0, 5)

        fav_win, dog_loss = update_ratings(favourite, underdog)
        dog_win, fav_loss = update_ratings(underdog, favourite)

        assert fav_win.rating > favourite.rating
        assert dog_loss.rating < underdog.rating
        assert dog_win.rating - underdog.rating > fav_win.rating - favourite.rating
        assert fav_loss.rating < favourite.rating

    def test_k_factor_uses_pre_increment_matches(self):
        """A side with 9 matches still uses K=64 for its tenth match."""
        winner, loser = update_ratings(Initialized(1000.0, 9), Initialized(1000.0, 30))
        assert winner.rating == pytest.approx(1032.0)
        assert loser.rating == pytest.approx(988.0)
        assert winner.matches == 10
        assert loser.matches == 31

    def test_inputs_not_mutated(self):
        before = Initialized(1000.0, 0)
        update_ratings(before, Initialized(1100.0, 3))
        assert before == Initialized(1000.0, 0)


class TestRecordResult:
    """In-place updates on images and group models."""

    def test_images_updated(self):
        a = Image("a.png", state=Initialized(1000.0, 0))
        b = Image("b.png", state=Initialized(1000.0, 0))
        record_result(a, b)
        assert a.rating == pytest.approx(1032.0)
        assert b.rating == pytest.approx(968.0)
        assert a.matches == b.matches == 1

    def test_group_models_updated(self):
        a = GroupModel("inkwash")
        b = GroupModel("pastel")
        record_result(b, a)
        assert b.rating > 1000
        assert a.rating < 1000

    def test_unseeded_image_rejected(self):
        a = Image("a.png", state=Initialized(1000.0, 0))
        b = Image("b.png")
        with pytest.raises(ValueError):
            record_result(a, b)
        assert a.rating == 1000.0
