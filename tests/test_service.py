"""Tests for ranking operations."""

import json

import pytest

from blind_ranker.errors import InsufficientCandidates, NotFound, ValidationError
from blind_ranker.models import GROUPED, UNGROUPED

PHOTOS = [f"img{i}.jpg" for i in range(1, 6)]
STARS = {"img1.jpg": 1, "img2.jpg": 3, "img3.jpg": 5, "img4.jpg": 7, "img5.jpg": 9}


@pytest.fixture
def photos(make_service, normal_subset):
    return make_service()


@pytest.fixture
def styles(make_service, ai_subset):
    service = make_service()
    service.seed(GROUPED, "styles", {name: 5 for name in ["fox_a.png", "fox_b.png", "fox_c.png", "fox_d.png"]})
    return service


class TestLookup:

    def test_list_subsets(self, make_service, normal_subset, ai_subset):
        service = make_service()
        assert service.list_subsets(UNGROUPED) == ["photos"]
        assert service.list_subsets(GROUPED) == ["styles"]

    def test_unknown_kind(self, photos):
        with pytest.raises(NotFound):
            photos.list_subsets("video")

    def test_unknown_subset(self, photos):
        with pytest.raises(NotFound, match="Normal subset 'ghost' not found"):
            photos.progress(UNGROUPED, "ghost")


class TestMatchmaking:
    """next_match and seeding."""

    def test_fresh_subset_requests_seeding(self, photos):
        result = photos.next_match(UNGROUPED, "photos")
        assert result["requiresSeeding"] is True
        assert sorted(result["uninitializedImages"]) == PHOTOS

    def test_pair_once_two_are_seeded(self, photos):
        photos.seed(UNGROUPED, "photos", {"img1.jpg": 5, "img2.jpg": 6})
        result = photos.next_match(UNGROUPED, "photos")
        assert result["requiresSeeding"] is False
        assert {result["image1"], result["image2"]} == {"img1.jpg", "img2.jpg"}
        assert result["pendingSeeding"] == 3

    def test_blocking_mode_waits_for_all(self, make_service, normal_subset):
        service = make_service(block_matches_until_seeded=True)
        service.seed(UNGROUPED, "photos", {"img1.jpg": 5, "img2.jpg": 6})
        result = service.next_match(UNGROUPED, "photos")
        assert result["requiresSeeding"] is True
        assert sorted(result["uninitializedImages"]) == ["img3.jpg", "img4.jpg", "img5.jpg"]

    def test_fully_seeded(self, photos):
        photos.seed(UNGROUPED, "photos", STARS)
        result = photos.next_match(UNGROUPED, "photos")
        assert result["pendingSeeding"] == 0
        assert result["image1"] != result["image2"]

    def test_single_image_cannot_pair(self, make_service, workspace):
        folder = workspace / "normal_images" / "solo"
        folder.mkdir()
        (folder / "only.jpg").write_bytes(b"")
        service = make_service()
        service.seed(UNGROUPED, "solo", {"only.jpg": 5})
        with pytest.raises(InsufficientCandidates):
            service.next_match(UNGROUPED, "solo")

    def test_seed_reports_count(self, photos):
        assert photos.seed(UNGROUPED, "photos", {"img1.jpg": 5, "ghost.jpg": 5}) == 1
        assert photos.seeding_status(UNGROUPED, "photos")["uninitializedImages"] == PHOTOS[1:]

    def test_seed_nothing_valid(self, photos):
        with pytest.raises(ValidationError, match="No valid uninitialized images"):
            photos.seed(UNGROUPED, "photos", {"img1.jpg": 0, "ghost.jpg": 5})

    def test_seed_persisted(self, photos, workspace):
        photos.seed(UNGROUPED, "photos", {"img3.jpg": 10})
        data = json.loads((workspace / "data" / "ratings-normal-photos.json").read_text())
        assert data["ratings"] == {"img3.jpg": 1500}
        assert data["matchCount"] == {"img3.jpg": 0}


class TestVote:
    """Recording comparisons."""

    def test_first_vote(self, photos):
        photos.seed(UNGROUPED, "photos", {"img1.jpg": 5, "img2.jpg": 5})
        result = photos.vote(UNGROUPED, "photos", "img1.jpg", "img2.jpg")
        assert result["winner"] == {"rating": pytest.approx(1032.0), "matches": 1}
        assert result["loser"] == {"rating": pytest.approx(968.0), "matches": 1}
        assert result["groupsUpdated"] is False

    def test_vote_survives_reload(self, photos, make_service):
        photos.seed(UNGROUPED, "photos", {"img1.jpg": 5, "img2.jpg": 5})
        photos.vote(UNGROUPED, "photos", "img2.jpg", "img1.jpg")

        reloaded = make_service()
        rankings = reloaded.image_rankings(UNGROUPED, "photos")
        assert [row["image"] for row in rankings] == ["img2.jpg", "img1.jpg"]
        assert rankings[0]["matches"] == 1

    def test_same_image(self, photos):
        photos.seed(UNGROUPED, "photos", STARS)
        with pytest.raises(ValidationError):
            photos.vote(UNGROUPED, "photos", "img1.jpg", "img1.jpg")

    def test_unknown_image(self, photos):
        photos.seed(UNGROUPED, "photos", STARS)
        with pytest.raises(NotFound, match="ghost.jpg"):
            photos.vote(UNGROUPED, "photos", "img1.jpg", "ghost.jpg")

    def test_unseeded_image(self, photos):
        photos.seed(UNGROUPED, "photos", {"img1.jpg": 5})
        with pytest.raises(ValidationError, match="unseeded"):
            photos.vote(UNGROUPED, "photos", "img1.jpg", "img2.jpg")
        assert photos.image_rankings(UNGROUPED, "photos")[0]["matches"] == 0

    def test_cross_group_vote_updates_groups(self, styles):
        result = styles.vote(GROUPED, "styles", "fox_c.png", "fox_a.png")
        assert result["groupsUpdated"] is True
        groups = {row["group"]: row for row in styles.group_rankings("styles")}
        assert groups["pastel:0.8"]["rating"] == pytest.approx(1032.0)
        assert groups["inkwash:0.8"]["rating"] == pytest.approx(968.0)

    def test_same_group_vote_leaves_groups(self, styles):
        result = styles.vote(GROUPED, "styles", "fox_a.png", "fox_b.png")
        assert result["groupsUpdated"] is False
        assert all(row["matches"] == 0 for row in styles.group_rankings("styles"))

    def test_none_group_vote_leaves_groups(self, styles):
        result = styles.vote(GROUPED, "styles", "fox_d.png", "fox_a.png")
        assert result["groupsUpdated"] is False
        assert styles.image_rankings(GROUPED, "styles")[0]["image"] == "fox_d.png"

    def test_grouped_file_has_groups(self, styles, workspace):
        styles.vote(GROUPED, "styles", "fox_a.png", "fox_c.png")
        data = json.loads((workspace / "data" / "ratings-styles.json").read_text())
        assert data["groupModelRatings"]["inkwash:0.8"]["count"] == 1
        assert data["images"]["fox_c.png"] == {"group": "pastel:0.8"}


class TestDelete:

    def test_delete_image(self, photos, normal_subset):
        photos.seed(UNGROUPED, "photos", {"img1.jpg": 5})
        assert photos.delete_image(UNGROUPED, "photos", "img1.jpg") == {"deletedFile": True}
        assert not (normal_subset / "img1.jpg").exists()
        assert photos.image_rankings(UNGROUPED, "photos") == []
        assert photos.progress(UNGROUPED, "photos")["totalImages"] == 4

    def test_delete_keeps_file_when_disabled(self, make_service, normal_subset):
        service = make_service(delete_image_files=False)
        assert service.delete_image(UNGROUPED, "photos", "img1.jpg") == {"deletedFile": False}
        assert (normal_subset / "img1.jpg").exists()

    def test_delete_unknown(self, photos):
        with pytest.raises(NotFound):
            photos.delete_image(UNGROUPED, "photos", "ghost.jpg")


class TestViews:
    """Rankings, progress and summaries."""

    def test_rankings_sorted(self, photos):
        photos.seed(UNGROUPED, "photos", STARS)
        ratings = [row["rating"] for row in photos.image_rankings(UNGROUPED, "photos")]
        assert ratings == [1400, 1200, 1000, 800, 600]

    def test_grouped_rankings_include_group(self, styles):
        rows = styles.image_rankings(GROUPED, "styles")
        assert {row["group"] for row in rows} == {"inkwash:0.8", "pastel:0.8", "NONE"}

    def test_progress(self, photos):
        photos.seed(UNGROUPED, "photos", {"img1.jpg": 5, "img2.jpg": 5, "img3.jpg": 5})
        photos.vote(UNGROUPED, "photos", "img1.jpg", "img2.jpg")
        assert photos.progress(UNGROUPED, "photos") == {
            "minimalMatches": 0,
            "totalImages": 5,
            "initializedImagesCount": 3,
        }

    def test_summaries(self, styles):
        summary = styles.image_summary(GROUPED, "styles")
        assert summary == {"count": 4, "averageRating": 1000, "averageMatches": 0}
        assert styles.group_summary("styles")["count"] == 2

    def test_empty_summary(self, photos):
        assert photos.image_summary(UNGROUPED, "photos") == {
            "count": 0, "averageRating": 0, "averageMatches": 0,
        }

    def test_image_path(self, photos, normal_subset):
        assert photos.image_path(UNGROUPED, "photos", "img2.jpg").name == "img2.jpg"
        with pytest.raises(NotFound):
            photos.image_path(UNGROUPED, "photos", "ghost.jpg")


class TestApplyTags:
    """Binning plus sidecar writing."""

    def test_default_strategy(self, photos, normal_subset):
        photos.seed(UNGROUPED, "photos", STARS)
        result = photos.apply_tags(UNGROUPED, "photos")

        assert result["processed"] == 5
        assert result["errors"] == 0
        assert result["assignments"]["img1.jpg"] == "terrible"
        assert result["assignments"]["img5.jpg"] == "excellent"
        assert (normal_subset / "img3.txt").read_text() == "aesthetic_rating_average"

    def test_dry_run_writes_nothing(self, photos, normal_subset):
        photos.seed(UNGROUPED, "photos", STARS)
        result = photos.apply_tags(UNGROUPED, "photos", strategy="stdDev", dry_run=True)
        assert result["processed"] == 0
        assert sum(result["tagCounts"].values()) == 5
        assert not list(normal_subset.glob("*.txt"))

    def test_custom_prefix_and_tags(self, photos, normal_subset):
        photos.seed(UNGROUPED, "photos", STARS)
        photos.apply_tags(UNGROUPED, "photos", strategy="kmeans", tags=["low", "high"], prefix="q_")
        assert (normal_subset / "img1.txt").read_text() == "q_low"
        assert (normal_subset / "img5.txt").read_text() == "q_high"

    def test_only_seeded_images_tagged(self, photos):
        photos.seed(UNGROUPED, "photos", {"img1.jpg": 2, "img2.jpg": 8})
        result = photos.apply_tags(UNGROUPED, "photos", strategy="rangeNormalization", dry_run=True)
        assert result["assignments"] == {"img1.jpg": "terrible", "img2.jpg": "excellent"}

    def test_empty_prefix(self, photos):
        photos.seed(UNGROUPED, "photos", STARS)
        with pytest.raises(ValidationError, match="prefix"):
            photos.apply_tags(UNGROUPED, "photos", prefix="")

    def test_no_rated_images(self, photos):
        with pytest.raises(ValidationError, match="No rated images"):
            photos.apply_tags(UNGROUPED, "photos")

    def test_strategy_validation_propagates(self, photos):
        photos.seed(UNGROUPED, "photos", {"img1.jpg": 2, "img2.jpg": 8})
        with pytest.raises(ValidationError, match="at least 5"):
            photos.apply_tags(UNGROUPED, "photos")


class TestRefresh:

    def test_picks_up_new_subset(self, photos, workspace):
        folder = workspace / "normal_images" / "later"
        folder.mkdir()
        (folder / "new.jpg").write_bytes(b"")
        assert photos.list_subsets(UNGROUPED) == ["photos"]

        photos.refresh()
        assert photos.list_subsets(UNGROUPED) == ["later", "photos"]

    def test_keeps_saved_ratings(self, photos):
        photos.seed(UNGROUPED, "photos", {"img1.jpg": 7})
        photos.refresh()
        assert photos.image_rankings(UNGROUPED, "photos")[0]["rating"] == 1200

    def test_undecodable_sidecar(self, photos, normal_subset):
        photos.seed(UNGROUPED, "photos", STARS)
        (normal_subset / "img1.txt").write_bytes(b"old, \xff\xfe bad")
        result = photos.apply_tags(UNGROUPED, "photos")
        assert result["processed"] == 5
        assert result["errors"] == 0
        assert (normal_subset / "img1.txt").read_text(encoding="utf-8").endswith("aesthetic_rating_terrible")
