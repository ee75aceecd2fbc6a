"""
Tests for engagement-weighted sampling (sampler.py).
"""
import datetime

import pytest

from factories import make_entry

from portfolio_report.aggregator import group_by_area
from portfolio_report.models import EngagementTier
from portfolio_report.sampler import elision_text, engagement_tier, sample


AREAS = ("English", "Mathematics", "Creative Arts")


def _entries(n, areas=AREAS):
    tiers = ["Low", "Medium", "High", "Very High"]
    return [
        make_entry(
            f"Activity {i}",
            date=datetime.date(2025, 1, 1) + datetime.timedelta(days=i),
            areas=(areas[i % len(areas)],),
            engagement=tiers[i % len(tiers)],
        )
        for i in range(n)
    ]


class TestEngagementTier:
    @pytest.mark.parametrize("label, tier", [
        ("Very High", EngagementTier.VERY_HIGH),
        ("Highly engaged", EngagementTier.VERY_HIGH),
        ("High", EngagementTier.HIGH),
        ("medium", EngagementTier.MEDIUM),
        ("Low", EngagementTier.LOW),
        ("", EngagementTier.LOW),
        ("unknown", EngagementTier.LOW),
    ])
    def test_tiers(self, label, tier):
        assert engagement_tier(label) is tier


class TestSample:
    def test_under_cap_unchanged(self):
        grouped = group_by_area(_entries(9))
        result = sample(grouped, global_max=30, per_area_cap=5)
        assert not result.sampled
        assert result.shown_count == 9
        assert result.elided_count == 0

    def test_forty_entries_three_areas(self):
        grouped = group_by_area(_entries(40))
        result = sample(grouped, global_max=30, per_area_cap=5)
        assert result.sampled
        assert all(len(v) <= 5 for v in result.by_area.values())
        assert result.shown_count <= 30
        assert result.elided_count == 40 - result.shown_count
        for area, total in result.totals.items():
            assert len(result.by_area[area]) + result.elided[area] == total

    def test_highest_engagement_kept(self):
        grouped = {"English": [
            make_entry("a", engagement="Low"),
            make_entry("b", engagement="Very High"),
            make_entry("c", engagement="Medium"),
            make_entry("d", engagement="High"),
        ]}
        result = sample(grouped, global_max=1, per_area_cap=2)
        assert {e.title for e in result.by_area["English"]} <= {"b", "d"}

    def test_kept_entries_keep_original_order(self):
        grouped = {"English": [
            make_entry("first", engagement="High"),
            make_entry("second", engagement="Low"),
            make_entry("third", engagement="Very High"),
        ]}
        result = sample(grouped, global_max=2, per_area_cap=2)
        assert [e.title for e in result.by_area["English"]] == ["first", "third"]

    def test_many_areas_shaved_to_global_cap(self):
        areas = tuple(f"Area {i}" for i in range(10))
        grouped = group_by_area(_entries(50, areas=areas))
        result = sample(grouped, global_max=30, per_area_cap=5)
        assert result.shown_count == 30
        assert result.elided_count == 20
        assert all(len(v) <= 5 for v in result.by_area.values())


class TestElisionText:
    def test_singular(self):
        assert elision_text(1) == "Plus 1 additional activity documented during this reporting period."

    def test_plural(self):
        assert elision_text(4).startswith("Plus 4 additional activities")
