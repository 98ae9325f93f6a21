"""Tests for venue normalisation and live-provider lookup."""

import pytest

from racesight.errors import VenueNotFound
from racesight.venues import (
    equibase_code,
    match_venue,
    normalize_venue,
    racing_post_slug,
    resolve_live_venue,
    venue_slug,
)


class TestNormalisation:
    """Venue name normalisation."""

    def test_case_and_whitespace(self):
        """Case and spacing are normalised."""
        assert normalize_venue("  Churchill   DOWNS ") == "churchill downs"

    def test_aliases(self):
        """Known aliases map to their canonical name."""
        assert normalize_venue("Kempton (AW)") == "kempton"
        assert normalize_venue("The Curragh") == "curragh"

    def test_empty(self):
        """Empty names normalise to empty strings."""
        assert normalize_venue(None) == ""
        assert venue_slug("") == ""

    def test_slug(self):
        """Slugs are hyphenated, with overrides."""
        assert venue_slug("Bangor-on-Dee") == "bangor-on-dee"
        assert venue_slug("Chelmsford") == "chelmsford-city"


class TestProviderLookup:
    """Live provider identifiers per venue."""

    def test_us_track(self):
        """US tracks have an Equibase code only."""
        assert equibase_code("Churchill Downs") == "CD"
        assert racing_post_slug("Churchill Downs") is None

    def test_uk_course(self):
        """UK courses have a Racing Post slug only."""
        assert racing_post_slug("Ascot") == "ascot"
        assert equibase_code("Ascot") is None

    def test_resolve_live_venue(self):
        """Live lookup normalises the name and carries codes."""
        venue = resolve_live_venue(" saratoga ")
        assert venue.equibase_code == "SAR"
        assert venue.name == "saratoga"

    def test_resolve_unknown_venue(self):
        """Unknown venues raise VenueNotFound."""
        with pytest.raises(VenueNotFound, match="Nowhere Park"):
            resolve_live_venue("Nowhere Park")


class TestMatchVenue:
    """Matching a requested course against export names."""

    def test_returns_source_spelling(self):
        """The export's own spelling is returned."""
        assert match_venue("example  downs", ["Ascot", "Example Downs"]) == "Example Downs"

    def test_no_match(self):
        """No match gives None."""
        assert match_venue("Nowhere", ["Ascot"]) is None
        assert match_venue("", ["Ascot"]) is None
