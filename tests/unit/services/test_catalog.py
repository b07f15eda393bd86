"""Tests for gallery refinement."""

import pytest

from greenlens.models.image import CatalogQuery, Category, SortKey
from greenlens.services.catalog import CatalogEngine, matches_search, refine


@pytest.fixture
def records(make_record):
    """Five records across categories; two crops mention wheat."""
    return [
        make_record("Wheat Harvest", Category.CROPS, "Golden wheat ready for harvest", "Main Field", hours=1),
        make_record("Corn Field", Category.CROPS, "Tall corn stalks", "South Field", hours=2),
        make_record("Barley Rows", Category.CROPS, "Barley next to the wheat", "East Field", hours=3),
        make_record("Wheat Flowers", Category.FLOWERS, "Wildflowers among wheat", None, hours=4),
        make_record("Forest Path", Category.NATURE, "Peaceful trail", "Wheatley Woods", hours=5),
    ]


class TestCatalogEngine:
    """Test cases for CatalogEngine.refine."""

    def setup_method(self):
        """Set up test fixtures."""
        self.engine = CatalogEngine()

    def test_crops_wheat_by_name(self, records):
        """Test category, search and name sort together."""
        query = CatalogQuery.create(category="crops", search="wheat", sort="name")

        result = self.engine.refine(records, query)

        assert [r.name for r in result] == ["Barley Rows", "Wheat Harvest"]

    def test_default_query_is_newest_first(self, records):
        """Test that no query means every record, newest first."""
        result = self.engine.refine(records)

        assert [r.name for r in result] == [
            "Forest Path",
            "Wheat Flowers",
            "Barley Rows",
            "Corn Field",
            "Wheat Harvest",
        ]

    def test_oldest_first(self, records):
        """Test ascending created_at ordering."""
        result = self.engine.refine(records, CatalogQuery(sort=SortKey.OLDEST))

        assert result[0].name == "Wheat Harvest"
        assert result[-1].name == "Forest Path"

    def test_search_matches_location(self, records):
        """Test that location is searched and None locations are skipped."""
        result = self.engine.refine(records, CatalogQuery(search="WHEATLEY"))

        assert [r.name for r in result] == ["Forest Path"]

    def test_search_whitespace(self, records):
        """Test that a blank search matches everything and other text is matched as typed."""
        assert [r.name for r in self.engine.refine(records, CatalogQuery(search=" corn "))] == ["Corn Field"]
        assert self.engine.refine(records, CatalogQuery(search="  corn")) == []
        assert len(self.engine.refine(records, CatalogQuery(search="   "))) == 5

    def test_category_without_matches(self, records):
        """Test that a category with no records gives an empty list."""
        result = self.engine.refine(records[:3], CatalogQuery(category="nature"))
        assert result == []

    def test_empty_input(self):
        """Test refining nothing."""
        assert self.engine.refine([], CatalogQuery(search="x")) == []

    def test_input_not_mutated(self, records):
        """Test that the incoming list is left untouched."""
        original = list(records)

        self.engine.refine(records, CatalogQuery(sort=SortKey.NAME))

        assert records == original

    def test_stable_for_equal_keys(self, make_record):
        """Test that equal sort keys keep their incoming order."""
        same_time = [make_record(f"Leaf {i}", image_id=str(i)) for i in range(4)]

        result = self.engine.refine(same_time, CatalogQuery(sort=SortKey.NEWEST))

        assert [r.id for r in result] == ["0", "1", "2", "3"]

    def test_name_sort_case_insensitive(self, make_record):
        """Test that lower-case names are not pushed after upper-case ones."""
        result = self.engine.refine(
            [make_record("beta"), make_record("Alpha"), make_record("Gamma")], CatalogQuery(sort=SortKey.NAME)
        )

        assert [r.name for r in result] == ["Alpha", "beta", "Gamma"]

    def test_name_sort_accented(self, make_record):
        """Test that accented names sort with their base letters."""
        names = ["zebra", "Éclair", "apple", "eclair", "Ångström Meadow", "oak"]

        result = self.engine.refine([make_record(name) for name in names], CatalogQuery(sort=SortKey.NAME))

        assert [r.name for r in result] == ["Ångström Meadow", "apple", "eclair", "Éclair", "oak", "zebra"]

    @pytest.mark.parametrize(
        "query",
        [
            CatalogQuery(),
            CatalogQuery(category="crops", search="wheat", sort=SortKey.NAME),
            CatalogQuery(search="field", sort=SortKey.OLDEST),
        ],
    )
    def test_idempotent(self, records, query):
        """Test that refining a refined list changes nothing."""
        once = self.engine.refine(records, query)
        assert self.engine.refine(once, query) == once

    @pytest.mark.parametrize("search", ["wheat", "FIELD", "e"])
    def test_search_property(self, records, search):
        """Test that every result contains the search text somewhere."""
        for record in self.engine.refine(records, CatalogQuery(search=search)):
            haystack = [record.name, record.description, record.location or ""]
            assert any(search.lower() in value.lower() for value in haystack)

    def test_sort_properties(self, records):
        """Test adjacent ordering for name and newest sorts."""
        by_name = self.engine.refine(records, CatalogQuery(sort=SortKey.NAME))
        newest = self.engine.refine(records, CatalogQuery(sort=SortKey.NEWEST))

        assert all(a.name <= b.name for a, b in zip(by_name, by_name[1:]))
        assert all(a.created_at >= b.created_at for a, b in zip(newest, newest[1:]))


def test_matches_search(make_record):
    """Test the search predicate directly."""
    record = make_record("Rose", description="Red petals", location=None)

    assert matches_search(record, "petal")
    assert not matches_search(record, "garden")


def test_module_refine(make_record):
    """Test the module-level shortcut."""
    records = [make_record("Rose"), make_record("Oak", Category.NATURE)]

    assert [r.name for r in refine(records, CatalogQuery(category="nature"))] == ["Oak"]
