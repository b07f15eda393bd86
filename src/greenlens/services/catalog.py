"""Gallery refinement for greenlens.

``refine`` derives the display-ready subset of an already-loaded collection:
category filter, then free-text search, then a stable sort. It performs no
I/O, never mutates the records and keeps no state between calls.
"""

import unicodedata
from collections.abc import Iterable

from ..models.image import CatalogQuery, ImageRecord, SortKey


def matches_search(record: ImageRecord, needle: str) -> bool:
    """True when lower-cased ``needle`` occurs in the name, description or location."""
    return (
        needle in record.name.lower()
        or needle in record.description.lower()
        or (record.location is not None and needle in record.location.lower())
    )


def fold_accents(text: str) -> str:
    """Casefold ``text`` and drop combining marks, so "Éclair" collates as "eclair"."""
    decomposed = unicodedata.normalize("NFKD", text.casefold())
    return "".join(char for char in decomposed if not unicodedata.combining(char))


def name_sort_key(record: ImageRecord) -> tuple[str, str, str]:
    """
    Collation key for the name sort.

    Base letters compare first, then accents, then case. The result does not
    depend on the process locale.
    """
    return fold_accents(record.name), record.name.casefold(), record.name


class CatalogEngine:
    """Pure, reentrant filter/search/sort over image records."""

    def refine(self, records: Iterable[ImageRecord], query: CatalogQuery | None = None) -> list[ImageRecord]:
        """
        Filter and sort ``records`` for display.

        Args:
            records: Published records (left untouched)
            query: Category filter ("all" for none), search text and sort key

        Returns:
            New list in display order
        """
        query = query or CatalogQuery()
        results = list(records)

        category = query.category_filter
        if category is not None:
            results = [record for record in results if record.category == category]

        # Whitespace decides emptiness only; a non-blank query is matched as typed.
        needle = query.search.lower()
        if needle.strip():
            results = [record for record in results if matches_search(record, needle)]

        # sorted() is stable, so equal keys keep their incoming order
        if query.sort is SortKey.NEWEST:
            return sorted(results, key=lambda record: record.created_at, reverse=True)
        if query.sort is SortKey.OLDEST:
            return sorted(results, key=lambda record: record.created_at)
        return sorted(results, key=name_sort_key)


def refine(records: Iterable[ImageRecord], query: CatalogQuery | None = None) -> list[ImageRecord]:
    """Module-level shortcut for ``CatalogEngine().refine``."""
    return CatalogEngine().refine(records, query)
