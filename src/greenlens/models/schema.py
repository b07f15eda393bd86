"""
Database schema definitions for greenlens.

One table holds every published image. Timestamps are stored as naive UTC.
No secondary index is declared: DuckDB zone maps cover the category and
created_at filters, and an ART index on category would turn every category
edit into a delete + insert.
"""

IMAGES_TABLE = "images"

IMAGES_TABLE_SCHEMA = f"""
CREATE TABLE IF NOT EXISTS {IMAGES_TABLE} (
    id VARCHAR PRIMARY KEY,
    url VARCHAR NOT NULL,
    name VARCHAR NOT NULL CHECK (length(name) BETWEEN 1 AND 100),
    description VARCHAR NOT NULL CHECK (length(description) BETWEEN 1 AND 200),
    category VARCHAR NOT NULL CHECK (category IN ('flowers', 'nature', 'crops')),
    location VARCHAR,
    created_at TIMESTAMP NOT NULL,
    storage_ref VARCHAR NOT NULL
);
"""

IMAGE_COLUMNS = ("id", "url", "name", "description", "category", "location", "created_at", "storage_ref")


def get_schema_statements() -> list[str]:
    """
    Get all database schema creation statements.

    Returns:
        List of SQL statements to create the images table
    """
    return [IMAGES_TABLE_SCHEMA]


def validate_schema_compatibility() -> bool:
    """Check that every ImageRecord column appears in the table definition."""
    schema_lower = IMAGES_TABLE_SCHEMA.lower()
    return all(column in schema_lower for column in IMAGE_COLUMNS)
