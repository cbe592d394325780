"""
Source Queries for the Market Analysis Tables
=============================================
SQL used to inspect and extract the listing-month and amenity tables from
PostgreSQL. Table names are formatted in with ``{table}`` after validation
(see ``market_db_utils``); values are passed as query parameters.
"""

# Column names and data types of a table
TABLE_SCHEMA_QUERY = """
SELECT
    column_name,
    data_type
FROM information_schema.columns
WHERE table_name = %s
ORDER BY ordinal_position;
"""

# First rows of a table
TABLE_PREVIEW_QUERY = """
SELECT *
FROM {table}
LIMIT %s;
"""

# Missing values in the nullable numeric columns
MISSING_VALUES_QUERY = """
SELECT
    COUNT(CASE WHEN lead_time IS NULL THEN 1 END) AS missing_lead_time,
    COUNT(CASE WHEN nightly_rate IS NULL THEN 1 END) AS missing_nightly_rate,
    COUNT(CASE WHEN length_stay IS NULL THEN 1 END) AS missing_length_stay
FROM {table};
"""

# Listing-month records
MARKET_TABLE_QUERY = """
SELECT
    unified_id,
    "month",
    city,
    host_type,
    revenue,
    openness,
    occupancy,
    nightly_rate,
    lead_time,
    length_stay
FROM {table};
"""

# Amenity flags per listing
AMENITY_TABLE_QUERY = """
SELECT
    unified_id,
    pool,
    hot_tub
FROM {table};
"""
