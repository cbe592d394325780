"""
Database Utilities for the Market Analysis Pipeline
===================================================

This module provides connection handling and extraction functions for the
Airbnb market analysis source tables (listing-month records and amenity
flags), stored in PostgreSQL or exported as CSV files.

Functions
---------
get_db_config : Build connection parameters from environment variables
create_connection : Create PostgreSQL database connection
close_connection : Close database connection
get_table_schema : Column names and data types of a source table
preview_table : First rows of a source table
count_missing_values : Null counts of the nullable numeric columns
load_market_table : Load a listing-month table
load_amenity_table : Load the amenity flag table
load_csv_table : Load a source table from a CSV file

Environment Variables Required
------------------------------
DB_HOST : str
    PostgreSQL host address
DB_PORT : int
    PostgreSQL port number
DB_NAME : str
    Database holding the market analysis tables
DB_USER : str
    Database user
DB_PASSWORD : str
    Database password

Example
-------
>>> import market_db_utils as db_utils
>>> conn = db_utils.create_connection()
>>> market_df = db_utils.load_market_table(conn, 'market_analysis')
>>> db_utils.close_connection(conn)
"""

import logging
import os
from pathlib import Path
from typing import Dict, Optional, Union

import pandas as pd
import psycopg2
from dotenv import load_dotenv

from market_queries import (
    AMENITY_TABLE_QUERY,
    MARKET_TABLE_QUERY,
    MISSING_VALUES_QUERY,
    TABLE_PREVIEW_QUERY,
    TABLE_SCHEMA_QUERY,
)
from market_schema import SQL_IDENTIFIER_PATTERN

# Load environment variables
load_dotenv()

logger = logging.getLogger(__name__)


def get_db_config() -> Dict[str, Union[str, int, None]]:
    """
    Build psycopg2 connection parameters from environment variables.

    Returns
    -------
    dict
        Keys: host, database, user, password, port

    Environment Variables
    --------------------
    DB_HOST : str
        Database host (default: localhost)
    DB_PORT : int
        Database port (default: 5432)
    DB_NAME : str
        Database name (default: airbnb_market)
    DB_USER : str
        Database user (default: postgres)
    DB_PASSWORD : str
        Database password (required)
    """
    return {
        'host': os.getenv('DB_HOST', 'localhost'),
        'database': os.getenv('DB_NAME', 'airbnb_market'),
        'user': os.getenv('DB_USER', 'postgres'),
        'password': os.getenv('DB_PASSWORD'),
        'port': int(os.getenv('DB_PORT', '5432'))
    }


def create_connection(db_config: Optional[Dict] = None) -> psycopg2.extensions.connection:
    """
    Create and return a PostgreSQL database connection.

    Parameters
    ----------
    db_config : dict, optional
        Connection parameters; read from the environment when omitted

    Returns
    -------
    psycopg2.connection
        Open database connection

    Raises
    ------
    psycopg2.Error
        If connection fails
    """
    config = db_config or get_db_config()
    try:
        conn = psycopg2.connect(**config)
        logger.info(f"Connected to database: {config.get('database')}")
        return conn
    except psycopg2.Error as e:
        logger.error(f"Database connection failed: {e}")
        raise


def close_connection(conn: Optional[psycopg2.extensions.connection]) -> None:
    """Close database connection."""
    if conn:
        conn.close()
        logger.info("Database connection closed")


def _validate_table_name(table: str) -> str:
    if not SQL_IDENTIFIER_PATTERN.match(table or ''):
        raise ValueError(f"Invalid table name: {table!r}")
    return table


def get_table_schema(conn: psycopg2.extensions.connection, table: str) -> pd.DataFrame:
    """
    Retrieve column names and data types of a table.

    Parameters
    ----------
    conn : psycopg2.connection
        Active database connection
    table : str
        Table name

    Returns
    -------
    pd.DataFrame
        Columns: column_name, data_type
    """
    _validate_table_name(table)
    return pd.read_sql_query(TABLE_SCHEMA_QUERY, conn, params=(table,))


def preview_table(conn: psycopg2.extensions.connection, table: str,
                  limit: int = 5) -> pd.DataFrame:
    """Return the first ``limit`` rows of a table."""
    query = TABLE_PREVIEW_QUERY.format(table=_validate_table_name(table))
    return pd.read_sql_query(query, conn, params=(limit,))


def count_missing_values(conn: psycopg2.extensions.connection, table: str) -> Dict[str, int]:
    """
    Count nulls in lead_time, nightly_rate and length_stay directly in the database.

    Returns
    -------
    dict
        ``missing_lead_time``, ``missing_nightly_rate``, ``missing_length_stay``
    """
    query = MISSING_VALUES_QUERY.format(table=_validate_table_name(table))
    counts = pd.read_sql_query(query, conn)
    return {column: int(counts[column].iloc[0]) for column in counts.columns}


def load_market_table(conn: psycopg2.extensions.connection, table: str) -> pd.DataFrame:
    """
    Load a listing-month table.

    Parameters
    ----------
    conn : psycopg2.connection
        Active database connection
    table : str
        Source table, e.g. 'market_analysis' or 'market_analysis_2019'

    Returns
    -------
    pd.DataFrame
        Raw listing-month records

    Raises
    ------
    ValueError
        If the table name is not a plain identifier
    psycopg2.Error
        If the query fails
    """
    query = MARKET_TABLE_QUERY.format(table=_validate_table_name(table))
    try:
        df = pd.read_sql_query(query, conn)
        logger.info(f"Loaded {len(df)} rows from {table}")
        return df
    except psycopg2.Error as e:
        logger.error(f"Error loading table {table}: {e}")
        raise


def load_amenity_table(conn: psycopg2.extensions.connection,
                       table: str = 'amenities') -> pd.DataFrame:
    """Load the amenity flag table (unified_id, pool, hot_tub)."""
    query = AMENITY_TABLE_QUERY.format(table=_validate_table_name(table))
    try:
        df = pd.read_sql_query(query, conn)
        logger.info(f"Loaded {len(df)} rows from {table}")
        return df
    except psycopg2.Error as e:
        logger.error(f"Error loading table {table}: {e}")
        raise


def load_csv_table(path: Union[str, Path]) -> pd.DataFrame:
    """
    Load a source table exported as CSV.

    Identifier and month columns are read as strings so that values such as
    '2019-01' or zero-padded ids are preserved.

    Raises
    ------
    FileNotFoundError
        If the file doesn't exist
    """
    try:
        df = pd.read_csv(path, dtype={'unified_id': str, 'month': str})
        logger.info(f"Loaded {len(df)} rows from {path}")
        return df
    except FileNotFoundError:
        logger.error(f"CSV file not found: {path}")
        raise
