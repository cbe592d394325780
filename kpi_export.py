"""
Export KPI result tables.

Writes the named KPI tables produced by the market analysis pipeline either
to a directory of CSV files or to PostgreSQL tables that a reporting layer
can query.

Outputs
-------
CSV : <output_dir>/<kpi_name>.csv, one file per KPI
PostgreSQL : kpi_<kpi_name>, one table per KPI (dropped and recreated on each run)
"""

import logging
from pathlib import Path
from typing import Dict, List, Union

import numpy as np
import pandas as pd
import psycopg2
from psycopg2.extras import execute_values

from market_schema import SQL_IDENTIFIER_PATTERN

logger = logging.getLogger(__name__)


def export_kpis_to_csv(kpis: Dict[str, pd.DataFrame],
                       output_dir: Union[str, Path]) -> List[Path]:
    """
    Write each KPI table to ``<output_dir>/<name>.csv``.

    Parameters
    ----------
    kpis : dict
        KPI name to DataFrame
    output_dir : str or Path
        Target directory, created if missing

    Returns
    -------
    list of Path
        Written files, in the order of ``kpis``
    """
    output_path = Path(output_dir)
    output_path.mkdir(parents=True, exist_ok=True)

    written = []
    for name, frame in kpis.items():
        csv_path = output_path / f"{name}.csv"
        frame.to_csv(csv_path, index=False)
        written.append(csv_path)
        logger.info(f"Exported {len(frame)} rows to {csv_path}")

    return written


def _postgres_type(dtype) -> str:
    if pd.api.types.is_datetime64_any_dtype(dtype):
        return 'DATE'
    if pd.api.types.is_bool_dtype(dtype):
        return 'BOOLEAN'
    if pd.api.types.is_integer_dtype(dtype):
        return 'BIGINT'
    if pd.api.types.is_float_dtype(dtype):
        return 'DOUBLE PRECISION'
    return 'TEXT'


def _to_db_value(value):
    # NaN / NaT become NULL
    if value is None or (not isinstance(value, str) and pd.isna(value)):
        return None
    if isinstance(value, pd.Timestamp):
        return value.date()
    if isinstance(value, np.generic):
        return value.item()
    return value


def load_kpis_to_postgres(conn: psycopg2.extensions.connection,
                          kpis: Dict[str, pd.DataFrame],
                          table_prefix: str = 'kpi_') -> List[str]:
    """
    Write each KPI table to PostgreSQL as ``<table_prefix><name>``.

    Existing tables are dropped and recreated. All tables are written in one
    transaction.

    Parameters
    ----------
    conn : psycopg2.connection
        Active database connection
    kpis : dict
        KPI name to DataFrame
    table_prefix : str, default='kpi_'
        Prefix of the created tables

    Returns
    -------
    list of str
        Created table names

    Raises
    ------
    ValueError
        If a resulting table or column name is not a plain identifier
    psycopg2.Error
        If a statement fails (the transaction is rolled back)
    """
    for name, frame in kpis.items():
        for identifier in [f"{table_prefix}{name}", *frame.columns]:
            if not SQL_IDENTIFIER_PATTERN.match(str(identifier)):
                raise ValueError(f"Invalid identifier: {identifier!r}")

    cursor = conn.cursor()
    created = []
    try:
        for name, frame in kpis.items():
            table = f"{table_prefix}{name}"
            columns_ddl = ", ".join(
                f"{column} {_postgres_type(frame[column].dtype)}" for column in frame.columns
            )
            cursor.execute(f"DROP TABLE IF EXISTS {table}")
            cursor.execute(f"CREATE TABLE {table} ({columns_ddl})")

            if not frame.empty:
                values = [
                    tuple(_to_db_value(value) for value in row)
                    for row in frame.itertuples(index=False, name=None)
                ]
                insert_query = f"INSERT INTO {table} ({', '.join(frame.columns)}) VALUES %s"
                execute_values(cursor, insert_query, values)

            created.append(table)
            logger.info(f"Loaded {len(frame)} rows into {table}")

        conn.commit()
        return created
    except psycopg2.Error as e:
        conn.rollback()
        logger.error(f"Failed to load KPI tables: {e}")
        raise
    finally:
        cursor.close()
