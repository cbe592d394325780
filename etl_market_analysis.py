"""
ETL Script: Airbnb Market Analysis KPIs
=======================================
Loads the by-year Airbnb market analysis tables, cleans and unifies them into
a canonical fact table, and computes revenue, occupancy, pricing, demand and
amenity-impact KPIs per month.

Author: Data Engineering Team
Date: 2025-11-20

Environment Variables Required
------------------------------
DB_HOST : str
    PostgreSQL host address
DB_USER : str
    Database user
DB_PASSWORD : str
    Database password (not needed with --csv)
DB_PORT : int
    PostgreSQL port number
DB_NAME : str
    Database holding the source tables
MARKET_SOURCE_TABLES : str
    Comma-separated listing-month tables (default: market_analysis,market_analysis_2019)
AMENITY_TABLE : str
    Amenity flag table (default: amenities)
KPI_OUTPUT_DIR : str
    Directory for the KPI CSV files (default: kpi_output)

Usage Examples
--------------
Run against PostgreSQL:
    python etl_market_analysis.py

Run against CSV exports:
    python etl_market_analysis.py --csv market_2018.csv market_2019.csv --amenities-csv amenities.csv
"""

import argparse
import logging
import os
from datetime import datetime
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Tuple

import pandas as pd
from dotenv import load_dotenv

import market_db_utils as db_utils
from amenity_impact import amenity_revenue, amenity_share, rank_amenity_revenue
from kpi_export import export_kpis_to_csv, load_kpis_to_postgres
from market_kpis import compute_all_kpis
from market_schema import LISTING_KEY, LISTING_MONTH_KEY
from market_transforms import (
    deduplicate,
    normalize_amenity_table,
    normalize_market_table,
    unify_tables,
)
from market_trends import city_revenue_growth, occupancy_growth, price_change, revenue_growth

# Load environment variables
load_dotenv()

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

DEFAULT_SOURCE_TABLES = ['market_analysis', 'market_analysis_2019']
DEFAULT_AMENITY_TABLE = 'amenities'


class MarketAnalysisETL:
    """
    Batch pipeline computing market KPIs from listing-month tables.

    Stages:
    - Normalize: validate columns, report and fill missing values
    - Deduplicate: one row per listing and month in each source
    - Unify: set union of the sources into the canonical fact table
    - Aggregate: monthly KPI tables and amenity impact
    - Trends: month-over-month growth of the monthly KPIs

    Parameters
    ----------
    db_config : dict, optional
        Database connection configuration with keys: host, database, user,
        password, port. Required unless CSV sources are given.
    source_tables : sequence of str
        Listing-month tables to unify
    amenity_table : str
        Amenity flag table
    csv_sources : sequence of str, optional
        Listing-month CSV files, used instead of the database tables
    amenity_csv : str, optional
        Amenity CSV file, used instead of the amenity table
    split_both_amenities : bool, default=False
        Classify listings with pool and hot tub as 'Both'
    fill_value : float, default=0
        Replacement for missing numeric values
    dedup_key : sequence of str
        Key kept unique in each source table and in the fact table. The
        default listing-month key allows one row per listing per month, so
        a listing identifier alone is not unique in the fact table.

    Attributes
    ----------
    conn : psycopg2.connection
        Database connection (database mode only)
    """

    def __init__(self, db_config: Optional[Dict] = None,
                 source_tables: Sequence[str] = DEFAULT_SOURCE_TABLES,
                 amenity_table: str = DEFAULT_AMENITY_TABLE,
                 csv_sources: Optional[Sequence[str]] = None,
                 amenity_csv: Optional[str] = None,
                 split_both_amenities: bool = False,
                 fill_value: float = 0,
                 dedup_key: Sequence[str] = LISTING_MONTH_KEY):
        self.db_config = db_config
        self.source_tables = list(source_tables)
        self.amenity_table = amenity_table
        self.csv_sources = list(csv_sources or [])
        self.amenity_csv = amenity_csv
        self.split_both_amenities = split_both_amenities
        self.fill_value = fill_value
        self.dedup_key = list(dedup_key)
        self.conn = None

    def connect(self):
        """
        Open the source database connection if it is not open yet.

        Raises
        ------
        psycopg2.Error
            If connection fails
        """
        if self.conn is None:
            self.conn = db_utils.create_connection(self.db_config)

    def disconnect(self):
        """Close the database connection."""
        if self.conn:
            db_utils.close_connection(self.conn)
            self.conn = None

    # ========================================================================
    # EXTRACT
    # ========================================================================

    def inspect_sources(self):
        """Log the schema, missing-value counts and sample rows of each database table."""
        self.connect()
        for table in self.source_tables:
            schema = db_utils.get_table_schema(self.conn, table)
            logger.info(f"Schema of {table}:\n{schema.to_string(index=False)}")
            logger.info(f"Missing values in {table}: {db_utils.count_missing_values(self.conn, table)}")
            logger.info(f"Sample rows of {table}:\n{db_utils.preview_table(self.conn, table).to_string(index=False)}")

    def extract_sources(self) -> List[Tuple[str, pd.DataFrame]]:
        """
        Load the listing-month sources from CSV files or database tables.

        Returns
        -------
        list of (str, pd.DataFrame)
            Source name and raw table
        """
        if self.csv_sources:
            return [(Path(path).stem, db_utils.load_csv_table(path)) for path in self.csv_sources]

        self.connect()
        return [(table, db_utils.load_market_table(self.conn, table)) for table in self.source_tables]

    def extract_amenities(self) -> pd.DataFrame:
        """Load the amenity flag table from a CSV file or the database."""
        if self.amenity_csv:
            return db_utils.load_csv_table(self.amenity_csv)

        self.connect()
        return db_utils.load_amenity_table(self.conn, self.amenity_table)

    # ========================================================================
    # TRANSFORM
    # ========================================================================

    def build_fact_table(self, sources: Sequence[Tuple[str, pd.DataFrame]]) -> pd.DataFrame:
        """
        Normalize and deduplicate each source, then union them.

        Rows from different sources that share a key are reduced to the row
        from the earliest source in ``sources`` order, so the key is unique in
        the returned table.

        Parameters
        ----------
        sources : sequence of (str, pd.DataFrame)
            Source name and raw listing-month table

        Returns
        -------
        pd.DataFrame
            Canonical fact table
        """
        cleaned = []
        for name, frame in sources:
            normalized = normalize_market_table(frame, fill_value=self.fill_value, table_name=name)
            cleaned.append(deduplicate(normalized, key_columns=self.dedup_key))

        fact = unify_tables(cleaned)
        duplicated_keys = int(fact.duplicated(subset=self.dedup_key).sum())
        if duplicated_keys:
            logger.warning(f"{duplicated_keys} rows share a {self.dedup_key} key across sources; "
                           f"keeping the first source's row")
            fact = deduplicate(fact, key_columns=self.dedup_key)
        return fact

    def compute_kpis(self, fact: pd.DataFrame, amenities: pd.DataFrame) -> Dict[str, pd.DataFrame]:
        """Monthly KPI tables plus amenity revenue, ranking and shares."""
        kpis = compute_all_kpis(fact)

        amenity_flags = deduplicate(normalize_amenity_table(amenities, self.amenity_table), LISTING_KEY)
        amenity_frame = amenity_revenue(fact, amenity_flags, split_both=self.split_both_amenities)
        kpis['amenity_revenue_rank'] = rank_amenity_revenue(amenity_frame)
        kpis['amenity_share'] = amenity_share(amenity_frame)
        return kpis

    def derive_trends(self, kpis: Dict[str, pd.DataFrame]) -> Dict[str, pd.DataFrame]:
        """Month-over-month growth tables derived from the monthly KPIs."""
        return {
            'revenue_growth': revenue_growth(kpis['monthly_revenue']),
            'city_revenue_growth': city_revenue_growth(kpis['city_revenue']),
            'occupancy_growth': occupancy_growth(kpis['occupancy_rate']),
            'price_change': price_change(kpis['avg_nightly_rate']),
        }

    # ========================================================================
    # ORCHESTRATION
    # ========================================================================

    def run_full_pipeline(self, sources: Optional[Sequence[Tuple[str, pd.DataFrame]]] = None,
                          amenities: Optional[pd.DataFrame] = None,
                          inspect: bool = False) -> Dict[str, pd.DataFrame]:
        """
        Execute the complete pipeline.

        Steps:
        1. Extract source tables (skipped when frames are passed in)
        2. Normalize, deduplicate and unify into the fact table
        3. Compute monthly and amenity KPIs
        4. Derive month-over-month trends

        Parameters
        ----------
        sources : sequence of (str, pd.DataFrame), optional
            Pre-loaded listing-month tables
        amenities : pd.DataFrame, optional
            Pre-loaded amenity table
        inspect : bool, default=False
            Log schema and sample rows of the database tables first

        Returns
        -------
        dict
            KPI name to DataFrame

        Example
        -------
        >>> etl = MarketAnalysisETL(csv_sources=['market_2019.csv'], amenity_csv='amenities.csv')
        >>> kpis = etl.run_full_pipeline()
        >>> kpis['revenue_growth']
        """
        start_time = datetime.now()
        logger.info("="*70)
        logger.info("Starting ETL: Market Analysis KPIs")
        logger.info("="*70)

        try:
            if inspect and not self.csv_sources:
                self.inspect_sources()

            logger.info("\n--- PHASE 1: Extracting Sources ---")
            if sources is None:
                sources = self.extract_sources()
            if amenities is None:
                amenities = self.extract_amenities()

            logger.info("\n--- PHASE 2: Building Fact Table ---")
            fact = self.build_fact_table(sources)

            logger.info("\n--- PHASE 3: Computing KPIs ---")
            kpis = self.compute_kpis(fact, amenities)

            logger.info("\n--- PHASE 4: Deriving Trends ---")
            kpis.update(self.derive_trends(kpis))

            elapsed = datetime.now() - start_time
            logger.info("="*70)
            logger.info(f"ETL completed successfully in {elapsed}: {len(kpis)} KPI tables")
            logger.info("="*70)
            return kpis

        except Exception as e:
            logger.error(f"ETL failed: {e}")
            raise
        finally:
            self.disconnect()


def parse_arguments(argv: Optional[Sequence[str]] = None):
    """
    Parse command-line arguments.

    Returns
    -------
    argparse.Namespace
        Parsed arguments
    """
    parser = argparse.ArgumentParser(
        description='Compute Airbnb market analysis KPIs',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python etl_market_analysis.py
  python etl_market_analysis.py --inspect --load-db
  python etl_market_analysis.py --csv market_2018.csv market_2019.csv --amenities-csv amenities.csv
        """
    )

    parser.add_argument('--csv', nargs='+', metavar='PATH',
                        help='Listing-month CSV files to use instead of database tables')
    parser.add_argument('--amenities-csv', metavar='PATH',
                        help='Amenity CSV file to use instead of the amenity table')
    parser.add_argument('--output-dir', default=os.getenv('KPI_OUTPUT_DIR', 'kpi_output'),
                        help='Directory for KPI CSV files (default: kpi_output)')
    parser.add_argument('--load-db', action='store_true',
                        help='Also write the KPI tables to PostgreSQL')
    parser.add_argument('--inspect', action='store_true',
                        help='Log schema and sample rows of the source tables')
    parser.add_argument('--split-both-amenities', action='store_true',
                        help="Report listings with pool and hot tub as 'Both'")

    return parser.parse_args(argv)


def main(argv: Optional[Sequence[str]] = None):
    """
    Main execution function.

    Configure sources from the environment and command line, run the
    pipeline, and export the KPI tables.

    Example .env File
    -----------------
    DB_HOST=localhost
    DB_NAME=airbnb_market
    DB_USER=postgres
    DB_PASSWORD=your_secure_password
    DB_PORT=5432
    MARKET_SOURCE_TABLES=market_analysis,market_analysis_2019
    """
    args = parse_arguments(argv)

    source_tables = [
        table.strip()
        for table in os.getenv('MARKET_SOURCE_TABLES', ','.join(DEFAULT_SOURCE_TABLES)).split(',')
        if table.strip()
    ]
    db_config = db_utils.get_db_config()

    needs_database = not args.csv or not args.amenities_csv or args.load_db
    if needs_database and not db_config['password']:
        logger.error("DB_PASSWORD not found in environment variables!")
        logger.error("Please create a .env file with DB_PASSWORD=your_password")
        raise ValueError("DB_PASSWORD environment variable is required")

    etl = MarketAnalysisETL(
        db_config,
        source_tables=source_tables,
        amenity_table=os.getenv('AMENITY_TABLE', DEFAULT_AMENITY_TABLE),
        csv_sources=args.csv,
        amenity_csv=args.amenities_csv,
        split_both_amenities=args.split_both_amenities,
    )
    kpis = etl.run_full_pipeline(inspect=args.inspect)

    export_kpis_to_csv(kpis, args.output_dir)

    if args.load_db:
        conn = db_utils.create_connection(db_config)
        try:
            load_kpis_to_postgres(conn, kpis)
        finally:
            db_utils.close_connection(conn)

    return kpis


if __name__ == '__main__':
    main()
