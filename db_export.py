#!/usr/bin/env python3
"""
Database Export Utility for the conversation intelligence pipeline.
Exports messages, cached conversation analyses and per-message analyses
as CSV or JSON.
"""

import argparse
import json
import logging
import os
from datetime import datetime
from typing import List, Optional, Sequence

import pandas as pd

from config import AppConfig
from dao.base_dao import BaseDAO
from utils.error.error_handler import DatabaseError

logger = logging.getLogger(__name__)

EXPORTABLE_TABLES = ["messages", "analysis_cache", "message_analysis", "analysis_runs"]


class ExportConfig:
    """Export utility configuration"""

    @classmethod
    def get_output_path(cls, prefix: str, format_type: str) -> str:
        """Generate a timestamped output file path"""
        timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
        export_dir = AppConfig.get_export_dir()
        return os.path.join(export_dir, f"{prefix}_{timestamp}.{format_type}")


def write_frame(df: pd.DataFrame, output_file: str, format_type: str = 'csv') -> Optional[str]:
    if df.empty:
        logger.warning("Query returned no results")
        return None

    if format_type.lower() == 'csv':
        df.to_csv(output_file, index=False)
    elif format_type.lower() == 'json':
        df.to_json(output_file, orient='records', indent=2, force_ascii=False)
    else:
        logger.error(f"Unsupported format: {format_type}")
        return None

    logger.info(f"Exported {len(df)} records to {output_file}")
    print(f"Exported {len(df)} records to {output_file}")
    return output_file


def read_query(db_path: str, query: str, params: Sequence = ()) -> pd.DataFrame:
    with BaseDAO(db_path).get_connection() as conn:
        return pd.read_sql_query(query, conn, params=list(params))


def export_query_results(db_path: str, query: str, output_file: str, params: Sequence = (),
                         format_type: str = 'csv') -> Optional[str]:
    """
    Export query results to a file

    Args:
        db_path: Path to the database
        query: SQL query to execute
        output_file: Path to output file
        params: Query parameters
        format_type: Output format ('csv' or 'json')

    Returns:
        Path to the output file if successful, None otherwise
    """
    try:
        return write_frame(read_query(db_path, query, params), output_file, format_type)
    except (DatabaseError, pd.errors.DatabaseError, OSError) as e:
        logger.error(f"Error exporting data: {str(e)}")
        print(f"Error exporting data: {str(e)}")
        return None


def export_table(db_path: str, table_name: str, format_type: str = 'csv',
                 output_file: Optional[str] = None) -> Optional[str]:
    """Export a whole table"""
    if table_name not in EXPORTABLE_TABLES:
        raise ValueError(f"Table {table_name} cannot be exported")
    output_file = output_file or ExportConfig.get_output_path(table_name, format_type)
    return export_query_results(db_path, f"SELECT * FROM {table_name}", output_file, format_type=format_type)


def flatten_analyses(df: pd.DataFrame) -> pd.DataFrame:
    """
    Expand the JSON payload column of analysis_cache rows into
    `payload.<field>` columns; nested dicts become dotted columns.
    """
    if df.empty:
        return df
    payloads = pd.json_normalize([json.loads(p) for p in df["payload"]]).add_prefix("payload.")
    for column in payloads.columns:
        payloads[column] = payloads[column].map(
            lambda v: json.dumps(v, ensure_ascii=False) if isinstance(v, (list, dict)) else v
        )
    return pd.concat([df.drop(columns=["payload"]).reset_index(drop=True), payloads], axis=1)


def export_conversation(db_path: str, account_id: str, contact_number: str,
                        format_type: str = 'json', output_file: Optional[str] = None) -> Optional[str]:
    """
    Export every cached analysis of one conversation, payload flattened

    Returns:
        Path to the output file if successful, None otherwise
    """
    output_file = output_file or ExportConfig.get_output_path(f"conversation_{contact_number}", format_type)
    try:
        df = read_query(
            db_path,
            "SELECT * FROM analysis_cache WHERE account_id = ? AND contact_number = ? ORDER BY kind",
            [account_id, contact_number],
        )
        return write_frame(flatten_analyses(df), output_file, format_type)
    except (DatabaseError, pd.errors.DatabaseError, OSError) as e:
        logger.error(f"Error exporting conversation {account_id}/{contact_number}: {str(e)}")
        return None


def export_date_range(db_path: str, start_date: str, end_date: str, format_type: str = 'csv',
                      output_file: Optional[str] = None) -> Optional[str]:
    """
    Export per-message analyses of messages sent within a date range

    Args:
        start_date: Start date in YYYY-MM-DD format
        end_date: End date in YYYY-MM-DD format, inclusive
    """
    output_file = output_file or ExportConfig.get_output_path(f"messages_{start_date}_to_{end_date}", format_type)
    query = """
    SELECT m.account_id, m.contact_number, m.id AS message_id, m.timestamp, m.content,
           a.category, a.urgency_priority, a.urgency_level, a.is_urgent,
           a.sentiment, a.sentiment_score, a.intent, a.extracted_values, a.provider
    FROM messages m
    JOIN message_analysis a ON a.account_id = m.account_id AND a.message_id = m.id
    WHERE date(m.timestamp) BETWEEN ? AND ?
    ORDER BY m.timestamp
    """
    return export_query_results(db_path, query, output_file, [start_date, end_date], format_type)


def export_category_summary(db_path: str, format_type: str = 'csv',
                            output_file: Optional[str] = None) -> Optional[str]:
    """Export per-category counts, urgency split and average sentiment score"""
    output_file = output_file or ExportConfig.get_output_path("category_summary", format_type)
    query = """
    SELECT
        category,
        COUNT(*) AS count,
        AVG(sentiment_score) AS avg_sentiment_score,
        COUNT(CASE WHEN urgency_level = 'critical' THEN 1 END) AS critical_count,
        COUNT(CASE WHEN urgency_level = 'high' THEN 1 END) AS high_count,
        COUNT(CASE WHEN urgency_level = 'medium' THEN 1 END) AS medium_count,
        COUNT(CASE WHEN urgency_level = 'low' THEN 1 END) AS low_count
    FROM message_analysis
    GROUP BY category
    ORDER BY count DESC
    """
    return export_query_results(db_path, query, output_file, format_type=format_type)


def main(argv: Optional[List[str]] = None):
    """Command-line interface entry point"""
    parser = argparse.ArgumentParser(description="Database Export Utility")
    parser.add_argument("--db-path", help="Database path (overrides default and environment variable)")

    subparsers = parser.add_subparsers(dest="command", help="Export command")

    table_parser = subparsers.add_parser("table", help="Export a full table")
    table_parser.add_argument("table", choices=EXPORTABLE_TABLES, help="Table to export")
    table_parser.add_argument("--format", choices=["csv", "json"], default="csv", help="Output format")
    table_parser.add_argument("--output", help="Output file path (optional)")

    conversation_parser = subparsers.add_parser("conversation", help="Export the cached analyses of a conversation")
    conversation_parser.add_argument("account_id", help="Account id")
    conversation_parser.add_argument("contact_number", help="Contact number")
    conversation_parser.add_argument("--format", choices=["csv", "json"], default="json", help="Output format")
    conversation_parser.add_argument("--output", help="Output file path (optional)")

    date_parser = subparsers.add_parser("dates", help="Export analyzed messages within a date range")
    date_parser.add_argument("start_date", help="Start date (YYYY-MM-DD)")
    date_parser.add_argument("end_date", help="End date (YYYY-MM-DD)")
    date_parser.add_argument("--format", choices=["csv", "json"], default="csv", help="Output format")
    date_parser.add_argument("--output", help="Output file path (optional)")

    summary_parser = subparsers.add_parser("categories", help="Export category summary")
    summary_parser.add_argument("--format", choices=["csv", "json"], default="csv", help="Output format")
    summary_parser.add_argument("--output", help="Output file path (optional)")

    args = parser.parse_args(argv)
    logging.basicConfig(level=logging.INFO, format='%(asctime)s - %(levelname)s - %(message)s')
    db_path = args.db_path or AppConfig.get_db_path()

    if args.command == "table":
        export_table(db_path, args.table, args.format, args.output)
    elif args.command == "conversation":
        export_conversation(db_path, args.account_id, args.contact_number, args.format, args.output)
    elif args.command == "dates":
        export_date_range(db_path, args.start_date, args.end_date, args.format, args.output)
    elif args.command == "categories":
        export_category_summary(db_path, args.format, args.output)
    else:
        parser.print_help()


if __name__ == "__main__":
    main()
