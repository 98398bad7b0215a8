"""
Cache statistics for the submission browser.
"""
from typing import Dict, Any

import pandas as pd

from .database_manager import DatabaseManager


def build_report(database_manager: DatabaseManager, recent_syncs: int = 10) -> Dict[str, Any]:
    """
    Summarize the cache contents.

    Uses pandas for the aggregations so the whole tables are read once.

    Returns:
        Dictionary with totals, unique users/devices, events per month
        (derived from event timestamps), file-type counts and recent syncs
    """
    with database_manager.get_connection() as conn:
        events_df = pd.read_sql_query(
            "SELECT event_id, user_id, device_id, timestamp FROM events", conn
        )
        files_df = pd.read_sql_query("SELECT key, file_type FROM files", conn)

    report: Dict[str, Any] = {
        'total_events': int(len(events_df)),
        'total_files': int(len(files_df)),
        'unique_users': int(events_df['user_id'].nunique()) if not events_df.empty else 0,
        'unique_devices': int(events_df['device_id'].nunique()) if not events_df.empty else 0,
        'events_by_month': {},
        'file_types': {}
    }

    if not events_df.empty:
        timestamps = pd.to_datetime(events_df['timestamp'], format='ISO8601', errors='coerce')
        months = timestamps.dt.strftime('%Y-%m').dropna()
        by_month = months.value_counts().sort_index(ascending=False)
        report['events_by_month'] = {month: int(count) for month, count in by_month.items()}

    if not files_df.empty:
        by_type = files_df['file_type'].value_counts()
        report['file_types'] = {file_type: int(count) for file_type, count in by_type.items()}

    report['recent_syncs'] = [
        {
            'year': run.year,
            'month': run.month,
            'files_synced': run.files_synced,
            'events_synced': run.events_synced,
            'completed_at': run.completed_at.isoformat()
        }
        for run in database_manager.get_recent_sync_runs(recent_syncs)
    ]

    return report
