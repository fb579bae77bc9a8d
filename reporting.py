"""
Reporting for Happy Harvests.
Dashboard overview counts and harvested inventory by crop variety.
"""

import logging
import math

from db import get_db
from weather_service import get_weather_snapshot

logger = logging.getLogger(__name__)

PRIMARY_LOCATION_CANDIDATES = 10


def _count(conn, table):
    return conn.execute(f"SELECT COUNT(*) AS n FROM {table}").fetchone()['n']


def _is_finite(value):
    return isinstance(value, (int, float)) and not isinstance(value, bool) and math.isfinite(value)


def get_dashboard_overview(include_weather=False):
    """Counts for the dashboard cards plus the primary location.

    The primary location is the earliest-created location (among the first
    ten) with finite coordinates. With ``include_weather`` its current
    weather snapshot is attached (None when unavailable).
    """
    with get_db() as conn:
        overview = {
            'crop_variety_count': _count(conn, 'crop_varieties'),
            'plot_count': _count(conn, 'plots'),
            'planting_count': _count(conn, 'plantings'),
        }
        locations = conn.execute('''
            SELECT id, name, latitude, longitude FROM locations
            ORDER BY created_at ASC, id ASC
            LIMIT ?
        ''', (PRIMARY_LOCATION_CANDIDATES,)).fetchall()

    primary = next(
        (dict(loc) for loc in locations if _is_finite(loc['latitude']) and _is_finite(loc['longitude'])),
        None
    )
    overview['primary_location'] = primary
    if include_weather:
        overview['weather'] = (
            get_weather_snapshot(primary['latitude'], primary['longitude']) if primary else None
        )
    return overview


def get_inventory_availability(variety_ids):
    """Harvested totals per requested crop variety.

    Args:
        variety_ids: iterable of crop variety ids; order is preserved in the
            result and unknown ids report zero.

    Returns:
        [{'crop_variety_id', 'count_available', 'grams_available'}, ...]
    """
    ids = []
    for value in variety_ids or []:
        try:
            parsed = int(value)
        except (TypeError, ValueError):
            continue
        if parsed not in ids:
            ids.append(parsed)
    if not ids:
        return []

    placeholders = ', '.join('?' for _ in ids)
    with get_db() as conn:
        rows = conn.execute(f'''
            SELECT p.crop_variety_id,
                   COALESCE(SUM(e.qty), 0) AS harvested_count,
                   COALESCE(SUM(e.weight_grams), 0) AS harvested_grams
            FROM planting_events e
            JOIN plantings p ON p.id = e.planting_id
            WHERE e.event_type = 'harvested' AND p.crop_variety_id IN ({placeholders})
            GROUP BY p.crop_variety_id
        ''', ids).fetchall()

    totals = {r['crop_variety_id']: r for r in rows}
    availability = []
    for variety_id in ids:
        row = totals.get(variety_id)
        availability.append({
            'crop_variety_id': variety_id,
            'count_available': int(row['harvested_count']) if row else 0,
            'grams_available': int(row['harvested_grams']) if row else 0,
        })
    logger.debug(f"Inventory availability computed for {len(ids)} varieties")
    return availability
