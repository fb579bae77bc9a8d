"""
Farm calendar for Happy Harvests.
Merges logged activities, planting seed dates and harvest dates (actual or
predicted from the variety's days to maturity) into one event feed.
"""

import logging
from datetime import date, timedelta

from crop_catalog import normalize_dtm
from db import get_db

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

EVENT_TYPES = ['activity', 'planting', 'harvest']
TITLE_SEPARATOR = ' · '
CALENDAR_LOCATION_LIMIT = 10


def _add_days(date_iso, days):
    return (date.fromisoformat(date_iso[:10]) + timedelta(days=days)).isoformat()


def _in_range(start, range_start, range_end):
    day = (start or '')[:10]
    if range_start and day < range_start:
        return False
    if range_end and day > range_end:
        return False
    return True


# ---------------------------------------------------------------------------
# Event builders
# ---------------------------------------------------------------------------

def _activity_events(conn):
    rows = conn.execute('''
        SELECT id, activity_type, started_at, ended_at, duration_minutes, location_id,
               crop, asset_name, notes
        FROM activities
        ORDER BY started_at ASC, id ASC
    ''').fetchall()
    amendment_rows = conn.execute('''
        SELECT activity_id, name, quantity, unit FROM activities_soil_amendments ORDER BY id
    ''').fetchall()
    amendments = {}
    for a in amendment_rows:
        amendments.setdefault(a['activity_id'], []).append(
            {'name': a['name'], 'quantity': a['quantity'], 'unit': a['unit']}
        )

    events = []
    for row in rows:
        activity = dict(row)
        activity['activities_soil_amendments'] = amendments.get(activity['id'], [])
        title = activity['activity_type'].replace('_', ' ')
        if activity['crop']:
            title += f"{TITLE_SEPARATOR}{activity['crop']}"
        if activity['asset_name']:
            title += f"{TITLE_SEPARATOR}{activity['asset_name']}"
        events.append({
            'id': f"a:{activity['id']}",
            'type': 'activity',
            'title': title,
            'start': activity['started_at'],
            'end': activity['ended_at'],
            'meta': activity,
        })
    return events


def _planting_events(conn):
    rows = conn.execute('''
        SELECT e.planting_id, e.event_date, e.qty, e.weight_grams,
               p.status, cv.name AS variety, c.name AS crop
        FROM planting_events e
        JOIN plantings p ON p.id = e.planting_id
        LEFT JOIN crop_varieties cv ON cv.id = p.crop_variety_id
        LEFT JOIN crops c ON c.id = cv.crop_id
        WHERE e.event_type IN ('nursery_seeded', 'direct_seeded')
        ORDER BY e.event_date ASC, e.id ASC
    ''').fetchall()
    events = []
    for row in rows:
        meta = {
            'status': row['status'],
            'crop': row['crop'],
            'variety': row['variety'],
            'qty': row['qty'],
            'weight_grams': row['weight_grams'],
            'planting_id': row['planting_id'],
        }
        events.append({
            'id': f"p:{row['planting_id']}",
            'type': 'planting',
            'title': f"Planting{TITLE_SEPARATOR}{row['status'] or ''}",
            'start': row['event_date'],
            'meta': {k: v for k, v in meta.items() if v is not None},
        })
    return events


def predict_harvest_date(planted_date, nursery_started_date, dtm):
    """Predicted harvest date, or None when the variety has no usable DTM.

    Plantings that never started in a nursery use the direct-seed minimum,
    transplants use the transplant minimum. ``dtm`` is a normalize_dtm dict.
    """
    if not planted_date:
        return None
    days = dtm['ds_min'] if not nursery_started_date else dtm['tp_min']
    if days <= 0:
        return None
    return _add_days(planted_date, days)


def _harvest_events(conn):
    actual = {}
    for row in conn.execute('''
        SELECT planting_id, event_date FROM planting_events
        WHERE event_type = 'harvested'
        ORDER BY event_date ASC, id ASC
    ''').fetchall():
        actual.setdefault(row['planting_id'], row['event_date'])

    rows = conn.execute('''
        SELECT p.id, p.status, p.nursery_started_date, p.planted_date,
               cv.name AS variety, c.name AS crop,
               cv.dtm_direct_seed_min, cv.dtm_direct_seed_max,
               cv.dtm_transplant_min, cv.dtm_transplant_max
        FROM plantings p
        LEFT JOIN crop_varieties cv ON cv.id = p.crop_variety_id
        LEFT JOIN crops c ON c.id = cv.crop_id
        ORDER BY p.id
    ''').fetchall()

    events = []
    for p in rows:
        harvest_date = actual.get(p['id'])
        source = 'actual' if harvest_date else None
        if not harvest_date and p['status'] != 'removed':
            dtm = normalize_dtm(p['dtm_direct_seed_min'], p['dtm_direct_seed_max'],
                                p['dtm_transplant_min'], p['dtm_transplant_max'])
            harvest_date = predict_harvest_date(p['planted_date'], p['nursery_started_date'], dtm)
            source = 'predicted' if harvest_date else None
        if not harvest_date:
            continue

        title_parts = ['Harvest'] + [part for part in (p['crop'], p['variety']) if part]
        events.append({
            'id': f"h:{p['id']}",
            'type': 'harvest',
            'title': TITLE_SEPARATOR.join(title_parts),
            'start': harvest_date,
            'meta': {
                'planting_id': p['id'],
                'crop': p['crop'],
                'variety': p['variety'],
                'status': p['status'],
                'source': source,
            },
        })
    return events


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

def get_calendar_events(start=None, end=None):
    """All calendar events, optionally limited to ``start``..``end`` (inclusive
    ISO dates compared against each event's start day).

    Returns:
        List of {id, type, title, start, end?, meta} dicts: activities
        (``a:{id}``), seed dates (``p:{planting_id}``) and harvests
        (``h:{planting_id}``, meta.source ``actual`` or ``predicted``).
    """
    with get_db() as conn:
        events = _activity_events(conn) + _planting_events(conn) + _harvest_events(conn)

    if start or end:
        events = [e for e in events if _in_range(e['start'], start, end)]
    logger.debug(f"Calendar built {len(events)} events")
    return events


def get_calendar_locations():
    """The first locations created, with coordinates for the weather header."""
    with get_db() as conn:
        rows = conn.execute('''
            SELECT id, name, latitude, longitude FROM locations
            ORDER BY created_at ASC, id ASC
            LIMIT ?
        ''', (CALENDAR_LOCATION_LIMIT,)).fetchall()
        return [dict(r) for r in rows]
