"""
Location management for Happy Harvests.
Handles farm locations (address, coordinates, timezone) and the plots that
belong to them.
"""

import logging

import forms
from cache import revalidate_path
from db import get_db, get_integrity_error
from errors import FormError, NotFoundError, map_db_error
from weather_service import get_location_timezone

logger = logging.getLogger(__name__)

MIN_LATITUDE, MAX_LATITUDE = -90, 90
MIN_LONGITUDE, MAX_LONGITUDE = -180, 180

MISSING_COORDINATES_MESSAGE = (
    'Coordinates are missing for the selected address. Please try selecting the '
    'address again or set coordinates manually on the map.'
)
PLOTS_ATTACHED_MESSAGE = (
    'Error: Cannot delete location while plots are associated. '
    'Reassign or delete plots first.'
)

# Pages that show location names or reference a location
LOCATION_PAGES = ('/locations', '/plots', '/nurseries', '/plantings', '/activities')


# ---------------------------------------------------------------------------
# Database Initialization
# ---------------------------------------------------------------------------

def init_location_tables():
    with get_db() as conn:
        conn.execute('''
            CREATE TABLE IF NOT EXISTS locations (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                name TEXT NOT NULL,
                street TEXT,
                city TEXT,
                state TEXT,
                zip TEXT,
                latitude REAL CHECK (latitude IS NULL OR (latitude >= -90 AND latitude <= 90)),
                longitude REAL CHECK (longitude IS NULL OR (longitude >= -180 AND longitude <= 180)),
                timezone TEXT,
                notes TEXT,
                created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
            )
        ''')
    logger.info("Location tables initialized")


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------

def is_valid_coordinate_pair(latitude, longitude):
    """True when both coordinates are numbers inside WGS84 ranges."""
    return (
        isinstance(latitude, (int, float)) and isinstance(longitude, (int, float))
        and MIN_LATITUDE <= latitude <= MAX_LATITUDE
        and MIN_LONGITUDE <= longitude <= MAX_LONGITUDE
    )


def validate_location(data, message):
    errors = forms.FieldErrors()
    values = {
        'name': forms.text(data, 'name', errors, required=True),
        'street': forms.text(data, 'street', errors),
        'city': forms.text(data, 'city', errors),
        'state': forms.text(data, 'state', errors),
        'zip': forms.text(data, 'zip', errors),
        'latitude': forms.number(data, 'latitude', errors, minimum=MIN_LATITUDE, maximum=MAX_LATITUDE),
        'longitude': forms.number(data, 'longitude', errors, minimum=MIN_LONGITUDE, maximum=MAX_LONGITUDE),
        'notes': forms.text(data, 'notes', errors),
    }

    # Out-of-range values already carry an error; only the raw presence matters below
    has_latitude = forms.raw(data, 'latitude') is not None
    has_longitude = forms.raw(data, 'longitude') is not None
    complete_address = all(values[f] for f in ('street', 'city', 'state', 'zip'))

    if complete_address and not has_latitude and not has_longitude:
        errors.add('latitude', MISSING_COORDINATES_MESSAGE)
    if has_latitude and not has_longitude:
        errors.add('longitude', 'Longitude is required when latitude is provided')
    if has_longitude and not has_latitude:
        errors.add('latitude', 'Latitude is required when longitude is provided')

    errors.raise_if_any(message)
    return values


def _lookup_timezone(values):
    if is_valid_coordinate_pair(values['latitude'], values['longitude']):
        return get_location_timezone(values['latitude'], values['longitude'])
    return None


# ---------------------------------------------------------------------------
# CRUD
# ---------------------------------------------------------------------------

def create_location(data):
    """Create a location. Returns the new location id.

    When coordinates are present the timezone is filled in from the weather
    service; a lookup failure leaves it empty.
    """
    values = validate_location(data, 'Validation failed. Could not create location.')
    values['timezone'] = _lookup_timezone(values)

    try:
        with get_db() as conn:
            cursor = conn.execute('''
                INSERT INTO locations (name, street, city, state, zip, latitude, longitude, timezone, notes)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
            ''', (
                values['name'], values['street'], values['city'], values['state'], values['zip'],
                values['latitude'], values['longitude'], values['timezone'], values['notes'],
            ))
            location_id = cursor.lastrowid
    except get_integrity_error() as e:
        raise map_db_error(e)

    logger.info(f"Created location {location_id}: {values['name']}")
    revalidate_path('/locations', '/plots')
    return location_id


def update_location(location_id, data):
    """Update a location. The timezone is recomputed, or cleared when the
    coordinates are removed or the lookup fails."""
    values = validate_location(data, 'Validation failed. Could not update location.')
    values['timezone'] = _lookup_timezone(values)

    try:
        with get_db() as conn:
            cursor = conn.execute('''
                UPDATE locations
                SET name = ?, street = ?, city = ?, state = ?, zip = ?,
                    latitude = ?, longitude = ?, timezone = ?, notes = ?,
                    updated_at = CURRENT_TIMESTAMP
                WHERE id = ?
            ''', (
                values['name'], values['street'], values['city'], values['state'], values['zip'],
                values['latitude'], values['longitude'], values['timezone'], values['notes'],
                location_id,
            ))
            if cursor.rowcount == 0:
                raise NotFoundError('Location not found.')
    except get_integrity_error() as e:
        raise map_db_error(e)

    logger.info(f"Updated location {location_id}")
    revalidate_path(*LOCATION_PAGES)
    return get_location(location_id)


def delete_location(location_id):
    """Delete a location that has no plots."""
    try:
        with get_db() as conn:
            row = conn.execute(
                'SELECT COUNT(*) AS n FROM plots WHERE location_id = ?', (location_id,)
            ).fetchone()
            if row['n'] > 0:
                raise FormError(PLOTS_ATTACHED_MESSAGE)
            cursor = conn.execute('DELETE FROM locations WHERE id = ?', (location_id,))
            if cursor.rowcount == 0:
                raise NotFoundError('Location not found.')
    except get_integrity_error() as e:
        raise map_db_error(
            e, dependency_message='Cannot delete location due to existing associated records.'
        )

    logger.info(f"Deleted location {location_id}")
    revalidate_path(*LOCATION_PAGES)
    return True


# ---------------------------------------------------------------------------
# Queries
# ---------------------------------------------------------------------------

def get_locations():
    with get_db() as conn:
        rows = conn.execute('SELECT * FROM locations ORDER BY name').fetchall()
        return [dict(r) for r in rows]


def get_location(location_id):
    with get_db() as conn:
        row = conn.execute('SELECT * FROM locations WHERE id = ?', (location_id,)).fetchone()
    if row is None:
        raise NotFoundError('Location not found.')
    return dict(row)


def get_location_with_plots(location_id):
    """Return a location with its plots (ordered by name) under ``plots``."""
    location = get_location(location_id)
    with get_db() as conn:
        rows = conn.execute(
            'SELECT * FROM plots WHERE location_id = ? ORDER BY name', (location_id,)
        ).fetchall()
    location['plots'] = [dict(r) for r in rows]
    return location
