"""
Plot and bed management for Happy Harvests.
Handles plots within a location, the beds inside each plot, bulk creation,
and bed-area acreage rollups.
"""

import logging

import forms
from cache import revalidate_path
from db import get_db, get_integrity_error
from errors import FormError, NotFoundError, map_db_error

logger = logging.getLogger(__name__)

SQUARE_INCHES_PER_SQUARE_FOOT = 144
SQUARE_FEET_PER_ACRE = 43560
MAX_BULK_COUNT = 50
MAX_NAME_LENGTH = 120

MISSING_PLOT_MESSAGE = 'The selected plot does not exist.'
MISSING_LOCATION_MESSAGE = 'The selected location does not exist.'
BED_IN_USE_MESSAGE = 'Cannot delete bed because it is currently associated with one or more plantings.'
PLOT_IN_USE_MESSAGE = 'Cannot delete plot because its beds are associated with one or more plantings.'

# Plantings embed bed and plot names; activities reference both
PLOT_PAGES = ('/plots', '/locations', '/plantings', '/activities')
BED_PAGES = ('/plots', '/plantings', '/activities')


# ---------------------------------------------------------------------------
# Database Initialization
# ---------------------------------------------------------------------------

def init_plot_tables():
    with get_db() as conn:
        conn.execute('''
            CREATE TABLE IF NOT EXISTS plots (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                location_id INTEGER NOT NULL REFERENCES locations(id),
                name TEXT NOT NULL,
                created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
            )
        ''')
        conn.execute('''
            CREATE TABLE IF NOT EXISTS beds (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                plot_id INTEGER NOT NULL REFERENCES plots(id) ON DELETE CASCADE,
                name TEXT,
                length_inches INTEGER CHECK (length_inches IS NULL OR length_inches > 0),
                width_inches INTEGER CHECK (width_inches IS NULL OR width_inches > 0),
                created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
            )
        ''')
        conn.execute('CREATE INDEX IF NOT EXISTS idx_plots_location ON plots(location_id)')
        conn.execute('CREATE INDEX IF NOT EXISTS idx_beds_plot ON beds(plot_id)')
    logger.info("Plot tables initialized")


# ---------------------------------------------------------------------------
# Acreage
# ---------------------------------------------------------------------------

def calculate_plot_acreage(beds):
    """Total acreage of the beds with a positive length and width."""
    square_feet = 0.0
    for bed in beds or []:
        length = bed.get('length_inches') or 0
        width = bed.get('width_inches') or 0
        if length > 0 and width > 0:
            square_feet += (length * width) / SQUARE_INCHES_PER_SQUARE_FOOT
    return square_feet / SQUARE_FEET_PER_ACRE


# ---------------------------------------------------------------------------
# Plots
# ---------------------------------------------------------------------------

def _validate_plot(data, message):
    errors = forms.FieldErrors()
    values = {
        'name': forms.text(data, 'name', errors, required=True),
        'location_id': forms.integer(data, 'location_id', errors, required=True, minimum=1,
                                     label='Location'),
    }
    if 'location_id' in errors:
        errors.errors['location_id'] = ['Location is required']
    errors.raise_if_any(message)
    return values


def create_plot(data):
    values = _validate_plot(data, 'Validation failed. Could not create plot.')
    try:
        with get_db() as conn:
            cursor = conn.execute(
                'INSERT INTO plots (location_id, name) VALUES (?, ?)',
                (values['location_id'], values['name'])
            )
            plot_id = cursor.lastrowid
    except get_integrity_error() as e:
        raise map_db_error(e, dependency_message=MISSING_LOCATION_MESSAGE, field='location_id')

    logger.info(f"Created plot {plot_id} at location {values['location_id']}")
    revalidate_path('/plots', '/locations')
    return plot_id


def update_plot(plot_id, data):
    values = _validate_plot(data, 'Validation failed. Could not update plot.')
    try:
        with get_db() as conn:
            cursor = conn.execute(
                'UPDATE plots SET location_id = ?, name = ? WHERE id = ?',
                (values['location_id'], values['name'], plot_id)
            )
            if cursor.rowcount == 0:
                raise NotFoundError('Plot not found.')
    except get_integrity_error() as e:
        raise map_db_error(e, dependency_message=MISSING_LOCATION_MESSAGE, field='location_id')

    logger.info(f"Updated plot {plot_id}")
    revalidate_path(*PLOT_PAGES)
    return get_plot(plot_id)


def delete_plot(plot_id):
    """Delete a plot and its beds. Fails while any bed holds plantings."""
    try:
        with get_db() as conn:
            cursor = conn.execute('DELETE FROM plots WHERE id = ?', (plot_id,))
            if cursor.rowcount == 0:
                raise NotFoundError('Plot not found.')
    except get_integrity_error() as e:
        raise map_db_error(e, dependency_message=PLOT_IN_USE_MESSAGE)

    logger.info(f"Deleted plot {plot_id}")
    revalidate_path(*PLOT_PAGES)
    return True


def bulk_create_plots(data):
    """Create ``count`` plots named "<base_name> 1".."<base_name> N".

    Returns the list of new plot ids.
    """
    errors = forms.FieldErrors()
    location_id = forms.integer(data, 'location_id', errors, required=True, minimum=1)
    if 'location_id' in errors:
        errors.errors['location_id'] = ['Location is required']
    base_name = forms.text(data, 'base_name', errors)
    if base_name is None:
        errors.add('base_name', 'Name prefix required')
    elif len(base_name) > MAX_NAME_LENGTH:
        errors.add('base_name', 'Name prefix too long')
    count = _bulk_count(data, errors)
    errors.raise_if_any('Validation failed. Could not create plots.')

    try:
        with get_db() as conn:
            plot_ids = []
            for n in range(1, count + 1):
                cursor = conn.execute(
                    'INSERT INTO plots (location_id, name) VALUES (?, ?)',
                    (location_id, f"{base_name} {n}")
                )
                plot_ids.append(cursor.lastrowid)
    except get_integrity_error() as e:
        raise map_db_error(e, dependency_message=MISSING_LOCATION_MESSAGE, field='location_id')

    logger.info(f"Bulk created {count} plots at location {location_id}")
    revalidate_path('/plots', '/locations')
    return plot_ids


def _bulk_count(data, errors):
    raw = forms.raw(data, 'count')
    try:
        count = int(str(raw)) if raw is not None else None
    except ValueError:
        count = None
    if count is None:
        errors.add('count', 'Count must be a whole number')
    elif count < 1:
        errors.add('count', 'Add at least one item')
    elif count > MAX_BULK_COUNT:
        errors.add('count', f'Limit bulk add to {MAX_BULK_COUNT} at a time')
    return count


def get_plot(plot_id):
    with get_db() as conn:
        row = conn.execute('SELECT * FROM plots WHERE id = ?', (plot_id,)).fetchone()
    if row is None:
        raise NotFoundError('Plot not found.')
    return dict(row)


def get_plots_with_beds():
    """Plots (by name) with their location, beds and total acreage."""
    with get_db() as conn:
        plots = [dict(r) for r in conn.execute('''
            SELECT p.*, l.name AS location_name
            FROM plots p
            LEFT JOIN locations l ON l.id = p.location_id
            ORDER BY p.name, p.id
        ''').fetchall()]
        beds = [dict(r) for r in conn.execute('SELECT * FROM beds ORDER BY id').fetchall()]

    beds_by_plot = {}
    for bed in beds:
        beds_by_plot.setdefault(bed['plot_id'], []).append(bed)
    for plot in plots:
        plot['beds'] = beds_by_plot.get(plot['id'], [])
        plot['total_acreage'] = calculate_plot_acreage(plot['beds'])
    return plots


# ---------------------------------------------------------------------------
# Beds
# ---------------------------------------------------------------------------

def _validate_bed(data, message):
    errors = forms.FieldErrors()
    values = {
        'plot_id': forms.integer(data, 'plot_id', errors, required=True),
        'length_inches': forms.integer(data, 'length_inches', errors, minimum=1, label='Length'),
        'width_inches': forms.integer(data, 'width_inches', errors, minimum=1, label='Width'),
        'name': forms.text(data, 'name', errors, max_length=MAX_NAME_LENGTH),
    }
    if 'plot_id' in errors:
        errors.errors['plot_id'] = ['Plot selection is required']
    errors.raise_if_any(message)
    return values


def create_bed(data):
    values = _validate_bed(data, 'Validation failed. Could not create bed.')
    try:
        with get_db() as conn:
            cursor = conn.execute(
                'INSERT INTO beds (plot_id, name, length_inches, width_inches) VALUES (?, ?, ?, ?)',
                (values['plot_id'], values['name'], values['length_inches'], values['width_inches'])
            )
            bed_id = cursor.lastrowid
    except get_integrity_error() as e:
        raise map_db_error(e, dependency_message=MISSING_PLOT_MESSAGE, field='plot_id')

    logger.info(f"Created bed {bed_id} in plot {values['plot_id']}")
    revalidate_path('/plots')
    return bed_id


def update_bed(bed_id, data):
    values = _validate_bed(data, 'Validation failed. Could not update bed.')
    try:
        with get_db() as conn:
            cursor = conn.execute('''
                UPDATE beds SET plot_id = ?, name = ?, length_inches = ?, width_inches = ?
                WHERE id = ?
            ''', (values['plot_id'], values['name'], values['length_inches'],
                  values['width_inches'], bed_id))
            if cursor.rowcount == 0:
                raise NotFoundError('Bed not found.')
    except get_integrity_error() as e:
        raise map_db_error(e, dependency_message=MISSING_PLOT_MESSAGE, field='plot_id')

    logger.info(f"Updated bed {bed_id}")
    revalidate_path(*BED_PAGES)
    return get_bed(bed_id)


def rename_bed(bed_id, name):
    name = (name or '').strip()
    if not bed_id or not name:
        raise FormError('Missing bed id or name')
    if len(name) > MAX_NAME_LENGTH:
        raise FormError(f'Bed name must be at most {MAX_NAME_LENGTH} characters')
    with get_db() as conn:
        cursor = conn.execute('UPDATE beds SET name = ? WHERE id = ?', (name, bed_id))
        if cursor.rowcount == 0:
            raise NotFoundError('Bed not found.')
    logger.info(f"Renamed bed {bed_id} to {name}")
    revalidate_path(*BED_PAGES)
    return True


def delete_bed(bed_id):
    try:
        with get_db() as conn:
            cursor = conn.execute('DELETE FROM beds WHERE id = ?', (bed_id,))
            if cursor.rowcount == 0:
                raise NotFoundError('Bed not found.')
    except get_integrity_error() as e:
        raise map_db_error(e, dependency_message=BED_IN_USE_MESSAGE)

    logger.info(f"Deleted bed {bed_id}")
    revalidate_path(*BED_PAGES)
    return True


def bulk_create_beds(data):
    """Create ``count`` beds of one size in a plot.

    ``size`` may be a nested dict or flat ``length_inches``/``width_inches``
    fields. The plot must belong to ``location_id``. Returns the new bed ids.
    """
    errors = forms.FieldErrors()
    location_id = forms.integer(data, 'location_id', errors, required=True, minimum=1)
    if 'location_id' in errors:
        errors.errors['location_id'] = ['Location is required']
    plot_id = forms.integer(data, 'plot_id', errors, required=True)
    if 'plot_id' in errors:
        errors.errors['plot_id'] = ['Plot selection is required']
    base_name = forms.text(data, 'base_name', errors) or 'Bed'
    if len(base_name) > MAX_NAME_LENGTH:
        errors.add('base_name', 'Name prefix too long')
    count = _bulk_count(data, errors)
    unit = forms.raw(data, 'unit') or 'in'
    if unit != 'in':
        errors.add('unit', "Unit must be 'in'")

    size = data.get('size') if isinstance(data.get('size'), dict) else data
    length = forms.integer(size, 'length_inches', errors, minimum=1)
    width = forms.integer(size, 'width_inches', errors, minimum=1)
    if length is None and 'length_inches' not in errors:
        errors.add('length_inches', 'Length required')
    if width is None and 'width_inches' not in errors:
        errors.add('width_inches', 'Width required')
    errors.raise_if_any('Validation failed. Could not create beds.')

    with get_db() as conn:
        plot = conn.execute('SELECT location_id FROM plots WHERE id = ?', (plot_id,)).fetchone()
        if plot is None:
            raise FormError(MISSING_PLOT_MESSAGE, {'plot_id': [MISSING_PLOT_MESSAGE]})
        if plot['location_id'] != location_id:
            raise FormError('The selected plot is not at the selected location.',
                            {'plot_id': ['Plot does not belong to the selected location']})
        bed_ids = []
        for n in range(1, count + 1):
            cursor = conn.execute(
                'INSERT INTO beds (plot_id, name, length_inches, width_inches) VALUES (?, ?, ?, ?)',
                (plot_id, f"{base_name} {n}", length, width)
            )
            bed_ids.append(cursor.lastrowid)

    logger.info(f"Bulk created {count} beds in plot {plot_id}")
    revalidate_path('/plots')
    return bed_ids


def get_bed(bed_id):
    with get_db() as conn:
        row = conn.execute('SELECT * FROM beds WHERE id = ?', (bed_id,)).fetchone()
    if row is None:
        raise NotFoundError('Bed not found.')
    return dict(row)


def get_beds():
    """All beds with their plot name and location."""
    with get_db() as conn:
        rows = conn.execute('''
            SELECT b.*, p.name AS plot_name, p.location_id
            FROM beds b
            JOIN plots p ON p.id = b.plot_id
            ORDER BY p.name, b.id
        ''').fetchall()
        return [dict(r) for r in rows]
