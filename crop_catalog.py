"""
Crop catalog for Happy Harvests.
Handles crops (vegetable, fruit, windbreak, cover crop) and the crop
varieties growers plant, including days-to-maturity (DTM) and spacing ranges.
"""

import logging

import forms
from cache import revalidate_path
from db import get_db, get_integrity_error
from errors import NotFoundError, map_db_error

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

VALID_CROP_TYPES = ['Vegetable', 'Fruit', 'Windbreak', 'Covercrop']

DTM_FIELDS = ['dtm_direct_seed_min', 'dtm_direct_seed_max', 'dtm_transplant_min', 'dtm_transplant_max']
SPACING_FIELDS = ['plant_spacing_min', 'plant_spacing_max', 'row_spacing_min', 'row_spacing_max']

VARIETY_IN_USE_MESSAGE = (
    'Cannot delete crop variety because it is currently associated with one or more plantings or seeds.'
)


# ---------------------------------------------------------------------------
# Database Initialization
# ---------------------------------------------------------------------------

def init_crop_tables():
    with get_db() as conn:
        conn.execute('''
            CREATE TABLE IF NOT EXISTS crops (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                name TEXT NOT NULL,
                crop_type TEXT NOT NULL DEFAULT 'Vegetable'
                    CHECK (crop_type IN ('Vegetable', 'Fruit', 'Windbreak', 'Covercrop')),
                created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
            )
        ''')
        conn.execute('''
            CREATE TABLE IF NOT EXISTS crop_varieties (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                crop_id INTEGER NOT NULL REFERENCES crops(id),
                name TEXT NOT NULL,
                latin_name TEXT NOT NULL,
                is_organic INTEGER NOT NULL DEFAULT 0,
                notes TEXT,
                dtm_direct_seed_min INTEGER NOT NULL DEFAULT 0 CHECK (dtm_direct_seed_min >= 0),
                dtm_direct_seed_max INTEGER NOT NULL DEFAULT 0 CHECK (dtm_direct_seed_max >= 0),
                dtm_transplant_min INTEGER NOT NULL DEFAULT 0 CHECK (dtm_transplant_min >= 0),
                dtm_transplant_max INTEGER NOT NULL DEFAULT 0 CHECK (dtm_transplant_max >= 0),
                plant_spacing_min INTEGER,
                plant_spacing_max INTEGER,
                row_spacing_min INTEGER,
                row_spacing_max INTEGER,
                created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
            )
        ''')
        conn.execute('CREATE INDEX IF NOT EXISTS idx_crop_varieties_crop ON crop_varieties(crop_id)')
    logger.info("Crop tables initialized")


# ---------------------------------------------------------------------------
# DTM helpers
# ---------------------------------------------------------------------------

def normalize_dtm(ds_min, ds_max, tp_min, tp_max):
    """Fill unset DTM bounds from their counterpart.

    A zero or missing minimum falls back to the maximum, and a zero or
    missing maximum falls back to the (normalized) minimum.
    """
    ds_min, ds_max, tp_min, tp_max = (v or 0 for v in (ds_min, ds_max, tp_min, tp_max))
    norm_ds_min = ds_min if ds_min > 0 else (ds_max if ds_max > 0 else 0)
    norm_tp_min = tp_min if tp_min > 0 else (tp_max if tp_max > 0 else 0)
    return {
        'ds_min': norm_ds_min,
        'ds_max': ds_max if ds_max > 0 else norm_ds_min,
        'tp_min': norm_tp_min,
        'tp_max': tp_max if tp_max > 0 else norm_tp_min,
    }


# ---------------------------------------------------------------------------
# Crops
# ---------------------------------------------------------------------------

def create_crop(data):
    """Create a crop. Returns the new crop id."""
    errors = forms.FieldErrors()
    name = forms.text(data, 'name', errors, required=True)
    crop_type = forms.raw(data, 'crop_type')
    if crop_type not in VALID_CROP_TYPES:
        errors.add('crop_type', 'Crop type is required')
    errors.raise_if_any('Validation failed. Could not create crop.')

    with get_db() as conn:
        cursor = conn.execute('INSERT INTO crops (name, crop_type) VALUES (?, ?)', (name, crop_type))
        crop_id = cursor.lastrowid
    logger.info(f"Created crop {crop_id}: {name} ({crop_type})")
    return crop_id


def get_crops():
    with get_db() as conn:
        rows = conn.execute('SELECT * FROM crops ORDER BY LOWER(name)').fetchall()
        return [dict(r) for r in rows]


# ---------------------------------------------------------------------------
# Crop varieties
# ---------------------------------------------------------------------------

def validate_crop_variety(data, message):
    errors = forms.FieldErrors()
    values = {
        'crop_id': forms.integer(data, 'crop_id', errors, required=True),
        'name': forms.text(data, 'name', errors, required=True),
        'latin_name': forms.text(data, 'latin_name', errors, required=True, label='Latin name'),
        'is_organic': forms.boolean(data, 'is_organic'),
        'notes': forms.text(data, 'notes', errors),
    }
    if 'crop_id' in errors:
        errors.errors['crop_id'] = ['Please select a crop']
    for field in DTM_FIELDS:
        values[field] = forms.integer(data, field, errors, required=True, minimum=0)
    for field in SPACING_FIELDS:
        values[field] = forms.integer(data, field, errors, minimum=0)

    ds_min, ds_max = values['dtm_direct_seed_min'], values['dtm_direct_seed_max']
    if ds_min is not None and ds_max is not None and ds_min > ds_max:
        errors.add('dtm_direct_seed_max', 'Direct seed min must be less than or equal to max')
    tp_min, tp_max = values['dtm_transplant_min'], values['dtm_transplant_max']
    if tp_min is not None and tp_max is not None and tp_min > tp_max:
        errors.add('dtm_transplant_max', 'Transplant min must be less than or equal to max')

    errors.raise_if_any(message)
    values['is_organic'] = 1 if values['is_organic'] else 0
    return values


_VARIETY_COLUMNS = ['crop_id', 'name', 'latin_name', 'is_organic', 'notes'] + DTM_FIELDS + SPACING_FIELDS


def _link_seeds():
    """Attach loose seeds whose names now match a variety."""
    from seed_inventory import link_loose_seeds
    link_loose_seeds()


def create_crop_variety(data):
    """Create a crop variety. Returns the new variety id."""
    values = validate_crop_variety(data, 'Validation failed. Could not create crop variety.')
    placeholders = ', '.join('?' for _ in _VARIETY_COLUMNS)
    try:
        with get_db() as conn:
            cursor = conn.execute(
                f"INSERT INTO crop_varieties ({', '.join(_VARIETY_COLUMNS)}) VALUES ({placeholders})",
                [values[c] for c in _VARIETY_COLUMNS]
            )
            variety_id = cursor.lastrowid
    except get_integrity_error() as e:
        raise map_db_error(e, dependency_message='The selected crop does not exist.', field='crop_id')

    logger.info(f"Created crop variety {variety_id}: {values['name']}")
    _link_seeds()
    revalidate_path('/crop-varieties', '/seeds')
    return variety_id


def update_crop_variety(variety_id, data):
    values = validate_crop_variety(data, 'Validation failed. Could not update crop variety.')
    set_clause = ', '.join(f"{c} = ?" for c in _VARIETY_COLUMNS)
    try:
        with get_db() as conn:
            cursor = conn.execute(
                f"UPDATE crop_varieties SET {set_clause}, updated_at = CURRENT_TIMESTAMP WHERE id = ?",
                [values[c] for c in _VARIETY_COLUMNS] + [variety_id]
            )
            if cursor.rowcount == 0:
                raise NotFoundError('Crop variety not found.')
    except get_integrity_error() as e:
        raise map_db_error(e, dependency_message='The selected crop does not exist.', field='crop_id')

    logger.info(f"Updated crop variety {variety_id}")
    _link_seeds()
    revalidate_path('/crop-varieties', '/plantings', '/seeds')
    return get_crop_variety(variety_id)


def delete_crop_variety(variety_id):
    try:
        with get_db() as conn:
            cursor = conn.execute('DELETE FROM crop_varieties WHERE id = ?', (variety_id,))
            if cursor.rowcount == 0:
                raise NotFoundError('Crop variety not found.')
    except get_integrity_error() as e:
        raise map_db_error(e, dependency_message=VARIETY_IN_USE_MESSAGE)

    logger.info(f"Deleted crop variety {variety_id}")
    revalidate_path('/crop-varieties')
    return True


def _variety_row_to_dict(row):
    d = dict(row)
    d['is_organic'] = bool(d.get('is_organic'))
    return d


def get_crop_variety(variety_id):
    with get_db() as conn:
        row = conn.execute('''
            SELECT cv.*, c.name AS crop_name, c.crop_type
            FROM crop_varieties cv
            LEFT JOIN crops c ON c.id = cv.crop_id
            WHERE cv.id = ?
        ''', (variety_id,)).fetchone()
    if row is None:
        raise NotFoundError('Crop variety not found.')
    return _variety_row_to_dict(row)


def get_crop_varieties():
    """All varieties, sorted case-insensitively by crop name then variety name."""
    with get_db() as conn:
        rows = conn.execute('''
            SELECT cv.*, c.name AS crop_name, c.crop_type
            FROM crop_varieties cv
            LEFT JOIN crops c ON c.id = cv.crop_id
        ''').fetchall()
    varieties = [_variety_row_to_dict(r) for r in rows]
    varieties.sort(key=lambda v: ((v.get('crop_name') or '').lower(), (v.get('name') or '').lower()))
    return varieties


def get_crop_varieties_for_select():
    """Lightweight ``{id, name, crop_name, latin_name}`` list for pickers."""
    return [
        {'id': v['id'], 'name': v['name'], 'crop_name': v.get('crop_name'), 'latin_name': v['latin_name']}
        for v in get_crop_varieties()
    ]
