"""
Seed inventory for Happy Harvests.
Seed lots are always linked to a crop variety; crop and variety names are
denormalised onto the seed row from the variety at save time.
"""

import logging

import forms
from cache import revalidate_path
from db import get_db, get_integrity_error
from errors import FormError, NotFoundError, map_db_error

logger = logging.getLogger(__name__)

SEED_PAGES = ('/seeds', '/plantings', '/crop-varieties')


def init_seed_tables():
    with get_db() as conn:
        conn.execute('''
            CREATE TABLE IF NOT EXISTS seeds (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                crop_variety_id INTEGER REFERENCES crop_varieties(id),
                crop_name TEXT,
                variety_name TEXT,
                vendor TEXT,
                lot_number TEXT,
                date_received TEXT,
                quantity INTEGER CHECK (quantity IS NULL OR quantity >= 0),
                quantity_units TEXT,
                notes TEXT,
                created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
            )
        ''')
        conn.execute('CREATE INDEX IF NOT EXISTS idx_seeds_variety ON seeds(crop_variety_id)')
    logger.info("Seed tables initialized")


def upsert_seed(data):
    """Insert a seed lot, or update it when ``id`` is given.

    The crop variety is required; crop_name and variety_name are taken from
    it rather than from the form. Returns the seed id.
    """
    errors = forms.FieldErrors()
    seed_id = forms.integer(data, 'id', errors, minimum=1)
    crop_variety_id = forms.integer(data, 'crop_variety_id', errors)
    if crop_variety_id is None:
        errors.errors['crop_variety_id'] = ['Crop variety is required']
    values = {
        'vendor': forms.text(data, 'vendor', errors),
        'lot_number': forms.text(data, 'lot_number', errors),
        'date_received': forms.iso_date(data, 'date_received', errors, allow_us_format=True),
        'quantity': forms.integer(data, 'quantity', errors, minimum=0),
        'quantity_units': forms.text(data, 'quantity_units', errors),
        'notes': forms.text(data, 'notes', errors),
    }
    errors.raise_if_any('Validation failed')

    try:
        with get_db() as conn:
            variety = conn.execute('''
                SELECT cv.name AS variety_name, c.name AS crop_name
                FROM crop_varieties cv
                LEFT JOIN crops c ON c.id = cv.crop_id
                WHERE cv.id = ?
            ''', (crop_variety_id,)).fetchone()
            if variety is None:
                raise FormError('Database Error: Crop variety not found',
                                {'crop_variety_id': ['Crop variety not found']})

            params = (
                crop_variety_id, variety['crop_name'] or '', variety['variety_name'] or '',
                values['vendor'], values['lot_number'], values['date_received'],
                values['quantity'], values['quantity_units'], values['notes'],
            )
            if seed_id:
                cursor = conn.execute('''
                    UPDATE seeds SET crop_variety_id = ?, crop_name = ?, variety_name = ?,
                        vendor = ?, lot_number = ?, date_received = ?, quantity = ?,
                        quantity_units = ?, notes = ?
                    WHERE id = ?
                ''', params + (seed_id,))
                if cursor.rowcount == 0:
                    raise NotFoundError('Seed not found.')
            else:
                cursor = conn.execute('''
                    INSERT INTO seeds (crop_variety_id, crop_name, variety_name, vendor, lot_number,
                                       date_received, quantity, quantity_units, notes)
                    VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                ''', params)
                seed_id = cursor.lastrowid
    except get_integrity_error() as e:
        raise map_db_error(e)

    logger.info(f"Saved seed {seed_id} for variety {crop_variety_id}")
    revalidate_path(*SEED_PAGES)
    return seed_id


def delete_seed(seed_id):
    with get_db() as conn:
        cursor = conn.execute('DELETE FROM seeds WHERE id = ?', (seed_id,))
        if cursor.rowcount == 0:
            raise NotFoundError('Seed not found.')
    logger.info(f"Deleted seed {seed_id}")
    revalidate_path('/seeds')
    return True


def _find_crop_id(conn, crop_name):
    row = conn.execute(
        'SELECT id FROM crops WHERE LOWER(name) = LOWER(?) ORDER BY id LIMIT 1', (crop_name,)
    ).fetchone()
    return row['id'] if row else None


def _find_variety_id(conn, crop_id, variety_name):
    row = conn.execute(
        'SELECT id FROM crop_varieties WHERE crop_id = ? AND LOWER(name) = LOWER(?) ORDER BY id LIMIT 1',
        (crop_id, variety_name)
    ).fetchone()
    return row['id'] if row else None


def link_loose_seeds():
    """Link seeds that carry names but no variety id to matching varieties.

    Never creates crops or varieties. Returns the number of seeds linked.
    """
    linked = 0
    with get_db() as conn:
        loose = conn.execute(
            'SELECT id, crop_name, variety_name FROM seeds WHERE crop_variety_id IS NULL'
        ).fetchall()
        for seed in loose:
            crop_name = (seed['crop_name'] or '').strip()
            variety_name = (seed['variety_name'] or '').strip()
            if not crop_name or not variety_name:
                continue
            crop_id = _find_crop_id(conn, crop_name)
            if crop_id is None:
                continue
            variety_id = _find_variety_id(conn, crop_id, variety_name)
            if variety_id is not None:
                conn.execute('UPDATE seeds SET crop_variety_id = ? WHERE id = ?', (variety_id, seed['id']))
                linked += 1
    if linked:
        logger.info(f"Linked {linked} loose seeds to crop varieties")
    return linked


def get_seeds():
    """All seeds, newest first."""
    with get_db() as conn:
        rows = conn.execute('SELECT * FROM seeds ORDER BY created_at DESC, id DESC').fetchall()
        return [dict(r) for r in rows]


def sync_seeds_to_varieties():
    """Create missing crops and varieties for every seed and link them.

    New crops are typed Vegetable; new varieties get zero DTM values and an
    empty latin name. A seed without a variety name uses its crop name.

    Returns:
        {'created': crops + varieties created, 'linked': seeds linked}
    """
    created = 0
    linked = 0
    with get_db() as conn:
        seeds = conn.execute(
            'SELECT id, crop_name, variety_name, crop_variety_id FROM seeds'
        ).fetchall()
        for seed in seeds:
            crop_name = (seed['crop_name'] or '').strip()
            variety_name = (seed['variety_name'] or seed['crop_name'] or '').strip()
            if not crop_name:
                continue

            crop_id = _find_crop_id(conn, crop_name)
            if crop_id is None:
                crop_id = conn.execute(
                    "INSERT INTO crops (name, crop_type) VALUES (?, 'Vegetable')", (crop_name,)
                ).lastrowid
                created += 1

            variety_id = _find_variety_id(conn, crop_id, variety_name)
            if variety_id is None:
                variety_id = conn.execute('''
                    INSERT INTO crop_varieties (crop_id, name, latin_name, is_organic,
                        dtm_direct_seed_min, dtm_direct_seed_max, dtm_transplant_min, dtm_transplant_max)
                    VALUES (?, ?, '', 0, 0, 0, 0, 0)
                ''', (crop_id, variety_name or crop_name)).lastrowid
                created += 1

            if not seed['crop_variety_id']:
                conn.execute('UPDATE seeds SET crop_variety_id = ? WHERE id = ?', (variety_id, seed['id']))
                linked += 1

    logger.info(f"Seed sync created {created} records and linked {linked} seeds")
    revalidate_path(*SEED_PAGES)
    return {'created': created, 'linked': linked}
