"""Tests for form coercion, database error mapping and the page cache."""

import sqlite3
from unittest.mock import MagicMock

import pytest

import db
import forms
from cache import get_page_cache, revalidate_path
from db import _convert_sqlite_to_pg, integrity_violation_kind
from errors import DatabaseError, FormError, map_db_error


# ---------------------------------------------------------------------------
# Forms
# ---------------------------------------------------------------------------

class TestFormHelpers:
    def test_text_strips_and_requires(self):
        errors = forms.FieldErrors()
        assert forms.text({'name': '  Kale '}, 'name', errors) == 'Kale'
        assert forms.text({'name': ''}, 'name', errors, required=True) is None
        assert errors.errors == {'name': ['Name is required']}

    def test_integer(self):
        errors = forms.FieldErrors()
        assert forms.integer({'n': '12'}, 'n', errors) == 12
        assert forms.integer({'n': 12.0}, 'n', errors) == 12
        assert forms.integer({'n': True}, 'n', errors) is None
        assert forms.integer({'m': '1.5'}, 'm', errors) is None
        assert errors.errors == {'n': ['N must be a whole number'], 'm': ['M must be a whole number']}

    def test_number_rejects_infinity(self):
        errors = forms.FieldErrors()
        assert forms.number({'x': 'inf'}, 'x', errors) is None
        assert errors.errors == {'x': ['X must be a finite number']}

    @pytest.mark.parametrize('value,expected', [
        ('on', True), ('true', True), ('1', True), (True, True),
        ('', False), ('off', False), (None, False), (False, False),
    ])
    def test_boolean(self, value, expected):
        assert forms.boolean({'flag': value}, 'flag') is expected

    def test_dates(self):
        assert forms.normalize_date('2025-03-01T08:00:00') == '2025-03-01'
        assert forms.normalize_date('3/1/2025', allow_us_format=True) == '2025-03-01'
        with pytest.raises(ValueError):
            forms.normalize_date('3/1/2025')
        errors = forms.FieldErrors()
        assert forms.iso_date({'d': '2025-02-30'}, 'd', errors) is None
        assert errors.errors == {'d': ['D must be a valid date']}

    def test_id_list(self):
        assert forms.id_list('3, 1,x,3,-2,0') == [3, 1]
        assert forms.id_list(['4', 5, None]) == [4, 5]
        assert forms.id_list(None) == []

    def test_raise_if_any(self):
        errors = forms.FieldErrors()
        errors.raise_if_any()
        errors.add('name', 'Name is required')
        with pytest.raises(FormError) as exc:
            errors.raise_if_any('Could not save')
        assert exc.value.to_dict() == {'message': 'Could not save', 'errors': {'name': ['Name is required']}}


# ---------------------------------------------------------------------------
# Database errors
# ---------------------------------------------------------------------------

class TestDbErrorMapping:
    def test_sqlite_messages(self):
        assert integrity_violation_kind(sqlite3.IntegrityError('FOREIGN KEY constraint failed')) == 'foreign_key'
        assert integrity_violation_kind(sqlite3.IntegrityError('UNIQUE constraint failed: users.email')) == 'unique'
        assert integrity_violation_kind(sqlite3.IntegrityError('CHECK constraint failed: qty')) == 'check'
        assert integrity_violation_kind(ValueError('boom')) is None

    def test_postgres_codes(self):
        exc = MagicMock()
        exc.pgcode = '23503'
        assert integrity_violation_kind(exc) == 'foreign_key'
        exc.pgcode = '23505'
        assert integrity_violation_kind(exc) == 'unique'

    def test_dependency(self):
        err = map_db_error(sqlite3.IntegrityError('FOREIGN KEY constraint failed'),
                           dependency_message='Still in use.', field='bed_id')
        assert isinstance(err, DatabaseError)
        assert err.kind == 'dependency'
        assert err.status_code == 409
        assert err.to_dict() == {'message': 'Still in use.', 'errors': {'bed_id': ['Still in use.']},
                                 'kind': 'dependency'}

    def test_duplicate_default_message(self):
        err = map_db_error(sqlite3.IntegrityError('UNIQUE constraint failed: x'))
        assert err.kind == 'duplicate'
        assert err.message == 'A record with these values already exists.'

    def test_server_error_is_prefixed(self):
        err = map_db_error(sqlite3.IntegrityError('CHECK constraint failed: harvested_requires_measure'))
        assert err.kind == 'server'
        assert err.status_code == 500
        assert err.message == 'Database Error: CHECK constraint failed: harvested_requires_measure'


class TestPgConversion:
    def test_placeholders_and_returning(self):
        sql = _convert_sqlite_to_pg('INSERT INTO crops (name, crop_type) VALUES (?, ?)')
        assert sql == 'INSERT INTO crops (name, crop_type) VALUES (%s, %s) RETURNING id'

    def test_autoincrement(self):
        sql = _convert_sqlite_to_pg('id INTEGER PRIMARY KEY AUTOINCREMENT')
        assert sql == 'id SERIAL PRIMARY KEY'

    def test_sqlalchemy_url(self, monkeypatch):
        assert db.sqlalchemy_url() == f'sqlite:///{db.FARM_DB}'
        monkeypatch.setattr(db, '_DATABASE_URL', 'postgres://farm@localhost/harvests')
        assert db.sqlalchemy_url() == 'postgresql://farm@localhost/harvests'


# ---------------------------------------------------------------------------
# Page cache
# ---------------------------------------------------------------------------

class TestPageCache:
    def test_fetch_caches_until_revalidated(self):
        cache = get_page_cache()
        loader = MagicMock(side_effect=[['first'], ['second']])

        assert cache.fetch('/plantings', {'status': None}, loader) == ['first']
        assert cache.fetch('/plantings', {'status': None}, loader) == ['first']
        assert loader.call_count == 1

        revalidate_path('/plantings')
        assert cache.fetch('/plantings', {'status': None}, loader) == ['second']

    def test_paths_are_independent(self):
        cache = get_page_cache()
        cache.set('/seeds', 'list', ['seed'])
        revalidate_path('/plantings')
        assert cache.get('/seeds', 'list') == ['seed']

    def test_stats(self):
        cache = get_page_cache()
        cache.get('/locations', 'list')
        stats = cache.stats()
        assert stats['misses'] >= 1
        assert stats['backend'] == 'diskcache'
