"""Tests for the activity log: validation, weather snapshots, amendments, listing and CSV export."""

import csv
import io
from unittest.mock import patch

import pytest

from activity_log import (
    CSV_HEADERS, FINITE_MESSAGE, create_activity, delete_activities_bulk, delete_activity,
    export_activities_csv, get_activities_flat, get_activities_grouped, get_activity,
    get_activity_form_options, update_activity, validate_activity,
)
from errors import DatabaseError, FormError, NotFoundError


SNAPSHOT = {
    'timezone': 'America/Chicago',
    'current': {'temp': 71.2, 'humidity': 40, 'weather': {'main': 'Clear'}},
    'moon_phase': 0.5,
}


@pytest.fixture
def mapped_location_id():
    from location_manager import create_location
    with patch('location_manager.get_location_timezone', return_value='America/Chicago'):
        return create_location({'name': 'Ridge Farm', 'latitude': 43.55, 'longitude': -90.88})


def _irrigation(**overrides):
    data = {'activity_type': 'irrigation', 'started_at': '2025-06-01T07:00', 'labor_hours': '1.5'}
    data.update(overrides)
    return data


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------

class TestValidation:
    def test_required_fields(self):
        with pytest.raises(FormError) as exc:
            validate_activity({})
        assert exc.value.message == 'Validation failed'
        assert exc.value.errors['activity_type'] == ['Activity type is required']
        assert exc.value.errors['started_at'] == ['Start time is required']

    def test_unknown_type(self):
        with pytest.raises(FormError) as exc:
            validate_activity({'activity_type': 'mowing', 'started_at': '2025-06-01T07:00'})
        assert 'activity_type' in exc.value.errors

    def test_non_numeric_fields(self):
        with pytest.raises(FormError) as exc:
            validate_activity(_irrigation(labor_hours='lots', cost='nan', duration_minutes='1.5'))
        errors = exc.value.errors
        assert errors['labor_hours'] == [FINITE_MESSAGE]
        assert errors['cost'] == [FINITE_MESSAGE]
        assert errors['duration_minutes'] == [FINITE_MESSAGE]

    def test_negative_labor(self):
        with pytest.raises(FormError) as exc:
            validate_activity(_irrigation(labor_hours=-2))
        assert exc.value.errors['labor_hours'] == ['Labor hours must be 0 or greater']

    def test_blank_optionals_become_none(self):
        values, amendments = validate_activity(_irrigation(cost='', location_id='', notes='  '))
        assert values['cost'] is None
        assert values['location_id'] is None
        assert values['notes'] is None
        assert values['labor_hours'] == 1.5
        assert amendments is None

    def test_space_separated_datetime(self):
        values, _ = validate_activity(_irrigation(started_at='2025-06-01 07:00'))
        assert values['started_at'] == '2025-06-01T07:00'

    def test_amendments_json(self):
        _, amendments = validate_activity({
            'activity_type': 'soil_amendment', 'started_at': '2025-04-01T09:00',
            'amendments_json': '[{"name": "Compost", "quantity": "2", "unit": "yd3"}]',
        })
        assert amendments == [{'name': 'Compost', 'quantity': 2.0, 'unit': 'yd3', 'notes': None}]

    def test_unparseable_amendments_json_is_ignored(self):
        _, amendments = validate_activity({
            'activity_type': 'soil_amendment', 'started_at': '2025-04-01T09:00',
            'amendments_json': '[{not json',
        })
        assert amendments is None

    def test_amendment_needs_name(self):
        with pytest.raises(FormError) as exc:
            validate_activity({
                'activity_type': 'soil_amendment', 'started_at': '2025-04-01T09:00',
                'amendments': [{'quantity': 2}],
            })
        assert exc.value.errors['amendments'] == ['Amendment name is required']


# ---------------------------------------------------------------------------
# CRUD
# ---------------------------------------------------------------------------

class TestActivityCRUD:
    def test_create_without_location_has_no_weather(self):
        result = create_activity(_irrigation())
        assert result['message'] == 'Activity created successfully'
        activity = get_activity(result['activity_id'])
        assert activity['weather'] is None
        assert activity['labor_hours'] == 1.5
        assert activity['amendments'] == []

    def test_create_snapshots_weather(self, mapped_location_id):
        with patch('activity_log.get_weather_snapshot', return_value=SNAPSHOT) as mock_weather:
            result = create_activity(_irrigation(location_id=mapped_location_id))
        mock_weather.assert_called_once_with(43.55, -90.88)
        activity = get_activity(result['activity_id'])
        assert activity['weather'] == SNAPSHOT
        assert activity['location_name'] == 'Ridge Farm'

    def test_weather_failure_does_not_block_save(self, mapped_location_id):
        with patch('activity_log.get_weather_snapshot', return_value=None):
            result = create_activity(_irrigation(location_id=mapped_location_id))
        assert get_activity(result['activity_id'])['weather'] is None

    def test_soil_amendments_stored(self):
        result = create_activity({
            'activity_type': 'soil_amendment', 'started_at': '2025-04-01T09:00',
            'amendments': [
                {'name': 'Compost', 'quantity': 2, 'unit': 'yd3'},
                {'name': '   ', 'quantity': 1},
                {'name': 'Kelp meal', 'quantity': '10', 'unit': 'lb'},
            ],
        })
        names = [a['name'] for a in get_activity(result['activity_id'])['amendments']]
        assert names == ['Compost', 'Kelp meal']

    def test_amendments_ignored_for_other_types(self):
        result = create_activity(_irrigation(amendments=[{'name': 'Compost'}]))
        assert get_activity(result['activity_id'])['amendments'] == []

    def test_unknown_location_is_dependency_error(self):
        with pytest.raises(DatabaseError) as exc:
            create_activity(_irrigation(location_id=9999))
        assert exc.value.kind == 'dependency'

    def test_update_replaces_supplied_amendments(self):
        activity_id = create_activity({
            'activity_type': 'soil_amendment', 'started_at': '2025-04-01T09:00',
            'amendments': [{'name': 'Compost'}],
        })['activity_id']

        update_activity(activity_id, {'activity_type': 'soil_amendment', 'started_at': '2025-04-02T09:00'})
        activity = get_activity(activity_id)
        assert activity['started_at'] == '2025-04-02T09:00'
        assert [a['name'] for a in activity['amendments']] == ['Compost']

        result = update_activity(activity_id, {
            'activity_type': 'soil_amendment', 'started_at': '2025-04-02T09:00',
            'amendments': [{'name': 'Lime', 'quantity': 50, 'unit': 'lb'}],
        })
        assert result == {'message': 'Activity updated successfully'}
        assert [a['name'] for a in get_activity(activity_id)['amendments']] == ['Lime']

        update_activity(activity_id, _irrigation())
        assert get_activity(activity_id)['amendments'] == []

    def test_update_clears_weather_when_location_removed(self, mapped_location_id):
        with patch('activity_log.get_weather_snapshot', return_value=SNAPSHOT):
            activity_id = create_activity(_irrigation(location_id=mapped_location_id))['activity_id']
        update_activity(activity_id, _irrigation())
        assert get_activity(activity_id)['weather'] is None

    def test_update_missing(self):
        with pytest.raises(NotFoundError):
            update_activity(999999, _irrigation())

    def test_invalid_id(self):
        with pytest.raises(FormError) as exc:
            delete_activity('abc')
        assert exc.value.message == 'Invalid activity id'

    def test_delete(self):
        activity_id = create_activity(_irrigation())['activity_id']
        assert delete_activity(activity_id) == {'message': 'Activity deleted successfully'}
        with pytest.raises(NotFoundError):
            get_activity(activity_id)

    def test_bulk_delete(self):
        ids = [create_activity(_irrigation())['activity_id'] for _ in range(3)]
        result = delete_activities_bulk(f"{ids[0]}, {ids[1]}, junk, -4")
        assert result['deleted'] == 2
        assert [a['id'] for a in get_activities_flat()] == [ids[2]]

    def test_bulk_delete_requires_ids(self):
        with pytest.raises(FormError) as exc:
            delete_activities_bulk('junk,0')
        assert exc.value.errors == {'ids': ['No valid ids']}

    def test_location_delete_nulls_activity_location(self, location_id):
        from location_manager import delete_location
        activity_id = create_activity(_irrigation(location_id=location_id))['activity_id']
        delete_location(location_id)
        assert get_activity(activity_id)['location_id'] is None


# ---------------------------------------------------------------------------
# Listing and export
# ---------------------------------------------------------------------------

class TestActivityListing:
    @pytest.fixture
    def activities(self):
        return [
            create_activity(_irrigation(started_at='2025-06-01T07:00', labor_hours=3, cost=10))['activity_id'],
            create_activity(_irrigation(started_at='2025-06-03T07:00', labor_hours=1, cost=30))['activity_id'],
            create_activity({'activity_type': 'pest_management', 'started_at': '2025-06-02T07:00',
                             'crop': 'Kale', 'labor_hours': 2})['activity_id'],
        ]

    def test_grouped_by_type_newest_first(self, activities):
        grouped = get_activities_grouped()
        assert set(grouped) == {'irrigation', 'pest_management'}
        assert [a['id'] for a in grouped['irrigation']] == [activities[1], activities[0]]

    def test_filters(self, activities):
        grouped = get_activities_grouped({'type': 'irrigation', 'from': '2025-06-02'})
        assert [a['id'] for a in grouped['irrigation']] == [activities[1]]
        with pytest.raises(ValueError):
            get_activities_grouped({'type': 'mowing'})

    def test_flat_sorting(self, activities):
        by_labor = get_activities_flat(sort='labor_hours', direction='asc')
        assert [a['id'] for a in by_labor] == [activities[1], activities[2], activities[0]]
        with pytest.raises(ValueError):
            get_activities_flat(sort='notes')

    def test_csv_export(self, activities):
        text = export_activities_csv()
        rows = list(csv.reader(io.StringIO(text)))
        assert rows[0] == CSV_HEADERS
        assert [int(r[0]) for r in rows[1:]] == [activities[0], activities[2], activities[1]]
        assert rows[2][CSV_HEADERS.index('crop')] == 'Kale'
        assert rows[1][CSV_HEADERS.index('location_id')] == ''

    def test_form_options(self, location_id, nursery_id):
        options = get_activity_form_options()
        assert [t['value'] for t in options['activity_types']] == [
            'irrigation', 'soil_amendment', 'pest_management', 'asset_maintenance',
        ]
        assert [loc['id'] for loc in options['locations']] == [location_id]
        assert [n['id'] for n in options['nurseries']] == [nursery_id]


# ---------------------------------------------------------------------------
# HTTP
# ---------------------------------------------------------------------------

class TestActivityRoutes:
    def test_create_and_list(self, client):
        resp = client.post('/api/activities', json=_irrigation(crop='Carrots'))
        assert resp.status_code == 201
        body = client.get('/api/activities').get_json()
        assert [a['crop'] for a in body['grouped']['irrigation']] == ['Carrots']

    def test_flat_view(self, client):
        client.post('/api/activities', json=_irrigation())
        body = client.get('/api/activities?view=flat&sort=cost&dir=asc').get_json()
        assert len(body['rows']) == 1

    def test_bad_sort_is_400(self, client):
        resp = client.get('/api/activities?view=flat&sort=notes')
        assert resp.status_code == 400

    def test_validation_error(self, client):
        resp = client.post('/api/activities', data={'activity_type': ''})
        assert resp.status_code == 400
        assert resp.get_json()['errors']['activity_type'] == ['Activity type is required']

    def test_export(self, client):
        client.post('/api/activities', json=_irrigation())
        resp = client.get('/api/activities/export')
        assert resp.status_code == 200
        assert resp.mimetype == 'text/csv'
        assert 'attachment' in resp.headers['Content-Disposition']
        assert resp.get_data(as_text=True).splitlines()[0] == ','.join(CSV_HEADERS)

    def test_bulk_delete(self, client):
        ids = [client.post('/api/activities', json=_irrigation()).get_json()['activity_id'] for _ in range(2)]
        resp = client.post('/api/activities/bulk-delete', json={'ids': ids})
        assert resp.status_code == 200
        assert resp.get_json()['deleted'] == 2
