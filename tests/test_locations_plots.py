"""Tests for locations, plots, beds and nurseries."""

from unittest.mock import patch

import pytest

from errors import DatabaseError, FormError, NotFoundError
from location_manager import (
    MISSING_COORDINATES_MESSAGE, PLOTS_ATTACHED_MESSAGE, create_location, delete_location,
    get_location, get_location_with_plots, get_locations, is_valid_coordinate_pair, update_location,
)
from nursery_manager import create_nursery, get_nursery_stats, update_nursery
from plot_manager import (
    BED_IN_USE_MESSAGE, MISSING_PLOT_MESSAGE, PLOT_IN_USE_MESSAGE, bulk_create_beds,
    bulk_create_plots, calculate_plot_acreage, create_bed, create_plot, delete_bed, delete_plot,
    get_bed, get_beds, get_plots_with_beds, rename_bed, update_bed,
)


FULL_ADDRESS = {
    'name': 'Creek Farm', 'street': '100 Main St', 'city': 'Viroqua', 'state': 'WI', 'zip': '54665',
}


# ---------------------------------------------------------------------------
# Locations
# ---------------------------------------------------------------------------

class TestLocations:
    def test_create_minimal(self):
        location_id = create_location({'name': 'Back Forty'})
        loc = get_location(location_id)
        assert loc['name'] == 'Back Forty'
        assert loc['latitude'] is None
        assert loc['timezone'] is None

    def test_name_required(self):
        with pytest.raises(FormError) as exc:
            create_location({'name': '  '})
        assert exc.value.message == 'Validation failed. Could not create location.'
        assert exc.value.errors == {'name': ['Name is required']}

    def test_full_address_needs_coordinates(self):
        with pytest.raises(FormError) as exc:
            create_location(FULL_ADDRESS)
        assert exc.value.errors == {'latitude': [MISSING_COORDINATES_MESSAGE]}

    def test_coordinates_must_come_in_pairs(self):
        with pytest.raises(FormError) as exc:
            create_location({'name': 'Half', 'latitude': '43.5'})
        assert exc.value.errors == {'longitude': ['Longitude is required when latitude is provided']}

    def test_out_of_range_latitude(self):
        with pytest.raises(FormError) as exc:
            create_location({'name': 'Pole', 'latitude': 91, 'longitude': 0})
        assert exc.value.errors == {'latitude': ['Latitude must be between -90 and 90']}

    def test_timezone_filled_from_coordinates(self):
        with patch('location_manager.get_location_timezone', return_value='America/Chicago') as mock_tz:
            location_id = create_location(dict(FULL_ADDRESS, latitude='43.55', longitude='-90.88'))
        mock_tz.assert_called_once_with(43.55, -90.88)
        assert get_location(location_id)['timezone'] == 'America/Chicago'

    def test_timezone_lookup_failure_leaves_it_empty(self):
        with patch('location_manager.get_location_timezone', return_value=None):
            location_id = create_location({'name': 'Offline', 'latitude': 10, 'longitude': 10})
        assert get_location(location_id)['timezone'] is None

    def test_update_clears_timezone_with_coordinates(self):
        with patch('location_manager.get_location_timezone', return_value='America/Chicago'):
            location_id = create_location({'name': 'Ridge', 'latitude': 43, 'longitude': -90})
        loc = update_location(location_id, {'name': 'Ridge Top'})
        assert loc['name'] == 'Ridge Top'
        assert loc['latitude'] is None
        assert loc['timezone'] is None

    def test_update_missing(self):
        with pytest.raises(NotFoundError):
            update_location(424242, {'name': 'Nowhere'})

    def test_delete_blocked_by_plots(self, location_id, plot_id):
        with pytest.raises(FormError) as exc:
            delete_location(location_id)
        assert exc.value.message == PLOTS_ATTACHED_MESSAGE

    def test_delete(self, location_id):
        delete_location(location_id)
        assert get_locations() == []

    def test_with_plots(self, location_id, plot_id):
        loc = get_location_with_plots(location_id)
        assert [p['id'] for p in loc['plots']] == [plot_id]

    def test_coordinate_pair(self):
        assert is_valid_coordinate_pair(0, 0)
        assert not is_valid_coordinate_pair(None, 0)
        assert not is_valid_coordinate_pair(95, 0)
        assert not is_valid_coordinate_pair('43', '-90')


# ---------------------------------------------------------------------------
# Plots
# ---------------------------------------------------------------------------

class TestPlots:
    def test_location_required(self):
        with pytest.raises(FormError) as exc:
            create_plot({'name': 'Orphan'})
        assert exc.value.errors == {'location_id': ['Location is required']}

    def test_unknown_location(self):
        with pytest.raises(DatabaseError) as exc:
            create_plot({'name': 'Orphan', 'location_id': 9999})
        assert exc.value.kind == 'dependency'
        assert exc.value.errors == {'location_id': ['The selected location does not exist.']}

    def test_bulk_create(self, location_id):
        ids = bulk_create_plots({'location_id': location_id, 'base_name': 'Block', 'count': '3'})
        names = [p['name'] for p in get_plots_with_beds()]
        assert len(ids) == 3
        assert names == ['Block 1', 'Block 2', 'Block 3']

    def test_bulk_count_limits(self, location_id):
        with pytest.raises(FormError) as exc:
            bulk_create_plots({'location_id': location_id, 'base_name': 'Block', 'count': 51})
        assert exc.value.errors == {'count': ['Limit bulk add to 50 at a time']}
        with pytest.raises(FormError) as exc:
            bulk_create_plots({'location_id': location_id, 'base_name': 'Block', 'count': 0})
        assert exc.value.errors == {'count': ['Add at least one item']}

    def test_acreage(self, plot_id):
        create_bed({'plot_id': plot_id, 'length_inches': 4356, 'width_inches': 1440})
        create_bed({'plot_id': plot_id, 'length_inches': 100})
        plot = get_plots_with_beds()[0]
        assert plot['location_name'] == 'Home Farm'
        assert len(plot['beds']) == 2
        assert plot['total_acreage'] == pytest.approx(1.0)

    def test_calculate_acreage_ignores_unsized_beds(self):
        assert calculate_plot_acreage([]) == 0
        assert calculate_plot_acreage([{'length_inches': None, 'width_inches': 30}]) == 0

    def test_delete_cascades_beds(self, plot_id, bed_id):
        delete_plot(plot_id)
        with pytest.raises(NotFoundError):
            get_bed(bed_id)

    def test_delete_blocked_by_plantings(self, plot_id, bed_id, variety_id):
        from planting_tracker import create_direct_seed_planting
        create_direct_seed_planting(variety_id, 10, bed_id, '2025-04-01')
        with pytest.raises(DatabaseError) as exc:
            delete_plot(plot_id)
        assert exc.value.message == PLOT_IN_USE_MESSAGE


# ---------------------------------------------------------------------------
# Beds
# ---------------------------------------------------------------------------

class TestBeds:
    def test_plot_required(self):
        with pytest.raises(FormError) as exc:
            create_bed({'length_inches': 10})
        assert exc.value.errors == {'plot_id': ['Plot selection is required']}

    def test_dimensions_must_be_positive(self, plot_id):
        with pytest.raises(FormError) as exc:
            create_bed({'plot_id': plot_id, 'length_inches': 0, 'width_inches': 'wide'})
        assert exc.value.errors == {
            'length_inches': ['Length must be 1 or greater'],
            'width_inches': ['Width must be a whole number'],
        }

    def test_update_and_rename(self, plot_id, bed_id):
        bed = update_bed(bed_id, {'plot_id': plot_id, 'name': 'Bed A', 'length_inches': 600})
        assert bed['name'] == 'Bed A'
        assert bed['width_inches'] is None
        rename_bed(bed_id, '  Bed Z  ')
        assert get_bed(bed_id)['name'] == 'Bed Z'

    def test_rename_requires_name(self, bed_id):
        with pytest.raises(FormError):
            rename_bed(bed_id, '   ')

    def test_bulk_create(self, location_id, plot_id):
        ids = bulk_create_beds({
            'location_id': location_id, 'plot_id': plot_id, 'count': 4,
            'size': {'length_inches': 1200, 'width_inches': 30},
        })
        beds = get_beds()
        assert len(ids) == 4
        assert [b['name'] for b in beds] == ['Bed 1', 'Bed 2', 'Bed 3', 'Bed 4']
        assert all(b['plot_name'] == 'North Field' for b in beds)

    def test_bulk_requires_size(self, location_id, plot_id):
        with pytest.raises(FormError) as exc:
            bulk_create_beds({'location_id': location_id, 'plot_id': plot_id, 'count': 2, 'unit': 'cm'})
        assert exc.value.errors == {
            'unit': ["Unit must be 'in'"],
            'length_inches': ['Length required'],
            'width_inches': ['Width required'],
        }

    def test_bulk_plot_must_belong_to_location(self, plot_id):
        other = create_location({'name': 'Elsewhere'})
        with pytest.raises(FormError) as exc:
            bulk_create_beds({'location_id': other, 'plot_id': plot_id, 'count': 1,
                              'length_inches': 10, 'width_inches': 10})
        assert exc.value.errors == {'plot_id': ['Plot does not belong to the selected location']}

    def test_bulk_unknown_plot(self, location_id):
        with pytest.raises(FormError) as exc:
            bulk_create_beds({'location_id': location_id, 'plot_id': 9999, 'count': 1,
                              'length_inches': 10, 'width_inches': 10})
        assert exc.value.message == MISSING_PLOT_MESSAGE

    def test_delete_blocked_by_plantings(self, bed_id, variety_id):
        from planting_tracker import create_direct_seed_planting
        create_direct_seed_planting(variety_id, 10, bed_id, '2025-04-01')
        with pytest.raises(DatabaseError) as exc:
            delete_bed(bed_id)
        assert exc.value.message == BED_IN_USE_MESSAGE


# ---------------------------------------------------------------------------
# Nurseries
# ---------------------------------------------------------------------------

class TestNurseries:
    def test_required_fields(self):
        with pytest.raises(FormError) as exc:
            create_nursery({})
        assert exc.value.message == 'Please fix the highlighted fields.'
        assert exc.value.errors == {'name': ['Name is required'], 'location_id': ['Location is required']}

    def test_update(self, nursery_id, location_id):
        nursery = update_nursery(nursery_id, {'name': 'Hoop House', 'location_id': location_id})
        assert nursery['name'] == 'Hoop House'

    def test_stats_count_active_sowings(self, nursery_id, variety_id, bed_id):
        from planting_tracker import create_nursery_planting, transplant_planting
        first = create_nursery_planting(variety_id, 10, nursery_id, '2025-03-01')
        create_nursery_planting(variety_id, 10, nursery_id, '2025-03-04')
        transplant_planting(first, bed_id, '2025-04-01')
        assert get_nursery_stats() == {nursery_id: {'active_sows': 1, 'last_sow_date': '2025-03-04'}}


# ---------------------------------------------------------------------------
# HTTP
# ---------------------------------------------------------------------------

class TestLocationRoutes:
    def test_create_and_list(self, client):
        resp = client.post('/api/locations', data={'name': 'Form Farm', 'latitude': '', 'longitude': ''})
        assert resp.status_code == 201
        assert [loc['name'] for loc in client.get('/api/locations').get_json()] == ['Form Farm']

    def test_plot_list_reflects_location_rename(self, client, location_id, plot_id):
        assert client.get('/api/plots').get_json()[0]['location_name'] == 'Home Farm'
        client.put(f'/api/locations/{location_id}', json={'name': 'Renamed Farm'})
        assert client.get('/api/plots').get_json()[0]['location_name'] == 'Renamed Farm'

    def test_delete_with_plots_is_400(self, client, location_id, plot_id):
        resp = client.delete(f'/api/locations/{location_id}')
        assert resp.status_code == 400
        assert resp.get_json()['message'] == PLOTS_ATTACHED_MESSAGE

    def test_missing_location_is_404(self, client):
        assert client.get('/api/locations/999999').status_code == 404

    def test_bulk_beds(self, client, location_id, plot_id):
        resp = client.post('/api/beds/bulk', json={
            'location_id': location_id, 'plot_id': plot_id, 'base_name': 'Row', 'count': 2,
            'length_inches': 600, 'width_inches': 36,
        })
        assert resp.status_code == 201
        assert resp.get_json()['message'] == 'Created 2 beds.'

    def test_rename_bed(self, client, bed_id):
        resp = client.patch(f'/api/beds/{bed_id}/name', json={'name': 'Herb Bed'})
        assert resp.status_code == 200
        assert get_bed(bed_id)['name'] == 'Herb Bed'

    def test_nurseries_include_stats(self, client, nursery_id):
        nurseries = client.get('/api/nurseries').get_json()
        assert nurseries[0]['id'] == nursery_id
        assert nurseries[0]['active_sows'] == 0
