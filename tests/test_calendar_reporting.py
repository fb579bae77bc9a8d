"""Tests for the farm calendar feed, dashboard overview and inventory availability."""

from unittest.mock import patch

import pytest

from activity_log import create_activity
from calendar_scheduler import get_calendar_events, get_calendar_locations, predict_harvest_date
from crop_catalog import normalize_dtm
from planting_tracker import (
    create_direct_seed_planting, create_nursery_planting, harvest_planting, remove_planting,
    transplant_planting,
)
from reporting import get_dashboard_overview, get_inventory_availability


def _by_id(events):
    return {e['id']: e for e in events}


# ---------------------------------------------------------------------------
# Harvest prediction
# ---------------------------------------------------------------------------

class TestPredictHarvestDate:
    def test_direct_seed_uses_direct_seed_minimum(self):
        dtm = normalize_dtm(60, 70, 55, 65)
        assert predict_harvest_date('2025-04-01', None, dtm) == '2025-05-31'

    def test_transplant_uses_transplant_minimum(self):
        dtm = normalize_dtm(60, 70, 55, 65)
        assert predict_harvest_date('2025-04-01', '2025-03-01', dtm) == '2025-05-26'

    def test_falls_back_to_maximum(self):
        dtm = normalize_dtm(0, 30, 0, 0)
        assert predict_harvest_date('2025-04-01', None, dtm) == '2025-05-01'

    def test_no_usable_dtm(self):
        dtm = normalize_dtm(0, 0, 0, 0)
        assert predict_harvest_date('2025-04-01', None, dtm) is None
        assert predict_harvest_date(None, None, normalize_dtm(60, 70, 55, 65)) is None


# ---------------------------------------------------------------------------
# Calendar feed
# ---------------------------------------------------------------------------

class TestCalendarEvents:
    def test_activity_event(self):
        activity_id = create_activity({
            'activity_type': 'soil_amendment', 'started_at': '2025-04-01T09:00',
            'ended_at': '2025-04-01T10:30', 'crop': 'Garlic',
            'amendments': [{'name': 'Compost', 'quantity': 2, 'unit': 'yd3'}],
        })['activity_id']
        event = _by_id(get_calendar_events())[f'a:{activity_id}']
        assert event['type'] == 'activity'
        assert event['title'] == 'soil amendment · Garlic'
        assert event['start'] == '2025-04-01T09:00'
        assert event['end'] == '2025-04-01T10:30'
        assert event['meta']['activities_soil_amendments'] == [
            {'name': 'Compost', 'quantity': 2.0, 'unit': 'yd3'},
        ]

    def test_planting_and_predicted_harvest(self, variety_id, bed_id):
        planting_id = create_direct_seed_planting(variety_id, 100, bed_id, '2025-04-01')
        events = _by_id(get_calendar_events())

        seeded = events[f'p:{planting_id}']
        assert seeded['title'] == 'Planting · planted'
        assert seeded['start'] == '2025-04-01'
        assert seeded['meta']['qty'] == 100

        harvest = events[f'h:{planting_id}']
        assert harvest['start'] == '2025-05-31'
        assert harvest['title'] == 'Harvest · Tomato · Sungold'
        assert harvest['meta']['source'] == 'predicted'

    def test_transplant_prediction(self, variety_id, nursery_id, bed_id):
        planting_id = create_nursery_planting(variety_id, 48, nursery_id, '2025-03-01')
        events = _by_id(get_calendar_events())
        assert f'h:{planting_id}' not in events

        transplant_planting(planting_id, bed_id, '2025-04-15')
        harvest = _by_id(get_calendar_events())[f'h:{planting_id}']
        assert harvest['start'] == '2025-06-09'

    def test_actual_harvest_wins(self, variety_id, bed_id):
        planting_id = create_direct_seed_planting(variety_id, 100, bed_id, '2025-04-01')
        harvest_planting(planting_id, '2025-06-20', weight_grams=1200)
        harvest = _by_id(get_calendar_events())[f'h:{planting_id}']
        assert harvest['start'] == '2025-06-20'
        assert harvest['meta']['source'] == 'actual'
        assert harvest['meta']['status'] == 'harvested'

    def test_removed_plantings_have_no_prediction(self, variety_id, bed_id):
        planting_id = create_direct_seed_planting(variety_id, 100, bed_id, '2025-04-01')
        remove_planting(planting_id, '2025-04-10')
        events = _by_id(get_calendar_events())
        assert f'h:{planting_id}' not in events
        assert events[f'p:{planting_id}']['title'] == 'Planting · removed'

    def test_range_is_inclusive(self, variety_id, bed_id):
        planting_id = create_direct_seed_planting(variety_id, 100, bed_id, '2025-04-01')
        ids = [e['id'] for e in get_calendar_events('2025-04-01', '2025-05-30')]
        assert ids == [f'p:{planting_id}']
        ids = [e['id'] for e in get_calendar_events(start='2025-05-31')]
        assert ids == [f'h:{planting_id}']

    def test_calendar_locations_limited_to_ten(self):
        from location_manager import create_location
        for n in range(12):
            create_location({'name': f'Field {n:02d}'})
        locations = get_calendar_locations()
        assert len(locations) == 10
        assert locations[0]['name'] == 'Field 00'


# ---------------------------------------------------------------------------
# Dashboard and inventory
# ---------------------------------------------------------------------------

class TestReporting:
    def test_overview_counts(self, variety_id, bed_id):
        create_direct_seed_planting(variety_id, 100, bed_id, '2025-04-01')
        overview = get_dashboard_overview()
        assert overview['crop_variety_count'] == 1
        assert overview['plot_count'] == 1
        assert overview['planting_count'] == 1
        assert overview['primary_location'] is None
        assert 'weather' not in overview

    def test_primary_location_needs_coordinates(self, location_id):
        from location_manager import create_location
        with patch('location_manager.get_location_timezone', return_value=None):
            mapped = create_location({'name': 'Mapped', 'latitude': 43.5, 'longitude': -90.9})
        with patch('reporting.get_weather_snapshot', return_value={'timezone': 'America/Chicago'}) as mock_weather:
            overview = get_dashboard_overview(include_weather=True)
        assert overview['primary_location']['id'] == mapped
        assert overview['weather'] == {'timezone': 'America/Chicago'}
        mock_weather.assert_called_once_with(43.5, -90.9)

    def test_inventory_availability(self, variety_id, bed_id, second_bed_id):
        first = create_direct_seed_planting(variety_id, 100, bed_id, '2025-04-01')
        second = create_direct_seed_planting(variety_id, 100, second_bed_id, '2025-04-01')
        harvest_planting(first, '2025-06-01', qty_harvested=40, weight_grams=5000)
        harvest_planting(second, '2025-06-02', qty_harvested=10)

        availability = get_inventory_availability([str(variety_id), variety_id, 'junk', 999999])
        assert availability == [
            {'crop_variety_id': variety_id, 'count_available': 50, 'grams_available': 5000},
            {'crop_variety_id': 999999, 'count_available': 0, 'grams_available': 0},
        ]

    def test_inventory_availability_empty(self):
        assert get_inventory_availability([]) == []


# ---------------------------------------------------------------------------
# HTTP
# ---------------------------------------------------------------------------

class TestCalendarRoutes:
    def test_events(self, client, variety_id, bed_id):
        create_direct_seed_planting(variety_id, 100, bed_id, '2025-04-01')
        body = client.get('/api/calendar/events?start=2025-04-01&end=2025-04-30').get_json()
        assert [e['type'] for e in body['events']] == ['planting']

    def test_availability(self, client, variety_id):
        body = client.get(f'/api/inventory/availability?ids={variety_id},').get_json()
        assert body == {'availability': [
            {'crop_variety_id': variety_id, 'count_available': 0, 'grams_available': 0},
        ]}

    @pytest.mark.parametrize('weather', ['false', 'False'])
    def test_dashboard_without_weather(self, client, weather):
        body = client.get(f'/api/dashboard?weather={weather}').get_json()
        assert body['plot_count'] == 0
        assert 'weather' not in body
