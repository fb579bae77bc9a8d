"""
Pytest configuration and shared fixtures for Happy Harvests tests.
"""

import os
import sys
import tempfile
import pytest

# Add project root to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

# Point the database, page cache and logs at a scratch directory before any
# app module reads DATA_DIR / LOG_DIR at import time
_TEST_DATA_DIR = tempfile.mkdtemp(prefix='happyharvests-tests-')
os.environ['DATA_DIR'] = _TEST_DATA_DIR
os.environ['LOG_DIR'] = os.path.join(_TEST_DATA_DIR, 'logs')
os.environ.setdefault("FLASK_SECRET_KEY", "test-secret-key")
os.environ.setdefault("DEMO_MODE", "true")
os.environ["PAGE_CACHE_ENABLED"] = "true"
for _var in ("DATABASE_URL", "REDIS_URL", "OPENWEATHER_API_KEY", "SENTRY_DSN"):
    os.environ.pop(_var, None)

from app import app as _app  # noqa: E402  creates the schema
from cache import get_page_cache  # noqa: E402
from db import get_db  # noqa: E402

# Children before parents so foreign keys never block the cleanup
_TABLES = [
    'activities_soil_amendments',
    'activities',
    'planting_events',
    'plantings',
    'seeds',
    'crop_varieties',
    'crops',
    'nurseries',
    'beds',
    'plots',
    'locations',
    'users',
]


@pytest.fixture(autouse=True)
def _clean_db():
    """Empty every table and the page cache around each test."""
    yield
    with get_db() as conn:
        for table in _TABLES:
            conn.execute(f"DELETE FROM {table}")
    get_page_cache().clear()


@pytest.fixture
def client():
    """Flask test client with a signed-in user (demo mode grants admin)."""
    _app.config['TESTING'] = True
    with _app.test_client() as client:
        with client.session_transaction() as sess:
            sess['user_id'] = 1
            sess['user_name'] = 'Test Grower'
            sess['user_email'] = 'grower@example.com'
        yield client


@pytest.fixture
def anon_client():
    _app.config['TESTING'] = True
    with _app.test_client() as client:
        yield client


# ---------------------------------------------------------------------------
# Farm data
# ---------------------------------------------------------------------------

@pytest.fixture
def location_id():
    from location_manager import create_location
    return create_location({'name': 'Home Farm', 'city': 'Viroqua', 'state': 'WI'})


@pytest.fixture
def plot_id(location_id):
    from plot_manager import create_plot
    return create_plot({'name': 'North Field', 'location_id': location_id})


@pytest.fixture
def bed_id(plot_id):
    from plot_manager import create_bed
    return create_bed({'plot_id': plot_id, 'name': 'Bed 1', 'length_inches': 1200, 'width_inches': 30})


@pytest.fixture
def second_bed_id(plot_id):
    from plot_manager import create_bed
    return create_bed({'plot_id': plot_id, 'name': 'Bed 2', 'length_inches': 1200, 'width_inches': 30})


@pytest.fixture
def nursery_id(location_id):
    from nursery_manager import create_nursery
    return create_nursery({'name': 'Greenhouse', 'location_id': location_id})


@pytest.fixture
def crop_id():
    from crop_catalog import create_crop
    return create_crop({'name': 'Tomato', 'crop_type': 'Vegetable'})


@pytest.fixture
def variety_data(crop_id):
    return {
        'crop_id': crop_id,
        'name': 'Sungold',
        'latin_name': 'Solanum lycopersicum',
        'is_organic': True,
        'dtm_direct_seed_min': 60,
        'dtm_direct_seed_max': 70,
        'dtm_transplant_min': 55,
        'dtm_transplant_max': 65,
    }


@pytest.fixture
def variety_id(variety_data):
    from crop_catalog import create_crop_variety
    return create_crop_variety(variety_data)
