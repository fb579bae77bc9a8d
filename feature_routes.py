"""
Feature Routes Blueprint for the Happy Harvests farm management app.

This module registers the JSON API routes for the farm modules:
- Locations
- Plots & Beds
- Nurseries
- Crops & Crop Varieties
- Seeds
- Plantings
- Activities
- Calendar
- Inventory availability

Handlers accept JSON bodies or regular form posts. Validation problems come
back as ``{'message', 'errors'}`` with the status code of the raised error.
"""

from flask import Blueprint, Response, jsonify, request, session
import logging

from auth import admin_required, login_required
from errors import FormError, NotFoundError

logger = logging.getLogger(__name__)

features_bp = Blueprint('features_bp', __name__)

DOMAIN_ERRORS = (FormError, NotFoundError)


# ---------------------------------------------------------------------------
# Database table initialization
# ---------------------------------------------------------------------------

def init_all_feature_tables():
    """Initialize database tables for all farm modules.

    Order matters: each module's tables reference the ones created before it.
    """
    modules = [
        ('auth', 'init_auth_tables'),
        ('location_manager', 'init_location_tables'),
        ('plot_manager', 'init_plot_tables'),
        ('nursery_manager', 'init_nursery_tables'),
        ('crop_catalog', 'init_crop_tables'),
        ('seed_inventory', 'init_seed_tables'),
        ('planting_tracker', 'init_planting_tables'),
        ('activity_log', 'init_activity_tables'),
    ]
    for module_name, func_name in modules:
        mod = __import__(module_name)
        getattr(mod, func_name)()
        logger.info(f"Initialized tables for {module_name}")


# ====================================================================
# Helpers
# ====================================================================

def _user_id():
    """Return the current user id, defaulting to 1 for demo mode."""
    return session.get('user_id', 1)


def _payload():
    """JSON object body, or the submitted form fields."""
    if request.is_json:
        data = request.get_json(silent=True)
        if data is None and not request.get_data():
            return {}
        if not isinstance(data, dict):
            raise FormError('Request body must be a JSON object')
        return data
    data = request.form.to_dict()
    if 'bed_ids' in request.form:
        data['bed_ids'] = request.form.getlist('bed_ids')
    return data


def _domain_error(e):
    """JSON response for a FormError / NotFoundError."""
    status = e.status_code
    if status >= 500:
        logger.error(f"{request.method} {request.path} failed: {e.message}")
    return jsonify(e.to_dict()), status


def _cached(path, key, loader):
    from cache import get_page_cache
    return get_page_cache().fetch(path, key, loader)


def _activity_filters():
    return {
        'type': request.args.get('type') or None,
        'from': request.args.get('from') or None,
        'to': request.args.get('to') or None,
        'location_id': request.args.get('location_id', type=int),
    }


# ====================================================================
# Locations API
# ====================================================================

@features_bp.route('/api/locations', methods=['GET'])
@login_required
def list_locations():
    try:
        from location_manager import get_locations
        return jsonify(_cached('/locations', 'list', get_locations))
    except Exception as e:
        logger.error(f"Error listing locations: {e}")
        return jsonify({'error': str(e)}), 500


@features_bp.route('/api/locations', methods=['POST'])
@login_required
def create_location():
    try:
        from location_manager import create_location as _create_location
        location_id = _create_location(_payload())
        return jsonify({'id': location_id, 'message': 'Location created successfully'}), 201
    except DOMAIN_ERRORS as e:
        return _domain_error(e)
    except Exception as e:
        logger.error(f"Error creating location: {e}")
        return jsonify({'error': str(e)}), 500


@features_bp.route('/api/locations/<int:location_id>', methods=['GET'])
@login_required
def get_location(location_id):
    try:
        from location_manager import get_location_with_plots
        return jsonify(get_location_with_plots(location_id))
    except DOMAIN_ERRORS as e:
        return _domain_error(e)
    except Exception as e:
        logger.error(f"Error getting location {location_id}: {e}")
        return jsonify({'error': str(e)}), 500


@features_bp.route('/api/locations/<int:location_id>', methods=['PUT'])
@login_required
def update_location(location_id):
    try:
        from location_manager import update_location as _update_location
        location = _update_location(location_id, _payload())
        return jsonify({'location': location, 'message': 'Location updated successfully'})
    except DOMAIN_ERRORS as e:
        return _domain_error(e)
    except Exception as e:
        logger.error(f"Error updating location {location_id}: {e}")
        return jsonify({'error': str(e)}), 500


@features_bp.route('/api/locations/<int:location_id>', methods=['DELETE'])
@login_required
def delete_location(location_id):
    try:
        from location_manager import delete_location as _delete_location
        _delete_location(location_id)
        return jsonify({'message': 'Location deleted successfully'})
    except DOMAIN_ERRORS as e:
        return _domain_error(e)
    except Exception as e:
        logger.error(f"Error deleting location {location_id}: {e}")
        return jsonify({'error': str(e)}), 500


# ====================================================================
# Plots API
# ====================================================================

@features_bp.route('/api/plots', methods=['GET'])
@login_required
def list_plots():
    try:
        from plot_manager import get_plots_with_beds
        return jsonify(_cached('/plots', 'list', get_plots_with_beds))
    except Exception as e:
        logger.error(f"Error listing plots: {e}")
        return jsonify({'error': str(e)}), 500


@features_bp.route('/api/plots', methods=['POST'])
@login_required
def create_plot():
    try:
        from plot_manager import create_plot as _create_plot
        plot_id = _create_plot(_payload())
        return jsonify({'id': plot_id, 'message': 'Plot created successfully'}), 201
    except DOMAIN_ERRORS as e:
        return _domain_error(e)
    except Exception as e:
        logger.error(f"Error creating plot: {e}")
        return jsonify({'error': str(e)}), 500


@features_bp.route('/api/plots/bulk', methods=['POST'])
@login_required
def bulk_create_plots():
    try:
        from plot_manager import bulk_create_plots as _bulk_create_plots
        plot_ids = _bulk_create_plots(_payload())
        return jsonify({'ids': plot_ids, 'message': f"Created {len(plot_ids)} plots."}), 201
    except DOMAIN_ERRORS as e:
        return _domain_error(e)
    except Exception as e:
        logger.error(f"Error bulk creating plots: {e}")
        return jsonify({'error': str(e)}), 500


@features_bp.route('/api/plots/<int:plot_id>', methods=['GET'])
@login_required
def get_plot(plot_id):
    try:
        from plot_manager import get_plot as _get_plot
        return jsonify(_get_plot(plot_id))
    except DOMAIN_ERRORS as e:
        return _domain_error(e)
    except Exception as e:
        logger.error(f"Error getting plot {plot_id}: {e}")
        return jsonify({'error': str(e)}), 500


@features_bp.route('/api/plots/<int:plot_id>', methods=['PUT'])
@login_required
def update_plot(plot_id):
    try:
        from plot_manager import update_plot as _update_plot
        plot = _update_plot(plot_id, _payload())
        return jsonify({'plot': plot, 'message': 'Plot updated successfully'})
    except DOMAIN_ERRORS as e:
        return _domain_error(e)
    except Exception as e:
        logger.error(f"Error updating plot {plot_id}: {e}")
        return jsonify({'error': str(e)}), 500


@features_bp.route('/api/plots/<int:plot_id>', methods=['DELETE'])
@login_required
def delete_plot(plot_id):
    try:
        from plot_manager import delete_plot as _delete_plot
        _delete_plot(plot_id)
        return jsonify({'message': 'Plot deleted successfully'})
    except DOMAIN_ERRORS as e:
        return _domain_error(e)
    except Exception as e:
        logger.error(f"Error deleting plot {plot_id}: {e}")
        return jsonify({'error': str(e)}), 500


# ====================================================================
# Beds API
# ====================================================================

@features_bp.route('/api/beds', methods=['GET'])
@login_required
def list_beds():
    try:
        from plot_manager import get_beds
        return jsonify(get_beds())
    except Exception as e:
        logger.error(f"Error listing beds: {e}")
        return jsonify({'error': str(e)}), 500


@features_bp.route('/api/beds', methods=['POST'])
@login_required
def create_bed():
    try:
        from plot_manager import create_bed as _create_bed
        bed_id = _create_bed(_payload())
        return jsonify({'id': bed_id, 'message': 'Bed created successfully'}), 201
    except DOMAIN_ERRORS as e:
        return _domain_error(e)
    except Exception as e:
        logger.error(f"Error creating bed: {e}")
        return jsonify({'error': str(e)}), 500


@features_bp.route('/api/beds/bulk', methods=['POST'])
@login_required
def bulk_create_beds():
    try:
        from plot_manager import bulk_create_beds as _bulk_create_beds
        bed_ids = _bulk_create_beds(_payload())
        return jsonify({'ids': bed_ids, 'message': f"Created {len(bed_ids)} beds."}), 201
    except DOMAIN_ERRORS as e:
        return _domain_error(e)
    except Exception as e:
        logger.error(f"Error bulk creating beds: {e}")
        return jsonify({'error': str(e)}), 500


@features_bp.route('/api/beds/<int:bed_id>', methods=['PUT'])
@login_required
def update_bed(bed_id):
    try:
        from plot_manager import update_bed as _update_bed
        bed = _update_bed(bed_id, _payload())
        return jsonify({'bed': bed, 'message': 'Bed updated successfully'})
    except DOMAIN_ERRORS as e:
        return _domain_error(e)
    except Exception as e:
        logger.error(f"Error updating bed {bed_id}: {e}")
        return jsonify({'error': str(e)}), 500


@features_bp.route('/api/beds/<int:bed_id>/name', methods=['PATCH'])
@login_required
def rename_bed(bed_id):
    try:
        from plot_manager import rename_bed as _rename_bed
        _rename_bed(bed_id, _payload().get('name'))
        return jsonify({'message': 'Bed renamed'})
    except DOMAIN_ERRORS as e:
        return _domain_error(e)
    except Exception as e:
        logger.error(f"Error renaming bed {bed_id}: {e}")
        return jsonify({'error': str(e)}), 500


@features_bp.route('/api/beds/<int:bed_id>', methods=['DELETE'])
@login_required
def delete_bed(bed_id):
    try:
        from plot_manager import delete_bed as _delete_bed
        _delete_bed(bed_id)
        return jsonify({'message': 'Bed deleted successfully'})
    except DOMAIN_ERRORS as e:
        return _domain_error(e)
    except Exception as e:
        logger.error(f"Error deleting bed {bed_id}: {e}")
        return jsonify({'error': str(e)}), 500


# ====================================================================
# Nurseries API
# ====================================================================

@features_bp.route('/api/nurseries', methods=['GET'])
@login_required
def list_nurseries():
    try:
        from nursery_manager import get_nurseries, get_nursery_stats

        def load():
            stats = get_nursery_stats()
            nurseries = get_nurseries()
            for nursery in nurseries:
                nursery.update(stats.get(nursery['id'], {'active_sows': 0, 'last_sow_date': None}))
            return nurseries

        return jsonify(_cached('/nurseries', 'list', load))
    except Exception as e:
        logger.error(f"Error listing nurseries: {e}")
        return jsonify({'error': str(e)}), 500


@features_bp.route('/api/nurseries', methods=['POST'])
@admin_required
def create_nursery():
    try:
        from nursery_manager import create_nursery as _create_nursery
        nursery_id = _create_nursery(_payload())
        return jsonify({'id': nursery_id, 'message': 'Nursery created successfully'}), 201
    except DOMAIN_ERRORS as e:
        return _domain_error(e)
    except Exception as e:
        logger.error(f"Error creating nursery: {e}")
        return jsonify({'error': str(e)}), 500


@features_bp.route('/api/nurseries/<int:nursery_id>', methods=['GET'])
@login_required
def get_nursery(nursery_id):
    try:
        from nursery_manager import get_nursery as _get_nursery
        return jsonify(_get_nursery(nursery_id))
    except DOMAIN_ERRORS as e:
        return _domain_error(e)
    except Exception as e:
        logger.error(f"Error getting nursery {nursery_id}: {e}")
        return jsonify({'error': str(e)}), 500


@features_bp.route('/api/nurseries/<int:nursery_id>', methods=['PUT'])
@admin_required
def update_nursery(nursery_id):
    try:
        from nursery_manager import update_nursery as _update_nursery
        nursery = _update_nursery(nursery_id, _payload())
        return jsonify({'nursery': nursery, 'message': 'Nursery updated successfully'})
    except DOMAIN_ERRORS as e:
        return _domain_error(e)
    except Exception as e:
        logger.error(f"Error updating nursery {nursery_id}: {e}")
        return jsonify({'error': str(e)}), 500


@features_bp.route('/api/nurseries/<int:nursery_id>', methods=['DELETE'])
@admin_required
def delete_nursery(nursery_id):
    try:
        from nursery_manager import delete_nursery as _delete_nursery
        _delete_nursery(nursery_id)
        return jsonify({'message': 'Nursery deleted successfully'})
    except DOMAIN_ERRORS as e:
        return _domain_error(e)
    except Exception as e:
        logger.error(f"Error deleting nursery {nursery_id}: {e}")
        return jsonify({'error': str(e)}), 500


# ====================================================================
# Crops & Crop Varieties API
# ====================================================================

@features_bp.route('/api/crops', methods=['GET'])
@login_required
def list_crops():
    try:
        from crop_catalog import get_crops
        return jsonify(get_crops())
    except Exception as e:
        logger.error(f"Error listing crops: {e}")
        return jsonify({'error': str(e)}), 500


@features_bp.route('/api/crops', methods=['POST'])
@login_required
def create_crop():
    try:
        from crop_catalog import create_crop as _create_crop
        crop_id = _create_crop(_payload())
        return jsonify({'id': crop_id, 'message': 'Crop created successfully'}), 201
    except DOMAIN_ERRORS as e:
        return _domain_error(e)
    except Exception as e:
        logger.error(f"Error creating crop: {e}")
        return jsonify({'error': str(e)}), 500


@features_bp.route('/api/crop-varieties', methods=['GET'])
@login_required
def list_crop_varieties():
    try:
        from crop_catalog import get_crop_varieties
        return jsonify(_cached('/crop-varieties', 'list', get_crop_varieties))
    except Exception as e:
        logger.error(f"Error listing crop varieties: {e}")
        return jsonify({'error': str(e)}), 500


@features_bp.route('/api/crop-varieties/options', methods=['GET'])
@login_required
def crop_variety_options():
    try:
        from crop_catalog import get_crop_varieties_for_select
        return jsonify(get_crop_varieties_for_select())
    except Exception as e:
        logger.error(f"Error listing crop variety options: {e}")
        return jsonify({'error': str(e)}), 500


@features_bp.route('/api/crop-varieties', methods=['POST'])
@login_required
def create_crop_variety():
    try:
        from crop_catalog import create_crop_variety as _create_variety
        variety_id = _create_variety(_payload())
        return jsonify({'id': variety_id, 'message': 'Crop variety created successfully'}), 201
    except DOMAIN_ERRORS as e:
        return _domain_error(e)
    except Exception as e:
        logger.error(f"Error creating crop variety: {e}")
        return jsonify({'error': str(e)}), 500


@features_bp.route('/api/crop-varieties/<int:variety_id>', methods=['GET'])
@login_required
def get_crop_variety(variety_id):
    try:
        from crop_catalog import get_crop_variety as _get_variety
        return jsonify(_get_variety(variety_id))
    except DOMAIN_ERRORS as e:
        return _domain_error(e)
    except Exception as e:
        logger.error(f"Error getting crop variety {variety_id}: {e}")
        return jsonify({'error': str(e)}), 500


@features_bp.route('/api/crop-varieties/<int:variety_id>', methods=['PUT'])
@login_required
def update_crop_variety(variety_id):
    try:
        from crop_catalog import update_crop_variety as _update_variety
        variety = _update_variety(variety_id, _payload())
        return jsonify({'crop_variety': variety, 'message': 'Crop variety updated successfully'})
    except DOMAIN_ERRORS as e:
        return _domain_error(e)
    except Exception as e:
        logger.error(f"Error updating crop variety {variety_id}: {e}")
        return jsonify({'error': str(e)}), 500


@features_bp.route('/api/crop-varieties/<int:variety_id>', methods=['DELETE'])
@login_required
def delete_crop_variety(variety_id):
    try:
        from crop_catalog import delete_crop_variety as _delete_variety
        _delete_variety(variety_id)
        return jsonify({'message': 'Crop variety deleted successfully'})
    except DOMAIN_ERRORS as e:
        return _domain_error(e)
    except Exception as e:
        logger.error(f"Error deleting crop variety {variety_id}: {e}")
        return jsonify({'error': str(e)}), 500


# ====================================================================
# Seeds API
# ====================================================================

@features_bp.route('/api/seeds', methods=['GET'])
@login_required
def list_seeds():
    try:
        from seed_inventory import get_seeds
        return jsonify(_cached('/seeds', 'list', get_seeds))
    except Exception as e:
        logger.error(f"Error listing seeds: {e}")
        return jsonify({'error': str(e)}), 500


@features_bp.route('/api/seeds', methods=['POST'])
@login_required
def save_seed():
    try:
        from seed_inventory import upsert_seed
        seed_id = upsert_seed(_payload())
        return jsonify({'id': seed_id, 'message': 'Seed saved'}), 201
    except DOMAIN_ERRORS as e:
        return _domain_error(e)
    except Exception as e:
        logger.error(f"Error saving seed: {e}")
        return jsonify({'error': str(e)}), 500


@features_bp.route('/api/seeds/<int:seed_id>', methods=['PUT'])
@login_required
def update_seed(seed_id):
    try:
        from seed_inventory import upsert_seed
        data = dict(_payload())
        data['id'] = seed_id
        upsert_seed(data)
        return jsonify({'id': seed_id, 'message': 'Seed saved'})
    except DOMAIN_ERRORS as e:
        return _domain_error(e)
    except Exception as e:
        logger.error(f"Error updating seed {seed_id}: {e}")
        return jsonify({'error': str(e)}), 500


@features_bp.route('/api/seeds/<int:seed_id>', methods=['DELETE'])
@login_required
def delete_seed(seed_id):
    try:
        from seed_inventory import delete_seed as _delete_seed
        _delete_seed(seed_id)
        return jsonify({'message': 'Seed deleted'})
    except DOMAIN_ERRORS as e:
        return _domain_error(e)
    except Exception as e:
        logger.error(f"Error deleting seed {seed_id}: {e}")
        return jsonify({'error': str(e)}), 500


@features_bp.route('/api/seeds/sync', methods=['POST'])
@login_required
def sync_seeds():
    try:
        from seed_inventory import sync_seeds_to_varieties
        result = sync_seeds_to_varieties()
        result['message'] = f"Created {result['created']} records and linked {result['linked']} seeds."
        return jsonify(result)
    except Exception as e:
        logger.error(f"Error syncing seeds: {e}")
        return jsonify({'error': str(e)}), 500


# ====================================================================
# Plantings API
# ====================================================================

@features_bp.route('/api/plantings', methods=['GET'])
@login_required
def list_plantings():
    status = request.args.get('status') or None
    try:
        from planting_tracker import get_plantings_with_details
        return jsonify(_cached('/plantings', {'status': status},
                               lambda: get_plantings_with_details(status)))
    except ValueError as e:
        return jsonify({'error': str(e)}), 400
    except Exception as e:
        logger.error(f"Error listing plantings: {e}")
        return jsonify({'error': str(e)}), 500


@features_bp.route('/api/plantings/options', methods=['GET'])
@login_required
def planting_options():
    try:
        from planting_tracker import get_planting_options
        return jsonify(get_planting_options())
    except Exception as e:
        logger.error(f"Error getting planting options: {e}")
        return jsonify({'error': str(e)}), 500


@features_bp.route('/api/plantings/<int:planting_id>', methods=['GET'])
@login_required
def get_planting(planting_id):
    try:
        from planting_tracker import get_planting as _get_planting
        return jsonify(_get_planting(planting_id))
    except DOMAIN_ERRORS as e:
        return _domain_error(e)
    except Exception as e:
        logger.error(f"Error getting planting {planting_id}: {e}")
        return jsonify({'error': str(e)}), 500


@features_bp.route('/api/plantings/<int:planting_id>/events', methods=['GET'])
@login_required
def get_planting_events(planting_id):
    try:
        from planting_tracker import get_planting_events as _get_events
        return jsonify(_get_events(planting_id))
    except DOMAIN_ERRORS as e:
        return _domain_error(e)
    except Exception as e:
        logger.error(f"Error getting events for planting {planting_id}: {e}")
        return jsonify({'error': str(e)}), 500


@features_bp.route('/api/plantings/nursery', methods=['POST'])
@login_required
def sow_in_nursery():
    try:
        from planting_tracker import sow_in_nursery as _sow
        return jsonify(_sow(_payload(), user_id=_user_id())), 201
    except DOMAIN_ERRORS as e:
        return _domain_error(e)
    except Exception as e:
        logger.error(f"Error sowing in nursery: {e}")
        return jsonify({'error': str(e)}), 500


@features_bp.route('/api/plantings/direct-seed', methods=['POST'])
@login_required
def direct_seed():
    try:
        from planting_tracker import direct_seed as _direct_seed
        return jsonify(_direct_seed(_payload(), user_id=_user_id())), 201
    except DOMAIN_ERRORS as e:
        return _domain_error(e)
    except Exception as e:
        logger.error(f"Error direct seeding: {e}")
        return jsonify({'error': str(e)}), 500


@features_bp.route('/api/plantings/bulk-direct-seed', methods=['POST'])
@login_required
def bulk_direct_seed():
    try:
        from planting_tracker import bulk_direct_seed as _bulk_direct_seed
        result = _bulk_direct_seed(_payload(), user_id=_user_id())
        return jsonify(result), (201 if result['successes'] else 400)
    except DOMAIN_ERRORS as e:
        return _domain_error(e)
    except Exception as e:
        logger.error(f"Error bulk direct seeding: {e}")
        return jsonify({'error': str(e)}), 500


def _planting_action(planting_id, action_name):
    """Run a planting_tracker form action for the planting in the URL."""
    import planting_tracker
    data = dict(_payload())
    data['planting_id'] = planting_id
    return getattr(planting_tracker, action_name)(data, user_id=_user_id())


@features_bp.route('/api/plantings/<int:planting_id>/transplant', methods=['POST'])
@login_required
def transplant_planting(planting_id):
    try:
        return jsonify(_planting_action(planting_id, 'transplant'))
    except DOMAIN_ERRORS as e:
        return _domain_error(e)
    except Exception as e:
        logger.error(f"Error transplanting planting {planting_id}: {e}")
        return jsonify({'error': str(e)}), 500


@features_bp.route('/api/plantings/<int:planting_id>/move', methods=['POST'])
@login_required
def move_planting(planting_id):
    try:
        return jsonify(_planting_action(planting_id, 'move'))
    except DOMAIN_ERRORS as e:
        return _domain_error(e)
    except Exception as e:
        logger.error(f"Error moving planting {planting_id}: {e}")
        return jsonify({'error': str(e)}), 500


@features_bp.route('/api/plantings/<int:planting_id>/harvest', methods=['POST'])
@login_required
def harvest_planting(planting_id):
    try:
        return jsonify(_planting_action(planting_id, 'harvest'))
    except DOMAIN_ERRORS as e:
        return _domain_error(e)
    except Exception as e:
        logger.error(f"Error harvesting planting {planting_id}: {e}")
        return jsonify({'error': str(e)}), 500


@features_bp.route('/api/plantings/<int:planting_id>/remove', methods=['POST'])
@login_required
def remove_planting(planting_id):
    try:
        return jsonify(_planting_action(planting_id, 'remove'))
    except DOMAIN_ERRORS as e:
        return _domain_error(e)
    except Exception as e:
        logger.error(f"Error removing planting {planting_id}: {e}")
        return jsonify({'error': str(e)}), 500


@features_bp.route('/api/plantings/<int:planting_id>', methods=['DELETE'])
@login_required
def delete_planting(planting_id):
    try:
        from planting_tracker import delete_planting as _delete_planting
        return jsonify(_delete_planting(planting_id, user_id=_user_id()))
    except DOMAIN_ERRORS as e:
        return _domain_error(e)
    except Exception as e:
        logger.error(f"Error deleting planting {planting_id}: {e}")
        return jsonify({'error': str(e)}), 500


@features_bp.route('/api/plantings/<int:planting_id>/undo-remove', methods=['POST'])
@login_required
def undo_remove_planting(planting_id):
    try:
        from planting_tracker import undo_remove_planting as _undo
        return jsonify(_undo(planting_id))
    except DOMAIN_ERRORS as e:
        return _domain_error(e)
    except Exception as e:
        logger.error(f"Error undoing removal of planting {planting_id}: {e}")
        return jsonify({'error': str(e)}), 500


@features_bp.route('/api/plantings/<int:planting_id>/mark-planted', methods=['POST'])
@login_required
def mark_planting_as_planted(planting_id):
    try:
        from planting_tracker import mark_planting_as_planted as _mark_planted
        return jsonify(_mark_planted(planting_id))
    except DOMAIN_ERRORS as e:
        return _domain_error(e)
    except Exception as e:
        logger.error(f"Error marking planting {planting_id} as planted: {e}")
        return jsonify({'error': str(e)}), 500


# ====================================================================
# Activities API
# ====================================================================

@features_bp.route('/api/activities', methods=['GET'])
@login_required
def list_activities():
    filters = _activity_filters()
    view = request.args.get('view', 'grouped')
    sort = request.args.get('sort', 'started_at')
    direction = request.args.get('dir', 'desc')
    try:
        from activity_log import get_activities_flat, get_activities_grouped
        if view == 'flat':
            key = dict(filters, view=view, sort=sort, dir=direction)
            rows = _cached('/activities', key, lambda: get_activities_flat(filters, sort, direction))
            return jsonify({'rows': rows})
        grouped = _cached('/activities', dict(filters, view='grouped'),
                          lambda: get_activities_grouped(filters))
        return jsonify({'grouped': grouped})
    except ValueError as e:
        return jsonify({'error': str(e)}), 400
    except Exception as e:
        logger.error(f"Error listing activities: {e}")
        return jsonify({'error': str(e)}), 500


@features_bp.route('/api/activities/options', methods=['GET'])
@login_required
def activity_options():
    try:
        from activity_log import get_activity_form_options
        return jsonify(get_activity_form_options())
    except Exception as e:
        logger.error(f"Error getting activity form options: {e}")
        return jsonify({'error': str(e)}), 500


@features_bp.route('/api/activities/export', methods=['GET'])
@login_required
def export_activities():
    try:
        from activity_log import export_activities_csv
        csv_text = export_activities_csv(_activity_filters())
        return Response(csv_text, status=200, headers={
            'Content-Type': 'text/csv; charset=utf-8',
            'Content-Disposition': 'attachment; filename="activities.csv"',
            'Cache-Control': 'no-store',
        })
    except ValueError as e:
        return jsonify({'error': str(e)}), 400
    except Exception as e:
        logger.error(f"Error exporting activities: {e}")
        return jsonify({'error': str(e)}), 500


@features_bp.route('/api/activities', methods=['POST'])
@login_required
def create_activity():
    try:
        from activity_log import create_activity as _create_activity
        return jsonify(_create_activity(_payload())), 201
    except DOMAIN_ERRORS as e:
        return _domain_error(e)
    except Exception as e:
        logger.error(f"Error creating activity: {e}")
        return jsonify({'error': str(e)}), 500


@features_bp.route('/api/activities/<int:activity_id>', methods=['GET'])
@login_required
def get_activity(activity_id):
    try:
        from activity_log import get_activity as _get_activity
        return jsonify(_get_activity(activity_id))
    except DOMAIN_ERRORS as e:
        return _domain_error(e)
    except Exception as e:
        logger.error(f"Error getting activity {activity_id}: {e}")
        return jsonify({'error': str(e)}), 500


@features_bp.route('/api/activities/<int:activity_id>', methods=['PUT'])
@login_required
def update_activity(activity_id):
    try:
        from activity_log import update_activity as _update_activity
        return jsonify(_update_activity(activity_id, _payload()))
    except DOMAIN_ERRORS as e:
        return _domain_error(e)
    except Exception as e:
        logger.error(f"Error updating activity {activity_id}: {e}")
        return jsonify({'error': str(e)}), 500


@features_bp.route('/api/activities/<int:activity_id>', methods=['DELETE'])
@login_required
def delete_activity(activity_id):
    try:
        from activity_log import delete_activity as _delete_activity
        return jsonify(_delete_activity(activity_id))
    except DOMAIN_ERRORS as e:
        return _domain_error(e)
    except Exception as e:
        logger.error(f"Error deleting activity {activity_id}: {e}")
        return jsonify({'error': str(e)}), 500


@features_bp.route('/api/activities/bulk-delete', methods=['POST'])
@login_required
def delete_activities_bulk():
    try:
        from activity_log import delete_activities_bulk as _bulk_delete
        return jsonify(_bulk_delete(_payload().get('ids')))
    except DOMAIN_ERRORS as e:
        return _domain_error(e)
    except Exception as e:
        logger.error(f"Error bulk deleting activities: {e}")
        return jsonify({'error': str(e)}), 500


# ====================================================================
# Calendar & Inventory API
# ====================================================================

@features_bp.route('/api/calendar/events', methods=['GET'])
@login_required
def get_calendar_events():
    start = request.args.get('start')
    end = request.args.get('end')
    try:
        from calendar_scheduler import get_calendar_events as _get_events
        return jsonify({'events': _get_events(start, end)})
    except ValueError as e:
        return jsonify({'error': str(e)}), 400
    except Exception as e:
        logger.error(f"Error getting calendar events: {e}")
        return jsonify({'error': str(e)}), 500


@features_bp.route('/api/calendar/locations', methods=['GET'])
@login_required
def get_calendar_locations():
    try:
        from calendar_scheduler import get_calendar_locations as _get_locations
        return jsonify({'locations': _get_locations()})
    except Exception as e:
        logger.error(f"Error getting calendar locations: {e}")
        return jsonify({'error': str(e)}), 500


@features_bp.route('/api/inventory/availability', methods=['GET'])
@login_required
def inventory_availability():
    ids = [part.strip() for part in request.args.get('ids', '').split(',') if part.strip()]
    try:
        from reporting import get_inventory_availability
        return jsonify({'availability': get_inventory_availability(ids)})
    except Exception as e:
        logger.error(f"Error computing inventory availability: {e}")
        return jsonify({'error': str(e)}), 500
