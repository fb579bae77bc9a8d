"""Farm schema: users, locations, plots, beds, nurseries, crops, seeds,
plantings, planting events and activities.

Mirrors the tables the modules create through their init_*_tables()
functions so managed deployments can run `alembic upgrade head` instead.

Revision ID: 3f1c2a9b7d10
Revises:
Create Date: 2026-10-17

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

revision: str = "3f1c2a9b7d10"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _auto_pk():
    return sa.Column("id", sa.Integer, primary_key=True, autoincrement=True)


def _ts_default():
    """CURRENT_TIMESTAMP default usable on both dialects."""
    return sa.text("CURRENT_TIMESTAMP")


def _timestamps():
    return [
        sa.Column("created_at", sa.TIMESTAMP, server_default=_ts_default()),
        sa.Column("updated_at", sa.TIMESTAMP, server_default=_ts_default()),
    ]


def _partial_unique_index(name, event_types):
    where = sa.text(
        "event_type IN (" + ", ".join(f"'{t}'" for t in event_types) + ")"
    )
    op.create_index(
        name, "planting_events", ["planting_id"], unique=True,
        sqlite_where=where, postgresql_where=where,
    )


# ---------------------------------------------------------------------------
# upgrade
# ---------------------------------------------------------------------------

def upgrade() -> None:
    op.create_table(
        "users",
        _auto_pk(),
        sa.Column("email", sa.Text, nullable=False, unique=True),
        sa.Column("password_hash", sa.Text, nullable=False),
        sa.Column("name", sa.Text, nullable=False),
        sa.Column("role", sa.Text, nullable=False, server_default="member"),
        sa.Column("is_active", sa.Integer, nullable=False, server_default=sa.text("1")),
        sa.Column("created_at", sa.TIMESTAMP, server_default=_ts_default()),
        sa.Column("last_login", sa.TIMESTAMP),
    )

    op.create_table(
        "locations",
        _auto_pk(),
        sa.Column("name", sa.Text, nullable=False),
        sa.Column("street", sa.Text),
        sa.Column("city", sa.Text),
        sa.Column("state", sa.Text),
        sa.Column("zip", sa.Text),
        sa.Column("latitude", sa.Float),
        sa.Column("longitude", sa.Float),
        sa.Column("timezone", sa.Text),
        sa.Column("notes", sa.Text),
        *_timestamps(),
        sa.CheckConstraint("latitude IS NULL OR (latitude >= -90 AND latitude <= 90)",
                           name="locations_latitude_range"),
        sa.CheckConstraint("longitude IS NULL OR (longitude >= -180 AND longitude <= 180)",
                           name="locations_longitude_range"),
    )

    op.create_table(
        "plots",
        _auto_pk(),
        sa.Column("location_id", sa.Integer, sa.ForeignKey("locations.id"), nullable=False),
        sa.Column("name", sa.Text, nullable=False),
        sa.Column("created_at", sa.TIMESTAMP, server_default=_ts_default()),
    )
    op.create_index("idx_plots_location", "plots", ["location_id"])

    op.create_table(
        "beds",
        _auto_pk(),
        sa.Column("plot_id", sa.Integer, sa.ForeignKey("plots.id", ondelete="CASCADE"), nullable=False),
        sa.Column("name", sa.Text),
        sa.Column("length_inches", sa.Integer),
        sa.Column("width_inches", sa.Integer),
        sa.Column("created_at", sa.TIMESTAMP, server_default=_ts_default()),
        sa.CheckConstraint("length_inches IS NULL OR length_inches > 0", name="beds_length_positive"),
        sa.CheckConstraint("width_inches IS NULL OR width_inches > 0", name="beds_width_positive"),
    )
    op.create_index("idx_beds_plot", "beds", ["plot_id"])

    op.create_table(
        "nurseries",
        _auto_pk(),
        sa.Column("location_id", sa.Integer, sa.ForeignKey("locations.id"), nullable=False),
        sa.Column("name", sa.Text, nullable=False),
        sa.Column("notes", sa.Text),
        sa.Column("created_at", sa.TIMESTAMP, server_default=_ts_default()),
    )
    op.create_index("idx_nurseries_location", "nurseries", ["location_id"])

    op.create_table(
        "crops",
        _auto_pk(),
        sa.Column("name", sa.Text, nullable=False),
        sa.Column("crop_type", sa.Text, nullable=False, server_default="Vegetable"),
        sa.Column("created_at", sa.TIMESTAMP, server_default=_ts_default()),
        sa.CheckConstraint("crop_type IN ('Vegetable', 'Fruit', 'Windbreak', 'Covercrop')",
                           name="crops_crop_type"),
    )

    op.create_table(
        "crop_varieties",
        _auto_pk(),
        sa.Column("crop_id", sa.Integer, sa.ForeignKey("crops.id"), nullable=False),
        sa.Column("name", sa.Text, nullable=False),
        sa.Column("latin_name", sa.Text, nullable=False),
        sa.Column("is_organic", sa.Integer, nullable=False, server_default=sa.text("0")),
        sa.Column("notes", sa.Text),
        sa.Column("dtm_direct_seed_min", sa.Integer, nullable=False, server_default=sa.text("0")),
        sa.Column("dtm_direct_seed_max", sa.Integer, nullable=False, server_default=sa.text("0")),
        sa.Column("dtm_transplant_min", sa.Integer, nullable=False, server_default=sa.text("0")),
        sa.Column("dtm_transplant_max", sa.Integer, nullable=False, server_default=sa.text("0")),
        sa.Column("plant_spacing_min", sa.Integer),
        sa.Column("plant_spacing_max", sa.Integer),
        sa.Column("row_spacing_min", sa.Integer),
        sa.Column("row_spacing_max", sa.Integer),
        *_timestamps(),
        sa.CheckConstraint(
            "dtm_direct_seed_min >= 0 AND dtm_direct_seed_max >= 0 "
            "AND dtm_transplant_min >= 0 AND dtm_transplant_max >= 0",
            name="crop_varieties_dtm_non_negative",
        ),
    )
    op.create_index("idx_crop_varieties_crop", "crop_varieties", ["crop_id"])

    op.create_table(
        "seeds",
        _auto_pk(),
        sa.Column("crop_variety_id", sa.Integer, sa.ForeignKey("crop_varieties.id")),
        sa.Column("crop_name", sa.Text),
        sa.Column("variety_name", sa.Text),
        sa.Column("vendor", sa.Text),
        sa.Column("lot_number", sa.Text),
        sa.Column("date_received", sa.Text),
        sa.Column("quantity", sa.Integer),
        sa.Column("quantity_units", sa.Text),
        sa.Column("notes", sa.Text),
        sa.Column("created_at", sa.TIMESTAMP, server_default=_ts_default()),
        sa.CheckConstraint("quantity IS NULL OR quantity >= 0", name="seeds_quantity_non_negative"),
    )
    op.create_index("idx_seeds_variety", "seeds", ["crop_variety_id"])

    op.create_table(
        "plantings",
        _auto_pk(),
        sa.Column("crop_variety_id", sa.Integer, sa.ForeignKey("crop_varieties.id"), nullable=False),
        sa.Column("status", sa.Text, nullable=False),
        sa.Column("nursery_id", sa.Integer, sa.ForeignKey("nurseries.id")),
        sa.Column("bed_id", sa.Integer, sa.ForeignKey("beds.id")),
        sa.Column("nursery_started_date", sa.Text),
        sa.Column("planted_date", sa.Text),
        sa.Column("ended_date", sa.Text),
        sa.Column("notes", sa.Text),
        *_timestamps(),
        sa.CheckConstraint("status IN ('nursery', 'planted', 'harvested', 'removed')",
                           name="plantings_status"),
        sa.CheckConstraint(
            "status <> 'nursery' OR (bed_id IS NULL AND planted_date IS NULL AND nursery_id IS NOT NULL)",
            name="plantings_nursery_stage",
        ),
        sa.CheckConstraint(
            "status NOT IN ('planted', 'harvested') OR (bed_id IS NOT NULL AND planted_date IS NOT NULL)",
            name="plantings_in_ground",
        ),
        sa.CheckConstraint("status NOT IN ('harvested', 'removed') OR ended_date IS NOT NULL",
                           name="plantings_terminal_has_end"),
        sa.CheckConstraint("status NOT IN ('nursery', 'planted') OR ended_date IS NULL",
                           name="plantings_active_has_no_end"),
    )
    op.create_index("idx_plantings_status", "plantings", ["status"])
    op.create_index("idx_plantings_nursery_day", "plantings", ["nursery_id", "nursery_started_date"])
    op.create_index("idx_plantings_bed_day", "plantings", ["bed_id", "planted_date"])

    op.create_table(
        "planting_events",
        _auto_pk(),
        sa.Column("planting_id", sa.Integer, sa.ForeignKey("plantings.id", ondelete="CASCADE"),
                  nullable=False),
        sa.Column("event_type", sa.Text, nullable=False),
        sa.Column("event_date", sa.Text, nullable=False),
        sa.Column("bed_id", sa.Integer, sa.ForeignKey("beds.id")),
        sa.Column("nursery_id", sa.Integer, sa.ForeignKey("nurseries.id")),
        sa.Column("qty", sa.Integer),
        sa.Column("weight_grams", sa.Integer),
        sa.Column("payload", sa.Text),
        sa.Column("created_by", sa.Integer),
        sa.Column("created_at", sa.TIMESTAMP, server_default=_ts_default()),
        sa.CheckConstraint(
            "event_type IN ('nursery_seeded', 'direct_seeded', 'transplanted', 'moved', 'harvested', 'removed')",
            name="planting_events_event_type",
        ),
        sa.CheckConstraint("qty IS NULL OR qty >= 0", name="planting_events_qty_non_negative"),
        sa.CheckConstraint("weight_grams IS NULL OR weight_grams >= 0",
                           name="planting_events_weight_non_negative"),
        sa.CheckConstraint("event_type <> 'nursery_seeded' OR nursery_id IS NOT NULL",
                           name="nursery_seeded_has_nursery"),
        sa.CheckConstraint(
            "event_type NOT IN ('direct_seeded', 'transplanted', 'moved') OR bed_id IS NOT NULL",
            name="bed_events_have_bed",
        ),
        sa.CheckConstraint(
            "event_type <> 'harvested' OR COALESCE(qty, 0) > 0 OR COALESCE(weight_grams, 0) > 0",
            name="harvested_requires_measure",
        ),
        sa.CheckConstraint(
            "event_type <> 'removed' OR ((bed_id IS NULL) <> (nursery_id IS NULL))",
            name="removed_has_one_context",
        ),
    )
    _partial_unique_index("uq_planting_events_initial", ("nursery_seeded", "direct_seeded"))
    _partial_unique_index("uq_planting_events_terminal", ("harvested", "removed"))
    op.create_index("idx_planting_events_planting", "planting_events", ["planting_id", "event_date"])

    op.create_table(
        "activities",
        _auto_pk(),
        sa.Column("activity_type", sa.Text, nullable=False),
        sa.Column("started_at", sa.Text, nullable=False),
        sa.Column("ended_at", sa.Text),
        sa.Column("duration_minutes", sa.Integer),
        sa.Column("labor_hours", sa.Float),
        sa.Column("location_id", sa.Integer, sa.ForeignKey("locations.id", ondelete="SET NULL")),
        sa.Column("plot_id", sa.Integer, sa.ForeignKey("plots.id", ondelete="SET NULL")),
        sa.Column("bed_id", sa.Integer, sa.ForeignKey("beds.id", ondelete="SET NULL")),
        sa.Column("nursery_id", sa.Integer, sa.ForeignKey("nurseries.id", ondelete="SET NULL")),
        sa.Column("crop", sa.Text),
        sa.Column("asset_id", sa.Text),
        sa.Column("asset_name", sa.Text),
        sa.Column("quantity", sa.Float),
        sa.Column("unit", sa.Text),
        sa.Column("cost", sa.Float),
        sa.Column("notes", sa.Text),
        sa.Column("weather", sa.Text),
        *_timestamps(),
        sa.CheckConstraint(
            "activity_type IN ('irrigation', 'soil_amendment', 'pest_management', 'asset_maintenance')",
            name="activities_activity_type",
        ),
        sa.CheckConstraint("duration_minutes IS NULL OR duration_minutes >= 0",
                           name="activities_duration_non_negative"),
        sa.CheckConstraint("labor_hours IS NULL OR labor_hours >= 0",
                           name="activities_labor_non_negative"),
    )
    op.create_index("idx_activities_type_started", "activities", ["activity_type", "started_at"])
    op.create_index("idx_activities_location", "activities", ["location_id"])

    op.create_table(
        "activities_soil_amendments",
        _auto_pk(),
        sa.Column("activity_id", sa.Integer, sa.ForeignKey("activities.id", ondelete="CASCADE"),
                  nullable=False),
        sa.Column("name", sa.Text, nullable=False),
        sa.Column("quantity", sa.Float),
        sa.Column("unit", sa.Text),
        sa.Column("notes", sa.Text),
        sa.Column("created_at", sa.TIMESTAMP, server_default=_ts_default()),
    )
    op.create_index("idx_asa_activity_id", "activities_soil_amendments", ["activity_id"])


# ---------------------------------------------------------------------------
# downgrade
# ---------------------------------------------------------------------------

def downgrade() -> None:
    # Drop in reverse dependency order.
    tables = [
        "activities_soil_amendments",
        "activities",
        "planting_events",
        "plantings",
        "seeds",
        "crop_varieties",
        "crops",
        "nurseries",
        "beds",
        "plots",
        "locations",
        "users",
    ]
    for table in tables:
        op.drop_table(table)
