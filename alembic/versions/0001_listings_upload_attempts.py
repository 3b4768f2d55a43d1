from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

revision = "0001_listings_upload_attempts"
down_revision = None
branch_labels = None
depends_on = None


def _jsonb():
    return postgresql.JSONB(astext_type=sa.Text())


def upgrade():
    op.create_table(
        "listings",
        sa.Column("id", sa.String(), primary_key=True),
        sa.Column("user_id", sa.String(), nullable=True),

        sa.Column("kind", sa.String(length=20), nullable=False, server_default="property"),
        sa.Column("purpose", sa.String(length=10), nullable=False, server_default="sale"),

        sa.Column("title", sa.Text(), nullable=False),
        sa.Column("description", sa.Text(), nullable=False, server_default=""),
        sa.Column("price", sa.Numeric(14, 2), nullable=True),
        sa.Column("currency", sa.String(length=3), nullable=False, server_default="EUR"),

        sa.Column("bedrooms", sa.Integer(), nullable=True),
        sa.Column("bathrooms", sa.Numeric(4, 1), nullable=True),
        sa.Column("covered_area", sa.Numeric(10, 2), nullable=True),
        sa.Column("land_size", sa.Numeric(12, 2), nullable=True),
        sa.Column("year_built", sa.Integer(), nullable=True),

        sa.Column("address", _jsonb(), nullable=True),
        sa.Column("coordinates", _jsonb(), nullable=True),
        sa.Column("attributes", _jsonb(), nullable=False, server_default=sa.text("'{}'::jsonb")),

        sa.Column("region", sa.String(length=80), nullable=True),
        sa.Column("relationships", _jsonb(), nullable=False, server_default=sa.text("'{}'::jsonb")),
        sa.Column("image_urls", _jsonb(), nullable=False, server_default=sa.text("'[]'::jsonb")),

        sa.Column("owner_phone", sa.String(length=64), nullable=True),
        sa.Column("owner_email", sa.String(length=255), nullable=True),
        sa.Column("title_deed_number", sa.String(length=50), nullable=True),
        sa.Column("submitter_email", sa.String(length=255), nullable=True),
        sa.Column("submitter_external_id", sa.String(length=80), nullable=True),

        sa.Column("status", sa.String(length=20), nullable=False, server_default="draft"),
        sa.Column("reference_id", sa.String(length=80), nullable=True),
        sa.Column("external_id", sa.String(length=80), nullable=True),
        sa.Column("external_url", sa.Text(), nullable=True),
        sa.Column("published_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("dispatched_at", sa.DateTime(timezone=True), nullable=True),

        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )
    op.create_index("ix_listings_user_id", "listings", ["user_id"])
    op.create_index("ix_listings_status", "listings", ["status"])

    op.create_table(
        "listing_upload_attempts",
        sa.Column("id", sa.String(), primary_key=True),
        sa.Column("listing_id", sa.String(), sa.ForeignKey("listings.id"), nullable=False),
        sa.Column("attempt_number", sa.Integer(), nullable=False),

        sa.Column("status", sa.String(length=20), nullable=False),
        sa.Column("error_code", sa.String(length=80), nullable=True),
        sa.Column("error_message", sa.Text(), nullable=True),
        sa.Column("raw_response", _jsonb(), nullable=True),

        sa.Column("started_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("duration_ms", sa.Integer(), nullable=True),

        sa.UniqueConstraint("listing_id", "attempt_number", name="uq_upload_attempt_number"),
    )
    op.create_index("ix_listing_upload_attempts_listing_id", "listing_upload_attempts", ["listing_id"])


def downgrade():
    op.drop_index("ix_listing_upload_attempts_listing_id", table_name="listing_upload_attempts")
    op.drop_table("listing_upload_attempts")
    op.drop_index("ix_listings_status", table_name="listings")
    op.drop_index("ix_listings_user_id", table_name="listings")
    op.drop_table("listings")
