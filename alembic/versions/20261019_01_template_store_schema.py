"""Template store association schema."""

from __future__ import annotations

from alembic import op
import sqlalchemy as sa


revision = "20261019_01"
down_revision = None
branch_labels = None
depends_on = None

STORE_ROLES = ("Primary", "Image", "ImageCache", "Backup")
OBJECT_STATES = (
    "Allocated",
    "Creating",
    "Created",
    "Ready",
    "Copying",
    "Migrating",
    "Destroying",
    "Destroyed",
    "Failed",
)
DOWNLOAD_STATUSES = (
    "UNKNOWN",
    "NOT_DOWNLOADED",
    "DOWNLOAD_IN_PROGRESS",
    "DOWNLOADED",
    "DOWNLOAD_ERROR",
    "ABANDONED",
    "UPLOAD_IN_PROGRESS",
    "UPLOADED",
    "UPLOAD_ERROR",
    "BYPASSED",
)


def _enum(name: str, values: tuple[str, ...]) -> sa.Enum:
    return sa.Enum(*values, name=name, native_enum=False, length=32)


def upgrade() -> None:
    op.create_table(
        "template_store_ref",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("template_id", sa.Integer(), nullable=False),
        sa.Column("store_id", sa.Integer(), nullable=False),
        sa.Column("store_role", _enum("datastorerole", STORE_ROLES), nullable=False),
        sa.Column("state", _enum("objectinstorestate", OBJECT_STATES), nullable=False),
        sa.Column("download_state", _enum("downloadstatus", DOWNLOAD_STATUSES)),
        sa.Column("download_percent", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("download_url", sa.String(length=2048)),
        sa.Column("error_string", sa.Text()),
        sa.Column("install_path", sa.String(length=512)),
        sa.Column("size", sa.BigInteger()),
        sa.Column("physical_size", sa.BigInteger()),
        sa.Column("ref_cnt", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("destroyed", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("updated_count", sa.BigInteger(), nullable=False, server_default="0"),
        sa.Column(
            "created",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("CURRENT_TIMESTAMP"),
        ),
        sa.Column("updated", sa.DateTime(timezone=True)),
        sa.CheckConstraint("ref_cnt >= 0", name="ck_template_store_ref_ref_cnt_non_negative"),
    )
    op.create_index(
        "ix_template_store_ref_store_template", "template_store_ref", ["store_id", "template_id"]
    )
    op.create_index(
        "ix_template_store_ref_template_role", "template_store_ref", ["template_id", "store_role"]
    )

    op.create_table(
        "image_store",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("role", _enum("datastorerole", STORE_ROLES), nullable=False),
        sa.Column("zone_id", sa.Integer()),
        sa.Column(
            "created",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("CURRENT_TIMESTAMP"),
        ),
    )
    op.create_index("ix_image_store_zone_id", "image_store", ["zone_id"])

    op.create_table(
        "vm_template",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("cross_zones", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column(
            "created",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("CURRENT_TIMESTAMP"),
        ),
    )

    op.create_table(
        "template_zone_ref",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("template_id", sa.Integer(), nullable=False),
        sa.Column("zone_id", sa.Integer()),
        sa.Column(
            "created",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("CURRENT_TIMESTAMP"),
        ),
        sa.Column(
            "last_updated",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("CURRENT_TIMESTAMP"),
        ),
    )
    op.create_index("ix_template_zone_ref_template_id", "template_zone_ref", ["template_id"])


def downgrade() -> None:
    op.drop_index("ix_template_zone_ref_template_id", table_name="template_zone_ref")
    op.drop_table("template_zone_ref")
    op.drop_table("vm_template")
    op.drop_index("ix_image_store_zone_id", table_name="image_store")
    op.drop_table("image_store")
    op.drop_index("ix_template_store_ref_template_role", table_name="template_store_ref")
    op.drop_index("ix_template_store_ref_store_template", table_name="template_store_ref")
    op.drop_table("template_store_ref")
