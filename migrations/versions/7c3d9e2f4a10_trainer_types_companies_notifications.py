"""trainer_types_companies_notifications

Trainer type qualifications, open-course companies, and the trainer
columns behind booking notifications and insurance reminders.

Revision ID: 7c3d9e2f4a10
Revises: 5b1e0c7a9d21
Create Date: 2026-10-19 15:00:00.000000
"""

from alembic import op
import sqlalchemy as sa


revision = "7c3d9e2f4a10"
down_revision = "5b1e0c7a9d21"
branch_labels = None
depends_on = None


def _table_names(bind) -> set[str]:
    insp = sa.inspect(bind)
    return set(insp.get_table_names())


def _columns(bind, table_name: str) -> set[str]:
    insp = sa.inspect(bind)
    return {c["name"] for c in insp.get_columns(table_name)}


def _indexes(bind, table_name: str) -> set[str]:
    insp = sa.inspect(bind)
    return {i["name"] for i in insp.get_indexes(table_name) if i.get("name")}


def _add_fk_column(bind, table, column, target, fk_name):
    if table not in _table_names(bind):
        return
    with op.batch_alter_table(table) as batch_op:
        if column not in _columns(bind, table):
            batch_op.add_column(sa.Column(column, sa.Integer(), nullable=True))
            try:
                batch_op.create_foreign_key(fk_name, target, [column], ["id"], ondelete="SET NULL")
            except Exception:
                pass
    index_name = f"ix_{table}_{column}"
    if index_name not in _indexes(bind, table):
        op.create_index(index_name, table, [column])


def upgrade():
    bind = op.get_bind()
    tables = _table_names(bind)

    if "trainer_types" not in tables:
        op.create_table(
            "trainer_types",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("name", sa.String(length=200), nullable=False),
            sa.Column("description", sa.Text(), nullable=True),
            sa.Column("sort_order", sa.Integer(), nullable=False, server_default="0"),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("name", name="uq_trainer_types_name"),
        )

    if "trainer_trainer_types" not in tables:
        op.create_table(
            "trainer_trainer_types",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("trainer_id", sa.Integer(), nullable=False),
            sa.Column("trainer_type_id", sa.Integer(), nullable=False),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
            sa.ForeignKeyConstraint(["trainer_id"], ["trainers.id"], ondelete="CASCADE"),
            sa.ForeignKeyConstraint(["trainer_type_id"], ["trainer_types.id"], ondelete="CASCADE"),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("trainer_id", "trainer_type_id", name="uq_trainer_trainer_type"),
        )
        op.create_index("ix_trainer_trainer_types_trainer_id", "trainer_trainer_types", ["trainer_id"])
        op.create_index("ix_trainer_trainer_types_trainer_type_id", "trainer_trainer_types",
                        ["trainer_type_id"])

    if "open_course_companies" not in tables:
        op.create_table(
            "open_course_companies",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("name", sa.String(length=200), nullable=False),
            sa.Column("contact_name", sa.String(length=200), nullable=True),
            sa.Column("email", sa.String(length=255), nullable=True),
            sa.Column("telephone", sa.String(length=50), nullable=True),
            sa.Column("address1", sa.String(length=200), nullable=True),
            sa.Column("address2", sa.String(length=200), nullable=True),
            sa.Column("town", sa.String(length=100), nullable=True),
            sa.Column("postcode", sa.String(length=20), nullable=True),
            sa.Column("notes", sa.Text(), nullable=True),
            sa.Column("active", sa.Boolean(), nullable=False, server_default=sa.true()),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_open_course_companies_name", "open_course_companies", ["name"])

    if "trainers" in tables:
        cols = _columns(bind, "trainers")
        with op.batch_alter_table("trainers") as batch_op:
            if "receive_booking_notifications" not in cols:
                batch_op.add_column(sa.Column("receive_booking_notifications", sa.Boolean(),
                                              nullable=False, server_default=sa.true()))
            if "insurance_expiry" not in cols:
                batch_op.add_column(sa.Column("insurance_expiry", sa.Date(), nullable=True))
            if "insurance_reminder_sent_at" not in cols:
                batch_op.add_column(sa.Column("insurance_reminder_sent_at",
                                              sa.DateTime(timezone=True), nullable=True))

    _add_fk_column(bind, "course_types", "trainer_type_id", "trainer_types",
                   "fk_course_types_trainer_type_id_trainer_types")
    _add_fk_column(bind, "open_course_delegates", "company_id", "open_course_companies",
                   "fk_open_course_delegates_company_id_open_course_companies")


def _drop_fk_column(bind, table, column, fk_name):
    if table not in _table_names(bind):
        return
    try:
        op.drop_index(f"ix_{table}_{column}", table_name=table)
    except Exception:
        pass
    with op.batch_alter_table(table) as batch_op:
        try:
            batch_op.drop_constraint(fk_name, type_="foreignkey")
        except Exception:
            pass
        try:
            batch_op.drop_column(column)
        except Exception:
            pass


def downgrade():
    bind = op.get_bind()

    _drop_fk_column(bind, "open_course_delegates", "company_id",
                    "fk_open_course_delegates_company_id_open_course_companies")
    _drop_fk_column(bind, "course_types", "trainer_type_id",
                    "fk_course_types_trainer_type_id_trainer_types")

    if "trainers" in _table_names(bind):
        with op.batch_alter_table("trainers") as batch_op:
            for column in ("insurance_reminder_sent_at", "insurance_expiry",
                           "receive_booking_notifications"):
                try:
                    batch_op.drop_column(column)
                except Exception:
                    pass

    tables = _table_names(bind)
    for table in ("open_course_companies", "trainer_trainer_types", "trainer_types"):
        if table in tables:
            op.drop_table(table)
