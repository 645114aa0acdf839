from alembic import op
import sqlalchemy as sa

revision = "0001"
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    op.create_table(
        "reservations",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("reservation_id", sa.String(), nullable=False),
        sa.Column("store_id", sa.String(), nullable=False),
        sa.Column("service_id", sa.String(), nullable=False),
        sa.Column("service_name", sa.String(), nullable=False),
        sa.Column("service_price", sa.Numeric(10, 2), nullable=False),
        sa.Column("customer_name", sa.String(), nullable=False),
        sa.Column("customer_phone", sa.String(), nullable=False),
        sa.Column("customer_email", sa.String(), nullable=True),
        sa.Column("start", sa.DateTime(timezone=True), nullable=False),
        sa.Column("end", sa.DateTime(timezone=True), nullable=False),
        sa.Column("duration_minutes", sa.Integer(), nullable=False),
        sa.Column("status", sa.String(), nullable=False),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("reminder_sent", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint('"end" > start', name="ck_reservations_end_after_start"),
    )
    op.create_index("ix_reservations_reservation_id", "reservations", ["reservation_id"], unique=True)
    op.create_index("ix_reservations_store_id_start", "reservations", ["store_id", "start"], unique=False)
    op.create_index("ix_reservations_status", "reservations", ["status"], unique=False)
    op.create_index("ix_reservations_customer_email", "reservations", ["customer_email"], unique=False)

    # no two active reservations of a store may overlap; [) keeps back-to-back slots legal
    op.execute("CREATE EXTENSION IF NOT EXISTS btree_gist")
    op.execute(
        """
        ALTER TABLE reservations
        ADD CONSTRAINT ex_reservations_store_no_overlap
        EXCLUDE USING gist (
            store_id WITH =,
            tstzrange(start, "end", '[)') WITH &&
        )
        WHERE (status <> 'cancelled')
        """
    )


def downgrade():
    op.execute("ALTER TABLE reservations DROP CONSTRAINT IF EXISTS ex_reservations_store_no_overlap")
    op.drop_index("ix_reservations_customer_email", table_name="reservations")
    op.drop_index("ix_reservations_status", table_name="reservations")
    op.drop_index("ix_reservations_store_id_start", table_name="reservations")
    op.drop_index("ix_reservations_reservation_id", table_name="reservations")
    op.drop_table("reservations")
