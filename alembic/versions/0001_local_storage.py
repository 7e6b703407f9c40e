"""local storage table"""

from alembic import op
import sqlalchemy as sa


revision = "0001_local_storage"
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    op.create_table(
        "local_storage",
        sa.Column("key", sa.String(length=255), primary_key=True),
        sa.Column("value", sa.Text(), nullable=False),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
    )


def downgrade():
    op.drop_table("local_storage")
