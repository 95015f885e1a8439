"""create substitution_json and logs

Revision ID: 0001
Revises:
Create Date: 2022-01-23 18:44:33

"""
import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

revision = "0001"
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    op.create_table(
        "substitution_json",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("hash", sa.String(), nullable=False, unique=True),
        sa.Column("pdf_date", sa.DateTime(), nullable=False),
        sa.Column("insertion_time", sa.DateTime(), nullable=True),
        sa.Column("json", sa.JSON().with_variant(postgresql.JSONB(), "postgresql"), nullable=True),
    )
    op.create_table(
        "logs",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("timestamp", sa.DateTime(), server_default=sa.func.now()),
        sa.Column("level", sa.String(), nullable=True),
        sa.Column("message", sa.String(), nullable=True),
    )
    op.create_index("ix_logs_id", "logs", ["id"])


def downgrade():
    op.drop_index("ix_logs_id", table_name="logs")
    op.drop_table("logs")
    op.drop_table("substitution_json")
