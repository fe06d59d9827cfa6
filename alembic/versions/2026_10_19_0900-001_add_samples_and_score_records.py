"""Add samples and score_records tables

Revision ID: 001
Revises:
Create Date: 2026-10-19 09:00:00.000000

"""
from typing import Sequence, Union

import sqlalchemy as sa
import sqlmodel
from alembic import op

# revision identifiers, used by Alembic.
revision: str = '001'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Create samples and score_records tables."""
    op.create_table('samples', sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('metric_type', sqlmodel.sql.sqltypes.AutoString(length=32), nullable=False),
        sa.Column('start', sa.DateTime(), nullable=False),
        sa.Column('end', sa.DateTime(), nullable=False),
        sa.Column('value', sa.Float(), nullable=True),
        sa.Column('stage', sqlmodel.sql.sqltypes.AutoString(length=32), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('id'))
    op.create_index(op.f('ix_samples_metric_type'), 'samples', ['metric_type'], unique=False)
    op.create_index(op.f('ix_samples_start'), 'samples', ['start'], unique=False)

    op.create_table('score_records', sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('date', sa.Date(), nullable=False),
        sa.Column('kind', sqlmodel.sql.sqltypes.AutoString(length=16), nullable=False),
        sa.Column('final_score', sa.Integer(), nullable=False),
        sa.Column('components', sa.JSON(), nullable=False),
        sa.Column('directive', sqlmodel.sql.sqltypes.AutoString(), nullable=False),
        sa.Column('key_findings', sa.JSON(), nullable=False),
        sa.Column('baseline_snapshot', sa.JSON(), nullable=False),
        sa.Column('session_start', sa.DateTime(), nullable=False),
        sa.Column('session_end', sa.DateTime(), nullable=False),
        sa.Column('computed_at', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('date', 'kind', name='uq_score_date_kind'))
    op.create_index(op.f('ix_score_records_date'), 'score_records', ['date'], unique=False)


def downgrade() -> None:
    """Drop samples and score_records tables."""
    op.drop_index(op.f('ix_score_records_date'), table_name='score_records')
    op.drop_table('score_records')
    op.drop_index(op.f('ix_samples_start'), table_name='samples')
    op.drop_index(op.f('ix_samples_metric_type'), table_name='samples')
    op.drop_table('samples')
