"""initial schema

Revision ID: 001
Revises:
Create Date: 2026-10-19 12:00:00

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import JSONB

# revision identifiers, used by Alembic.
revision: str = '001'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
    ]


def upgrade() -> None:
    # Create cinemas table
    op.create_table(
        'cinemas',
        sa.Column('id', sa.String(length=100), nullable=False),
        sa.Column('name', sa.String(length=200), nullable=False),
        sa.Column('chain', sa.String(length=100), nullable=True),
        sa.Column('website', sa.String(length=500), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='true'),
        sa.Column('scraper_type', sa.String(length=50), nullable=False),
        sa.Column('scraper_config', JSONB(), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_cinemas_chain'), 'cinemas', ['chain'], unique=False)

    # Create films table
    op.create_table(
        'films',
        sa.Column('id', sa.String(length=100), nullable=False),
        sa.Column('title', sa.String(length=500), nullable=False),
        sa.Column('year', sa.Integer(), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_films_title'), 'films', ['title'], unique=False)

    # Create film_aliases table
    op.create_table(
        'film_aliases',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('normalized_title', sa.String(length=500), nullable=False),
        sa.Column('film_id', sa.String(length=100), nullable=False),
        *_timestamps(),
        sa.ForeignKeyConstraint(['film_id'], ['films.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('normalized_title', name='uq_normalized_title')
    )
    op.create_index(op.f('ix_film_aliases_film_id'), 'film_aliases', ['film_id'], unique=False)
    op.create_index(op.f('ix_film_aliases_normalized_title'), 'film_aliases', ['normalized_title'], unique=False)

    # Create screenings table
    op.create_table(
        'screenings',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('film_id', sa.String(length=100), nullable=False),
        sa.Column('cinema_id', sa.String(length=100), nullable=False),
        sa.Column('start_time', sa.DateTime(timezone=True), nullable=False),
        sa.Column('screen_name', sa.String(length=100), nullable=True),
        sa.Column('format_tags', sa.String(length=200), nullable=True),
        sa.Column('event_type', sa.String(length=50), nullable=True),
        sa.Column('event_description', sa.Text(), nullable=True),
        sa.Column('booking_url', sa.String(length=1000), nullable=True),
        sa.Column('has_subtitles', sa.Boolean(), nullable=False, server_default='false'),
        sa.Column('has_audio_description', sa.Boolean(), nullable=False, server_default='false'),
        sa.Column('is_relaxed', sa.Boolean(), nullable=False, server_default='false'),
        sa.Column('link_status', sa.String(length=20), nullable=False, server_default='unchecked'),
        sa.Column('link_checked_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('source_id', sa.String(length=200), nullable=True),
        sa.Column('raw_title', sa.Text(), nullable=True),
        sa.Column('first_seen_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('last_updated_at', sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(['cinema_id'], ['cinemas.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['film_id'], ['films.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('film_id', 'cinema_id', 'start_time', name='uq_screening_film_cinema_time')
    )
    op.create_index(op.f('ix_screenings_cinema_id'), 'screenings', ['cinema_id'], unique=False)
    op.create_index(op.f('ix_screenings_film_id'), 'screenings', ['film_id'], unique=False)
    op.create_index(op.f('ix_screenings_start_time'), 'screenings', ['start_time'], unique=False)
    op.create_index(op.f('ix_screenings_source_id'), 'screenings', ['source_id'], unique=False)

    # Create scraper_runs table
    op.create_table(
        'scraper_runs',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('cinema_id', sa.String(length=100), nullable=False),
        sa.Column('triggered_by', sa.String(length=100), nullable=False),
        sa.Column('started_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('completed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('status', sa.String(length=20), nullable=False),
        sa.Column('screening_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('baseline_count', sa.Integer(), nullable=True),
        sa.Column('anomaly_type', sa.String(length=20), nullable=True),
        sa.Column('anomaly_details', JSONB(), nullable=True),
        sa.Column('auto_fixed', sa.Boolean(), nullable=False, server_default='false'),
        sa.Column('auto_retried', sa.Boolean(), nullable=False, server_default='false'),
        sa.Column('fixed_by_ai', sa.Boolean(), nullable=False, server_default='false'),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('run_metadata', JSONB(), nullable=True),
        sa.CheckConstraint(
            "status != 'anomaly' OR anomaly_type IS NOT NULL",
            name='ck_scraper_runs_anomaly_has_type',
        ),
        sa.ForeignKeyConstraint(['cinema_id'], ['cinemas.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_scraper_runs_cinema_id'), 'scraper_runs', ['cinema_id'], unique=False)
    op.create_index(op.f('ix_scraper_runs_started_at'), 'scraper_runs', ['started_at'], unique=False)

    # Create cinema_baselines table
    op.create_table(
        'cinema_baselines',
        sa.Column('cinema_id', sa.String(length=100), nullable=False),
        sa.Column('tier', sa.String(length=20), nullable=False, server_default='standard'),
        sa.Column('weekday_avg', sa.Float(), nullable=True),
        sa.Column('weekend_avg', sa.Float(), nullable=True),
        sa.Column('tolerance_percent', sa.Float(), nullable=True),
        sa.Column('manual_override', sa.Boolean(), nullable=False, server_default='false'),
        sa.Column('last_calculated', sa.DateTime(timezone=True), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(['cinema_id'], ['cinemas.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('cinema_id')
    )


def downgrade() -> None:
    op.drop_table('cinema_baselines')
    op.drop_table('scraper_runs')
    op.drop_table('screenings')
    op.drop_table('film_aliases')
    op.drop_table('films')
    op.drop_table('cinemas')
