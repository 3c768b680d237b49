"""initial schema

Revision ID: 001
Revises:
Create Date: 2026-10-19 09:00:00

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import ARRAY

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
        sa.Column('address', sa.Text(), nullable=True),
        sa.Column('postcode', sa.String(length=20), nullable=True),
        sa.Column('website', sa.String(length=500), nullable=True),
        sa.Column('features', ARRAY(sa.String()), nullable=True),
        sa.Column('scrape_strategy', sa.String(length=20), nullable=False),
        sa.Column('last_scraped_at', sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id')
    )

    # Create films table
    op.create_table(
        'films',
        sa.Column('id', sa.String(length=100), nullable=False),
        sa.Column('title', sa.String(length=500), nullable=False),
        sa.Column('year', sa.Integer(), nullable=True),
        sa.Column('tmdb_id', sa.Integer(), nullable=True),
        sa.Column('imdb_id', sa.String(length=20), nullable=True),
        sa.Column('directors', ARRAY(sa.String()), nullable=True),
        sa.Column('genres', ARRAY(sa.String()), nullable=True),
        sa.Column('countries', ARRAY(sa.String()), nullable=True),
        sa.Column('overview', sa.Text(), nullable=True),
        sa.Column('runtime', sa.Integer(), nullable=True),
        sa.Column('poster_url', sa.String(length=500), nullable=True),
        sa.Column('backdrop_url', sa.String(length=500), nullable=True),
        sa.Column('match_confidence', sa.Float(), nullable=True),
        sa.Column('match_strategy', sa.String(length=20), nullable=True),
        sa.Column('matched_at', sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_films_title'), 'films', ['title'], unique=False)
    op.create_index(op.f('ix_films_tmdb_id'), 'films', ['tmdb_id'], unique=True)

    # Create screenings table
    op.create_table(
        'screenings',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('cinema_id', sa.String(length=100), nullable=False),
        sa.Column('film_id', sa.String(length=100), nullable=False),
        sa.Column('start_time', sa.DateTime(timezone=True), nullable=False),
        sa.Column('screen', sa.String(length=100), nullable=True),
        sa.Column('format', sa.String(length=50), nullable=True),
        sa.Column('event_type', sa.String(length=50), nullable=True),
        sa.Column('event_description', sa.Text(), nullable=True),
        sa.Column('booking_url', sa.String(length=1000), nullable=False),
        sa.Column('availability', sa.String(length=20), nullable=True),
        sa.Column('is_sold_out', sa.Boolean(), nullable=False, server_default='false'),
        sa.Column('source_id', sa.String(length=300), nullable=True),
        sa.Column('festival_slug', sa.String(length=100), nullable=True),
        sa.Column('raw_title', sa.Text(), nullable=True),
        sa.Column('manually_edited', sa.Boolean(), nullable=False, server_default='false'),
        sa.Column('edited_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('scraped_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        *_timestamps(),
        sa.ForeignKeyConstraint(['cinema_id'], ['cinemas.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['film_id'], ['films.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('cinema_id', 'film_id', 'start_time', name='uq_venue_film_time')
    )
    op.create_index(op.f('ix_screenings_cinema_id'), 'screenings', ['cinema_id'], unique=False)
    op.create_index(op.f('ix_screenings_film_id'), 'screenings', ['film_id'], unique=False)
    op.create_index(op.f('ix_screenings_start_time'), 'screenings', ['start_time'], unique=False)
    op.create_index('ix_screenings_cinema_source', 'screenings', ['cinema_id', 'source_id'], unique=False)

    # Create venue_baselines table
    op.create_table(
        'venue_baselines',
        sa.Column('venue_id', sa.String(length=100), nullable=False),
        sa.Column('weekday_avg', sa.Float(), nullable=True),
        sa.Column('weekend_avg', sa.Float(), nullable=True),
        sa.Column('tolerance_percent', sa.Float(), nullable=False, server_default='30'),
        sa.Column('manual_override', sa.Boolean(), nullable=False, server_default='false'),
        sa.Column('sample_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('version', sa.Integer(), nullable=False, server_default='0'),
        *_timestamps(),
        sa.ForeignKeyConstraint(['venue_id'], ['cinemas.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('venue_id')
    )

    # Create title_extractions table
    op.create_table(
        'title_extractions',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('raw_title', sa.String(length=500), nullable=False),
        sa.Column('title', sa.String(length=500), nullable=False),
        sa.Column('event_type', sa.String(length=100), nullable=True),
        sa.Column('confidence', sa.String(length=10), nullable=False),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('raw_title', name='uq_title_extraction_raw')
    )
    op.create_index(op.f('ix_title_extractions_raw_title'), 'title_extractions', ['raw_title'], unique=False)

    # Create scraper_runs table
    op.create_table(
        'scraper_runs',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('venue_id', sa.String(length=100), nullable=False),
        sa.Column('triggered_by', sa.String(length=50), nullable=False),
        sa.Column('started_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('completed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('status', sa.String(length=20), nullable=False),
        sa.Column('screening_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('baseline_count', sa.Float(), nullable=True),
        sa.Column('percent_change', sa.Float(), nullable=True),
        sa.Column('added', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('updated', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('failed', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('rejected', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('error', sa.Text(), nullable=True),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_scraper_runs_venue_id'), 'scraper_runs', ['venue_id'], unique=False)

    # Create match_reviews table
    op.create_table(
        'match_reviews',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('venue_id', sa.String(length=100), nullable=False),
        sa.Column('raw_title', sa.String(length=500), nullable=False),
        sa.Column('clean_title', sa.String(length=500), nullable=False),
        sa.Column('candidate_film_id', sa.String(length=100), nullable=True),
        sa.Column('confidence', sa.Float(), nullable=False),
        sa.Column('strategy', sa.String(length=20), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('venue_id', 'raw_title', name='uq_match_review_venue_title')
    )
    op.create_index(op.f('ix_match_reviews_venue_id'), 'match_reviews', ['venue_id'], unique=False)


def downgrade() -> None:
    op.drop_index(op.f('ix_match_reviews_venue_id'), table_name='match_reviews')
    op.drop_table('match_reviews')
    op.drop_index(op.f('ix_scraper_runs_venue_id'), table_name='scraper_runs')
    op.drop_table('scraper_runs')
    op.drop_index(op.f('ix_title_extractions_raw_title'), table_name='title_extractions')
    op.drop_table('title_extractions')
    op.drop_table('venue_baselines')
    op.drop_index('ix_screenings_cinema_source', table_name='screenings')
    op.drop_index(op.f('ix_screenings_start_time'), table_name='screenings')
    op.drop_index(op.f('ix_screenings_film_id'), table_name='screenings')
    op.drop_index(op.f('ix_screenings_cinema_id'), table_name='screenings')
    op.drop_table('screenings')
    op.drop_index(op.f('ix_films_tmdb_id'), table_name='films')
    op.drop_index(op.f('ix_films_title'), table_name='films')
    op.drop_table('films')
    op.drop_table('cinemas')
