"""Initial migration - baseline schema

Revision ID: 001_initial
Revises:
Create Date: 2026-10-18

Creates donations, events, sponsorship tiers, registrations and contact
signups. For databases created by init_db(), stamp this revision instead
of running it.
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '001_initial'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # Donations table
    op.create_table('donations',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('amount', sa.Float(), nullable=False),
        sa.Column('is_recurring', sa.Boolean(), nullable=False),
        sa.Column('recurring_frequency', sa.String(length=20), nullable=True),
        sa.Column('recurring_status', sa.String(length=20), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('email', sa.String(length=255), nullable=False),
        sa.Column('phone', sa.String(length=50), nullable=True),
        sa.Column('honor_name', sa.String(length=255), nullable=True),
        sa.Column('honor_email', sa.String(length=255), nullable=True),
        sa.Column('sponsorship', sa.String(length=255), nullable=True),
        sa.Column('message', sa.Text(), nullable=True),
        sa.Column('payment_method', sa.String(length=20), nullable=True),
        sa.Column('payment_processor', sa.String(length=20), nullable=True),
        sa.Column('payment_status', sa.String(length=20), nullable=False),
        sa.Column('payment_reference', sa.String(length=255), nullable=True),
        sa.Column('payment_error', sa.Text(), nullable=True),
        sa.Column('card_ref', sa.String(length=255), nullable=True),
        sa.Column('next_charge_date', sa.Date(), nullable=True),
        sa.Column('billing_day', sa.Integer(), nullable=True),
        sa.Column('charge_claimed_at', sa.DateTime(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_donations_id'), 'donations', ['id'], unique=False)
    op.create_index(op.f('ix_donations_email'), 'donations', ['email'], unique=False)
    op.create_index(op.f('ix_donations_is_recurring'), 'donations', ['is_recurring'], unique=False)
    op.create_index(op.f('ix_donations_recurring_status'), 'donations', ['recurring_status'], unique=False)
    op.create_index(op.f('ix_donations_payment_status'), 'donations', ['payment_status'], unique=False)
    op.create_index(op.f('ix_donations_next_charge_date'), 'donations', ['next_charge_date'], unique=False)

    # Events table
    op.create_table('events',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('slug', sa.String(length=200), nullable=False),
        sa.Column('title', sa.String(length=255), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('date', sa.Date(), nullable=False),
        sa.Column('start_time', sa.String(length=50), nullable=True),
        sa.Column('end_time', sa.String(length=50), nullable=True),
        sa.Column('location', sa.String(length=255), nullable=True),
        sa.Column('location_url', sa.String(length=500), nullable=True),
        sa.Column('image_url', sa.String(length=500), nullable=True),
        sa.Column('price_per_adult', sa.Float(), nullable=False),
        sa.Column('kids_price', sa.Float(), nullable=False),
        sa.Column('family_cap', sa.Float(), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_events_id'), 'events', ['id'], unique=False)
    op.create_index(op.f('ix_events_slug'), 'events', ['slug'], unique=True)
    op.create_index(op.f('ix_events_date'), 'events', ['date'], unique=False)
    op.create_index(op.f('ix_events_is_active'), 'events', ['is_active'], unique=False)

    # Sponsorship tiers table
    op.create_table('event_sponsorships',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('event_id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('price', sa.Float(), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('max_available', sa.Integer(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(['event_id'], ['events.id']),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_event_sponsorships_id'), 'event_sponsorships', ['id'], unique=False)
    op.create_index(op.f('ix_event_sponsorships_event_id'), 'event_sponsorships', ['event_id'], unique=False)

    # Event registrations table
    op.create_table('event_registrations',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('event_id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('email', sa.String(length=255), nullable=False),
        sa.Column('phone', sa.String(length=50), nullable=True),
        sa.Column('adults', sa.Integer(), nullable=False),
        sa.Column('kids', sa.Integer(), nullable=False),
        sa.Column('sponsorship_id', sa.Integer(), nullable=True),
        sa.Column('message', sa.Text(), nullable=True),
        sa.Column('guests_data', sa.Text(), nullable=True),
        sa.Column('honoree_name', sa.String(length=255), nullable=True),
        sa.Column('honoree_email', sa.String(length=255), nullable=True),
        sa.Column('subtotal', sa.Float(), nullable=False),
        sa.Column('payment_method', sa.String(length=20), nullable=True),
        sa.Column('payment_processor', sa.String(length=20), nullable=True),
        sa.Column('payment_status', sa.String(length=20), nullable=False),
        sa.Column('payment_reference', sa.String(length=255), nullable=True),
        sa.Column('payment_error', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(['event_id'], ['events.id']),
        sa.ForeignKeyConstraint(['sponsorship_id'], ['event_sponsorships.id']),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_event_registrations_id'), 'event_registrations', ['id'], unique=False)
    op.create_index(op.f('ix_event_registrations_event_id'), 'event_registrations', ['event_id'], unique=False)
    op.create_index(op.f('ix_event_registrations_email'), 'event_registrations', ['email'], unique=False)
    op.create_index(op.f('ix_event_registrations_payment_status'), 'event_registrations', ['payment_status'],
                    unique=False)

    # Contact form signups table
    op.create_table('email_signups',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('email', sa.String(length=255), nullable=False),
        sa.Column('phone', sa.String(length=50), nullable=True),
        sa.Column('subject', sa.String(length=255), nullable=True),
        sa.Column('message', sa.Text(), nullable=True),
        sa.Column('source', sa.String(length=50), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_email_signups_id'), 'email_signups', ['id'], unique=False)
    op.create_index(op.f('ix_email_signups_email'), 'email_signups', ['email'], unique=False)
    op.create_index(op.f('ix_email_signups_created_at'), 'email_signups', ['created_at'], unique=False)


def downgrade() -> None:
    op.drop_table('email_signups')
    op.drop_table('event_registrations')
    op.drop_table('event_sponsorships')
    op.drop_table('events')
    op.drop_table('donations')
