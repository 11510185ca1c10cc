"""initial

Revision ID: 0001_initial
Revises: 
Create Date: 2026-10-18 00:00:00.000000
"""
from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = '0001_initial'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    op.create_table('buses',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('bus_name', sa.String(length=255), nullable=False),
        sa.Column('source', sa.String(length=128), nullable=False),
        sa.Column('destination', sa.String(length=128), nullable=False),
        sa.Column('date', sa.String(length=10), nullable=False),
        sa.Column('departure_time', sa.String(length=16), nullable=False),
        sa.Column('arrival_time', sa.String(length=16), nullable=False),
        sa.Column('price', sa.Numeric(10, 2), nullable=False),
        sa.Column('total_seats', sa.Integer(), nullable=False),
        sa.Column('seats_booked', sa.JSON(), nullable=False),
        sa.Column('seat_locks', sa.JSON(), nullable=False),
        sa.Column('version', sa.Integer(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index('ix_buses_source', 'buses', ['source'], unique=False)
    op.create_index('ix_buses_destination', 'buses', ['destination'], unique=False)
    op.create_index('ix_buses_date', 'buses', ['date'], unique=False)
    op.create_index('ix_bus_route_date', 'buses', ['source', 'destination', 'date'], unique=False)

    op.create_table('bookings',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('bus_id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.String(length=64), nullable=False),
        sa.Column('passenger_name', sa.String(length=255), nullable=False),
        sa.Column('passenger_email', sa.String(length=255), nullable=False),
        sa.Column('seats', sa.JSON(), nullable=False),
        sa.Column('total_price', sa.Numeric(10, 2), nullable=False),
        sa.Column('transaction_id', sa.String(length=128), nullable=True),
        sa.Column('bus_details', sa.JSON(), nullable=False),
        sa.Column('status', sa.String(length=20), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
        sa.UniqueConstraint('transaction_id', name='bookings_transaction_id_key'),
    )
    op.create_index('ix_bookings_bus_id', 'bookings', ['bus_id'], unique=False)
    op.create_index('ix_bookings_user_id', 'bookings', ['user_id'], unique=False)
    op.create_index('ix_bookings_status', 'bookings', ['status'], unique=False)

    op.create_table('audit_logs',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('actor_id', sa.String(length=64), nullable=True),
        sa.Column('action', sa.String(length=255), nullable=False),
        sa.Column('object_type', sa.String(length=128), nullable=True),
        sa.Column('object_id', sa.String(length=128), nullable=True),
        sa.Column('detail', sa.JSON(), nullable=True),
        sa.Column('ip_address', sa.String(length=64), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('CURRENT_TIMESTAMP'), nullable=False),
    )
    op.create_index('ix_audit_logs_actor_id', 'audit_logs', ['actor_id'], unique=False)


def downgrade():
    op.drop_index('ix_audit_logs_actor_id', table_name='audit_logs')
    op.drop_table('audit_logs')
    op.drop_index('ix_bookings_status', table_name='bookings')
    op.drop_index('ix_bookings_user_id', table_name='bookings')
    op.drop_index('ix_bookings_bus_id', table_name='bookings')
    op.drop_table('bookings')
    op.drop_index('ix_bus_route_date', table_name='buses')
    op.drop_index('ix_buses_date', table_name='buses')
    op.drop_index('ix_buses_destination', table_name='buses')
    op.drop_index('ix_buses_source', table_name='buses')
    op.drop_table('buses')
