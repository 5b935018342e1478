"""maintenance schedule engine tables"""

from alembic import op
import sqlalchemy as sa
from typing import Sequence, Union

revision: str = '7b3e9a1c4d20'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        'instruments',
        sa.Column('id', sa.UUID(as_uuid=True), primary_key=True),
        sa.Column('eqp_id', sa.String(), nullable=False),
        sa.Column('instrument_type', sa.String(), nullable=False),
        sa.Column('make', sa.String(), nullable=True),
        sa.Column('model', sa.String(), nullable=True),
        sa.Column('serial_number', sa.String(), nullable=True),
        sa.Column('location', sa.String(), nullable=True),
        sa.Column('status', sa.String(), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('CURRENT_TIMESTAMP')),
    )
    op.create_table(
        'test_templates',
        sa.Column('id', sa.UUID(as_uuid=True), primary_key=True),
        sa.Column('name', sa.String(), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('structure', sa.JSON(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('CURRENT_TIMESTAMP')),
    )
    op.create_table(
        'maintenance_configurations',
        sa.Column('id', sa.UUID(as_uuid=True), primary_key=True),
        sa.Column('instrument_id', sa.UUID(as_uuid=True), sa.ForeignKey('instruments.id', ondelete='CASCADE'), nullable=False),
        sa.Column('maintenance_type', sa.String(), nullable=False),
        sa.Column('frequency', sa.String(), nullable=False),
        sa.Column('schedule_date', sa.DateTime(timezone=True), nullable=False),
        sa.Column('utc_offset_minutes', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('template_id', sa.UUID(as_uuid=True), sa.ForeignKey('test_templates.id', ondelete='SET NULL'), nullable=True),
        sa.Column('maintenance_by', sa.String(), nullable=False, server_default='self'),
        sa.Column('vendor_name', sa.String(), nullable=True),
        sa.Column('vendor_contact', sa.String(), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('CURRENT_TIMESTAMP')),
    )
    op.create_index('ix_maintenance_configurations_instrument_id', 'maintenance_configurations', ['instrument_id'])
    op.create_table(
        'maintenance_schedules',
        sa.Column('id', sa.UUID(as_uuid=True), primary_key=True),
        sa.Column('instrument_id', sa.UUID(as_uuid=True), sa.ForeignKey('instruments.id', ondelete='CASCADE'), nullable=False),
        sa.Column('configuration_id', sa.UUID(as_uuid=True), sa.ForeignKey('maintenance_configurations.id', ondelete='SET NULL'), nullable=True),
        sa.Column('maintenance_type', sa.String(), nullable=False),
        sa.Column('description', sa.String(), nullable=False, server_default=''),
        sa.Column('due_date', sa.DateTime(timezone=True), nullable=False),
        sa.Column('due_day', sa.Date(), nullable=False),
        sa.Column('status', sa.String(), nullable=False, server_default='Scheduled'),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('completed_date', sa.DateTime(timezone=True), nullable=True),
        sa.Column('completion_notes', sa.Text(), nullable=True),
        sa.Column('template_id', sa.UUID(as_uuid=True), sa.ForeignKey('test_templates.id', ondelete='SET NULL'), nullable=True),
        sa.Column('maintenance_by', sa.String(), nullable=False, server_default='self'),
        sa.Column('vendor_name', sa.String(), nullable=True),
        sa.Column('vendor_contact', sa.String(), nullable=True),
        sa.Column('is_last_of_window', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.UniqueConstraint('configuration_id', 'due_day', name='uq_schedule_configuration_day'),
    )
    op.create_index('ix_maintenance_schedules_configuration_id', 'maintenance_schedules', ['configuration_id'])
    op.create_index('ix_maintenance_schedules_due_date', 'maintenance_schedules', ['due_date'])
    op.create_index('ix_maintenance_schedules_status', 'maintenance_schedules', ['status'])
    op.create_index('ix_schedules_instrument_type', 'maintenance_schedules', ['instrument_id', 'maintenance_type'])
    op.create_table(
        'maintenance_results',
        sa.Column('id', sa.UUID(as_uuid=True), primary_key=True),
        sa.Column('schedule_id', sa.UUID(as_uuid=True), sa.ForeignKey('maintenance_schedules.id', ondelete='CASCADE'), nullable=False, unique=True),
        sa.Column('instrument_id', sa.UUID(as_uuid=True), sa.ForeignKey('instruments.id', ondelete='CASCADE'), nullable=False),
        sa.Column('completed_date', sa.DateTime(timezone=True), nullable=False),
        sa.Column('result_type', sa.String(), nullable=False, server_default='calibration'),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('document_url', sa.String(), nullable=True),
        sa.Column('test_data', sa.JSON(), nullable=True),
        sa.Column('template_id', sa.UUID(as_uuid=True), sa.ForeignKey('test_templates.id', ondelete='SET NULL'), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('CURRENT_TIMESTAMP')),
    )
    op.create_table(
        'schedule_events',
        sa.Column('id', sa.UUID(as_uuid=True), primary_key=True),
        sa.Column('event_type', sa.String(), nullable=False),
        sa.Column('instrument_id', sa.UUID(as_uuid=True), nullable=True),
        sa.Column('configuration_id', sa.UUID(as_uuid=True), nullable=True),
        sa.Column('schedule_id', sa.UUID(as_uuid=True), nullable=True),
        sa.Column('payload', sa.JSON(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('CURRENT_TIMESTAMP')),
    )
    op.create_index('ix_schedule_events_event_type', 'schedule_events', ['event_type'])


def downgrade() -> None:
    op.drop_index('ix_schedule_events_event_type', table_name='schedule_events')
    op.drop_table('schedule_events')
    op.drop_table('maintenance_results')
    op.drop_index('ix_schedules_instrument_type', table_name='maintenance_schedules')
    op.drop_index('ix_maintenance_schedules_status', table_name='maintenance_schedules')
    op.drop_index('ix_maintenance_schedules_due_date', table_name='maintenance_schedules')
    op.drop_index('ix_maintenance_schedules_configuration_id', table_name='maintenance_schedules')
    op.drop_table('maintenance_schedules')
    op.drop_index('ix_maintenance_configurations_instrument_id', table_name='maintenance_configurations')
    op.drop_table('maintenance_configurations')
    op.drop_table('test_templates')
    op.drop_table('instruments')
