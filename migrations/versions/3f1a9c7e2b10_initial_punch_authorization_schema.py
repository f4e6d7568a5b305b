"""initial punch authorization schema

Revision ID: 3f1a9c7e2b10
Revises:
Create Date: 2026-10-19 09:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


# revision identifiers, used by Alembic.
revision: str = '3f1a9c7e2b10'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

JSON = sa.JSON().with_variant(postgresql.JSONB(), "postgresql")


def upgrade() -> None:
    op.create_table(
        'users',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('email', sa.String(length=255), nullable=False),
        sa.Column('password_hash', sa.String(length=255), nullable=False),
        sa.Column('full_name', sa.String(length=255), nullable=False),
        sa.Column('status', sa.String(length=20), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=True),
    )
    op.create_index('ix_users_email', 'users', ['email'], unique=True)

    op.create_table(
        'roles',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('code', sa.String(length=50), nullable=False, unique=True),
    )
    op.create_table(
        'user_roles',
        sa.Column('user_id', sa.Integer(), sa.ForeignKey('users.id', ondelete='CASCADE'), primary_key=True),
        sa.Column('role_id', sa.Integer(), sa.ForeignKey('roles.id', ondelete='CASCADE'), primary_key=True),
    )

    op.create_table(
        'employees',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('user_id', sa.Integer(), sa.ForeignKey('users.id', ondelete='SET NULL'), nullable=True, unique=True),
        sa.Column('code', sa.String(length=32), nullable=False, unique=True),
        sa.Column('email', sa.String(length=255), nullable=False, unique=True),
        sa.Column('full_name', sa.String(length=255), nullable=False),
        sa.Column('department', sa.String(length=120), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('created_at', sa.DateTime(), nullable=False),
    )

    op.create_table(
        'employee_face_profiles',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('employee_id', sa.Integer(), sa.ForeignKey('employees.id', ondelete='CASCADE'), nullable=False),
        sa.Column('image_url', sa.Text(), nullable=True),
        sa.Column('embedding', JSON, nullable=False),
        sa.Column('embedding_version', sa.String(length=50), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('label', sa.String(length=100), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
    )
    op.create_index('ix_employee_face_profiles_employee_id', 'employee_face_profiles', ['employee_id'])

    op.create_table(
        'work_locations',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('name', sa.String(length=120), nullable=False, unique=True),
        sa.Column('type', sa.String(length=20), nullable=False, server_default='office'),
        sa.Column('latitude', sa.Numeric(9, 6), nullable=True),
        sa.Column('longitude', sa.Numeric(9, 6), nullable=True),
        sa.Column('radius_meters', sa.Integer(), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.CheckConstraint("type in ('office','home_office','field')", name='ck_work_location_type'),
        sa.CheckConstraint('radius_meters is null or radius_meters > 0', name='ck_work_location_radius'),
    )

    op.create_table(
        'system_settings',
        sa.Column('key', sa.String(length=80), primary_key=True),
        sa.Column('value', JSON, nullable=False),
        sa.Column('description', sa.String(length=255), nullable=True),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
    )

    op.create_table(
        'work_schedules',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('employee_id', sa.Integer(), sa.ForeignKey('employees.id', ondelete='CASCADE'), nullable=False, unique=True),
        sa.Column('clock_in_time', sa.Time(), nullable=False),
        sa.Column('clock_out_time', sa.Time(), nullable=False),
        sa.Column('break_start_time', sa.Time(), nullable=True),
        sa.Column('break_end_time', sa.Time(), nullable=True),
        sa.Column('tolerance_minutes', sa.Integer(), nullable=False, server_default='15'),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.CheckConstraint('tolerance_minutes >= 0', name='ck_work_schedule_tolerance'),
    )

    op.create_table(
        'time_entries',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('employee_id', sa.Integer(), sa.ForeignKey('employees.id', ondelete='CASCADE'), nullable=False),
        sa.Column('punch_kind', sa.String(length=10), nullable=False),
        sa.Column('punch_ts', sa.DateTime(), nullable=False),
        sa.Column('work_date', sa.Date(), nullable=False),
        sa.Column('location_lat', sa.Numeric(9, 6), nullable=True),
        sa.Column('location_lng', sa.Numeric(9, 6), nullable=True),
        sa.Column('location_address', sa.String(length=255), nullable=True),
        sa.Column('work_location_id', sa.Integer(), sa.ForeignKey('work_locations.id', ondelete='SET NULL'), nullable=True),
        sa.Column('status', sa.String(length=16), nullable=False),
        sa.Column('ledger_slot', sa.String(length=16), nullable=True),
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.now(), nullable=False),
        sa.CheckConstraint("punch_kind in ('IN','OUT','BREAK_IN','BREAK_OUT')", name='ck_time_entry_kind'),
        sa.CheckConstraint("status in ('pending','approved','rejected')", name='ck_time_entry_status'),
        sa.UniqueConstraint('employee_id', 'work_date', 'punch_kind', 'ledger_slot', name='uq_time_entry_ledger_slot'),
    )
    op.create_index('ix_time_entries_employee_id', 'time_entries', ['employee_id'])
    op.create_index('ix_time_entries_punch_ts', 'time_entries', ['punch_ts'])
    op.create_index('ix_time_entries_work_location_id', 'time_entries', ['work_location_id'])
    op.create_index('ix_time_entry_employee_day', 'time_entries', ['employee_id', 'work_date'])

    op.create_table(
        'facial_recognition_audits',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('employee_id', sa.Integer(), sa.ForeignKey('employees.id', ondelete='SET NULL'), nullable=True),
        sa.Column('time_entry_id', sa.Integer(), sa.ForeignKey('time_entries.id', ondelete='SET NULL'), nullable=True, unique=True),
        sa.Column('attempt_image_ref', sa.Text(), nullable=False),
        sa.Column('confidence_score', sa.Float(), nullable=True),
        sa.Column('liveness_passed', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('status', sa.String(length=16), nullable=False),
        sa.Column('recognition_result', JSON, nullable=False),
        sa.Column('ip_address', sa.String(length=64), nullable=True),
        sa.Column('user_agent', sa.String(length=255), nullable=True),
        sa.Column('location_data', JSON, nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('reviewed_at', sa.DateTime(), nullable=True),
        sa.Column('reviewed_by', sa.Integer(), sa.ForeignKey('users.id', ondelete='SET NULL'), nullable=True),
        sa.CheckConstraint(
            'confidence_score is null or (confidence_score >= 0 and confidence_score <= 1)',
            name='ck_audit_confidence_range',
        ),
        sa.CheckConstraint("status in ('pending','approved','rejected')", name='ck_audit_status'),
    )
    op.create_index('ix_facial_recognition_audits_employee_id', 'facial_recognition_audits', ['employee_id'])
    op.create_index('ix_facial_recognition_audits_created_at', 'facial_recognition_audits', ['created_at'])


def downgrade() -> None:
    op.drop_table('facial_recognition_audits')
    op.drop_table('time_entries')
    op.drop_table('work_schedules')
    op.drop_table('system_settings')
    op.drop_table('work_locations')
    op.drop_table('employee_face_profiles')
    op.drop_table('employees')
    op.drop_table('user_roles')
    op.drop_table('roles')
    op.drop_index('ix_users_email', table_name='users')
    op.drop_table('users')
