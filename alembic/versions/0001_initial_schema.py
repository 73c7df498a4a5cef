"""initial clinic scheduler schema

Revision ID: 0001
Revises:
Create Date: 2025-06-01 09:00:00.000000

"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '0001'
down_revision = None
branch_labels = None
depends_on = None

ACTIVE_SLOT_WHERE = sa.text("status IN ('pending', 'confirmed')")

user_role = sa.Enum('patient', 'doctor', 'staff', 'admin', name='user_role')
appointment_status = sa.Enum('pending', 'confirmed', 'completed', 'cancelled', 'no-show', name='appointment_status')
consultation_type = sa.Enum('online', 'in-person', name='consultation_type')
profile_consultation_type = sa.Enum('online', 'in-person', 'both', name='profile_consultation_type')
booking_source = sa.Enum('direct', 'voice_agent', name='booking_source')
doctor_status_type = sa.Enum('on-time', 'running-late', 'emergency', name='doctor_status_type')
audit_action = sa.Enum('CREATE', 'READ', 'UPDATE', 'DELETE', 'LOGIN', 'ACCESS_DENIED', name='audit_action')


def upgrade():
    op.create_table(
        'users',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('email', sa.String(255), nullable=False, unique=True),
        sa.Column('password_hash', sa.String(255), nullable=False),
        sa.Column('role', user_role, nullable=False),
        sa.Column('first_name', sa.String(100), nullable=False),
        sa.Column('last_name', sa.String(100), nullable=False),
        sa.Column('phone', sa.String(20), nullable=True),
        sa.Column('specialization', sa.String(100), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index('ix_users_id', 'users', ['id'])
    op.create_index('ix_users_email', 'users', ['email'], unique=True)
    op.create_index('idx_users_role_active', 'users', ['role', 'is_active'])

    op.create_table(
        'doctor_profiles',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('user_id', sa.Integer(), sa.ForeignKey('users.id'), nullable=False, unique=True),
        sa.Column('specialization', sa.String(100), nullable=True),
        sa.Column('qualification', sa.String(255), nullable=True),
        sa.Column('experience_years', sa.Integer(), nullable=True),
        sa.Column('bio', sa.Text(), nullable=True),
        sa.Column('languages', sa.JSON(), nullable=True),
        sa.Column('clinic_name', sa.String(255), nullable=True),
        sa.Column('clinic_address', sa.Text(), nullable=True),
        sa.Column('consultation_fee', sa.Integer(), nullable=True),
        sa.Column('consultation_type', profile_consultation_type, nullable=False),
        sa.Column('working_days', sa.JSON(), nullable=False),
        sa.Column('working_hours_start', sa.String(5), nullable=False),
        sa.Column('working_hours_end', sa.String(5), nullable=False),
        sa.Column('break_times', sa.JSON(), nullable=False),
        sa.Column('appointment_duration', sa.Integer(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
    )

    op.create_table(
        'appointments',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('doctor_id', sa.Integer(), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('patient_id', sa.Integer(), sa.ForeignKey('users.id'), nullable=True),
        sa.Column('patient_name', sa.String(200), nullable=True),
        sa.Column('patient_phone', sa.String(30), nullable=True),
        sa.Column('patient_email', sa.String(255), nullable=True),
        sa.Column('appointment_date', sa.Date(), nullable=False),
        sa.Column('appointment_time', sa.String(5), nullable=False),
        sa.Column('duration', sa.Integer(), nullable=False),
        sa.Column('status', appointment_status, nullable=False),
        sa.Column('consultation_type', consultation_type, nullable=False),
        sa.Column('reason_for_visit', sa.Text(), nullable=True),
        sa.Column('symptoms', sa.Text(), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('estimated_time', sa.String(5), nullable=True),
        sa.Column('delay_minutes', sa.Integer(), nullable=True),
        sa.Column('delay_notified', sa.Boolean(), nullable=True),
        sa.Column('delay_notified_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('booking_source', booking_source, nullable=False),
        sa.Column('voice_call_id', sa.String(100), nullable=True),
        sa.Column('voice_agent_data', sa.JSON(), nullable=True),
        sa.Column('confirmation_number', sa.String(40), nullable=True),
        sa.Column('reminder_sent', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('reminder_sent_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index('idx_appointments_doctor_date', 'appointments', ['doctor_id', 'appointment_date'])
    op.create_index('idx_appointments_patient_date', 'appointments', ['patient_id', 'appointment_date'])
    op.create_index('idx_appointments_status_date', 'appointments', ['status', 'appointment_date'])
    op.create_index('ix_appointments_status', 'appointments', ['status'])
    op.create_index('ix_appointments_confirmation_number', 'appointments', ['confirmation_number'])
    op.create_index(
        'uq_appointments_active_slot',
        'appointments',
        ['doctor_id', 'appointment_date', 'appointment_time'],
        unique=True,
        postgresql_where=ACTIVE_SLOT_WHERE,
        sqlite_where=ACTIVE_SLOT_WHERE,
    )

    op.create_table(
        'doctor_statuses',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('doctor_id', sa.Integer(), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('date', sa.Date(), nullable=False),
        sa.Column('status', doctor_status_type, nullable=False),
        sa.Column('delay_minutes', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('reason', sa.Text(), nullable=True),
        sa.Column('updated_by', sa.Integer(), sa.ForeignKey('users.id'), nullable=True),
        sa.Column('affected_appointments', sa.JSON(), nullable=True),
        sa.Column('notifications_sent', sa.JSON(), nullable=True),
        sa.Column('cleared_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('cleared_by', sa.Integer(), sa.ForeignKey('users.id'), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
        sa.UniqueConstraint('doctor_id', 'date', name='uq_doctor_status_doctor_date'),
    )
    op.create_index('ix_doctor_statuses_doctor_id', 'doctor_statuses', ['doctor_id'])

    op.create_table(
        'audit_logs',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('user_id', sa.Integer(), sa.ForeignKey('users.id'), nullable=True),
        sa.Column('action', audit_action, nullable=False),
        sa.Column('category', sa.String(50), nullable=False),
        sa.Column('severity', sa.String(20), nullable=True),
        sa.Column('resource_type', sa.String(50), nullable=True),
        sa.Column('resource_id', sa.Integer(), nullable=True),
        sa.Column('details', sa.Text(), nullable=True),
        sa.Column('new_values', sa.JSON(), nullable=True),
        sa.Column('timestamp', sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index('idx_audit_user_date', 'audit_logs', ['user_id', 'timestamp'])
    op.create_index('idx_audit_action_date', 'audit_logs', ['action', 'timestamp'])
    op.create_index('idx_audit_resource', 'audit_logs', ['resource_type', 'resource_id'])


def downgrade():
    op.drop_table('audit_logs')
    op.drop_table('doctor_statuses')
    op.drop_index('uq_appointments_active_slot', table_name='appointments')
    op.drop_table('appointments')
    op.drop_table('doctor_profiles')
    op.drop_table('users')
    bind = op.get_bind()
    for enum_type in (audit_action, doctor_status_type, booking_source, profile_consultation_type,
                      consultation_type, appointment_status, user_role):
        enum_type.drop(bind, checkfirst=True)
