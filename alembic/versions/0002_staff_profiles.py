"""staff profiles

Revision ID: 0002
Revises: 0001
Create Date: 2025-06-20 10:30:00.000000

"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '0002'
down_revision = '0001'
branch_labels = None
depends_on = None


def upgrade():
    op.create_table(
        'staff_profiles',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('user_id', sa.Integer(), sa.ForeignKey('users.id'), nullable=False, unique=True),
        sa.Column('gender', sa.String(10), nullable=True),
        sa.Column('date_of_birth', sa.Date(), nullable=True),
        sa.Column('photo', sa.String(500), nullable=True),
        sa.Column('staff_role', sa.String(100), nullable=False),
        sa.Column('employee_id', sa.String(50), nullable=False),
        sa.Column('department', sa.String(100), nullable=False),
        sa.Column('experience_years', sa.Integer(), nullable=False),
        sa.Column('supervisor_doctor_id', sa.Integer(), sa.ForeignKey('users.id'), nullable=True),
        sa.Column('shift_start', sa.String(5), nullable=False),
        sa.Column('shift_end', sa.String(5), nullable=False),
        sa.Column('working_days', sa.JSON(), nullable=False),
        sa.Column('emergency_contact', sa.JSON(), nullable=False),
        sa.Column('profile_completed', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index('ix_staff_profiles_id', 'staff_profiles', ['id'])
    op.create_index('ix_staff_profiles_employee_id', 'staff_profiles', ['employee_id'], unique=True)
    op.create_index('ix_staff_profiles_supervisor_doctor_id', 'staff_profiles', ['supervisor_doctor_id'])


def downgrade():
    op.drop_index('ix_staff_profiles_supervisor_doctor_id', table_name='staff_profiles')
    op.drop_index('ix_staff_profiles_employee_id', table_name='staff_profiles')
    op.drop_index('ix_staff_profiles_id', table_name='staff_profiles')
    op.drop_table('staff_profiles')
