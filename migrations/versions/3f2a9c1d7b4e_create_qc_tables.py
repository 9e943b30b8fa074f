"""create qc tables

Revision ID: 3f2a9c1d7b4e
Revises:
Create Date: 2026-03-02 10:12:44.118203

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
import sqlmodel


# revision identifiers, used by Alembic.
revision: str = '3f2a9c1d7b4e'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


ACTIVITY_ACTIONS = (
    'LOGIN', 'LOGOUT', 'INSPECTION_CREATED', 'INSPECTION_UPDATED',
    'INSPECTION_COMPLETED', 'INSPECTION_DELETED', 'PRODUCT_CREATED',
    'PRODUCT_UPDATED', 'USER_CREATED', 'USER_UPDATED', 'USER_DELETED',
    'REPORT_GENERATED', 'DEFECT_LOGGED', 'DEFECT_UPDATED', 'DEFECT_RESOLVED',
    'DEFECT_DELETED', 'BATCH_PROCESSED', 'PROFILE_UPDATED',
)


def _timestamps():
    return [
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
    ]


def upgrade():
    op.create_table(
        'user',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('email', sqlmodel.sql.sqltypes.AutoString(), nullable=False),
        sa.Column('name', sqlmodel.sql.sqltypes.AutoString(), nullable=False),
        sa.Column('role', sa.Enum('ADMIN', 'MANAGER', 'INSPECTOR',
                  name='userrole'), nullable=False),
        sa.Column('department', sqlmodel.sql.sqltypes.AutoString(), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index(op.f('ix_user_email'), 'user', ['email'], unique=True)
    op.create_index(op.f('ix_user_created_at'), 'user', ['created_at'])

    op.create_table(
        'product',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('name', sqlmodel.sql.sqltypes.AutoString(), nullable=False),
        sa.Column('category', sqlmodel.sql.sqltypes.AutoString(), nullable=True),
        sa.Column('description', sqlmodel.sql.sqltypes.AutoString(), nullable=True),
        sa.Column('image_url', sqlmodel.sql.sqltypes.AutoString(), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index(op.f('ix_product_name'), 'product', ['name'])
    op.create_index(op.f('ix_product_created_at'), 'product', ['created_at'])

    op.create_table(
        'inspection',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('product_id', sa.Uuid(), nullable=False),
        sa.Column('inspector_id', sa.Uuid(), nullable=False),
        sa.Column('batch_number', sqlmodel.sql.sqltypes.AutoString(), nullable=False),
        sa.Column('date', sa.DateTime(), nullable=False),
        sa.Column('notes', sqlmodel.sql.sqltypes.AutoString(), nullable=True),
        sa.Column('total_inspected', sa.Integer(), nullable=False),
        sa.Column('defects_found', sa.Integer(), nullable=False),
        sa.Column('status', sa.Enum('PENDING', 'COMPLETED', 'FAILED',
                  name='inspectionstatus'), nullable=False),
        sa.Column('images', sa.JSON(), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(['product_id'], ['product.id']),
        sa.ForeignKeyConstraint(['inspector_id'], ['user.id']),
        sa.PrimaryKeyConstraint('id'),
    )
    for column in ('product_id', 'inspector_id', 'batch_number', 'date', 'status', 'created_at'):
        op.create_index(op.f(f'ix_inspection_{column}'), 'inspection', [column])

    op.create_table(
        'defect',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('inspection_id', sa.Uuid(), nullable=False),
        sa.Column('product_id', sa.Uuid(), nullable=False),
        sa.Column('type', sqlmodel.sql.sqltypes.AutoString(), nullable=False),
        sa.Column('severity', sa.Enum('MINOR', 'MAJOR', 'CRITICAL',
                  name='defectseverity'), nullable=False),
        sa.Column('description', sqlmodel.sql.sqltypes.AutoString(), nullable=False),
        sa.Column('location', sqlmodel.sql.sqltypes.AutoString(), nullable=True),
        sa.Column('root_cause', sqlmodel.sql.sqltypes.AutoString(), nullable=False),
        sa.Column('measurements', sa.JSON(), nullable=True),
        sa.Column('image_url', sqlmodel.sql.sqltypes.AutoString(), nullable=True),
        sa.Column('image_public_id', sqlmodel.sql.sqltypes.AutoString(), nullable=True),
        sa.Column('status', sa.Enum('OPEN', 'RESOLVED',
                  name='defectstatus'), nullable=False),
        sa.Column('detected_by', sa.Enum('MANUAL', 'AUTOMATED',
                  name='detectionmethod'), nullable=False),
        sa.Column('ai_confidence', sa.Float(), nullable=False),
        sa.Column('reported_by_id', sa.Uuid(), nullable=False),
        sa.Column('resolved_by_id', sa.Uuid(), nullable=True),
        sa.Column('resolved_at', sa.DateTime(), nullable=True),
        sa.Column('resolution_notes', sqlmodel.sql.sqltypes.AutoString(), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(['inspection_id'], ['inspection.id']),
        sa.ForeignKeyConstraint(['product_id'], ['product.id']),
        sa.ForeignKeyConstraint(['reported_by_id'], ['user.id']),
        sa.ForeignKeyConstraint(['resolved_by_id'], ['user.id']),
        sa.PrimaryKeyConstraint('id'),
    )
    for column in ('inspection_id', 'product_id', 'type', 'severity', 'root_cause', 'status', 'created_at'):
        op.create_index(op.f(f'ix_defect_{column}'), 'defect', [column])

    op.create_table(
        'activity',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('user_id', sa.Uuid(), nullable=False),
        sa.Column('action', sa.Enum(*ACTIVITY_ACTIONS,
                  name='activityaction'), nullable=False),
        sa.Column('description', sqlmodel.sql.sqltypes.AutoString(), nullable=False),
        sa.Column('details', sa.JSON(), nullable=True),
        sa.Column('ip_address', sqlmodel.sql.sqltypes.AutoString(), nullable=True),
        sa.Column('user_agent', sqlmodel.sql.sqltypes.AutoString(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(['user_id'], ['user.id']),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index(op.f('ix_activity_user_id'), 'activity', ['user_id'])
    op.create_index(op.f('ix_activity_action'), 'activity', ['action'])
    op.create_index(op.f('ix_activity_created_at'), 'activity', ['created_at'])

    op.create_table(
        'alert',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('type', sa.Enum('CRITICAL_DEFECT', 'DEFECT_RATE',
                  name='alerttype'), nullable=False),
        sa.Column('message', sqlmodel.sql.sqltypes.AutoString(), nullable=False),
        sa.Column('inspection_id', sa.Uuid(), nullable=True),
        sa.Column('defect_id', sa.Uuid(), nullable=True),
        sa.Column('batch_number', sqlmodel.sql.sqltypes.AutoString(), nullable=True),
        sa.Column('defect_rate', sa.Float(), nullable=True),
        sa.Column('threshold', sa.Float(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index(op.f('ix_alert_type'), 'alert', ['type'])
    op.create_index(op.f('ix_alert_inspection_id'), 'alert', ['inspection_id'])
    op.create_index(op.f('ix_alert_created_at'), 'alert', ['created_at'])


def downgrade():
    op.drop_table('alert')
    op.drop_table('activity')
    op.drop_table('defect')
    op.drop_table('inspection')
    op.drop_table('product')
    op.drop_table('user')

    bind = op.get_bind()
    if bind.dialect.name == 'postgresql':
        # Native enum types outlive their tables on PostgreSQL
        for enum_name in ('alerttype', 'activityaction', 'detectionmethod',
                          'defectstatus', 'defectseverity', 'inspectionstatus',
                          'userrole'):
            op.execute(f"DROP TYPE IF EXISTS {enum_name}")
