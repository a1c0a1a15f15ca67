"""Authorization schema

Revision ID: 001
Revises: 
Create Date: 2026-10-19

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '001'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        'policy_grants',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('role', sa.String(length=255), nullable=False),
        sa.Column('domain', sa.String(length=255), nullable=False),
        sa.Column('resource', sa.String(length=255), nullable=False),
        sa.Column('action', sa.String(length=255), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('role', 'domain', 'resource', 'action', name='uq_policy_grant')
    )
    op.create_index('idx_policy_grants_domain_role', 'policy_grants', ['domain', 'role'])

    op.create_table(
        'policy_denies',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('domain', sa.String(length=255), nullable=False),
        sa.Column('resource', sa.String(length=255), nullable=False),
        sa.Column('action', sa.String(length=255), nullable=False),
        sa.Column('severity', sa.String(length=50), nullable=True),
        sa.Column('reason', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('domain', 'resource', 'action', name='uq_policy_deny')
    )
    op.create_index('ix_policy_denies_domain', 'policy_denies', ['domain'])

    op.create_table(
        'role_assignments',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('user_id', sa.String(length=255), nullable=False),
        sa.Column('role', sa.String(length=255), nullable=False),
        sa.Column('domain', sa.String(length=255), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('user_id', 'domain', name='uq_role_assignment_user_domain')
    )
    op.create_index('ix_role_assignments_domain', 'role_assignments', ['domain'])

    op.create_table(
        'organization_members',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('organization_id', sa.String(length=255), nullable=False),
        sa.Column('user_id', sa.String(length=255), nullable=False),
        sa.Column('role', sa.String(length=255), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('organization_id', 'user_id', name='uq_org_member')
    )
    op.create_index(
        'ix_organization_members_organization_id', 'organization_members', ['organization_id']
    )

    op.create_table(
        'authorization_audit_log',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('domain', sa.String(length=255), nullable=False),
        sa.Column('sequence_no', sa.Integer(), nullable=False),
        sa.Column('timestamp', sa.DateTime(), nullable=False),
        sa.Column('event_type', sa.String(length=50), nullable=False),
        sa.Column('actor_id', sa.String(length=255), nullable=False),
        sa.Column('actor_ip', sa.String(length=64), nullable=True),
        sa.Column('actor_user_agent', sa.Text(), nullable=True),
        sa.Column('user_id', sa.String(length=255), nullable=True),
        sa.Column('role', sa.String(length=255), nullable=True),
        sa.Column('resource', sa.String(length=255), nullable=True),
        sa.Column('operation_action', sa.String(length=255), nullable=True),
        sa.Column('effect', sa.String(length=20), nullable=True),
        sa.Column('details', sa.JSON(), nullable=False),
        sa.Column('prev_hash', sa.String(length=64), nullable=False),
        sa.Column('hash', sa.String(length=64), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('domain', 'sequence_no', name='uq_audit_domain_sequence')
    )
    op.create_index(
        'idx_audit_domain_timestamp', 'authorization_audit_log', ['domain', 'timestamp']
    )
    op.create_index(
        'idx_audit_domain_event_type', 'authorization_audit_log', ['domain', 'event_type']
    )


def downgrade() -> None:
    op.drop_index('idx_audit_domain_event_type', table_name='authorization_audit_log')
    op.drop_index('idx_audit_domain_timestamp', table_name='authorization_audit_log')
    op.drop_table('authorization_audit_log')

    op.drop_index('ix_organization_members_organization_id', table_name='organization_members')
    op.drop_table('organization_members')

    op.drop_index('ix_role_assignments_domain', table_name='role_assignments')
    op.drop_table('role_assignments')

    op.drop_index('ix_policy_denies_domain', table_name='policy_denies')
    op.drop_table('policy_denies')

    op.drop_index('idx_policy_grants_domain_role', table_name='policy_grants')
    op.drop_table('policy_grants')
