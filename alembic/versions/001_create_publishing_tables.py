"""create publishing tables

Revision ID: 001
Revises:
Create Date: 2026-10-17

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
        'gateways',
        sa.Column('id', sa.String(36), nullable=False),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('vendor', sa.Enum('APIG_API', 'APIG_AI', 'HIGRESS', 'SOFA_HIGRESS', 'ADP_AI_GATEWAY', 'NACOS', name='gatewayvendor'), nullable=False),
        sa.Column('gateway_ref', sa.String(255), nullable=True),
        sa.Column('connection_config', sa.JSON(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_gateways_vendor', 'gateways', ['vendor'])

    op.create_table(
        'api_definitions',
        sa.Column('id', sa.String(36), nullable=False),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('api_type', sa.Enum('REST_API', 'MCP_SERVER', 'AGENT_API', 'MODEL_API', name='apitype'), nullable=False),
        sa.Column('status', sa.Enum('DRAFT', 'PUBLISHED', name='apidefinitionstatus'), nullable=False),
        sa.Column('version', sa.String(50), nullable=True),
        sa.Column('spec', sa.JSON(), nullable=False),
        sa.Column('product_id', sa.String(64), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_api_definitions_product_id', 'api_definitions', ['product_id'])

    op.create_table(
        'deployment_records',
        sa.Column('id', sa.String(36), nullable=False),
        sa.Column('api_definition_id', sa.String(36), nullable=False),
        sa.Column('gateway_id', sa.String(36), nullable=False),
        sa.Column('status', sa.Enum('PUBLISHING', 'ACTIVE', 'PUBLISH_FAILED', 'UNPUBLISHING', 'INACTIVE', 'UNPUBLISH_FAILED', name='publishstatus'), nullable=False),
        sa.Column('snapshot', sa.JSON(), nullable=False),
        sa.Column('resource_ref', sa.JSON(), nullable=True),
        sa.Column('error_message', sa.Text(), nullable=True),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index(
        'ix_deployment_records_api_gateway_created',
        'deployment_records',
        ['api_definition_id', 'gateway_id', 'created_at'],
    )
    op.create_index('ix_deployment_records_status', 'deployment_records', ['status'])

    op.create_table(
        'product_refs',
        sa.Column('product_id', sa.String(64), nullable=False),
        sa.Column('api_definition_id', sa.String(36), nullable=False),
        sa.Column('gateway_id', sa.String(36), nullable=True),
        sa.Column('vendor', sa.String(32), nullable=True),
        sa.Column('api_type', sa.String(32), nullable=True),
        sa.Column('resource_ref', sa.JSON(), nullable=True),
        sa.Column('config', sa.JSON(), nullable=True),
        sa.Column('stale', sa.Boolean(), nullable=False),
        sa.Column('synced_at', sa.DateTime(), nullable=True),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('product_id'),
    )
    op.create_index('ix_product_refs_api_definition_id', 'product_refs', ['api_definition_id'])


def downgrade() -> None:
    op.drop_index('ix_product_refs_api_definition_id', table_name='product_refs')
    op.drop_table('product_refs')

    op.drop_index('ix_deployment_records_status', table_name='deployment_records')
    op.drop_index('ix_deployment_records_api_gateway_created', table_name='deployment_records')
    op.drop_table('deployment_records')
    op.drop_index('ix_api_definitions_product_id', table_name='api_definitions')
    op.drop_table('api_definitions')

    op.drop_index('ix_gateways_vendor', table_name='gateways')
    op.drop_table('gateways')

    sa.Enum(name='publishstatus').drop(op.get_bind(), checkfirst=True)
    sa.Enum(name='apidefinitionstatus').drop(op.get_bind(), checkfirst=True)
    sa.Enum(name='apitype').drop(op.get_bind(), checkfirst=True)
    sa.Enum(name='gatewayvendor').drop(op.get_bind(), checkfirst=True)
