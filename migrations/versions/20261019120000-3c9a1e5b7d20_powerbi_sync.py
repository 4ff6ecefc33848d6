"""Power BI sync: connections, configs, schedules, queue, destination tables

Revision ID: 3c9a1e5b7d20
Revises:
Create Date: 2026-10-19 12:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
import sqlmodel
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = '3c9a1e5b7d20'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

entity_type_enum = sa.Enum('SALES', 'CASH_FLOW', 'CASH_FLOW_STATEMENT', 'COMPANIES', 'EMPLOYEES',
                           'PRODUCTS', 'CATEGORIES', 'STOCK', name='entitytype')
schedule_type_enum = sa.Enum('DAILY', 'WEEKLY', name='scheduletype')
sync_type_enum = sa.Enum('FULL', 'INCREMENTAL', name='synctype')
queue_status_enum = sa.Enum('PENDING', 'PROCESSING', 'COMPLETED', 'EMPTY', 'CANCELLED', 'DAY_ERROR',
                            'FETCH_ERROR', name='syncqueuestatus')

DATED_TABLES = ('external_sales', 'external_cash_flow', 'external_cash_flow_statement')
SNAPSHOT_TABLES = ('external_companies', 'external_employees', 'external_products',
                   'external_categories', 'external_stock')


def _timestamps():
    return [
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
    ]


def _string(name):
    return sa.Column(name, sqlmodel.sql.sqltypes.AutoString(), nullable=True)


def _float(name):
    return sa.Column(name, sa.Float(), nullable=True)


def _external_table(name, dated, *columns):
    key = ['group_id', 'external_id', 'record_date'] if dated else ['group_id', 'external_id']
    extra = [sa.Column('record_date', sa.Date(), nullable=False)] if dated else []
    op.create_table(name,
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('group_id', sa.Integer(), nullable=False),
        sa.Column('external_id', sqlmodel.sql.sqltypes.AutoString(), nullable=False),
        *extra,
        *columns,
        sa.Column('raw_data', postgresql.JSON(astext_type=sa.Text()), nullable=False),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint(*key, name=f'uq_{name}_key'),
    )
    op.create_index(op.f(f'ix_{name}_group_id'), name, ['group_id'], unique=False)
    op.create_index(op.f(f'ix_{name}_external_id'), name, ['external_id'], unique=False)
    if dated:
        op.create_index(op.f(f'ix_{name}_record_date'), name, ['record_date'], unique=False)
        op.create_index(op.f(f'ix_{name}_external_company_id'), name, ['external_company_id'], unique=False)


def upgrade() -> None:
    """Upgrade schema."""
    op.create_table('powerbiconnection',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sqlmodel.sql.sqltypes.AutoString(), nullable=False),
        sa.Column('group_id', sa.Integer(), nullable=False),
        sa.Column('tenant_id', sqlmodel.sql.sqltypes.AutoString(), nullable=False),
        sa.Column('client_id', sqlmodel.sql.sqltypes.AutoString(), nullable=False),
        sa.Column('encrypted_client_secret', sqlmodel.sql.sqltypes.AutoString(), nullable=False),
        sa.Column('workspace_id', sqlmodel.sql.sqltypes.AutoString(), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_powerbiconnection_group_id'), 'powerbiconnection', ['group_id'], unique=False)
    op.create_index(op.f('ix_powerbiconnection_client_id'), 'powerbiconnection', ['client_id'], unique=False)
    op.create_index(op.f('ix_powerbiconnection_is_active'), 'powerbiconnection', ['is_active'], unique=False)

    op.create_table('syncconfig',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sqlmodel.sql.sqltypes.AutoString(), nullable=True),
        sa.Column('connection_id', sa.Integer(), nullable=False),
        sa.Column('entity_type', entity_type_enum, nullable=False),
        sa.Column('dataset_id', sqlmodel.sql.sqltypes.AutoString(), nullable=False),
        sa.Column('query_template', sqlmodel.sql.sqltypes.AutoString(), nullable=False),
        sa.Column('field_mapping', postgresql.JSON(astext_type=sa.Text()), nullable=True),
        sa.Column('is_incremental', sa.Boolean(), nullable=False),
        sa.Column('incremental_days', sa.Integer(), nullable=False),
        sa.Column('initial_date', sa.Date(), nullable=True),
        sa.Column('days_per_batch', sa.Integer(), nullable=False),
        sa.Column('date_field', sqlmodel.sql.sqltypes.AutoString(), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        *_timestamps(),
        sa.ForeignKeyConstraint(['connection_id'], ['powerbiconnection.id'], ),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_syncconfig_connection_id'), 'syncconfig', ['connection_id'], unique=False)
    op.create_index(op.f('ix_syncconfig_entity_type'), 'syncconfig', ['entity_type'], unique=False)
    op.create_index(op.f('ix_syncconfig_is_active'), 'syncconfig', ['is_active'], unique=False)

    op.create_table('syncschedule',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('sync_config_id', sa.Integer(), nullable=False),
        sa.Column('schedule_type', schedule_type_enum, nullable=False),
        sa.Column('day_of_week', sa.Integer(), nullable=True),
        sa.Column('time_of_day', sqlmodel.sql.sqltypes.AutoString(), nullable=False),
        sa.Column('next_run_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        *_timestamps(),
        sa.ForeignKeyConstraint(['sync_config_id'], ['syncconfig.id'], ),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_syncschedule_sync_config_id'), 'syncschedule', ['sync_config_id'], unique=False)
    op.create_index(op.f('ix_syncschedule_next_run_at'), 'syncschedule', ['next_run_at'], unique=False)
    op.create_index(op.f('ix_syncschedule_is_active'), 'syncschedule', ['is_active'], unique=False)

    op.create_table('sync_queue',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('connection_id', sa.Integer(), nullable=False),
        sa.Column('config_id', sa.Integer(), nullable=False),
        sa.Column('group_id', sa.Integer(), nullable=False),
        sa.Column('start_date', sa.Date(), nullable=False),
        sa.Column('end_date', sa.Date(), nullable=False),
        sa.Column('sync_type', sync_type_enum, nullable=False),
        sa.Column('total_days', sa.Integer(), nullable=False),
        sa.Column('processed_days', sa.Integer(), nullable=False),
        sa.Column('processed_records', sa.Integer(), nullable=False),
        sa.Column('status', queue_status_enum, nullable=False),
        sa.Column('last_error', sqlmodel.sql.sqltypes.AutoString(), nullable=True),
        sa.Column('started_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('finished_at', sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(['connection_id'], ['powerbiconnection.id'], ),
        sa.ForeignKeyConstraint(['config_id'], ['syncconfig.id'], ),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_sync_queue_config_id'), 'sync_queue', ['config_id'], unique=False)
    op.create_index(op.f('ix_sync_queue_group_id'), 'sync_queue', ['group_id'], unique=False)
    op.create_index(op.f('ix_sync_queue_status'), 'sync_queue', ['status'], unique=False)

    _external_table('external_sales', True,
                    _string('venda_id'), _string('external_product_id'), _string('external_employee_id'),
                    _string('external_company_id'), _string('sale_mode'), _string('period'),
                    _float('quantity'), _float('total_value'), _float('cost'))
    _external_table('external_cash_flow', True,
                    _string('external_employee_id'), _string('external_company_id'), _string('payment_method'),
                    _string('transaction_type'), _string('transaction_mode'), _string('period'),
                    _float('amount'))
    _external_table('external_cash_flow_statement', True,
                    _string('category_id'), _string('external_company_id'), _float('amount'))
    _external_table('external_companies', False,
                    _string('name'), _string('fantasy_name'), _string('cnpj'), _string('status'), _string('code'))
    _external_table('external_employees', False,
                    _string('name'), _string('external_company_id'), _string('external_code'), _string('email'),
                    _string('department'), _string('position'), _string('status'), _string('code'))
    _external_table('external_products', False,
                    _string('name'), _string('external_company_id'), _string('type'), _string('category'),
                    _string('product_group'), _string('code'), _string('description'))
    _external_table('external_categories', False,
                    _string('name'), _string('external_company_id'), _string('layer_01'), _string('layer_02'),
                    _string('layer_03'), _string('layer_04'), _string('code'), _string('parent_id'))
    _external_table('external_stock', False,
                    _string('external_product_id'), _string('product_name'), _string('product_group'),
                    _string('external_company_id'), _string('unit'), _string('purchase_unit'),
                    _float('conversion_factor'), _float('min_quantity'), _float('max_quantity'),
                    _float('quantity'), _float('last_cost'), _float('average_cost'),
                    _string('updated_at_external'))

    op.create_table('integrationerror',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('integration_name', sqlmodel.sql.sqltypes.AutoString(), nullable=False),
        sa.Column('operation_type', sqlmodel.sql.sqltypes.AutoString(), nullable=False),
        sa.Column('external_id', sqlmodel.sql.sqltypes.AutoString(), nullable=False),
        sa.Column('entity_type', sqlmodel.sql.sqltypes.AutoString(), nullable=False),
        sa.Column('error_message', sqlmodel.sql.sqltypes.AutoString(), nullable=False),
        sa.Column('error_details', postgresql.JSON(astext_type=sa.Text()), nullable=True),
        sa.Column('queue_item_id', sa.Integer(), nullable=True),
        sa.Column('config_id', sa.Integer(), nullable=True),
        sa.Column('is_resolved', sa.Boolean(), nullable=False),
        sa.Column('is_ignored', sa.Boolean(), nullable=False),
        sa.Column('resolved_at', sqlmodel.sql.sqltypes.AutoString(), nullable=True),
        sa.Column('resolution_notes', sqlmodel.sql.sqltypes.AutoString(), nullable=True),
        sa.Column('ignored_at', sqlmodel.sql.sqltypes.AutoString(), nullable=True),
        sa.Column('ignore_notes', sqlmodel.sql.sqltypes.AutoString(), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(['queue_item_id'], ['sync_queue.id'], ),
        sa.ForeignKeyConstraint(['config_id'], ['syncconfig.id'], ),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_integrationerror_integration_name'), 'integrationerror', ['integration_name'], unique=False)
    op.create_index(op.f('ix_integrationerror_operation_type'), 'integrationerror', ['operation_type'], unique=False)
    op.create_index(op.f('ix_integrationerror_external_id'), 'integrationerror', ['external_id'], unique=False)
    op.create_index(op.f('ix_integrationerror_queue_item_id'), 'integrationerror', ['queue_item_id'], unique=False)
    op.create_index(op.f('ix_integrationerror_config_id'), 'integrationerror', ['config_id'], unique=False)
    op.create_index(op.f('ix_integrationerror_is_resolved'), 'integrationerror', ['is_resolved'], unique=False)
    op.create_index(op.f('ix_integrationerror_is_ignored'), 'integrationerror', ['is_ignored'], unique=False)


def downgrade() -> None:
    """Downgrade schema."""
    op.drop_table('integrationerror')
    for name in SNAPSHOT_TABLES + DATED_TABLES:
        op.drop_table(name)
    op.drop_table('sync_queue')
    op.drop_table('syncschedule')
    op.drop_table('syncconfig')
    op.drop_table('powerbiconnection')
    bind = op.get_bind()
    for enum in (queue_status_enum, sync_type_enum, schedule_type_enum, entity_type_enum):
        enum.drop(bind, checkfirst=True)
