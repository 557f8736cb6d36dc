"""create_weight_summary_tables

Revision ID: 3f1c9a7b2d40
Revises:
Create Date: 2026-10-18 09:12:44.531207

Reference tables (production_order_sap, production_order_detail, material,
scale_results) are provisioned by the ERP replication and are not created here.
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '3f1c9a7b2d40'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _audit_columns():
    return [
        sa.Column('created_by', sa.Text, nullable=True),
        sa.Column('updated_by', sa.Text, nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('deleted_at', sa.DateTime(timezone=True), nullable=True),
    ]


def upgrade() -> None:
    op.create_table(
        'weight_summary_batch',
        sa.Column('id', sa.Integer, primary_key=True),
        sa.Column('batch_code', sa.String(30), nullable=False, unique=True),
        sa.Column('production_order_detail_id', sa.Integer,
                  sa.ForeignKey('production_order_detail.id'), nullable=False),
        sa.Column('scale_event_id_from', sa.Integer, nullable=True),
        sa.Column('scale_event_id_to', sa.Integer, nullable=True),
        sa.Column('transmission_status', sa.String(20), nullable=False, server_default='pending'),
        *_audit_columns(),
        sa.CheckConstraint(
            "transmission_status IN ('pending', 'processed', 'sending', 'failed', 'success')",
            name='check_transmission_status_valid',
        ),
    )
    op.create_index('ix_weight_summary_batch_production_order_detail_id',
                    'weight_summary_batch', ['production_order_detail_id'])
    op.create_index('ix_weight_summary_batch_transmission_status',
                    'weight_summary_batch', ['transmission_status'])
    op.create_index('idx_batch_detail_status', 'weight_summary_batch',
                    ['production_order_detail_id', 'transmission_status'])

    op.create_table(
        'weight_summary_batch_item',
        sa.Column('id', sa.Integer, primary_key=True),
        sa.Column('batch_id', sa.Integer, sa.ForeignKey('weight_summary_batch.id'), nullable=False),
        sa.Column('production_order_number', sa.String(20), nullable=False),
        sa.Column('plant_code', sa.String(10), nullable=False),
        sa.Column('material_code', sa.String(20), nullable=False),
        sa.Column('production_group', sa.String(2), nullable=True),
        sa.Column('production_shift', sa.Integer, nullable=True),
        sa.Column('packing_group', sa.String(2), nullable=True),
        sa.Column('packing_shift', sa.Integer, nullable=True),
        sa.Column('production_lot', sa.String(2), nullable=True),
        sa.Column('production_location', sa.String(10), nullable=True),
        sa.Column('storage_location', sa.String(4), nullable=True),
        sa.Column('storage_location_target', sa.String(4), nullable=True),
        sa.Column('material_uom', sa.String(10), nullable=True),
        sa.Column('packing_date', sa.DateTime(timezone=True), nullable=True),
        sa.Column('total_weight', sa.Numeric(12, 3), nullable=False, server_default='0'),
        sa.Column('total_weight_converted', sa.Numeric(12, 3), nullable=False, server_default='0'),
        sa.Column('status', sa.String(20), nullable=False, server_default='pending'),
        sa.Column('material_document_ref', sa.String(30), nullable=True),
        sa.Column('version', sa.Integer, nullable=False, server_default='1'),
        *_audit_columns(),
        sa.CheckConstraint("status IN ('pending', 'success', 'failed')", name='check_item_status_valid'),
    )
    op.create_index('ix_weight_summary_batch_item_batch_id', 'weight_summary_batch_item', ['batch_id'])
    op.create_index('idx_batch_item_batch_live', 'weight_summary_batch_item', ['batch_id', 'deleted_at'])

    op.create_table(
        'batch_code_counter',
        sa.Column('prefix', sa.String(30), primary_key=True),
        sa.Column('last_value', sa.Integer, nullable=False, server_default='0'),
    )

    op.create_table(
        'weight_summary_batch_item_log',
        sa.Column('id', sa.Integer, primary_key=True),
        sa.Column('id_from', sa.Integer, sa.ForeignKey('weight_summary_batch_item.id'), nullable=True),
        sa.Column('id_to', sa.Integer, sa.ForeignKey('weight_summary_batch_item.id'), nullable=True),
        sa.Column('operation', sa.String(20), nullable=False),
        sa.Column('created_by', sa.Text, nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.CheckConstraint(
            "operation IN ('split', 'merge', 'edit', 'createFromFailed')",
            name='check_operation_valid',
        ),
    )
    op.create_index('ix_weight_summary_batch_item_log_id_from', 'weight_summary_batch_item_log', ['id_from'])
    op.create_index('ix_weight_summary_batch_item_log_id_to', 'weight_summary_batch_item_log', ['id_to'])

    op.create_table(
        'weight_summary_batch_item_log_detail',
        sa.Column('id', sa.Integer, primary_key=True),
        sa.Column('log_id', sa.Integer,
                  sa.ForeignKey('weight_summary_batch_item_log.id', ondelete='CASCADE'), nullable=False),
        sa.Column('item_id', sa.Integer,
                  sa.ForeignKey('weight_summary_batch_item.id', ondelete='CASCADE'), nullable=False),
        sa.Column('before_data', sa.JSON, nullable=True),
        sa.Column('after_data', sa.JSON, nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )
    op.create_index('ix_weight_summary_batch_item_log_detail_log_id',
                    'weight_summary_batch_item_log_detail', ['log_id'])
    op.create_index('ix_weight_summary_batch_item_log_detail_item_id',
                    'weight_summary_batch_item_log_detail', ['item_id'])

    op.create_table(
        'reconcile_runs',
        sa.Column('id', sa.Integer, primary_key=True),
        sa.Column('run_timestamp', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column('trigger', sa.String(20), nullable=False),
        sa.Column('production_order_number', sa.String(20), nullable=True),
        sa.Column('status', sa.String(20), nullable=False),
        sa.Column('batches_created', sa.Integer, nullable=False, server_default='0'),
        sa.Column('batches_reused', sa.Integer, nullable=False, server_default='0'),
        sa.Column('items_created', sa.Integer, nullable=False, server_default='0'),
        sa.Column('items_updated', sa.Integer, nullable=False, server_default='0'),
        sa.Column('events_processed', sa.Integer, nullable=False, server_default='0'),
        sa.Column('groups_skipped', sa.Integer, nullable=False, server_default='0'),
        sa.Column('message', sa.Text, nullable=True),
        sa.Column('duration_seconds', sa.Float, nullable=True),
        sa.CheckConstraint("status IN ('SUCCESS', 'NOOP', 'FAILED')", name='check_run_status_valid'),
    )
    op.create_index('ix_reconcile_runs_run_timestamp', 'reconcile_runs', ['run_timestamp'])
    op.create_index('ix_reconcile_runs_status', 'reconcile_runs', ['status'])

    # Unsummarized-event scan used by every reconciliation run
    op.create_index('idx_scale_results_unsummarized', 'scale_results', ['is_summarized', 'id'])


def downgrade() -> None:
    op.drop_index('idx_scale_results_unsummarized', table_name='scale_results')
    op.drop_table('reconcile_runs')
    op.drop_table('weight_summary_batch_item_log_detail')
    op.drop_table('weight_summary_batch_item_log')
    op.drop_table('batch_code_counter')
    op.drop_table('weight_summary_batch_item')
    op.drop_table('weight_summary_batch')
