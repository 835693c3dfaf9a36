"""initial catalog schema

Revision ID: 1c4e7a9b2d10
Revises:
Create Date: 2026-10-19 09:12:44.118204

"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '1c4e7a9b2d10'
down_revision = None
branch_labels = None
depends_on = None


def _record_columns():
    return [
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=True),
        sa.Column('created_by', sa.Integer(), nullable=True),
        sa.Column('updated_by', sa.Integer(), nullable=True),
    ]


def upgrade():
    op.create_table('users',
    sa.Column('id', sa.Integer(), nullable=False),
    sa.Column('email', sa.String(length=255), nullable=False),
    sa.Column('password_hash', sa.String(length=255), nullable=False),
    sa.Column('display_name', sa.String(length=255), nullable=False),
    sa.Column('user_role', sa.String(length=50), nullable=False, server_default='user'),
    *_record_columns(),
    sa.PrimaryKeyConstraint('id'),
    sa.UniqueConstraint('email')
    )
    op.create_table('product_lines',
    sa.Column('id', sa.Integer(), nullable=False),
    sa.Column('name', sa.String(length=255), nullable=False),
    sa.Column('type_of_products', sa.Text(), nullable=True),
    sa.Column('manufacturing_locations', sa.Text(), nullable=True),
    sa.Column('design_center', sa.Text(), nullable=True),
    sa.Column('product_line_manager', sa.String(length=255), nullable=True),
    sa.Column('history', sa.Text(), nullable=True),
    sa.Column('type_of_customers', sa.Text(), nullable=True),
    sa.Column('metiers', sa.Text(), nullable=True),
    sa.Column('strength', sa.Text(), nullable=True),
    sa.Column('weakness', sa.Text(), nullable=True),
    sa.Column('perspectives', sa.Text(), nullable=True),
    sa.Column('compliance_resource_id', sa.String(length=255), nullable=True),
    sa.Column('attachments_raw', sa.Text(), nullable=True),
    *_record_columns(),
    sa.PrimaryKeyConstraint('id'),
    sa.UniqueConstraint('name')
    )
    op.create_table('products',
    sa.Column('id', sa.Integer(), nullable=False),
    sa.Column('product_name', sa.String(length=255), nullable=False),
    sa.Column('product_line', sa.String(length=255), nullable=True),
    sa.Column('product_line_id', sa.Integer(), nullable=True),
    sa.Column('description', sa.Text(), nullable=True),
    sa.Column('product_definition', sa.Text(), nullable=True),
    sa.Column('operating_environment', sa.Text(), nullable=True),
    sa.Column('technical_parameters', sa.Text(), nullable=True),
    sa.Column('machines_and_tooling', sa.Text(), nullable=True),
    sa.Column('manufacturing_strategy', sa.Text(), nullable=True),
    sa.Column('purchasing_strategy', sa.Text(), nullable=True),
    sa.Column('prototypes_ppap_and_sop', sa.Text(), nullable=True),
    sa.Column('engineering_and_testing', sa.Text(), nullable=True),
    sa.Column('capacity', sa.Text(), nullable=True),
    sa.Column('our_advantages', sa.Text(), nullable=True),
    sa.Column('gmdc_pct', sa.Text(), nullable=True),
    sa.Column('customers_in_production', sa.Text(), nullable=True),
    sa.Column('customer_in_development', sa.Text(), nullable=True),
    sa.Column('level_of_interest_and_why', sa.Text(), nullable=True),
    sa.Column('estimated_price_per_product', sa.Text(), nullable=True),
    sa.Column('prod_if_customer_in_china', sa.Text(), nullable=True),
    sa.Column('costing_data', sa.Text(), nullable=True),
    sa.Column('product_pictures', sa.Text(), nullable=True),
    *_record_columns(),
    sa.ForeignKeyConstraint(['product_line_id'], ['product_lines.id'], ondelete='SET NULL'),
    sa.PrimaryKeyConstraint('id')
    )
    op.create_table('audit_logs',
    sa.Column('id', sa.Integer(), nullable=False),
    sa.Column('action', sa.String(length=50), nullable=False),
    sa.Column('table_name', sa.String(length=100), nullable=False),
    sa.Column('document_id', sa.String(length=64), nullable=True),
    sa.Column('user_id', sa.Integer(), nullable=True),
    sa.Column('user_name', sa.String(length=255), nullable=True),
    sa.Column('details', sa.JSON(), nullable=True),
    sa.Column('logged_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=True),
    sa.PrimaryKeyConstraint('id')
    )
    with op.batch_alter_table('products', schema=None) as batch_op:
        batch_op.create_index('ix_products_created_at', ['created_at'], unique=False)
        batch_op.create_index('ix_products_product_line_id', ['product_line_id'], unique=False)

    with op.batch_alter_table('product_lines', schema=None) as batch_op:
        batch_op.create_index('ix_product_lines_created_at', ['created_at'], unique=False)

    with op.batch_alter_table('users', schema=None) as batch_op:
        batch_op.create_index('ix_users_created_at', ['created_at'], unique=False)

    with op.batch_alter_table('audit_logs', schema=None) as batch_op:
        batch_op.create_index('ix_audit_logs_logged_at', ['logged_at'], unique=False)
        batch_op.create_index('ix_audit_logs_action', ['action'], unique=False)


def downgrade():
    with op.batch_alter_table('audit_logs', schema=None) as batch_op:
        batch_op.drop_index('ix_audit_logs_action')
        batch_op.drop_index('ix_audit_logs_logged_at')

    with op.batch_alter_table('users', schema=None) as batch_op:
        batch_op.drop_index('ix_users_created_at')

    with op.batch_alter_table('product_lines', schema=None) as batch_op:
        batch_op.drop_index('ix_product_lines_created_at')

    with op.batch_alter_table('products', schema=None) as batch_op:
        batch_op.drop_index('ix_products_product_line_id')
        batch_op.drop_index('ix_products_created_at')

    op.drop_table('audit_logs')
    op.drop_table('products')
    op.drop_table('product_lines')
    op.drop_table('users')
