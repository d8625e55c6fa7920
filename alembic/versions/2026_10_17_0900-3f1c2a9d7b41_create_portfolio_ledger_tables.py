"""create users, portfolios, portfolio_transactions and portfolio_holding_targets

Revision ID: 3f1c2a9d7b41
Revises:
Create Date: 2026-10-17 09:00:00.000000+00:00

"""
from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = '3f1c2a9d7b41'
down_revision = None
branch_labels = None
depends_on = None

transaction_type = sa.Enum(
    'BUY', 'SELL', 'DEPOSIT', 'WITHDRAW', 'DIVIDEND', name='portfolio_transaction_type'
)


def upgrade() -> None:
    op.create_table(
        'users',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('email', sa.String(length=255), nullable=False),
        sa.Column('username', sa.String(length=50), nullable=False),
        sa.Column('hashed_password', sa.String(length=255), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint('id', name='pk_users'),
    )
    op.create_index('ix_users_id', 'users', ['id'])
    op.create_index('ix_users_email', 'users', ['email'], unique=True)
    op.create_index('ix_users_username', 'users', ['username'], unique=True)

    op.create_table(
        'portfolios',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('owner_id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('currency', sa.String(length=3), nullable=False),
        sa.Column('is_default', sa.Boolean(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(
            ['owner_id'], ['users.id'],
            name='fk_portfolios_owner_id_users', ondelete='CASCADE',
        ),
        sa.PrimaryKeyConstraint('id', name='pk_portfolios'),
    )
    op.create_index('ix_portfolios_id', 'portfolios', ['id'])
    op.create_index('ix_portfolios_owner_id', 'portfolios', ['owner_id'])
    op.create_index(
        'uq_portfolios_owner_default',
        'portfolios',
        ['owner_id'],
        unique=True,
        postgresql_where=sa.text('is_default'),
        sqlite_where=sa.text('is_default'),
    )

    op.create_table(
        'portfolio_transactions',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('portfolio_id', sa.Uuid(), nullable=False),
        sa.Column('sequence', sa.Integer(), nullable=False),
        sa.Column('transaction_type', transaction_type, nullable=False),
        sa.Column('symbol', sa.String(length=10), nullable=True),
        sa.Column('quantity', sa.Numeric(precision=18, scale=8), nullable=True),
        sa.Column('price_per_unit', sa.Numeric(precision=18, scale=4), nullable=True),
        sa.Column('total_amount', sa.Numeric(precision=18, scale=4), nullable=False),
        sa.Column('fees', sa.Numeric(precision=10, scale=2), nullable=False),
        sa.Column('transaction_date', sa.DateTime(timezone=True), nullable=False),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(
            ['portfolio_id'], ['portfolios.id'],
            name='fk_portfolio_transactions_portfolio_id_portfolios', ondelete='CASCADE',
        ),
        sa.PrimaryKeyConstraint('id', name='pk_portfolio_transactions'),
        sa.UniqueConstraint(
            'portfolio_id', 'sequence', name='uq_portfolio_transactions_sequence'
        ),
    )
    op.create_index('ix_portfolio_transactions_id', 'portfolio_transactions', ['id'])
    op.create_index(
        'ix_portfolio_transactions_portfolio_id', 'portfolio_transactions', ['portfolio_id']
    )
    op.create_index(
        'ix_portfolio_transactions_transaction_type',
        'portfolio_transactions',
        ['transaction_type'],
    )
    op.create_index('ix_portfolio_transactions_symbol', 'portfolio_transactions', ['symbol'])
    op.create_index(
        'ix_portfolio_transactions_transaction_date',
        'portfolio_transactions',
        ['transaction_date'],
    )
    op.create_index(
        'ix_portfolio_transactions_portfolio_date',
        'portfolio_transactions',
        ['portfolio_id', 'transaction_date'],
    )

    op.create_table(
        'portfolio_holding_targets',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('portfolio_id', sa.Uuid(), nullable=False),
        sa.Column('symbol', sa.String(length=10), nullable=False),
        sa.Column('target_allocation_percent', sa.Numeric(precision=5, scale=2), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(
            ['portfolio_id'], ['portfolios.id'],
            name='fk_portfolio_holding_targets_portfolio_id_portfolios', ondelete='CASCADE',
        ),
        sa.PrimaryKeyConstraint('id', name='pk_portfolio_holding_targets'),
        sa.UniqueConstraint(
            'portfolio_id', 'symbol', name='uq_portfolio_holding_targets_symbol'
        ),
    )
    op.create_index(
        'ix_portfolio_holding_targets_portfolio_id',
        'portfolio_holding_targets',
        ['portfolio_id'],
    )


def downgrade() -> None:
    op.drop_table('portfolio_holding_targets')
    op.drop_table('portfolio_transactions')
    op.drop_table('portfolios')
    op.drop_table('users')
    transaction_type.drop(op.get_bind(), checkfirst=True)
