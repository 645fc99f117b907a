"""create players and games

Revision ID: 5c2d7e9a1b4f
Revises:
Create Date: 2026-10-19 00:00:00
"""

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '5c2d7e9a1b4f'
down_revision = None
branch_labels = None
depends_on = None


game_result = sa.Enum('1-0', '0-1', '1/2-1/2', name='game_result')


def upgrade():
    bind = op.get_bind()
    insp = sa.inspect(bind)
    existing_tables = set(insp.get_table_names())

    if 'players' not in existing_tables:
        op.create_table(
            'players',
            sa.Column('id', sa.Integer(), primary_key=True),
            sa.Column('name', sa.String(length=64), nullable=False),
            sa.Column('pin_hash', sa.String(length=128), nullable=False),
            sa.Column('is_admin', sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column('initial_rating', sa.Integer(), nullable=False, server_default='1200'),
            sa.Column('current_rating', sa.Integer(), nullable=False, server_default='1200'),
            sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
        )
        op.create_index('ix_players_name', 'players', ['name'], unique=True)

    if 'games' not in existing_tables:
        op.create_table(
            'games',
            sa.Column('id', sa.Integer(), primary_key=True),
            sa.Column('white_player_id', sa.Integer(), sa.ForeignKey('players.id', ondelete='CASCADE'), nullable=False),
            sa.Column('black_player_id', sa.Integer(), sa.ForeignKey('players.id', ondelete='CASCADE'), nullable=False),
            sa.Column('result', game_result, nullable=False),
            sa.Column('date', sa.DateTime(), nullable=False, server_default=sa.func.now()),
            sa.Column('white_elo_change', sa.Integer(), nullable=False, server_default='0'),
            sa.Column('black_elo_change', sa.Integer(), nullable=False, server_default='0'),
            sa.Column('verified', sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
            sa.CheckConstraint('white_player_id <> black_player_id', name='ck_games_distinct_players'),
        )
        op.create_index('ix_games_white_player_id', 'games', ['white_player_id'])
        op.create_index('ix_games_black_player_id', 'games', ['black_player_id'])
        op.create_index('ix_games_date', 'games', ['date'])
        op.create_index('ix_games_verified', 'games', ['verified'])


def downgrade():
    op.drop_index('ix_games_verified', table_name='games')
    op.drop_index('ix_games_date', table_name='games')
    op.drop_index('ix_games_black_player_id', table_name='games')
    op.drop_index('ix_games_white_player_id', table_name='games')
    op.drop_table('games')
    op.drop_index('ix_players_name', table_name='players')
    op.drop_table('players')
    game_result.drop(op.get_bind(), checkfirst=True)
