from alembic import op
import sqlalchemy as sa

revision = '0001_initial'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    op.create_table(
        'sport',
        sa.Column('id', sa.String(), primary_key=True),
        sa.Column('name', sa.String(), nullable=False, unique=True),
        sa.Column('family', sa.String(), nullable=True),
    )
    op.create_table(
        'ruleset',
        sa.Column('id', sa.String(), primary_key=True),
        sa.Column('sport_id', sa.String(), sa.ForeignKey('sport.id'), nullable=False),
        sa.Column('name', sa.String(), nullable=False),
        sa.Column('config', sa.JSON(), nullable=False),
    )
    op.create_table(
        'match',
        sa.Column('id', sa.String(), primary_key=True),
        sa.Column('sport_id', sa.String(), sa.ForeignKey('sport.id'), nullable=False),
        sa.Column('league_id', sa.String(), nullable=True),
        sa.Column('family_key', sa.String(), nullable=False),
        sa.Column('played_at', sa.DateTime(), nullable=False),
        sa.Column('status', sa.String(), nullable=False),
        sa.Column('finishing_order', sa.JSON(), nullable=False),
        sa.Column('record', sa.JSON(), nullable=False),
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.now(), nullable=False),
    )
    op.create_index('ix_match_league_played_at', 'match', ['league_id', 'played_at'])
    op.create_table(
        'participant_stats',
        sa.Column('player_id', sa.String(), primary_key=True),
        sa.Column('scope_key', sa.String(), primary_key=True),
        sa.Column('scope_kind', sa.String(), nullable=False),
        sa.Column('family_key', sa.String(), nullable=False),
        sa.Column('sport_id', sa.String(), nullable=True),
        sa.Column('league_id', sa.String(), nullable=True),
        sa.Column('stats', sa.JSON(), nullable=False),
        sa.Column('version', sa.Integer(), nullable=False),
        sa.Column('last_updated', sa.DateTime(), nullable=True),
    )
    op.create_table(
        'applied_stats_match',
        sa.Column('player_id', sa.String(), primary_key=True),
        sa.Column('match_id', sa.String(), primary_key=True),
        sa.Column('applied_at', sa.DateTime(), server_default=sa.func.now(), nullable=False),
    )


def downgrade():
    op.drop_table('applied_stats_match')
    op.drop_table('participant_stats')
    op.drop_index('ix_match_league_played_at', table_name='match')
    op.drop_table('match')
    op.drop_table('ruleset')
    op.drop_table('sport')
