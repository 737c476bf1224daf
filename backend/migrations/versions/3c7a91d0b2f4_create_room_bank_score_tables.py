"""create room, bank, exam, account, stats, history, wrong-book and leaderboard tables

Revision ID: 3c7a91d0b2f4
Revises:
Create Date: 2026-10-19 00:00:00
"""

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '3c7a91d0b2f4'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    bind = op.get_bind()
    insp = sa.inspect(bind)
    existing_tables = set(insp.get_table_names())

    if 'user' not in existing_tables:
        op.create_table(
            'user',
            sa.Column('id', sa.String(length=20), primary_key=True),
            sa.Column('name', sa.String(length=64), nullable=False),
            sa.Column('password_hash', sa.String(length=128), nullable=False),
            sa.Column('role', sa.String(length=16), nullable=False, server_default='player'),
            sa.Column('created_at', sa.BigInteger(), nullable=False),
        )

    if 'user_stats' not in existing_tables:
        op.create_table(
            'user_stats',
            sa.Column('user_id', sa.String(length=128), primary_key=True),
            sa.Column('name', sa.String(length=64), nullable=True),
            sa.Column('last_score', sa.Float(), nullable=False, server_default='0'),
            sa.Column('total_questions', sa.Float(), nullable=False, server_default='0'),
            sa.Column('last_correct', sa.Float(), nullable=False, server_default='0'),
            sa.Column('attempt_count', sa.Integer(), nullable=False, server_default='0'),
            sa.Column('best_score', sa.Float(), nullable=False, server_default='0'),
            sa.Column('total_score_sum', sa.Float(), nullable=False, server_default='0'),
            sa.Column('avg_score', sa.Float(), nullable=False, server_default='0'),
            sa.Column('mode', sa.String(length=32), nullable=True),
            sa.Column('last_room_id', sa.String(length=64), nullable=True),
            sa.Column('bank_id', sa.String(length=128), nullable=True),
            sa.Column('updated_at', sa.BigInteger(), nullable=True),
        )

    if 'history_entry' not in existing_tables:
        op.create_table(
            'history_entry',
            sa.Column('id', sa.Integer(), primary_key=True),
            sa.Column('user_id', sa.String(length=128), nullable=False),
            sa.Column('score', sa.Float(), nullable=False, server_default='0'),
            sa.Column('total', sa.Float(), nullable=False, server_default='0'),
            sa.Column('correct_count', sa.Float(), nullable=False, server_default='0'),
            sa.Column('wrong_count', sa.Integer(), nullable=False, server_default='0'),
            sa.Column('mode', sa.String(length=32), nullable=True),
            sa.Column('room_id', sa.String(length=64), nullable=True),
            sa.Column('bank_id', sa.String(length=128), nullable=True),
            sa.Column('created_at', sa.BigInteger(), nullable=False),
        )
        op.create_index('ix_history_entry_user_id', 'history_entry', ['user_id'])

    if 'wrong_question' not in existing_tables:
        op.create_table(
            'wrong_question',
            sa.Column('id', sa.Integer(), primary_key=True),
            sa.Column('user_id', sa.String(length=128), nullable=False),
            sa.Column('topic', sa.String(length=128), nullable=False, server_default=''),
            sa.Column('tag', sa.String(length=128), nullable=False, server_default=''),
            sa.Column('text', sa.Text(), nullable=False),
            sa.Column('options', sa.Text(), nullable=True),
            sa.Column('answers', sa.Text(), nullable=True),
            sa.Column('explanation', sa.Text(), nullable=False),
            sa.Column('created_at', sa.BigInteger(), nullable=False),
        )
        op.create_index('ix_wrong_question_user_id', 'wrong_question', ['user_id'])

    if 'leaderboard_entry' not in existing_tables:
        op.create_table(
            'leaderboard_entry',
            sa.Column('mode', sa.String(length=8), primary_key=True),
            sa.Column('user_id', sa.String(length=128), primary_key=True),
            sa.Column('score', sa.Float(), nullable=False, server_default='0'),
        )
        op.create_index('ix_leaderboard_mode_score', 'leaderboard_entry', ['mode', 'score'])

    if 'room' not in existing_tables:
        op.create_table(
            'room',
            sa.Column('id', sa.String(length=64), primary_key=True),
            sa.Column('host_id', sa.String(length=128), nullable=True),
            sa.Column('created_at', sa.BigInteger(), nullable=False),
        )

    if 'bank' not in existing_tables:
        op.create_table(
            'bank',
            sa.Column('room_id', sa.String(length=64), primary_key=True),
            sa.Column('bank_id', sa.String(length=128), primary_key=True),
            sa.Column('payload', sa.Text(), nullable=False),
        )

    if 'exam_session' not in existing_tables:
        op.create_table(
            'exam_session',
            sa.Column('room_id', sa.String(length=64), primary_key=True),
            sa.Column('bank_id', sa.String(length=128), nullable=False),
            sa.Column('question_count', sa.Integer(), nullable=False),
            sa.Column('time_limit_minutes', sa.Float(), nullable=True),
            sa.Column('created_at', sa.BigInteger(), nullable=False),
        )


def downgrade():
    op.drop_table('exam_session')
    op.drop_table('bank')
    op.drop_table('room')
    op.drop_index('ix_leaderboard_mode_score', table_name='leaderboard_entry')
    op.drop_table('leaderboard_entry')
    op.drop_index('ix_wrong_question_user_id', table_name='wrong_question')
    op.drop_table('wrong_question')
    op.drop_index('ix_history_entry_user_id', table_name='history_entry')
    op.drop_table('history_entry')
    op.drop_table('user_stats')
    op.drop_table('user')
