"""create_exam_sessions

Revision ID: 3f1c9a2b7d40
Revises:
Create Date: 2026-10-19 09:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '3f1c9a2b7d40'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Upgrade schema."""
    op.create_table('exam_sessions',
        sa.Column('id', sa.String(64), nullable=False),
        sa.Column('user_id', sa.String(64), nullable=False),
        sa.Column('exam_set_id', sa.String(64), nullable=False),
        sa.Column('started_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('completed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('time_spent', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('current_index', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('time_left', sa.Integer(), nullable=True),
        sa.Column('status', sa.String(20), nullable=False, server_default='in_progress'),
        sa.Column('total_questions', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('correct_answers', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('score', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('meta_json', sa.Text(), nullable=True),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_exam_sessions_id', 'exam_sessions', ['id'])
    op.create_index('ix_exam_sessions_user_id', 'exam_sessions', ['user_id'])
    op.create_index('ix_exam_sessions_exam_set_id', 'exam_sessions', ['exam_set_id'])
    op.create_index('ix_exam_sessions_status', 'exam_sessions', ['status'])

    op.create_table('exam_answers',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('session_id', sa.String(64), nullable=False),
        sa.Column('question_id', sa.String(64), nullable=False),
        sa.Column('answer', sa.Text(), nullable=True),
        sa.Column('time_spent_ms', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('answered_at', sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['session_id'], ['exam_sessions.id'], ondelete='CASCADE'),
        sa.UniqueConstraint('session_id', 'question_id', name='uq_session_question')
    )
    op.create_index('ix_exam_answers_id', 'exam_answers', ['id'])
    op.create_index('ix_exam_answers_session_id', 'exam_answers', ['session_id'])


def downgrade() -> None:
    """Downgrade schema."""
    op.drop_index('ix_exam_answers_session_id', table_name='exam_answers')
    op.drop_index('ix_exam_answers_id', table_name='exam_answers')
    op.drop_table('exam_answers')
    op.drop_index('ix_exam_sessions_status', table_name='exam_sessions')
    op.drop_index('ix_exam_sessions_exam_set_id', table_name='exam_sessions')
    op.drop_index('ix_exam_sessions_user_id', table_name='exam_sessions')
    op.drop_index('ix_exam_sessions_id', table_name='exam_sessions')
    op.drop_table('exam_sessions')
