"""create conversations and messages tables with branch lineage

Revision ID: 0001_conversations_messages
Revises:
Create Date: 2026-10-19 10:00:00.000000

"""
from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = '0001_conversations_messages'
down_revision = None
branch_labels = None
depends_on = None

def upgrade():
    op.create_table(
        'conversations',
        sa.Column('id', sa.String(36), nullable=False),
        sa.Column('title', sa.String(), nullable=False),
        sa.Column('parent_conversation_id', sa.String(36), nullable=True),
        sa.Column('branch_from_message_id', sa.String(36), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(['parent_conversation_id'], ['conversations.id'], ondelete='SET NULL'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_conversations_parent_conversation_id', 'conversations', ['parent_conversation_id'])

    op.create_table(
        'messages',
        sa.Column('id', sa.String(36), nullable=False),
        sa.Column('conversation_id', sa.String(36), nullable=False),
        sa.Column('role', sa.String(16), nullable=False),
        sa.Column('content', sa.Text(), nullable=False),
        sa.Column('sequence', sa.Integer(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(['conversation_id'], ['conversations.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('conversation_id', 'sequence', name='uq_messages_conversation_sequence')
    )
    op.create_index('idx_messages_conversation_order', 'messages', ['conversation_id', 'created_at', 'sequence'])

    # Added after messages exists: conversations and messages reference each other
    with op.batch_alter_table('conversations') as batch_op:
        batch_op.create_foreign_key(
            'fk_conversations_branch_from_message_id',
            'messages',
            ['branch_from_message_id'],
            ['id'],
            ondelete='SET NULL',
        )

def downgrade():
    with op.batch_alter_table('conversations') as batch_op:
        batch_op.drop_constraint('fk_conversations_branch_from_message_id', type_='foreignkey')

    op.drop_index('idx_messages_conversation_order', table_name='messages')
    op.drop_table('messages')

    op.drop_index('ix_conversations_parent_conversation_id', table_name='conversations')
    op.drop_table('conversations')
