"""Initial streaming schema

Revision ID: streamschema0001
Revises:
Create Date: 2025-01-15 12:00:00.000000

"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = 'streamschema0001'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    op.create_table(
        'users',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('wallet_address', sa.String(length=64), nullable=False),
        sa.Column('username', sa.String(length=64), nullable=True),
        sa.Column('display_name', sa.String(length=120), nullable=True),
        sa.Column('bio', sa.Text(), nullable=True),
        sa.Column('email', sa.String(length=120), nullable=True),
        sa.Column('avatar_url', sa.String(length=500), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('username'),
    )
    op.create_index('ix_users_wallet_address', 'users', ['wallet_address'], unique=True)

    op.create_table(
        'categories',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('name', sa.String(length=120), nullable=False),
        sa.Column('slug', sa.String(length=140), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('image_url', sa.String(length=500), nullable=True),
        sa.Column('order', sa.Integer(), nullable=False, server_default=sa.text('0')),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('name'),
    )
    op.create_index('ix_categories_slug', 'categories', ['slug'], unique=True)

    op.create_table(
        'streams',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('creator_address', sa.String(length=64), nullable=False),
        sa.Column('title', sa.String(length=200), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('category_id', sa.String(length=36), nullable=True),
        sa.Column('livepeer_stream_id', sa.String(length=64), nullable=True),
        sa.Column('livepeer_playback_id', sa.String(length=64), nullable=True),
        sa.Column('livepeer_stream_key', sa.String(length=128), nullable=True),
        sa.Column('asset_id', sa.String(length=64), nullable=True),
        sa.Column('asset_playback_id', sa.String(length=64), nullable=True),
        sa.Column('is_live', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('viewer_count', sa.Integer(), nullable=False, server_default=sa.text('0')),
        sa.Column('like_count', sa.Integer(), nullable=False, server_default=sa.text('0')),
        sa.Column('scheduled_at', sa.DateTime(), nullable=True),
        sa.Column('started_at', sa.DateTime(), nullable=True),
        sa.Column('ended_at', sa.DateTime(), nullable=True),
        sa.Column('vod_url', sa.String(length=500), nullable=True),
        sa.Column('preview_image_url', sa.String(length=500), nullable=True),
        sa.Column('has_minting', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('mint_contract_address', sa.String(length=64), nullable=True),
        sa.Column('mint_token_id', sa.String(length=78), nullable=True),
        sa.Column('mint_metadata_uri', sa.String(length=500), nullable=True),
        sa.Column('mint_max_supply', sa.Integer(), nullable=True),
        sa.Column('mint_per_wallet_limit', sa.Integer(), nullable=True),
        sa.Column('mint_current_supply', sa.Integer(), nullable=False, server_default=sa.text('0')),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(['category_id'], ['categories.id'], ondelete='SET NULL'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_streams_creator_address', 'streams', ['creator_address'])
    op.create_index('ix_streams_category_id', 'streams', ['category_id'])
    op.create_index('ix_streams_livepeer_stream_id', 'streams', ['livepeer_stream_id'])
    op.create_index('ix_streams_is_live', 'streams', ['is_live'])
    op.create_index('ix_streams_ended_at', 'streams', ['ended_at'])
    op.create_index('ix_streams_created_at', 'streams', ['created_at'])

    op.create_table(
        'chat_messages',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('stream_id', sa.String(length=36), nullable=False),
        sa.Column('sender_address', sa.String(length=64), nullable=False),
        sa.Column('message', sa.Text(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(['stream_id'], ['streams.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_chat_messages_stream_id', 'chat_messages', ['stream_id'])
    op.create_index('ix_chat_messages_created_at', 'chat_messages', ['created_at'])

    op.create_table(
        'stream_likes',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('stream_id', sa.String(length=36), nullable=False),
        sa.Column('user_address', sa.String(length=64), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(['stream_id'], ['streams.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('stream_id', 'user_address', name='_stream_user_like_uc'),
    )
    op.create_index('ix_stream_likes_stream_id', 'stream_likes', ['stream_id'])
    op.create_index('ix_stream_likes_user_address', 'stream_likes', ['user_address'])

    op.create_table(
        'stream_views',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('stream_id', sa.String(length=36), nullable=False),
        sa.Column('user_address', sa.String(length=64), nullable=True),
        sa.Column('viewed_at', sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(['stream_id'], ['streams.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_stream_views_stream_id', 'stream_views', ['stream_id'])

    op.create_table(
        'follows',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('follower_address', sa.String(length=64), nullable=False),
        sa.Column('following_address', sa.String(length=64), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('follower_address', 'following_address', name='_follower_following_uc'),
    )
    op.create_index('ix_follows_follower_address', 'follows', ['follower_address'])
    op.create_index('ix_follows_following_address', 'follows', ['following_address'])

    op.create_table(
        'reviews',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('reviewer_address', sa.String(length=64), nullable=False),
        sa.Column('reviewee_address', sa.String(length=64), nullable=False),
        sa.Column('rating', sa.Integer(), nullable=False),
        sa.Column('comment', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_reviews_reviewee_address', 'reviews', ['reviewee_address'])

    op.create_table(
        'spotlights',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('stream_id', sa.String(length=36), nullable=False),
        sa.Column('spotlighted', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(['stream_id'], ['streams.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_spotlights_created_at', 'spotlights', ['created_at'])


def downgrade():
    op.drop_table('spotlights')
    op.drop_table('reviews')
    op.drop_table('follows')
    op.drop_table('stream_views')
    op.drop_table('stream_likes')
    op.drop_table('chat_messages')
    op.drop_table('streams')
    op.drop_table('categories')
    op.drop_table('users')
