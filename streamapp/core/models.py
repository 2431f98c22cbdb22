import uuid

from streamapp import db
from streamapp.utils.helpers import get_current_utc


def generate_uuid():
    return str(uuid.uuid4())


class User(db.Model):
    """A wallet-keyed creator or viewer profile."""
    __tablename__ = 'users'
    id = db.Column(db.String(36), primary_key=True, default=generate_uuid)
    wallet_address = db.Column(db.String(64), unique=True, nullable=False, index=True)
    username = db.Column(db.String(64), unique=True, nullable=True)
    display_name = db.Column(db.String(120), nullable=True)
    bio = db.Column(db.Text, nullable=True)
    email = db.Column(db.String(120), nullable=True)
    avatar_url = db.Column(db.String(500), nullable=True)
    created_at = db.Column(db.DateTime, default=get_current_utc)
    updated_at = db.Column(db.DateTime, default=get_current_utc, onupdate=get_current_utc)

    def __repr__(self):
        return f'<User {self.wallet_address} ({self.username or "no username"})>'


class Category(db.Model):
    __tablename__ = 'categories'
    id = db.Column(db.String(36), primary_key=True, default=generate_uuid)
    name = db.Column(db.String(120), unique=True, nullable=False)
    slug = db.Column(db.String(140), unique=True, nullable=False, index=True)
    description = db.Column(db.Text, nullable=True)
    image_url = db.Column(db.String(500), nullable=True)
    order = db.Column(db.Integer, default=0, nullable=False)
    created_at = db.Column(db.DateTime, default=get_current_utc)

    def __repr__(self):
        return f'<Category {self.name}>'


class Stream(db.Model):
    """
    A livestream and, once it has ended, its recording.

    The ``livepeer_*`` columns identify the vendor stream; ``asset_id`` and
    ``asset_playback_id`` are filled in once the vendor has produced a VOD
    asset and take precedence over the stream ids after the stream ends.
    """
    __tablename__ = 'streams'
    id = db.Column(db.String(36), primary_key=True, default=generate_uuid)
    creator_address = db.Column(db.String(64), nullable=False, index=True)
    title = db.Column(db.String(200), nullable=False)
    description = db.Column(db.Text, nullable=True)
    category_id = db.Column(db.String(36), db.ForeignKey('categories.id', ondelete='SET NULL'), nullable=True, index=True)

    livepeer_stream_id = db.Column(db.String(64), nullable=True, index=True)
    livepeer_playback_id = db.Column(db.String(64), nullable=True)
    livepeer_stream_key = db.Column(db.String(128), nullable=True)
    asset_id = db.Column(db.String(64), nullable=True)
    asset_playback_id = db.Column(db.String(64), nullable=True)

    is_live = db.Column(db.Boolean, default=False, nullable=False, index=True)
    viewer_count = db.Column(db.Integer, default=0, nullable=False)
    like_count = db.Column(db.Integer, default=0, nullable=False)

    scheduled_at = db.Column(db.DateTime, nullable=True)
    started_at = db.Column(db.DateTime, nullable=True)
    ended_at = db.Column(db.DateTime, nullable=True, index=True)

    vod_url = db.Column(db.String(500), nullable=True)
    preview_image_url = db.Column(db.String(500), nullable=True)

    has_minting = db.Column(db.Boolean, default=False, nullable=False)
    mint_contract_address = db.Column(db.String(64), nullable=True)
    mint_token_id = db.Column(db.String(78), nullable=True)
    mint_metadata_uri = db.Column(db.String(500), nullable=True)
    mint_max_supply = db.Column(db.Integer, nullable=True)
    mint_per_wallet_limit = db.Column(db.Integer, nullable=True)
    mint_current_supply = db.Column(db.Integer, default=0, nullable=False)

    created_at = db.Column(db.DateTime, default=get_current_utc, index=True)
    updated_at = db.Column(db.DateTime, default=get_current_utc, onupdate=get_current_utc)

    category = db.relationship('Category', backref=db.backref('streams', lazy='dynamic'))

    @property
    def has_ended(self):
        return self.ended_at is not None

    def __repr__(self):
        return f'<Stream {self.id} by {self.creator_address} - Title: {self.title[:30] if self.title else "N/A"}>'


class ChatMessage(db.Model):
    __tablename__ = 'chat_messages'
    id = db.Column(db.String(36), primary_key=True, default=generate_uuid)
    stream_id = db.Column(db.String(36), db.ForeignKey('streams.id', ondelete='CASCADE'), nullable=False, index=True)
    sender_address = db.Column(db.String(64), nullable=False)
    message = db.Column(db.Text, nullable=False)
    created_at = db.Column(db.DateTime, default=get_current_utc, index=True)

    stream = db.relationship('Stream', backref=db.backref('chat_messages', lazy='dynamic', cascade='all, delete-orphan'))

    def __repr__(self):
        return f'<ChatMessage {self.id} by {self.sender_address} in Stream {self.stream_id}>'


class StreamLike(db.Model):
    __tablename__ = 'stream_likes'
    id = db.Column(db.String(36), primary_key=True, default=generate_uuid)
    stream_id = db.Column(db.String(36), db.ForeignKey('streams.id', ondelete='CASCADE'), nullable=False, index=True)
    user_address = db.Column(db.String(64), nullable=False, index=True)
    created_at = db.Column(db.DateTime, default=get_current_utc)
    __table_args__ = (db.UniqueConstraint('stream_id', 'user_address', name='_stream_user_like_uc'),)

    stream = db.relationship('Stream', backref=db.backref('likes', lazy='dynamic', cascade='all, delete-orphan'))


class StreamView(db.Model):
    __tablename__ = 'stream_views'
    id = db.Column(db.String(36), primary_key=True, default=generate_uuid)
    stream_id = db.Column(db.String(36), db.ForeignKey('streams.id', ondelete='CASCADE'), nullable=False, index=True)
    user_address = db.Column(db.String(64), nullable=True)
    viewed_at = db.Column(db.DateTime, default=get_current_utc)

    stream = db.relationship('Stream', backref=db.backref('views', lazy='dynamic', cascade='all, delete-orphan'))


class Follow(db.Model):
    __tablename__ = 'follows'
    id = db.Column(db.String(36), primary_key=True, default=generate_uuid)
    follower_address = db.Column(db.String(64), nullable=False, index=True)
    following_address = db.Column(db.String(64), nullable=False, index=True)
    created_at = db.Column(db.DateTime, default=get_current_utc)
    __table_args__ = (db.UniqueConstraint('follower_address', 'following_address', name='_follower_following_uc'),)

    def __repr__(self):
        return f'<Follow {self.follower_address} -> {self.following_address}>'


class Review(db.Model):
    __tablename__ = 'reviews'
    id = db.Column(db.String(36), primary_key=True, default=generate_uuid)
    reviewer_address = db.Column(db.String(64), nullable=False)
    reviewee_address = db.Column(db.String(64), nullable=False, index=True)
    rating = db.Column(db.Integer, nullable=False)
    comment = db.Column(db.Text, nullable=True)
    created_at = db.Column(db.DateTime, default=get_current_utc)


class Spotlight(db.Model):
    __tablename__ = 'spotlights'
    id = db.Column(db.String(36), primary_key=True, default=generate_uuid)
    stream_id = db.Column(db.String(36), db.ForeignKey('streams.id', ondelete='CASCADE'), nullable=False)
    spotlighted = db.Column(db.Boolean, default=True, nullable=False)
    created_at = db.Column(db.DateTime, default=get_current_utc, index=True)

    stream = db.relationship('Stream', backref=db.backref('spotlights', lazy='dynamic', cascade='all, delete-orphan'))
