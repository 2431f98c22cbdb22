from flask import current_app, jsonify, request
from sqlalchemy.exc import IntegrityError

from streamapp import db, limiter
from streamapp.api import api_bp
from streamapp.api.serializers import serialize_stream
from streamapp.core.models import Stream, StreamLike
from streamapp.events import broadcast_stream_update
from streamapp.utils.helpers import isoformat_utc, normalize_address


def _user_address_from_request():
    data = request.get_json(silent=True) or {}
    return normalize_address(data.get('user_address') or request.args.get('user_address'))


def _refresh_like_count(stream):
    stream.like_count = StreamLike.query.filter_by(stream_id=stream.id).count()
    db.session.commit()
    broadcast_stream_update(stream)
    return stream.like_count


@api_bp.route('/streams/<string:stream_id>/likes', methods=['GET'])
def get_like_state(stream_id):
    stream = Stream.query.get_or_404(stream_id)
    user_address = normalize_address(request.args.get('user_address'))
    is_liked = False
    if user_address:
        is_liked = StreamLike.query.filter_by(stream_id=stream.id, user_address=user_address).first() is not None
    return jsonify(stream_id=stream.id, like_count=stream.like_count, is_liked=is_liked), 200


@api_bp.route('/streams/<string:stream_id>/likes', methods=['POST'])
@limiter.limit("60 per minute")
def like_stream(stream_id):
    """
    Like a stream. Liking twice is a no-op.
    ---
    tags:
      - Likes
    parameters:
      - name: stream_id
        in: path
        type: string
        required: true
      - name: body
        in: body
        required: true
        schema:
          type: object
          required:
            - user_address
          properties:
            user_address:
              type: string
    responses:
      200:
        description: The stream was already liked by this user.
      201:
        description: Like recorded.
      400:
        description: user_address missing.
      404:
        description: Stream not found.
    """
    stream = Stream.query.get_or_404(stream_id)
    user_address = _user_address_from_request()
    if not user_address:
        return jsonify(error="ValidationError", message="user_address is required."), 400

    if StreamLike.query.filter_by(stream_id=stream.id, user_address=user_address).first():
        return jsonify(stream_id=stream.id, like_count=stream.like_count, is_liked=True), 200

    db.session.add(StreamLike(stream_id=stream.id, user_address=user_address))
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        current_app.logger.info(f"Concurrent like of stream {stream.id} by {user_address}")
        return jsonify(stream_id=stream.id, like_count=stream.like_count, is_liked=True), 200

    like_count = _refresh_like_count(stream)
    return jsonify(stream_id=stream.id, like_count=like_count, is_liked=True), 201


@api_bp.route('/streams/<string:stream_id>/likes', methods=['DELETE'])
def unlike_stream(stream_id):
    stream = Stream.query.get_or_404(stream_id)
    user_address = _user_address_from_request()
    if not user_address:
        return jsonify(error="ValidationError", message="user_address is required."), 400

    like = StreamLike.query.filter_by(stream_id=stream.id, user_address=user_address).first()
    if like is None:
        return jsonify(stream_id=stream.id, like_count=stream.like_count, is_liked=False), 200

    db.session.delete(like)
    db.session.commit()
    like_count = _refresh_like_count(stream)
    return jsonify(stream_id=stream.id, like_count=like_count, is_liked=False), 200


@api_bp.route('/streams/liked', methods=['GET'])
def list_liked_streams():
    user_address = normalize_address(request.args.get('user_address'))
    if not user_address:
        return jsonify(error="ValidationError", message="user_address is required."), 400

    rows = (db.session.query(StreamLike, Stream)
            .join(Stream, StreamLike.stream_id == Stream.id)
            .filter(StreamLike.user_address == user_address)
            .order_by(StreamLike.created_at.desc())
            .all())
    return jsonify([serialize_stream(stream, liked_at=isoformat_utc(like.created_at)) for like, stream in rows]), 200
