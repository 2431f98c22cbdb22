from flask import jsonify, request
from sqlalchemy import func

from streamapp import db
from streamapp.api import api_bp
from streamapp.api.serializers import serialize_profile_summary
from streamapp.core.models import Follow, Stream, StreamView, User


@api_bp.route('/creators', methods=['GET'])
def list_creators():
    """
    Creator leaderboard.
    ---
    tags:
      - Creators
    parameters:
      - name: limit
        in: query
        type: integer
        required: false
        default: 50
    responses:
      200:
        description: Creators with stream, follower and view counts, most followed first.
    """
    limit = request.args.get('limit', 50, type=int)
    limit = max(1, min(limit, 200))

    # Profiles count even without streams, and streamers count even without a profile
    profiles = {u.wallet_address.lower(): u for u in User.query.all()}
    stream_counts = dict(
        db.session.query(func.lower(Stream.creator_address), func.count(Stream.id))
        .group_by(func.lower(Stream.creator_address))
        .all()
    )
    addresses = set(profiles) | set(stream_counts)
    if not addresses:
        return jsonify([]), 200

    follower_counts = dict(
        db.session.query(func.lower(Follow.following_address), func.count(Follow.id))
        .filter(func.lower(Follow.following_address).in_(addresses))
        .group_by(func.lower(Follow.following_address))
        .all()
    )
    view_counts = dict(
        db.session.query(func.lower(Stream.creator_address), func.count(StreamView.id))
        .join(StreamView, StreamView.stream_id == Stream.id)
        .group_by(func.lower(Stream.creator_address))
        .all()
    )
    live_counts = dict(
        db.session.query(func.lower(Stream.creator_address), func.count(Stream.id))
        .filter(Stream.is_live.is_(True), Stream.ended_at.is_(None))
        .group_by(func.lower(Stream.creator_address))
        .all()
    )

    creators = []
    for address in addresses:
        creators.append({
            'wallet_address': address,
            'profile': serialize_profile_summary(profiles.get(address)),
            'stream_count': stream_counts.get(address, 0),
            'follower_count': follower_counts.get(address, 0),
            'total_views': view_counts.get(address, 0),
            'is_live': live_counts.get(address, 0) > 0,
        })
    creators.sort(key=lambda c: (-c['follower_count'], -c['total_views'], c['wallet_address']))
    return jsonify(creators[:limit]), 200
