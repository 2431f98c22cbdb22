from flask import jsonify, request
from sqlalchemy import func
from sqlalchemy.exc import IntegrityError

from streamapp import db, limiter
from streamapp.api import api_bp
from streamapp.api.serializers import serialize_follow, serialize_profile_summary
from streamapp.core.models import Follow, User
from streamapp.utils.helpers import normalize_address, parse_bool


@api_bp.route('/follows', methods=['GET'])
def get_follows():
    """
    Follow state, counts and lists.
    ---
    tags:
      - Follows
    parameters:
      - name: follower
        in: query
        type: string
        description: With following, answers whether follower follows following.
      - name: following
        in: query
        type: string
      - name: address
        in: query
        type: string
      - name: type
        in: query
        type: string
        enum: [followers, following]
      - name: list
        in: query
        type: boolean
        description: Return the profiles instead of a count.
    responses:
      200:
        description: is_following, a count, or a list of profiles.
      400:
        description: Missing or invalid parameters.
    """
    follower = normalize_address(request.args.get('follower'))
    following = normalize_address(request.args.get('following'))
    if follower and following:
        exists = Follow.query.filter_by(follower_address=follower, following_address=following).first() is not None
        return jsonify(is_following=exists), 200

    address = normalize_address(request.args.get('address'))
    follow_type = request.args.get('type')
    if not address or follow_type not in ('followers', 'following'):
        return jsonify(error="ValidationError",
                       message="Provide follower and following, or address and type=followers|following."), 400

    if follow_type == 'followers':
        query = Follow.query.filter_by(following_address=address)
        other_column = Follow.follower_address
    else:
        query = Follow.query.filter_by(follower_address=address)
        other_column = Follow.following_address

    if not parse_bool(request.args.get('list')):
        return jsonify(address=address, type=follow_type, count=query.count()), 200

    follows = query.order_by(Follow.created_at.desc()).all()
    other_addresses = [getattr(f, other_column.key) for f in follows]
    profiles = {}
    if other_addresses:
        for user in User.query.filter(func.lower(User.wallet_address).in_(other_addresses)).all():
            profiles[user.wallet_address.lower()] = serialize_profile_summary(user)

    results = []
    for follow, other_address in zip(follows, other_addresses):
        results.append({
            'address': other_address,
            'followed_at': serialize_follow(follow)['created_at'],
            'profile': profiles.get(other_address),
        })
    return jsonify(address=address, type=follow_type, count=len(results), items=results), 200


@api_bp.route('/follows', methods=['POST'])
@limiter.limit("100 per hour")
def follow():
    data = request.get_json(silent=True) or {}
    follower = normalize_address(data.get('follower_address'))
    following = normalize_address(data.get('following_address'))
    if not follower or not following:
        return jsonify(error="ValidationError", message="follower_address and following_address are required."), 400
    if follower == following:
        return jsonify(error="ValidationError", message="You cannot follow yourself."), 400

    existing = Follow.query.filter_by(follower_address=follower, following_address=following).first()
    if existing:
        return jsonify(serialize_follow(existing)), 200

    edge = Follow(follower_address=follower, following_address=following)
    db.session.add(edge)
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        existing = Follow.query.filter_by(follower_address=follower, following_address=following).first()
        return jsonify(serialize_follow(existing)), 200
    return jsonify(serialize_follow(edge)), 201


@api_bp.route('/follows', methods=['DELETE'])
def unfollow():
    data = request.get_json(silent=True) or {}
    follower = normalize_address(data.get('follower_address') or request.args.get('follower_address'))
    following = normalize_address(data.get('following_address') or request.args.get('following_address'))
    if not follower or not following:
        return jsonify(error="ValidationError", message="follower_address and following_address are required."), 400

    Follow.query.filter_by(follower_address=follower, following_address=following).delete()
    db.session.commit()
    return jsonify(message="Unfollowed successfully"), 200
