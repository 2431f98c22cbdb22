from flask import jsonify

from streamapp.api import api_bp
from streamapp.api.serializers import serialize_profile_summary, serialize_stream
from streamapp.core.models import Spotlight, Stream, User
from streamapp.services import playback_service
from streamapp.services.livepeer_service import LivepeerService


@api_bp.route('/spotlight', methods=['GET'])
def get_spotlight():
    """The most recently spotlighted stream, or null when nothing is spotlighted."""
    spotlight = (Spotlight.query
                 .join(Stream, Spotlight.stream_id == Stream.id)
                 .filter(Spotlight.spotlighted.is_(True))
                 .order_by(Spotlight.created_at.desc())
                 .first())
    if spotlight is None:
        return jsonify(None), 200

    stream = spotlight.stream
    data = serialize_stream(stream)
    data.update(playback_service.enrich_stream_for_listing(stream, LivepeerService()))
    creator = User.query.filter_by(wallet_address=stream.creator_address.lower()).first()
    data['creator'] = serialize_profile_summary(creator)
    return jsonify(data), 200
