from flask import current_app, jsonify, request

from streamapp import db, limiter
from streamapp.api import api_bp
from streamapp.core.models import Stream
from streamapp.services.pinata_service import PinataError, PinataService, build_mint_metadata


def _positive_int(value):
    if value is None or isinstance(value, bool):
        return None
    try:
        value = int(value)
    except (TypeError, ValueError):
        return None
    return value if value > 0 else None


@api_bp.route('/mint', methods=['POST'])
@limiter.limit("10 per hour")
def create_mint_metadata():
    """
    Pin a stream's mint metadata to IPFS.

    Expects ``stream_id``, ``image`` (an image URI) and optionally
    ``description``, ``max_supply`` and ``per_wallet_limit``. The metadata URI
    and supply limits are stored on the stream.
    """
    data = request.get_json(silent=True)
    if not data:
        return jsonify(error="InvalidRequest", message="No input data provided or not valid JSON."), 400

    stream_id = data.get('stream_id')
    image = data.get('image')
    if not stream_id or not image:
        return jsonify(error="ValidationError", message="stream_id and image are required."), 400

    max_supply = _positive_int(data.get('max_supply'))
    per_wallet_limit = _positive_int(data.get('per_wallet_limit'))
    if data.get('max_supply') is not None and max_supply is None:
        return jsonify(error="ValidationError", message="max_supply must be a positive integer."), 400
    if data.get('per_wallet_limit') is not None and per_wallet_limit is None:
        return jsonify(error="ValidationError", message="per_wallet_limit must be a positive integer."), 400

    stream = Stream.query.get_or_404(stream_id)
    metadata = build_mint_metadata(stream.id, image, data.get('description') or stream.description)

    try:
        metadata_uri = PinataService().pin_json(metadata)
    except PinataError as e:
        current_app.logger.error(f"Failed to pin mint metadata for stream {stream.id}: {e}")
        return jsonify(error="VendorError", message=str(e)), 500

    stream.has_minting = True
    stream.mint_metadata_uri = metadata_uri
    stream.mint_max_supply = max_supply
    stream.mint_per_wallet_limit = per_wallet_limit
    db.session.commit()
    current_app.logger.info(f"Mint metadata for stream {stream.id} pinned at {metadata_uri}")
    return jsonify(metadata_uri=metadata_uri, metadata=metadata), 200
