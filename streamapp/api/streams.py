from flask import current_app, jsonify, request
from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError

from streamapp import db, limiter
from streamapp.api import api_bp
from streamapp.api.serializers import serialize_profile_summary, serialize_stream, serialize_category
from streamapp.core.models import Category, Stream, StreamView, User
from streamapp.events import broadcast_stream_update
from streamapp.services import playback_service
from streamapp.services.livepeer_service import LivepeerError, LivepeerService
from streamapp.services.playback_service import (
    AssetNotReady, PlaybackError, PlaybackUnavailable, RecordingUnavailable, VENDOR_ERRORS,
)
from streamapp.utils.helpers import clean_optional_text, normalize_address, parse_bool, parse_datetime

STREAM_UPDATABLE_FIELDS = (
    'title', 'description', 'category_id', 'is_live', 'preview_image_url', 'vod_url',
    'has_minting', 'mint_contract_address', 'mint_token_id', 'mint_current_supply',
    'mint_max_supply', 'mint_per_wallet_limit',
)
STREAM_BOOLEAN_FIELDS = ('is_live', 'has_minting')
STREAM_INTEGER_FIELDS = ('mint_current_supply', 'mint_max_supply', 'mint_per_wallet_limit')
STREAM_DATETIME_FIELDS = ('scheduled_at', 'started_at', 'ended_at')
NO_STORE_HEADERS = {
    'Cache-Control': 'no-store, no-cache, must-revalidate, proxy-revalidate',
    'Pragma': 'no-cache',
    'Expires': '0',
}


def _extract_stream_key(livepeer_stream):
    stream_key = livepeer_stream.get('streamKey') or livepeer_stream.get('key')
    if not stream_key and livepeer_stream.get('rtmpIngestUrl'):
        stream_key = livepeer_stream['rtmpIngestUrl'].rstrip('/').split('/')[-1] or None
    return stream_key


@api_bp.route('/streams', methods=['GET'])
def list_streams():
    """
    List streams, newest first.
    ---
    tags:
      - Streams
    parameters:
      - name: creator
        in: query
        type: string
        required: false
        description: Only streams by this wallet address (case-insensitive).
      - name: live
        in: query
        type: boolean
        required: false
      - name: ended
        in: query
        type: boolean
        required: false
        description: Only ended streams, ordered by end time.
      - name: limit
        in: query
        type: integer
        required: false
    produces:
      - application/json
    responses:
      200:
        description: Streams enriched with category, creator profile, live viewer count and total views.
      400:
        description: Invalid limit.
    """
    query = Stream.query
    creator = normalize_address(request.args.get('creator'))
    if creator:
        query = query.filter(func.lower(Stream.creator_address) == creator)
    if request.args.get('live') == 'true':
        query = query.filter(Stream.is_live.is_(True))
    ended = request.args.get('ended') == 'true'
    if ended:
        query = query.filter(Stream.ended_at.isnot(None)).order_by(Stream.ended_at.desc())
    else:
        query = query.order_by(Stream.created_at.desc())

    limit = request.args.get('limit')
    if limit is not None:
        try:
            limit = int(limit)
        except ValueError:
            return jsonify(error="ValidationError", message="limit must be an integer."), 400
        if limit < 1:
            return jsonify(error="ValidationError", message="limit must be positive."), 400
        query = query.limit(limit)

    streams = query.all()
    livepeer = LivepeerService()

    addresses = {s.creator_address.lower() for s in streams}
    creators = {}
    if addresses:
        for user in User.query.filter(func.lower(User.wallet_address).in_(addresses)).all():
            creators[user.wallet_address.lower()] = serialize_profile_summary(user)

    category_ids = {s.category_id for s in streams if s.category_id}
    categories = {}
    if category_ids:
        categories = {c.id: serialize_category(c) for c in Category.query.filter(Category.id.in_(category_ids)).all()}

    results = []
    for stream in streams:
        extra = playback_service.enrich_stream_for_listing(stream, livepeer)
        data = serialize_stream(stream, include_category=False)
        data.update(extra)
        data['category'] = categories.get(stream.category_id)
        data['creator'] = creators.get(stream.creator_address.lower())
        results.append(data)

    cache_time = 10 if any(s.is_live and not s.has_ended for s in streams) else 60
    response = jsonify(results)
    response.headers['Cache-Control'] = f'public, s-maxage={cache_time}, stale-while-revalidate={cache_time * 2}'
    return response, 200


@api_bp.route('/streams', methods=['POST'])
@limiter.limit("30 per hour; 5 per minute")
def create_stream():
    """
    Launch a new stream.
    ---
    tags:
      - Streams
    consumes:
      - application/json
    parameters:
      - name: body
        in: body
        required: true
        schema:
          type: object
          required:
            - creator_address
            - title
          properties:
            creator_address:
              type: string
            title:
              type: string
            description:
              type: string
            category_id:
              type: string
            scheduled_at:
              type: string
              format: date-time
            has_minting:
              type: boolean
            preview_image_url:
              type: string
    responses:
      201:
        description: Stream created on Livepeer and stored.
      400:
        description: Missing creator address or title.
      500:
        description: Livepeer is not configured or rejected the request.
    """
    data = request.get_json(silent=True)
    if not data:
        return jsonify(error="InvalidRequest", message="No input data provided or not valid JSON."), 400

    creator_address = normalize_address(data.get('creator_address'))
    title = clean_optional_text(data.get('title'))
    if not creator_address:
        return jsonify(error="ValidationError", message="creator_address is required."), 400
    if not title:
        return jsonify(error="ValidationError", message="Title is required."), 400

    category_id = data.get('category_id') or None
    if category_id and not Category.query.get(category_id):
        return jsonify(error="ValidationError", message="Unknown category_id."), 400
    try:
        scheduled_at = parse_datetime(data.get('scheduled_at'))
    except ValueError:
        return jsonify(error="ValidationError", message="scheduled_at must be an ISO-8601 datetime."), 400

    if not current_app.config.get('LIVEPEER_API_KEY'):
        return jsonify(error="ConfigurationError", message="Livepeer API key not configured"), 500

    livepeer = LivepeerService()
    try:
        livepeer_stream = livepeer.create_stream(title)
    except VENDOR_ERRORS as e:
        current_app.logger.error(f"Failed to create Livepeer stream: {e}", exc_info=True)
        return jsonify(error="VendorError", message=f"Failed to launch stream: {e}"), 500

    if not livepeer_stream or not livepeer_stream.get('id'):
        return jsonify(error="VendorError", message="Invalid response from Livepeer"), 500

    playback_id = livepeer_stream.get('playbackId') or (livepeer_stream.get('playback') or {}).get('id')
    if not playback_id:
        try:
            playback_id = livepeer.get_stream(livepeer_stream['id']).get('playbackId')
        except VENDOR_ERRORS as e:
            current_app.logger.warning(f"Could not refetch playbackId for Livepeer stream {livepeer_stream['id']}: {e}")

    preview_image_url = clean_optional_text(data.get('preview_image_url'))
    stream = Stream(
        creator_address=creator_address,
        title=title,
        description=clean_optional_text(data.get('description')),
        category_id=category_id,
        scheduled_at=scheduled_at,
        livepeer_stream_id=livepeer_stream['id'],
        livepeer_playback_id=playback_id,
        livepeer_stream_key=_extract_stream_key(livepeer_stream),
        has_minting=parse_bool(data.get('has_minting')),
        preview_image_url=preview_image_url,
    )
    db.session.add(stream)
    db.session.commit()
    current_app.logger.info(f"Stream {stream.id} created for {creator_address} (Livepeer {stream.livepeer_stream_id})")

    if not preview_image_url and playback_id:
        thumbnail_url = livepeer.get_live_thumbnail_url(playback_id) or livepeer.generate_and_verify_thumbnail(
            playback_id, max_retries=1, retry_delay=current_app.config.get('THUMBNAIL_RETRY_DELAY', 2)
        )
        if thumbnail_url:
            stream.preview_image_url = thumbnail_url
            db.session.commit()

    return jsonify(serialize_stream(stream)), 201


@api_bp.route('/streams/<string:stream_id>', methods=['GET'])
def get_stream(stream_id):
    """
    Get a stream, refreshing it from Livepeer.
    ---
    tags:
      - Streams
    parameters:
      - name: stream_id
        in: path
        type: string
        required: true
    responses:
      200:
        description: The stream with its category. Ended streams carry their VOD URL once found.
      404:
        description: Stream not found.
    """
    stream = Stream.query.get_or_404(stream_id)
    livepeer = LivepeerService()

    if stream.has_ended:
        playback_service.find_recording(stream, livepeer)
        playback_service.ensure_preview_image(stream, livepeer)
    else:
        playback_service.sync_live_state(stream, livepeer)

    return jsonify(serialize_stream(stream)), 200


@api_bp.route('/streams/<string:stream_id>', methods=['PATCH'])
@limiter.limit("120 per hour")
def update_stream(stream_id):
    stream = Stream.query.get_or_404(stream_id)
    data = request.get_json(silent=True)
    if not data or not isinstance(data, dict):
        return jsonify(error="InvalidRequest", message="No input data provided or not valid JSON."), 400

    if 'category_id' in data and data['category_id'] and Category.query.get(data['category_id']) is None:
        return jsonify(error="ValidationError", message="Unknown category_id."), 400

    for field in STREAM_UPDATABLE_FIELDS:
        if field not in data:
            continue
        value = data[field]
        if field in STREAM_BOOLEAN_FIELDS:
            value = parse_bool(value)
        elif field in STREAM_INTEGER_FIELDS and value is not None:
            if isinstance(value, bool) or not isinstance(value, int) or value < 0:
                db.session.rollback()
                return jsonify(error="ValidationError", message=f"{field} must be a non-negative integer."), 400
        elif value is not None and not isinstance(value, str):
            db.session.rollback()
            return jsonify(error="ValidationError", message=f"{field} must be a string."), 400
        setattr(stream, field, value)
    for field in STREAM_DATETIME_FIELDS:
        if field in data:
            try:
                setattr(stream, field, parse_datetime(data[field]))
            except ValueError:
                db.session.rollback()
                return jsonify(error="ValidationError", message=f"{field} must be an ISO-8601 datetime."), 400

    if not stream.title or not str(stream.title).strip():
        db.session.rollback()
        return jsonify(error="ValidationError", message="Title cannot be empty."), 400

    try:
        db.session.commit()
    except SQLAlchemyError as e:
        db.session.rollback()
        current_app.logger.error(f"Failed to update stream {stream_id}: {e}", exc_info=True)
        return jsonify(error="ServerError", message="Failed to update stream"), 500

    try:
        broadcast_stream_update(stream)
    except Exception as e:
        current_app.logger.error(f"Failed to broadcast update for stream {stream_id}: {e}")
    return jsonify(serialize_stream(stream)), 200


@api_bp.route('/streams/<string:stream_id>', methods=['DELETE'])
def delete_stream(stream_id):
    """
    End a stream, or delete it permanently.

    With ``{"permanent": true}`` the stream and its chat, likes and views are
    removed. Otherwise the stream is marked as ended and its recording is
    looked up.
    """
    stream = Stream.query.get_or_404(stream_id)
    body = request.get_json(silent=True) or {}

    if body.get('permanent') is True:
        db.session.delete(stream)
        db.session.commit()
        current_app.logger.info(f"Stream {stream_id} permanently deleted")
        return jsonify(message="Stream deleted successfully"), 200

    try:
        playback_service.end_stream(stream, LivepeerService())
    except PlaybackError as e:
        return jsonify(error="ServerError", message=f"Failed to end stream: {e}"), 500
    return jsonify(serialize_stream(stream)), 200


@api_bp.route('/streams/<string:stream_id>/playback', methods=['GET'])
def get_stream_playback(stream_id):
    playback_id = request.args.get('playback_id')
    if not playback_id:
        return jsonify(error="ValidationError", message="playback_id is required"), 400

    stream = Stream.query.get(stream_id)
    try:
        result = playback_service.resolve_playback(stream, playback_id, LivepeerService())
    except AssetNotReady as e:
        return jsonify(
            error="AssetNotReady",
            message=f"Asset is not ready yet (status: {e.status}). Please try again in a few minutes.",
            asset_status=e.status,
        ), 202
    except PlaybackUnavailable as e:
        return jsonify(error="NotFound", message=str(e)), 404
    return jsonify(result), 200


@api_bp.route('/streams/<string:stream_id>/recording', methods=['GET'])
def get_stream_recording(stream_id):
    """
    Find the recording of an ended stream.
    ---
    tags:
      - Streams
    parameters:
      - name: stream_id
        in: path
        type: string
        required: true
      - name: asset_id
        in: query
        type: string
        required: false
        description: Look up this Livepeer asset directly before searching by stream.
    responses:
      200:
        description: The recording and where it was found.
      202:
        description: The asset is still processing.
      400:
        description: The stream has no Livepeer id or has not ended.
      404:
        description: Stream not found, or no recording is available yet.
    """
    livepeer = LivepeerService()
    asset_id = request.args.get('asset_id')
    if asset_id:
        try:
            recording = playback_service.resolve_asset_recording(asset_id, livepeer)
        except AssetNotReady as e:
            return jsonify(success=False, source=e.source, status=e.status, message=str(e)), 202
        except LivepeerError as e:
            current_app.logger.error(f"Failed to fetch asset {asset_id}: {e}")
            return jsonify(error="VendorError", message=f"Failed to fetch asset: {e}"), 500
        if recording:
            return jsonify(success=True, source='asset_by_id', recording=recording), 200

    stream = Stream.query.get(stream_id)
    if stream is None:
        return jsonify(error="NotFound", message="Stream not found"), 404
    if not stream.livepeer_stream_id:
        return jsonify(error="ValidationError", message="Stream has no Livepeer stream ID"), 400
    if not stream.has_ended:
        return jsonify(error="ValidationError", message="Stream has not ended yet"), 400

    try:
        source, recording = playback_service.resolve_recording(stream, livepeer)
    except AssetNotReady as e:
        return jsonify(success=False, source=e.source, status=e.status, message=str(e)), 202
    except RecordingUnavailable as e:
        return jsonify(success=False, message=str(e)), 404
    return jsonify(success=True, source=source, recording=recording), 200


@api_bp.route('/streams/<string:stream_id>/viewers', methods=['GET'])
def get_stream_viewers(stream_id):
    stream = Stream.query.get_or_404(stream_id)
    playback_id = stream.livepeer_playback_id
    if not playback_id:
        return jsonify(error="ValidationError", message="Stream has no playbackId yet"), 400

    livepeer = LivepeerService()
    return jsonify(
        playback_id=playback_id,
        viewer_count=livepeer.get_viewer_count(playback_id),
        total_views=livepeer.get_total_views(playback_id),
        peak_viewers=livepeer.get_peak_viewers(playback_id),
        historical_data=livepeer.get_historical_views(playback_id),
    ), 200


@api_bp.route('/streams/<string:stream_id>/views', methods=['GET'])
def get_stream_views(stream_id):
    stream = Stream.query.get_or_404(stream_id)
    playback_id, is_asset = playback_service.resolve_views_playback_id(stream, LivepeerService())
    if not playback_id:
        return jsonify(stream_id=stream.id, total_views=None, message="Stream has no playbackId yet"), 200, NO_STORE_HEADERS

    total_views = LivepeerService().get_total_views(playback_id)
    return jsonify(
        stream_id=stream.id,
        total_views=total_views,
        playback_id=playback_id,
        is_asset_playback_id=is_asset,
    ), 200, NO_STORE_HEADERS


@api_bp.route('/streams/<string:stream_id>/views', methods=['POST'])
@limiter.limit("60 per minute")
def record_stream_view(stream_id):
    stream = Stream.query.get_or_404(stream_id)
    data = request.get_json(silent=True) or {}
    view = StreamView(stream_id=stream.id, user_address=normalize_address(data.get('user_address')))
    db.session.add(view)
    db.session.commit()
    return jsonify(id=view.id, stream_id=stream.id, views=stream.views.count()), 201
