from flask import current_app, jsonify, request

from streamapp import db, limiter
from streamapp.api import api_bp
from streamapp.api.serializers import serialize_chat_message
from streamapp.core.models import ChatMessage, Stream
from streamapp.events import broadcast_chat_message
from streamapp.utils.helpers import normalize_address

MAX_CHAT_MESSAGE_LENGTH = 500


@api_bp.route('/chat', methods=['POST'])
@limiter.limit("20 per minute")
def post_chat_message():
    """
    Send a chat message to a stream.
    ---
    tags:
      - Chat
    parameters:
      - name: body
        in: body
        required: true
        schema:
          type: object
          required:
            - stream_id
            - sender_address
            - message
          properties:
            stream_id:
              type: string
            sender_address:
              type: string
            message:
              type: string
              maxLength: 500
    responses:
      201:
        description: Message stored and pushed to the stream's room.
      400:
        description: Missing fields or message too long.
      404:
        description: Stream not found.
      429:
        description: Rate limit exceeded.
    """
    data = request.get_json(silent=True)
    if not data:
        return jsonify(error="InvalidRequest", message="No input data provided or not valid JSON."), 400

    stream_id = data.get('stream_id')
    sender_address = normalize_address(data.get('sender_address'))
    message = data.get('message')
    message = message.strip() if isinstance(message, str) else ''
    if not stream_id or not sender_address or not message:
        return jsonify(error="ValidationError", message="stream_id, sender_address and message are required."), 400
    if len(message) > MAX_CHAT_MESSAGE_LENGTH:
        return jsonify(error="ValidationError",
                       message=f"Message cannot exceed {MAX_CHAT_MESSAGE_LENGTH} characters."), 400

    if Stream.query.get(stream_id) is None:
        return jsonify(error="NotFound", message="Stream not found"), 404

    chat_message = ChatMessage(stream_id=stream_id, sender_address=sender_address, message=message)
    db.session.add(chat_message)
    db.session.commit()

    payload = serialize_chat_message(chat_message)
    try:
        broadcast_chat_message(payload)
    except Exception as e:
        current_app.logger.error(f"Failed to broadcast chat message {chat_message.id}: {e}")
    return jsonify(payload), 201


@api_bp.route('/chat/<string:stream_id>', methods=['GET'])
def list_chat_messages(stream_id):
    messages = (ChatMessage.query
                .filter_by(stream_id=stream_id)
                .order_by(ChatMessage.created_at.asc())
                .all())
    return jsonify([serialize_chat_message(m) for m in messages]), 200
