from flask import request
from flask_socketio import join_room, leave_room, emit

from streamapp import socketio
from streamapp.utils.helpers import isoformat_utc


def stream_room(stream_id):
    return f'stream_{stream_id}'


@socketio.on('join_stream')
def handle_join_stream(data):
    stream_id = (data or {}).get('stream_id')
    if not stream_id:
        emit('stream_error', {'message': 'stream_id is required.'}, room=request.sid)
        return
    join_room(stream_room(stream_id))
    emit('joined_stream', {'stream_id': stream_id, 'room': stream_room(stream_id)}, room=request.sid)


@socketio.on('leave_stream')
def handle_leave_stream(data):
    stream_id = (data or {}).get('stream_id')
    if stream_id:
        leave_room(stream_room(stream_id))


def broadcast_chat_message(payload):
    """Pushes a serialized chat message to everyone watching its stream."""
    socketio.emit('chat_message', payload, room=stream_room(payload['stream_id']))


def broadcast_stream_update(stream):
    socketio.emit('stream_update', {
        'id': stream.id,
        'is_live': stream.is_live,
        'viewer_count': stream.viewer_count,
        'like_count': stream.like_count,
        'ended_at': isoformat_utc(stream.ended_at),
    }, room=stream_room(stream.id))
