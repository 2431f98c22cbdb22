import unittest

from flask_socketio import SocketIOTestClient

from streamapp import create_app, db, socketio as app_socketio
from streamapp.core.models import Stream
from streamapp.events import broadcast_chat_message, broadcast_stream_update, stream_room
from config import TestingConfig


class StreamSocketEventsTestCase(unittest.TestCase):
    def setUp(self):
        self.app = create_app(TestingConfig)
        self.app_context = self.app.app_context()
        self.app_context.push()
        db.create_all()

        self.stream = Stream(creator_address='0xaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaa', title='Socket stream',
                             is_live=True, viewer_count=3, like_count=1)
        db.session.add(self.stream)
        db.session.commit()

        self.viewer = SocketIOTestClient(self.app, app_socketio)
        self.other_viewer = SocketIOTestClient(self.app, app_socketio)

    def tearDown(self):
        if self.viewer.is_connected():
            self.viewer.disconnect()
        if self.other_viewer.is_connected():
            self.other_viewer.disconnect()
        db.session.remove()
        db.drop_all()
        self.app_context.pop()

    def _events(self, client, name):
        return [event for event in client.get_received() if event['name'] == name]

    def test_join_stream_acknowledged(self):
        self.viewer.emit('join_stream', {'stream_id': self.stream.id})
        joined = self._events(self.viewer, 'joined_stream')
        self.assertEqual(len(joined), 1)
        self.assertEqual(joined[0]['args'][0], {'stream_id': self.stream.id, 'room': stream_room(self.stream.id)})

    def test_join_requires_stream_id(self):
        self.viewer.emit('join_stream', {})
        errors = self._events(self.viewer, 'stream_error')
        self.assertEqual(len(errors), 1)

    def test_chat_message_reaches_room_only(self):
        self.viewer.emit('join_stream', {'stream_id': self.stream.id})
        self.viewer.get_received()
        self.other_viewer.get_received()

        broadcast_chat_message({'id': 'm1', 'stream_id': self.stream.id, 'message': 'gm'})

        received = self._events(self.viewer, 'chat_message')
        self.assertEqual(len(received), 1)
        self.assertEqual(received[0]['args'][0]['message'], 'gm')
        self.assertEqual(self._events(self.other_viewer, 'chat_message'), [])

    def test_stream_update_and_leave(self):
        self.viewer.emit('join_stream', {'stream_id': self.stream.id})
        self.viewer.get_received()

        broadcast_stream_update(self.stream)
        updates = self._events(self.viewer, 'stream_update')
        self.assertEqual(len(updates), 1)
        self.assertEqual(updates[0]['args'][0], {
            'id': self.stream.id, 'is_live': True, 'viewer_count': 3, 'like_count': 1, 'ended_at': None,
        })

        self.viewer.emit('leave_stream', {'stream_id': self.stream.id})
        broadcast_stream_update(self.stream)
        self.assertEqual(self._events(self.viewer, 'stream_update'), [])


if __name__ == '__main__':
    unittest.main()
