import unittest
from datetime import datetime, timezone

from sqlalchemy.exc import IntegrityError

from streamapp import create_app, db
from streamapp.core.models import Category, ChatMessage, Follow, Spotlight, Stream, StreamLike, User
from config import TestingConfig

CREATOR = '0xaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaa'


class StreamModelsTestCase(unittest.TestCase):
    def setUp(self):
        self.app = create_app(TestingConfig)
        self.app_context = self.app.app_context()
        self.app_context.push()
        db.create_all()

    def tearDown(self):
        db.session.remove()
        db.drop_all()
        self.app_context.pop()

    def test_stream_defaults(self):
        stream = Stream(creator_address=CREATOR, title='Defaults')
        db.session.add(stream)
        db.session.commit()

        self.assertEqual(len(stream.id), 36)
        self.assertFalse(stream.is_live)
        self.assertEqual(stream.viewer_count, 0)
        self.assertEqual(stream.like_count, 0)
        self.assertEqual(stream.mint_current_supply, 0)
        self.assertFalse(stream.has_minting)
        self.assertFalse(stream.has_ended)
        self.assertIsNotNone(stream.created_at)

        stream.ended_at = datetime.now(timezone.utc)
        self.assertTrue(stream.has_ended)

    def test_category_relationship(self):
        category = Category(name='Comics', slug='comics')
        db.session.add(category)
        db.session.commit()
        stream = Stream(creator_address=CREATOR, title='Comic haul', category_id=category.id)
        db.session.add(stream)
        db.session.commit()

        self.assertEqual(stream.category.name, 'Comics')
        self.assertEqual(category.streams.count(), 1)

    def test_unique_like_per_user(self):
        stream = Stream(creator_address=CREATOR, title='Likes')
        db.session.add(stream)
        db.session.commit()

        db.session.add(StreamLike(stream_id=stream.id, user_address=CREATOR))
        db.session.commit()
        db.session.add(StreamLike(stream_id=stream.id, user_address=CREATOR))
        with self.assertRaises(IntegrityError):
            db.session.commit()
        db.session.rollback()

    def test_unique_follow_edge(self):
        db.session.add(Follow(follower_address='0x1', following_address='0x2'))
        db.session.commit()
        db.session.add(Follow(follower_address='0x1', following_address='0x2'))
        with self.assertRaises(IntegrityError):
            db.session.commit()
        db.session.rollback()

    def test_unique_wallet_and_username(self):
        db.session.add(User(wallet_address=CREATOR, username='dup'))
        db.session.commit()
        db.session.add(User(wallet_address='0xbbbbbbbbbbbbbbbbbbbbbbbbbbbbbbbbbbbbbbbb', username='dup'))
        with self.assertRaises(IntegrityError):
            db.session.commit()
        db.session.rollback()

    def test_deleting_stream_removes_dependents(self):
        stream = Stream(creator_address=CREATOR, title='Short lived')
        db.session.add(stream)
        db.session.commit()
        db.session.add_all([
            ChatMessage(stream_id=stream.id, sender_address=CREATOR, message='hello'),
            Spotlight(stream_id=stream.id),
        ])
        db.session.commit()

        db.session.delete(stream)
        db.session.commit()

        self.assertEqual(ChatMessage.query.count(), 0)
        self.assertEqual(Spotlight.query.count(), 0)


if __name__ == '__main__':
    unittest.main()
