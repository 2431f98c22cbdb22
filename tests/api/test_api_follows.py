import unittest

from streamapp import create_app, db
from streamapp.core.models import Follow, User
from config import TestingConfig

ALICE = '0xaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaa'
BOB = '0xbbbbbbbbbbbbbbbbbbbbbbbbbbbbbbbbbbbbbbbb'
CAROL = '0xcccccccccccccccccccccccccccccccccccccccc'


class FollowsAPITestCase(unittest.TestCase):
    def setUp(self):
        self.app_instance = create_app(TestingConfig)
        self.app = self.app_instance.test_client()
        self.app_context = self.app_instance.app_context()
        self.app_context.push()
        db.create_all()

    def tearDown(self):
        db.session.remove()
        db.drop_all()
        self.app_context.pop()

    def test_follow_is_idempotent(self):
        response = self.app.post('/api/follows', json={'follower_address': BOB, 'following_address': ALICE.upper().replace('0X', '0x')})
        self.assertEqual(response.status_code, 201)
        self.assertEqual(response.get_json()['following_address'], ALICE)

        response = self.app.post('/api/follows', json={'follower_address': BOB, 'following_address': ALICE})
        self.assertEqual(response.status_code, 200)
        self.assertEqual(Follow.query.count(), 1)

    def test_follow_validation(self):
        response = self.app.post('/api/follows', json={'follower_address': BOB})
        self.assertEqual(response.status_code, 400)

        response = self.app.post('/api/follows', json={'follower_address': BOB, 'following_address': BOB})
        self.assertEqual(response.status_code, 400)

        response = self.app.post('/api/follows', json={'follower_address': ['a'], 'following_address': ALICE})
        self.assertEqual(response.status_code, 400)
        response = self.app.post('/api/follows', json={'follower_address': BOB, 'following_address': 7})
        self.assertEqual(response.status_code, 400)
        self.assertEqual(Follow.query.count(), 0)

    def test_is_following_and_counts(self):
        db.session.add_all([
            Follow(follower_address=BOB, following_address=ALICE),
            Follow(follower_address=CAROL, following_address=ALICE),
            Follow(follower_address=ALICE, following_address=CAROL),
        ])
        db.session.commit()

        response = self.app.get(f'/api/follows?follower={BOB}&following={ALICE}')
        self.assertTrue(response.get_json()['is_following'])
        response = self.app.get(f'/api/follows?follower={ALICE}&following={BOB}')
        self.assertFalse(response.get_json()['is_following'])

        response = self.app.get(f'/api/follows?address={ALICE}&type=followers')
        self.assertEqual(response.get_json()['count'], 2)
        response = self.app.get(f'/api/follows?address={ALICE}&type=following')
        self.assertEqual(response.get_json()['count'], 1)

    def test_follower_list_includes_profiles(self):
        db.session.add(User(wallet_address=BOB, username='bob', display_name='Bob'))
        db.session.add_all([
            Follow(follower_address=BOB, following_address=ALICE),
            Follow(follower_address=CAROL, following_address=ALICE),
        ])
        db.session.commit()

        response = self.app.get(f'/api/follows?address={ALICE}&type=followers&list=true')
        self.assertEqual(response.status_code, 200)
        items = {item['address']: item for item in response.get_json()['items']}
        self.assertEqual(set(items), {BOB, CAROL})
        self.assertEqual(items[BOB]['profile']['username'], 'bob')
        self.assertIsNone(items[CAROL]['profile'])

    def test_get_requires_parameters(self):
        self.assertEqual(self.app.get('/api/follows').status_code, 400)
        self.assertEqual(self.app.get(f'/api/follows?address={ALICE}&type=friends').status_code, 400)

    def test_unfollow(self):
        db.session.add(Follow(follower_address=BOB, following_address=ALICE))
        db.session.commit()

        response = self.app.delete('/api/follows', json={'follower_address': BOB, 'following_address': ALICE})
        self.assertEqual(response.status_code, 200)
        self.assertEqual(Follow.query.count(), 0)

        response = self.app.delete('/api/follows', json={})
        self.assertEqual(response.status_code, 400)


if __name__ == '__main__':
    unittest.main()
