"""Tests for the follow and feed routes."""

import unittest
from unittest.mock import patch

from tests.conftest import (
    add_follow,
    add_profile,
    bearer,
    make_app,
    make_db,
    patch_verify_id_token,
)

ALICE = "aliceUid000001"
BOB = "bobUid00000002"
CAROL = "carolUid000003"


class SocialRoutesTestCase(unittest.TestCase):
    def setUp(self):
        self.db = make_db()
        for uid in (ALICE, BOB, CAROL):
            add_profile(self.db, uid)

        patcher = patch_verify_id_token()
        patcher.start()
        self.addCleanup(patcher.stop)

        self.app = make_app(self.db)
        self.client = self.app.test_client()

    def _following(self, follower, followee):
        return (
            self.db.collection("profile")
            .document(follower)
            .collection("following")
            .document(followee)
            .get()
            .exists
        )

    def test_follow_and_unfollow(self):
        response = self.client.post(f"/api/follows/{BOB}", headers=bearer(ALICE))
        self.assertEqual(response.status_code, 200)
        self.assertTrue(self._following(ALICE, BOB))

        response = self.client.delete(f"/api/follows/{BOB}", headers=bearer(ALICE))
        self.assertEqual(response.status_code, 200)
        self.assertFalse(self._following(ALICE, BOB))

    def test_follow_unknown_user(self):
        response = self.client.post("/api/follows/ghostUid000009", headers=bearer(ALICE))
        self.assertEqual(response.status_code, 404)

    def test_follow_self(self):
        response = self.client.post(f"/api/follows/{ALICE}", headers=bearer(ALICE))
        self.assertEqual(response.status_code, 400)

    def test_popular_posts_skip_followed_authors(self):
        self.db.collection("aggregated").document("popularPosts").set(
            {
                "posts": [
                    {"postId": "p1", "userId": BOB, "likes": 5},
                    {"postId": "p2", "userId": CAROL, "likes": 3},
                ]
            }
        )
        add_follow(self.db, ALICE, BOB)

        response = self.client.get("/api/feed/popular", headers=bearer(ALICE))

        self.assertEqual(response.status_code, 200)
        self.assertEqual([p["postId"] for p in response.get_json()["posts"]], ["p2"])

    def test_unavailable_feed_is_503(self):
        feed = self.app.extensions["devlink.feed"]
        with patch.object(feed, "_load_posts", side_effect=Exception("UNAVAILABLE")):
            response = self.client.get("/api/feed/popular", headers=bearer(ALICE))

        self.assertEqual(response.status_code, 503)
        self.assertEqual(feed.sleep.call_count, 2)
