"""Tests for the popular posts feed."""

from __future__ import annotations

import unittest
from unittest.mock import MagicMock, patch

from google.api_core import exceptions as api_exceptions

from devlink.errors import BackendUnavailableError
from devlink.feed.retry import is_unavailable, retry_with_backoff
from devlink.feed.services import FeedService, normalize_post
from tests.conftest import add_follow, make_db

VIEWER = "viewerUid00001"
AUTHOR = "authorUid00002"
STRANGER = "strangerUid003"


class RetryTestCase(unittest.TestCase):
    def test_unavailable_detection(self) -> None:
        self.assertTrue(is_unavailable(api_exceptions.ServiceUnavailable("down")))
        self.assertTrue(is_unavailable(Exception("14 UNAVAILABLE: try later")))
        self.assertFalse(is_unavailable(ValueError("bad value")))

    def test_backoff_doubles_between_attempts(self) -> None:
        sleep = MagicMock()
        fn = MagicMock(
            side_effect=[Exception("unavailable"), Exception("unavailable"), "ok"]
        )

        self.assertEqual(retry_with_backoff(fn, sleep=sleep), "ok")
        self.assertEqual([c.args[0] for c in sleep.call_args_list], [1.0, 2.0])

    def test_gives_up_after_last_attempt(self) -> None:
        sleep = MagicMock()
        fn = MagicMock(side_effect=api_exceptions.ServiceUnavailable("down"))

        with self.assertRaises(BackendUnavailableError) as ctx:
            retry_with_backoff(fn, attempts=3, sleep=sleep)

        self.assertEqual(fn.call_count, 3)
        self.assertEqual(sleep.call_count, 2)
        self.assertIsInstance(ctx.exception.__cause__, api_exceptions.ServiceUnavailable)

    def test_other_errors_are_not_retried(self) -> None:
        sleep = MagicMock()
        fn = MagicMock(side_effect=KeyError("posts"))

        with self.assertRaises(KeyError):
            retry_with_backoff(fn, sleep=sleep)
        fn.assert_called_once()
        sleep.assert_not_called()


class NormalizePostTestCase(unittest.TestCase):
    def test_fills_image_and_like_fields(self) -> None:
        post = normalize_post({"id": "p1", "avatarUrl": "a.png", "likeCount": 4})

        self.assertEqual(post["imageUrl"], "a.png")
        self.assertEqual(post["userAvatar"], "a.png")
        self.assertEqual(post["likes"], 4)
        self.assertEqual(post["likeCount"], 4)

    def test_keeps_existing_values(self) -> None:
        post = normalize_post({"imageUrl": "i.png", "userAvatar": "u.png", "likes": 2})

        self.assertEqual(post["imageUrl"], "i.png")
        self.assertEqual(post["userAvatar"], "u.png")
        self.assertEqual(post["likes"], 2)

    def test_defaults(self) -> None:
        post = normalize_post({})
        self.assertIsNone(post["imageUrl"])
        self.assertEqual(post["likes"], 0)


class FeedServiceTestCase(unittest.TestCase):
    def setUp(self) -> None:
        self.db = make_db()
        self.sleep = MagicMock()
        self.service = FeedService(self.db, sleep=self.sleep)

    def test_reads_aggregate(self) -> None:
        self.db.collection("aggregated").document("popularPosts").set(
            {
                "posts": [
                    {"postId": "p1", "userId": AUTHOR, "likes": 9},
                    {"postId": "p2", "userId": STRANGER, "likeCount": 3},
                ]
            }
        )

        posts = self.service.get_popular_posts()

        self.assertEqual([p["postId"] for p in posts], ["p1", "p2"])
        self.assertEqual(posts[1]["likes"], 3)

    def test_filters_followed_authors(self) -> None:
        self.db.collection("aggregated").document("popularPosts").set(
            {
                "posts": [
                    {"postId": "p1", "userId": AUTHOR},
                    {"postId": "p2", "userId": STRANGER},
                ]
            }
        )
        add_follow(self.db, VIEWER, AUTHOR)

        posts = self.service.get_popular_posts(VIEWER)

        self.assertEqual([p["postId"] for p in posts], ["p2"])

    def test_falls_back_to_posts_collection(self) -> None:
        self.db.collection("posts").document("p1").set({"userId": AUTHOR, "likes": 1})
        self.db.collection("posts").document("p2").set({"userId": STRANGER, "likes": 7})

        posts = self.service.get_popular_posts()

        self.assertEqual([p["id"] for p in posts], ["p2", "p1"])
        self.assertEqual(posts[0]["postId"], "p2")

    def test_unavailable_backend_is_retried_then_reported(self) -> None:
        with patch.object(
            self.service, "_load_posts", side_effect=Exception("Service unavailable")
        ) as load:
            with self.assertRaises(BackendUnavailableError):
                self.service.get_popular_posts()

        self.assertEqual(load.call_count, 3)
        self.assertEqual([c.args[0] for c in self.sleep.call_args_list], [1.0, 2.0])

    def test_ordering_failure_falls_through_to_next_field(self) -> None:
        db = MagicMock()
        db.collection.return_value.document.return_value.get.return_value.exists = False
        posts_ref = db.collection.return_value
        posts_ref.order_by.side_effect = [
            Exception("index missing"),
            Exception("index missing"),
        ]
        snapshot = MagicMock(id="p1")
        snapshot.to_dict.return_value = {"userId": AUTHOR}
        posts_ref.limit.return_value.stream.return_value = [snapshot]

        posts = FeedService(db, sleep=self.sleep).get_popular_posts()

        self.assertEqual(posts[0]["id"], "p1")
        self.assertEqual(posts_ref.order_by.call_count, 2)
        self.sleep.assert_not_called()
