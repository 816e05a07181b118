"""Tests for thread id helpers."""

from __future__ import annotations

import unittest

from devlink.chat.ids import (
    direct_thread_id,
    group_thread_id,
    is_group_thread_id,
    participants_from_thread_id,
)
from devlink.errors import ValidationError

ALICE = "aliceUid000001"
BOB = "bobUid00000002"


class ThreadIdTestCase(unittest.TestCase):
    def test_direct_id_is_order_independent(self) -> None:
        self.assertEqual(direct_thread_id(ALICE, BOB), direct_thread_id(BOB, ALICE))
        self.assertEqual(direct_thread_id(BOB, ALICE), "_".join(sorted([ALICE, BOB])))

    def test_direct_id_rejects_same_or_missing_user(self) -> None:
        with self.assertRaises(ValidationError):
            direct_thread_id(ALICE, ALICE)
        with self.assertRaises(ValidationError):
            direct_thread_id(ALICE, "")

    def test_group_ids_are_random_and_prefixed(self) -> None:
        first, second = group_thread_id(), group_thread_id()
        self.assertNotEqual(first, second)
        self.assertTrue(is_group_thread_id(first))
        self.assertFalse(is_group_thread_id(direct_thread_id(ALICE, BOB)))


class ParticipantsFromThreadIdTestCase(unittest.TestCase):
    def test_parses_direct_id(self) -> None:
        thread_id = direct_thread_id(ALICE, BOB)
        self.assertEqual(
            participants_from_thread_id(thread_id), sorted([ALICE, BOB])
        )

    def test_drops_short_tokens(self) -> None:
        self.assertEqual(participants_from_thread_id(f"abc_{ALICE}"), [ALICE])
        self.assertEqual(participants_from_thread_id("short_ids"), [])

    def test_exactly_ten_characters_is_too_short(self) -> None:
        self.assertEqual(participants_from_thread_id(f"abcdefghij_{BOB}"), [BOB])

    def test_group_and_unseparated_ids_yield_nothing(self) -> None:
        self.assertEqual(participants_from_thread_id(f"group_{ALICE}"), [])
        self.assertEqual(participants_from_thread_id(ALICE), [])
        self.assertEqual(participants_from_thread_id(""), [])

    def test_duplicates_are_collapsed(self) -> None:
        self.assertEqual(participants_from_thread_id(f"{ALICE}_{ALICE}"), [ALICE])
