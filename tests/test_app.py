"""Tests for the app factory."""

import importlib
import json
import os
import sys
import unittest
from unittest.mock import MagicMock, patch

import devlink
from devlink import create_app
from devlink.chat.services import ChatService
from tests.conftest import make_db


class AppFactoryTestCase(unittest.TestCase):
    """Test case for the app factory."""

    def test_health_check(self):
        app = create_app({"TESTING": True}, db=make_db())
        response = app.test_client().get("/health")
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data, b"OK")

    def test_404_is_json(self):
        app = create_app({"TESTING": True}, db=make_db())

        response = app.test_client().get("/non_existent_page")

        self.assertEqual(response.status_code, 404)
        self.assertEqual(response.get_json()["status"], "error")

    def test_services_are_built_once(self):
        db = make_db()
        app = create_app({"TESTING": True}, db=db)

        chat = app.extensions["devlink.chat"]
        self.assertIsInstance(chat, ChatService)
        self.assertIs(chat.db, db)
        self.assertIs(app.extensions["devlink.requests"].chat_service, chat)

    def test_config_from_environment(self):
        env_vars = {"PRESENCE_HEARTBEAT_SECONDS": "15", "READ_RECEIPT_WINDOW": "25"}
        with patch.dict(os.environ, env_vars):
            app = create_app({"TESTING": True}, db=make_db())

        self.assertEqual(app.config["PRESENCE_HEARTBEAT_SECONDS"], 15.0)
        self.assertEqual(app.extensions["devlink.chat"].read_window, 25)

    def test_test_config_overrides_defaults(self):
        app = create_app(
            {"TESTING": True, "DELETE_PAGE_SIZE": 10, "REPAIR_DELAY_SECONDS": 0},
            db=make_db(),
        )

        self.assertEqual(app.extensions["devlink.chat"].delete_page_size, 10)
        self.assertEqual(app.extensions["devlink.aggregator"].repair_delay, 0)

    @patch("firebase_admin.initialize_app")
    @patch("firebase_admin.firestore.client")
    def test_firestore_client_is_used_without_injection(
        self, mock_firestore_client, mock_init_app
    ):
        mock_firestore_client.return_value = MagicMock()

        app = create_app({"TESTING": True})

        self.assertIs(app.extensions["devlink.db"], mock_firestore_client.return_value)
        mock_init_app.assert_not_called()


class FirebaseInitTestCase(unittest.TestCase):
    """Test case for picking Firebase credentials outside of testing."""

    def setUp(self):
        patch.dict("firebase_admin._apps", clear=True).start()
        self.mock_init_app = patch("firebase_admin.initialize_app").start()
        self.mock_certificate = patch("firebase_admin.credentials.Certificate").start()
        self.mock_default = patch(
            "firebase_admin.credentials.ApplicationDefault"
        ).start()
        patch.object(
            devlink, "CREDENTIALS_FILE", "/nonexistent/firebase_credentials.json"
        ).start()
        self.addCleanup(patch.stopall)

    def test_credentials_from_environment_json(self):
        cred_info = {"project_id": "devlink-prod", "type": "service_account"}
        env_vars = {"FIREBASE_CREDENTIALS_JSON": json.dumps(cred_info)}
        with patch.dict(os.environ, env_vars):
            os.environ.pop("FIREBASE_STORAGE_BUCKET", None)
            create_app({"TESTING": False}, db=make_db())

        self.mock_certificate.assert_called_once_with(cred_info)
        self.mock_init_app.assert_called_once_with(
            self.mock_certificate.return_value,
            {
                "storageBucket": "devlink-prod.firebasestorage.app",
                "projectId": "devlink-prod",
            },
        )
        self.mock_default.assert_not_called()

    def test_malformed_json_falls_back_to_default_credentials(self):
        env_vars = {
            "FIREBASE_CREDENTIALS_JSON": "{not json",
            "FIREBASE_PROJECT_ID": "devlink-dev",
            "FIREBASE_STORAGE_BUCKET": "devlink-media",
        }
        with patch.dict(os.environ, env_vars):
            create_app({"TESTING": False}, db=make_db())

        self.mock_certificate.assert_not_called()
        self.mock_init_app.assert_called_once_with(
            self.mock_default.return_value,
            {"storageBucket": "devlink-media", "projectId": "devlink-dev"},
        )

    def test_already_initialized_app_is_reused(self):
        with patch.dict("firebase_admin._apps", {"[DEFAULT]": MagicMock()}):
            create_app({"TESTING": False}, db=make_db())

        self.mock_init_app.assert_not_called()


class ImportOrderTestCase(unittest.TestCase):
    """Every module imports cleanly on its own, in any order."""

    MODULES = [
        "devlink.chat.aggregator",
        "devlink.chat.services",
        "devlink.auth.routes",
        "devlink.profile.routes",
        "devlink.presence.services",
        "devlink.message_requests.services",
        "devlink.feed.services",
        "devlink.services",
    ]

    def _fresh_modules(self):
        for name in list(sys.modules):
            if name == "devlink" or name.startswith("devlink."):
                del sys.modules[name]

    def test_submodules_import_first(self):
        for name in self.MODULES:
            with self.subTest(module=name), patch.dict(sys.modules):
                self._fresh_modules()
                module = importlib.import_module(name)
                self.assertEqual(module.__name__, name)

    def test_create_app_from_fresh_import(self):
        with patch.dict(sys.modules):
            self._fresh_modules()
            fresh = importlib.import_module("devlink")
            app = fresh.create_app({"TESTING": True}, db=make_db())

        self.assertEqual(app.test_client().get("/health").status_code, 200)


class ProxyFixTestCase(unittest.TestCase):
    """Test case for ProxyFix middleware."""

    def setUp(self):
        self.app = create_app({"TESTING": True}, db=make_db())
        self.client = self.app.test_client()

    def test_https_scheme_with_proxy_headers(self):
        """Test that X-Forwarded-Proto header is respected."""

        @self.app.route("/test_scheme")
        def test_scheme():
            from flask import request

            return request.scheme

        response = self.client.get(
            "/test_scheme", headers={"X-Forwarded-Proto": "https"}
        )
        self.assertEqual(response.data.decode(), "https")
