"""Tests for tags, context storage, sessions and fingerprints."""

from __future__ import annotations

import json
import re

from errmon.fingerprint import EnvironmentFingerprint, RuntimeEnvironment
from errmon.scope import CONTEXT_KEY, TAGS_KEY, FileStorage, MemoryStorage, ScopeStore
from errmon.session import Session, generate_id
from errmon.types import UserInfo


class TestScopeStore:
    def test_tags_and_context_are_mirrored(self):
        storage = MemoryStorage()
        scope = ScopeStore(storage)
        scope.set_tag("region", "eu")
        scope.set_context("plan", {"tier": "pro"})

        assert scope.get_tags() == {"region": "eu"}
        assert json.loads(storage.get_item(TAGS_KEY)) == {"region": "eu"}
        assert json.loads(storage.get_item(CONTEXT_KEY)) == {"plan": {"tier": "pro"}}

    def test_restores_from_storage(self):
        storage = MemoryStorage()
        storage.set_item(TAGS_KEY, json.dumps({"region": "us"}))
        assert ScopeStore(storage).get_tags() == {"region": "us"}

    def test_corrupt_storage_starts_empty(self):
        storage = MemoryStorage()
        storage.set_item(CONTEXT_KEY, "{not json")
        assert ScopeStore(storage).get_context() == {}

    def test_returns_copies(self):
        scope = ScopeStore()
        scope.set_tag("a", "1")
        scope.get_tags()["b"] = "2"
        assert scope.get_tags() == {"a": "1"}


class TestFileStorage:
    def test_round_trip(self, tmp_path):
        path = tmp_path / "state" / "session.json"
        FileStorage(path).set_item("k", "v")
        assert FileStorage(path).get_item("k") == "v"

    def test_unreadable_file(self, tmp_path):
        path = tmp_path / "session.json"
        path.write_text("garbage")
        storage = FileStorage(path)
        assert storage.get_item("k") is None
        storage.set_item("k", "v")
        assert storage.get_item("k") == "v"


class TestSession:
    def test_id_format(self):
        assert re.fullmatch(r"\d{13}-[0-9a-f]{9}", generate_id())
        assert generate_id() != generate_id()

    def test_user(self):
        session = Session("fixed")
        assert session.session_id == "fixed"
        assert session.user_id is None
        session.set_user(UserInfo(id="u1"))
        assert session.user_id == "u1"


class TestFingerprint:
    def test_stable_per_environment(self):
        env = RuntimeEnvironment("ua", "en_US", "UTC", "80x24", "Linux")
        other = RuntimeEnvironment("ua", "de_DE", "UTC", "80x24", "Linux")
        strategy = EnvironmentFingerprint()

        assert strategy.fingerprint(env) == strategy.fingerprint(env)
        assert strategy.fingerprint(env) != strategy.fingerprint(other)
        assert re.fullmatch(r"[0-9a-f]{16}", strategy.fingerprint(env))

    def test_detect(self):
        env = RuntimeEnvironment.detect()
        assert env.user_agent.startswith("errmon-python/")
        assert env.platform
