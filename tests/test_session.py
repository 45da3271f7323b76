import unittest

from tokensession.errors import BackendCommandError, DecodingError
from tokensession.session import TokenSession
from tokensession.store.memory import InMemoryStore


class RecordingStore:
    """Store double that records calls and can be told to fail."""

    def __init__(self, remote=None, fail_with=None):
        self.remote = remote or {}
        self.fail_with = fail_with
        self.calls = []

    def _maybe_fail(self):
        if self.fail_with is not None:
            raise self.fail_with

    def load(self, session):
        self.calls.append(("load", session.token))
        self._maybe_fail()
        if session.token in self.remote:
            session.update(self.remote[session.token])

    def save(self, session):
        self.calls.append(("save", session.token))
        self._maybe_fail()
        self.remote[session.token] = dict(session.values)

    def delete(self, session):
        self.calls.append(("delete", session.token))
        self._maybe_fail()
        self.remote.pop(session.token, None)


class TestTokenSessionAccessors(unittest.TestCase):
    def setUp(self):
        self.session = TokenSession("tok", RecordingStore())

    def test_new_session_defaults(self):
        self.assertEqual(self.session.token, "tok")
        self.assertEqual(self.session.max_age, 0)
        self.assertEqual(self.session.values, {})

    def test_get_reports_found(self):
        self.session.set("a", None)
        self.assertEqual(self.session.get("a"), (None, True))
        self.assertEqual(self.session.get("b"), (None, False))

    def test_set_overwrites(self):
        self.session.set("a", 1)
        self.session.set("a", "two")
        self.assertEqual(self.session.must_get("a"), "two")
        self.assertEqual(self.session.must_get("zzz", "dflt"), "dflt")

    def test_must_get_int_falls_back_on_missing_or_mismatch(self):
        self.assertEqual(self.session.must_get_int("x", 7), 7)
        self.session.set("x", "12")
        self.assertEqual(self.session.must_get_int("x", 7), 7)
        self.session.set("x", True)
        self.assertEqual(self.session.must_get_int("x", 7), 7)
        self.session.set("x", 3.0)
        self.assertEqual(self.session.must_get_int("x", 7), 7)
        self.session.set("x", 12)
        self.assertEqual(self.session.must_get_int("x", 7), 12)

    def test_must_get_int64_range(self):
        self.session.set("big", 2**63)
        self.assertEqual(self.session.must_get_int64("big", -1), -1)
        self.session.set("big", 2**63 - 1)
        self.assertEqual(self.session.must_get_int64("big", -1), 2**63 - 1)

    def test_must_get_string_and_bool(self):
        self.session.set("s", "hello")
        self.session.set("b", True)
        self.assertEqual(self.session.must_get_string("s", "x"), "hello")
        self.assertEqual(self.session.must_get_string("b", "x"), "x")
        self.assertTrue(self.session.must_get_bool("b", False))
        self.assertFalse(self.session.must_get_bool("s", False))

    def test_must_get_float_variants(self):
        self.session.set("f", 1.5)
        self.session.set("i", 3)
        self.session.set("flag", True)
        self.session.set("huge", 1e300)
        self.assertEqual(self.session.must_get_float64("f", 0.0), 1.5)
        self.assertEqual(self.session.must_get_float64("i", 0.0), 3.0)
        self.assertEqual(self.session.must_get_float64("flag", 9.0), 9.0)
        self.assertEqual(self.session.must_get_float32("f", 0.0), 1.5)
        self.assertEqual(self.session.must_get_float32("huge", 2.0), 2.0)
        self.assertEqual(self.session.must_get_float64("huge", 2.0), 1e300)
        self.session.set("third", 0.1)
        self.assertNotEqual(self.session.must_get_float32("third", 0.0), 0.1)
        self.assertAlmostEqual(self.session.must_get_float32("third", 0.0), 0.1, places=6)

    def test_must_get_float32_rejects_out_of_range(self):
        self.session.set("neg", -1e300)
        self.session.set("wide_int", 10**40)
        self.session.set("edge", 3.4028234663852886e38)
        self.session.set("inf", float("inf"))
        self.assertEqual(self.session.must_get_float32("neg", 5.0), 5.0)
        self.assertEqual(self.session.must_get_float32("wide_int", 5.0), 5.0)
        self.assertEqual(self.session.must_get_float32("edge", 5.0), 3.4028234663852886e38)
        self.assertEqual(self.session.must_get_float32("inf", 5.0), float("inf"))


class TestTokenSessionPersistence(unittest.TestCase):
    def test_load_merges_remote_values(self):
        store = RecordingStore(remote={"tok": {"a": 1, "b": 2}})
        session = TokenSession("tok", store)
        session.set("local", "kept")
        session.set("a", "overwritten")
        session.load()
        self.assertEqual(session.values, {"local": "kept", "a": 1, "b": 2})

    def test_load_missing_token_is_noop(self):
        session = TokenSession("never-saved", RecordingStore())
        session.set("k", "v")
        session.load()
        self.assertEqual(session.values, {"k": "v"})

    def test_save_delegates(self):
        store = RecordingStore()
        session = TokenSession("tok", store)
        session.set("k", "v")
        session.save()
        self.assertEqual(store.calls, [("save", "tok")])
        self.assertEqual(store.remote["tok"], {"k": "v"})

    def test_delete_clears_in_place(self):
        store = RecordingStore()
        session = TokenSession("tok", store)
        session.set("k", "v")
        held = session.values
        session.delete()
        self.assertEqual(held, {})
        self.assertIs(session.values, held)

    def test_delete_failure_leaves_values(self):
        store = RecordingStore(fail_with=BackendCommandError("ERR boom"))
        session = TokenSession("tok", store)
        session.set("k", "v")
        with self.assertRaises(BackendCommandError):
            session.delete()
        self.assertEqual(session.values, {"k": "v"})

    def test_round_trip_through_memory_store(self):
        store = InMemoryStore()
        first = TokenSession("tok", store)
        first.set("cart", [1, 2])
        first.save()

        second = TokenSession("tok", store)
        second.set("fresh", True)
        second.load()
        self.assertEqual(second.values, {"cart": [1, 2], "fresh": True})

    def test_failed_decode_does_not_touch_values(self):
        class CorruptStore(RecordingStore):
            def load(self, session):
                raise DecodingError("bad payload")

        session = TokenSession("tok", CorruptStore())
        session.set("k", "v")
        with self.assertRaises(DecodingError):
            session.load()
        self.assertEqual(session.values, {"k": "v"})

    def test_repr_mentions_token_and_store(self):
        session = TokenSession("tok", InMemoryStore(), max_age=60)
        text = repr(session)
        self.assertIn("token='tok'", text)
        self.assertIn("max_age=60", text)
        self.assertIn("InMemoryStore", text)


if __name__ == "__main__":
    unittest.main()
