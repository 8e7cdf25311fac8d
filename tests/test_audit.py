"""Tests for the turn audit store."""

from datetime import datetime

from discovery_kernel.audit.store import TurnAuditStore
from discovery_kernel.models.audit import TurnRecord


def _make_record(
    record_id: str,
    session_id: str = "sess_1",
    turn_number: int = 1,
    no_match_reason=None,
) -> TurnRecord:
    return TurnRecord(
        id=record_id,
        session_id=session_id,
        turn_number=turn_number,
        query_text="diabetes treatment help",
        intent_category="healthcare",
        intent_confidence=0.85,
        needs_clarification=False,
        service_ids=[] if no_match_reason else ["tn_diabetes_care"],
        no_match_reason=no_match_reason,
        response_time=0.01,
        recorded_at=datetime(2026, 3, 1, 10, turn_number),
    )


class TestTurnAuditStore:
    def setup_method(self):
        self.store = TurnAuditStore(":memory:")

    def teardown_method(self):
        self.store.close()

    def test_append_chains_records(self):
        first = self.store.append(_make_record("turn_1"))
        second = self.store.append(_make_record("turn_2", turn_number=2))
        assert first.prior_record_hash is None
        assert second.prior_record_hash == first.signature
        assert len(first.signature) == 64
        assert self.store.count() == 2
        assert self.store.verify_chain_integrity()

    def test_get_by_id(self):
        self.store.append(_make_record("turn_1"))
        assert self.store.get_by_id("turn_1").query_text == "diabetes treatment help"
        assert self.store.get_by_id("missing") is None

    def test_queries(self):
        self.store.append(_make_record("turn_1"))
        self.store.append(_make_record("turn_2", session_id="sess_2"))
        self.store.append(_make_record(
            "turn_3", turn_number=2, no_match_reason="no_services_in_region"
        ))

        assert [r.id for r in self.store.query_by_session("sess_1")] == ["turn_1", "turn_3"]
        assert [r.id for r in self.store.query_recent(limit=2)] == ["turn_2", "turn_3"]
        assert [r.id for r in self.store.query_unanswered()] == ["turn_3"]

    def test_tampering_is_detected(self):
        self.store.append(_make_record("turn_1"))
        self.store.append(_make_record("turn_2", turn_number=2))

        tampered = self.store.get_by_id("turn_1").model_copy(
            update={"query_text": "something else"}
        )
        self.store._conn.execute(
            "UPDATE turns SET record_json = ? WHERE id = ?",
            (tampered.model_dump_json(), "turn_1"),
        )
        self.store._conn.commit()
        assert not self.store.verify_chain_integrity()

    def test_empty_store_is_valid(self):
        assert self.store.verify_chain_integrity()
        assert self.store.count() == 0
