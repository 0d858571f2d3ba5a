from datetime import timedelta
from decimal import Decimal
from unittest.mock import MagicMock
from sqlalchemy.exc import OperationalError
from postback_settlement.models.db import CachedConversion, ConversionLog, PostbackAttempt
from postback_settlement.models.db.enums import AuditAction, TriggerPath
from postback_settlement.services.settlement_store import SettlementStore, to_amount
from postback_settlement.utils.time import utc_now


def test_total_is_zero_when_nothing_pending(db_session):
    store = SettlementStore(db_session)
    assert store.get_aggregate_total() == Decimal("0.00")
    assert store.pending_count() == 0


def test_total_sums_all_pending_amounts(db_session, pending_factory):
    pending_factory("a1", "10.00")
    pending_factory("a2", "12.50")
    pending_factory("a3", "20.00")
    store = SettlementStore(db_session)
    assert store.get_aggregate_total() == Decimal("42.50")
    assert store.pending_count() == 3


def test_representative_clickid_is_most_recent_record(db_session, pending_factory):
    now = utc_now()
    pending_factory("older", "5.00", created_at=now - timedelta(minutes=10))
    pending_factory("newest", "5.00", created_at=now - timedelta(minutes=1))
    pending_factory("middle", "5.00", created_at=now - timedelta(minutes=5))
    assert SettlementStore(db_session).pick_representative_clickid("auto-scheduler") == "newest"


def test_representative_clickid_falls_back_to_sentinel(db_session):
    assert SettlementStore(db_session).pick_representative_clickid("vercel-cron") == "vercel-cron"


def test_clear_all_pending_returns_count(db_session, pending_factory):
    for i in range(4):
        pending_factory(f"c{i}", "1.00")
    store = SettlementStore(db_session)
    assert store.clear_all_pending() == 4
    assert store.pending_count() == 0
    assert store.clear_all_pending() == 0


def test_clear_with_watermark_keeps_newer_records(db_session, pending_factory):
    now = utc_now()
    pending_factory("before", "3.00", created_at=now - timedelta(minutes=2))
    store = SettlementStore(db_session)
    watermark = store.latest_pending_created_at()
    pending_factory("after", "4.00", created_at=now + timedelta(minutes=1))

    assert store.clear_all_pending(watermark) == 1
    remaining = db_session.query(CachedConversion).all()
    assert [r.clickid for r in remaining] == ["after"]


def test_record_attempt_and_log_event_persist(db_session):
    store = SettlementStore(db_session)
    store.record_attempt("abc123", Decimal("42.50"), "https://x/postback?clickid=abc123&sum=42.50", True, "OK", None, trigger=TriggerPath.CRON)
    store.log_event(TriggerPath.TIMER, AuditAction.NO_CACHE, "nothing to do")

    attempt = db_session.query(PostbackAttempt).one()
    assert attempt.success is True
    assert attempt.amount == Decimal("42.50")
    assert attempt.trigger == TriggerPath.CRON
    entry = db_session.query(ConversionLog).one()
    # Without a clickid the entry is attributed to the trigger
    assert entry.clickid == "timer"
    assert entry.action == AuditAction.NO_CACHE


def test_append_only_writes_swallow_store_errors():
    broken = MagicMock()
    broken.commit.side_effect = OperationalError("INSERT", {}, Exception("disk I/O error"))
    store = SettlementStore(broken)

    store.record_attempt("abc123", Decimal("1.00"), "u", False, None, "boom")
    store.log_event(TriggerPath.CRON, AuditAction.POSTBACK_FAILED, "boom")

    assert broken.rollback.call_count == 2


def test_to_amount_quantizes_to_cents():
    assert to_amount(None) == Decimal("0.00")
    assert to_amount(Decimal("42.5")) == Decimal("42.50")
    assert str(to_amount(7)) == "7.00"
