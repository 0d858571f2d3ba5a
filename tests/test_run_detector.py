from datetime import timedelta
from unittest.mock import MagicMock
from sqlalchemy.exc import OperationalError
from postback_settlement.models.db import ConversionLog
from postback_settlement.models.db.enums import AuditAction, TriggerPath
from postback_settlement.services.run_detector import count_confirmed_successes, has_run_successfully_today
from postback_settlement.services.time_window import reference_date
from postback_settlement.utils.time import utc_now


def _log(db_session, action: AuditAction, created_at=None, trigger: TriggerPath = TriggerPath.CRON):
    entry = ConversionLog(
        clickid="abc123",
        trigger=trigger,
        action=action,
        message=f"{action.value} entry",
        created_at=created_at or utc_now(),
    )
    db_session.add(entry)
    db_session.commit()
    return entry


def test_no_audit_entries_means_not_run(db_session):
    assert has_run_successfully_today(db_session) is False


def test_postback_success_today_counts_as_run(db_session):
    _log(db_session, AuditAction.POSTBACK_SUCCESS)
    assert has_run_successfully_today(db_session) is True


def test_cache_cleared_from_any_trigger_counts_as_run(db_session):
    _log(db_session, AuditAction.CACHE_CLEARED, trigger=TriggerPath.MANUAL)
    assert has_run_successfully_today(db_session) is True
    assert count_confirmed_successes(db_session, reference_date()) == 1


def test_failures_and_skips_do_not_count(db_session):
    for action in (
        AuditAction.POSTBACK_PREPARING,
        AuditAction.POSTBACK_FAILED,
        AuditAction.POSTBACK_FAILED_FINAL,
        AuditAction.NO_CACHE,
        AuditAction.DUPLICATE_PREVENTED,
        AuditAction.EXECUTION_ERROR,
    ):
        _log(db_session, action)
    assert has_run_successfully_today(db_session) is False


def test_success_on_an_earlier_day_does_not_count(db_session):
    _log(db_session, AuditAction.POSTBACK_SUCCESS, created_at=utc_now() - timedelta(days=2))
    assert has_run_successfully_today(db_session) is False


def test_detector_fails_open_when_audit_log_unavailable():
    broken = MagicMock()
    broken.execute.side_effect = OperationalError("SELECT count(*)", {}, Exception("database is locked"))
    assert has_run_successfully_today(broken) is False
    broken.rollback.assert_called_once()
