import json
import logging
from decimal import Decimal
from postback_settlement.utils.logger import JSONFormatter, get_logger, LOGGER_NAMESPACE


def test_get_logger_is_namespaced():
    assert get_logger("audit").logger.name == f"{LOGGER_NAMESPACE}.audit"
    assert get_logger("postback_settlement.services.x").logger.name == "postback_settlement.services.x"


def test_json_formatter_flattens_structured_fields():
    record = logging.LogRecord("postback_settlement.test", logging.INFO, __file__, 10, "Settlement run finished", None, None)
    record.extra_data = {"trigger": "cron", "amount": Decimal("42.50")}

    entry = json.loads(JSONFormatter().format(record))

    assert entry["message"] == "Settlement run finished"
    assert entry["level"] == "INFO"
    assert entry["trigger"] == "cron"
    assert entry["amount"] == "42.50"


class _Collect(logging.Handler):
    def __init__(self):
        super().__init__(level=logging.DEBUG)
        self.records = []

    def emit(self, record):
        self.records.append(record)


def test_structured_logger_drops_none_fields():
    logger = get_logger("tests")
    handler = _Collect()
    logger.logger.addHandler(handler)
    logger.logger.setLevel(logging.INFO)
    try:
        logger.info("Postback accepted", status_code=200, url=None)
    finally:
        logger.logger.removeHandler(handler)
    assert handler.records[-1].extra_data == {"status_code": 200}
