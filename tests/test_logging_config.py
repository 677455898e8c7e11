import json
import logging

from logging_config import JSONFormatter, SensitiveDataFilter


def _record(msg, *args):
    return logging.LogRecord("aidlink.test", logging.INFO, __file__, 1, msg, args, None)


def test_passwords_and_tokens_are_masked():
    record = _record("login password=hunter22 with Bearer abc.def")
    SensitiveDataFilter().filter(record)
    assert "hunter22" not in record.getMessage()
    assert "abc.def" not in record.getMessage()


def test_masking_applies_to_args():
    record = _record("payload %s", '{"token": "s3cr3t"}')
    SensitiveDataFilter().filter(record)
    assert "s3cr3t" not in record.getMessage()


def test_json_formatter():
    line = JSONFormatter().format(_record("match %s confirmed", 7))
    data = json.loads(line)
    assert data["message"] == "match 7 confirmed"
    assert data["level"] == "INFO"
    assert data["logger"] == "aidlink.test"
