import json
import logging

from loanbook.log import setup_logging


def test_setup_logging_emits_json(capsys):
    root = logging.getLogger()
    saved_handlers, saved_level = root.handlers[:], root.level
    try:
        setup_logging("INFO")
        logging.getLogger("loanbook.test").info("Friend added", extra={"friend_id": 7})
        record = json.loads(capsys.readouterr().out.strip().splitlines()[-1])
    finally:
        root.handlers[:] = saved_handlers
        root.setLevel(saved_level)

    assert record["message"] == "Friend added"
    assert record["level"] == "INFO"
    assert record["service"] == "loanbook"
    assert record["friend_id"] == 7
    assert "timestamp" in record
