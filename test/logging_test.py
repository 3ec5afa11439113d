"""
로깅 설정 테스트

테스트 항목:
1. 설정 없이 호출하면 INFO / JSON / stdout
2. JSON 레코드에 pid와 프로세스 이름 포함
3. 텍스트 포맷과 LOG_FILE 핸들러
4. 드라이버 로거는 WARNING 이상만
5. log_banner 세 줄 출력

실행: python -m pytest test/logging_test.py -v
"""

import json
import logging
import os

import pytest

from common.config import DaemonSettings
from common.logging import QUIET_LOGGERS, log_banner, setup_logging


@pytest.fixture(autouse=True)
def restore_root_logger():
    """basicConfig(force=True)가 교체한 루트 핸들러 복원"""
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    yield
    for handler in root.handlers:
        if handler not in handlers:
            handler.close()
    root.handlers[:] = handlers
    root.setLevel(level)


def _json_lines(text: str) -> list[dict]:
    return [json.loads(line) for line in text.splitlines() if line.strip()]


class TestSetupLogging:
    """setup_logging() 테스트"""

    def test_defaults_without_settings(self, capsys):
        setup_logging()

        logging.getLogger("daemon").info("started")

        root = logging.getLogger()
        assert root.level == logging.INFO
        assert len(root.handlers) == 1
        [record] = _json_lines(capsys.readouterr().out)
        assert record["message"] == "started"
        assert record["level"] == "INFO"

    def test_json_record_carries_process_fields(self, capsys):
        setup_logging(DaemonSettings.from_mapping({"LOG_LEVEL": "debug"}))

        logging.getLogger("worker.main").debug("job output")

        [record] = _json_lines(capsys.readouterr().out)
        assert record["logger"] == "worker.main"
        assert record["pid"] == os.getpid()
        assert record["process"] == "MainProcess"
        assert "timestamp" in record

    def test_text_format_and_log_file(self, tmp_path, capsys):
        log_file = tmp_path / "daemon.log"
        settings = DaemonSettings.from_mapping({
            "LOG_JSON": "false",
            "LOG_FILE": str(log_file),
            "LOG_LEVEL": "warning",
        })

        setup_logging(settings)
        logger = logging.getLogger("dispatcher.main")
        logger.info("hidden")
        logger.warning("memory limit reached")

        out = capsys.readouterr().out
        assert "hidden" not in out
        assert f"{os.getpid()}/MainProcess - dispatcher.main - WARNING - memory limit reached" in out
        assert "memory limit reached" in log_file.read_text(encoding="utf-8")

    def test_driver_loggers_quieted(self):
        setup_logging(DaemonSettings.from_mapping({"APP_DEBUG": "true"}))

        assert logging.getLogger().level == logging.DEBUG
        for name in QUIET_LOGGERS:
            assert logging.getLogger(name).level == logging.WARNING


class TestLogBanner:
    """log_banner() 테스트"""

    def test_banner_lines(self, caplog):
        logger = logging.getLogger("daemon")

        with caplog.at_level(logging.INFO, logger="daemon"):
            log_banner(logger, "MultiFlexi daemon started")

        messages = [r.getMessage() for r in caplog.records]
        assert messages == ["=" * 40, "MultiFlexi daemon started", "=" * 40]
