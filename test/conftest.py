"""
공통 테스트 픽스처

임시 SQLite 파일에 MultiFlexi 최소 스키마(runtemplate, job, schedule)를 만들고
그 파일을 가리키는 DaemonSettings를 제공합니다.
"""

import sqlite3
import sys
from pathlib import Path

import aiosqlite
import pytest

# 프로젝트 루트 경로 추가
sys.path.insert(0, str(Path(__file__).parent.parent))

from common.config import DaemonSettings

SCHEMA = """
CREATE TABLE runtemplate (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    name TEXT,
    last_schedule TEXT
);
CREATE TABLE job (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    runtemplate_id INTEGER,
    command TEXT,
    exitcode INTEGER,
    stdout TEXT,
    stderr TEXT
);
CREATE TABLE schedule (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    "after" TEXT NOT NULL,
    job INTEGER NOT NULL
);
"""


@pytest.fixture
def sqlite_path(tmp_path):
    """스키마가 준비된 임시 SQLite 파일"""
    path = tmp_path / "multiflexi.sqlite"
    db = sqlite3.connect(path)
    db.executescript(SCHEMA)
    db.close()
    return path


@pytest.fixture
def make_settings(sqlite_path):
    """임시 SQLite를 가리키는 DaemonSettings 생성 함수"""
    def factory(**overrides) -> DaemonSettings:
        values = {
            "DB_CONNECTION": "sqlite",
            "DB_DATABASE": str(sqlite_path),
            "MULTIFLEXI_RETRY_DELAY": 0,
            "MULTIFLEXI_RETRY_JITTER": 0,
            "MULTIFLEXI_RECONNECT_DELAY": 0,
            "MULTIFLEXI_SLOT_POLL_INTERVAL": 0.01,
            "LOG_JSON": False,
        }
        values.update(overrides)
        return DaemonSettings.from_mapping(values)
    return factory


@pytest.fixture
def settings(make_settings) -> DaemonSettings:
    return make_settings()


@pytest.fixture
def db_execute(sqlite_path):
    """임시 SQLite에 SQL 실행 (lastrowid 반환)"""
    async def execute(sql: str, params: tuple = ()) -> int:
        async with aiosqlite.connect(sqlite_path) as db:
            cursor = await db.execute(sql, params)
            await db.commit()
            return cursor.lastrowid
    return execute


@pytest.fixture
def db_fetch(sqlite_path):
    """임시 SQLite 조회 (dict 목록)"""
    async def fetch(sql: str, params: tuple = ()) -> list[dict]:
        async with aiosqlite.connect(sqlite_path) as db:
            db.row_factory = aiosqlite.Row
            async with db.execute(sql, params) as cursor:
                return [dict(row) for row in await cursor.fetchall()]
    return fetch
