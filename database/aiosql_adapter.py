"""
DB-API 커서 기반 비동기 드라이버용 aiosql 어댑터

aiosql이 기본 제공하지 않는 드라이버(asyncmy, aioodbc)를 등록합니다.
SQL 파일의 named parameter(:name)를 드라이버 paramstyle로 변환하고,
조회 결과는 컬럼명 기준 dict로 반환합니다.

    asyncmy : pyformat (:name -> %(name)s), 파라미터는 dict 그대로
    aioodbc : qmark    (:name -> ?),         파라미터는 등장 순서대로 tuple
"""

from contextlib import asynccontextmanager

import aiosql
from aiosql.utils import VAR_REF


def _rows_as_dicts(cursor, rows) -> list[dict]:
    """커서 description 기준으로 행을 dict로 변환"""
    columns = [col[0] for col in cursor.description or ()]
    return [dict(zip(columns, row)) for row in rows]


class CursorAdapter:
    """커서 기반 aio 드라이버 공통 어댑터"""

    is_aio_driver = True

    def __init__(self):
        # query_name -> 파라미터 등장 순서 (qmark 바인딩용)
        self._param_order: dict[str, list[str]] = {}

    def _placeholder(self, name: str) -> str:
        raise NotImplementedError

    def _bind(self, query_name: str, parameters):
        """aiosql 파라미터 -> 드라이버 파라미터"""
        return parameters or None

    async def _execute(self, cur, query_name, sql, parameters):
        bound = self._bind(query_name, parameters)
        if bound:
            await cur.execute(sql, bound)
        else:
            await cur.execute(sql)

    def process_sql(self, query_name, _op_type, sql):
        """named parameter를 드라이버 paramstyle로 변환"""
        order: list[str] = []

        def replacer(ma):
            gd = ma.groupdict()
            if gd["dquote"] is not None:
                return gd["dquote"]
            if gd["squote"] is not None:
                return gd["squote"]
            order.append(gd["var_name"])
            return f'{gd["lead"]}{self._placeholder(gd["var_name"])}'

        converted = VAR_REF.sub(replacer, sql)
        self._param_order[query_name] = order
        return converted

    async def select(self, conn, query_name, sql, parameters, record_class=None):
        """SELECT 쿼리 실행 - 여러 행 반환"""
        async with conn.cursor() as cur:
            await self._execute(cur, query_name, sql, parameters)
            results = _rows_as_dicts(cur, await cur.fetchall())
        if record_class is not None:
            results = [record_class(**row) for row in results]
        return results

    async def select_one(self, conn, query_name, sql, parameters, record_class=None):
        """SELECT 쿼리 실행 - 단일 행 반환"""
        async with conn.cursor() as cur:
            await self._execute(cur, query_name, sql, parameters)
            row = await cur.fetchone()
            result = _rows_as_dicts(cur, [row])[0] if row is not None else None
        if result is not None and record_class is not None:
            result = record_class(**result)
        return result

    async def select_value(self, conn, query_name, sql, parameters):
        """SELECT 쿼리 실행 - 단일 값 반환"""
        async with conn.cursor() as cur:
            await self._execute(cur, query_name, sql, parameters)
            row = await cur.fetchone()
        return row[0] if row else None

    @asynccontextmanager
    async def select_cursor(self, conn, query_name, sql, parameters):
        """SELECT 쿼리 실행 - 커서 반환"""
        async with conn.cursor() as cur:
            await self._execute(cur, query_name, sql, parameters)
            yield cur

    async def insert_returning(self, conn, query_name, sql, parameters):
        """INSERT 실행 - lastrowid 반환"""
        async with conn.cursor() as cur:
            await self._execute(cur, query_name, sql, parameters)
            return cur.lastrowid

    async def insert_update_delete(self, conn, query_name, sql, parameters):
        """INSERT/UPDATE/DELETE 실행 - affected rows 반환"""
        async with conn.cursor() as cur:
            await self._execute(cur, query_name, sql, parameters)
            return cur.rowcount

    async def insert_update_delete_many(self, conn, query_name, sql, parameters):
        """INSERT/UPDATE/DELETE 다중 실행 - affected rows 반환"""
        async with conn.cursor() as cur:
            await cur.executemany(sql, [self._bind(query_name, p) for p in parameters])
            return cur.rowcount

    async def execute_script(self, conn, sql):
        """스크립트 실행"""
        async with conn.cursor() as cur:
            for statement in sql.split(';'):
                statement = statement.strip()
                if statement:
                    await cur.execute(statement)
        return "DONE"


class AsyncmyAdapter(CursorAdapter):
    """asyncmy (pyformat)"""

    def _placeholder(self, name: str) -> str:
        return f"%({name})s"


class AioodbcAdapter(CursorAdapter):
    """aioodbc (qmark)"""

    def _placeholder(self, name: str) -> str:
        return "?"

    def _bind(self, query_name: str, parameters):
        if not parameters:
            return ()
        if isinstance(parameters, dict):
            return tuple(parameters[name] for name in self._param_order.get(query_name, []))
        return tuple(parameters)

    async def insert_returning(self, conn, query_name, sql, parameters):
        """INSERT ... OUTPUT INSERTED.id 실행 - 첫 컬럼 값 반환"""
        async with conn.cursor() as cur:
            await self._execute(cur, query_name, sql, parameters)
            row = await cur.fetchone()
        return row[0] if row else None


aiosql.register_adapter("asyncmy", AsyncmyAdapter)
aiosql.register_adapter("aioodbc", AioodbcAdapter)
