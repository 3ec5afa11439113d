"""MySQL / MariaDB 방언 패키지"""

from database.mysql.connection import MySQLDialect

__all__ = ['MySQLDialect']
