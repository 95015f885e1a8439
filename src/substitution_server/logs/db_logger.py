import logging
import sys

from substitution_server.database import SessionLocal
from substitution_server.db.models import LogEntry


class DBLogHandler(logging.Handler):
    def emit(self, record):
        session = SessionLocal()
        try:
            entry = LogEntry(level=record.levelname, message=self.format(record))
            session.add(entry)
            session.commit()
        except Exception as e:
            session.rollback()
            print("DBLogHandler error:", e, file=sys.stderr)
        finally:
            session.close()
