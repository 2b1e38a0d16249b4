from .models import Operation, OperationType, Report, summarize
from .session import Database
from .tx import DbPort, DbTransaction, DbTx
from .url import create_database, detect_driver, mask_secret, to_sqlalchemy_url

__all__ = [
    "Database",
    "DbPort",
    "DbTx",
    "DbTransaction",
    "Operation",
    "OperationType",
    "Report",
    "summarize",
    "create_database",
    "detect_driver",
    "mask_secret",
    "to_sqlalchemy_url",
]
