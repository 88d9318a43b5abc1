"""
gcloudkit package initialization.
"""

# Setup logging configuration on package import
from .utils.logging_config import setup_logging

setup_logging()

from .models.core import Entity, GeoPoint, Key  # noqa: E402
from .services.compute import Compute  # noqa: E402
from .services.datastore import Datastore  # noqa: E402
from .services.firewall import Firewall  # noqa: E402
from .services.operation import Operation, OperationError  # noqa: E402
from .services.query import Query  # noqa: E402
from .services.transaction import Transaction  # noqa: E402
from .utils.connection import ApiError, Connection  # noqa: E402

__version__ = '0.1.0'

__all__ = [
    '__version__',
    'ApiError',
    'Compute',
    'Connection',
    'Datastore',
    'Entity',
    'Firewall',
    'GeoPoint',
    'Key',
    'Operation',
    'OperationError',
    'Query',
    'Transaction',
]
