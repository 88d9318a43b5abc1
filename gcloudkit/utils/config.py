"""
Configuration management for Google Cloud services and client settings.
"""

import os
from dataclasses import dataclass
from typing import Optional

from dotenv import load_dotenv

load_dotenv()


@dataclass
class ConnectionConfig:
    """Configuration for the shared HTTP transport."""
    timeout: float
    retry_attempts: int
    retry_delay: float
    access_token: Optional[str] = None


@dataclass
class DatastoreConfig:
    """Configuration for Cloud Datastore."""
    project_id: Optional[str]
    namespace: Optional[str]
    api_endpoint: str


@dataclass
class ComputeConfig:
    """Configuration for Compute Engine."""
    project_id: Optional[str]
    api_endpoint: str
    operation_poll_interval: float


@dataclass
class AppConfig:
    """Main client configuration."""
    environment: str
    log_level: str
    connection: ConnectionConfig
    datastore: DatastoreConfig
    compute: ComputeConfig


def _datastore_endpoint() -> str:
    emulator_host = os.getenv('DATASTORE_EMULATOR_HOST')
    if emulator_host:
        if '://' not in emulator_host:
            emulator_host = f'http://{emulator_host}'
        return emulator_host.rstrip('/')
    return os.getenv('DATASTORE_API_ENDPOINT', 'https://datastore.googleapis.com').rstrip('/')


def load_config() -> AppConfig:
    """Load configuration from environment variables with defaults."""
    environment = os.getenv('ENVIRONMENT', 'development')
    project_id = os.getenv('GCLOUD_PROJECT')

    # Transport configuration
    connection_config = ConnectionConfig(timeout=float(os.getenv('GCLOUD_REQUEST_TIMEOUT', '60')),
                                         retry_attempts=int(os.getenv('GCLOUD_RETRY_ATTEMPTS', '3')),
                                         retry_delay=float(os.getenv('GCLOUD_RETRY_DELAY', '1.0')),
                                         access_token=os.getenv('GCLOUD_ACCESS_TOKEN'))

    # Datastore configuration
    datastore_config = DatastoreConfig(project_id=os.getenv('DATASTORE_PROJECT_ID', project_id),
                                       namespace=os.getenv('DATASTORE_NAMESPACE') or None,
                                       api_endpoint=_datastore_endpoint())

    # Compute configuration
    compute_config = ComputeConfig(project_id=project_id,
                                   api_endpoint=os.getenv('COMPUTE_API_ENDPOINT',
                                                          'https://www.googleapis.com/compute/v1').rstrip('/'),
                                   operation_poll_interval=float(os.getenv('COMPUTE_OPERATION_POLL_INTERVAL', '2.0')))

    return AppConfig(environment=environment,
                     log_level=os.getenv('LOG_LEVEL', 'INFO'),
                     connection=connection_config,
                     datastore=datastore_config,
                     compute=compute_config)


# Global configuration instance
config = load_config()
