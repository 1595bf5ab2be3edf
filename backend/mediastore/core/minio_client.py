import logging

import urllib3
from minio import Minio

from mediastore.core.config import Settings
from mediastore.core.errors import StorageError
from mediastore.services.object_storage import ObjectStorageGateway
from mediastore.services.validation import StorageLimits

logger = logging.getLogger("mediastore")

RETRY_STATUSES = (429, 500, 502, 503, 504)


def build_http_client(settings: Settings) -> urllib3.PoolManager:
    return urllib3.PoolManager(
        timeout=urllib3.Timeout(connect=settings.S3_CONNECT_TIMEOUT, read=settings.S3_READ_TIMEOUT),
        retries=urllib3.Retry(
            # S3_MAX_ATTEMPTS counts the first try.
            total=max(settings.S3_MAX_ATTEMPTS - 1, 0),
            backoff_factor=0.2,
            status_forcelist=RETRY_STATUSES,
        ),
    )


def build_minio_client(settings: Settings) -> Minio:
    return Minio(
        settings.S3_ENDPOINT,
        access_key=settings.S3_ACCESS_KEY,
        secret_key=settings.S3_SECRET_KEY,
        secure=settings.S3_SECURE,
        region=settings.S3_REGION,
        http_client=build_http_client(settings),
    )


def build_gateway(settings: Settings, client: Minio | None = None) -> ObjectStorageGateway:
    return ObjectStorageGateway(
        client or build_minio_client(settings),
        bucket=settings.S3_BUCKET,
        endpoint_url=settings.s3_endpoint_url,
        limits=StorageLimits.from_settings(settings),
    )


def initialize_bucket(gateway: ObjectStorageGateway, bucket: str | None = None):
    bucket = bucket or gateway.bucket
    try:
        result = gateway.ensure_bucket_exists(bucket)
    except StorageError as e:
        logger.error(f"Object storage error: {e.kind.value}: {e.message}")
        raise RuntimeError(f"Failed to initialize bucket {bucket!r}: {e.message}") from e
    if result.created:
        logger.info(f"Bucket '{bucket}' created successfully")
    else:
        logger.info(f"Bucket '{bucket}' already exists")
    return result
