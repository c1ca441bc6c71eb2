"""AWS S3 storage backend."""

from __future__ import annotations

import logging
from datetime import datetime

import boto3
from botocore.exceptions import ClientError

from aggregator.storage.base import CollatorFactory
from aggregator.storage.objects import ObjectStorage, StoredObject

logger = logging.getLogger(__name__)

SCRAPE_TIME_METADATA = "scrape-time"

_MISSING_CODES = {"404", "NoSuchKey", "NotFound"}


def _is_missing(exc: ClientError) -> bool:
    return exc.response.get("Error", {}).get("Code") in _MISSING_CODES


class S3Storage(ObjectStorage):
    """Object storage in an S3 bucket.

    The scrape time is kept in object metadata. LastModified is used only
    for objects written without one.
    """

    def __init__(self, cfg, new_collator: CollatorFactory | None = None, client=None):
        super().__init__(new_collator)
        self.bucket = cfg.bucket_name
        self.client = client or self._new_client(cfg)

    @staticmethod
    def _new_client(cfg):
        kwargs = {}
        if cfg.s3.region:
            kwargs["region_name"] = cfg.s3.region
        if cfg.s3.endpoint:
            kwargs["endpoint_url"] = cfg.s3.endpoint
        if not cfg.iam_role_enabled:
            kwargs["aws_access_key_id"] = cfg.s3.access_key
            kwargs["aws_secret_access_key"] = cfg.s3.secret_key
            if cfg.s3.session_key:
                kwargs["aws_session_token"] = cfg.s3.session_key
        logger.info("Connecting to S3 bucket: %s (region: %s)", cfg.bucket_name, cfg.s3.region or "default")
        return boto3.client("s3", **kwargs)

    def put_object(self, key: str, body: bytes, timestamp: datetime | None = None) -> None:
        metadata = {}
        if timestamp is not None:
            metadata[SCRAPE_TIME_METADATA] = timestamp.isoformat()
        self.client.put_object(
            Bucket=self.bucket,
            Key=key,
            Body=body,
            ContentType="application/json",
            Metadata=metadata,
        )

    def get_object(self, key: str) -> StoredObject | None:
        try:
            resp = self.client.get_object(Bucket=self.bucket, Key=key)
        except ClientError as exc:
            if _is_missing(exc):
                return None
            raise
        body = resp["Body"].read()
        scrape_time = resp.get("Metadata", {}).get(SCRAPE_TIME_METADATA)
        timestamp = datetime.fromisoformat(scrape_time) if scrape_time else resp.get("LastModified")
        return StoredObject(body=body, timestamp=timestamp)

    def has_object(self, key: str) -> bool:
        try:
            self.client.head_object(Bucket=self.bucket, Key=key)
        except ClientError as exc:
            if _is_missing(exc):
                return False
            raise
        return True

    def list_objects(self, prefix: str) -> list[str]:
        keys = []
        paginator = self.client.get_paginator("list_objects_v2")
        for page in paginator.paginate(Bucket=self.bucket, Prefix=prefix):
            keys.extend(obj["Key"] for obj in page.get("Contents", []))
        return sorted(keys)
