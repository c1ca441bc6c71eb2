"""Google Cloud Storage backend."""

from __future__ import annotations

import logging
from datetime import datetime

from google.auth.credentials import AnonymousCredentials
from google.cloud import storage as gcs

from aggregator.storage.base import CollatorFactory
from aggregator.storage.objects import ObjectStorage, StoredObject

logger = logging.getLogger(__name__)

SCRAPE_TIME_METADATA = "scrape-time"


class GcsStorage(ObjectStorage):
    """Object storage in a GCS bucket, timestamps kept in blob metadata."""

    def __init__(self, cfg, new_collator: CollatorFactory | None = None, client=None):
        super().__init__(new_collator)
        self.client = client or self._new_client(cfg)
        self.bucket = self.client.bucket(cfg.bucket_name)

    @staticmethod
    def _new_client(cfg):
        project = cfg.gcs.project_id or None
        logger.info("Connecting to GCS bucket: %s (project: %s)", cfg.bucket_name, project or "default")
        if cfg.gcs.endpoint:
            # Custom endpoints are emulators; they take no credentials.
            return gcs.Client(
                project=project,
                credentials=AnonymousCredentials(),
                client_options={"api_endpoint": cfg.gcs.endpoint},
            )
        if cfg.iam_role_enabled or not cfg.gcs.filename:
            return gcs.Client(project=project)
        return gcs.Client.from_service_account_json(cfg.gcs.filename, project=project)

    def put_object(self, key: str, body: bytes, timestamp: datetime | None = None) -> None:
        blob = self.bucket.blob(key)
        if timestamp is not None:
            blob.metadata = {SCRAPE_TIME_METADATA: timestamp.isoformat()}
        blob.upload_from_string(body, content_type="application/json")

    def get_object(self, key: str) -> StoredObject | None:
        blob = self.bucket.get_blob(key)
        if blob is None:
            return None
        body = blob.download_as_bytes()
        scrape_time = (blob.metadata or {}).get(SCRAPE_TIME_METADATA)
        timestamp = datetime.fromisoformat(scrape_time) if scrape_time else blob.updated
        return StoredObject(body=body, timestamp=timestamp)

    def has_object(self, key: str) -> bool:
        return self.bucket.blob(key).exists()

    def list_objects(self, prefix: str) -> list[str]:
        return sorted(blob.name for blob in self.client.list_blobs(self.bucket, prefix=prefix))
