from aggregator.errors import ConfigInvalid
from aggregator.storage.base import (
    COLLATED_VERSIONS_FOLDER,
    SERVICE_VERSIONS_FOLDER,
    CollatorFactory,
    Storage,
    sanitized_host,
)
from aggregator.storage.memory import MemoryStorage
from aggregator.storage.objects import ObjectStorage, StoredObject


def new_storage(cfg, new_collator: CollatorFactory | None = None) -> Storage:
    """Create the storage backend selected by ``cfg.storage.type``."""
    storage_cfg = cfg.storage
    storage_type = getattr(storage_cfg.type, "value", storage_cfg.type)
    if storage_type == "disk":
        from aggregator.storage.disk import DiskStorage
        return DiskStorage(storage_cfg.disk.path, new_collator)
    if storage_type == "s3":
        from aggregator.storage.s3 import S3Storage
        return S3Storage(storage_cfg, new_collator)
    if storage_type == "gcs":
        from aggregator.storage.gcs import GcsStorage
        return GcsStorage(storage_cfg, new_collator)
    raise ConfigInvalid(f"unsupported storage type: {storage_type}")


__all__ = [
    "COLLATED_VERSIONS_FOLDER", "SERVICE_VERSIONS_FOLDER",
    "CollatorFactory", "Storage", "ObjectStorage", "StoredObject",
    "MemoryStorage", "new_storage", "sanitized_host",
]
