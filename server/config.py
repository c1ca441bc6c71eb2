"""Configuration for the OpenAPI aggregator.

Process settings come from ``AGGREGATOR_*`` environment variables. The
server config document (services, storage, merging) is loaded from one or
more YAML/JSON files, later files merged over earlier ones. Environment
variables named after the nested camelCase keys, such as ``STORAGE_S3_REGION``
or ``STORAGE_BUCKETNAME``, override the files. List values are given as JSON.
"""

from __future__ import annotations

import enum
from contextvars import ContextVar
from pathlib import Path

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator
from pydantic.alias_generators import to_camel
from pydantic_settings import (
    BaseSettings,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
    SettingsError,
    YamlConfigSettingsSource,
)

from aggregator.errors import ConfigInvalid


class Settings(BaseSettings):
    log_level: str = "INFO"
    port: int = 8080

    # Seconds
    scrape_interval: float = 60.0
    graceful_timeout: float = 15.0
    request_timeout: float = 15.0

    model_config = SettingsConfigDict(env_prefix="AGGREGATOR_")


settings = Settings()


class _ConfigModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")


class StorageType(str, enum.Enum):
    DISK = "disk"
    S3 = "s3"
    GCS = "gcs"


class ServiceConfig(_ConfigModel):
    name: str
    url: str


class DiskConfig(_ConfigModel):
    path: str = ""


class S3Config(_ConfigModel):
    region: str = ""
    endpoint: str = ""
    access_key: str = ""
    secret_key: str = ""
    session_key: str = ""


class GcsConfig(_ConfigModel):
    region: str = ""
    endpoint: str = ""
    project_id: str = ""
    filename: str = ""


class StorageConfig(_ConfigModel):
    type: StorageType = StorageType.DISK
    bucket_name: str = ""
    iam_role_enabled: bool = False
    disk: DiskConfig = Field(default_factory=DiskConfig)
    s3: S3Config = Field(default_factory=S3Config)
    gcs: GcsConfig = Field(default_factory=GcsConfig)

    @model_validator(mode="after")
    def _check_backend(self) -> StorageConfig:
        if self.type == StorageType.DISK and not self.disk.path:
            raise ValueError("disk storage requires disk.path")
        if self.type in (StorageType.S3, StorageType.GCS) and not self.bucket_name:
            raise ValueError(f"{self.type.value} storage requires bucketName")
        return self


class MergeConfig(_ConfigModel):
    exclude_patterns: list[str] = Field(default_factory=list)
    extension_patterns: list[str] = Field(default_factory=list)
    header_patterns: list[str] = Field(default_factory=list)


_config_files: ContextVar[tuple[Path, ...]] = ContextVar("config_files", default=())


class ServerConfig(BaseSettings):
    host: str = "localhost"
    services: list[ServiceConfig]
    storage: StorageConfig = Field(default_factory=StorageConfig)
    merging: MergeConfig = Field(default_factory=MergeConfig)

    model_config = SettingsConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
        env_nested_delimiter="_",
        case_sensitive=False,
    )

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        # Later config files take precedence over earlier ones.
        files = [YamlConfigSettingsSource(settings_cls, yaml_file=path) for path in reversed(_config_files.get())]
        return (init_settings, env_settings, *files)

    @model_validator(mode="after")
    def _check_services(self) -> ServerConfig:
        names: set[str] = set()
        for svc in self.services:
            if not svc.name:
                raise ValueError("missing service name")
            if not svc.url:
                raise ValueError(f"missing url for service {svc.name!r}")
            if svc.name in names:
                raise ValueError(f"duplicate service name {svc.name!r}")
            names.add(svc.name)
        return self

    def service_filter(self) -> set[str]:
        """Names of the configured services, used to filter stored revisions."""
        return {svc.name for svc in self.services}


def _read_document(path: str | Path) -> dict:
    try:
        with open(path) as f:
            data = yaml.safe_load(f)
    except (OSError, yaml.YAMLError) as exc:
        raise ConfigInvalid(f"unable to read config file {path}: {exc}") from exc
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigInvalid(f"config file {path} must contain a mapping")
    return data


def load_server_config(*paths: str | Path) -> ServerConfig:
    """Load and validate the server config from files and the environment."""
    for path in paths:
        _read_document(path)
    token = _config_files.set(tuple(Path(path) for path in paths))
    try:
        return ServerConfig()
    except (ValidationError, SettingsError) as exc:
        raise ConfigInvalid(f"invalid server config: {exc}") from exc
    finally:
        _config_files.reset(token)



def load_overlay(path: str | Path) -> dict:
    """Load an OpenAPI fragment merged into every collated document."""
    overlay = _read_document(path)
    if not overlay:
        raise ConfigInvalid(f"overlay file {path} is empty")
    return overlay
