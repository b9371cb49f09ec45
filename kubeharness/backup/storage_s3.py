"""
S3 backup storage settings for Vitess components.

Turns an S3BackupLocation into the vttablet/vtctld backup flags plus, when an
auth secret is referenced, the secret volume, its read-only mount and the env
var pointing the AWS SDK at the mounted credentials file.
"""

from __future__ import annotations

import posixpath
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

S3_BACKUP_STORAGE_IMPLEMENTATION_NAME = "s3"
S3_AUTH_SECRET_VOLUME_NAME = "s3-backup-auth"
S3_AUTH_SECRET_MOUNT_PATH = "/vt/secrets/s3-backup-auth"
S3_AUTH_SECRET_FILE_NAME = "credentials"
AWS_SHARED_CREDENTIALS_ENV_VAR = "AWS_SHARED_CREDENTIALS_FILE"

Flags = Dict[str, str]


@dataclass(frozen=True)
class SecretSource:
    """Reference to one key of a Kubernetes Secret."""
    name: str
    key: str


@dataclass(frozen=True)
class S3BackupLocation:
    region: str
    bucket: str
    key_prefix: str = ""
    auth_secret: Optional[SecretSource] = None


@dataclass(frozen=True)
class KeyToPath:
    key: str
    path: str

    def to_dict(self) -> Dict[str, Any]:
        return {"key": self.key, "path": self.path}


@dataclass(frozen=True)
class Volume:
    """A pod volume backed by a Secret."""
    name: str
    secret_name: str
    items: List[KeyToPath] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "secret": {
                "secretName": self.secret_name,
                "items": [item.to_dict() for item in self.items],
            },
        }


@dataclass(frozen=True)
class VolumeMount:
    name: str
    mount_path: str
    read_only: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {"name": self.name, "mountPath": self.mount_path, "readOnly": self.read_only}


@dataclass(frozen=True)
class EnvVar:
    name: str
    value: str

    def to_dict(self) -> Dict[str, Any]:
        return {"name": self.name, "value": self.value}


def root_key_prefix(key_prefix: str, cluster_name: str) -> str:
    """Backup root inside the bucket: the key prefix joined with the cluster name."""
    joined = "/".join(part for part in (key_prefix, cluster_name) if part)
    if not joined:
        return ""
    cleaned = posixpath.normpath(joined)
    if cleaned.startswith("//"):
        # POSIX normpath keeps a leading double slash
        cleaned = "/" + cleaned.lstrip("/")
    return cleaned


def s3_backup_flags(s3: S3BackupLocation, cluster_name: str) -> Flags:
    return {
        "backup_storage_implementation": S3_BACKUP_STORAGE_IMPLEMENTATION_NAME,
        "s3_backup_aws_region": s3.region,
        "s3_backup_storage_bucket": s3.bucket,
        "s3_backup_storage_root": root_key_prefix(s3.key_prefix, cluster_name),
    }


def s3_backup_volumes(s3: S3BackupLocation) -> List[Volume]:
    if s3.auth_secret is None:
        return []
    return [
        Volume(
            name=S3_AUTH_SECRET_VOLUME_NAME,
            secret_name=s3.auth_secret.name,
            items=[KeyToPath(key=s3.auth_secret.key, path=S3_AUTH_SECRET_FILE_NAME)],
        )
    ]


def s3_backup_volume_mounts(s3: S3BackupLocation) -> List[VolumeMount]:
    if s3.auth_secret is None:
        return []
    return [
        VolumeMount(
            name=S3_AUTH_SECRET_VOLUME_NAME,
            mount_path=S3_AUTH_SECRET_MOUNT_PATH,
            read_only=True,
        )
    ]


def s3_backup_env(s3: S3BackupLocation) -> List[EnvVar]:
    if s3.auth_secret is None:
        return []
    return [
        EnvVar(
            name=AWS_SHARED_CREDENTIALS_ENV_VAR,
            value=posixpath.join(S3_AUTH_SECRET_MOUNT_PATH, S3_AUTH_SECRET_FILE_NAME),
        )
    ]


def format_flags(flags: Flags) -> List[str]:
    """Command-line form of ``flags``, sorted by name for stable output."""
    return [f"--{name}={value}" for name, value in sorted(flags.items())]
