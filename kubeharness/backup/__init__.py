"""Backup storage configuration builders."""

from kubeharness.backup.storage_s3 import (
    EnvVar,
    S3BackupLocation,
    SecretSource,
    Volume,
    VolumeMount,
    format_flags,
    root_key_prefix,
    s3_backup_env,
    s3_backup_flags,
    s3_backup_volume_mounts,
    s3_backup_volumes,
)

__all__ = [
    "EnvVar",
    "S3BackupLocation",
    "SecretSource",
    "Volume",
    "VolumeMount",
    "format_flags",
    "root_key_prefix",
    "s3_backup_env",
    "s3_backup_flags",
    "s3_backup_volume_mounts",
    "s3_backup_volumes",
]
