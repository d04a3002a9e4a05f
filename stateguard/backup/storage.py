"""
Storage backends for backup archives.

Every backend offers the same capabilities (store, list, info, fetch, delete)
and is registered under a short identifier:
- local: the node's backup directory
- usb: a folder on the first mounted removable drive
- s3: S3-compatible object storage
"""

import os
import shutil
import logging
from typing import BinaryIO, Callable, Dict, List, Mapping, Optional

import boto3
from botocore.exceptions import (
    BotoCoreError,
    ClientError,
    EndpointConnectionError,
    NoCredentialsError,
)

from stateguard.models import ArchiveInfo, BackupPolicy
from .compression import is_archive_name, parse_archive_timestamp
from .errors import (
    BackendNotImplementedError,
    BackupError,
    BackendUnavailableError,
    NotFoundError,
    StorageError,
)


logger = logging.getLogger(__name__)

# Files larger than this are uploaded in parts
MULTIPART_THRESHOLD = 100 * 1024 * 1024
MULTIPART_CHUNK_SIZE = 10 * 1024 * 1024


class Backend:
    """
    Capability interface every storage backend implements.

    Names are bare archive filenames; listings are sorted ascending, which
    equals creation order for timestamped archive names.
    """

    backend_id = None

    @classmethod
    def from_config(cls, config: Mapping, policy: Optional[BackupPolicy] = None) -> 'Backend':
        raise NotImplementedError

    def store(self, archive_path: str) -> str:
        raise NotImplementedError

    def list(self) -> List[str]:
        raise NotImplementedError

    def info(self, name: str) -> ArchiveInfo:
        raise NotImplementedError

    def fetch(self, name: str) -> BinaryIO:
        raise NotImplementedError

    def delete(self, name: str):
        raise NotImplementedError

    def describe(self) -> str:
        return self.backend_id

    def __repr__(self):
        return f'<{self.__class__.__name__} {self.describe()}>'


def _check_name(name: str):
    """Reject names that are not bare archive filenames."""
    if not name or os.path.basename(name) != name or name in ('.', '..'):
        raise NotFoundError(f"Backup not found: {name}")


class DirectoryStorage(Backend):
    """Backend storing archives as files in a single directory."""

    def directory(self) -> str:
        raise NotImplementedError

    def describe(self) -> str:
        try:
            return f"{self.backend_id}:{self.directory()}"
        except StorageError:
            return f"{self.backend_id}:<unavailable>"

    def store(self, archive_path: str) -> str:
        """
        Copy an archive into the backend directory.

        The copy is written under a hidden temporary name and renamed into
        place once complete.

        Args:
            archive_path: Path to the finished archive

        Returns:
            Full path of the stored archive

        Raises:
            StorageError: If the copy fails
        """
        if not os.path.exists(archive_path):
            raise StorageError(f"Source file not found: {archive_path}")

        directory = self.directory()
        filename = os.path.basename(archive_path)
        dest_path = os.path.join(directory, filename)

        if os.path.abspath(archive_path) == os.path.abspath(dest_path):
            return dest_path

        temp_path = os.path.join(directory, f".{filename}.partial")

        try:
            os.makedirs(directory, exist_ok=True)
            shutil.copy2(archive_path, temp_path)
            os.replace(temp_path, dest_path)
            return dest_path

        except PermissionError as e:
            self._remove_partial(temp_path)
            raise StorageError(f"Permission denied writing to {dest_path}: {e}") from e
        except OSError as e:
            self._remove_partial(temp_path)
            raise StorageError(f"Failed to store {filename} on {self.backend_id}: {e}") from e

    def list(self) -> List[str]:
        directory = self.directory()

        if not os.path.isdir(directory):
            return []

        try:
            names = [
                entry.name for entry in os.scandir(directory)
                if entry.is_file() and is_archive_name(entry.name)
            ]
        except OSError as e:
            raise StorageError(f"Failed to list {directory}: {e}") from e

        return sorted(names)

    def get_full_path(self, name: str) -> str:
        _check_name(name)
        return os.path.join(self.directory(), name)

    def info(self, name: str) -> ArchiveInfo:
        path = self.get_full_path(name)
        try:
            size = os.path.getsize(path)
        except FileNotFoundError as e:
            raise NotFoundError(f"Backup not found: {name}") from e
        except OSError as e:
            raise StorageError(f"Failed to read {path}: {e}") from e

        return ArchiveInfo(
            name=name,
            size_bytes=size,
            location=path,
            created_at=parse_archive_timestamp(name)
        )

    def fetch(self, name: str) -> BinaryIO:
        path = self.get_full_path(name)
        try:
            return open(path, 'rb')
        except FileNotFoundError as e:
            raise NotFoundError(f"Backup not found: {name}") from e
        except OSError as e:
            raise StorageError(f"Failed to open {path}: {e}") from e

    def delete(self, name: str):
        """
        Delete an archive.

        Raises:
            NotFoundError: If the archive does not exist
            StorageError: If deletion fails
        """
        path = self.get_full_path(name)

        if not os.path.isfile(path):
            raise NotFoundError(f"Backup not found: {name}")

        try:
            os.remove(path)
        except PermissionError as e:
            raise StorageError(f"Permission denied deleting {path}: {e}") from e
        except OSError as e:
            raise StorageError(f"Failed to delete {path}: {e}") from e

    @staticmethod
    def _remove_partial(path: str):
        try:
            if os.path.exists(path):
                os.remove(path)
        except OSError as e:
            logger.warning(f"Failed to remove partial copy {path}: {e}")


class LocalStorage(DirectoryStorage):
    """Archives kept in the node's own backup directory."""

    backend_id = 'local'

    def __init__(self, base_path: str):
        self.base_path = os.path.abspath(base_path)

    @classmethod
    def from_config(cls, config, policy=None):
        return cls(config['BACKUP_DIR'])

    def directory(self) -> str:
        return self.base_path


class RemovableMediaStorage(DirectoryStorage):
    """
    Archives kept on a removable drive.

    The mount point is discovered on every call from an ordered list of
    candidate directories; the first one that exists wins.
    """

    backend_id = 'usb'

    def __init__(self, mount_candidates: List[str], subdir: str):
        self.mount_candidates = list(mount_candidates)
        self.subdir = subdir

    @classmethod
    def from_config(cls, config, policy=None):
        return cls(
            config['USB_MOUNT_CANDIDATES'],
            f"{config['PRODUCT_NAME']}-backups"
        )

    def find_mount(self) -> Optional[str]:
        for candidate in self.mount_candidates:
            if os.path.isdir(candidate):
                return candidate
        return None

    def directory(self) -> str:
        mount = self.find_mount()
        if mount is None:
            raise BackendUnavailableError(
                f"No removable drive mounted (checked: {', '.join(self.mount_candidates)})"
            )
        return os.path.join(mount, self.subdir)


class S3Storage(Backend):
    """
    Archives kept in an S3-compatible bucket.

    Objects are stored flat under an optional prefix: {prefix}/{filename}
    """

    backend_id = 's3'

    def __init__(
        self,
        bucket_name: str,
        prefix: str = '',
        endpoint_url: Optional[str] = None,
        region: Optional[str] = None,
        access_key: Optional[str] = None,
        secret_key: Optional[str] = None
    ):
        """
        Initialize S3 storage handler.

        Args:
            bucket_name: S3 bucket name
            prefix: Key prefix for archives
            endpoint_url: Custom endpoint for S3-compatible services
            region: Bucket region (default: us-east-1)
            access_key: Access key ID (default: boto3 credential chain)
            secret_key: Secret access key (default: boto3 credential chain)
        """
        self.bucket_name = bucket_name
        self.prefix = (prefix or '').strip('/')
        self.endpoint_url = endpoint_url
        self.region = region or 'us-east-1'

        try:
            self.s3_client = boto3.client(
                's3',
                aws_access_key_id=access_key,
                aws_secret_access_key=secret_key,
                region_name=self.region,
                endpoint_url=endpoint_url
            )
        except (BotoCoreError, ValueError) as e:
            raise BackendUnavailableError(f"Failed to initialize S3 client: {e}") from e

    @classmethod
    def from_config(cls, config, policy=None):
        settings = policy.s3 if policy is not None else None
        if settings is None or not settings.configured:
            raise BackendUnavailableError("Object storage not configured (set s3.bucket in the backup policy)")

        return cls(
            bucket_name=settings.bucket,
            prefix=settings.prefix,
            endpoint_url=settings.endpoint,
            region=settings.region,
            access_key=config.get('S3_ACCESS_KEY_ID'),
            secret_key=config.get('S3_SECRET_ACCESS_KEY')
        )

    def describe(self) -> str:
        return f"s3://{self.bucket_name}/{self.prefix}"

    def _key(self, name: str) -> str:
        _check_name(name)
        return f"{self.prefix}/{name}" if self.prefix else name

    def _translate(self, e: Exception, action: str, name: Optional[str] = None) -> BackupError:
        """Map a botocore exception onto the storage error taxonomy."""
        if isinstance(e, (EndpointConnectionError, NoCredentialsError)):
            return BackendUnavailableError(f"S3 {action} failed: {e}")

        if isinstance(e, ClientError):
            error_code = e.response.get('Error', {}).get('Code', 'Unknown')
            if error_code in ('404', 'NoSuchKey', 'NotFound'):
                return NotFoundError(f"Backup not found: {name}")
            if error_code == 'NoSuchBucket':
                return BackendUnavailableError(f"Bucket does not exist: {self.bucket_name}")
            return StorageError(f"S3 {action} failed ({error_code}): {e}")

        return StorageError(f"S3 {action} failed: {e}")

    def store(self, archive_path: str, cancellation_check: Optional[Callable] = None) -> str:
        """
        Upload archive to S3.

        Args:
            archive_path: Path to local archive file
            cancellation_check: Optional function called between upload parts

        Returns:
            s3:// URL of the uploaded object

        Raises:
            StorageError: If upload fails
        """
        if not os.path.exists(archive_path):
            raise StorageError(f"Local file not found: {archive_path}")

        s3_key = self._key(os.path.basename(archive_path))

        try:
            file_size = os.path.getsize(archive_path)

            if file_size > MULTIPART_THRESHOLD:
                self._multipart_upload(archive_path, s3_key, cancellation_check)
            else:
                if cancellation_check:
                    cancellation_check()
                self._simple_upload(archive_path, s3_key)

            return f"s3://{self.bucket_name}/{s3_key}"

        except (ClientError, BotoCoreError) as e:
            raise self._translate(e, 'upload') from e
        except OSError as e:
            raise StorageError(f"Failed to upload to S3: {e}") from e

    def _simple_upload(self, local_path: str, s3_key: str):
        with open(local_path, 'rb') as f:
            self.s3_client.put_object(
                Bucket=self.bucket_name,
                Key=s3_key,
                Body=f
            )

    def _multipart_upload(self, local_path: str, s3_key: str, cancellation_check: Optional[Callable] = None):
        """
        Upload large file in parts, aborting the upload on any error.
        """
        response = self.s3_client.create_multipart_upload(
            Bucket=self.bucket_name,
            Key=s3_key
        )
        upload_id = response['UploadId']

        parts = []

        try:
            with open(local_path, 'rb') as f:
                part_number = 1

                while True:
                    if cancellation_check:
                        cancellation_check()

                    data = f.read(MULTIPART_CHUNK_SIZE)
                    if not data:
                        break

                    response = self.s3_client.upload_part(
                        Bucket=self.bucket_name,
                        Key=s3_key,
                        PartNumber=part_number,
                        UploadId=upload_id,
                        Body=data
                    )

                    parts.append({
                        'PartNumber': part_number,
                        'ETag': response['ETag']
                    })

                    part_number += 1

            self.s3_client.complete_multipart_upload(
                Bucket=self.bucket_name,
                Key=s3_key,
                UploadId=upload_id,
                MultipartUpload={'Parts': parts}
            )

        except Exception:
            try:
                self.s3_client.abort_multipart_upload(
                    Bucket=self.bucket_name,
                    Key=s3_key,
                    UploadId=upload_id
                )
            except (ClientError, BotoCoreError) as abort_error:
                logger.warning(f"Failed to abort multipart upload {upload_id}: {abort_error}")
            raise

    def list(self) -> List[str]:
        list_prefix = f"{self.prefix}/" if self.prefix else ''

        try:
            names = []
            paginator = self.s3_client.get_paginator('list_objects_v2')

            for page in paginator.paginate(Bucket=self.bucket_name, Prefix=list_prefix):
                for obj in page.get('Contents', []):
                    name = obj['Key'][len(list_prefix):]
                    if '/' not in name and is_archive_name(name):
                        names.append(name)

            return sorted(names)

        except (ClientError, BotoCoreError) as e:
            raise self._translate(e, 'list') from e

    def info(self, name: str) -> ArchiveInfo:
        s3_key = self._key(name)
        try:
            head = self.s3_client.head_object(Bucket=self.bucket_name, Key=s3_key)
        except (ClientError, BotoCoreError) as e:
            raise self._translate(e, 'head', name) from e

        return ArchiveInfo(
            name=name,
            size_bytes=head.get('ContentLength'),
            location=f"s3://{self.bucket_name}/{s3_key}",
            created_at=parse_archive_timestamp(name)
        )

    def fetch(self, name: str) -> BinaryIO:
        s3_key = self._key(name)
        try:
            response = self.s3_client.get_object(Bucket=self.bucket_name, Key=s3_key)
        except (ClientError, BotoCoreError) as e:
            raise self._translate(e, 'download', name) from e
        return response['Body']

    def delete(self, name: str):
        """
        Delete an archive object.

        Raises:
            NotFoundError: If the object does not exist
            StorageError: If deletion fails
        """
        # delete_object succeeds for missing keys, so check first
        self.info(name)

        try:
            self.s3_client.delete_object(
                Bucket=self.bucket_name,
                Key=self._key(name)
            )
        except (ClientError, BotoCoreError) as e:
            raise self._translate(e, 'delete', name) from e


BACKENDS: Dict[str, type] = {}


def register_backend(backend_id: str, backend_cls: type):
    """
    Register a backend implementation under an identifier.

    Args:
        backend_id: Identifier used by --target/--from and the policy
        backend_cls: Backend subclass providing from_config()
    """
    BACKENDS[backend_id] = backend_cls


def get_backend(backend_id: str, config: Mapping, policy: Optional[BackupPolicy] = None) -> Backend:
    """
    Instantiate the backend registered under an identifier.

    Raises:
        BackendNotImplementedError: If no backend is registered for the identifier
        BackendUnavailableError: If the backend cannot be configured
    """
    backend_cls = BACKENDS.get(backend_id)
    if backend_cls is None:
        raise BackendNotImplementedError(
            f"Unsupported backend: {backend_id}. Valid options: {sorted(BACKENDS)}"
        )
    return backend_cls.from_config(config, policy)


def dispatch(backend_id: str, archive_path: str, config: Mapping, policy: Optional[BackupPolicy] = None) -> str:
    """
    Route a finished archive to a storage backend.

    Args:
        backend_id: Target backend identifier
        archive_path: Path to the archive in the local backup directory
        config: Configuration mapping
        policy: Backup policy (object storage settings)

    Returns:
        Location of the stored archive

    Raises:
        StorageError: If the backend is unavailable or the copy fails
    """
    backend = get_backend(backend_id, config, policy)
    location = backend.store(archive_path)
    logger.info(f"Archive dispatched to {backend_id}: {location}")
    return location


register_backend(LocalStorage.backend_id, LocalStorage)
register_backend(RemovableMediaStorage.backend_id, RemovableMediaStorage)
register_backend(S3Storage.backend_id, S3Storage)
