"""
S3-compatible storage integration for raw SCADA files.
Uses boto3 for universal S3-compatible storage operations (AWS S3, Backblaze B2, MinIO, ...).
"""
import asyncio
import logging
import re
import time
from typing import Any, Dict, List, Optional

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from scada_import.core.config import settings

logger = logging.getLogger(__name__)

_UNSAFE_NAME_CHARS = re.compile(r"[^a-zA-Z0-9._-]")


class StorageError(Exception):
    """Base exception for storage operations."""
    pass


class StorageConnectionError(StorageError):
    """Raised when storage connection fails."""
    pass


class StorageUploadError(StorageError):
    """Raised when file upload fails."""
    pass


def get_storage_client():
    """
    Get S3-compatible storage client.

    Returns:
        boto3 S3 client configured for the storage provider

    Raises:
        StorageConnectionError: If storage configuration is incomplete or the client cannot be built
    """
    if not all([settings.storage_access_key_id, settings.storage_secret_access_key, settings.storage_bucket_name]):
        raise StorageConnectionError(
            f"Storage configuration for provider '{settings.storage_provider}' is incomplete. "
            "Please set STORAGE_ACCESS_KEY_ID, STORAGE_SECRET_ACCESS_KEY, and STORAGE_BUCKET_NAME "
            "in your environment."
        )

    config = Config(
        signature_version='s3v4',
        retries={'max_attempts': settings.storage_max_retries, 'mode': 'standard'}
    )

    client_kwargs = {
        'service_name': 's3',
        'aws_access_key_id': settings.storage_access_key_id,
        'aws_secret_access_key': settings.storage_secret_access_key,
        'config': config,
    }

    # Add endpoint URL for non-AWS providers (B2, MinIO, etc.)
    if settings.storage_endpoint_url:
        client_kwargs['endpoint_url'] = settings.storage_endpoint_url

    if settings.storage_region:
        client_kwargs['region_name'] = settings.storage_region

    try:
        return boto3.client(**client_kwargs)
    except Exception as e:
        logger.error(f"Failed to create {settings.storage_provider} storage client: {e}")
        raise StorageConnectionError(f"Failed to connect to {settings.storage_provider} storage: {str(e)}")


def safe_file_name(file_name: str) -> str:
    """Replace every character outside [a-zA-Z0-9._-] with an underscore."""
    return _UNSAFE_NAME_CHARS.sub("_", file_name)


def build_storage_path(batch_key: str, file_name: str, timestamp_ms: Optional[int] = None) -> str:
    """Return "<batch_key>/<epoch ms>_<safe name>" for a new object."""
    if timestamp_ms is None:
        timestamp_ms = int(time.time() * 1000)
    return f"{batch_key}/{timestamp_ms}_{safe_file_name(file_name)}"


def _object_key(path: str) -> str:
    folder = settings.scada_storage_folder.strip("/")
    return f"{folder}/{path}" if folder else path


def upload_file(file_content: bytes, file_path: str) -> Dict[str, Any]:
    """
    Upload a file to S3-compatible storage, overwriting any existing object.

    Args:
        file_content: The file content as bytes
        file_path: Path of the object below the SCADA folder

    Returns:
        Dictionary with upload details: file_id (ETag), file_path and size

    Raises:
        StorageUploadError: If upload fails
    """
    try:
        client = get_storage_client()
        response = client.put_object(
            Bucket=settings.storage_bucket_name,
            Key=_object_key(file_path),
            Body=file_content
        )
        return {
            "file_id": response.get('ETag', '').strip('"'),
            "file_path": file_path,
            "size": len(file_content)
        }

    except ClientError as e:
        error_code = e.response.get('Error', {}).get('Code', 'Unknown')
        logger.error(f"Storage upload failed: {error_code} - {str(e)}")
        raise StorageUploadError(f"Could not store {file_path}: {str(e)}")
    except (BotoCoreError, StorageConnectionError) as e:
        logger.error(f"Storage upload failed for {file_path}: {str(e)}")
        raise StorageUploadError(f"Could not store {file_path}: {str(e)}")


def list_files(prefix: str) -> List[str]:
    """
    List object paths (relative to the SCADA folder) that start with a prefix.

    Raises:
        StorageError: If the listing fails
    """
    try:
        client = get_storage_client()
        paginator = client.get_paginator('list_objects_v2')
        folder_key = _object_key("")
        paths = []
        for page in paginator.paginate(Bucket=settings.storage_bucket_name, Prefix=_object_key(prefix)):
            for item in page.get('Contents', []):
                paths.append(item['Key'][len(folder_key):])
        return paths
    except (ClientError, BotoCoreError) as e:
        logger.error(f"Error listing storage prefix {prefix}: {str(e)}")
        raise StorageError(f"Could not list {prefix}: {str(e)}")


def delete_files(file_paths: List[str]) -> int:
    """
    Delete objects from storage.

    Returns:
        Number of objects deleted
    """
    if not file_paths:
        return 0
    try:
        client = get_storage_client()
        client.delete_objects(
            Bucket=settings.storage_bucket_name,
            Delete={'Objects': [{'Key': _object_key(path)} for path in file_paths], 'Quiet': True}
        )
        return len(file_paths)
    except (ClientError, BotoCoreError) as e:
        logger.error(f"Error deleting files from storage: {str(e)}")
        raise StorageError(f"Could not delete {len(file_paths)} file(s): {str(e)}")


async def upload_scada_file(batch_key: str, file_name: str, file_content: bytes) -> str:
    """Store one raw SCADA file and return its storage path; the blocking client runs in a worker thread."""
    file_path = build_storage_path(batch_key, file_name)
    await asyncio.to_thread(upload_file, file_content, file_path)
    logger.info(f"Stored {file_name} at {file_path}")
    return file_path
