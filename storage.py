import logging
from pathlib import Path
from io import BytesIO
from typing import Optional

import boto3
import pandas as pd
from botocore.exceptions import BotoCoreError, ClientError

from config import AWS_REGION, LOCAL_STORAGE_DIR, S3_BUCKET
from errors import ValidationError

logger = logging.getLogger(__name__)

AVATAR_TYPES = {".png": "image/png", ".jpg": "image/jpeg", ".jpeg": "image/jpeg", ".webp": "image/webp"}
MAX_AVATAR_BYTES = 2 * 1024 * 1024


def get_s3_client():
    return boto3.client("s3", region_name=AWS_REGION)


def _local_path(folder: str, file_name: str) -> Path:
    return Path(LOCAL_STORAGE_DIR) / folder / file_name


def _to_bytes(data) -> bytes:
    if isinstance(data, pd.DataFrame):
        buffer = BytesIO()
        data.to_csv(buffer, index=False)
        return buffer.getvalue()
    if isinstance(data, str):
        return data.encode("utf-8")
    return data


def save_file(file_name: str, data, folder: str = "reports", content_type: Optional[str] = None) -> Optional[str]:
    """
    Saves a file to either S3 or local disk.
    Returns the object location (``s3://`` URI or local path), or None when the upload fails.
    """
    body = _to_bytes(data)
    if S3_BUCKET:
        s3 = get_s3_client()
        key = f"{folder}/{file_name}"
        extra = {"ContentType": content_type} if content_type else {}
        try:
            s3.put_object(Bucket=S3_BUCKET, Key=key, Body=body, **extra)
        except (BotoCoreError, ClientError):
            logger.exception("S3 upload failed for %s", key)
            return None
        return f"s3://{S3_BUCKET}/{key}"

    # Local fallback
    local_path = _local_path(folder, file_name)
    local_path.parent.mkdir(parents=True, exist_ok=True)
    local_path.write_bytes(body)
    return str(local_path)


def load_file(file_name: str, folder: str = "reports") -> Optional[bytes]:
    """
    Loads raw bytes from either S3 or local disk; None when missing.
    """
    if S3_BUCKET:
        s3 = get_s3_client()
        key = f"{folder}/{file_name}"
        try:
            obj = s3.get_object(Bucket=S3_BUCKET, Key=key)
            return obj["Body"].read()
        except s3.exceptions.NoSuchKey:
            return None
        except (BotoCoreError, ClientError):
            logger.exception("S3 download failed for %s", key)
            return None

    local_path = _local_path(folder, file_name)
    if local_path.exists():
        return local_path.read_bytes()
    return None


def list_files(folder: str = "reports") -> list[str]:
    """
    Lists files in a folder (S3 or local).
    """
    if S3_BUCKET:
        s3 = get_s3_client()
        try:
            response = s3.list_objects_v2(Bucket=S3_BUCKET, Prefix=f"{folder}/")
        except (BotoCoreError, ClientError):
            logger.exception("S3 list failed for %s", folder)
            return []
        return [obj["Key"].split("/")[-1] for obj in response.get("Contents", [])]

    local_path = Path(LOCAL_STORAGE_DIR) / folder
    if local_path.exists():
        return sorted(f.name for f in local_path.glob("*") if f.is_file())
    return []


def upload_avatar(user_id: int, file_name: str, data: bytes) -> Optional[str]:
    suffix = Path(file_name or "").suffix.lower()
    if suffix not in AVATAR_TYPES:
        raise ValidationError("Avatar must be a PNG, JPG or WEBP image.")
    if len(data) > MAX_AVATAR_BYTES:
        raise ValidationError("Avatar must be 2 MB or smaller.")
    return save_file(f"{user_id}{suffix}", data, folder="avatars", content_type=AVATAR_TYPES[suffix])


def save_report(user_id: int, file_name: str, content: str) -> Optional[str]:
    return save_file(file_name, content, folder=f"reports/{user_id}", content_type="text/csv")
