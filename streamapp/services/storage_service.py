import logging
import time

from flask import current_app
from supabase import Client, create_client

logger = logging.getLogger(__name__)

_client: Client | None = None


class StorageError(Exception):
    pass


def client() -> Client:
    """Provides a singleton Supabase client built from the app config.

    Raises:
        StorageError: If SUPABASE_URL or SUPABASE_KEY are not set.
    """
    global _client
    if _client is None:
        url = current_app.config.get('SUPABASE_URL')
        key = current_app.config.get('SUPABASE_KEY')
        if not url or not key:
            raise StorageError("SUPABASE_URL and SUPABASE_KEY required")
        _client = create_client(url, key)
    return _client


def build_object_name(filename: str) -> str:
    """Prefixes the upload's name with a millisecond timestamp."""
    return f"{int(time.time() * 1000)}-{filename}"


def upload_file(data: bytes, filename: str, content_type: str, bucket: str | None = None) -> str:
    """
    Uploads bytes to a storage bucket.

    Returns:
        The public URL of the stored object.
    """
    bucket = bucket or current_app.config.get('SUPABASE_DEFAULT_BUCKET', 'avatars')
    object_name = build_object_name(filename)
    bucket_api = client().storage.from_(bucket)
    try:
        bucket_api.upload(object_name, data, file_options={'content-type': content_type})
    except Exception as e:
        logger.error(f"StorageService: Upload of '{object_name}' to bucket '{bucket}' failed: {e}")
        raise StorageError(f"Failed to upload file: {e}") from e
    public_url = bucket_api.get_public_url(object_name)
    logger.info(f"StorageService: Uploaded '{object_name}' to bucket '{bucket}'")
    return public_url
