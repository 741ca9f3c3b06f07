import uuid
from typing import Optional
from google.cloud import storage as gcs_storage
from zimconnect.config import get_settings

def get_storage_client():
    return gcs_storage.Client(project=get_settings().GCP_PROJECT_ID or None)

def get_bucket():
    client = get_storage_client()
    return client.bucket(get_settings().GCS_BUCKET_NAME)

def public_url(path: str) -> str:
    return f"https://storage.googleapis.com/{get_settings().GCS_BUCKET_NAME}/{path}"

def photo_path(user_id: str, extension: str = "jpg") -> str:
    """Object path for a new profile photo: ``<prefix><user_id>/<random>.<ext>``."""
    return f"{get_settings().GCS_PHOTO_PREFIX}{user_id}/{uuid.uuid4().hex}.{extension}"

def upload_profile_photo(user_id: str, file_bytes: bytes, content_type: str = "image/jpeg", extension: str = "jpg") -> str:
    """Upload a profile photo. Returns its public URL."""
    path = photo_path(user_id, extension)
    bucket = get_bucket()
    blob = bucket.blob(path)
    blob.upload_from_string(file_bytes, content_type=content_type)
    return public_url(path)

def path_from_url(url: str) -> Optional[str]:
    prefix = f"https://storage.googleapis.com/{get_settings().GCS_BUCKET_NAME}/"
    if not url.startswith(prefix):
        return None
    return url[len(prefix):]

def delete_profile_photo(url: str) -> bool:
    """Delete a previously uploaded photo. Foreign URLs are left alone."""
    path = path_from_url(url)
    if path is None:
        return False
    bucket = get_bucket()
    blob = bucket.blob(path)
    if blob.exists():
        blob.delete()
    return True
