"""Storage service — uploaded attachments on local disk or Supabase Storage.

Local (default): files live in UPLOAD_FOLDER.
Supabase: used when SUPABASE_URL and SUPABASE_SERVICE_KEY are set; objects
live in SUPABASE_STORAGE_BUCKET under the same generated names.

Either way the reference handed back to callers is "uploads/<name>", the
string persisted inside a record's JSON-array file column.
"""

import logging
import os
import uuid

import requests
from flask import current_app

from productdb.errors import Internal, ValidationFailed

logger = logging.getLogger(__name__)

ALLOWED_EXTENSIONS = {
    ".jpg", ".jpeg", ".png", ".gif", ".webp", ".heic", ".svg",
    ".pdf",
    ".doc", ".docx", ".xls", ".xlsx", ".ppt", ".pptx",
    ".txt", ".csv",
}


def validate_file(file):
    """Validate an uploaded file (from request.files).

    Returns (ok: bool, error: str|None).
    """
    if not file or not file.filename:
        return False, "No file selected."

    ext = os.path.splitext(file.filename)[1].lower()
    if ext not in ALLOWED_EXTENSIONS:
        return False, f"File type '{ext}' is not allowed."

    max_size = current_app.config.get("MAX_FILE_SIZE", 10 * 1024 * 1024)

    # Check file size (read + seek back)
    file.seek(0, os.SEEK_END)
    size = file.tell()
    file.seek(0)

    if size > max_size:
        return False, (
            f"File '{file.filename}' is too large ({size / (1024*1024):.1f} MB). "
            f"Maximum is {max_size // (1024*1024)} MB."
        )

    if size == 0:
        return False, f"File '{file.filename}' is empty."

    return True, None


class LocalFileStore:
    """Files on local disk under UPLOAD_FOLDER."""

    def __init__(self, root, prefix="uploads"):
        self.root = os.path.abspath(root)
        self.prefix = prefix

    def store(self, field, data, original_name):
        name = _generate_name(field, original_name)
        os.makedirs(self.root, exist_ok=True)
        filepath = os.path.join(self.root, name)
        with open(filepath, "wb") as f:
            f.write(data)
        logger.info(f"Stored upload locally: {filepath}")
        return f"{self.prefix}/{name}"

    def delete(self, reference):
        name = _name_from_reference(reference, self.prefix)
        if name is None:
            return
        filepath = os.path.join(self.root, name)
        try:
            os.remove(filepath)
            logger.info(f"Deleted file: {filepath}")
        except FileNotFoundError:
            logger.warning(f"File not found on disk at {filepath}. Skipping.")

    def path_for(self, reference):
        """Absolute path for a reference, or None when it is not ours."""
        name = _name_from_reference(reference, self.prefix)
        if name is None:
            return None
        return os.path.join(self.root, name)

    def list_references(self):
        if not os.path.isdir(self.root):
            return []
        return sorted(
            f"{self.prefix}/{name}"
            for name in os.listdir(self.root)
            if os.path.isfile(os.path.join(self.root, name))
        )


class SupabaseFileStore:
    """Objects in a Supabase Storage bucket."""

    def __init__(self, url, key, bucket, prefix="uploads"):
        self.url = url.rstrip("/")
        self.key = key
        self.bucket = bucket
        self.prefix = prefix

    def _headers(self, **extra):
        headers = {"Authorization": f"Bearer {self.key}"}
        headers.update(extra)
        return headers

    def store(self, field, data, original_name):
        name = _generate_name(field, original_name)
        url = f"{self.url}/storage/v1/object/{self.bucket}/{name}"
        headers = self._headers(**{
            "Content-Type": "application/octet-stream",
            "x-upsert": "false",
        })
        resp = requests.post(url, headers=headers, data=data, timeout=30)
        resp.raise_for_status()
        logger.info(f"Uploaded to Supabase: {name}")
        return f"{self.prefix}/{name}"

    def delete(self, reference):
        name = _name_from_reference(reference, self.prefix)
        if name is None:
            return
        url = f"{self.url}/storage/v1/object/{self.bucket}/{name}"
        resp = requests.delete(url, headers=self._headers(), timeout=10)
        if resp.status_code == 404:
            logger.warning(f"Object not found in Supabase: {name}. Skipping.")
            return
        resp.raise_for_status()
        logger.info(f"Deleted from Supabase: {name}")

    def public_url(self, reference):
        name = _name_from_reference(reference, self.prefix)
        if name is None:
            return None
        return f"{self.url}/storage/v1/object/public/{self.bucket}/{name}"

    def list_references(self):
        url = f"{self.url}/storage/v1/object/list/{self.bucket}"
        references = []
        offset = 0
        while True:
            resp = requests.post(
                url,
                headers=self._headers(),
                json={"prefix": "", "limit": 1000, "offset": offset},
                timeout=30,
            )
            resp.raise_for_status()
            page = resp.json()
            references.extend(f"{self.prefix}/{obj['name']}" for obj in page)
            if len(page) < 1000:
                break
            offset += len(page)
        return sorted(references)


def _generate_name(field, original_name):
    ext = os.path.splitext(original_name or "")[1].lower()
    return f"{field}-{uuid.uuid4().hex}{ext}"


def _name_from_reference(reference, prefix):
    """Return the bare file name for "<prefix>/<name>", else None.

    Anything that is not a plain name directly under the prefix (absolute
    paths, "..", nested dirs) is refused so a stored reference can never
    point outside the upload area.
    """
    if not reference or not isinstance(reference, str):
        return None
    head, sep, name = reference.partition("/")
    if head != prefix or not sep or not name:
        logger.warning(f"Refusing to touch reference outside {prefix}/: {reference!r}")
        return None
    if name in (".", "..") or "/" in name or "\\" in name:
        logger.warning(f"Refusing to touch suspicious reference: {reference!r}")
        return None
    return name


def get_file_store():
    """Return the configured file store for the current app."""
    config = current_app.config
    prefix = config.get("UPLOAD_URL_PREFIX", "uploads")
    if config.get("SUPABASE_URL") and config.get("SUPABASE_SERVICE_KEY"):
        return SupabaseFileStore(
            config["SUPABASE_URL"],
            config["SUPABASE_SERVICE_KEY"],
            config.get("SUPABASE_STORAGE_BUCKET", "uploads"),
            prefix=prefix,
        )
    return LocalFileStore(config["UPLOAD_FOLDER"], prefix=prefix)


def store_uploads(field, files):
    """Validate and store every file for one field. All-or-nothing.

    Returns the list of references in upload order. If any file fails
    validation nothing is stored; if a store fails part-way the files
    already stored by this call are deleted before raising.
    """
    files = [f for f in files if f and f.filename]
    max_files = current_app.config.get("MAX_FILES_PER_FIELD", 10)
    if len(files) > max_files:
        raise ValidationFailed(
            f"Too many files for '{field}' ({len(files)}). Maximum is {max_files}."
        )

    for file in files:
        ok, error = validate_file(file)
        if not ok:
            raise ValidationFailed(error)

    store = get_file_store()
    references = []
    try:
        for file in files:
            references.append(store.store(field, file.read(), file.filename))
    except Exception as e:
        logger.error(f"Upload failed for field {field}: {e}")
        for reference in references:
            delete_file(reference)
        raise Internal("File upload failed.") from e
    return references


def delete_file(reference):
    """Delete one stored file. Best-effort, does not raise."""
    try:
        get_file_store().delete(reference)
    except Exception as e:
        logger.error(f"Failed to delete file {reference}: {e}")


def delete_files(references):
    for reference in references:
        delete_file(reference)
