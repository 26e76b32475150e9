# src/dialectic/utils/filename_utils.py

import re
import unicodedata


def slugify_filename(name: str) -> str:
    """
    Convert a model name, document key or stage into a safe S3 key segment.
    """
    if not name:
        return "file"

    name = unicodedata.normalize("NFKD", name)
    name = name.encode("ascii", "ignore").decode("ascii")

    name = re.sub(r"[^a-zA-Z0-9._-]+", "-", name)
    name = name.strip("._-")
    name = name.lower()

    return name or "file"


def split_storage_key(key: str) -> tuple[str, str]:
    """
    "a/b/c.md" -> ("a/b", "c.md"). A bare file name has an empty directory.
    """
    if "/" not in key:
        return "", key
    directory, _, file_name = key.rpartition("/")
    return directory, file_name


def join_storage_key(storage_path: str | None, file_name: str) -> str:
    directory = (storage_path or "").strip("/")
    return f"{directory}/{file_name}" if directory else file_name
