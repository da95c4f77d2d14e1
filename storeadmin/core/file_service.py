"""
Local file storage service.
Stores uploaded and generated files under FILE_STORAGE['UPLOAD_ROOT'] and
describes them with a public URL built from FILE_STORAGE['URL_PREFIX'].
"""
import logging
import os
import re
import secrets
import shutil
import time
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Optional, Dict, Any, List

from django.conf import settings

from .exceptions import FileStorageError

logger = logging.getLogger('storeadmin.core')

DEFAULT_SUBDIRS = ['images', 'documents', 'products', 'avatars', 'exports', 'temp']

MIME_TYPES = {
    '.jpg': 'image/jpeg',
    '.jpeg': 'image/jpeg',
    '.png': 'image/png',
    '.gif': 'image/gif',
    '.webp': 'image/webp',
    '.pdf': 'application/pdf',
    '.doc': 'application/msword',
    '.docx': 'application/vnd.openxmlformats-officedocument.wordprocessingml.document',
    '.xls': 'application/vnd.ms-excel',
    '.xlsx': 'application/vnd.openxmlformats-officedocument.spreadsheetml.sheet',
    '.csv': 'text/csv',
    '.txt': 'text/plain',
    '.zip': 'application/zip',
    '.json': 'application/json',
    '.xml': 'application/xml',
}


def get_mime_type(filename: str) -> str:
    """Get MIME type from file extension"""
    return MIME_TYPES.get(Path(filename).suffix.lower(), 'application/octet-stream')


def generate_unique_filename(original_name: str) -> str:
    """
    Build a collision-resistant filename:
    <sanitised-lowercase-name>-<ms timestamp>-<16 hex chars><ext>
    """
    path = Path(original_name)
    extension = path.suffix
    sanitized_name = re.sub(r'[^a-zA-Z0-9]', '-', path.stem).lower()
    timestamp = int(time.time() * 1000)
    random_string = secrets.token_hex(8)
    return f"{sanitized_name}-{timestamp}-{random_string}{extension}"


class FileService:
    """Stores, reads, lists and moves files below the upload root"""

    def __init__(self, upload_root: Optional[str] = None, url_prefix: Optional[str] = None):
        self._upload_root = upload_root
        self._url_prefix = url_prefix

    @property
    def upload_root(self) -> Path:
        storage_config = getattr(settings, 'FILE_STORAGE', {})
        return Path(self._upload_root or storage_config.get('UPLOAD_ROOT') or Path(settings.BASE_DIR) / 'storage' / 'uploads')

    @property
    def url_prefix(self) -> str:
        storage_config = getattr(settings, 'FILE_STORAGE', {})
        return (self._url_prefix or storage_config.get('URL_PREFIX') or '/uploads').rstrip('/')

    def init_directories(self):
        """Create the upload root and its default subdirectories"""
        try:
            for subdir in DEFAULT_SUBDIRS:
                self._ensure_directory(self.upload_root / subdir)
        except OSError as e:
            logger.error(f"Error initializing upload directories: {str(e)}", exc_info=True)

    def _ensure_directory(self, directory: Path) -> Path:
        if not directory.exists():
            directory.mkdir(parents=True, exist_ok=True)
            logger.info(f"Created directory: {directory}")
        return directory

    def _resolve(self, subdir: str, filename: str = '') -> Path:
        """Resolve a path inside the upload root, rejecting traversal"""
        root = self.upload_root.resolve()
        target = (root / subdir / filename).resolve()
        if target != root and root not in target.parents:
            raise FileStorageError(f"Path '{subdir}/{filename}' is outside the storage root")
        return target

    def _url(self, subdir: str, filename: str) -> str:
        return f"{self.url_prefix}/{subdir}/{filename}"

    def store_file(self, original_name: str, content: bytes, subdir: str = 'temp',
                   filename: Optional[str] = None, metadata: Optional[Dict[str, Any]] = None,
                   mimetype: Optional[str] = None) -> Dict[str, Any]:
        """
        Write `content` to <upload_root>/<subdir>/<filename>.

        Returns a descriptor with filename, originalname, mimetype, size,
        path, url and metadata.
        """
        try:
            upload_dir = self._ensure_directory(self._resolve(subdir))
            unique_filename = filename or generate_unique_filename(original_name)
            file_path = self._resolve(subdir, unique_filename)

            file_path.write_bytes(content)
            size = file_path.stat().st_size

            return {
                'filename': unique_filename,
                'originalname': original_name,
                'mimetype': mimetype or get_mime_type(original_name),
                'size': size,
                'path': str(upload_dir / unique_filename),
                'url': self._url(subdir, unique_filename),
                'metadata': metadata or {},
            }
        except FileStorageError:
            raise
        except Exception as e:
            logger.error(f"Error storing file: {str(e)}", exc_info=True)
            raise FileStorageError(f"Failed to store file: {str(e)}") from e

    def store_file_from_stream(self, stream, original_name: str, subdir: str = 'temp',
                               filename: Optional[str] = None,
                               metadata: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """Copy a readable binary stream (e.g. an UploadedFile) into storage"""
        try:
            upload_dir = self._ensure_directory(self._resolve(subdir))
            unique_filename = filename or generate_unique_filename(original_name)
            file_path = self._resolve(subdir, unique_filename)

            with open(file_path, 'wb') as destination:
                if hasattr(stream, 'chunks'):
                    for chunk in stream.chunks():
                        destination.write(chunk)
                else:
                    shutil.copyfileobj(stream, destination)

            return {
                'filename': unique_filename,
                'originalname': original_name,
                'mimetype': get_mime_type(original_name),
                'size': file_path.stat().st_size,
                'path': str(upload_dir / unique_filename),
                'url': self._url(subdir, unique_filename),
                'metadata': metadata or {},
            }
        except FileStorageError:
            raise
        except Exception as e:
            logger.error(f"Error storing file from stream: {str(e)}", exc_info=True)
            raise FileStorageError(f"Failed to store file from stream: {str(e)}") from e

    def get_file(self, filename: str, subdir: str = 'temp') -> Dict[str, Any]:
        """Read a stored file; the descriptor includes its `content` bytes"""
        try:
            file_path = self._resolve(subdir, filename)
            if not file_path.is_file():
                raise FileNotFoundError(f"No such file: '{subdir}/{filename}'")

            return {
                'filename': filename,
                'mimetype': get_mime_type(filename),
                'size': file_path.stat().st_size,
                'path': str(file_path),
                'url': self._url(subdir, filename),
                'content': file_path.read_bytes(),
            }
        except FileStorageError:
            raise
        except Exception as e:
            logger.error(f"Error getting file {filename}: {str(e)}")
            raise FileStorageError(f"Failed to get file: {str(e)}") from e

    def delete_file(self, filename: str, subdir: str = 'temp') -> bool:
        try:
            file_path = self._resolve(subdir, filename)
            file_path.unlink()
            logger.info(f"File deleted: {file_path}")
            return True
        except FileStorageError:
            raise
        except Exception as e:
            logger.error(f"Error deleting file {filename}: {str(e)}")
            raise FileStorageError(f"Failed to delete file: {str(e)}") from e

    def list_files(self, subdir: str = 'temp') -> List[Dict[str, Any]]:
        """List files in a storage subdirectory, newest first"""
        try:
            dir_path = self._ensure_directory(self._resolve(subdir))
            files = []
            for entry in dir_path.iterdir():
                if not entry.is_file():
                    continue
                stats = entry.stat()
                files.append({
                    'filename': entry.name,
                    'path': str(entry),
                    'url': self._url(subdir, entry.name),
                    'mimetype': get_mime_type(entry.name),
                    'size': stats.st_size,
                    'modified': datetime.fromtimestamp(stats.st_mtime, tz=timezone.utc),
                    'created': datetime.fromtimestamp(stats.st_ctime, tz=timezone.utc),
                })
            files.sort(key=lambda item: item['modified'], reverse=True)
            return files
        except FileStorageError:
            raise
        except Exception as e:
            logger.error(f"Error listing files in {subdir}: {str(e)}")
            raise FileStorageError(f"Failed to list files: {str(e)}") from e

    def move_file(self, filename: str, src_subdir: str, dest_subdir: str,
                  new_filename: Optional[str] = None) -> Dict[str, Any]:
        try:
            src_path = self._resolve(src_subdir, filename)
            dest_filename = new_filename or filename
            self._ensure_directory(self._resolve(dest_subdir))
            dest_path = self._resolve(dest_subdir, dest_filename)

            os.replace(src_path, dest_path)

            return {
                'filename': dest_filename,
                'originalname': filename,
                'mimetype': get_mime_type(dest_filename),
                'size': dest_path.stat().st_size,
                'path': str(dest_path),
                'url': self._url(dest_subdir, dest_filename),
            }
        except FileStorageError:
            raise
        except Exception as e:
            logger.error(f"Error moving file {filename}: {str(e)}")
            raise FileStorageError(f"Failed to move file: {str(e)}") from e

    def get_presigned_upload_url(self, filename: Optional[str] = None, subdir: str = 'temp',
                                 expires_in: int = 3600) -> Dict[str, Any]:
        """
        Describe a direct-upload target in the shape object stores use.
        Local storage has no signing, so the token is informational only.
        """
        filename = filename or f"upload-{int(time.time() * 1000)}"
        now = datetime.now(timezone.utc)
        return {
            'url': f"{settings.APP_URL}{settings.API_PREFIX}/uploads/",
            'method': 'POST',
            'fields': {
                'key': f"{subdir}/{generate_unique_filename(filename)}",
                'token': secrets.token_hex(16),
                'x-amz-algorithm': 'AWS4-HMAC-SHA256',
                'x-amz-date': now.isoformat(),
                'x-amz-expires': expires_in,
            },
            'expires': (now + timedelta(seconds=expires_in)).isoformat(),
        }
