"""Media storage for version files, thumbnails and note attachments.

Files go through Apache Libcloud's storage API. The default deployment uses
the LOCAL provider rooted at STORAGE_PATH; switching to S3 or GCS is a matter
of swapping the driver.
"""

import logging
import os
import secrets
from pathlib import Path
from libcloud.common.types import LibcloudError
from libcloud.storage.types import Provider, ContainerDoesNotExistError, ObjectDoesNotExistError
from libcloud.storage.providers import get_driver
from tenacity import (
    retry,
    stop_after_attempt,
    wait_exponential,
    retry_if_exception_type,
    before_sleep_log,
)
from shared.utils import CorruptedImageError, file_extension, generate_thumbnail, is_image_filename
from shared.validation import Validator, ValidationError

logger = logging.getLogger(__name__)

CHUNK_SIZE = 8192

MEDIA_EXTENSIONS = {
    'mp4', 'mov', 'avi', 'mkv', 'webm', 'exr', 'dpx', 'png', 'jpg', 'jpeg', 'webp', 'gif',
    'tif', 'tiff', 'wav', 'mp3', 'aac', 'flac', 'txt', 'json', 'srt', 'vtt', 'pdf',
}
IMAGE_ONLY_EXTENSIONS = {'png', 'jpg', 'jpeg', 'webp', 'gif'}
ATTACHMENT_EXTENSIONS = MEDIA_EXTENSIONS | {'csv', 'md'}

STORAGE_RETRY_ERRORS = (LibcloudError, OSError)


class MediaStorageService:
    """Stores uploaded files as objects inside one container."""

    def __init__(self, storage_path, container_name='media', thumbnail_size=(320, 180), retry_attempts=3):
        self.storage_path = Path(storage_path)
        self.storage_path.mkdir(parents=True, exist_ok=True)
        self.thumbnail_size = tuple(thumbnail_size)
        self.retry_attempts = retry_attempts

        self.driver = get_driver(Provider.LOCAL)(key=str(self.storage_path))
        self.container = self._get_container(container_name)
        logger.info(f"Media storage initialized at {self.storage_path}/{container_name}")

    def _get_container(self, container_name):
        """Get or create the storage container."""
        try:
            return self.driver.get_container(container_name=container_name)
        except ContainerDoesNotExistError:
            logger.info(f"Creating container: {container_name}")
            return self.driver.create_container(container_name=container_name)

    @staticmethod
    def check_upload(filename, allowed_extensions):
        """Validate an uploaded filename and return a storage-safe version of it."""
        if not filename:
            raise ValidationError('No file selected')
        base = os.path.basename(filename.replace('\\', '/'))
        safe = ''.join(c if c.isalnum() or c in '._-' else '_' for c in base).strip('._') or 'upload'
        safe = Validator.validate_safe_filename(safe[-200:])
        ext = file_extension(safe)
        if ext not in allowed_extensions:
            raise ValidationError(
                f"File type '.{ext}' is not allowed. Allowed: {', '.join(sorted(allowed_extensions))}"
            )
        return safe

    def _upload(self, data, object_name):
        @retry(
            stop=stop_after_attempt(self.retry_attempts),
            wait=wait_exponential(multiplier=0.1, min=0.1, max=2),
            retry=retry_if_exception_type(STORAGE_RETRY_ERRORS),
            before_sleep=before_sleep_log(logger, logging.WARNING),
            reraise=True,
        )
        def upload():
            chunks = (data[i:i + CHUNK_SIZE] for i in range(0, len(data), CHUNK_SIZE))
            return self.driver.upload_object_via_stream(
                iterator=chunks,
                container=self.container,
                object_name=object_name,
            )

        obj = upload()
        logger.info(f"Stored {object_name} ({len(data)} bytes)")
        return obj.name

    def save(self, data, prefix, filename):
        """Store bytes under prefix/<random>_<filename> and return the object name."""
        object_name = f"{prefix}/{secrets.token_hex(8)}_{filename}"
        return self._upload(data, object_name)

    def save_with_thumbnail(self, data, prefix, filename):
        """Store a file and, for images, a thumbnail next to it.

        Returns:
            tuple: (object name, thumbnail object name or None)

        Raises:
            CorruptedImageError: If an image cannot be decoded; nothing is kept
        """
        object_name = self.save(data, prefix, filename)
        thumbnail_name = None
        if is_image_filename(filename):
            try:
                thumbnail_name = self.save_thumbnail(data, prefix, filename)
            except CorruptedImageError:
                self.delete(object_name)
                raise
        return object_name, thumbnail_name

    def save_thumbnail(self, image_data, prefix, filename):
        """Scale an image down with Pillow and store the result."""
        thumb_data, ext = generate_thumbnail(image_data, self.thumbnail_size)
        stem = filename.rsplit('.', 1)[0]
        return self.save(thumb_data, f"{prefix}/thumbnails", f"{stem}_thumb.{ext}")

    def open_stream(self, object_name):
        """Return (object, chunk iterator) for a stored object."""
        try:
            obj = self.driver.get_object(self.container.name, object_name)
        except ObjectDoesNotExistError:
            return None, None
        return obj, self.driver.download_object_as_stream(obj, chunk_size=CHUNK_SIZE)

    def exists(self, object_name):
        try:
            self.driver.get_object(self.container.name, object_name)
            return True
        except ObjectDoesNotExistError:
            return False

    def delete(self, *object_names):
        """Delete stored objects; missing ones are skipped."""
        deleted = 0
        for object_name in object_names:
            if not object_name:
                continue
            try:
                obj = self.driver.get_object(self.container.name, object_name)
                self.driver.delete_object(obj)
                deleted += 1
                logger.info(f"Deleted stored object: {object_name}")
            except ObjectDoesNotExistError:
                logger.debug(f"Stored object already gone: {object_name}")
        return deleted


def init_media_storage(app):
    storage = MediaStorageService(
        storage_path=app.config['STORAGE_PATH'],
        container_name=app.config.get('STORAGE_CONTAINER', 'media'),
        thumbnail_size=app.config.get('THUMBNAIL_SIZE', (320, 180)),
        retry_attempts=app.config.get('UPLOAD_RETRY_ATTEMPTS', 3),
    )
    app.extensions['media_storage'] = storage
    return storage