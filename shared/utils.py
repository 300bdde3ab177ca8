"""Shared file helpers: extension checks and Pillow thumbnails."""

import io
import logging
from PIL import Image, UnidentifiedImageError

logger = logging.getLogger(__name__)

IMAGE_EXTENSIONS = {'png', 'jpg', 'jpeg', 'webp', 'gif', 'tif', 'tiff'}


class CorruptedImageError(Exception):
    """Raised when image data is corrupted and cannot be processed."""
    pass


def file_extension(filename):
    if not filename or '.' not in filename:
        return ''
    return filename.rsplit('.', 1)[1].lower()


def is_image_filename(filename):
    return file_extension(filename) in IMAGE_EXTENSIONS


def generate_thumbnail(image_data, size=(320, 180)):
    """Generate a thumbnail from raw image bytes while maintaining aspect ratio.

    PNG and WEBP keep their format to preserve transparency; everything else
    is written as JPEG.

    Args:
        image_data (bytes): Raw image data
        size (tuple): Bounding box (width, height) for the thumbnail

    Returns:
        tuple: (thumbnail bytes, file extension)

    Raises:
        CorruptedImageError: When the data is not a readable image.
    """
    try:
        img = Image.open(io.BytesIO(image_data))
        img.load()
    except (UnidentifiedImageError, OSError, SyntaxError) as e:
        logger.warning(f"Could not read image for thumbnail: {e}")
        raise CorruptedImageError(f"Image data is corrupted or unsupported: {e}")

    original_format = img.format
    img.thumbnail(tuple(size), Image.Resampling.LANCZOS)

    save_format = original_format if original_format in ('PNG', 'WEBP') else 'JPEG'
    if save_format == 'JPEG' and img.mode not in ('RGB', 'L'):
        img = img.convert('RGB')

    thumb_buffer = io.BytesIO()
    img.save(thumb_buffer, format=save_format, quality=85)
    return thumb_buffer.getvalue(), save_format.lower().replace('jpeg', 'jpg')
