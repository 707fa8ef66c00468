"""
Image utilities for medicine photo uploads.

Phones send HEIC/HEIF as often as JPEG, so the pillow-heif opener is
registered with Pillow once at import.
"""
import os

from PIL import Image, UnidentifiedImageError
from pillow_heif import register_heif_opener
from django.conf import settings

register_heif_opener()


def file_extension(filename):
    return os.path.splitext(filename or '')[1].lstrip('.').lower()


def is_valid_image(uploaded_file):
    """
    Basic validity check for an uploaded image.

    - extension in CLINIC_IMAGE_EXTENSIONS
    - non-empty and no larger than CLINIC_MAX_UPLOAD_BYTES
    - Pillow can identify and verify the content

    Returns (ok, reason). The file position is rewound afterwards.
    """
    extension = file_extension(uploaded_file.name)
    if extension not in settings.CLINIC_IMAGE_EXTENSIONS:
        return False, f'unsupported extension "{extension}"'

    size = getattr(uploaded_file, 'size', None) or 0
    if size <= 0:
        return False, 'empty file'
    if size > settings.CLINIC_MAX_UPLOAD_BYTES:
        return False, 'file too large'

    try:
        uploaded_file.seek(0)
        with Image.open(uploaded_file) as img:
            img.verify()
    except (UnidentifiedImageError, OSError, SyntaxError, ValueError) as e:
        return False, f'unreadable image: {e.__class__.__name__}'
    finally:
        uploaded_file.seek(0)

    return True, None
