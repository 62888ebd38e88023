import io

from PIL import Image, UnidentifiedImageError

# EXIF orientation values that swap width/height for display
_TRANSPOSING_ORIENTATIONS = frozenset({5, 6, 7, 8})
_EXIF_ORIENTATION_TAG = 274


def probe_dimensions(data: bytes) -> tuple[int, int]:
    """Return the displayed (width, height) of an encoded image.

    Only the header is decoded. Raises ValueError if the bytes are not an image
    Pillow can identify.
    """
    try:
        with Image.open(io.BytesIO(data)) as img:
            width, height = img.size
            orientation_tag = img.getexif().get(_EXIF_ORIENTATION_TAG, 1)
    except (UnidentifiedImageError, OSError) as exc:
        raise ValueError(f"not a readable image: {exc}") from exc

    # Rotated images are shown transposed, so report the displayed shape.
    if orientation_tag in _TRANSPOSING_ORIENTATIONS:
        width, height = height, width
    return width, height
