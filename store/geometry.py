from typing import Literal

Orientation = Literal["landscape", "portrait", "square"]

DEFAULT_RATIO = 1.0
_LANDSCAPE_ABOVE = 1.15
_PORTRAIT_BELOW = 0.87


def classify(width: int, height: int) -> tuple[float, Orientation]:
    """Return (aspect ratio, orientation) for the given pixel dimensions.

    Unknown dimensions (either side <= 0) yield the default ratio 1.0,
    which classifies as square.
    """
    ratio = width / height if width > 0 and height > 0 else DEFAULT_RATIO
    if ratio > _LANDSCAPE_ABOVE:
        return ratio, "landscape"
    if ratio < _PORTRAIT_BELOW:
        return ratio, "portrait"
    return ratio, "square"
