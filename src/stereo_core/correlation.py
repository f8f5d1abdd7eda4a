"""Template search by normalized cross-correlation."""

import logging
from dataclasses import dataclass

import cv2
import numpy as np

from .errors import SizeMismatchError, UnsupportedFormatError

logger = logging.getLogger(__name__)

# matchTemplate scores equal placements a few float32 ULPs apart
_TIE_TOLERANCE = 1e-5


@dataclass(frozen=True)
class CorrelationResult:
    """Best placement of a patch inside an image.

    Attributes:
        x: Column of the patch's top-left corner in the full image
        y: Row of the patch's top-left corner in the full image
        score: Zero-mean normalized cross-correlation in [-1, 1]
    """

    x: int
    y: int
    score: float


def _as_single_channel(image: np.ndarray, name: str) -> np.ndarray:
    image = np.asarray(image)
    if image.ndim == 3 and image.shape[2] == 1:
        image = image[:, :, 0]
    if image.ndim != 2:
        raise UnsupportedFormatError(
            f"{name} must be a single-channel intensity image, got shape {image.shape}"
        )
    return image


def _search_range(start: int, size: int, last: int) -> tuple[int, int]:
    """Clip [start, start + size] to the valid top-left positions [0, last]."""
    first = min(max(start, 0), last)
    stop = max(first, min(start + size, last))
    return first, stop


def cross_correlation(
    image: np.ndarray,
    patch: np.ndarray,
    x_search: int = -1,
    y_search: int = -1,
    search_width: int = -1,
    search_height: int = -1,
) -> CorrelationResult:
    """Find the placement of ``patch`` that best correlates with ``image``.

    The patch is slid over every top-left position inside the search window
    and scored with zero-mean normalized cross-correlation
    (``cv2.TM_CCOEFF_NORMED``), so identical content scores 1. Scores within
    float32 rounding of the best count as ties, resolved in favour of the
    first position in row-major order.

    Args:
        image: Single-channel image to search in
        patch: Single-channel patch, no larger than ``image``
        x_search: First candidate column of the patch's top-left corner
        y_search: First candidate row of the patch's top-left corner
        search_width: Number of extra columns to explore after ``x_search``
        search_height: Number of extra rows to explore after ``y_search``

    If any search argument is negative the whole image is searched. The
    window is clipped so that the patch always lies inside the image.

    Returns:
        CorrelationResult with the top-left corner and score of the best match

    Raises:
        UnsupportedFormatError: If either input has more than one channel
        SizeMismatchError: If the patch is larger than the image
    """
    image = _as_single_channel(image, "image")
    patch = _as_single_channel(patch, "patch")

    img_h, img_w = image.shape
    patch_h, patch_w = patch.shape
    if patch_h > img_h or patch_w > img_w:
        raise SizeMismatchError(
            f"Patch ({patch_w}x{patch_h}) is larger than image ({img_w}x{img_h})"
        )
    if patch_h == 0 or patch_w == 0:
        raise SizeMismatchError("Patch must not be empty")

    last_x = img_w - patch_w
    last_y = img_h - patch_h
    if min(x_search, y_search, search_width, search_height) < 0:
        x0, x1 = 0, last_x
        y0, y1 = 0, last_y
    else:
        x0, x1 = _search_range(x_search, search_width, last_x)
        y0, y1 = _search_range(y_search, search_height, last_y)

    region = image[y0 : y1 + patch_h, x0 : x1 + patch_w].astype(np.float32)
    scores = cv2.matchTemplate(
        region, patch.astype(np.float32), cv2.TM_CCOEFF_NORMED
    )

    # First placement in row-major order within float32 noise of the best
    flat = np.nan_to_num(scores.ravel(), nan=-1.0)
    index = int(np.flatnonzero(flat >= flat.max() - _TIE_TOLERANCE)[0])
    row, col = np.unravel_index(index, scores.shape)
    score = float(np.clip(flat[index], -1.0, 1.0))

    logger.debug(
        "Correlation window x=[%d, %d] y=[%d, %d]: best (%d, %d) score=%.4f",
        x0, x1, y0, y1, x0 + col, y0 + row, score,
    )
    return CorrelationResult(x=int(x0 + col), y=int(y0 + row), score=score)
