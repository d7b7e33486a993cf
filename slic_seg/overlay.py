"""
Superpixel boundary extraction and drawing.
"""

import numpy as np
from scipy import ndimage

BOUNDARY_EPS = 1e-4

# Vertical derivative, its transpose gives the horizontal one
SOBEL = np.array([[-1, -2, -1],
                  [0, 0, 0],
                  [1, 2, 1]], dtype=np.float64) / 16.0


def boundary_mask(labels: np.ndarray, eps: float = BOUNDARY_EPS) -> np.ndarray:
    """
    Mark label discontinuities in a label map.

    The label map is treated as a scalar field and correlated with the Sobel
    kernel and its transpose. Any pixel whose gradient magnitude exceeds eps
    lies next to a label change, so both sides of an edge are marked. Label
    steps of 1 already give a magnitude of 0.25. Borders are mirrored
    (reflect-101) and never produce spurious edges.

    Parameters:
    ----------
    labels : np.ndarray
        H x W integer label map

    eps : float, optional
        Gradient magnitude threshold
        Default: 1e-4

    Returns:
    -------
    np.ndarray
        H x W bool mask, True on boundaries
    """
    field = np.asarray(labels, dtype=np.float64)
    if field.ndim != 2:
        raise ValueError(f"Label map must be 2D, got shape {field.shape}")

    gy = ndimage.correlate(field, SOBEL, mode="mirror")
    gx = ndimage.correlate(field, SOBEL.T, mode="mirror")
    return np.hypot(gx, gy) > eps


def draw_boundaries(image: np.ndarray, mask: np.ndarray) -> np.ndarray:
    """Black out mask pixels in every channel of image, other pixels are kept as is."""
    image = np.asarray(image)
    mask = np.asarray(mask, dtype=bool)
    if image.shape[:2] != mask.shape:
        raise ValueError(f"Image and mask must have same size, got {image.shape[:2]} vs {mask.shape}")

    keep = (~mask).astype(image.dtype)
    if image.ndim == 2:
        return image * keep

    channels = [image[..., c] * keep for c in range(image.shape[2])]
    return np.stack(channels, axis=-1)
