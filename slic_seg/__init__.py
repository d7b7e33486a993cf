"""
SLIC Superpixel Segmentation
----------------------------
Partition an image into compact, roughly uniform regions by clustering pixels
around a regular grid of centers in a joint Lab color and spatial feature
space, then draw the region outlines back onto the image.

Example:
    >>> import numpy as np
    >>> from slic_seg import rgb_to_lab, overlay_superpixels
    >>>
    >>> # Load your RGB image as a uint8 numpy array
    >>> image = ...  # Your image loading code here
    >>>
    >>> # 15 x 15 grid, compactness 20
    >>> output, labels, mask = overlay_superpixels(image, rgb_to_lab(image), 15, 15, 20)
"""

from .core import (
    assign_labels,
    claim_pixels,
    compute_distance,
    init_grid,
    load_image_rgb,
    overlay_superpixels,
    process_image_file,
    rgb_to_lab,
    save_image,
    save_label_map,
    segment_image,
    window_bounds,
)
from .overlay import boundary_mask, draw_boundaries

__version__ = "0.1.0"
__all__ = [
    "assign_labels",
    "boundary_mask",
    "claim_pixels",
    "compute_distance",
    "draw_boundaries",
    "init_grid",
    "load_image_rgb",
    "overlay_superpixels",
    "process_image_file",
    "rgb_to_lab",
    "save_image",
    "save_label_map",
    "segment_image",
    "window_bounds",
]
