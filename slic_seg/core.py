"""
Core functionality for SLIC superpixel segmentation.

Pixels are clustered around a regular grid of centers in a joint CIE L*a*b*
and image-plane feature space. A center only competes for the pixels inside a
square window of half-width S around it, so a pass costs O(n * S^2) instead of
O(n * H * W).
"""

import logging
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
from typing import List, Tuple

import numpy as np
from PIL import Image
from skimage import color

from .overlay import boundary_mask, draw_boundaries

METHOD_NAME = "slic"
IMG_EXTS = {".jpg", ".jpeg", ".png", ".bmp", ".tif", ".tiff"}

DEFAULT_NX = 15
DEFAULT_NY = 15
DEFAULT_COMPACTNESS = 20.0
DEFAULT_ITERATIONS = 10

# Label identities are spread over this range so a raw label map is viewable
LABEL_RANGE = 255 * 255
UNASSIGNED = -1
UNSET_DISTANCE = -1.0


# --------------------------- Distance metric ---------------------------

def compute_distance(p1, p2, lab1, lab2, compactness: float, S: int):
    """
    Joint color and spatial dissimilarity between pixel sites.

    Parameters:
    ----------
    p1, p2 : (x, y) pairs
        Site coordinates. Components may be scalars or broadcastable arrays.

    lab1, lab2 : array-like
        Lab colors, channels on the last axis.

    compactness : float
        Weight m of the spatial term. Larger values give squarer regions,
        smaller values let regions follow color edges.

    S : int
        Window radius, normalizes the spatial term.

    Returns:
    -------
    float32 scalar or array
        ||lab1 - lab2|| + (compactness / S) * ||p1 - p2||
    """
    lab1 = np.asarray(lab1, dtype=np.float32)
    lab2 = np.asarray(lab2, dtype=np.float32)
    d_lab = np.sqrt(np.sum((lab1 - lab2) ** 2, axis=-1))

    dx = np.asarray(p1[0], dtype=np.float32) - np.asarray(p2[0], dtype=np.float32)
    dy = np.asarray(p1[1], dtype=np.float32) - np.asarray(p2[1], dtype=np.float32)
    d_xy = np.sqrt(dx * dx + dy * dy)

    return d_lab + np.float32(compactness / S) * d_xy


# --------------------------- Grid initialization ---------------------------

def init_grid(width: int, height: int, nx: int, ny: int) -> Tuple[np.ndarray, np.ndarray, int]:
    """
    Lay out an nx x ny grid of centers over a width x height image.

    Returns (centers, label_ids, S). centers is an (n, 2) array of (x, y) cell
    midpoints in row-major order, label_ids holds strictly increasing label
    identities and S is the shared window radius. nx and ny must be positive.
    """
    dx = width / float(nx)
    dy = height / float(ny)
    S = int((dx + dy + 1) / 2)

    # Cells narrower than a pixel can round a midpoint onto the far edge
    xs = np.clip(np.rint(np.arange(nx) * dx + dx / 2), 0, width - 1).astype(np.int64)
    ys = np.clip(np.rint(np.arange(ny) * dy + dy / 2), 0, height - 1).astype(np.int64)
    gx, gy = np.meshgrid(xs, ys)
    centers = np.stack([gx.ravel(), gy.ravel()], axis=1)

    n = nx * ny
    label_ids = np.arange(n, dtype=np.int32) * max(LABEL_RANGE // n, 1)
    return centers, label_ids, S


# --------------------------- Windowed assignment ---------------------------

def window_bounds(center, S: int, width: int, height: int) -> Tuple[int, int, int, int]:
    """Inclusive (xmin, xmax, ymin, ymax) of the window around center, clipped to the image."""
    x, y = int(center[0]), int(center[1])
    return max(x - S, 0), min(x + S, width - 1), max(y - S, 0), min(y + S, height - 1)


def claim_pixels(dists: np.ndarray, labels: np.ndarray, d: np.ndarray, label: int) -> int:
    """
    Compare-and-swap of candidate distances d for one center into the maps.

    dists and labels are views of the window being scanned and are updated in
    place. A pixel is claimed when it has no recorded distance, when d is
    strictly smaller, or on an exact tie when label is smaller than the
    recorded one. Label identities grow with traversal order, so the tie rule
    keeps the earliest center whatever order centers are scanned in.

    Returns the number of pixels claimed.
    """
    won = (dists == UNSET_DISTANCE) | (d < dists) | ((d == dists) & (label < labels))
    dists[won] = d[won]
    labels[won] = label
    return int(np.count_nonzero(won))


def _scan_center(image_lab, dists, labels, center, center_lab, label, S, compactness) -> int:
    H, W = labels.shape
    xmin, xmax, ymin, ymax = window_bounds(center, S, W, H)
    window = (slice(ymin, ymax + 1), slice(xmin, xmax + 1))
    ys, xs = np.ogrid[ymin:ymax + 1, xmin:xmax + 1]
    d = compute_distance(center, (xs, ys), center_lab, image_lab[window], compactness, S)
    return claim_pixels(dists[window], labels[window], d, int(label))


def _disjoint_phases(centers: np.ndarray, S: int, width: int, height: int) -> List[List[int]]:
    """Greedily group center indices so windows within a group never overlap."""
    phases, occupied = [], []
    for k, center in enumerate(centers):
        xmin, xmax, ymin, ymax = window_bounds(center, S, width, height)
        for phase, taken in zip(phases, occupied):
            if not taken[ymin:ymax + 1, xmin:xmax + 1].any():
                break
        else:
            phase, taken = [], np.zeros((height, width), dtype=bool)
            phases.append(phase)
            occupied.append(taken)
        phase.append(k)
        taken[ymin:ymax + 1, xmin:xmax + 1] = True
    return phases


def _assignment_pass(image_lab, dists, labels, centers, centers_lab, label_ids, S,
                     compactness, executor=None) -> int:
    """Scan every center window once. Returns the number of claimed pixels."""
    if executor is None:
        return sum(
            _scan_center(image_lab, dists, labels, centers[k], centers_lab[k], label_ids[k], S, compactness)
            for k in range(len(centers))
        )

    H, W = labels.shape
    claimed = 0
    for phase in _disjoint_phases(centers, S, W, H):
        futs = [
            executor.submit(_scan_center, image_lab, dists, labels,
                            centers[k], centers_lab[k], label_ids[k], S, compactness)
            for k in phase
        ]
        claimed += sum(f.result() for f in futs)
    return claimed


def _reestimate_centers(image_lab, labels, label_ids, centers, centers_lab):
    """Move each center to the mean position and color of its assigned pixels."""
    n = len(label_ids)
    assigned = labels != UNASSIGNED
    owner = np.searchsorted(label_ids, labels[assigned])
    counts = np.bincount(owner, minlength=n)
    keep = counts > 0

    ys, xs = np.nonzero(assigned)
    new_centers = centers.copy()
    new_centers[keep, 0] = np.rint(np.bincount(owner, weights=xs, minlength=n)[keep] / counts[keep])
    new_centers[keep, 1] = np.rint(np.bincount(owner, weights=ys, minlength=n)[keep] / counts[keep])

    pixels = image_lab[assigned]
    new_lab = centers_lab.copy()
    for c in range(new_lab.shape[1]):
        sums = np.bincount(owner, weights=pixels[:, c], minlength=n)
        new_lab[keep, c] = sums[keep] / counts[keep]
    return new_centers, new_lab


def assign_labels(image_lab: np.ndarray,
                  centers: np.ndarray,
                  label_ids: np.ndarray,
                  S: int,
                  compactness: float,
                  n_iter: int = DEFAULT_ITERATIONS,
                  reestimate: bool = False,
                  workers: int = 0) -> Tuple[np.ndarray, np.ndarray]:
    """
    Refine label and distance maps by repeated windowed passes over all centers.

    Parameters:
    ----------
    image_lab : np.ndarray
        H x W x 3 Lab image

    centers : np.ndarray
        (n, 2) int array of (x, y) center sites, see init_grid

    label_ids : np.ndarray
        (n,) strictly increasing label identities

    S : int
        Window radius shared by all centers

    compactness : float
        Spatial weight m of the distance metric

    n_iter : int, optional
        Maximum number of passes. With fixed centers a pass that claims no
        pixel ends the loop since every later pass would be identical.
        Default: 10

    reestimate : bool, optional
        Move centers to the mean position and color of their pixels between
        passes and restart the maps from scratch each pass. Iteration stops
        once the label map no longer changes.
        Default: False

    workers : int, optional
        Scan windows on a thread pool, one group of non-overlapping windows at
        a time. The result is identical to the serial scan.
        Default: 0 (serial)

    Returns:
    -------
    labels : np.ndarray
        H x W int32 label map, UNASSIGNED outside every window

    dists : np.ndarray
        H x W float32 best distance map, UNSET_DISTANCE outside every window
    """
    image_lab = np.ascontiguousarray(image_lab, dtype=np.float32)
    H, W = image_lab.shape[:2]
    centers = np.array(centers, dtype=np.int64)
    label_ids = np.asarray(label_ids, dtype=np.int32)
    centers_lab = image_lab[centers[:, 1], centers[:, 0]]

    labels = np.full((H, W), UNASSIGNED, dtype=np.int32)
    dists = np.full((H, W), UNSET_DISTANCE, dtype=np.float32)
    previous = np.empty_like(labels) if reestimate else None

    def iterate(executor):
        nonlocal centers, centers_lab
        for it in range(n_iter):
            if reestimate:
                np.copyto(previous, labels)
                labels.fill(UNASSIGNED)
                dists.fill(UNSET_DISTANCE)

            claimed = _assignment_pass(image_lab, dists, labels, centers, centers_lab,
                                       label_ids, S, compactness, executor)
            logging.debug(f"pass {it + 1}/{n_iter}: {claimed} pixels claimed")

            if reestimate:
                if np.array_equal(previous, labels):
                    logging.info(f"labels stable after {it + 1} passes")
                    break
                centers, centers_lab = _reestimate_centers(image_lab, labels, label_ids, centers, centers_lab)
            elif claimed == 0:
                logging.info(f"converged after {it} passes")
                break

    if workers and workers > 0:
        with ThreadPoolExecutor(max_workers=int(workers)) as ex:
            iterate(ex)
    else:
        iterate(None)

    return labels, dists


# --------------------------- Public API ---------------------------

def _validate(image_lab: np.ndarray, nx: int, ny: int, compactness: float, n_iter: int) -> None:
    if image_lab.ndim != 3 or image_lab.shape[2] != 3:
        raise ValueError(f"Lab image must have shape (H, W, 3), got {image_lab.shape}")
    if image_lab.shape[0] == 0 or image_lab.shape[1] == 0:
        raise ValueError(f"Image must not be empty, got {image_lab.shape}")
    if nx <= 0 or ny <= 0:
        raise ValueError(f"Grid dimensions must be positive, got {nx}x{ny}")
    if compactness <= 0:
        raise ValueError(f"Compactness must be positive, got {compactness}")
    if n_iter < 1:
        raise ValueError(f"Number of iterations must be at least 1, got {n_iter}")


def segment_image(image_lab: np.ndarray,
                  nx: int = DEFAULT_NX,
                  ny: int = DEFAULT_NY,
                  compactness: float = DEFAULT_COMPACTNESS,
                  n_iter: int = DEFAULT_ITERATIONS,
                  reestimate: bool = False,
                  workers: int = 0) -> np.ndarray:
    """
    Perform SLIC superpixel segmentation.

    Parameters:
    ----------
    image_lab : np.ndarray
        Input image in CIE L*a*b*, float array
        Shape: [height, width, 3]

    nx, ny : int, optional
        Grid dimensions, the number of centers is nx * ny
        Default: 15 x 15

    compactness : float, optional
        Weight m of the spatial term
        Default: 20

    n_iter, reestimate, workers :
        Passed to assign_labels

    Returns:
    -------
    np.ndarray
        Label map holding the label identity of the closest center per pixel.
        Shape: [height, width]
        dtype: int32
    """
    image_lab = np.asarray(image_lab)
    _validate(image_lab, nx, ny, compactness, n_iter)

    H, W = image_lab.shape[:2]
    centers, label_ids, S = init_grid(W, H, int(nx), int(ny))
    if S <= 0:
        raise ValueError(f"Window radius must be positive, got {S} for a {nx}x{ny} grid on a {W}x{H} image")

    labels, _ = assign_labels(image_lab, centers, label_ids, S, compactness,
                              n_iter=n_iter, reestimate=reestimate, workers=workers)
    return labels


def overlay_superpixels(image: np.ndarray,
                        image_lab: np.ndarray,
                        nx: int = DEFAULT_NX,
                        ny: int = DEFAULT_NY,
                        compactness: float = DEFAULT_COMPACTNESS,
                        n_iter: int = DEFAULT_ITERATIONS,
                        reestimate: bool = False,
                        workers: int = 0) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
    """
    Segment image_lab and draw the superpixel outlines onto image.

    image is the original (non-Lab) buffer of the same height and width.
    Returns (output, labels, mask), output keeps image's dtype.
    """
    image = np.asarray(image)
    image_lab = np.asarray(image_lab)
    if image.shape[:2] != image_lab.shape[:2]:
        raise ValueError(f"Image and Lab image must have same size, got {image.shape[:2]} vs {image_lab.shape[:2]}")

    labels = segment_image(image_lab, nx, ny, compactness, n_iter=n_iter, reestimate=reestimate, workers=workers)
    mask = boundary_mask(labels)
    return draw_boundaries(image, mask), labels, mask


# --------------------------- I O helpers ---------------------------

def load_image_rgb(path: str) -> np.ndarray:
    """Return H x W x 3 uint8 RGB."""
    img = Image.open(path).convert("RGB")
    return np.asarray(img, dtype=np.uint8)


def rgb_to_lab(image: np.ndarray) -> np.ndarray:
    """Convert an RGB image, integer or float in [0, 1], to float32 Lab."""
    arr = np.asarray(image)
    if np.issubdtype(arr.dtype, np.integer):
        arr = arr.astype(np.float32) / float(np.iinfo(arr.dtype).max)
    else:
        arr = arr.astype(np.float32)
    return color.rgb2lab(arr).astype(np.float32)


def save_image(image: np.ndarray, out_path: str) -> None:
    """Save an image with Pillow. Float input is taken to be in [0, 1]."""
    arr = np.asarray(image)
    if not np.issubdtype(arr.dtype, np.integer):
        arr = np.rint(np.clip(arr, 0.0, 1.0) * 255.0)
    arr = arr.astype(np.uint8)
    Path(out_path).parent.mkdir(parents=True, exist_ok=True)
    Image.fromarray(arr).save(out_path)


def save_label_map(labels: np.ndarray, out_path: str) -> None:
    """Save a label map as .npy."""
    Path(out_path).parent.mkdir(parents=True, exist_ok=True)
    np.save(out_path, np.asarray(labels, dtype=np.int32))


def find_images(images_dir: str) -> List[Path]:
    """Image files directly under images_dir, sorted by name."""
    images_dir = Path(images_dir)
    return sorted(p for p in images_dir.iterdir() if p.is_file() and p.suffix.lower() in IMG_EXTS)


def process_image_file(image_path: str,
                       nx: int = DEFAULT_NX,
                       ny: int = DEFAULT_NY,
                       compactness: float = DEFAULT_COMPACTNESS,
                       n_iter: int = DEFAULT_ITERATIONS,
                       reestimate: bool = False,
                       workers: int = 0) -> Tuple[np.ndarray, np.ndarray]:
    """
    Load an image file, segment it and draw the superpixel outlines.

    Parameters:
    ----------
    image_path : str
        Path to the input image file

    nx, ny, compactness, n_iter, reestimate, workers :
        See segment_image

    Returns:
    -------
    output : np.ndarray
        H x W x 3 uint8 RGB image with boundaries drawn in black

    labels : np.ndarray
        Label map from segmentation
    """
    image = load_image_rgb(image_path)
    image_lab = rgb_to_lab(image)
    output, labels, _ = overlay_superpixels(image, image_lab, nx, ny, compactness,
                                            n_iter=n_iter, reestimate=reestimate, workers=workers)
    return output, labels
