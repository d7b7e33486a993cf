"""
Command line runner for SLIC superpixel segmentation.

Single image:
    slic-superpixels INPUT [OUTPUT] [nx ny] [m]

Batch over a directory, with a JSON summary on stdout:
    slic-superpixels --images-dir imgs/ --output-dir out/
"""

import argparse, json, logging, sys, time
from pathlib import Path
from typing import List, Optional

import numpy as np
from PIL import UnidentifiedImageError
from tqdm import tqdm

from .core import (
    DEFAULT_COMPACTNESS,
    DEFAULT_ITERATIONS,
    DEFAULT_NX,
    DEFAULT_NY,
    METHOD_NAME,
    find_images,
    process_image_file,
    save_image,
    save_label_map,
)

BANNER = "SLIC superpixel segmentation"
USAGE = "Usage: slic-superpixels INPUT OUTPUT [nx ny] [m]"
DEFAULT_OUTPUT = "out.png"


def build_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(prog="slic-superpixels", description=BANNER)
    # Positional defaults are applied after counting how many were given
    ap.add_argument("input", nargs="?", help="input image")
    ap.add_argument("output", nargs="?", help=f"output image (default: {DEFAULT_OUTPUT})")
    ap.add_argument("nx", nargs="?", type=int, help=f"grid columns (default: {DEFAULT_NX})")
    ap.add_argument("ny", nargs="?", type=int, help=f"grid rows (default: {DEFAULT_NY})")
    ap.add_argument("m", nargs="?", type=float, help=f"compactness (default: {DEFAULT_COMPACTNESS:g})")
    ap.add_argument("--iterations", type=int, default=DEFAULT_ITERATIONS, help="maximum assignment passes")
    ap.add_argument("--reestimate", action="store_true", help="move centers to their region means between passes")
    ap.add_argument("--workers", type=int, default=0, help="threads for window scans, 0 means serial")
    ap.add_argument("--save-labels", type=str, default=None, help="also save the label map as .npy, a directory in batch mode")
    ap.add_argument("--images-dir", type=str, default=None, help="batch mode input directory")
    ap.add_argument("--output-dir", type=str, default=None, help="batch mode output directory")
    ap.add_argument("--log-level", type=str, default="INFO", choices=["DEBUG", "INFO", "WARNING", "ERROR"])
    return ap


def _apply_defaults(args) -> None:
    args.nx = DEFAULT_NX if args.nx is None else args.nx
    args.ny = DEFAULT_NY if args.ny is None else args.ny
    args.m = DEFAULT_COMPACTNESS if args.m is None else args.m


def run_single_image(image_path: str, args):
    t0 = time.time()
    output, labels = process_image_file(
        image_path,
        nx=args.nx,
        ny=args.ny,
        compactness=args.m,
        n_iter=args.iterations,
        reestimate=args.reestimate,
        workers=args.workers,
    )
    ms = (time.time() - t0) * 1000.0

    H, W = labels.shape
    logging.info(f"{Path(image_path).stem}, {H}x{W}, {len(np.unique(labels))} regions, runtime_ms {ms:.2f}")
    return output, labels, ms


def run_batch(args) -> int:
    work_list = find_images(args.images_dir)
    out_root = Path(args.output_dir) / METHOD_NAME
    out_root.mkdir(parents=True, exist_ok=True)

    processed, skipped = 0, 0
    times = []

    with tqdm(total=len(work_list), desc="SLIC") as pbar:
        for img_path in work_list:
            base = img_path.stem
            try:
                output, labels, ms = run_single_image(str(img_path), args)
                save_image(output, str(out_root / f"{base}_slic.png"))
                if args.save_labels:
                    save_label_map(labels, str(Path(args.save_labels) / f"{base}_labels.npy"))
                processed += 1
                times.append(ms)
            except (OSError, UnidentifiedImageError, ValueError) as e:
                logging.error(f"Error on {base}: {e}")
                skipped += 1
            pbar.update(1)

    print(json.dumps({
        "total": len(work_list),
        "processed": processed,
        "skipped": skipped,
        "avg_runtime_ms": float(np.mean(times)) if times else None,
        "median_runtime_ms": float(np.median(times)) if times else None,
        "method": METHOD_NAME
    }))
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    ap = build_parser()
    args = ap.parse_intermixed_args(argv)

    logging.basicConfig(level=getattr(logging, args.log_level), format="%(message)s")

    if args.images_dir or args.output_dir:
        if not (args.images_dir and args.output_dir):
            ap.error("--images-dir and --output-dir must be given together")
        _apply_defaults(args)
        return run_batch(args)

    # No input, or nx without ny
    given = [v for v in (args.input, args.output, args.nx, args.ny, args.m) if v is not None]
    if len(given) in (0, 3):
        print(BANNER)
        print(USAGE)
        return 0

    output_path = args.output or DEFAULT_OUTPUT
    _apply_defaults(args)

    try:
        output, labels, _ = run_single_image(args.input, args)
    except (OSError, UnidentifiedImageError):
        logging.error(f"no image data at {args.input}")
        return -1
    except ValueError as e:
        logging.error(str(e))
        return 1

    try:
        save_image(output, output_path)
        if args.save_labels:
            save_label_map(labels, args.save_labels)
    except (OSError, ValueError) as e:
        logging.error(f"could not save results: {e}")
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
