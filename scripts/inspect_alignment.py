#!/usr/bin/env python3
"""Align two captured frames and print the classification.

Goal: tune overlap window and thresholds on real captures without running
a whole session.
"""

from __future__ import annotations

import argparse
import json
import logging
from pathlib import Path
import sys


# --- CLI helpers ---

def _build_parser() -> argparse.ArgumentParser:
    """Build CLI argument parser for the inspection script."""
    parser = argparse.ArgumentParser(description="Align two frames and report the offset.")
    parser.add_argument("--prev", required=True, help="Earlier frame image")
    parser.add_argument("--curr", required=True, help="Later frame image")
    parser.add_argument("--crop", default=None, help="Crop region as 'x,y,width,height' or preset")
    parser.add_argument("--overlap", type=int, default=125, help="Overlap window in pixels")
    parser.add_argument("--min_offset", type=int, default=1, help="Smallest accepted scroll offset")
    parser.add_argument("--stride", type=int, default=2, help="Horizontal sample stride")
    parser.add_argument("--dup_thresh", type=float, default=0.05, help="Duplicate score threshold")
    parser.add_argument("--max_dissim", type=float, default=0.05, help="Max accepted dissimilarity")
    parser.add_argument("--top", type=int, default=5, help="Print the N best offsets")
    return parser


# --- Entry point ---

def main() -> int:
    """Align the pair and print the result as JSON.

    Returns:
        Exit code 0 on success; exceptions will bubble up as errors.
    """
    args = _build_parser().parse_args()

    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(message)s")

    repo_root = Path(__file__).resolve().parents[1]
    sys.path.insert(0, str(repo_root / "src"))

    import numpy as np  # type: ignore

    from scrollstitch.aligner import OverlapAligner  # noqa: E402
    from scrollstitch.config import resolve_crop  # noqa: E402
    from scrollstitch.cropper import crop  # noqa: E402
    from scrollstitch.io import FramesSource  # noqa: E402

    source = FramesSource([Path(args.prev), Path(args.curr)])
    try:
        prev = source.next_frame()
        curr = source.next_frame()
    finally:
        source.close()

    region = resolve_crop(args.crop)
    prev = crop(prev, region)
    curr = crop(curr, region)

    aligner = OverlapAligner(
        overlap_pixels=args.overlap,
        min_offset=args.min_offset,
        sample_stride=args.stride,
        duplicate_threshold=args.dup_thresh,
        max_dissimilarity=args.max_dissim,
    )
    result = aligner.align(prev, curr)
    scores = aligner.score_offsets(prev, curr, result.search_max)
    order = np.argsort(scores, kind="stable")[: max(1, args.top)]

    payload = {
        "prev": args.prev,
        "curr": args.curr,
        "size": [prev.width, prev.height],
        "result": result.as_dict(),
        "best_offsets": [{"offset": int(d), "score": round(float(scores[d]), 6)} for d in order],
    }
    print(json.dumps(payload, indent=2))
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
