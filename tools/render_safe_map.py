# tools/render_safe_map.py
import argparse
import os

import cv2
import numpy as np

from navsense.config import load_config
from navsense.safe_map import build_safe_map, visualize_safe_map

ap = argparse.ArgumentParser(description="Render the safe-distance reference map for a mount config")
ap.add_argument("--config", default=None, help="YAML config (defaults if omitted)")
ap.add_argument("--out", default="out/safe_map.png")
args = ap.parse_args()

cfg = load_config(args.config)
safe = build_safe_map(cfg.depth_size, cfg.mount)
finite = safe[np.isfinite(safe)]

os.makedirs(os.path.dirname(args.out) or ".", exist_ok=True)
cv2.imwrite(args.out, visualize_safe_map(safe))
print(f"Saved {args.out}  ({cfg.depth_size}px, {finite.size} finite cells, "
      f"{finite.min() if finite.size else float('nan'):.2f}..{finite.max() if finite.size else float('nan'):.2f} m)")
