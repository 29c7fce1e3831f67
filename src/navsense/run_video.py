# src/navsense/run_video.py
import argparse
import json
import logging
import os

import cv2
from tqdm import tqdm

from .config import load_config

FRAME_SKIP = 5


def run(video_path, out_json, config, frame_skip=FRAME_SKIP, max_frames=None):
    from .pipeline import build_pipeline

    cap = cv2.VideoCapture(video_path)
    if not cap.isOpened():
        raise FileNotFoundError(video_path)

    fps = cap.get(cv2.CAP_PROP_FPS) or 30.0
    total = int(cap.get(cv2.CAP_PROP_FRAME_COUNT)) or None

    pipeline = build_pipeline(config)
    results_json = []
    frame_idx = 0
    hazard_frames = 0

    pbar = tqdm(total=total, desc=f"navsense (skip={frame_skip})", unit="frame")
    try:
        while True:
            ok, frame_bgr = cap.read()
            if not ok or (max_frames is not None and frame_idx >= max_frames):
                break
            if frame_idx % frame_skip == 0:
                res = pipeline.process_frame(frame_bgr, frame_id=frame_idx)
                if res.hazard is not None:
                    hazard_frames += 1
                entry = res.as_dict()
                entry["time_sec"] = round(frame_idx / fps if fps > 0 else 0.0, 3)
                results_json.append(entry)
            frame_idx += 1
            pbar.update(1)
    finally:
        pbar.close()
        cap.release()
        pipeline.close()

    os.makedirs(os.path.dirname(out_json) or ".", exist_ok=True)
    with open(out_json, "w") as f:
        json.dump({
            "video_path": os.path.abspath(video_path),
            "fps_used": fps,
            "frame_skip": frame_skip,
            "thresholds": {
                "conf": config.conf_thresh,
                "nms": config.nms_thresh,
                "hazard_cutoff_m": config.hazard_cutoff_m,
            },
            "frames": results_json,
        }, f, indent=2)

    print(f"\nSaved JSON: {out_json}  ({len(results_json)} frames analysed, {hazard_frames} with hazards)")
    return results_json


def main(argv=None):
    ap = argparse.ArgumentParser(description="Depth + detection hazard alerts over a video file")
    ap.add_argument("--video", required=True, help="input video path")
    ap.add_argument("--json", default="out/navsense_frames.json", help="output JSON path")
    ap.add_argument("--config", default=None, help="YAML config (defaults if omitted)")
    ap.add_argument("--skip", type=int, default=FRAME_SKIP, help="process every Nth frame")
    ap.add_argument("--max_frames", type=int, default=None, help="stop after this many frames")
    ap.add_argument("--weights", default=None, help="YOLO weights (.pt), overrides config")
    ap.add_argument("--num_classes", type=int, default=None, help="class count of --weights (80 for COCO)")
    ap.add_argument("--midas_type", default=None, help="MiDaS_small | DPT_Hybrid | DPT_Large")
    ap.add_argument("--cutoff", type=float, default=None, help="hazard cutoff in metres")
    ap.add_argument("--device", default=None, help="cpu | cuda")
    ap.add_argument("--verbose", action="store_true", help="debug logging")
    args = ap.parse_args(argv)

    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.INFO,
                        format="%(asctime)s %(levelname)s %(name)s: %(message)s")

    if args.skip <= 0:
        raise SystemExit("--skip must be >= 1")

    cfg = load_config(args.config)
    if args.weights:
        cfg.yolo_weights = args.weights
    if args.num_classes is not None:
        cfg.num_classes = args.num_classes
    if args.midas_type:
        cfg.midas_type = args.midas_type
    if args.cutoff is not None:
        cfg.hazard_cutoff_m = args.cutoff
    if args.device:
        cfg.device = args.device
    cfg.validate()

    run(args.video, args.json, cfg, frame_skip=args.skip, max_frames=args.max_frames)


if __name__ == "__main__":
    main()
