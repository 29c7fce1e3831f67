import argparse

import torch

ap = argparse.ArgumentParser(description="Export MiDaS to ONNX at the square depth resolution")
ap.add_argument("--model_type", default="MiDaS_small")
ap.add_argument("--size", type=int, default=320)
args = ap.parse_args()

midas = torch.hub.load("intel-isl/MiDaS", args.model_type)
midas.eval()

# Square input, matches PipelineConfig.depth_size
dummy = torch.rand(1, 3, args.size, args.size)
out_path = f"midas_{args.model_type.lower()}_{args.size}x{args.size}.onnx"

torch.onnx.export(
    midas,
    dummy,
    out_path,
    input_names=["camera_input"],
    output_names=["relative_depth"],
    opset_version=12,
    do_constant_folding=True,
    dynamic_axes=None
)
print(f"Exported: {out_path}")
