"""Pre-download the segmentation model into U2NET_HOME (e.g. at image build time)."""
import os
import sys

import requests

from . import config

RELEASES = "https://github.com/danielgatis/rembg/releases/download/v0.0.0"

MODEL_URLS = {
    "isnet-general-use": f"{RELEASES}/isnet-general-use.onnx",
    "u2net": f"{RELEASES}/u2net.onnx",
    "u2net_human_seg": f"{RELEASES}/u2net_human_seg.onnx",
    "birefnet-general": f"{RELEASES}/BiRefNet-general-epoch_244.onnx",
}

# smallest plausible size per model, catches truncated downloads
MIN_SIZE_MB = {
    "isnet-general-use": 150,
    "u2net": 150,
    "u2net_human_seg": 150,
    "birefnet-general": 900,
}


def model_path(model_name: str, home: str = config.U2NET_HOME) -> str:
    return os.path.join(home, f"{model_name}.onnx")


def download_model(model_name: str = config.MODEL_NAME, home: str = config.U2NET_HOME) -> str:
    if model_name not in MODEL_URLS:
        raise ValueError(f"Unknown model {model_name!r}; choose from {', '.join(MODEL_URLS)}")
    path = model_path(model_name, home)
    os.makedirs(home, exist_ok=True)

    if os.path.exists(path):
        print("--- FILE ALREADY EXISTS ---")
    else:
        print(f"--- DOWNLOADING {model_name} ---")
        print(f"Target: {path}")
        response = requests.get(MODEL_URLS[model_name], stream=True, timeout=60)
        response.raise_for_status()
        with open(path + ".part", "wb") as f:
            for chunk in response.iter_content(chunk_size=8192):
                f.write(chunk)
        os.replace(path + ".part", path)
        print("--- DOWNLOAD COMPLETE ---")

    size_mb = os.path.getsize(path) / (1024 * 1024)
    print(f"File size: {size_mb:.2f} MB")
    if size_mb < MIN_SIZE_MB[model_name]:
        raise ValueError(f"File too small ({size_mb:.2f} MB). Download failed.")
    return path


def main(argv=None):
    argv = sys.argv[1:] if argv is None else argv
    model_name = argv[0] if argv else config.MODEL_NAME
    try:
        download_model(model_name)
    except (OSError, ValueError, requests.RequestException) as e:
        print(f"FAILED: {e}")
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
