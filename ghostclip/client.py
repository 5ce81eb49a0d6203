import argparse
import base64
import os
import sys

import requests

# --- CONFIGURATION ---
API_URL = os.getenv("GHOSTCLIP_API_URL", "http://localhost:8000")
RUNPOD_API_KEY = os.getenv("RUNPOD_API_KEY", "")
# ---------------------


def remove_background(image_path, api_url=API_URL, **options):
    """POST an image to /remove-bg and return the response body."""
    with open(image_path, "rb") as f:
        files = {"file": (os.path.basename(image_path), f)}
        data = {k: v for k, v in options.items() if v is not None}
        response = requests.post(f"{api_url}/remove-bg", files=files, data=data, timeout=120)

    if response.status_code != 200:
        try:
            detail = response.json().get("error", response.text)
        except ValueError:
            detail = response.text
        raise RuntimeError(f"Error {response.status_code}: {detail}")
    return response.content


def run_serverless(image_path, endpoint_id, api_key=RUNPOD_API_KEY, **options):
    """Send a job to a RunPod endpoint with 'runsync' and return the image bytes."""
    with open(image_path, "rb") as image_file:
        job_input = {"image": base64.b64encode(image_file.read()).decode("utf-8")}
    job_input.update({k: v for k, v in options.items() if v is not None})

    headers = {
        "Authorization": f"Bearer {api_key}",
        "Content-Type": "application/json"
    }
    # runsync waits for the job to finish (up to 90s) before returning
    url = f"https://api.runpod.ai/v2/{endpoint_id}/runsync"
    response = requests.post(url, json={"input": job_input}, headers=headers, timeout=120)
    data = response.json()

    if response.status_code != 200:
        raise RuntimeError(f"Error {response.status_code}: {data}")
    if data.get("status") != "COMPLETED":
        raise RuntimeError(f"Job did not complete successfully: {data}")

    output = data.get("output", {})
    if "error" in output:
        raise RuntimeError(f"Worker Error: {output['error']}")
    if "image" not in output:
        raise RuntimeError(f"Unknown output format: {output}")
    return base64.b64decode(output["image"])


def main(argv=None):
    parser = argparse.ArgumentParser(description="Remove an image background with a GhostClip server.")
    parser.add_argument("image", help="input image path")
    parser.add_argument("-o", "--output", default="result.png")
    parser.add_argument("--api-url", default=API_URL)
    parser.add_argument("--runpod-endpoint", help="use a RunPod endpoint id instead of the HTTP API")
    parser.add_argument("--bg", help="background color, e.g. '#ffffff'")
    parser.add_argument("--crop", choices=("full", "tight"), default="full")
    parser.add_argument("--stroke-width", type=int, default=0)
    parser.add_argument("--stroke-color")
    args = parser.parse_args(argv)

    print(f"Processing {args.image}...")
    try:
        if args.runpod_endpoint:
            result = run_serverless(
                args.image, args.runpod_endpoint,
                backgroundColor=args.bg, crop=args.crop,
                strokeWidth=args.stroke_width, strokeColor=args.stroke_color,
            )
        else:
            result = remove_background(
                args.image, args.api_url,
                solid=args.bg, crop=args.crop,
                stroke_width=args.stroke_width, stroke_color=args.stroke_color,
            )
    except (RuntimeError, requests.RequestException) as e:
        print(e, file=sys.stderr)
        return 1

    with open(args.output, "wb") as f:
        f.write(result)
    print(f"Saved result to: {args.output}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
