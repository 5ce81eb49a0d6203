import base64
import traceback

import runpod

from . import config
from .pipeline import CompositionOptions, CropMode, StrokeSpec
from .router import ExecutionRouter
from .segmentation import Segmenter


def options_from_input(job_input: dict) -> CompositionOptions:
    return CompositionOptions(
        background_color=job_input.get("backgroundColor") or None,
        crop=CropMode.parse(job_input.get("crop")),
        stroke=StrokeSpec(
            int(job_input.get("strokeWidth") or 0),
            job_input.get("strokeColor") or config.DEFAULT_STROKE_COLOR,
        ),
    )


def build_handler(segmenter, router):
    """Serverless job handler bound to one segmenter and router."""

    async def handler(job):
        job_input = job["input"]
        if "image" not in job_input:
            return {"error": "No 'image' provided"}
        try:
            image_data = base64.b64decode(job_input["image"])
            options = options_from_input(job_input)
            matte = await segmenter.segment(image_data)
            result_bytes = await router.build_final(options.request(matte))

            return {
                "image": base64.b64encode(result_bytes).decode("utf-8")
            }

        except Exception as e:
            return {"error": str(e), "traceback": traceback.format_exc()}

    return handler


if __name__ == "__main__":
    runpod.serverless.start({"handler": build_handler(Segmenter(), ExecutionRouter())})
