"""Manual smoke test against a running gateway: describe an image, then regenerate it.

Usage: python scripts/demo.py path/to/photo.jpg ["optional prompt"]
"""
import asyncio
import base64
import logging
import mimetypes
import os
import sys
import httpx

BASE_URL = os.environ.get("GATEWAY_URL", "http://localhost:8000")
OUTPUT_DIR = "demo_results"
TIMEOUT = 120.0

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(message)s",
    handlers=[logging.StreamHandler(sys.stdout)]
)
logger = logging.getLogger("demo")


def load_image_part(path: str) -> dict:
    mime_type = mimetypes.guess_type(path)[0] or "image/png"
    with open(path, "rb") as f:
        data = base64.b64encode(f.read()).decode()
    return {"inlineData": {"data": data, "mimeType": mime_type}}


async def describe(client: httpx.AsyncClient, image_part: dict) -> str | None:
    logger.info("--- Describe ---")
    response = await client.post("/api/describe", json={"imagePart": image_part})
    if response.status_code != 200:
        logger.error(f"Describe failed ({response.status_code}): {response.json().get('error')}")
        return None
    description = response.json()["description"]
    logger.info(f"Result: {description.strip()}")
    return description


async def generate(client: httpx.AsyncClient, image_part: dict, prompt: str):
    logger.info("--- Generate ---")
    response = await client.post(
        "/api/generate", json={"prompt": prompt, "imageParts": [image_part]}
    )
    if response.status_code != 200:
        logger.error(f"Generate failed ({response.status_code}): {response.json().get('error')}")
        return

    data = response.json()
    extension = mimetypes.guess_extension(data["mimeType"]) or ".png"
    os.makedirs(OUTPUT_DIR, exist_ok=True)
    filename = os.path.join(OUTPUT_DIR, f"generated{extension}")
    with open(filename, "wb") as f:
        f.write(base64.b64decode(data["base64"]))
    logger.info(f"Saved to {filename}")


async def main():
    if len(sys.argv) < 2:
        print(__doc__)
        sys.exit(1)

    image_part = load_image_part(sys.argv[1])
    async with httpx.AsyncClient(base_url=BASE_URL, timeout=TIMEOUT) as client:
        prompt = sys.argv[2] if len(sys.argv) > 2 else await describe(client, image_part)
        if prompt:
            await generate(client, image_part, prompt)


if __name__ == "__main__":
    asyncio.run(main())
