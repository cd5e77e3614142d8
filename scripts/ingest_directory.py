"""
Bulk-upload text documents from a directory into a namespace.

Usage:
    python scripts/ingest_directory.py <directory> <namespace>

Reads DOCCHAT_URL (default http://localhost:8000) and DOCCHAT_TOKEN (a
bearer token with the files:write scope) from the environment or `.env`.
"""

import asyncio
import mimetypes
import os
import sys
from pathlib import Path

import httpx
from dotenv import load_dotenv
load_dotenv()

SUFFIX_TYPES = {
    ".txt": "text/plain",
    ".md": "text/markdown",
    ".markdown": "text/markdown",
    ".json": "application/json",
}


def _iter_documents(root: Path):
    for path in sorted(root.rglob("*")):
        if path.is_file() and path.suffix.lower() in SUFFIX_TYPES:
            yield path


async def main(directory: str, namespace: str) -> int:
    base_url = os.environ.get("DOCCHAT_URL", "http://localhost:8000").rstrip("/")
    token = os.environ.get("DOCCHAT_TOKEN")
    if not token:
        print("DOCCHAT_TOKEN is not set.")
        return 1

    root = Path(directory)
    paths = list(_iter_documents(root))
    if not paths:
        print(f"No .txt/.md/.json files under {root}.")
        return 0

    print(f"Uploading {len(paths)} files into namespace '{namespace}'...")
    headers = {"Authorization": f"Bearer {token}"}
    failures = 0

    async with httpx.AsyncClient(base_url=base_url, headers=headers, timeout=120) as client:
        for i, path in enumerate(paths):
            mime = SUFFIX_TYPES.get(path.suffix.lower()) or mimetypes.guess_type(path.name)[0]
            print(f"({i+1}/{len(paths)}) {path.relative_to(root)}")
            resp = await client.post(
                "/files",
                data={"namespace": namespace},
                files={"file": (path.name, path.read_bytes(), mime)},
            )
            if resp.status_code != 201:
                failures += 1
                print(f"  failed ({resp.status_code}): {resp.text}")
                continue
            print(f"  {resp.json()['chunk_count']} chunks")

    print(f"Done. {len(paths) - failures} uploaded, {failures} failed.")
    return 1 if failures else 0


if __name__ == "__main__":
    if len(sys.argv) != 3:
        print(__doc__)
        sys.exit(2)
    sys.exit(asyncio.run(main(sys.argv[1], sys.argv[2])))
