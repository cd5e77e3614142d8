"""
Embedding Client

This module implements the embedding client used by ingestion and retrieval.
It talks to the OpenAI embeddings API (or any compatible provider) and is
responsible for:

- Batching of text inputs
- Network and transport error isolation
- Strict response validation
- Order-preserving, one-to-one output (vector i belongs to text i)

The class performs no caching: every call re-embeds. It is stateless and
safe to share across requests.
"""

from __future__ import annotations

from typing import List, Sequence, Optional
import logging
import httpx

from ..config import settings
from ..core.errors import EmbeddingError

logger = logging.getLogger("docchat.embedder")


class Embedder:
    """
    Asynchronous embedding generator for batches of text.
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: Optional[str] = None,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        batch_size: Optional[int] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        """
        Initialize an Embedder.

        Parameters
        ----------
        api_key : Optional[str]
            Optional override for the API key. Defaults to settings.openai_api_key.

        model : Optional[str]
            Optional override for the embedding model. Defaults to settings.embedding_model.

        base_url : Optional[str]
            API root; `/embeddings` is appended. Defaults to settings.openai_base_url.

        timeout : Optional[float]
            HTTP timeout for each request.

        batch_size : Optional[int]
            Maximum number of inputs per request.

        transport : Optional[httpx.AsyncBaseTransport]
            Custom transport, used by tests to stub the remote service.
        """
        self.api_key = api_key or settings.openai_api_key.get_secret_value()
        self.model = model or settings.embedding_model
        self.url = (base_url or settings.openai_base_url).rstrip("/") + "/embeddings"
        self.timeout = timeout or settings.http_timeout
        self.batch_size = batch_size or settings.embedding_batch_size
        self._transport = transport

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def embed(self, texts: Sequence[str]) -> List[List[float]]:
        """
        Generate embeddings for a sequence of input texts.

        Returns
        -------
        List[List[float]]
            One vector per input text, in input order.

        Raises
        ------
        EmbeddingError
            If any batch fails or the response is malformed. No partial
            results are returned.
        """
        if not texts:
            return []

        all_embeddings: List[List[float]] = []
        headers = {"Authorization": f"Bearer {self.api_key}"}

        async with httpx.AsyncClient(
            timeout=self.timeout, transport=self._transport
        ) as client:
            for start in range(0, len(texts), self.batch_size):
                batch = list(texts[start : start + self.batch_size])
                payload = {
                    "model": self.model,
                    "input": batch,
                }

                try:
                    response = await client.post(
                        self.url,
                        json=payload,
                        headers=headers,
                    )
                    response.raise_for_status()
                    data = response.json()
                except (httpx.HTTPError, ValueError) as exc:
                    logger.error(
                        "Embedding request failed (%s): batch size=%d, error=%s",
                        type(exc).__name__,
                        len(batch),
                        str(exc),
                    )
                    raise EmbeddingError(
                        f"Embedding generation failed: {type(exc).__name__}"
                    ) from exc

                embeddings = self._extract_embeddings(data)
                if len(embeddings) != len(batch):
                    raise EmbeddingError(
                        f"Embedding count mismatch: sent {len(batch)}, got {len(embeddings)}"
                    )
                all_embeddings.extend(embeddings)

        return all_embeddings

    async def embed_one(self, text: str) -> List[float]:
        """Embed a single text through the batch contract."""
        [vector] = await self.embed([text])
        return vector

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _extract_embeddings(data: dict) -> List[List[float]]:
        """
        Parse and validate embedding output format.

        OpenAI returns:
            { "data": [ {"index": 0, "embedding": [...]}, ... ] }

        Records are re-ordered by `index` when present.

        Raises
        ------
        EmbeddingError
            If the API returns unexpected structure.
        """
        if not isinstance(data, dict) or "data" not in data:
            raise EmbeddingError("Embedding response missing 'data' field.")

        records = data["data"]
        if not isinstance(records, list):
            raise EmbeddingError("'data' field must be a list.")

        if all(isinstance(r, dict) and isinstance(r.get("index"), int) for r in records):
            records = sorted(records, key=lambda r: r["index"])

        embeddings: List[List[float]] = []

        for index, record in enumerate(records):
            if not isinstance(record, dict) or "embedding" not in record:
                raise EmbeddingError(
                    f"Malformed embedding record at index {index}: {record!r}"
                )

            emb = record["embedding"]
            if not isinstance(emb, list) or not all(
                isinstance(x, (float, int)) for x in emb
            ):
                raise EmbeddingError(
                    f"Invalid embedding vector at index {index}: must be float list."
                )

            embeddings.append([float(x) for x in emb])

        return embeddings
