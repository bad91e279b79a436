# docrag/infrastructure/ollama_client.py

import math
from typing import Any, List, Optional

import httpx
import numpy as np

from docrag.domain.errors import CompletionServiceError, EmbeddingServiceError
from docrag.domain.interfaces import CompletionPort, EmbeddingPort


DEFAULT_BASE_URL = "http://localhost:11434"
DEFAULT_TIMEOUT_SECONDS = 120.0


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


class OllamaClient(EmbeddingPort, CompletionPort):
    """
    Talks to an Ollama server over its REST API:
    - POST /api/embeddings → {"embedding": [...]}
    - POST /api/chat       → {"message": {"content": "..."}}

    Every request carries a timeout; failures surface as typed errors and
    are never retried here.
    """

    def __init__(
        self,
        base_url: str = DEFAULT_BASE_URL,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        transport: Optional[httpx.BaseTransport] = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._client = httpx.Client(
            base_url=self._base_url,
            timeout=timeout,
            transport=transport,
        )

    @property
    def base_url(self) -> str:
        return self._base_url

    def close(self) -> None:
        self._client.close()

    def __enter__(self) -> "OllamaClient":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    # ─── EmbeddingPort ────────────────────────────────────────────────────────

    def embed(self, model_id: str, text: str) -> np.ndarray:
        try:
            data = self._post("/api/embeddings", {"model": model_id, "prompt": text})
        except (httpx.HTTPError, ValueError) as error:
            raise EmbeddingServiceError(
                f"Embedding request to {self._base_url} failed (model '{model_id}'): {error}"
            ) from error

        embedding = data.get("embedding") if isinstance(data, dict) else None
        if not isinstance(embedding, list) or not embedding:
            raise EmbeddingServiceError(
                f"Embedding response for model '{model_id}' has no 'embedding' vector."
            )

        bad = [v for v in embedding if not _is_number(v) or not math.isfinite(v)]
        if bad:
            raise EmbeddingServiceError(
                f"Embedding response for model '{model_id}' contains "
                f"{len(bad)} non-numeric value(s), e.g. {bad[0]!r}."
            )

        return np.asarray(embedding, dtype=np.float64)

    # ─── CompletionPort ───────────────────────────────────────────────────────

    def complete(self, model_id: str, system_instruction: str, user_prompt: str) -> str:
        messages: List[dict] = [
            {"role": "system", "content": system_instruction},
            {"role": "user", "content": user_prompt},
        ]
        try:
            data = self._post(
                "/api/chat",
                {"model": model_id, "stream": False, "messages": messages},
            )
        except (httpx.HTTPError, ValueError) as error:
            raise CompletionServiceError(
                f"Chat request to {self._base_url} failed (model '{model_id}'): {error}"
            ) from error

        message = data.get("message") if isinstance(data, dict) else None
        content = message.get("content") if isinstance(message, dict) else None
        if not isinstance(content, str):
            raise CompletionServiceError(
                f"Chat response for model '{model_id}' has no text content."
            )
        return content.strip()

    def _post(self, path: str, payload: dict) -> Any:
        response = self._client.post(path, json=payload)
        response.raise_for_status()
        return response.json()
