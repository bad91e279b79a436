# docrag/infrastructure/embedding_engine.py
# Local embedding backend. Models are loaded lazily and kept per model id.

import threading
from typing import Dict

import numpy as np
from sentence_transformers import SentenceTransformer

from docrag.domain.errors import EmbeddingServiceError
from docrag.domain.interfaces import EmbeddingPort


DEFAULT_MODEL_NAME = "all-MiniLM-L6-v2"


class SentenceTransformerEngine(EmbeddingPort):

    def __init__(self) -> None:
        self._models: Dict[str, SentenceTransformer] = {}
        self._load_lock = threading.Lock()

    def embed(self, model_id: str, text: str) -> np.ndarray:
        model = self._get_model(model_id)
        try:
            vector = model.encode(
                text,
                convert_to_numpy=True,
                normalize_embeddings=True,
            )
        except Exception as error:
            raise EmbeddingServiceError(
                f"Local model '{model_id}' failed to encode text: {error}"
            ) from error

        vector = np.asarray(vector, dtype=np.float64).ravel()
        if vector.size == 0 or not np.all(np.isfinite(vector)):
            raise EmbeddingServiceError(f"Local model '{model_id}' returned a malformed vector.")
        return vector

    def _get_model(self, model_id: str) -> SentenceTransformer:
        # Encoding runs from a worker pool; load each model only once
        with self._load_lock:
            if model_id not in self._models:
                print(f"[EmbeddingEngine] Loading model: {model_id} ...")
                try:
                    self._models[model_id] = SentenceTransformer(model_id)
                except Exception as error:
                    raise EmbeddingServiceError(
                        f"Could not load sentence-transformers model '{model_id}': {error}"
                    ) from error
                print("[EmbeddingEngine] Model ready.")
            return self._models[model_id]
