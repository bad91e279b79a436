# docrag/domain/interfaces.py

from abc import ABC, abstractmethod
import numpy as np


class EmbeddingPort(ABC):
    """
    Port for any embedding backend.
    The model is chosen per call so one backend can serve several vector spaces.
    """

    @abstractmethod
    def embed(self, model_id: str, text: str) -> np.ndarray:
        """Return the vector for `text`; raise EmbeddingServiceError on failure."""
        ...


class CompletionPort(ABC):

    @abstractmethod
    def complete(self, model_id: str, system_instruction: str, user_prompt: str) -> str:
        """Return generated text; raise CompletionServiceError on failure."""
        ...
