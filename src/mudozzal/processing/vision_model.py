"""
Vision model access.

VisionModel is the one-method interface the classifier depends on.
GeminiVisionModel implements it with the google-genai SDK.
"""

import os
import logging
from abc import ABC, abstractmethod
from typing import Optional

from google import genai
from google.genai import errors as genai_errors
from google.genai import types

from mudozzal.errors import ClassificationError, QuotaExhaustedError

logger = logging.getLogger(__name__)

MIME_TYPES = {
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".png": "image/png",
    ".gif": "image/gif",
    ".webp": "image/webp",
}
DEFAULT_MIME_TYPE = "image/jpeg"


def mime_type_for(filename: str) -> str:
    return MIME_TYPES.get(os.path.splitext(filename)[1].lower(), DEFAULT_MIME_TYPE)


class VisionModel(ABC):
    """Multimodal model that answers a text prompt about an image."""

    @abstractmethod
    def classify(self, image_bytes: bytes, mime_type: str, prompt: str) -> str:
        """
        Return the model's raw text answer.

        Raises:
            QuotaExhaustedError: the service refuses further requests for now.
            ClassificationError: any other failure for this image.
        """
        pass


class GeminiVisionModel(VisionModel):
    """Gemini through google-genai; the image is sent inline (base64) with the prompt."""

    def __init__(self, api_key: str, model: str = "gemini-2.5-flash",
                 temperature: float = 0.3, max_output_tokens: int = 1024,
                 client: Optional[genai.Client] = None):
        self.model = model
        self.client = client or genai.Client(api_key=api_key)
        self.generation_config = types.GenerateContentConfig(
            temperature=temperature,
            max_output_tokens=max_output_tokens,
        )

    def classify(self, image_bytes: bytes, mime_type: str, prompt: str) -> str:
        try:
            response = self.client.models.generate_content(
                model=self.model,
                contents=[
                    types.Part.from_bytes(data=image_bytes, mime_type=mime_type),
                    prompt,
                ],
                config=self.generation_config,
            )
        except genai_errors.APIError as e:
            if e.code == 429 or e.status == "RESOURCE_EXHAUSTED":
                raise QuotaExhaustedError(str(e)) from e
            raise ClassificationError(f"Gemini API error {e.code}: {e.message}") from e

        text = response.text
        if not text:
            raise ClassificationError("Gemini returned an empty response")
        return text.strip()
