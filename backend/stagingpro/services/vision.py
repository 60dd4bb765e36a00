import logging
from typing import Optional

from openai import OpenAI

from stagingpro.config import Settings, get_settings
from stagingpro.utils.images import resize_for_analysis

logger = logging.getLogger(__name__)

VISION_PROMPT = """
You are a world-class luxury interior designer and architectural visualizer.
Analyze this room photo and write a brief, professional "Studio Vision" of about 60 words.
Include:
1. Spatial characteristics (lighting, ceiling height, layout).
2. A recommended staging style (e.g. Japandi, Modern Minimalist).
3. One key piece of advice to maximise market value.
Keep the tone professional, encouraging and sophisticated. Plain text only.
"""


class VisionUnavailable(Exception):
    pass


class RoomAnalyzer:
    """Describes a room photo with an OpenAI vision model.

    The caller may pass a `client` exposing `chat.completions.create` (tests
    pass a stub); otherwise one is built from `OPENAI_API_KEY`.
    """

    def __init__(self, client: Optional[object] = None, model: str = "gpt-4o-mini", max_side: int = 1024):
        self.client = client
        self.model = model
        self.max_side = max_side

    @classmethod
    def from_settings(cls, settings: Optional[Settings] = None) -> "RoomAnalyzer":
        settings = settings or get_settings()
        client = OpenAI(api_key=settings.openai_api_key) if settings.openai_api_key else None
        return cls(client=client, model=settings.openai_vision_model)

    def analyze(self, image_data_url: str) -> str:
        if self.client is None:
            raise VisionUnavailable("AI Analysis currently unavailable.")
        image = resize_for_analysis(image_data_url, max_side=self.max_side)
        logger.debug("Calling vision model=%s (payload %d chars)", self.model, len(image))
        try:
            resp = self.client.chat.completions.create(
                model=self.model,
                messages=[{
                    "role": "user",
                    "content": [
                        {"type": "text", "text": VISION_PROMPT},
                        {"type": "image_url", "image_url": {"url": image}},
                    ],
                }],
                temperature=0.4,
            )
            content = resp.choices[0].message.content or ""
        except Exception as e:
            logger.exception("Vision analysis failed: %s", e)
            raise VisionUnavailable("AI Analysis currently unavailable.")
        return content.strip()
