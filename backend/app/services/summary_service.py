"""
StudyGuard Session Summary Service
Asks the configured AI provider for a summary of what a student
highlighted during a session and stores it on the session.

Built once in the application lifespan and kept on ``app.state``;
failures are logged and never reach the end-session response.
"""

import logging
from typing import List, Optional

import httpx
from fastapi import Request

from app.core.database import SessionLocal
from app.models.content import Highlight
from app.models.session import Interaction, StudySession

logger = logging.getLogger("studyguard.summary")

NO_HIGHLIGHTS = "No highlights recorded"
MAX_INPUT_CHARS = 4000
SYSTEM_PROMPT = "Summarize the content."

OPENAI_URL = "https://api.openai.com/v1/chat/completions"
ANTHROPIC_URL = "https://api.anthropic.com/v1/messages"
ANTHROPIC_VERSION = "2023-06-01"


class SummaryService:
    """Thin HTTP client for OpenAI chat-completions / Anthropic messages"""

    def __init__(
        self,
        provider: str,
        api_key: str,
        model: str,
        max_tokens: int = 1500,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.provider = (provider or "openai").lower()
        self.api_key = api_key
        self.model = model
        self.max_tokens = max_tokens
        self.timeout = timeout
        self._transport = transport

        if self.enabled:
            logger.info("AI summaries enabled (%s, model=%s)", self.provider, self.model)
        else:
            logger.info("AI summaries disabled (set OPENAI_API_KEY or ANTHROPIC_API_KEY in .env)")

    @classmethod
    def from_settings(cls, settings) -> "SummaryService":
        return cls(
            provider=settings.AI_PROVIDER,
            api_key=settings.ai_api_key,
            model=settings.ai_model,
            max_tokens=settings.AI_MAX_TOKENS,
            timeout=settings.AI_TIMEOUT_SECONDS,
        )

    @property
    def enabled(self) -> bool:
        return bool(self.api_key)

    def _request(self, text: str):
        if self.provider == "anthropic":
            return ANTHROPIC_URL, {
                "x-api-key": self.api_key,
                "anthropic-version": ANTHROPIC_VERSION,
            }, {
                "model": self.model,
                "max_tokens": self.max_tokens,
                "system": SYSTEM_PROMPT,
                "messages": [{"role": "user", "content": text}],
            }
        return OPENAI_URL, {"Authorization": f"Bearer {self.api_key}"}, {
            "model": self.model,
            "max_tokens": self.max_tokens,
            "messages": [
                {"role": "system", "content": SYSTEM_PROMPT},
                {"role": "user", "content": text},
            ],
        }

    def _extract(self, body: dict) -> Optional[str]:
        if self.provider == "anthropic":
            parts = [c.get("text", "") for c in body.get("content", []) if c.get("type") == "text"]
            return "".join(parts) or None
        choices = body.get("choices") or []
        if not choices:
            return None
        return choices[0].get("message", {}).get("content")

    async def generate_summary(self, text: str) -> Optional[str]:
        """Summary text, or None when the provider call fails"""
        if not self.enabled:
            return None
        url, headers, payload = self._request(text[:MAX_INPUT_CHARS])
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                resp = await client.post(url, headers=headers, json=payload)
            if resp.status_code != 200:
                logger.warning("AI provider error %s: %s", resp.status_code, resp.text[:200])
                return None
            return self._extract(resp.json())
        except (httpx.HTTPError, ValueError) as e:
            logger.error("AI summary request failed: %s", e)
            return None

    async def summarize_session(self, session_id: str) -> Optional[str]:
        """
        Summarise the highlights of an ended session and store the result
        in ``ai_summary``. Returns the stored text, or None when skipped.
        """
        if not self.enabled:
            logger.debug("Skipping summary for %s (AI disabled)", session_id)
            return None

        db = SessionLocal()
        try:
            session = db.query(StudySession).filter(StudySession.id == session_id).first()
            if not session or session.is_active:
                return None

            texts = _highlight_texts(db, session_id)
            summary = NO_HIGHLIGHTS
            if texts:
                summary = await self.generate_summary("\n".join(texts))
                if summary is None:
                    return None

            session.ai_summary = summary
            db.commit()
            logger.info("AI summary stored for session %s", session_id)
            return summary
        except Exception as e:
            logger.error("Post-session summary failed for %s: %s", session_id, e, exc_info=True)
            db.rollback()
            return None
        finally:
            db.close()


def _highlight_texts(db, session_id: str) -> List[str]:
    texts = []
    for (data,) in (
        db.query(Interaction.data)
        .filter(Interaction.session_id == session_id, Interaction.type == "highlight")
        .order_by(Interaction.timestamp.asc(), Interaction.id.asc())
    ):
        text = (data or {}).get("text")
        if text:
            texts.append(text)
    for (text,) in (
        db.query(Highlight.text)
        .filter(Highlight.session_id == session_id)
        .order_by(Highlight.created_at.asc())
    ):
        if text and text not in texts:
            texts.append(text)
    return texts


def get_summary_service(request: Request) -> Optional[SummaryService]:
    """FastAPI dependency returning the service built in the lifespan"""
    return getattr(request.app.state, "summary_service", None)
