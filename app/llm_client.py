"""
LLM Client - OpenAI integration for decision-conflict explanations.

Optional enrichment only: the detectors produce a deterministic explanation,
and the conflict service may ask the model to rewrite it for humans. Callers
keep the deterministic text whenever this client raises.
"""

import logging
from typing import Optional
from openai import OpenAI

logger = logging.getLogger(__name__)


class LLMClient:
    """OpenAI client for rewriting conflict explanations."""

    def __init__(self, api_key: Optional[str] = None, model: str = "gpt-4o"):
        """
        Initialize OpenAI client.

        Args:
            api_key: OpenAI API key (if None, will use OPENAI_API_KEY env var)
            model: Model to use for explanations (default: gpt-4o)
        """
        self.client = OpenAI(api_key=api_key)
        self.model = model
        logger.info(f"Initialized OpenAI client with model: {model}")

    def explain_decision_conflict(
        self,
        title_a: str,
        description_a: str,
        title_b: str,
        description_b: str,
        conflict_type: str,
        explanation: str,
    ) -> str:
        """
        Rewrite a detected decision conflict as a short, actionable explanation.

        Args:
            title_a, description_a: First decision
            title_b, description_b: Second decision
            conflict_type: Detected conflict type (e.g. RESOURCE_COMPETITION)
            explanation: Deterministic explanation from the detector

        Returns:
            Explanation text (2-3 sentences)

        Raises:
            Exception: If OpenAI API call fails or returns no text
        """
        system_prompt = """You are a decision governance analyst.

Two organizational decisions were flagged as conflicting by a rule-based detector.
Explain the conflict to a business reader.

── RULES ───────────────────────────────────────────────────────────────────

- 2-3 sentences, plain language, no markdown
- Say what concretely collides (money, people, timeline, direction, technology)
- End with one suggested next step (prioritize, merge, re-scope, or confirm intent)
- Do NOT invent facts that are not in the decision texts
- Do NOT change the conflict type"""

        user_message = f"""Conflict type: {conflict_type}
Detector explanation: {explanation}

Decision A: {title_a}
{description_a}

Decision B: {title_b}
{description_b}"""

        try:
            logger.info(f"Calling OpenAI API with model: {self.model}")
            response = self.client.chat.completions.create(
                model=self.model,
                messages=[
                    {"role": "system", "content": system_prompt},
                    {"role": "user", "content": user_message}
                ],
                temperature=0.0,
            )

            text = (response.choices[0].message.content or "").strip()
            if not text:
                raise ValueError("empty explanation from model")
            logger.info(f"Received explanation from OpenAI ({len(text)} chars)")
            return text

        except Exception as e:
            logger.error(f"OpenAI API error: {e}")
            raise
