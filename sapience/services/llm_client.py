"""
Adapter for the external text service (OpenAI chat completions).

Every public call degrades instead of raising: a failed or malformed
summarization returns the error sentinel, a failed relevance call returns a
not-relevant verdict with score 0, and a failed profile evolution returns None
so the caller keeps the current profile.
"""

from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence
from bs4 import BeautifulSoup
from openai import AsyncOpenAI
from sapience.core.config import settings
from sapience.models.article_summary import SUMMARY_ERROR_SENTINEL
from sapience.services.rate_limiter import (
    TokenBucketRateLimiter,
    estimate_request_tokens,
)
import json
import re
import logging

logger = logging.getLogger(__name__)

TRUNCATION_MARKER = "... [content truncated]"

# Shared across LLMClient instances so every stage draws from one TPM budget
_shared_rate_limiter = None


def _get_shared_rate_limiter() -> TokenBucketRateLimiter:
    global _shared_rate_limiter
    if _shared_rate_limiter is None:
        _shared_rate_limiter = TokenBucketRateLimiter(settings.LLM_TPM_LIMIT)
    return _shared_rate_limiter


class LLMResponseError(Exception):
    """The service answered, but not with the JSON object we asked for."""


@dataclass
class SummaryResult:
    summary: str
    keywords: List[str] = field(default_factory=list)
    failed: bool = False

    @classmethod
    def error(cls) -> "SummaryResult":
        return cls(summary=SUMMARY_ERROR_SENTINEL, keywords=[], failed=True)


@dataclass
class RelevanceResult:
    is_relevant: bool
    relevance_score: int
    reason: str
    failed: bool = False

    @classmethod
    def error(cls) -> "RelevanceResult":
        return cls(
            is_relevant=False,
            relevance_score=0,
            reason="Error analyzing relevance",
            failed=True,
        )


def extract_main_content(content: str) -> str:
    """Strip markup, scripts and styles, collapsing whitespace."""
    if not content:
        return ""
    if "<" not in content:
        return re.sub(r"\s+", " ", content).strip()

    soup = BeautifulSoup(content, "html.parser")
    for tag in soup(["script", "style", "noscript", "img", "picture", "figure"]):
        tag.decompose()
    text = soup.get_text(separator=" ")
    return re.sub(r"\s+", " ", text).strip()


def truncate_content(content: str, max_chars: Optional[int] = None) -> str:
    """Extract text from markup and cut it to the input budget."""
    max_chars = max_chars or settings.LLM_MAX_INPUT_CHARS
    text = extract_main_content(content)
    if len(text) <= max_chars:
        return text
    # The opening usually carries the most important content
    return text[:max_chars] + TRUNCATION_MARKER


def _coerce_score(value) -> int:
    try:
        score = int(round(float(value)))
    except (TypeError, ValueError):
        return 0
    return max(0, min(100, score))


def _coerce_bool(value) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in ("true", "yes", "1")
    return bool(value)


class LLMClient:
    def __init__(
        self,
        client: Optional[AsyncOpenAI] = None,
        model: Optional[str] = None,
        rate_limiter: Optional[TokenBucketRateLimiter] = None,
    ):
        self.client = client or AsyncOpenAI(api_key=settings.OPENAI_API_KEY)
        self.model = model or settings.LLM_MODEL
        self.rate_limiter = rate_limiter or _get_shared_rate_limiter()

    async def _complete_json(self, prompt: str, purpose: str) -> Dict:
        """Send one prompt and parse the JSON object in the reply.

        Raises:
            LLMResponseError: if the reply is empty or not a JSON object.
            openai.OpenAIError: on API failures.
        """
        estimated_tokens = estimate_request_tokens(
            prompt, self.model, response_buffer=400
        )

        logger.debug("=" * 80)
        logger.debug(f"LLM REQUEST - {purpose}")
        logger.debug(f"Model: {self.model}")
        logger.debug(f"Estimated tokens: {estimated_tokens}")
        logger.debug(prompt)
        logger.debug("=" * 80)

        await self.rate_limiter.acquire(estimated_tokens)

        response = await self.client.chat.completions.create(
            model=self.model,
            messages=[{"role": "user", "content": prompt}],
            response_format={"type": "json_object"},
        )

        usage = getattr(response, "usage", None)
        if usage and isinstance(getattr(usage, "total_tokens", None), int):
            self.rate_limiter.report_actual_usage(usage.total_tokens, estimated_tokens)

        content = response.choices[0].message.content if response.choices else None
        if not content:
            raise LLMResponseError(f"{purpose}: empty response")

        logger.debug(f"LLM RESPONSE - {purpose}: {content}")

        try:
            result = json.loads(content)
        except json.JSONDecodeError as e:
            raise LLMResponseError(f"{purpose}: invalid JSON ({e})") from e
        if not isinstance(result, dict):
            raise LLMResponseError(f"{purpose}: expected a JSON object")
        return result

    async def summarize(self, title: str, content: str) -> SummaryResult:
        """Summarize an article in 2-3 sentences and extract 3-5 keywords."""
        prompt = f"""Summarize the following article in 2-3 sentences. Also extract 3-5 main keywords or topics.

Title: {title}

Content: {truncate_content(content)}

Format your response as a JSON object with the following structure:
{{
  "summary": "Your concise summary here",
  "keywords": ["keyword1", "keyword2", "keyword3", ...]
}}

Ensure your response is a valid JSON object as described above."""

        try:
            result = await self._complete_json(prompt, "Article Summary")
        except Exception as e:
            logger.error(f"Error generating summary for '{title}': {str(e)}")
            return SummaryResult.error()

        summary = result.get("summary")
        if not isinstance(summary, str) or not summary.strip():
            logger.error(f"Summary missing from LLM response for '{title}'")
            return SummaryResult.error()

        keywords = result.get("keywords") or []
        if not isinstance(keywords, list):
            keywords = []
        keywords = [str(k).strip() for k in keywords if str(k).strip()]

        return SummaryResult(summary=summary.strip(), keywords=keywords)

    async def score_relevance(
        self,
        interests: str,
        title: str,
        summary: str,
        keywords: Sequence[str],
    ) -> RelevanceResult:
        """Judge how well an article matches the user's interests (1-100)."""
        prompt = f"""Analyze if the following article would be interesting to the user based on their interests.

User Interests: "{interests}"

Article:
Title: {title}
Summary: {summary}
Keywords: {", ".join(keywords or [])}

Determine:
1. Whether this article is relevant to the user's interests
2. On a scale of 1-100, how relevant it is (relevance score)
3. Explain in 1-2 sentences why it would be interesting to the user, referencing specific interests

Format your response as a JSON object with the following structure:
{{
  "isRelevant": true/false,
  "relevanceScore": number between 1-100,
  "reason": "Your explanation of why it's relevant to this user"
}}

Ensure your response is a valid JSON object as described above."""

        try:
            result = await self._complete_json(prompt, "Relevance Analysis")
        except Exception as e:
            logger.error(f"Error analyzing relevance for '{title}': {str(e)}")
            return RelevanceResult.error()

        return self._parse_relevance(result)

    async def rescore_with_feedback(
        self,
        interests: str,
        title: str,
        summary: Optional[str],
        keywords: Sequence[str],
        preference: str,
        explanation: Optional[str] = None,
        previous_score: Optional[int] = None,
        previous_reason: Optional[str] = None,
    ) -> RelevanceResult:
        """Rescore an article the user voted on, accounting for the vote."""
        if previous_score is not None:
            previous = (
                f"Previously this article was scored {previous_score}/100 "
                f'with the reason: "{previous_reason or ""}"'
            )
        else:
            previous = "This article was not previously recommended to the user."

        prompt = f"""The user has given explicit feedback on an article. Rescore how relevant the article is to the user, taking that feedback into account.

User Interests: "{interests}"

Article:
Title: {title}
Summary: {summary or "No summary available"}
Keywords: {", ".join(keywords or [])}

User feedback: the user {"liked" if preference == "like" else "disliked"} this article.
User explanation: {explanation or "No explanation provided"}

{previous}

Determine:
1. Whether this article is relevant to the user now that their feedback is known
2. On a scale of 1-100, the new relevance score. A dislike should lower the score and a like should raise it
3. Explain in 1-2 sentences how the feedback changed the assessment

Format your response as a JSON object with the following structure:
{{
  "isRelevant": true/false,
  "relevanceScore": number between 1-100,
  "reason": "Your explanation, referencing the user's feedback"
}}

Ensure your response is a valid JSON object as described above."""

        try:
            result = await self._complete_json(prompt, "Feedback Rescore")
        except Exception as e:
            logger.error(f"Error rescoring '{title}' with feedback: {str(e)}")
            return RelevanceResult.error()

        return self._parse_relevance(result)

    async def evolve_interests(
        self, current_interests: str, preferences: List[Dict]
    ) -> Optional[str]:
        """
        Rewrite the interest profile from the user's whole voting history.

        Args:
            current_interests: The current profile text
            preferences: Dicts with ``article_title``, ``preference`` and
                ``explanation`` keys

        Returns:
            The new profile text, or None if no usable answer came back
        """
        lines = []
        for pref in preferences:
            verdict = "Liked" if pref.get("preference") == "like" else "Disliked"
            line = f'- {verdict}: "{pref.get("article_title")}"'
            if pref.get("explanation"):
                line += f" (reason: {pref['explanation']})"
            lines.append(line)

        prompt = f"""You maintain a short description of a user's reading interests. Update it using the user's feedback on articles.

Current interests description:
"{current_interests}"

User feedback on articles:
{chr(10).join(lines)}

Write an updated interests description that:
1. Keeps the prior interests that are still relevant
2. Adds topics the user's likes reveal and de-emphasizes or excludes topics their dislikes reveal
3. Is roughly the same length as the current description ({len(current_interests.split())} words)

Format your response as a JSON object with the following structure:
{{
  "interests": "The updated interests description"
}}

Ensure your response is a valid JSON object as described above."""

        try:
            result = await self._complete_json(prompt, "Profile Update")
        except Exception as e:
            logger.error(f"Error updating interests from preferences: {str(e)}")
            return None

        interests = result.get("interests")
        if not isinstance(interests, str) or not interests.strip():
            logger.warning("Profile update response carried no interests text")
            return None
        return interests.strip()

    def _parse_relevance(self, result: Dict) -> RelevanceResult:
        # Missing fields fall back to the safe default: not relevant
        return RelevanceResult(
            is_relevant=_coerce_bool(result.get("isRelevant", False)),
            relevance_score=_coerce_score(result.get("relevanceScore", 0)),
            reason=str(result.get("reason") or "Unable to determine relevance"),
        )
