"""
Advisory Grader Client
======================
Optional second opinion from an OpenAI-compatible chat endpoint.

Advisory Only:
    - the result is returned to the caller and never changes bounty state
    - no API key, an HTTP error, a timeout or an unparseable reply all
      degrade to recommendation "manual_review"
"""
import json
import logging
from dataclasses import asdict, dataclass, field
from typing import List, Optional

import httpx

from bountyboard.llm.prompts import SYSTEM_PROMPT, build_grading_prompt
from bountyboard.models.bounty import Bounty, Submission

logger = logging.getLogger(__name__)

RECOMMENDATIONS = ("approve", "reject", "manual_review")


# ---------------------------------------------------------------------------
# Advisory Result
# ---------------------------------------------------------------------------
@dataclass
class AdvisoryGrade:
    recommendation: str
    grades: List[dict] = field(default_factory=list)
    summary: str = ""
    reason: str = ""

    def to_dict(self) -> dict:
        return asdict(self)


def manual_review(reason: str, grades: Optional[List[dict]] = None) -> AdvisoryGrade:
    return AdvisoryGrade(recommendation="manual_review", grades=grades or [], reason=reason)


def _strip_fences(raw: str) -> str:
    cleaned = raw.strip()
    if cleaned.startswith("```"):
        first_newline = cleaned.find("\n")
        if first_newline != -1:
            cleaned = cleaned[first_newline + 1:]
        if cleaned.rstrip().endswith("```"):
            cleaned = cleaned.rstrip()[:-3].rstrip()
    return cleaned


def parse_advisory_response(raw: str) -> AdvisoryGrade:
    """
    Parse the model's JSON reply.

    Unknown or missing recommendations fall back to manual_review; the
    per-requirement grades are kept as given.
    """
    if not raw or not raw.strip():
        return manual_review("Empty response from grader")
    try:
        data = json.loads(_strip_fences(raw))
    except (json.JSONDecodeError, ValueError) as e:
        return manual_review(f"Grader returned invalid JSON: {e}")
    if not isinstance(data, dict):
        return manual_review("Grader returned a non-object response")

    recommendation = str(data.get("recommendation", "")).strip().lower()
    if recommendation not in RECOMMENDATIONS:
        recommendation = "manual_review"
    grades = data.get("grades")
    return AdvisoryGrade(
        recommendation=recommendation,
        grades=grades if isinstance(grades, list) else [],
        summary=str(data.get("summary", "")),
    )


# ---------------------------------------------------------------------------
# Client
# ---------------------------------------------------------------------------
class AdvisoryGrader:
    """
    Usage:
        grader = AdvisoryGrader(api_key, base_url, model)
        result = await grader.grade(bounty, submission)
        await grader.close()
    """

    def __init__(
        self,
        api_key: Optional[str],
        base_url: str = "https://api.openai.com/v1",
        model: str = "gpt-4o-mini",
        timeout: float = 30.0,
    ) -> None:
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.model = model
        self.timeout = timeout
        self._http: Optional[httpx.AsyncClient] = None

    @property
    def available(self) -> bool:
        return bool(self.api_key)

    async def _get_http(self) -> httpx.AsyncClient:
        """Lazy-initialise the HTTP client."""
        if self._http is None or self._http.is_closed:
            self._http = httpx.AsyncClient(timeout=httpx.Timeout(self.timeout))
        return self._http

    async def close(self) -> None:
        if self._http and not self._http.is_closed:
            await self._http.aclose()
            self._http = None

    async def grade(self, bounty: Bounty, submission: Submission) -> AdvisoryGrade:
        if not bounty.requirements:
            return manual_review("No structured requirements to grade against")
        if not self.available:
            return manual_review(
                "No AI grading API configured",
                grades=[
                    {"requirement": r, "status": "UNKNOWN", "reason": "API not configured"}
                    for r in bounty.requirements
                ],
            )

        http = await self._get_http()
        payload = {
            "model": self.model,
            "messages": [
                {"role": "system", "content": SYSTEM_PROMPT},
                {"role": "user", "content": build_grading_prompt(bounty, submission)},
            ],
            "response_format": {"type": "json_object"},
            "temperature": 0.1,
        }
        try:
            resp = await http.post(
                f"{self.base_url}/chat/completions",
                json=payload,
                headers={"Authorization": f"Bearer {self.api_key}"},
            )
            resp.raise_for_status()
            data = resp.json()
            raw = data["choices"][0]["message"]["content"]
        except httpx.TimeoutException:
            logger.warning("[AUTOGRADER] Timeout grading bounty %s", bounty.id)
            return manual_review("Grading error: timeout")
        except httpx.HTTPStatusError as e:
            logger.warning("[AUTOGRADER] HTTP %d grading bounty %s", e.response.status_code, bounty.id)
            return manual_review(f"Grading error: HTTP {e.response.status_code}")
        except (httpx.HTTPError, KeyError, IndexError, TypeError, ValueError) as e:
            logger.warning("[AUTOGRADER] Error grading bounty %s: %s", bounty.id, e)
            return manual_review(f"Grading error: {e}")

        result = parse_advisory_response(raw)
        logger.info("[AUTOGRADER] Bounty %s: %s - %s", bounty.id, result.recommendation, result.summary)
        return result
