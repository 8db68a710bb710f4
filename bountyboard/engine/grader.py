"""
Submission Grader
=================
Rule-based, advisory scorer for free-text submissions.

Each requirement string is routed to ONE heuristic, first match wins:
    1. word_count — "500 words", "300+ words", "1,000-word"
                    met if the submission has >= 80% of the requested words
    2. video      — a time unit ("2 minute", "30 sec") or "video"
                    met if a URL on a known video host is present
    3. image      — image / screenshot / diagram / infographic mention
                    met if an image URL, image host or image mention is present
    4. platform   — a named platform (Twitter/X, Farcaster, Reddit, ...)
                    met if the submission names the platform or links its domain
    5. link       — link / url / repo / github / website mention
                    met if any URL is present
    6. keywords   — fallback: >= 50% of the requirement's tokens longer than
                    3 characters appear in the submission

Scoring:
    score  = round(100 × met / total), half rounds up
    passed = score >= 90
    no requirements → score 100, passed

Advisory Only:
    The score never approves anything. It triggers an automatic rejection
    only when score < 20 AND neither content nor proof contains any URL.
    Everything else goes to manual review.
"""
import math
import re
from typing import List, Optional, Sequence

from bountyboard.core.constants import (
    AUTO_REJECT_SCORE,
    GRADE_PASS_SCORE,
    KEYWORD_OVERLAP_RATIO,
    WORD_COUNT_TOLERANCE,
)
from bountyboard.models.bounty import GradeResult, RequirementCheck
from bountyboard.utils.url_utils import contains_url, find_urls, url_host


# ---------------------------------------------------------------------------
# Requirement patterns
# ---------------------------------------------------------------------------
_WORD_COUNT_RE = re.compile(r"(\d[\d,]*)\s*\+?\s*-?\s*words?\b", re.I)
_TIME_UNIT_RE = re.compile(
    r"\b\d+\s*-?\s*(?:sec|secs|second|seconds|min|mins|minute|minutes|hr|hrs|hour|hours)\b"
    r"|\bvideo\b",
    re.I,
)
_IMAGE_RE = re.compile(
    r"\b(?:image|images|screenshot|screenshots|diagram|infographic|graphic|photo|meme|picture)\b",
    re.I,
)
_LINK_RE = re.compile(
    r"\b(?:link|links|url|urls|repo|repository|github|website|deployed|live demo)\b",
    re.I,
)
_TOKEN_RE = re.compile(r"[a-z0-9]+")
_WORD_RE = re.compile(r"\b\w+\b")

VIDEO_HOSTS = frozenset({
    "youtube.com", "youtu.be", "m.youtube.com", "vimeo.com", "loom.com", "twitch.tv",
})
IMAGE_HOSTS = frozenset({"imgur.com", "i.imgur.com", "i.ibb.co", "ibb.co"})
_IMAGE_EXT_RE = re.compile(r"\.(?:png|jpe?g|gif|webp|svg)(?:\?|$)", re.I)
_IMAGE_MENTION_RE = re.compile(r"\b(?:screenshot|image|diagram|infographic)\b", re.I)

# platform → (requirement triggers, submission evidence)
PLATFORMS: dict[str, tuple[tuple[str, ...], tuple[str, ...]]] = {
    "twitter":   (("twitter", "tweet", "tweets", "x.com"), ("twitter", "tweet", "x.com")),
    "farcaster": (("farcaster", "warpcast", "cast"), ("farcaster", "warpcast")),
    "reddit":    (("reddit", "subreddit"), ("reddit",)),
    "linkedin":  (("linkedin",), ("linkedin",)),
    "medium":    (("medium",), ("medium.com", "medium")),
    "mirror":    (("mirror.xyz",), ("mirror.xyz",)),
    "discord":   (("discord",), ("discord",)),
    "telegram":  (("telegram",), ("telegram", "t.me")),
}


def _words(text: str) -> int:
    return len(_WORD_RE.findall(text))


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def _keywords(requirement: str) -> List[str]:
    return [t for t in _TOKEN_RE.findall(requirement.lower()) if len(t) > 3]


def _mentioned_platform(requirement: str) -> Optional[str]:
    tokens = set(_TOKEN_RE.findall(requirement.lower()))
    lowered = requirement.lower()
    for name, (triggers, _evidence) in PLATFORMS.items():
        for trigger in triggers:
            if ("." in trigger and trigger in lowered) or trigger in tokens:
                return name
    return None


# ---------------------------------------------------------------------------
# Single requirement
# ---------------------------------------------------------------------------
def check_requirement(requirement: str, content: str, proof: Optional[str] = None) -> RequirementCheck:
    """
    Evaluate one requirement against a submission.

    Parameters
    ----------
    requirement : str
        Requirement text as written by the bounty creator.
    content : str
        Submission free text.
    proof : str, optional
        Proof URL / text attached to the submission.

    Returns
    -------
    RequirementCheck
        Which heuristic ran and whether it was satisfied.
    """
    text = f"{content or ''} {proof or ''}".strip()
    lowered = text.lower()
    urls = find_urls(text)
    hosts = {url_host(u) for u in urls}

    # 1. Word count
    match = _WORD_COUNT_RE.search(requirement)
    if match:
        wanted = int(match.group(1).replace(",", ""))
        have = _words(content or "")
        needed = wanted * WORD_COUNT_TOLERANCE
        return RequirementCheck(
            requirement=requirement, check="word_count", met=have >= needed,
            detail=f"{have} words (need >= {math.ceil(needed)} of {wanted})",
        )

    # 2. Video (time-unit mention)
    if _TIME_UNIT_RE.search(requirement):
        video = sorted(h for h in hosts if h in VIDEO_HOSTS)
        return RequirementCheck(
            requirement=requirement, check="video", met=bool(video),
            detail=f"video link on {video[0]}" if video else "no link to a recognised video host",
        )

    # 3. Image reference
    if _IMAGE_RE.search(requirement):
        has_image = (
            any(_IMAGE_EXT_RE.search(u) for u in urls)
            or any(h in IMAGE_HOSTS for h in hosts)
            or bool(_IMAGE_MENTION_RE.search(text))
        )
        return RequirementCheck(
            requirement=requirement, check="image", met=has_image,
            detail="image referenced" if has_image else "no image reference found",
        )

    # 4. Platform mention
    platform = _mentioned_platform(requirement)
    if platform:
        evidence = PLATFORMS[platform][1]
        found = any(e in lowered for e in evidence)
        return RequirementCheck(
            requirement=requirement, check="platform", met=found,
            detail=f"{platform} {'mentioned' if found else 'not mentioned'}",
        )

    # 5. Link / URL presence
    if _LINK_RE.search(requirement):
        return RequirementCheck(
            requirement=requirement, check="link", met=bool(urls),
            detail=f"{len(urls)} link(s) found",
        )

    # 6. Keyword overlap fallback
    keywords = _keywords(requirement)
    hits = [k for k in keywords if k in lowered]
    ratio = len(hits) / len(keywords) if keywords else 1.0
    return RequirementCheck(
        requirement=requirement, check="keywords", met=ratio >= KEYWORD_OVERLAP_RATIO,
        detail=f"{len(hits)}/{len(keywords)} keywords present",
    )


# ---------------------------------------------------------------------------
# Whole submission
# ---------------------------------------------------------------------------
def grade_submission(
    requirements: Sequence[str],
    content: str,
    proof: Optional[str] = None,
    graded_at: int = 0,
) -> GradeResult:
    """
    Grade a submission against every requirement of a bounty.

    Returns
    -------
    GradeResult
        score (0–100), passed flag, per-requirement trail and auto_reject flag.
    """
    if not requirements:
        return GradeResult(score=100, passed=True, checks=[], auto_reject=False, graded_at=graded_at)

    checks = [check_requirement(r, content, proof) for r in requirements]
    met = sum(1 for c in checks if c.met)
    score = _round_half_up(100 * met / len(checks))
    auto_reject = score < AUTO_REJECT_SCORE and not contains_url(content, proof)
    return GradeResult(
        score=score,
        passed=score >= GRADE_PASS_SCORE,
        checks=checks,
        auto_reject=auto_reject,
        graded_at=graded_at,
    )
