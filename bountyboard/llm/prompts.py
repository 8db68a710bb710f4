"""
Grading Prompts
===============
Prompts for the advisory submission grader.

Output Contract:
    {
      "grades": [{"requirement": "...", "status": "PASS|FAIL", "reason": "..."}],
      "recommendation": "APPROVE|REJECT|MANUAL_REVIEW",
      "summary": "..."
    }
"""
import json

from bountyboard.models.bounty import Bounty, Submission


SYSTEM_PROMPT = (
    "You are a strict but fair grader for bounty submissions.\n"
    "Evaluate whether the submission meets each requirement independently.\n"
    "Respond ONLY with a JSON object, no markdown, no commentary."
)


def build_grading_prompt(bounty: Bounty, submission: Submission) -> str:
    requirements = "\n".join(f"{i + 1}. {r}" for i, r in enumerate(bounty.requirements))
    return (
        f"BOUNTY: {bounty.title}\n"
        f"DESCRIPTION: {bounty.description}\n"
        "\n"
        f"REQUIREMENTS:\n{requirements}\n"
        "\n"
        f"SUBMISSION:\n{json.dumps(submission.content)}\n"
        f"Proof URL: {submission.proof or 'None'}\n"
        "\n"
        "For each requirement, respond with PASS or FAIL and a brief reason.\n"
        "Then give an overall recommendation: APPROVE (all pass), REJECT (obvious fail/spam), "
        "or MANUAL_REVIEW (borderline).\n"
        "\n"
        "Format your response as JSON:\n"
        "{\n"
        '  "grades": [{"requirement": "...", "status": "PASS|FAIL", "reason": "..."}],\n'
        '  "recommendation": "APPROVE|REJECT|MANUAL_REVIEW",\n'
        '  "summary": "Brief overall assessment"\n'
        "}"
    )
