from __future__ import annotations

import json
from typing import Iterable

from exam_authoring.models.schemas import DEFAULT_POINTS, Difficulty, QuestionType

GENERATION_SYSTEM_PROMPT = (
    "You are an expert educator who writes assessment questions. "
    "You answer with a single JSON array and nothing else: no prose, "
    "no explanations, no markdown code fences."
)


def _example_shape(qtype: QuestionType, difficulty: Difficulty) -> dict:
    base = {
        "type": qtype.value,
        "question": "",
        "points": DEFAULT_POINTS[qtype],
        "difficulty": difficulty.value,
    }
    if qtype == QuestionType.MULTIPLE_CHOICE:
        base["question"] = "Clear question text?"
        base["options"] = [
            {"id": "1", "text": "Option A", "isCorrect": True},
            {"id": "2", "text": "Option B", "isCorrect": False},
            {"id": "3", "text": "Option C", "isCorrect": False},
            {"id": "4", "text": "Option D", "isCorrect": False},
        ]
    elif qtype == QuestionType.TRUE_FALSE:
        base["question"] = "Statement to evaluate."
        base["correctAnswer"] = True
    elif qtype == QuestionType.IDENTIFICATION:
        base["question"] = "What is ...?"
        base["sampleAnswer"] = "Expected answer"
    else:
        base["question"] = "Discuss or explain ..."
        base["sampleAnswer"] = "Sample response with the key points"
    return base


def build_generation_prompt(
    *,
    material: str,
    desired_count: int,
    requested_types: Iterable[QuestionType],
    difficulty: Difficulty,
    subject: str,
    level: str,
) -> str:
    """Assemble the user prompt; only the requested kinds get an example shape."""
    kinds = list(dict.fromkeys(QuestionType(t) for t in requested_types))
    shapes = "\n\n".join(
        f"For {k.value}:\n{json.dumps(_example_shape(k, difficulty), ensure_ascii=False, indent=2)}"
        for k in kinds
    )
    audience = f"{subject or 'the given subject'}"
    if level:
        audience += f" at {level} level"

    return f"""Create assessment questions for {audience}.

Based on the content below, generate exactly {int(desired_count)} questions.

Question types to generate: {", ".join(k.value for k in kinds)}
Difficulty level: {difficulty.value}

IMPORTANT: Return ONLY a valid JSON array with NO additional text, explanations, or markdown formatting.
Every element must match exactly one of these shapes:

{shapes}

Rules:
- multiple_choice questions have at least two options and exactly one option with "isCorrect": true.
- true_false questions carry a boolean "correctAnswer".
- Do not include "id" or "order" fields.

CONTENT TO ANALYZE:
{material}

Return ONLY the JSON array, nothing else."""
