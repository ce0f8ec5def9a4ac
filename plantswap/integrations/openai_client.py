import json
from dataclasses import dataclass

from openai import OpenAI

from plantswap.imaging.encoding import to_data_url


@dataclass
class ReviewResult:
    replaced: bool
    preserved: bool
    notes: str

    def to_dict(self) -> dict:
        return {"replaced": self.replaced, "preserved": self.preserved, "notes": self.notes}


class VisionReviewer:
    """
    Thin wrapper over OpenAI Chat Completions that compares a step's input and accepted output.
    """

    def __init__(self, model: str, review_prompt: str) -> None:
        self.client = OpenAI()
        self.model = model
        self.review_prompt = review_prompt.strip()

    def review_edit(self, before: bytes, after: bytes, edit) -> ReviewResult:
        system_prompt = self.review_prompt.format(**edit.prompt_values())
        user_prompt = (
            f"Replaced plant: {edit.original or 'unknown'}\n"
            f"Replacement: {edit.replacement}\n"
            "Image 1 is BEFORE, image 2 is AFTER.\n"
            "Respond with JSON containing replaced, preserved and notes."
        )
        completion = self.client.chat.completions.create(
            model=self.model,
            messages=[
                {"role": "system", "content": system_prompt},
                {
                    "role": "user",
                    "content": [
                        {"type": "text", "text": user_prompt},
                        {"type": "image_url", "image_url": {"url": to_data_url(before)}},
                        {"type": "image_url", "image_url": {"url": to_data_url(after)}},
                    ],
                },
            ],
            response_format={"type": "json_object"},
        )
        content = completion.choices[0].message.content
        data = json.loads(content) if content else {}
        if not isinstance(data, dict):
            raise ValueError(f"Review verdict is not a JSON object: {content!r}")
        return ReviewResult(
            replaced=bool(data.get("replaced", False)),
            preserved=bool(data.get("preserved", False)),
            notes=data.get("notes", ""),
        )
