import json

import openai

from codebase_vector.core.errors import ClassificationError
from codebase_vector.core.models import ChunkPayload

DEFAULT_CLASSIFIER_MODEL = "gpt-4o-mini"

_PROMPT_TEMPLATE = """Decide whether the two code snippets below implement duplicated logic.
Respond with JSON only, in the form:
{{"classification": "DUPLICATE" | "NOT_DUPLICATE", "reason": "<one sentence>"}}

Snippet A ({a_language}, {a_path}:{a_start}-{a_end}):
{a_content}

Snippet B ({b_language}, {b_path}:{b_start}-{b_end}):
{b_content}

Embedding similarity: {score:.0%}"""


class OpenAIPairClassifier:
    """Asks a chat-completion model to confirm or reject a candidate duplicate pair."""

    def __init__(
        self,
        model_name: str = DEFAULT_CLASSIFIER_MODEL,
        api_key: str | None = None,
        base_url: str | None = None,
        timeout: float = 60.0,
        client: openai.OpenAI | None = None,
    ) -> None:
        self._model_name = model_name
        self.client = client or openai.OpenAI(
            api_key=api_key or "unset",
            base_url=base_url or None,
            timeout=timeout,
        )

    def build_prompt(self, a: ChunkPayload, b: ChunkPayload, score: float) -> str:
        return _PROMPT_TEMPLATE.format(
            a_language=a.language,
            a_path=a.file_path,
            a_start=a.start_line,
            a_end=a.end_line,
            a_content=a.content,
            b_language=b.language,
            b_path=b.file_path,
            b_start=b.start_line,
            b_end=b.end_line,
            b_content=b.content,
            score=score,
        )

    def classify_pair(self, a: ChunkPayload, b: ChunkPayload, score: float) -> tuple[bool, str]:
        try:
            response = self.client.chat.completions.create(
                model=self._model_name,
                messages=[{"role": "user", "content": self.build_prompt(a, b, score)}],
                response_format={"type": "json_object"},
            )
        except openai.OpenAIError as e:
            raise ClassificationError(f"Classification request failed: {e}") from e

        if not response.choices:
            raise ClassificationError("Classification returned no choices")
        content = response.choices[0].message.content or ""
        try:
            result = json.loads(content)
        except json.JSONDecodeError as e:
            raise ClassificationError(f"Classifier returned invalid JSON: {content[:200]}") from e
        if not isinstance(result, dict):
            raise ClassificationError("Classifier returned a non-object JSON value")

        label = str(result.get("classification", "")).strip().upper()
        reason = str(result.get("reason", "")).strip()
        return label == "DUPLICATE", reason
