# engine/line_translator.py
# Responsibility:
# - Translate ONE line with keyword + rolling context
# - Decode the model answer ONCE into a typed TranslationResponse
# - NO state mutation, NO disk IO (the state machine owns retries)
#
# Provider order: Gemini (native SDK) -> OpenAI fallback (only if OPENAI_API_KEY is set)

import json
from typing import Dict, List, Optional, Protocol, Sequence

from google import genai
from google.genai import types
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from engine.context_window import ContextEntry
from engine.term_store import TermPair
from utils.json_utils import extract_json_object
from utils.key_rotator import KeyRotator
from utils.logger import log
from utils.openai_fallback import call_openai_fallback, openai_available


class MalformedResponse(ValueError):
    """Model answer is empty, not JSON, or does not match the response schema."""


# =========================================================
# RESPONSE SCHEMA
# =========================================================
class TranslationResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    translated_line: str = Field(alias="translatedLine")
    new_terms: List[TermPair] = Field(alias="newTerms")

    @field_validator("new_terms")
    @classmethod
    def _drop_blank_terms(cls, terms: List[TermPair]) -> List[TermPair]:
        return [t for t in terms if t.source.strip()]


RESPONSE_SCHEMA = types.Schema(
    type=types.Type.OBJECT,
    properties={
        "translatedLine": types.Schema(type=types.Type.STRING),
        "newTerms": types.Schema(
            type=types.Type.ARRAY,
            items=types.Schema(
                type=types.Type.OBJECT,
                properties={
                    "from": types.Schema(type=types.Type.STRING),
                    "to": types.Schema(type=types.Type.STRING),
                },
                required=["from", "to"],
            ),
        ),
    },
    required=["translatedLine", "newTerms"],
)

RESPONSE_SCHEMA_TEXT = """{
  "type": "object",
  "properties": {
    "translatedLine": { "type": "string" },
    "newTerms": {
      "type": "array",
      "items": {
        "type": "object",
        "properties": {
          "from": { "type": "string" },
          "to": { "type": "string" }
        },
        "required": ["from", "to"]
      }
    }
  },
  "required": ["translatedLine", "newTerms"]
}"""


def parse_translation_response(text: Optional[str]) -> TranslationResponse:
    if not text or not text.strip():
        raise MalformedResponse("empty response from model")

    raw = extract_json_object(text)
    try:
        payload = json.loads(raw)
    except json.JSONDecodeError as e:
        raise MalformedResponse(f"response is not valid JSON: {e} | text={raw[:200]!r}") from e

    if not isinstance(payload, dict):
        raise MalformedResponse(f"expected a JSON object, got {type(payload).__name__}")

    try:
        return TranslationResponse.model_validate(payload)
    except ValidationError as e:
        raise MalformedResponse(f"response does not match schema: {e}") from e


# =========================================================
# PROMPT
# =========================================================
SYSTEM_PROMPT = "You are a professional literary translator translating a novel line by line."

LINE_PROMPT = """
Translate the "Current Line" from {source_language} to {target_language}.
Maintain consistency with the "Previous Lines" translations and consider the "Future Lines" for context.
Use the "Existing Keywords" for consistent translation of specific terms and names.
Existing keywords are not absolutely correct: treat them as a reference for consistency.
Identify new recurring terms or names in the "Current Line" that must be translated consistently
in the future and list them as "newTerms".

Keep the narrative voice of the source novel. Use correct grammar and punctuation.
Narration may be rendered in past tense where it reads more naturally in {target_language}.

Do not add a keyword that is already covered by an existing keyword, and never add
ordinary vocabulary (for example "book", "door") as a keyword.

Source Language: {source_language}
Target Language: {target_language}

Existing Keywords:
{existing_terms}

Previous Lines (Source -> Target):
{previous_lines}

Current Line (to be translated):
{current_line}

Future Lines (for context):
{future_lines}

Respond ONLY with a valid JSON object matching this schema:
{schema}
If no new keywords are identified, provide an empty array for "newTerms".
Do not include any other text or explanations outside the JSON object.
""".strip()


def build_line_prompt(
    *,
    source_language: str,
    target_language: str,
    existing_terms: Sequence[TermPair],
    context: Sequence[ContextEntry],
    current_line: str,
    lookahead: Sequence[str],
) -> str:
    return LINE_PROMPT.format(
        source_language=source_language,
        target_language=target_language,
        existing_terms="\n".join(f"- {t.source}: {t.target}" for t in existing_terms) or "None",
        previous_lines="\n".join(f"- {e.source} -> {e.target}" for e in context) or "None",
        current_line=current_line,
        future_lines="\n".join(f"- {line}" for line in lookahead) or "None",
        schema=RESPONSE_SCHEMA_TEXT,
    )


class Translator(Protocol):
    async def translate(
        self,
        existing_terms: Sequence[TermPair],
        context: Sequence[ContextEntry],
        current_line: str,
        lookahead: Sequence[str],
    ) -> TranslationResponse: ...


# =========================================================
# ENGINE
# =========================================================
class LineTranslator:
    def __init__(
        self,
        keys: KeyRotator,
        *,
        source_language: str,
        target_language: str,
        model: str = "gemini-2.5-flash",
        fallback_model: Optional[str] = "gpt-4o-mini",
    ):
        self.keys = keys
        self.source_language = source_language
        self.target_language = target_language
        self.model = model
        self.fallback_model = fallback_model
        self._clients: Dict[str, genai.Client] = {}

        # Novels contain violence etc.: disable the content filter
        self.generate_config = types.GenerateContentConfig(
            response_mime_type="application/json",
            response_schema=RESPONSE_SCHEMA,
            temperature=0.3,
            safety_settings=[
                types.SafetySetting(category=category, threshold="BLOCK_NONE")
                for category in (
                    "HARM_CATEGORY_HARASSMENT",
                    "HARM_CATEGORY_HATE_SPEECH",
                    "HARM_CATEGORY_SEXUALLY_EXPLICIT",
                    "HARM_CATEGORY_DANGEROUS_CONTENT",
                )
            ],
        )

    def _client(self) -> genai.Client:
        api_key = self.keys.next("translate")
        if api_key not in self._clients:
            self._clients[api_key] = genai.Client(api_key=api_key)
        return self._clients[api_key]

    async def _call_gemini(self, prompt: str) -> TranslationResponse:
        response = await self._client().aio.models.generate_content(
            model=self.model,
            contents=prompt,
            config=self.generate_config,
        )
        if not response.text:
            finish_reason = "Unknown"
            if response.candidates:
                finish_reason = response.candidates[0].finish_reason
            raise MalformedResponse(f"empty response from Gemini. Reason: {finish_reason}")
        return parse_translation_response(response.text)

    async def _call_openai(self, prompt: str) -> TranslationResponse:
        text = await call_openai_fallback(
            SYSTEM_PROMPT,
            prompt,
            model=self.fallback_model,
            json_mode=True,
        )
        return parse_translation_response(text)

    # =========================================================
    # PUBLIC API
    # =========================================================
    async def translate(
        self,
        existing_terms: Sequence[TermPair],
        context: Sequence[ContextEntry],
        current_line: str,
        lookahead: Sequence[str],
    ) -> TranslationResponse:
        log(
            f"AI TRANSLATE LINE | terms={len(existing_terms)} | "
            f"ctx={len(context)} | future={len(lookahead)}"
        )
        prompt = build_line_prompt(
            source_language=self.source_language,
            target_language=self.target_language,
            existing_terms=existing_terms,
            context=context,
            current_line=current_line,
            lookahead=lookahead,
        )

        try:
            return await self._call_gemini(prompt)
        except Exception as e:
            if not (self.fallback_model and openai_available()):
                raise
            log(f"⚠️ PRIMARY MODEL ({self.model}) FAILED: {e}")
            log(f"🔄 SWITCHING TO FALLBACK MODEL: {self.fallback_model}")
            return await self._call_openai(prompt)
