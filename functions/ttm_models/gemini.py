# Copyright 2025 Google LLC
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.
# ==============================================================================

import time
import logging
from google import genai
from google.genai import types
from typing import List, Type, TypeVar

logger = logging.getLogger(__name__)

DEFAULT_MODEL = "gemini-2.5-flash"
CHAT_RESPONSE_MAX_OUTPUT_TOKENS = 800
CHAT_TEMPERATURE = 0.7

T = TypeVar("T")


class GeminiInvalidResponseException(Exception):
    pass


def to_contents(history: List[dict]) -> List[types.Content]:
    """
    Converts chat history into Gemini contents.

    Args:
        history (List[dict]): Messages with "role" ("user" | "assistant") and "content".

    Returns:
        List[types.Content]: The conversation, with assistant turns mapped to "model".
    """
    contents = []
    for message in history:
        role = "model" if message["role"] == "assistant" else "user"
        contents.append(
            types.Content(role=role, parts=[types.Part.from_text(text=message["content"])])
        )
    return contents


def call_predict_with_schema(
    history: List[dict],
    response_schema: Type[T],
    api_key: str,
    system_instruction: str | None = None,
    model=DEFAULT_MODEL,
) -> T | None:
    """Calls Gemini with a response schema for structured output."""
    client = genai.Client(api_key=api_key)
    start_time = time.time()
    try:
        response = client.models.generate_content(
            model=model,
            contents=to_contents(history),
            config=types.GenerateContentConfig(
                system_instruction=system_instruction,
                response_mime_type="application/json",
                response_schema=response_schema,
                temperature=CHAT_TEMPERATURE,
                max_output_tokens=CHAT_RESPONSE_MAX_OUTPUT_TOKENS,
            ),
        )
        logger.info("Gemini with schema call took: %.2fs", time.time() - start_time)
        if not response.parsed:
            raise GeminiInvalidResponseException()
        return response.parsed
    except Exception:
        logger.exception("An error occurred during predict with schema API call")
        return None
