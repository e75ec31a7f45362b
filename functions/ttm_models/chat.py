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

from dataclasses import dataclass
from typing import List, Optional, Protocol

from pydantic import BaseModel, Field

from ttm_models import gemini

OFFLINE_MESSAGE = (
    "Our AI assistant is currently offline. Please leave a message for our "
    "support team and we will get back to you soon."
)


class ChatReply(BaseModel):
    """Structured reply requested from the model."""

    message: str = Field(default="", description="Reply shown to the user")
    product_ids: List[str] = Field(
        default_factory=list,
        description="Ids of catalog products worth showing as product cards",
    )


class ChatModel(Protocol):
    def reply(self, system_prompt: str, history: List[dict]) -> Optional[ChatReply]:
        ...


@dataclass
class GeminiChatModel:
    api_key: str
    model: str = gemini.DEFAULT_MODEL

    def reply(self, system_prompt: str, history: List[dict]) -> Optional[ChatReply]:
        return gemini.call_predict_with_schema(
            history,
            ChatReply,
            api_key=self.api_key,
            system_instruction=system_prompt,
            model=self.model,
        )


class OfflineChatModel:
    """Used when no model is configured."""

    def reply(self, system_prompt: str, history: List[dict]) -> Optional[ChatReply]:
        return ChatReply(message=OFFLINE_MESSAGE)
