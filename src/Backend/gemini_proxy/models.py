from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, Field


# ==========================
# INBOUND
# ==========================

class ProxyRequest(BaseModel):
    prompt: str

    @classmethod
    def from_body(cls, body: Any) -> Optional["ProxyRequest"]:
        """
        Returns None when the body carries no usable prompt:
        not an object, prompt absent or not a string, or blank after trimming.
        """
        if not isinstance(body, dict):
            return None
        prompt = body.get("prompt")
        if not isinstance(prompt, str):
            return None
        prompt = prompt.strip()
        if not prompt:
            return None
        return cls(prompt=prompt)


class AuthenticatedCaller(BaseModel):
    uid: str


# ==========================
# UPSTREAM (Gemini generateContent)
# ==========================

class Part(BaseModel):
    text: str


class Content(BaseModel):
    role: Literal["user"] = "user"
    parts: List[Part]


class Tool(BaseModel):
    googleSearch: Dict[str, Any] = Field(default_factory=dict)


class UpstreamPayload(BaseModel):
    contents: List[Content]
    tools: List[Tool] = Field(default_factory=lambda: [Tool()])

    @classmethod
    def for_prompt(cls, prompt: str) -> "UpstreamPayload":
        return cls(contents=[Content(parts=[Part(text=prompt)])])
