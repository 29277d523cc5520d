"""
Chat endpoint boundary.

Only the pieces the knowledge base feeds into: the KB context string, the
message list it is spliced into, and a thin requests client for the
OpenAI-compatible endpoint. Retry policy and web search live elsewhere.
"""

import logging
from functools import lru_cache
from typing import Dict, List, Optional

import requests
import tiktoken   # OpenAI's tokenizer (used to count tokens accurately)
from pydantic import BaseModel

from .service import KBFile
from .shared import (
    CHAT_MAX_TOKENS,
    CHAT_TEMPERATURE,
    CHAT_TIMEOUT,
    CONNECTION_TIMEOUT,
    MAX_CONTEXT_TOKENS,
    SPARK_MODEL,
    SPARK_URL,
)

log = logging.getLogger(__name__)

SYSTEM_PROMPT = (
    "You are Spark, a helpful AI assistant running on a local NVIDIA Jetson system. "
    "Be concise but thorough."
)
KB_HINT = " Use the knowledge base documents provided to give accurate information when relevant."
WEB_HINT = " You can reference current web information if needed to answer questions."
KB_CONTEXT_HEADER = "Knowledge base documents for context:\n\n"


@lru_cache(maxsize=1)
def _tokenizer():
    return tiktoken.get_encoding("cl100k_base")


def count_tokens(text: str) -> int:
    return len(_tokenizer().encode(text))


def trim_to_token_limit(text: str, max_tokens: int) -> str:
    tokens = _tokenizer().encode(text)
    if len(tokens) <= max_tokens:
        return text
    return _tokenizer().decode(tokens[:max_tokens])


def build_kb_context(files: List[KBFile]) -> str:
    """
    Join files as `--- name ---` blocks separated by a blank line, in the
    order given. Files that could not be read are left out.
    """
    return "\n\n".join(f"--- {f.name} ---\n{f.content}" for f in files if f.error is None)


def wrap_attachment(name: str, content: str, question: str) -> str:
    """User turn carrying a one-off attached file ahead of the question."""
    return (
        f"[Attached file: {name}]\n\n"
        f"File content:\n{content}\n\n"
        f"---\n\n"
        f"User question: {question}"
    )


def build_messages(history: List[Dict[str, str]], use_knowledge_base: bool = False,
                   use_web_search: bool = False, kb_context: str = "") -> List[Dict[str, str]]:
    system = SYSTEM_PROMPT
    if use_knowledge_base:
        system += KB_HINT
    if use_web_search:
        system += WEB_HINT

    messages = [{"role": "system", "content": system}, *history]
    if use_knowledge_base and kb_context:
        # Goes right after the first system message
        messages.insert(1, {"role": "system", "content": KB_CONTEXT_HEADER + kb_context})
    return messages


class ChatReply(BaseModel):
    success: bool
    content: str = ""
    error: Optional[str] = None


class ChatClient:
    def __init__(self, url: str = SPARK_URL, model: str = SPARK_MODEL,
                 session: Optional[requests.Session] = None,
                 max_context_tokens: Optional[int] = MAX_CONTEXT_TOKENS):
        self.url = url
        self.model = model
        self.session = session or requests.Session()
        self.max_context_tokens = max_context_tokens

    @property
    def models_url(self) -> str:
        return self.url.replace("/chat/completions", "/models")

    def check_connection(self) -> bool:
        try:
            return self.session.get(self.models_url, timeout=CONNECTION_TIMEOUT).ok
        except requests.RequestException:
            return False

    def _fit(self, messages: List[Dict[str, str]]) -> List[Dict[str, str]]:
        if self.max_context_tokens is None:
            return messages
        fitted = []
        for m in messages:
            if m["role"] == "system" and m["content"].startswith(KB_CONTEXT_HEADER):
                before = count_tokens(m["content"])
                if before > self.max_context_tokens:
                    log.warning("KB context trimmed from %d to %d tokens", before, self.max_context_tokens)
                    m = {**m, "content": trim_to_token_limit(m["content"], self.max_context_tokens)}
            fitted.append(m)
        return fitted

    def send(self, messages: List[Dict[str, str]]) -> ChatReply:
        payload = {
            "model": self.model,
            "messages": self._fit(messages),
            "max_tokens": CHAT_MAX_TOKENS,
            "temperature": CHAT_TEMPERATURE,
            "stream": False,
        }
        try:
            resp = self.session.post(self.url, json=payload, timeout=CHAT_TIMEOUT)
            if not resp.ok:
                return ChatReply(success=False, error=f"HTTP {resp.status_code}: {resp.reason}")
            data = resp.json()
            return ChatReply(success=True, content=data["choices"][0]["message"]["content"])
        except (requests.RequestException, ValueError, KeyError, IndexError) as e:
            log.warning("Chat request failed: %s", e)
            return ChatReply(success=False, error=str(e))
