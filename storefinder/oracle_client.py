"""Classification oracle clients with a safe no-op fallback.

This module never hard-fails when no API key is configured. Callers receive a
structured skipped status instead and switch to their offline path. Model
output is treated as untrusted text: the first well-formed JSON value is
extracted and then checked by a caller-supplied validator.
"""
from __future__ import annotations

import hashlib
import json
import logging
import os
import re
from dataclasses import dataclass
from typing import Any, Callable, Optional, Tuple

import requests

from . import config
from .cancellation import CancellationToken, check_cancelled
from .errors import MalformedResponseError

logger = logging.getLogger(__name__)

GEMINI_API_URL_TEMPLATE = "https://generativelanguage.googleapis.com/v1beta/models/{model}:generateContent"
DEFAULT_GEMINI_MODEL = "gemini-2.5-flash"

STATUS_OK = "ok"
STATUS_SKIPPED = "skipped_no_api_key"
STATUS_REQUEST_ERROR = "request_error"
STATUS_HTTP_ERROR = "http_error"
STATUS_INVALID_JSON = "invalid_json"

# Receives the extracted JSON value, returns the normalized value or raises.
Validator = Callable[[Any], Any]


@dataclass(frozen=True)
class OracleCallResult:
    status: str
    raw_text: str
    data: Any
    model: str
    prompt_name: str
    prompt_hash: str
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.status == STATUS_OK


def hash_text(text: str) -> str:
    return hashlib.sha256(text.encode("utf-8")).hexdigest()


def _strip_code_fences(text: str) -> str:
    stripped = text.strip()
    if not stripped.startswith("```"):
        return stripped
    stripped = re.sub(r"^```(?:json)?", "", stripped, flags=re.IGNORECASE).strip()
    stripped = re.sub(r"```$", "", stripped).strip()
    return stripped


def _first_object(items: Any) -> Optional[dict]:
    """First element of a JSON list when it is an object, else None."""
    if not isinstance(items, list) or not items:
        return None
    first = items[0]
    return first if isinstance(first, dict) else None


def extract_json(text: str) -> Any:
    """Return the first well-formed JSON array or object embedded in text."""
    candidate = _strip_code_fences(text or "")
    decoder = json.JSONDecoder()
    for idx, ch in enumerate(candidate):
        if ch not in "[{":
            continue
        try:
            value, _ = decoder.raw_decode(candidate, idx)
        except json.JSONDecodeError:
            continue
        return value
    raise MalformedResponseError("no JSON array or object found in oracle output")


class BaseOracleClient:
    model = "base"

    @property
    def available(self) -> bool:
        return True

    def generate_json(
        self,
        prompt_name: str,
        prompt_text: str,
        validator: Optional[Validator] = None,
        max_tokens: int = config.VERIFY_MAX_TOKENS,
        cancel_token: Optional[CancellationToken] = None,
    ) -> OracleCallResult:
        prompt_hash = hash_text(prompt_text)
        check_cancelled(cancel_token)
        try:
            raw_text, error_type, error_detail = self._call_api(prompt_text, max_tokens)
        except (AttributeError, TypeError, KeyError, IndexError) as exc:
            raw_text, error_type, error_detail = "", STATUS_INVALID_JSON, f"unexpected_envelope: {exc}"
        # A reply that lands after cancellation is discarded.
        check_cancelled(cancel_token)
        if error_type:
            logger.warning("Oracle %s call failed: %s", prompt_name, error_detail or error_type)
            return OracleCallResult(
                status=error_type,
                raw_text=self._redact(raw_text),
                data=None,
                model=self.model,
                prompt_name=prompt_name,
                prompt_hash=prompt_hash,
                error=self._redact(error_detail or error_type),
            )

        raw_text = self._redact(raw_text)
        try:
            parsed = extract_json(raw_text)
            if validator is not None:
                parsed = validator(parsed)
        except (MalformedResponseError, ValueError, TypeError, KeyError) as exc:
            logger.warning("Oracle %s returned unusable JSON: %s", prompt_name, exc)
            return OracleCallResult(
                status=STATUS_INVALID_JSON,
                raw_text=raw_text,
                data=None,
                model=self.model,
                prompt_name=prompt_name,
                prompt_hash=prompt_hash,
                error=f"validation_error: {exc}",
            )
        return OracleCallResult(
            status=STATUS_OK,
            raw_text=raw_text,
            data=parsed,
            model=self.model,
            prompt_name=prompt_name,
            prompt_hash=prompt_hash,
            error=None,
        )

    def _call_api(self, prompt_text: str, max_tokens: int) -> Tuple[str, Optional[str], Optional[str]]:
        raise NotImplementedError

    def _redact(self, text: str) -> str:
        return text


class NoopOracleClient(BaseOracleClient):
    model = "noop"

    def __init__(self, reason: str = STATUS_SKIPPED) -> None:
        self.reason = reason

    @property
    def available(self) -> bool:
        return False

    def generate_json(
        self,
        prompt_name: str,
        prompt_text: str,
        validator: Optional[Validator] = None,
        max_tokens: int = config.VERIFY_MAX_TOKENS,
        cancel_token: Optional[CancellationToken] = None,
    ) -> OracleCallResult:
        check_cancelled(cancel_token)
        return OracleCallResult(
            status=self.reason,
            raw_text="",
            data=None,
            model=self.model,
            prompt_name=prompt_name,
            prompt_hash=hash_text(prompt_text),
            error=None,
        )


class _HttpOracleClient(BaseOracleClient):
    def __init__(
        self,
        api_key: str,
        model: str,
        timeout_seconds: int = config.ORACLE_TIMEOUT_SECONDS,
        session: Optional[requests.Session] = None,
    ) -> None:
        self.api_key = api_key
        self.model = model
        self.timeout_seconds = timeout_seconds
        self.session = session or requests.Session()

    def _redact(self, text: str) -> str:
        if not text:
            return text
        redacted = text.replace(self.api_key, "[REDACTED]")
        redacted = re.sub(r"(key=)[^&\s()]+", r"\1[REDACTED]", redacted)
        return redacted

    def _post(self, url: str, payload: dict, headers: Optional[dict] = None) -> Tuple[Optional[dict], str, Optional[str], Optional[str]]:
        try:
            resp = self.session.post(url, json=payload, headers=headers, timeout=self.timeout_seconds)
        except requests.RequestException as exc:
            return None, "", STATUS_REQUEST_ERROR, f"request_error: {exc}"
        if resp.status_code >= 400:
            return None, resp.text, STATUS_HTTP_ERROR, f"http_error: {resp.status_code}"
        try:
            data = resp.json()
        except ValueError as exc:
            return None, resp.text, STATUS_INVALID_JSON, f"non_json_response: {exc}"
        if not isinstance(data, dict):
            return None, json.dumps(data, ensure_ascii=False), STATUS_INVALID_JSON, "response_not_object"
        return data, "", None, None


class ChatCompletionsClient(_HttpOracleClient):
    """OpenAI-compatible /chat/completions endpoint."""

    def __init__(
        self,
        api_key: str,
        model: str = config.OPENAI_MODEL_DEFAULT,
        api_base: str = config.OPENAI_API_BASE_DEFAULT,
        timeout_seconds: int = config.ORACLE_TIMEOUT_SECONDS,
        session: Optional[requests.Session] = None,
    ) -> None:
        super().__init__(api_key, model, timeout_seconds=timeout_seconds, session=session)
        self.api_base = api_base.rstrip("/")

    def _call_api(self, prompt_text: str, max_tokens: int) -> Tuple[str, Optional[str], Optional[str]]:
        payload = {
            "model": self.model,
            "messages": [{"role": "user", "content": prompt_text}],
            "max_tokens": max_tokens,
            "temperature": config.ORACLE_TEMPERATURE,
        }
        headers = {"Authorization": f"Bearer {self.api_key}"}
        data, raw, error_type, error_detail = self._post(
            f"{self.api_base}/chat/completions", payload, headers=headers
        )
        if error_type:
            return raw, error_type, error_detail
        choice = _first_object(data.get("choices"))
        if choice is None:
            return json.dumps(data, ensure_ascii=False), STATUS_INVALID_JSON, "no_choices"
        message = choice.get("message")
        text = message.get("content") if isinstance(message, dict) else None
        if not isinstance(text, str):
            return json.dumps(data, ensure_ascii=False), STATUS_INVALID_JSON, "missing_content"
        return text, None, None


class GeminiClient(_HttpOracleClient):
    def __init__(
        self,
        api_key: str,
        model: str = DEFAULT_GEMINI_MODEL,
        timeout_seconds: int = config.ORACLE_TIMEOUT_SECONDS,
        session: Optional[requests.Session] = None,
    ) -> None:
        super().__init__(api_key, model, timeout_seconds=timeout_seconds, session=session)

    def _call_api(self, prompt_text: str, max_tokens: int) -> Tuple[str, Optional[str], Optional[str]]:
        url = f"{GEMINI_API_URL_TEMPLATE.format(model=self.model)}?key={self.api_key}"
        payload = {
            "contents": [
                {
                    "role": "user",
                    "parts": [{"text": prompt_text}],
                }
            ],
            "generationConfig": {
                "temperature": config.ORACLE_TEMPERATURE,
                "maxOutputTokens": max_tokens,
                "responseMimeType": "application/json",
            },
        }
        data, raw, error_type, error_detail = self._post(url, payload)
        if error_type:
            return raw, error_type, error_detail
        candidate = _first_object(data.get("candidates"))
        if candidate is None:
            return json.dumps(data, ensure_ascii=False), STATUS_INVALID_JSON, "no_candidates"
        content = candidate.get("content")
        part = _first_object(content.get("parts")) if isinstance(content, dict) else None
        if part is None:
            return json.dumps(data, ensure_ascii=False), STATUS_INVALID_JSON, "no_parts"
        text = part.get("text")
        if not isinstance(text, str):
            return json.dumps(data, ensure_ascii=False), STATUS_INVALID_JSON, "missing_text_part"
        return text, None, None


def oracle_from_env() -> BaseOracleClient:
    openai_key = os.environ.get("OPENAI_API_KEY")
    if openai_key:
        return ChatCompletionsClient(
            api_key=openai_key,
            model=os.environ.get("OPENAI_MODEL", config.OPENAI_MODEL_DEFAULT),
            api_base=os.environ.get("OPENAI_API_BASE", config.OPENAI_API_BASE_DEFAULT),
            timeout_seconds=config.ORACLE_TIMEOUT_SECONDS,
        )
    gemini_key = os.environ.get("GEMINI_API_KEY")
    if gemini_key:
        return GeminiClient(
            api_key=gemini_key,
            model=os.environ.get("GEMINI_MODEL", DEFAULT_GEMINI_MODEL),
            timeout_seconds=config.ORACLE_TIMEOUT_SECONDS,
        )
    logger.info("No oracle API key configured; using offline classification")
    return NoopOracleClient(STATUS_SKIPPED)
