"""
LLM vendor discovery client.

ClaudeClient is a thin HTTP wrapper around the Anthropic Messages API with
fallback-key support. VendorDiscoveryClient builds the discovery prompt,
continues the per-(area, specialty) conversation and parses the vendors
out of the reply.
"""

import json
import logging
import os
import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from django.conf import settings

import requests

from apps.core.exceptions import DiscoveryServiceError
from apps.core.metrics import increment_llm_request, observe_llm_request_duration

from .prompts import (
    VENDOR_DISCOVERY_FOLLOWUP_PROMPT,
    VENDOR_DISCOVERY_PROMPT,
    format_exclusions,
)

logger = logging.getLogger(__name__)

ANTHROPIC_MESSAGES_URL = "https://api.anthropic.com/v1/messages"

# Conversation entries kept per (area, specialty); oldest turns are dropped
MAX_HISTORY_ENTRIES = 20

# Longest category or tradition label kept from a candidate
LIST_ITEM_MAX_LENGTH = 100


def parse_llm_json(raw_text: str):
    """
    Parse JSON from an LLM response that may include markdown code fences.
    """
    if not raw_text or not raw_text.strip():
        return None

    text = raw_text.strip()
    fence_pattern = r"^```(?:json)?\s*\n?(.*?)\n?```$"
    match = re.match(fence_pattern, text, re.DOTALL | re.IGNORECASE)
    if match:
        text = match.group(1).strip()

    try:
        return json.loads(text)
    except json.JSONDecodeError:
        return None


class ClaudeClient:
    """
    Claude API wrapper using direct HTTP.

    Retries empty or malformed replies and 5xx responses, and switches to
    the fallback API key once on rate limiting or overload.
    """

    # HTTP status codes that should trigger fallback to secondary key
    FALLBACK_STATUS_CODES = {429, 529, 503}  # Rate limit, overloaded, service unavailable
    MAX_ATTEMPTS = 3

    def __init__(
        self,
        api_key: Optional[str] = None,
        fallback_api_key: Optional[str] = None,
        model: Optional[str] = None,
        max_tokens: Optional[int] = None,
        temperature: Optional[float] = None,
        timeout: Optional[int] = None,
    ):
        self.api_key = api_key or settings.ANTHROPIC_API_KEY
        self.fallback_api_key = fallback_api_key or getattr(settings, 'ANTHROPIC_API_KEY_FALLBACK', '')
        self.model = model or settings.LLM_MODEL
        self.max_tokens = max_tokens or settings.LLM_MAX_TOKENS
        self.temperature = temperature if temperature is not None else settings.LLM_TEMPERATURE
        self.timeout = timeout or settings.LLM_TIMEOUT
        self._using_fallback = False
        self.proxies = {
            k: v for k, v in {
                "http": os.getenv("HTTP_PROXY") or os.getenv("http_proxy"),
                "https": os.getenv("HTTPS_PROXY") or os.getenv("https_proxy"),
            }.items() if v
        } or None

    @property
    def available(self) -> bool:
        """Return True when we have an API key (primary or fallback)."""
        return bool(self.api_key) or bool(self.fallback_api_key)

    @property
    def has_fallback(self) -> bool:
        return bool(self.fallback_api_key)

    @property
    def using_fallback(self) -> bool:
        return self._using_fallback

    def _get_active_key(self) -> str:
        if self._using_fallback and self.fallback_api_key:
            return self.fallback_api_key
        return self.api_key

    def complete(
        self,
        messages: List[Dict[str, str]],
        system: Optional[str] = None,
        max_tokens: Optional[int] = None,
    ) -> str:
        """
        Send a conversation and return the assistant's text reply.

        Args:
            messages: [{"role": "user"|"assistant", "content": str}, ...]
            system: Optional system prompt
            max_tokens: Output token limit (defaults to LLM_MAX_TOKENS)

        Raises:
            ValueError: No API key configured, or no usable reply
            requests.RequestException: Transport or HTTP failure
        """
        payload = {
            "model": self.model,
            "max_tokens": max_tokens or self.max_tokens,
            "temperature": self.temperature,
            "messages": [
                {"role": m["role"], "content": [{"type": "text", "text": m["content"]}]}
                for m in messages
            ],
        }
        if system:
            payload["system"] = system

        last_error = None
        tried_fallback = False

        for attempt in range(self.MAX_ATTEMPTS):
            active_key = self._get_active_key()
            if not active_key:
                raise ValueError("No API key available (primary and fallback both empty)")

            headers = {
                "x-api-key": active_key,
                "anthropic-version": "2023-06-01",
                "content-type": "application/json",
            }

            try:
                resp = requests.post(
                    ANTHROPIC_MESSAGES_URL,
                    headers=headers,
                    json=payload,
                    timeout=self.timeout,
                    proxies=self.proxies,
                )
            except requests.RequestException as exc:
                last_error = exc
                logger.warning("Claude HTTP call exception (attempt %s): %s", attempt + 1, exc)
                continue

            raw_text = resp.text or ""

            if resp.status_code in self.FALLBACK_STATUS_CODES and self.fallback_api_key and not tried_fallback:
                logger.warning("Primary API key hit %s, switching to fallback key", resp.status_code)
                increment_llm_request(status='fallback')
                self._using_fallback = True
                tried_fallback = True
                continue

            if resp.status_code >= 500:
                last_error = requests.HTTPError(f"{resp.status_code} from Claude: {raw_text[:200]}", response=resp)
                logger.warning("Claude returned %s (attempt %s): %s", resp.status_code, attempt + 1, raw_text[:400])
                continue

            if resp.status_code != 200:
                logger.warning("Claude HTTP call failed: %s - %s", resp.status_code, raw_text[:400])
                resp.raise_for_status()

            if not raw_text.strip():
                last_error = ValueError("Claude returned empty body")
                logger.warning("Claude returned empty body (attempt %s)", attempt + 1)
                continue

            try:
                data = resp.json()
            except ValueError as json_exc:
                last_error = json_exc
                logger.warning("Claude response parse error (attempt %s): %s", attempt + 1, raw_text[:400])
                continue

            text = "".join(
                block.get("text", "")
                for block in data.get("content") or []
                if isinstance(block, dict) and block.get("type", "text") == "text"
            )
            if not text.strip():
                last_error = ValueError(f"Empty content from Claude: {raw_text[:200]}")
                logger.warning("Claude returned empty content (attempt %s): %s", attempt + 1, raw_text[:200])
                continue

            usage = data.get("usage", {})
            logger.debug(
                f"Claude reply: {usage.get('input_tokens', '?')} in / "
                f"{usage.get('output_tokens', '?')} out tokens"
            )
            return text

        raise last_error or ValueError("Claude returned no usable reply")


@dataclass
class DiscoveredVendor:
    """A vendor candidate as returned by the discovery service."""
    name: str
    location: str = ""
    phone: str = ""
    email: str = ""
    website: str = ""
    specialty: str = ""
    categories: List[str] = field(default_factory=list)
    cultural_specialties: List[str] = field(default_factory=list)
    preferred_wedding_traditions: List[str] = field(default_factory=list)
    price_range: str = ""
    notes: str = ""

    @classmethod
    def from_dict(cls, data: Dict[str, Any], default_specialty: str = "") -> Optional['DiscoveredVendor']:
        """Coerce one LLM vendor object; returns None when it has no name."""
        if not isinstance(data, dict):
            return None
        name = _as_text(data.get("name"))
        if not name:
            return None
        specialty = _as_text(data.get("specialty")) or default_specialty
        return cls(
            name=name[:255],
            location=_as_text(data.get("location"))[:255],
            phone=_as_text(data.get("phone"))[:50],
            email=_as_text(data.get("email"))[:255],
            website=_as_text(data.get("website"))[:500],
            specialty=specialty[:200],
            categories=_as_list(data.get("categories")) or ([specialty] if specialty else []),
            cultural_specialties=_as_list(data.get("cultural_specialties")),
            preferred_wedding_traditions=_as_list(data.get("preferred_wedding_traditions")),
            price_range=_as_text(data.get("price_range"))[:10],
            notes=_as_text(data.get("notes")),
        )


def _as_text(value) -> str:
    if value is None:
        return ""
    return str(value).strip()


def _as_list(value, item_max: int = LIST_ITEM_MAX_LENGTH) -> List[str]:
    if isinstance(value, str):
        value = [value]
    if not isinstance(value, list):
        return []
    items = (str(v).strip() for v in value if v is not None)
    return [item[:item_max] for item in items if item]


@dataclass
class DiscoveryResult:
    vendors: List[DiscoveredVendor]
    history: List[Dict[str, str]]


def validate_history(raw) -> List[Dict[str, str]]:
    """Keep only well-formed {role, content} turns from stored history."""
    if not isinstance(raw, list):
        return []
    return [
        {"role": item["role"], "content": item["content"]}
        for item in raw
        if isinstance(item, dict)
        and item.get("role") in ("user", "assistant")
        and isinstance(item.get("content"), str)
    ]


def trim_history(history: List[Dict[str, str]], max_entries: int = MAX_HISTORY_ENTRIES) -> List[Dict[str, str]]:
    """Drop the oldest turns, keeping the conversation starting on a user turn."""
    trimmed = history[-max_entries:] if max_entries else list(history)
    while trimmed and trimmed[0]["role"] != "user":
        trimmed = trimmed[1:]
    return trimmed


class VendorDiscoveryClient:
    """
    Finds vendor candidates for an (area, specialty) with the LLM.

    Usage:
        client = VendorDiscoveryClient()
        result = client.discover_vendors("Seattle", "photographer", 10, known_names, history)
    """

    def __init__(self, llm: Optional[ClaudeClient] = None):
        self.llm = llm or ClaudeClient()

    @property
    def available(self) -> bool:
        return self.llm.available

    def discover_vendors(
        self,
        area: str,
        specialty: str,
        count: int,
        exclude_names: Optional[List[str]] = None,
        history: Optional[List[Dict[str, str]]] = None,
    ) -> DiscoveryResult:
        """
        Ask the LLM for up to `count` vendors.

        Raises:
            DiscoveryServiceError: The service is unreachable, unconfigured or
                returned something that is not a vendor list.
        """
        prior = validate_history(history)
        template = VENDOR_DISCOVERY_FOLLOWUP_PROMPT if prior else VENDOR_DISCOVERY_PROMPT
        prompt = template.render(
            count=count,
            area=area,
            specialty=specialty,
            exclusions=format_exclusions(exclude_names or []),
        )
        messages = prior + [{"role": "user", "content": prompt}]

        try:
            with observe_llm_request_duration():
                reply = self.llm.complete(
                    messages,
                    system=template.get_system_prompt(),
                    max_tokens=template.recommended_max_tokens,
                )
        except (requests.RequestException, ValueError) as exc:
            increment_llm_request(status='error')
            raise DiscoveryServiceError(f"Vendor discovery request failed: {exc}") from exc

        parsed = parse_llm_json(reply)
        if isinstance(parsed, dict):
            items = parsed.get("vendors")
        else:
            items = parsed
        if not isinstance(items, list):
            increment_llm_request(status='error')
            raise DiscoveryServiceError(
                "Vendor discovery returned an unparseable response",
                details={"response_preview": reply[:200]},
            )

        increment_llm_request(status='success')

        vendors = []
        for item in items:
            vendor = DiscoveredVendor.from_dict(item, default_specialty=specialty)
            if vendor:
                vendors.append(vendor)

        if len(vendors) != len(items):
            logger.warning(f"Dropped {len(items) - len(vendors)} malformed vendor entries for {specialty} in {area}")

        updated_history = trim_history(messages + [{"role": "assistant", "content": reply}])
        return DiscoveryResult(vendors=vendors, history=updated_history)
