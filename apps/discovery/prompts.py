"""
Prompt templates for LLM vendor discovery.

The first run for an (area, specialty) starts a conversation with
VENDOR_DISCOVERY_PROMPT; later runs continue it with
VENDOR_DISCOVERY_FOLLOWUP_PROMPT so the model avoids repeating itself.
"""

import logging
from dataclasses import dataclass
from typing import Optional

logger = logging.getLogger(__name__)


@dataclass
class PromptTemplate:
    """A versioned prompt template."""
    name: str
    template: str
    system_prompt: Optional[str] = None
    version: str = "1.0"
    recommended_max_tokens: int = 8000

    def render(self, **kwargs) -> str:
        try:
            return self.template.format(**kwargs)
        except KeyError as e:
            logger.error(f"Missing template variable {e} for prompt '{self.name}'")
            raise ValueError(f"Missing required variable: {e}")

    def get_system_prompt(self) -> Optional[str]:
        return self.system_prompt


DISCOVERY_SYSTEM_PROMPT = """You are a research assistant building a directory of wedding vendors.
You only list real, currently operating businesses that you have good reason to believe exist.
Never invent businesses, phone numbers, emails or websites. Leave a field empty when unsure.
Respond with JSON only: no markdown, no commentary."""

VENDOR_JSON_SHAPE = """{{"vendors": [{{
  "name": "Business name",
  "location": "City, State",
  "phone": "",
  "email": "",
  "website": "https://...",
  "specialty": "{specialty}",
  "categories": ["{specialty}"],
  "cultural_specialties": ["e.g. South Asian", "Chinese"],
  "preferred_wedding_traditions": ["e.g. Hindu", "Sikh", "Muslim"],
  "price_range": "$, $$, $$$ or $$$$",
  "notes": "One sentence on what makes them a fit"
}}]}}"""

VENDOR_DISCOVERY_PROMPT = PromptTemplate(
    name="vendor_discovery",
    system_prompt=DISCOVERY_SYSTEM_PROMPT,
    template=(
        "Find {count} wedding vendors offering {specialty} services in or near {area}. "
        "Prefer vendors experienced with multicultural and South Asian weddings.\n\n"
        "{exclusions}"
        "Return exactly this JSON shape:\n" + VENDOR_JSON_SHAPE
    ),
)

VENDOR_DISCOVERY_FOLLOWUP_PROMPT = PromptTemplate(
    name="vendor_discovery_followup",
    system_prompt=DISCOVERY_SYSTEM_PROMPT,
    template=(
        "Find {count} more {specialty} vendors in or near {area} that you have not "
        "listed earlier in this conversation.\n\n"
        "{exclusions}"
        "Use the same JSON shape as before:\n" + VENDOR_JSON_SHAPE
    ),
)


def format_exclusions(names) -> str:
    if not names:
        return ""
    listed = "\n".join(f"- {name}" for name in names)
    return f"Do not include any of these already-known vendors:\n{listed}\n\n"
