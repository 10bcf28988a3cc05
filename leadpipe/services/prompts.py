# leadpipe/services/prompts.py
"""
Prompt builders and response models for the two LLM uses.

Extraction: OCR text from a vehicle photo -> ParsedCompany.
Outreach:   contact + company + photo location -> EmailDraft or a plain-text
            message.
"""

from __future__ import annotations

import json
import re
from typing import Any

from pydantic import BaseModel, Field, ValidationError, field_validator

from leadpipe.config import OutreachConfig
from leadpipe.exceptions import DataError

DEFAULT_STREET = "your location"
DEFAULT_INDUSTRY = "business"

_CONTROL_CHARS_RE = re.compile(r"[\x00-\x08\x0b\x0c\x0e-\x1f\x7f-\x9f]")
_FENCE_RE = re.compile(r"^```(?:json)?\s*|\s*```$", re.IGNORECASE)


# ---------------------------------------------------------------------------
# Response models
# ---------------------------------------------------------------------------


def _blank_to_none(v: Any) -> Any:
    if isinstance(v, str):
        v = v.strip()
        return v or None
    return v


class ParsedCompany(BaseModel):
    name: str | None = None
    industry: list[str] = Field(default_factory=list)
    email: str | None = None
    phone: str | None = None
    city: str | None = None
    state: str | None = None
    website: str | None = None

    @field_validator("name", "email", "phone", "city", "state", "website", mode="before")
    @classmethod
    def _strip(cls, v: Any) -> Any:
        if v is not None and not isinstance(v, str):
            v = str(v)
        return _blank_to_none(v)

    @field_validator("industry", mode="before")
    @classmethod
    def _industry_list(cls, v: Any) -> list[str]:
        if v is None:
            return []
        if isinstance(v, str):
            v = re.split(r"[,;/]", v)
        return [str(p).strip() for p in v if str(p).strip()]

    def has_identity(self) -> bool:
        return bool(self.name or self.email or self.phone)


class EmailDraft(BaseModel):
    subject: str = Field(min_length=1)
    body: str = Field(min_length=1)

    @field_validator("subject", "body", mode="before")
    @classmethod
    def _strip(cls, v: Any) -> Any:
        return v.strip() if isinstance(v, str) else v


def parse_json_object(raw: str) -> dict[str, Any]:
    """
    Parse a model response that should be a single JSON object.

    Tolerates a Markdown code fence and stray control characters; anything
    else that is not a JSON object raises DataError.
    """
    text = _CONTROL_CHARS_RE.sub("", raw or "").strip()
    text = _FENCE_RE.sub("", text).strip()
    if not text.startswith("{"):
        start, end = text.find("{"), text.rfind("}")
        if start == -1 or end <= start:
            raise DataError(f"response is not a JSON object: {raw[:200]!r}")
        text = text[start : end + 1]
    try:
        data = json.loads(text, strict=False)
    except json.JSONDecodeError as exc:
        raise DataError(f"could not parse JSON response: {exc}; response: {raw[:200]!r}") from exc
    if not isinstance(data, dict):
        raise DataError(f"response is {type(data).__name__}, expected object")
    return data


def parse_company(raw: str) -> ParsedCompany:
    try:
        return ParsedCompany.model_validate(parse_json_object(raw))
    except ValidationError as exc:
        raise DataError(f"extracted company failed validation: {exc}") from exc


def parse_email_draft(raw: str) -> EmailDraft:
    try:
        return EmailDraft.model_validate(parse_json_object(raw))
    except ValidationError as exc:
        raise DataError(f"missing subject or body in email response: {exc}") from exc


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def extract_street_name(location: str | None) -> str:
    """
    "123, Main Street, Denver, CO" -> "Main Street"
    "Main Street, Denver"          -> "Main Street"
    None / "Unknown location"      -> "your location"
    """
    if not location or location.strip().lower() == "unknown location":
        return DEFAULT_STREET
    parts = [p.strip() for p in location.split(",")]
    first = parts[0] if parts else ""
    if not first:
        return DEFAULT_STREET
    if first.isdigit() and len(parts) > 1 and parts[1]:
        return parts[1]
    return first


def primary_industry(industries: list[str] | None, fallback: str | None = None) -> str:
    if industries:
        return industries[0]
    return fallback or DEFAULT_INDUSTRY


# ---------------------------------------------------------------------------
# Prompts
# ---------------------------------------------------------------------------

EXTRACTION_SYSTEM = (
    "You parse OCR output from photos of company vehicles into JSON. "
    "Only use information present in the OCR text. Return raw JSON only."
)

EXTRACTION_TEMPLATE = """The following is the result of OCR on an image of a company vehicle.
Parse the information on the vehicle into a JSON object with these keys:

  name:     company name
  industry: array of industries as strings (e.g. heating, cooling, plumbing, fumigators)
  email:    email address; pick the first if there are several
  phone:    phone number; pick the first and write only the 10 digits
  city:     city
  state:    state
  website:  website

If a field is not represented in the OCR output, use an empty string
(an empty list for industry).

<BEGIN OCR OUTPUT>
{ocr_text}
<END OCR OUTPUT>"""


def extraction_prompt(ocr_text: str) -> str:
    return EXTRACTION_TEMPLATE.format(ocr_text=ocr_text.strip())


OUTREACH_SYSTEM = (
    "You are an expert copywriter crafting casual business development outreach. "
    "Messages should feel personal and non-spammy, using a real-world sighting "
    "as the conversation starter."
)


def _context_block(
    outreach: OutreachConfig,
    *,
    contact_name: str,
    company_name: str,
    industry: str,
    street: str,
) -> str:
    return (
        f"Context: {outreach.sender_name} from {outreach.firm_name} saw a company truck "
        f"belonging to the prospect on {street} and took a photo of it to attach. "
        f"{outreach.firm_name} {outreach.firm_pitch}, focusing on owners who are ready "
        "to sell now or planning an exit in the next 3-5 years. Keep it friendly and "
        "low-pressure, professional but conversational, without corporate jargon.\n\n"
        f"Contact first name: {contact_name}\n"
        f"Company: {company_name}\n"
        f"Industry: {industry}\n"
        f"Street where the truck was seen: {street}\n"
    )


def email_prompt(
    outreach: OutreachConfig,
    *,
    contact_name: str,
    company_name: str,
    industry: str,
    location: str | None,
) -> str:
    street = extract_street_name(location)
    return (
        _context_block(
            outreach,
            contact_name=contact_name,
            company_name=company_name,
            industry=industry,
            street=street,
        )
        + "\nWrite an email.\n"
        f'The subject must be exactly: "Saw your truck on {street}".\n'
        "The body greets the contact by first name, mentions spotting the truck, "
        f"introduces {outreach.firm_name} and its experience with owners in the "
        f"{industry} sector, offers insights on what drives valuations today, and "
        "asks for a brief no-obligation call next week. "
        f"Sign off as {outreach.sender_name}.\n\n"
        "Return a single valid JSON object with no extra commentary:\n"
        '{"subject": "subject line here", "body": "email body here"}'
    )


def text_prompt(
    outreach: OutreachConfig,
    *,
    contact_name: str,
    company_name: str,
    industry: str,
    location: str | None,
) -> str:
    street = extract_street_name(location)
    return (
        _context_block(
            outreach,
            contact_name=contact_name,
            company_name=company_name,
            industry=industry,
            street=street,
        )
        + "\nWrite a short text message that roughly follows this outline:\n"
        f"Hi {contact_name},\n"
        f"Spotted your truck on {street} (pic attached). It prompted me to connect.\n"
        f"I'm {outreach.sender_name} with {outreach.firm_name}. We help business owners "
        f"in the {industry} industry prepare for and execute a profitable sale.\n"
        "Even if an exit is years away, the planning often starts now.\n"
        "Are you open to a 15-minute call next week?\n\n"
        "Return the message content as plain text only."
    )


__all__ = [
    "ParsedCompany",
    "EmailDraft",
    "parse_json_object",
    "parse_company",
    "parse_email_draft",
    "extract_street_name",
    "primary_industry",
    "extraction_prompt",
    "email_prompt",
    "text_prompt",
    "EXTRACTION_SYSTEM",
    "OUTREACH_SYSTEM",
]
