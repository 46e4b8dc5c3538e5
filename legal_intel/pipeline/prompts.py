"""Classification and extraction prompts built from taxonomy data.

Both builders prefer the pack's custom PromptTemplate when one exists,
substituting ``{{placeholder}}`` tokens into its user prompt, and otherwise use
the defaults below. Pure functions; no I/O.
"""

import json
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional

from legal_intel.core.config import settings
from legal_intel.services.taxonomy.pack import (
    CategoryDefinition,
    DocumentTypeDefinition,
    PromptTemplate,
)

TEXT_SAMPLE_LIMIT = 2000
DEFAULT_TEMPERATURE = 0.1
CLASSIFICATION_MAX_TOKENS = 256
EXTRACTION_MAX_TOKENS = 2048

# =============================================================================
# CLASSIFICATION
# =============================================================================
CLASSIFICATION_SYSTEM_PROMPT = (
    "You are a legal document classifier. Given the text content of a document, "
    "classify it into exactly one of the provided document types. Return a JSON "
    'object with "documentType" (the key) and "confidence" (0.0-1.0).'
)

CLASSIFICATION_USER_PROMPT = """Classify the following document into exactly one of these types:

{document_types}

{file_info}

Document text (first ~2000 characters):
---
{text_sample}
---

Return ONLY a JSON object: {{"documentType": "<key>", "confidence": <0.0-1.0>}}"""

# =============================================================================
# EXTRACTION
# =============================================================================
EXTRACTION_SYSTEM_PROMPT = (
    "You are a legal document extraction AI. Extract structured data points from "
    "the provided text. For each finding, provide the field key, extracted value, "
    "a direct quote from the source text, and your confidence (0.0-1.0). Only "
    "extract fields with direct textual evidence. Do not guess."
)

EXTRACTION_USER_PROMPT = """Document type: {document_type}
Chunk {chunk_number} of {total_chunks}

Extract values for these fields where present:
{field_descriptions}

Text:
---
{chunk_text}
---

Return ONLY a JSON array of findings:
[{{"categoryKey": "<cat>", "fieldKey": "<field>", "value": "<extracted>", "sourceQuote": "<verbatim quote>", "confidence": <0.0-1.0>}}]

If no relevant data is found in this chunk, return an empty array: []"""


@dataclass
class PromptSpec:
    system_prompt: str
    user_prompt: str
    model: str
    temperature: float
    max_tokens: int

    def to_messages(self) -> List[Dict[str, str]]:
        return [
            {"role": "system", "content": self.system_prompt},
            {"role": "user", "content": self.user_prompt},
        ]


def format_document_types(document_types: Iterable[DocumentTypeDefinition]) -> str:
    lines = []
    for doc_type in document_types:
        hints = f": {doc_type.classification_hints}" if doc_type.classification_hints else ""
        lines.append(f'- "{doc_type.key}" ({doc_type.label}){hints}')
    return "\n".join(lines)


def format_field_descriptions(categories: Iterable[CategoryDefinition]) -> str:
    lines = []
    for category in categories:
        for f in category.fields:
            examples = f" (examples: {json.dumps(f.examples)})" if f.examples else ""
            lines.append(f"- {category.key}.{f.key} [{f.data_type}]: {f.label}{examples}")
    return "\n".join(lines)


def render_template(template: str, values: Dict[str, str]) -> str:
    """Substitute ``{{name}}`` placeholders. Unknown placeholders are left as is."""
    rendered = template
    for name, value in values.items():
        rendered = rendered.replace("{{" + name + "}}", value)
    return rendered


def _resolve_spec(
    template: Optional[PromptTemplate],
    default_system: str,
    default_user: str,
    values: Dict[str, str],
    default_max_tokens: int,
) -> PromptSpec:
    """Each template setting overrides its default on its own."""
    default_model = settings.inference.default_model

    if template is None:
        return PromptSpec(
            system_prompt=default_system,
            user_prompt=default_user,
            model=default_model,
            temperature=DEFAULT_TEMPERATURE,
            max_tokens=default_max_tokens,
        )

    if template.user_prompt_template:
        user_prompt = render_template(template.user_prompt_template, values)
    else:
        user_prompt = default_user

    return PromptSpec(
        system_prompt=template.system_prompt or default_system,
        user_prompt=user_prompt,
        model=template.model_preference or default_model,
        temperature=(
            float(template.temperature) if template.temperature is not None else DEFAULT_TEMPERATURE
        ),
        max_tokens=template.max_tokens or default_max_tokens,
    )


def build_classification_prompt(
    document_types: List[DocumentTypeDefinition],
    text_sample: str,
    template: Optional[PromptTemplate] = None,
    mime_type: Optional[str] = None,
    filename: Optional[str] = None,
) -> PromptSpec:
    """Build the prompt that picks one document type key for a document.

    Args:
        document_types: The pack's document types
        text_sample: Document text; only the first 2000 characters are sent
        template: Custom classification template, if the pack has one
        mime_type: Uploaded file's MIME type
        filename: Uploaded file's name

    Returns:
        PromptSpec
    """
    doc_type_list = format_document_types(document_types)
    sample = (text_sample or "")[:TEXT_SAMPLE_LIMIT]

    file_info = "\n".join(
        line
        for line in (
            f"MIME type: {mime_type}" if mime_type else "",
            f"Filename: {filename}" if filename else "",
        )
        if line
    )

    default_user = CLASSIFICATION_USER_PROMPT.format(
        document_types=doc_type_list,
        file_info=file_info,
        text_sample=sample,
    )

    values = {
        "document_types": doc_type_list,
        "text_sample": sample,
        "mime_type": mime_type or "unknown",
        "filename": filename or "unknown",
    }
    return _resolve_spec(
        template, CLASSIFICATION_SYSTEM_PROMPT, default_user, values, CLASSIFICATION_MAX_TOKENS
    )


def build_extraction_prompt(
    categories: List[CategoryDefinition],
    chunk_text: str,
    chunk_index: int,
    total_chunks: int,
    document_type: Optional[str],
    template: Optional[PromptTemplate] = None,
    matter_context: Optional[str] = None,
) -> PromptSpec:
    """Build the prompt that extracts taxonomy field values from one chunk.

    ``chunk_index`` is zero-based; prompts show it one-based.
    """
    field_descriptions = format_field_descriptions(categories)
    doc_type = document_type or "unknown"

    default_user = EXTRACTION_USER_PROMPT.format(
        document_type=doc_type,
        chunk_number=chunk_index + 1,
        total_chunks=total_chunks,
        field_descriptions=field_descriptions,
        chunk_text=chunk_text,
    )

    values = {
        "field_descriptions": field_descriptions,
        "chunk_text": chunk_text,
        "chunk_index": str(chunk_index + 1),
        "total_chunks": str(total_chunks),
        "document_type": doc_type,
        "matter_context": matter_context or "",
    }
    return _resolve_spec(
        template, EXTRACTION_SYSTEM_PROMPT, default_user, values, EXTRACTION_MAX_TOKENS
    )
