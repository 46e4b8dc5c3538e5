"""In-memory view of a resolved taxonomy pack.

``build_loaded_pack`` turns database rows (or anything exposing the same
attributes) into plain dataclasses plus the two lookup maps the pipeline
needs. It does no I/O.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional
from uuid import UUID

from legal_intel.pipeline.enums import ConflictDetectionMode, PromptTemplateType


@dataclass
class FieldDefinition:
    key: str
    label: str
    category_key: str
    data_type: str = "text"
    description: Optional[str] = None
    examples: List[Any] = field(default_factory=list)
    confidence_threshold: float = 0.7
    requires_human_review: bool = False


@dataclass
class CategoryDefinition:
    key: str
    label: str
    description: Optional[str] = None
    sort_order: int = 0
    fields: List[FieldDefinition] = field(default_factory=list)


@dataclass
class DocumentTypeDefinition:
    key: str
    label: str
    classification_hints: Optional[str] = None
    activated_categories: List[str] = field(default_factory=list)


@dataclass
class PromptTemplate:
    template_type: PromptTemplateType
    system_prompt: Optional[str] = None
    user_prompt_template: Optional[str] = None
    model_preference: Optional[str] = None
    temperature: Optional[float] = None
    max_tokens: Optional[int] = None


@dataclass
class ReconciliationRule:
    field_key: str
    case_field_mapping: Optional[str] = None
    conflict_detection_mode: ConflictDetectionMode = ConflictDetectionMode.EXACT
    auto_apply_threshold: Optional[float] = None
    requires_human_review: bool = False


@dataclass
class ActionTrigger:
    name: str
    trigger_condition: Dict[str, Any]
    action_template: Dict[str, Any]
    id: Optional[UUID] = None
    description: Optional[str] = None


@dataclass
class LoadedPack:
    """A taxonomy pack with every component attached."""

    id: UUID
    key: str
    name: str
    practice_area: str
    version: int = 1
    tenant_id: Optional[UUID] = None
    categories: List[CategoryDefinition] = field(default_factory=list)
    document_types: List[DocumentTypeDefinition] = field(default_factory=list)
    prompt_templates: List[PromptTemplate] = field(default_factory=list)
    reconciliation_rules: List[ReconciliationRule] = field(default_factory=list)
    action_triggers: List[ActionTrigger] = field(default_factory=list)
    # "<categoryKey>:<fieldKey>" -> field
    field_map: Dict[str, FieldDefinition] = field(default_factory=dict)
    # fieldKey -> rule
    reconciliation_rule_map: Dict[str, ReconciliationRule] = field(default_factory=dict)

    @property
    def is_system_default(self) -> bool:
        return self.tenant_id is None

    def template_for(self, template_type: PromptTemplateType) -> Optional[PromptTemplate]:
        for template in self.prompt_templates:
            if template.template_type == template_type:
                return template
        return None

    def document_type(self, key: Optional[str]) -> Optional[DocumentTypeDefinition]:
        if not key:
            return None
        for doc_type in self.document_types:
            if doc_type.key == key:
                return doc_type
        return None

    def categories_for_document_type(self, key: Optional[str]) -> List[CategoryDefinition]:
        """Categories a document type activates for extraction.

        Falls back to every category when the type is unknown or activates
        nothing that exists in this pack.
        """
        doc_type = self.document_type(key)
        if doc_type is None or not doc_type.activated_categories:
            return list(self.categories)
        wanted = set(doc_type.activated_categories)
        selected = [c for c in self.categories if c.key in wanted]
        return selected or list(self.categories)


def field_map_key(category_key: str, field_key: str) -> str:
    return f"{category_key}:{field_key}"


def _category_from_row(row: Any) -> CategoryDefinition:
    fields = [
        FieldDefinition(
            key=f.key,
            label=f.label or f.key,
            category_key=row.key,
            data_type=getattr(f, "data_type", None) or "text",
            description=getattr(f, "description", None),
            examples=list(getattr(f, "examples", None) or []),
            confidence_threshold=(
                f.confidence_threshold
                if getattr(f, "confidence_threshold", None) is not None
                else 0.7
            ),
            requires_human_review=bool(getattr(f, "requires_human_review", False)),
        )
        for f in sorted(getattr(row, "fields", None) or [], key=lambda f: getattr(f, "sort_order", 0) or 0)
    ]
    return CategoryDefinition(
        key=row.key,
        label=row.label or row.key,
        description=getattr(row, "description", None),
        sort_order=getattr(row, "sort_order", 0) or 0,
        fields=fields,
    )


def build_loaded_pack(
    pack: Any,
    categories: Iterable[Any] = (),
    document_types: Iterable[Any] = (),
    prompt_templates: Iterable[Any] = (),
    reconciliation_rules: Iterable[Any] = (),
    action_triggers: Iterable[Any] = (),
) -> LoadedPack:
    """Assemble a LoadedPack and its lookup maps from stored rows.

    Args:
        pack: TaxonomyPack row
        categories: TaxonomyCategory rows with ``fields`` loaded
        document_types: TaxonomyDocumentType rows
        prompt_templates: TaxonomyPromptTemplate rows
        reconciliation_rules: TaxonomyReconciliationRule rows
        action_triggers: TaxonomyActionTrigger rows (active only)

    Returns:
        LoadedPack
    """
    category_defs = sorted(
        (_category_from_row(c) for c in categories), key=lambda c: c.sort_order
    )

    doc_type_defs = [
        DocumentTypeDefinition(
            key=d.key,
            label=d.label or d.key,
            classification_hints=getattr(d, "classification_hints", None),
            activated_categories=list(getattr(d, "activated_categories", None) or []),
        )
        for d in document_types
    ]

    template_defs = [
        PromptTemplate(
            template_type=PromptTemplateType(t.template_type),
            system_prompt=getattr(t, "system_prompt", None),
            user_prompt_template=getattr(t, "user_prompt_template", None),
            model_preference=getattr(t, "model_preference", None),
            temperature=getattr(t, "temperature", None),
            max_tokens=getattr(t, "max_tokens", None),
        )
        for t in prompt_templates
    ]

    rule_defs = [
        ReconciliationRule(
            field_key=r.field_key,
            case_field_mapping=getattr(r, "case_field_mapping", None),
            conflict_detection_mode=ConflictDetectionMode(
                getattr(r, "conflict_detection_mode", None) or ConflictDetectionMode.EXACT
            ),
            auto_apply_threshold=getattr(r, "auto_apply_threshold", None),
            requires_human_review=bool(getattr(r, "requires_human_review", False)),
        )
        for r in reconciliation_rules
    ]

    trigger_defs = [
        ActionTrigger(
            id=getattr(t, "id", None),
            name=t.name,
            description=getattr(t, "description", None),
            trigger_condition=dict(t.trigger_condition or {}),
            action_template=dict(t.action_template or {}),
        )
        for t in action_triggers
    ]

    field_map: Dict[str, FieldDefinition] = {}
    for category in category_defs:
        for f in category.fields:
            field_map[field_map_key(category.key, f.key)] = f

    return LoadedPack(
        id=pack.id,
        key=pack.key,
        name=pack.name,
        practice_area=pack.practice_area,
        version=getattr(pack, "version", None) or 1,
        tenant_id=getattr(pack, "tenant_id", None),
        categories=category_defs,
        document_types=doc_type_defs,
        prompt_templates=template_defs,
        reconciliation_rules=rule_defs,
        action_triggers=trigger_defs,
        field_map=field_map,
        reconciliation_rule_map={r.field_key: r for r in rule_defs},
    )
