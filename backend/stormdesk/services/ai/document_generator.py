"""
AI Document Generator

Drafts claim documents (summaries, supplement requests, scopes of work,
depreciation letters, homeowner updates) from the claim record, the
property's local building codes and the org's branding.

Facts come only from the database; the model is told not to invent
amounts, dates or policy details.
"""
import logging
from typing import Any, Dict, List, Optional

from openai import OpenAIError
from pydantic import BaseModel
from sqlalchemy.orm import Session

from ...errors import IntegrationError, ValidationFailedError
from ...models.db_models import (
    AIDocumentDB, ClaimDB, DepreciationEventDB, DocumentType, OrgDB,
)
from ..compliance import check_building_codes
from ..tenancy import TenantScope
from ..webhooks import WebhookService
from .llm_client import LLMClient

logger = logging.getLogger(__name__)


DOCUMENT_BRIEFS: Dict[str, Dict[str, str]] = {
    DocumentType.CLAIM_SUMMARY.value: {
        "title": "Claim Summary",
        "brief": "A concise internal summary of the claim: loss, damage, carrier, adjuster, values and next steps.",
    },
    DocumentType.SUPPLEMENT_REQUEST.value: {
        "title": "Supplement Request",
        "brief": (
            "A professional letter to the carrier's adjuster requesting a supplement. Cite the applicable "
            "building code requirements as the basis for items missing from the original scope."
        ),
    },
    DocumentType.SCOPE_OF_WORK.value: {
        "title": "Scope of Work",
        "brief": "A numbered scope of work for the repair, grouped by trade, including code-required items.",
    },
    DocumentType.DEPRECIATION_LETTER.value: {
        "title": "Recoverable Depreciation Request",
        "brief": (
            "A letter to the carrier requesting release of recoverable depreciation now that work is "
            "complete. Use the RCV, ACV and recoverable amounts provided."
        ),
    },
    DocumentType.HOMEOWNER_UPDATE.value: {
        "title": "Homeowner Update",
        "brief": "A friendly, plain-language status update to the homeowner about their claim and what happens next.",
    },
}

SYSTEM_PROMPT = (
    "You are a document assistant for {company}, a storm restoration contractor. "
    "Write clear, professional documents for insurance claims. Use only the facts provided; "
    "when a fact is missing, leave a bracketed placeholder such as [DATE] instead of inventing it. "
    "Sign documents as {company}{license}."
)


class DocumentDraft(BaseModel):
    title: str
    content: str


def _money(value: Optional[float]) -> str:
    return f"${value:,.2f}" if value is not None else "unknown"


class DocumentGenerator:
    """Generates and stores AI documents for one org."""

    def __init__(self, db_session: Session, org_id: str, llm: Optional[LLMClient] = None):
        self.db = db_session
        self.scope = TenantScope(db_session, org_id)
        self.org_id = org_id
        self._llm = llm

    @property
    def llm(self) -> LLMClient:
        if self._llm is None:
            self._llm = LLMClient()
        return self._llm

    # =========================================================================
    # CONTEXT
    # =========================================================================

    def build_context(self, claim: ClaimDB) -> Dict[str, Any]:
        """Facts handed to the model, gathered from the claim and its relations."""
        prop = claim.property
        state = prop.state if prop else None

        codes = check_building_codes(state or "", damage_type=claim.damage_type, trade="all")

        latest_depreciation = (
            self.scope.query(DepreciationEventDB)
            .filter(
                DepreciationEventDB.claim_id == claim.id,
                DepreciationEventDB.rcv.isnot(None),
            )
            .order_by(DepreciationEventDB.created_at.desc())
            .first()
        )

        context = {
            "claim_number": claim.claim_number,
            "title": claim.title,
            "status": claim.status,
            "damage_type": claim.damage_type,
            "date_of_loss": claim.date_of_loss.isoformat() if claim.date_of_loss else None,
            "carrier": claim.carrier,
            "policy_number": claim.policy_number,
            "insured_name": claim.insured_name,
            "adjuster": claim.adjuster_name,
            "estimated_value": _money(claim.estimated_value),
            "approved_value": _money(claim.approved_value),
            "deductible": _money(claim.deductible),
            "description": claim.description,
            "property": None,
            "code_edition": codes.code_edition,
            "code_requirements": codes.recommendations,
            "depreciation": None,
        }
        if prop:
            context["property"] = ", ".join(
                part for part in (prop.street, prop.city, prop.state, prop.zip_code) if part
            )
        if latest_depreciation:
            context["depreciation"] = {
                "rcv": _money(latest_depreciation.rcv),
                "acv": _money(latest_depreciation.acv),
                "recoverable": _money(latest_depreciation.depreciation_amount),
            }
        return context

    def build_prompts(self, org: OrgDB, document_type: str, context: Dict[str, Any], instructions: Optional[str]):
        brief = DOCUMENT_BRIEFS[document_type]
        system_prompt = SYSTEM_PROMPT.format(
            company=org.name,
            license=f" (License #{org.license_number})" if org.license_number else "",
        )

        lines: List[str] = [f"Write a {brief['title']}.", brief["brief"], "", "CLAIM FACTS:"]
        for key, value in context.items():
            if key == "code_requirements" or value in (None, ""):
                continue
            lines.append(f"- {key.replace('_', ' ')}: {value}")
        if context["code_requirements"]:
            lines.append("")
            lines.append("APPLICABLE BUILDING CODE NOTES:")
            lines.extend(f"- {rec}" for rec in context["code_requirements"])
        if instructions:
            lines.append("")
            lines.append(f"ADDITIONAL INSTRUCTIONS: {instructions}")
        return system_prompt, "\n".join(lines)

    # =========================================================================
    # GENERATION
    # =========================================================================

    async def generate(
        self,
        claim_id: str,
        document_type: str,
        instructions: Optional[str] = None,
        user_id: Optional[str] = None,
    ) -> AIDocumentDB:
        if document_type not in DOCUMENT_BRIEFS:
            raise ValidationFailedError(
                f"Unknown document type '{document_type}'",
                extra={"allowed": sorted(DOCUMENT_BRIEFS)},
            )

        claim = self.scope.get_or_404(ClaimDB, claim_id, "Claim")
        org = self.db.query(OrgDB).filter(OrgDB.id == self.org_id).first()

        context = self.build_context(claim)
        system_prompt, user_prompt = self.build_prompts(org, document_type, context, instructions)

        try:
            draft = await self.llm.generate_structured(system_prompt, user_prompt, DocumentDraft)
        except (OpenAIError, ValueError) as e:
            logger.error(f"[AI] {document_type} generation failed for claim {claim.claim_number}: {e}")
            raise IntegrationError("Document generation failed") from e

        document = AIDocumentDB(
            claim_id=claim.id,
            document_type=document_type,
            title=draft.title or f"{DOCUMENT_BRIEFS[document_type]['title']} - {claim.claim_number}",
            content=draft.content,
            model=self.llm.model_name,
            word_count=len(draft.content.split()),
            created_by=user_id,
        )
        self.scope.add(document)

        WebhookService(self.db).trigger_event(self.org_id, "document.generated", {
            "document_id": document.id,
            "document_type": document_type,
            "claim_id": claim.id,
            "claim_number": claim.claim_number,
            "title": document.title,
        })
        self.db.commit()
        self.db.refresh(document)

        logger.info(f"[AI] Generated {document_type} for claim {claim.claim_number} ({document.word_count} words)")
        return document

    # =========================================================================
    # STORED DOCUMENTS
    # =========================================================================

    def list(
        self,
        claim_id: Optional[str] = None,
        document_type: Optional[str] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> Dict[str, Any]:
        query = self.scope.query(AIDocumentDB)
        if claim_id:
            query = query.filter(AIDocumentDB.claim_id == claim_id)
        if document_type:
            query = query.filter(AIDocumentDB.document_type == document_type)
        return TenantScope.paginate(query.order_by(AIDocumentDB.created_at.desc()), limit, offset)

    def get(self, document_id: str) -> AIDocumentDB:
        return self.scope.get_or_404(AIDocumentDB, document_id, "Document")

    def delete(self, document_id: str) -> None:
        self.scope.delete(self.get(document_id))
        self.db.commit()
