"""
StormDesk - AI Documents Router
"""
from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from pydantic import BaseModel, field_validator
from sqlalchemy.orm import Session

from ..auth import OrgContext
from ..database import get_db
from ..rbac import require_permission
from ..services.ai import DOCUMENT_BRIEFS, DocumentGenerator
from ..services.serializers import document_to_dict, page_to_dict

router = APIRouter(prefix="/documents", tags=["documents"])


class GenerateRequest(BaseModel):
    claim_id: str
    document_type: str
    instructions: Optional[str] = None

    @field_validator('document_type')
    @classmethod
    def validate_type(cls, v):
        if v not in DOCUMENT_BRIEFS:
            raise ValueError(f'Invalid document type. Must be one of: {", ".join(sorted(DOCUMENT_BRIEFS))}')
        return v


def get_document_generator(
    ctx: OrgContext = Depends(require_permission("documents:view")),
    db: Session = Depends(get_db),
) -> DocumentGenerator:
    return DocumentGenerator(db, ctx.org_id)


@router.get("/types", response_model=dict)
async def document_types(ctx: OrgContext = Depends(require_permission("documents:view"))):
    return {
        "types": [{"key": key, "title": brief["title"]} for key, brief in DOCUMENT_BRIEFS.items()],
    }


@router.post("/generate", response_model=dict, status_code=status.HTTP_201_CREATED)
async def generate_document(
    request: GenerateRequest,
    ctx: OrgContext = Depends(require_permission("documents:create")),
    generator: DocumentGenerator = Depends(get_document_generator),
):
    """
    Draft a document for a claim with the LLM.
    The prompt carries the claim, property, org branding and the building
    codes for the property's state. Provider failures return 502.
    """
    document = await generator.generate(request.claim_id, request.document_type, request.instructions, ctx.user_id)
    return document_to_dict(document)


@router.get("", response_model=dict)
async def list_documents(
    claim_id: Optional[str] = None,
    document_type: Optional[str] = None,
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    generator: DocumentGenerator = Depends(get_document_generator),
):
    page = generator.list(claim_id, document_type, limit, offset)
    return page_to_dict(page, lambda d: document_to_dict(d, include_content=False))


@router.get("/{document_id}", response_model=dict)
async def get_document(document_id: str, generator: DocumentGenerator = Depends(get_document_generator)):
    return document_to_dict(generator.get(document_id))


@router.delete("/{document_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_document(
    document_id: str,
    ctx: OrgContext = Depends(require_permission("documents:delete")),
    db: Session = Depends(get_db),
):
    DocumentGenerator(db, ctx.org_id).delete(document_id)
