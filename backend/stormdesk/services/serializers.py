"""
Response shapes for ORM rows.

Routers return plain dicts; these keep the field lists in one place.
"""
from datetime import date, datetime
from typing import Any, Callable, Dict, Optional


def _iso(value) -> Optional[str]:
    if isinstance(value, (date, datetime)):
        return value.isoformat()
    return value


def page_to_dict(page: Dict[str, Any], serialize: Callable[[Any], Dict[str, Any]]) -> Dict[str, Any]:
    """Serialize the items of a TenantScope.paginate result."""
    return {**page, "items": [serialize(item) for item in page["items"]]}


def org_to_dict(org) -> Dict[str, Any]:
    return {
        "id": org.id,
        "name": org.name,
        "slug": org.slug,
        "subscription_status": org.subscription_status,
        "plan_key": org.plan_key,
        "branding": branding_to_dict(org),
        "created_at": _iso(org.created_at),
    }


def branding_to_dict(org) -> Dict[str, Any]:
    return {
        "company_name": org.name,
        "logo_url": org.logo_url,
        "primary_color": org.primary_color,
        "accent_color": org.accent_color,
        "tagline": org.tagline,
        "license_number": org.license_number,
        "phone": org.phone,
        "email": org.email,
        "website": org.website,
    }


def user_to_dict(user) -> Dict[str, Any]:
    return {
        "id": user.id,
        "email": user.email,
        "full_name": user.full_name,
        "is_active": user.is_active,
        "created_at": _iso(user.created_at),
        "last_login_at": _iso(user.last_login_at),
    }


def member_to_dict(membership) -> Dict[str, Any]:
    return {
        "membership_id": membership.id,
        "user_id": membership.user_id,
        "email": membership.user.email,
        "full_name": membership.user.full_name,
        "role": membership.role,
        "joined_at": _iso(membership.created_at),
    }


def property_to_dict(prop) -> Dict[str, Any]:
    return {
        "id": prop.id,
        "name": prop.name,
        "street": prop.street,
        "city": prop.city,
        "state": prop.state,
        "zip_code": prop.zip_code,
        "roof_type": prop.roof_type,
        "stories": prop.stories,
        "square_footage": prop.square_footage,
        "year_built": prop.year_built,
        "created_at": _iso(prop.created_at),
    }


def contact_to_dict(contact) -> Dict[str, Any]:
    return {
        "id": contact.id,
        "first_name": contact.first_name,
        "last_name": contact.last_name,
        "email": contact.email,
        "phone": contact.phone,
        "company": contact.company,
        "street": contact.street,
        "city": contact.city,
        "state": contact.state,
        "zip_code": contact.zip_code,
        "slug": contact.slug,
        "notes": contact.notes,
        "created_at": _iso(contact.created_at),
    }


def activity_to_dict(activity) -> Dict[str, Any]:
    return {
        "id": activity.id,
        "event_type": activity.event_type,
        "message": activity.message,
        "user_id": activity.user_id,
        "metadata": activity.event_metadata,
        "created_at": _iso(activity.created_at),
    }


def claim_to_dict(claim, include_relations: bool = False) -> Dict[str, Any]:
    data = {
        "id": claim.id,
        "claim_number": claim.claim_number,
        "title": claim.title,
        "description": claim.description,
        "carrier": claim.carrier,
        "policy_number": claim.policy_number,
        "damage_type": claim.damage_type,
        "date_of_loss": _iso(claim.date_of_loss),
        "status": claim.status,
        "lifecycle_stage": claim.lifecycle_stage,
        "priority": claim.priority,
        "insured_name": claim.insured_name,
        "homeowner_email": claim.homeowner_email,
        "adjuster_name": claim.adjuster_name,
        "adjuster_phone": claim.adjuster_phone,
        "adjuster_email": claim.adjuster_email,
        "estimated_value": claim.estimated_value,
        "approved_value": claim.approved_value,
        "deductible": claim.deductible,
        "property_id": claim.property_id,
        "contact_id": claim.contact_id,
        "created_by": claim.created_by,
        "created_at": _iso(claim.created_at),
        "updated_at": _iso(claim.updated_at),
    }
    if include_relations:
        data["property"] = property_to_dict(claim.property) if claim.property else None
        data["contact"] = contact_to_dict(claim.contact) if claim.contact else None
    return data


def lead_to_dict(lead) -> Dict[str, Any]:
    return {
        "id": lead.id,
        "title": lead.title,
        "description": lead.description,
        "source": lead.source,
        "stage": lead.stage,
        "temperature": lead.temperature,
        "value": lead.value,
        "probability": lead.probability,
        "urgency": lead.urgency,
        "budget": lead.budget,
        "work_type": lead.work_type,
        "job_type": lead.job_type,
        "job_category": lead.job_category,
        "warmth_score": lead.warmth_score,
        "contact_id": lead.contact_id,
        "contact": contact_to_dict(lead.contact) if lead.contact else None,
        "assigned_to": lead.assigned_to,
        "follow_up_date": _iso(lead.follow_up_date),
        "converted_job_id": lead.converted_job_id,
        "converted_claim_id": lead.converted_claim_id,
        "created_at": _iso(lead.created_at),
        "updated_at": _iso(lead.updated_at),
    }


def estimate_to_dict(estimate) -> Dict[str, Any]:
    return {
        "id": estimate.id,
        "claim_id": estimate.claim_id,
        "lead_id": estimate.lead_id,
        "title": estimate.title,
        "status": estimate.status,
        "line_items": estimate.line_items or [],
        "overhead_pct": estimate.overhead_pct,
        "profit_pct": estimate.profit_pct,
        "tax_rate": estimate.tax_rate,
        "subtotal": estimate.subtotal,
        "overhead_amount": estimate.overhead_amount,
        "profit_amount": estimate.profit_amount,
        "tax_amount": estimate.tax_amount,
        "total": estimate.total,
        "notes": estimate.notes,
        "created_at": _iso(estimate.created_at),
        "updated_at": _iso(estimate.updated_at),
    }


def job_to_dict(job) -> Dict[str, Any]:
    return {
        "id": job.id,
        "title": job.title,
        "job_type": job.job_type,
        "status": job.status,
        "crew_name": job.crew_name,
        "scheduled_start": _iso(job.scheduled_start),
        "scheduled_end": _iso(job.scheduled_end),
        "address": job.address,
        "notes": job.notes,
        "lead_id": job.lead_id,
        "claim_id": job.claim_id,
        "completed_at": _iso(job.completed_at),
        "created_at": _iso(job.created_at),
    }


def notification_to_dict(notification) -> Dict[str, Any]:
    return {
        "id": notification.id,
        "kind": notification.kind,
        "title": notification.title,
        "body": notification.body,
        "link": notification.link,
        "is_read": notification.is_read,
        "created_at": _iso(notification.created_at),
        "read_at": _iso(notification.read_at),
    }


def webhook_to_dict(hook, include_secret: bool = False) -> Dict[str, Any]:
    data = {
        "id": hook.id,
        "url": hook.url,
        "description": hook.description,
        "events": hook.events or [],
        "is_active": hook.is_active,
        "retry_strategy": hook.retry_strategy,
        "max_retries": hook.max_retries,
        "timeout_ms": hook.timeout_ms,
        "headers": hook.headers or {},
        "failure_count": hook.failure_count,
        "disabled_at": _iso(hook.disabled_at),
        "created_at": _iso(hook.created_at),
    }
    if include_secret:
        data["secret"] = hook.secret
    return data


def delivery_to_dict(delivery) -> Dict[str, Any]:
    return {
        "id": delivery.id,
        "webhook_id": delivery.webhook_id,
        "event": delivery.event,
        "payload": delivery.payload,
        "status": delivery.status,
        "attempts": delivery.attempts,
        "last_attempt_at": _iso(delivery.last_attempt_at),
        "next_retry_at": _iso(delivery.next_retry_at),
        "response_status": delivery.response_status,
        "error": delivery.error,
        "created_at": _iso(delivery.created_at),
    }


def document_to_dict(document, include_content: bool = True) -> Dict[str, Any]:
    data = {
        "id": document.id,
        "claim_id": document.claim_id,
        "document_type": document.document_type,
        "title": document.title,
        "model": document.model,
        "word_count": document.word_count,
        "created_by": document.created_by,
        "created_at": _iso(document.created_at),
    }
    if include_content:
        data["content"] = document.content
    return data


def depreciation_event_to_dict(event) -> Dict[str, Any]:
    return {
        "id": event.id,
        "claim_id": event.claim_id,
        "status": event.status,
        "rcv": event.rcv,
        "acv": event.acv,
        "depreciation_amount": event.depreciation_amount,
        "rate": event.rate,
        "years": event.years,
        "note": event.note,
        "created_by": event.created_by,
        "created_at": _iso(event.created_at),
    }


def connection_to_dict(connection, viewer_org_id: str) -> Dict[str, Any]:
    outgoing = connection.requester_org_id == viewer_org_id
    partner = connection.target_org if outgoing else connection.requester_org
    return {
        "id": connection.id,
        "direction": "outgoing" if outgoing else "incoming",
        "partner_org_id": partner.id if partner else None,
        "partner_name": partner.name if partner else None,
        "trade": connection.trade,
        "message": connection.message,
        "status": connection.status,
        "created_at": _iso(connection.created_at),
        "responded_at": _iso(connection.responded_at),
    }
