"""Learning-sticky endpoints: generation, listing, domains and bulk operations."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel, Field

from stickies.api.deps import get_service, require_user
from stickies.service import StickiesService

router = APIRouter()


class GenerateIn(BaseModel):
    domain: str = ""
    refine: str | None = None


class CombineIn(BaseModel):
    domains: list[str] = Field(default_factory=list)
    new_domain: str = Field(default="", alias="newDomain")


@router.post("/generate")
def generate(
    body: GenerateIn,
    owner_id: str = Depends(require_user),
    service: StickiesService = Depends(get_service),
):
    generated = service.generate_stickies(owner_id, body.domain, body.refine)
    return {
        "domain": generated.domain,
        "learningStickiesCreated": len(generated.stickies),
        "learningStickies": [s.to_dict() for s in generated.stickies],
    }


@router.get("")
def list_stickies(
    domain: str | None = None,
    ingestion_id: str | None = Query(None, alias="ingestionId"),
    limit: int = Query(100, ge=1, le=500),
    offset: int = Query(0, ge=0),
    owner_id: str = Depends(require_user),
    service: StickiesService = Depends(get_service),
):
    stickies = service.list_stickies(
        owner_id, domain=domain, ingestion_id=ingestion_id, limit=limit, offset=offset
    )
    return {"learningStickies": [s.to_dict() for s in stickies], "count": len(stickies)}


@router.delete("")
def delete_stickies(
    id: str | None = None,
    domain: str | None = None,
    owner_id: str = Depends(require_user),
    service: StickiesService = Depends(get_service),
):
    """Delete one sticky (``?id=``) or every sticky in a domain (``?domain=``)."""
    if id:
        service.delete_sticky(owner_id, id)
        return {"success": True, "deleted": 1}
    if domain:
        return {"success": True, "deleted": service.delete_domain(owner_id, domain)}
    raise HTTPException(status_code=400, detail="Provide either id or domain to delete.")


@router.get("/domains")
def domains(
    owner_id: str = Depends(require_user),
    service: StickiesService = Depends(get_service),
):
    return {
        "domains": [{"domain": d.domain, "count": d.count} for d in service.get_domains(owner_id)]
    }


@router.post("/combine")
def combine(
    body: CombineIn,
    owner_id: str = Depends(require_user),
    service: StickiesService = Depends(get_service),
):
    moved = service.combine_domains(owner_id, body.domains, body.new_domain)
    return {"combined": True, "newDomain": body.new_domain.strip(), "stickiesMoved": moved}
