"""CDN admin API: discovery, sync, remote checks, log viewer and rewrite."""
from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from cdnmirror.service import CdnService

router = APIRouter(prefix="/cdn", tags=["cdn"])


def get_service() -> CdnService:
    return CdnService()


class AnalyzePayload(BaseModel):
    store_url: str = ""
    specific_url: str | None = None
    scan_linked_pages: bool = False
    scan_depth: int = Field(default=1, ge=1, le=5)
    existing_urls: list[str] = Field(default_factory=list)
    timeout_s: float | None = Field(default=None, gt=0)


class AdvancedAnalyzePayload(BaseModel):
    store_url: str = ""
    max_pages: int = Field(default=5, ge=1, le=100)
    timeout_s: float | None = Field(default=None, gt=0)


class DirectAnalyzePayload(BaseModel):
    pasted_urls: str = ""


class UrlListPayload(BaseModel):
    urls: list[str] = Field(default_factory=list)


class ValidateBatchPayload(BaseModel):
    batch_urls: list[str] = Field(default_factory=list)
    batch_index: int = Field(default=0, ge=0)
    total_batches: int = Field(default=1, ge=1)


class ValidatePayload(BaseModel):
    timeout_s: float | None = Field(default=None, gt=0)


class RewritePayload(BaseModel):
    html: str
    request_path: str = "/"


@router.post("/analyze")
def analyze(payload: AnalyzePayload, service: CdnService = Depends(get_service)) -> dict[str, Any]:
    return service.analyze(
        payload.store_url,
        specific_url=payload.specific_url,
        scan_linked_pages=payload.scan_linked_pages,
        scan_depth=payload.scan_depth,
        existing_urls=payload.existing_urls,
        timeout_s=payload.timeout_s,
    )


@router.post("/advanced-analyze")
def advanced_analyze(
    payload: AdvancedAnalyzePayload, service: CdnService = Depends(get_service)
) -> dict[str, Any]:
    return service.advanced_analyze(payload.store_url, payload.max_pages, timeout_s=payload.timeout_s)


@router.post("/direct-analyze")
def direct_analyze(payload: DirectAnalyzePayload, service: CdnService = Depends(get_service)) -> dict[str, Any]:
    return service.direct_analyze(payload.pasted_urls)


@router.post("/upload")
def upload(payload: UrlListPayload, service: CdnService = Depends(get_service)) -> dict[str, Any]:
    return service.upload_batch(payload.urls)


@router.post("/validate")
def validate(payload: ValidatePayload | None = None, service: CdnService = Depends(get_service)) -> dict[str, Any]:
    timeout_s = payload.timeout_s if payload else None
    return service.validate_custom_urls(timeout_s=timeout_s)


@router.post("/validate-batch")
def validate_batch(payload: ValidateBatchPayload, service: CdnService = Depends(get_service)) -> dict[str, Any]:
    return service.validate_batch(payload.batch_urls, payload.batch_index, payload.total_batches)


@router.post("/test-connection")
def test_connection(service: CdnService = Depends(get_service)) -> dict[str, Any]:
    return service.test_remote_connection()


@router.get("/debug")
def debug(service: CdnService = Depends(get_service)) -> dict[str, Any]:
    return service.debug_info()


@router.post("/purge")
def purge(service: CdnService = Depends(get_service)) -> dict[str, Any]:
    return service.purge_all()


@router.get("/log")
def view_log(service: CdnService = Depends(get_service)) -> dict[str, Any]:
    return service.view_log()


@router.post("/rewrite")
def rewrite(payload: RewritePayload, service: CdnService = Depends(get_service)) -> dict[str, Any]:
    """Rewrite posted HTML with the configured custom URL list (fresh cache per call)."""
    return service.rewrite_html(payload.html, payload.request_path)
