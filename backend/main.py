"""FastAPI entrypoint for the Termbook backend."""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Optional

import uvicorn
from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import Response

from ai_service import LanguageModelUnavailable
from app_state import TermbookAppState
from config import configure_logging, settings
from csv_codec import export_filename
from models import (
    CreateWorkspaceRequest,
    DuplicateGroupPayload,
    DuplicatesResponsePayload,
    EnhanceRequest,
    EnhanceResponsePayload,
    Entry,
    EntryPayload,
    ExtractedTermPayload,
    ExtractRequest,
    ExtractResponsePayload,
    ImportRequest,
    ImportResponsePayload,
    OpenWorkspaceRequest,
    PromoteRequest,
    PromoteResponsePayload,
    RemoveDuplicatesResponsePayload,
    TagsResponsePayload,
    TermsResponsePayload,
    TermWriteRequest,
    WorkspaceInfoPayload,
    WorkspaceResponsePayload,
    WorkspacesResponsePayload,
    new_entry_id,
)

configure_logging()
logger = logging.getLogger(__name__)

app = FastAPI(title="Termbook Backend", description="Glossary curation backend API")

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

state = TermbookAppState()


def _glossary():
    return state.current().glossary


def _workspace_payload(workspace, active: bool) -> WorkspaceInfoPayload:
    return WorkspaceInfoPayload(
        name=workspace.name,
        path=str(workspace.root),
        store=workspace.store_backend,
        remote_table=workspace.remote_table,
        is_active=active,
    )


@app.get("/", tags=["health"])
async def root():
    return {"status": "ok", "message": "Termbook backend is running"}


@app.get("/health", tags=["health"])
async def health():
    return {"status": "ok", "message": "Termbook backend is running"}


# ---------------------------------------------------------------------------
# Terms
# ---------------------------------------------------------------------------


@app.get("/terms", response_model=TermsResponsePayload, tags=["terms"])
async def list_terms(q: Optional[str] = None, tag: Optional[str] = None, kpi: bool = False):
    try:
        entries = await asyncio.to_thread(_glossary().list_terms, query=q, tag=tag, kpi_only=kpi)
        return TermsResponsePayload(
            terms=[EntryPayload.from_entry(entry) for entry in entries], total=len(entries)
        )
    except Exception as exc:
        raise HTTPException(status_code=500, detail=str(exc))


@app.get("/terms/{term_id}", response_model=EntryPayload, tags=["terms"])
async def get_term(term_id: str):
    try:
        return EntryPayload.from_entry(await asyncio.to_thread(_glossary().get_term, term_id))
    except KeyError:
        raise HTTPException(status_code=404, detail="Term not found")
    except Exception as exc:
        raise HTTPException(status_code=500, detail=str(exc))


@app.post("/terms", response_model=EntryPayload, tags=["terms"])
async def create_term(request: TermWriteRequest):
    entry = Entry(
        id=new_entry_id(),
        term=request.term or "",
        definition=request.definition or "",
        acronym=(request.acronym or "").strip() or None,
        tags=list(request.tags or []),
        related_terms=list(request.related_terms or []),
        calculation=(request.calculation or "").strip() or None,
    )
    try:
        return EntryPayload.from_entry(await asyncio.to_thread(_glossary().save_term, entry))
    except ValueError as exc:
        raise HTTPException(status_code=422, detail=str(exc))
    except Exception as exc:
        raise HTTPException(status_code=500, detail=str(exc))


@app.put("/terms/{term_id}", response_model=EntryPayload, tags=["terms"])
async def update_term(term_id: str, request: TermWriteRequest):
    try:
        entry = await asyncio.to_thread(
            _glossary().update_term,
            term_id,
            term=request.term,
            definition=request.definition,
            acronym=request.acronym,
            tags=request.tags,
            related_terms=request.related_terms,
            calculation=request.calculation,
        )
        return EntryPayload.from_entry(entry)
    except KeyError:
        raise HTTPException(status_code=404, detail="Term not found")
    except ValueError as exc:
        raise HTTPException(status_code=422, detail=str(exc))
    except Exception as exc:
        raise HTTPException(status_code=500, detail=str(exc))


@app.delete("/terms/{term_id}", tags=["terms"])
async def delete_term(term_id: str):
    glossary = _glossary()
    if await asyncio.to_thread(glossary.store.get, term_id) is None:
        raise HTTPException(status_code=404, detail="Term not found")
    if not await asyncio.to_thread(glossary.delete_term, term_id):
        raise HTTPException(status_code=500, detail="Failed to delete term")
    return {"success": True, "id": term_id}


@app.delete("/terms", tags=["terms"])
async def clear_terms():
    if not await asyncio.to_thread(_glossary().clear_all):
        raise HTTPException(status_code=500, detail="Failed to clear glossary")
    return {"success": True}


@app.get("/tags", response_model=TagsResponsePayload, tags=["terms"])
async def tags():
    try:
        return TagsResponsePayload(tags=await asyncio.to_thread(_glossary().tags))
    except Exception as exc:
        raise HTTPException(status_code=500, detail=str(exc))


# ---------------------------------------------------------------------------
# CSV
# ---------------------------------------------------------------------------


@app.post("/import", response_model=ImportResponsePayload, tags=["csv"])
async def import_csv(request: ImportRequest):
    result = await asyncio.to_thread(_glossary().import_csv, request.content)
    return ImportResponsePayload(
        imported=result.imported, skipped=result.skipped, errors=result.errors
    )


@app.get("/export", tags=["csv"])
async def export_csv():
    try:
        content = await asyncio.to_thread(_glossary().export_csv)
    except Exception as exc:
        raise HTTPException(status_code=500, detail=str(exc))
    return Response(
        content=content,
        media_type="text/csv; charset=utf-8",
        headers={"Content-Disposition": f"attachment; filename={export_filename()}"},
    )


# ---------------------------------------------------------------------------
# Duplicates
# ---------------------------------------------------------------------------


@app.get("/duplicates", response_model=DuplicatesResponsePayload, tags=["duplicates"])
async def duplicates():
    try:
        resolution = await asyncio.to_thread(_glossary().plan_duplicate_removal)
    except Exception as exc:
        raise HTTPException(status_code=500, detail=str(exc))

    groups = [
        DuplicateGroupPayload(
            keep_id=keep_id,
            terms=[EntryPayload.from_entry(entry) for entry in group.entries],
        )
        for group, keep_id in zip(resolution.groups, resolution.keep_ids)
    ]
    return DuplicatesResponsePayload(groups=groups, duplicate_count=resolution.duplicate_count)


@app.post("/duplicates/remove", response_model=RemoveDuplicatesResponsePayload, tags=["duplicates"])
async def remove_duplicates():
    try:
        resolution, deleted = await asyncio.to_thread(_glossary().remove_duplicates)
    except Exception as exc:
        raise HTTPException(status_code=500, detail=str(exc))
    return RemoveDuplicatesResponsePayload(
        success=len(deleted) == len(resolution.delete_ids),
        removed=len(deleted),
        deleted_ids=deleted,
    )


# ---------------------------------------------------------------------------
# Extraction
# ---------------------------------------------------------------------------


@app.post("/extract", response_model=ExtractResponsePayload, tags=["extraction"])
async def extract(request: ExtractRequest):
    started = time.time()
    try:
        candidates = await asyncio.to_thread(state.extractor.extract, request.transcript)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc))
    except LanguageModelUnavailable as exc:
        raise HTTPException(status_code=503, detail=str(exc))
    except Exception as exc:
        logger.exception("Extraction failed")
        raise HTTPException(status_code=500, detail=str(exc))

    flags = await asyncio.to_thread(
        _glossary().already_defined, [candidate.term for candidate in candidates]
    )
    terms = [
        ExtractedTermPayload.from_term(candidate, is_duplicate=flag)
        for candidate, flag in zip(candidates, flags)
    ]
    return ExtractResponsePayload(
        terms=terms, total_found=len(terms), processing_time=time.time() - started
    )


@app.post("/enhance", response_model=EnhanceResponsePayload, tags=["extraction"])
async def enhance(request: EnhanceRequest):
    try:
        enhanced = await asyncio.to_thread(
            state.enhancer.enhance, [term.to_term() for term in request.terms]
        )
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc))
    except LanguageModelUnavailable as exc:
        raise HTTPException(status_code=503, detail=str(exc))
    except Exception as exc:
        logger.exception("Enhancement failed")
        raise HTTPException(status_code=500, detail=str(exc))

    return EnhanceResponsePayload(
        terms=[ExtractedTermPayload.from_term(term) for term in enhanced],
        enhanced=len(enhanced),
    )


@app.post("/terms/promote", response_model=PromoteResponsePayload, tags=["extraction"])
async def promote(request: PromoteRequest):
    try:
        result, skipped = await asyncio.to_thread(
            _glossary().promote, [term.to_term() for term in request.terms]
        )
    except Exception as exc:
        raise HTTPException(status_code=500, detail=str(exc))
    return PromoteResponsePayload(saved=result.accepted_count, skipped=skipped, error=result.error)


# ---------------------------------------------------------------------------
# Workspaces
# ---------------------------------------------------------------------------


@app.get("/workspaces", response_model=WorkspacesResponsePayload, tags=["workspaces"])
async def workspaces():
    active = state.current().workspace.root
    listed = await asyncio.to_thread(state.workspace_manager.list_workspaces)
    return WorkspacesResponsePayload(
        workspaces=[_workspace_payload(workspace, workspace.root == active) for workspace in listed]
    )


@app.post("/workspaces", response_model=WorkspaceResponsePayload, tags=["workspaces"])
async def create_workspace(request: CreateWorkspaceRequest):
    try:
        services = await asyncio.to_thread(
            state.create_workspace,
            request.name,
            store_backend=request.store,
            remote_table=request.remote_table,
        )
    except ValueError as exc:
        raise HTTPException(status_code=422, detail=str(exc))
    except Exception as exc:
        raise HTTPException(status_code=500, detail=str(exc))
    return WorkspaceResponsePayload(workspace=_workspace_payload(services.workspace, True))


@app.post("/workspaces/open", response_model=WorkspaceResponsePayload, tags=["workspaces"])
async def open_workspace(request: OpenWorkspaceRequest):
    try:
        services = await asyncio.to_thread(state.open_workspace, name=request.name, path=request.path)
    except FileNotFoundError:
        raise HTTPException(status_code=404, detail="Workspace not found")
    except ValueError as exc:
        raise HTTPException(status_code=422, detail=str(exc))
    except Exception as exc:
        raise HTTPException(status_code=500, detail=str(exc))
    return WorkspaceResponsePayload(workspace=_workspace_payload(services.workspace, True))


if __name__ == "__main__":
    uvicorn.run(app, host=settings.host, port=settings.port)
