"""FastAPI application exposing VaultFinder retrieval over HTTP."""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from fastapi import Depends, FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, Field

from vaultfinder.config import AppConfig
from vaultfinder.errors import (
    ConfigurationError,
    EmbeddingUnavailableError,
    IndexingInProgressError,
)
from vaultfinder.models import SearchOptions, SearchResult
from vaultfinder.service import SearchOrchestrator, build_orchestrator

LOGGER = logging.getLogger(__name__)

MAX_TOP_K = 50

app = FastAPI(title="VaultFinder", version="0.1.0")
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_headers=["*"],
)

_service: Optional[SearchOrchestrator] = None


def configure_service(service: Optional[SearchOrchestrator]) -> None:
    """Install the orchestrator the endpoints use (``None`` resets it)."""
    global _service
    _service = service


def get_service() -> SearchOrchestrator:
    global _service
    if _service is None:
        _service = build_orchestrator(AppConfig())
    return _service


class SearchPayload(BaseModel):
    query: str
    top_k: Optional[int] = Field(default=None, ge=1)
    folder: Optional[str] = None
    threshold: Optional[float] = None
    hybrid: Optional[bool] = None

    def to_options(self) -> SearchOptions:
        return SearchOptions(
            top_k=min(self.top_k, MAX_TOP_K) if self.top_k is not None else None,
            folder=self.folder,
            similarity_threshold=self.threshold,
            use_hybrid_search=self.hybrid,
        )


class RelatedPayload(BaseModel):
    content: str
    top_k: Optional[int] = Field(default=None, ge=1)


class IndexPayload(BaseModel):
    force: bool = False


class SettingsPayload(BaseModel):
    enable_rag: Optional[bool] = None
    provider_priority: Optional[List[str]] = None
    embedding_provider: Optional[str] = None
    ollama_url: Optional[str] = None
    ollama_model: Optional[str] = None
    openai_api_key: Optional[str] = None
    openai_model: Optional[str] = None
    local_model: Optional[str] = None
    omnisearch_url: Optional[str] = None
    chunk_strategy: Optional[str] = None
    chunk_size: Optional[int] = None
    chunk_overlap: Optional[int] = None
    top_k: Optional[int] = None
    similarity_threshold: Optional[float] = None
    use_hybrid_search: Optional[bool] = None
    exclude_folders: Optional[List[str]] = None


def _serialize(result: SearchResult) -> Dict[str, Any]:
    return {
        "document_id": result.document_id,
        "content": result.content,
        "score": result.score,
        "chunk_index": result.chunk_index,
        "metadata": result.metadata,
    }


def _settings_dict(config: AppConfig) -> Dict[str, Any]:
    return {
        "db_path": str(config.db_path) if config.db_path else None,
        "enable_rag": config.enable_rag,
        "provider_priority": list(config.provider_priority),
        "embedding_provider": config.embedding_provider,
        "ollama_url": config.ollama_url,
        "ollama_model": config.ollama_model,
        "openai_api_key_set": bool(config.openai_api_key),
        "openai_model": config.openai_model,
        "local_model": config.local_model,
        "omnisearch_url": config.omnisearch_url,
        "chunk_strategy": config.chunk_strategy,
        "chunk_size": config.chunk_size,
        "chunk_overlap": config.chunk_overlap,
        "top_k": config.top_k,
        "similarity_threshold": config.similarity_threshold,
        "use_hybrid_search": config.use_hybrid_search,
        "exclude_folders": list(config.exclude_folders),
    }


@app.on_event("startup")
async def startup_event() -> None:
    logging.basicConfig(level=logging.INFO, format="[%(levelname)s] %(message)s")


@app.post("/search")
def search_documents(
    payload: SearchPayload, service: SearchOrchestrator = Depends(get_service)
) -> Dict[str, Any]:
    query = payload.query.strip()
    if not query:
        raise HTTPException(status_code=400, detail="Empty query")
    results = service.search(query, payload.to_options())
    return {"results": [_serialize(result) for result in results], "backend": service.active_backend_name}


@app.post("/context")
def query_context(
    payload: SearchPayload, service: SearchOrchestrator = Depends(get_service)
) -> Dict[str, str]:
    query = payload.query.strip()
    if not query:
        raise HTTPException(status_code=400, detail="Empty query")
    return {"context": service.get_context_for_query(query, payload.to_options())}


@app.post("/related")
def related_documents(
    payload: RelatedPayload, service: SearchOrchestrator = Depends(get_service)
) -> Dict[str, Any]:
    if not payload.content.strip():
        raise HTTPException(status_code=400, detail="Empty content")
    results = service.find_related(payload.content, payload.top_k)
    return {"results": [_serialize(result) for result in results]}


@app.get("/stats")
def index_stats(service: SearchOrchestrator = Depends(get_service)) -> Dict[str, Any]:
    return service.get_stats().to_dict()


@app.post("/index")
def start_indexing(
    payload: IndexPayload, service: SearchOrchestrator = Depends(get_service)
) -> Dict[str, Any]:
    try:
        job = service.start_reindex(force=payload.force)
    except IndexingInProgressError as exc:
        raise HTTPException(status_code=409, detail=str(exc)) from exc
    except EmbeddingUnavailableError as exc:
        raise HTTPException(status_code=503, detail=str(exc)) from exc
    except ConfigurationError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    LOGGER.info("Background indexing started (force=%s)", payload.force)
    return {"status": "started", "job": job.snapshot()}


@app.get("/index/status")
def indexing_status(service: SearchOrchestrator = Depends(get_service)) -> Dict[str, Any]:
    job = service.current_job
    if job is None:
        return {"status": "idle"}
    return job.snapshot()


@app.post("/index/cancel")
def cancel_indexing(service: SearchOrchestrator = Depends(get_service)) -> Dict[str, str]:
    job = service.current_job
    if job is None or not job.is_running:
        raise HTTPException(status_code=404, detail="No indexing run in progress")
    job.cancel()
    return {"status": "cancelling"}


@app.post("/documents/{document_id:path}/reindex")
def reindex_document(
    document_id: str, service: SearchOrchestrator = Depends(get_service)
) -> Dict[str, Any]:
    try:
        chunks = service.index_document(document_id)
    except ConfigurationError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return {"status": "ok", "document_id": document_id, "chunks": chunks}


@app.delete("/documents/{document_id:path}")
def delete_document(
    document_id: str, service: SearchOrchestrator = Depends(get_service)
) -> Dict[str, Any]:
    deleted = service.delete_document(document_id)
    if not deleted:
        raise HTTPException(status_code=404, detail=f"Document {document_id} is not indexed")
    return {"status": "ok", "document_id": document_id, "deleted_chunks": deleted}


@app.get("/settings")
def read_settings(service: SearchOrchestrator = Depends(get_service)) -> Dict[str, Any]:
    return _settings_dict(service.get_settings())


@app.post("/settings")
def update_settings(
    payload: SettingsPayload, service: SearchOrchestrator = Depends(get_service)
) -> Dict[str, Any]:
    changes = payload.model_dump(exclude_none=True)
    try:
        config = service.update_settings(**changes)
    except IndexingInProgressError as exc:
        raise HTTPException(status_code=409, detail=str(exc)) from exc
    except ConfigurationError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return _settings_dict(config)

