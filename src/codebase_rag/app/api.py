# codebase_rag/app/api.py
from __future__ import annotations

import logging
import os
import traceback

from fastapi import FastAPI, HTTPException
from pydantic import BaseModel, Field

from codebase_rag.app.container import build_container
from codebase_rag.common import RerankResult
from codebase_rag.config import GlobalConfig
from codebase_rag.pipelines.rag_pipeline import IndexNotFoundError

app = FastAPI(title="Codebase RAG API", version="0.1.0")
logger = logging.getLogger("codebase_rag.api")


class QueryRequest(BaseModel):
    query: str = Field(min_length=1)


class CitedChunk(BaseModel):
    rank: int
    chunk_id: str
    file_path: str
    start_line: int
    end_line: int
    kind: str
    name: str | None = None
    relevance_score: float
    reason: str | None = None


class QueryResponse(BaseModel):
    answer: str
    context: list[CitedChunk] = Field(default_factory=list)


def _serialize_context(results: list[RerankResult]) -> list[CitedChunk]:
    return [
        CitedChunk(rank=idx, chunk_id=result.chunk.id, **result.to_citation())
        for idx, result in enumerate(results, start=1)
    ]


@app.on_event("startup")
def startup():
    # Docker passes the config location through the environment.
    cfg_path = os.environ.get("CODEBASE_RAG_CONFIG", "config/config.yaml")
    cfg = GlobalConfig.load(cfg_path)
    app.state.container = build_container(cfg)


@app.on_event("shutdown")
def shutdown():
    container = getattr(app.state, "container", None)
    # Only close a reranker the container actually built.
    reranker = vars(container).get("reranker") if container is not None else None
    if reranker is not None:
        reranker.close()


@app.get("/health")
def health():
    return {"status": "ok"}


@app.post("/v1/query", response_model=QueryResponse)
def query(req: QueryRequest):
    # Sync handler: FastAPI runs it in a worker thread. Scoring calls from every
    # request share the reranker's own event loop.
    try:
        result = app.state.container.pipeline.run(req.query)
    except IndexNotFoundError as e:
        raise HTTPException(status_code=409, detail={"error": str(e)})
    except Exception as e:
        logger.exception("Error while handling /v1/query")
        raise HTTPException(
            status_code=500,
            detail={
                "error": f"{type(e).__name__}: {e}",
                "traceback": traceback.format_exc(),
            },
        )

    return QueryResponse(
        answer=str(result.get("response", "")),
        context=_serialize_context(result.get("source_nodes", [])),
    )
