"""REST routes for document CRUD, mounted under /api."""

from typing import Any

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field, ValidationError

from . import service
from .auth import authenticated_body
from .errors import BadRequest

router = APIRouter(prefix="/api")

ENDPOINTS = ["/api/insert", "/api/insert_many", "/api/query", "/api/update", "/api/delete"]


# ── Pydantic models ──────────────────────────────────────────────────


class InsertRequest(BaseModel):
    collection: str = Field(min_length=1)
    document: dict
    metadata: dict | None = None


class InsertManyRequest(BaseModel):
    collection: str = Field(min_length=1)
    documents: list[dict] = Field(min_length=1)
    metadata: dict | None = None


class QueryRequest(BaseModel):
    collection: str = Field(min_length=1)
    filter: dict = Field(default_factory=dict)
    limit: int = Field(10, ge=1)


class UpdateRequest(BaseModel):
    collection: str = Field(min_length=1)
    filter: dict
    update: dict


class DeleteRequest(BaseModel):
    collection: str = Field(min_length=1)
    filter: dict


def _parse(model: type[BaseModel], body: Any, required: str):
    """Validate ``body`` against ``model`` or raise BadRequest.

    Problems with a required field (or a body that is not an object) produce
    ``Missing required fields: <required>``; problems limited to optional
    fields name those fields instead.
    """
    try:
        return model.model_validate(body)
    except ValidationError as e:
        bad = []
        for err in e.errors():
            field = str(err["loc"][0]) if err["loc"] else None
            if field not in bad:
                bad.append(field)
        optional = [f for f in bad if f is not None and not model.model_fields[f].is_required()]
        if optional and len(optional) == len(bad):
            raise BadRequest(f"Invalid value for field(s): {', '.join(optional)}")
        raise BadRequest(f"Missing required fields: {required}")


def _store(request: Request):
    return request.app.state.store


def _validator(request: Request):
    return request.app.state.validator


# ── Writes ───────────────────────────────────────────────────────────


@router.post("/insert")
def insert(request: Request, body: Any = Depends(authenticated_body)):
    req = _parse(InsertRequest, body, "collection, document")
    return JSONResponse(
        content=service.insert_document(
            _store(request), _validator(request),
            req.collection, req.document, req.metadata,
        ),
    )


@router.post("/insert_many")
def insert_many(request: Request, body: Any = Depends(authenticated_body)):
    req = _parse(InsertManyRequest, body, "collection, documents (array)")
    return JSONResponse(
        content=service.insert_documents(
            _store(request), _validator(request),
            req.collection, req.documents, req.metadata,
        ),
    )


@router.put("/update")
def update(request: Request, body: Any = Depends(authenticated_body)):
    req = _parse(UpdateRequest, body, "collection, filter, update")
    return JSONResponse(content=service.update_document(_store(request), req.collection, req.filter, req.update))


@router.delete("/delete")
def delete(request: Request, body: Any = Depends(authenticated_body)):
    req = _parse(DeleteRequest, body, "collection, filter")
    return JSONResponse(content=service.delete_document(_store(request), req.collection, req.filter))


# ── Reads ────────────────────────────────────────────────────────────


@router.post("/query")
def query(request: Request, body: Any = Depends(authenticated_body)):
    req = _parse(QueryRequest, body, "collection")
    return JSONResponse(content=service.query_documents(_store(request), req.collection, req.filter, req.limit))
