"""
HTTP routes for the site backend.
"""

from __future__ import annotations

from typing import Any, Optional

from fastapi import APIRouter, Body, Depends, File, HTTPException, UploadFile
from fastapi.responses import JSONResponse

from formsite.db import DbClient
from formsite.dependencies import get_db_client, get_upload_store
from formsite.errors import ValidationError
from formsite.schemas import (
    ContactMessageResponse,
    ContactRequest,
    CreatedResponse,
    OkResponse,
    TrainingSubmissionResponse,
    TrainingSubmitRequest,
    UploadResponse,
)
from formsite.uploads import LocalUploadStore

router = APIRouter()


@router.get("/health", response_model=OkResponse)
def health():
    return OkResponse()


@router.post("/contact", response_model=CreatedResponse)
def submit_contact(
    payload: Optional[ContactRequest] = None,
    db: DbClient = Depends(get_db_client),
):
    payload = payload or ContactRequest()
    if not payload.name or not payload.email or not payload.message:
        raise ValidationError("Missing fields")
    record = db.insert_contact(
        payload.name, payload.email, payload.phone or "", payload.message
    )
    return CreatedResponse(id=record.id, created_at=record.created_at)


@router.get("/contact", response_model=list[ContactMessageResponse])
def list_contacts(db: DbClient = Depends(get_db_client)):
    return [record.as_dict() for record in db.list_contacts()]


@router.post("/trainings/submit", response_model=CreatedResponse)
def submit_training(
    payload: Optional[TrainingSubmitRequest] = None,
    db: DbClient = Depends(get_db_client),
):
    if payload is None or payload.values is None:
        raise ValidationError("Invalid payload")
    record = db.insert_training_submission(payload.values)
    return CreatedResponse(id=record.id, created_at=record.created_at)


@router.get("/trainings/submits", response_model=list[TrainingSubmissionResponse])
def list_training_submissions(db: DbClient = Depends(get_db_client)):
    return [record.as_dict() for record in db.list_training_submissions()]


@router.post("/upload", response_model=UploadResponse)
def upload_file(
    file: Optional[UploadFile] = File(None),
    uploads: LocalUploadStore = Depends(get_upload_store),
):
    """
    Store a single file sent as multipart field ``file``.
    """
    if file is None:
        raise ValidationError("No file uploaded")
    url = uploads.save(file.filename or "", file.file)
    return UploadResponse(url=url)


@router.get("/content/{key}")
def get_content(key: str, db: DbClient = Depends(get_db_client)):
    entry = db.get_content(key)
    if entry is None:
        raise HTTPException(status_code=404, detail="Not found")
    return JSONResponse(content=entry.value)


@router.put("/content/{key}", response_model=OkResponse)
def put_content(
    key: str,
    value: Any = Body(None),
    db: DbClient = Depends(get_db_client),
):
    db.put_content(key, value)
    return OkResponse()
