"""
Pydantic schemas for the site backend.
"""

from __future__ import annotations

from typing import Any, Dict, Literal, Optional

from pydantic import BaseModel


class ContactRequest(BaseModel):
    # Presence is checked in the route so a missing field maps to a 400.
    name: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    message: Optional[str] = None


class CreatedResponse(BaseModel):
    id: int
    created_at: str


class ContactMessageResponse(BaseModel):
    id: int
    name: Optional[str] = None
    email: Optional[str] = None
    phone: str = ""
    message: Optional[str] = None
    created_at: Optional[str] = None


class TrainingSubmitRequest(BaseModel):
    values: Optional[Dict[str, Any]] = None


class TrainingSubmissionResponse(BaseModel):
    id: int
    createdAt: Optional[str] = None
    values: Dict[str, Any]


class UploadResponse(BaseModel):
    url: str


class OkResponse(BaseModel):
    ok: Literal[True] = True
