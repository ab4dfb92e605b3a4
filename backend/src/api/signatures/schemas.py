"""Pydantic schemas for the e-signature API"""

from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field


class SubmitterIn(BaseModel):
    """One signer in a create-submission request"""
    email: str
    name: Optional[str] = None
    phone: Optional[str] = None
    role: Optional[str] = None
    values: Optional[Dict[str, Any]] = None

    model_config = ConfigDict(extra='forbid')


class CreateSubmissionRequest(BaseModel):
    """Schema for POST /api/docuseal/submissions"""
    template_id: str
    submitters: List[SubmitterIn] = Field(default_factory=list)
    send_email: bool = False
    message: Optional[Union[str, Dict[str, str]]] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)


class CompleteSubmissionRequest(BaseModel):
    values: Dict[str, Any] = Field(default_factory=dict)


class DeclineSubmissionRequest(BaseModel):
    reason: Optional[str] = None


class ReminderRequest(BaseModel):
    email: Optional[str] = None
