"""Pydantic models for the REST server."""

from __future__ import annotations

from pydantic import BaseModel


class DeployResponse(BaseModel):
    status: str
    message: str = ""
    cycles: int = 0


class HealthResponse(BaseModel):
    status: str
    version: str
    deployment_in_progress: bool
    pending: bool


class SettingValue(BaseModel):
    value: str
