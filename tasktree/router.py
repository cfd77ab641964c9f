"""Shared API router for blob store endpoints."""

from __future__ import annotations

from fastapi import APIRouter

store_router = APIRouter()
