# matterflow/api/v1/dependencies.py
"""Shared FastAPI dependencies for the workflow endpoints"""
from typing import Optional

from fastapi import Header, Request

from matterflow.engine import WorkflowEngine


def get_workflow_engine(request: Request) -> WorkflowEngine:
    """The engine instance built at application startup"""
    return request.app.state.workflow_engine


def get_actor_id(x_actor_id: Optional[str] = Header(None, max_length=64)) -> Optional[str]:
    """Acting user forwarded by the calling service; identity is verified upstream"""
    return x_actor_id


def resolve_actor(body_actor: Optional[str], header_actor: Optional[str]) -> Optional[str]:
    return body_actor or header_actor
