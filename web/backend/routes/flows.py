"""Flow CRUD and validation routes."""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Dict, List
import uuid

from fastapi import APIRouter, HTTPException

from convoflow.config import resolve_flows_dir
from convoflow.visual.interfaces import validate_flow as run_validation
from convoflow.visual.models import ValidationResult

from ..models import FlowCreateRequest, FlowDefinition, FlowUpdateRequest

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/flows", tags=["flows"])

# File-based persistence (CONVOFLOW_FLOWS_DIR, default ./flows)
FLOWS_DIR: Path = resolve_flows_dir()


def _load_flows_from_disk() -> Dict[str, FlowDefinition]:
    """Load all flows from disk on startup."""
    flows: Dict[str, FlowDefinition] = {}
    for path in FLOWS_DIR.glob("*.json"):
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
            flow = FlowDefinition.model_validate(data)
            flows[flow.id] = flow
            logger.info(f"Loaded flow '{flow.name}' ({flow.id}) from {path}")
        except Exception as e:
            logger.warning(f"Failed to load flow from {path}: {e}")
    return flows


def _save_flow_to_disk(flow: FlowDefinition) -> None:
    path = FLOWS_DIR / f"{flow.id}.json"
    path.write_text(flow.model_dump_json(indent=2), encoding="utf-8")
    logger.info(f"Saved flow '{flow.name}' ({flow.id}) to {path}")


def _delete_flow_from_disk(flow_id: str) -> None:
    path = FLOWS_DIR / f"{flow_id}.json"
    if path.exists():
        path.unlink()
        logger.info(f"Deleted flow file {path}")


# Load existing flows from disk on module import
_flows: Dict[str, FlowDefinition] = _load_flows_from_disk()


def get_flow_or_404(flow_id: str) -> FlowDefinition:
    flow = _flows.get(flow_id)
    if flow is None:
        raise HTTPException(status_code=404, detail=f"Flow '{flow_id}' not found")
    return flow


@router.get("", response_model=List[FlowDefinition])
async def list_flows():
    """List all saved flows."""
    return list(_flows.values())


@router.post("", response_model=FlowDefinition)
async def create_flow(request: FlowCreateRequest):
    """Create a new flow definition."""
    payload = request.model_dump(exclude_none=True)
    payload.setdefault("id", str(uuid.uuid4())[:8])
    if payload["id"] in _flows:
        raise HTTPException(status_code=409, detail=f"Flow '{payload['id']}' already exists")
    flow = FlowDefinition.model_validate(payload)
    _flows[flow.id] = flow
    _save_flow_to_disk(flow)
    return flow


@router.get("/{flow_id}", response_model=FlowDefinition)
async def get_flow(flow_id: str):
    """Get a specific flow by ID."""
    return get_flow_or_404(flow_id)


@router.put("/{flow_id}", response_model=FlowDefinition)
async def update_flow(flow_id: str, request: FlowUpdateRequest):
    """Update an existing flow (definitions are immutable, so a new value replaces the old one)."""
    current = get_flow_or_404(flow_id)
    payload = current.model_dump()
    payload.update(request.model_dump(exclude_none=True))
    payload["id"] = flow_id
    flow = FlowDefinition.model_validate(payload)
    _flows[flow_id] = flow
    _save_flow_to_disk(flow)
    return flow


@router.delete("/{flow_id}")
async def delete_flow(flow_id: str):
    """Delete a flow."""
    get_flow_or_404(flow_id)
    del _flows[flow_id]
    _delete_flow_from_disk(flow_id)
    return {"status": "deleted", "id": flow_id}


@router.post("/{flow_id}/validate", response_model=ValidationResult)
async def validate_flow(flow_id: str):
    """Validate a flow without executing it."""
    return run_validation(get_flow_or_404(flow_id))
