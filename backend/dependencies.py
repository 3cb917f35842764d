# dependencies.py — FastAPI accessors for process-wide services
from fastapi import Request

from audit import AuditLog
from coordinator import MutationCoordinator
from presence import PresenceRegistry


def get_coordinator(request: Request) -> MutationCoordinator:
    return request.app.state.coordinator


def get_audit_log(request: Request) -> AuditLog:
    return request.app.state.audit_log


def get_presence(request: Request) -> PresenceRegistry:
    return request.app.state.presence
