"""
Audit trail for authorization-relevant mutations.

Records go through the `log_audit_event` RPC, which writes the `audit_logs`
table with definer rights:

audit_logs:
- id: uuid (primary key)
- user_id: uuid (actor, nullable)
- organization_id: uuid (nullable)
- action: text - e.g. "bulk.delete", "user.assign_role", "organization.create"
- resource_type: text - e.g. "users", "user", "organization"
- resource_id: text (nullable)
- old_values / new_values: jsonb
- ip_address: inet (nullable)
- user_agent: text (nullable)
- created_at: timestamptz (default now())
"""

from dataclasses import dataclass
from typing import Any, Dict, List, Optional
import logging

from fastapi import Request
from supabase import Client

from panel.config.settings import settings
from panel.core.errors import StoreError

logger = logging.getLogger(__name__)


@dataclass
class RequestProvenance:
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None

    @classmethod
    def from_request(cls, request: Optional[Request]) -> "RequestProvenance":
        if request is None:
            return cls()
        forwarded = request.headers.get("x-forwarded-for")
        if forwarded:
            ip_address = forwarded.split(",")[0].strip()
        else:
            ip_address = request.headers.get("x-real-ip") or (request.client.host if request.client else None)
        return cls(ip_address=ip_address, user_agent=request.headers.get("user-agent"))


class AuditLogger:
    def __init__(self, supabase: Client, provenance: Optional[RequestProvenance] = None):
        self.supabase = supabase
        self.provenance = provenance or RequestProvenance()

    def record(
        self,
        actor_id: Optional[str],
        action: str,
        resource_type: str,
        resource_id: Optional[str] = None,
        organization_id: Optional[str] = None,
        old_values: Optional[Dict[str, Any]] = None,
        new_values: Optional[Dict[str, Any]] = None,
    ) -> None:
        """Write one audit event. The mutation it describes has already happened, so a failure is logged, not raised."""
        if not settings.audit_enabled:
            return
        try:
            self.supabase.rpc("log_audit_event", {
                "p_user_id": actor_id,
                "p_organization_id": organization_id,
                "p_action": action,
                "p_resource_type": resource_type,
                "p_resource_id": resource_id,
                "p_old_values": old_values or {},
                "p_new_values": new_values or {},
                "p_ip_address": self.provenance.ip_address,
                "p_user_agent": self.provenance.user_agent or "",
            }).execute()
        except Exception as e:
            logger.error(f"Failed to write audit event {action} by {actor_id}: {e}")

    def recent_for_user(self, user_id: str, limit: int = 10) -> List[Dict[str, Any]]:
        try:
            result = self.supabase.table("audit_logs")\
                .select("*")\
                .eq("user_id", user_id)\
                .order("created_at", desc=True)\
                .limit(limit)\
                .execute()
            return result.data or []
        except Exception as e:
            raise StoreError("Failed to load audit events", operation="recent_audit_events") from e
