"""
Discovery Kernel API — FastAPI endpoints.

Exposes the kernel's functionality via a REST API for:
- Conversational queries (one turn per request)
- Session inspection
- Catalog management
- Eligibility explanations
- Turn audit queries
"""

import logging
from typing import List, Optional

from fastapi import FastAPI, HTTPException
from pydantic import BaseModel

from discovery_kernel.audit.store import TurnAuditStore
from discovery_kernel.catalog.store import InMemoryCatalog, load_catalog
from discovery_kernel.config import Settings, get_settings, setup_logging
from discovery_kernel.errors import InvalidRequest
from discovery_kernel.matching.matcher import ServiceMatcher
from discovery_kernel.models.config import DiscoveryConfig
from discovery_kernel.models.profile import CitizenProfile
from discovery_kernel.models.service import ServiceRecord
from discovery_kernel.nlp.parser import QueryParser
from discovery_kernel.orchestration.orchestrator import QueryOrchestrator
from discovery_kernel.ranking.ranker import EmbeddingScorer, RelevanceRanker
from discovery_kernel.sessions.store import SessionStore

logger = logging.getLogger(__name__)


# --- Request/Response Models ---

class QueryRequest(BaseModel):
    raw_text: Optional[str] = None
    session_id: Optional[str] = None
    profile: CitizenProfile = CitizenProfile()


class EligibilityCheckRequest(BaseModel):
    service_id: str
    profile: CitizenProfile


class ForgetEntityRequest(BaseModel):
    entity_type: str


# --- Application Factory ---

def create_app(
    catalog: Optional[InMemoryCatalog] = None,
    config: Optional[DiscoveryConfig] = None,
    parser: Optional[QueryParser] = None,
    embedding_scorer: Optional[EmbeddingScorer] = None,
    audit_store: Optional[TurnAuditStore] = None,
    session_store: Optional[SessionStore] = None,
) -> FastAPI:
    """Create and configure the FastAPI application."""

    app = FastAPI(
        title="Service Discovery API",
        description="Citizen Service Discovery — matching and conversation kernel",
        version="0.1.0",
    )

    # Initialize components
    cfg = config or DiscoveryConfig()
    cat = catalog if catalog is not None else InMemoryCatalog()
    audit = audit_store or TurnAuditStore()
    sessions = session_store or SessionStore(ttl_seconds=cfg.session_ttl_seconds)
    matcher = ServiceMatcher(
        ranker=RelevanceRanker(embedding_scorer, weights=cfg.ranking_weights),
        config=cfg,
    )
    orchestrator = QueryOrchestrator(
        catalog=cat,
        parser=parser,
        matcher=matcher,
        tracker=sessions.tracker,
        config=cfg,
        audit_store=audit,
    )

    # Store components on app state for access in endpoints
    app.state.catalog = cat
    app.state.config = cfg
    app.state.audit_store = audit
    app.state.session_store = sessions
    app.state.orchestrator = orchestrator

    # === QUERIES ===

    @app.post("/query")
    def process_query(req: QueryRequest):
        """Run one conversational turn."""
        session_id = (req.session_id or "").strip()
        if not session_id:
            raise HTTPException(400, "session_id is required")
        try:
            with sessions.session_turn(session_id):
                context = sessions.get(session_id)
                result = orchestrator.process_query(
                    raw_text=req.raw_text or "",
                    session_id=session_id,
                    profile=req.profile,
                    context=context,
                )
                sessions.save(result.context)
        except InvalidRequest as exc:
            raise HTTPException(400, str(exc))

        return {
            "response": result.response.model_dump(mode="json"),
            "state": result.final_state.value,
            "turn_count": result.context.turn_count,
        }

    # === SESSIONS ===

    @app.get("/sessions/{session_id}")
    def get_session(session_id: str):
        """Conversation context for a live session."""
        context = sessions.get(session_id)
        if not context:
            raise HTTPException(404, "Session not found")
        return context.model_dump(mode="json")

    @app.post("/sessions/{session_id}/forget")
    def forget_entity(session_id: str, req: ForgetEntityRequest):
        """Drop a remembered entity from a session."""
        with sessions.session_turn(session_id):
            context = sessions.get(session_id)
            if not context:
                raise HTTPException(404, "Session not found")
            updated = sessions.tracker.forget(context, req.entity_type)
            sessions.save(updated)
        return {"session_id": session_id, "known_entities": sorted(updated.known_entities)}

    @app.delete("/sessions/{session_id}")
    def end_session(session_id: str):
        """End a session and discard its context."""
        if not sessions.end(session_id):
            raise HTTPException(404, "Session not found")
        return {"status": "ended", "session_id": session_id}

    # === CATALOG ===

    @app.get("/services")
    def list_services():
        """All services in the catalog."""
        return [s.model_dump(mode="json") for s in cat.all_services()]

    @app.get("/services/{service_id}")
    def get_service(service_id: str):
        service = cat.get_service(service_id)
        if not service:
            raise HTTPException(404, "Service not found")
        return service.model_dump(mode="json")

    @app.post("/services")
    def upsert_services(services: List[ServiceRecord]):
        """Load or replace service records."""
        for service in services:
            cat.upsert_service(service)
        orchestrator.catalog.clear()
        return {"status": "loaded", "count": len(services), "catalog_size": cat.count()}

    # === ELIGIBILITY ===

    @app.post("/eligibility/check")
    def check_eligibility(req: EligibilityCheckRequest):
        """Explain why a profile does or doesn't qualify for one service."""
        service = cat.get_service(req.service_id)
        if not service:
            raise HTTPException(404, "Service not found")
        result = matcher.evaluator.evaluate(service.criteria, req.profile)
        return {"service_id": service.id, **result.model_dump(mode="json")}

    # === AUDIT ===

    @app.get("/audit")
    def get_audit(limit: int = 50):
        """Recent turn records."""
        return [r.model_dump(mode="json") for r in audit.query_recent(limit=limit)]

    @app.get("/audit/verify")
    def verify_audit():
        """Verify chain integrity."""
        return {
            "integrity_valid": audit.verify_chain_integrity(),
            "total_records": audit.count(),
        }

    @app.get("/audit/by-session/{session_id}")
    def get_audit_by_session(session_id: str):
        return [r.model_dump(mode="json") for r in audit.query_by_session(session_id)]

    # === CONFIG ===

    @app.get("/config")
    def get_config():
        """Current discovery configuration."""
        return cfg.model_dump(mode="json")

    return app


def create_app_from_settings(settings: Optional[Settings] = None) -> FastAPI:
    """Build the application from environment settings."""
    settings = settings or get_settings()
    setup_logging(settings.log_level)
    catalog = (
        load_catalog(settings.catalog_path) if settings.catalog_path else InMemoryCatalog()
    )
    logger.info("Starting %s with %d services", settings.app_name, catalog.count())
    return create_app(
        catalog=catalog,
        config=settings.to_discovery_config(),
        audit_store=TurnAuditStore(db_path=settings.audit_db_path),
    )


# Default application instance
app = create_app_from_settings()
