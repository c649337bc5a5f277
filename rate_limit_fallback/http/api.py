"""FastAPI HTTP endpoints for rate limit fallback.

This module exposes the event router, metrics and pattern management over
REST. It requires FastAPI to be installed (via the 'http' extra).
"""

from typing import Any, Dict, Literal

try:
    from fastapi import APIRouter, Body, HTTPException
    from fastapi.responses import PlainTextResponse
except ImportError:
    raise ImportError(
        "FastAPI is required for HTTP endpoints. "
        "Please install with: pip install rate-limit-fallback[http]"
    )

from ..errors import FallbackError
from ..fallback.plugin import RateLimitFallback


def create_router(plugin: RateLimitFallback) -> APIRouter:
    """Build the API router bound to one event router instance."""
    router = APIRouter()

    @router.post("/events", status_code=202)
    async def post_event(event: Dict[str, Any] = Body(...)):
        """Feed one host lifecycle event."""
        await plugin.handle_event(event)
        return {"accepted": True}

    @router.get("/metrics")
    async def get_metrics(format: Literal["json", "pretty", "csv"] = "json"):
        """Current metrics, as JSON or as the pretty/CSV export."""
        if format == "json":
            return plugin.metrics.get_metrics().to_dict()
        return PlainTextResponse(plugin.metrics.export(format))

    @router.get("/patterns")
    async def list_patterns():
        """Registered detection patterns and learned patterns."""
        return {
            "patterns": [
                {
                    "name": p.name,
                    "provider": p.provider,
                    "priority": p.priority,
                    "patterns": p.pattern_texts(),
                }
                for p in plugin.registry.get_all_patterns()
            ],
            "learned": [p.to_document() for p in plugin.registry.get_learned_patterns()],
        }

    @router.get("/patterns/stats")
    async def pattern_stats():
        return {
            "registry": plugin.registry.get_stats(),
            "learning": plugin.registry.get_learning_stats(),
        }

    @router.post("/patterns/merge")
    async def merge_patterns():
        """Merge near-duplicate learned patterns."""
        try:
            return {"merged": await plugin.registry.merge_duplicate_patterns()}
        except FallbackError as e:
            raise HTTPException(status_code=500, detail=str(e))

    @router.post("/patterns/cleanup")
    async def cleanup_patterns():
        """Prune learned patterns down to the configured maximum."""
        try:
            return {"removed": await plugin.registry.cleanup_old_patterns()}
        except FallbackError as e:
            raise HTTPException(status_code=500, detail=str(e))

    @router.delete("/patterns/{name}")
    async def delete_pattern(name: str):
        try:
            removed = await plugin.registry.remove_learned_pattern(name)
        except FallbackError as e:
            raise HTTPException(status_code=500, detail=str(e))

        if not removed:
            raise HTTPException(status_code=404, detail=f"Learned pattern not found: {name}")
        return {"removed": name}

    return router
