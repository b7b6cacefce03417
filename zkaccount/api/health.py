"""
Health check endpoints for production monitoring
"""
from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session
from sqlalchemy import text
import time
from datetime import datetime
from typing import Dict, Any

from zkaccount import __version__
from zkaccount.db.database import get_db
from zkaccount.core.config import get_settings
from zkaccount.ledger.rent import rent_exempt_reserve
from zkaccount.proofs.prover_client import ProofServerClient

router = APIRouter(tags=["health"])


def get_proof_server() -> ProofServerClient:
    return ProofServerClient()


@router.get("/health", response_model=Dict[str, Any])
async def basic_health_check():
    """
    Basic health check endpoint for load balancers
    """
    return {
        "status": "healthy",
        "timestamp": datetime.utcnow().isoformat(),
        "service": get_settings().app_name,
        "version": __version__
    }


@router.get("/health/detailed", response_model=Dict[str, Any])
async def detailed_health_check(
    db: Session = Depends(get_db),
    proof_server: ProofServerClient = Depends(get_proof_server)
):
    """
    Detailed health check with ledger store and proving server status
    """
    settings = get_settings()
    health_status = {
        "status": "healthy",
        "timestamp": datetime.utcnow().isoformat(),
        "service": settings.app_name,
        "version": __version__,
        "checks": {}
    }

    # Ledger store connectivity check
    try:
        start_time = time.time()
        db.execute(text("SELECT 1"))
        db_response_time = (time.time() - start_time) * 1000
        health_status["checks"]["database"] = {
            "status": "healthy",
            "response_time_ms": round(db_response_time, 2)
        }
    except Exception as e:
        health_status["checks"]["database"] = {
            "status": "unhealthy",
            "error": str(e)
        }
        health_status["status"] = "degraded"

    # The proving server is optional for the ledger itself
    if await proof_server.health():
        health_status["checks"]["proof_server"] = {
            "status": "healthy",
            "url": proof_server.base_url
        }
    else:
        health_status["checks"]["proof_server"] = {
            "status": "warning",
            "url": proof_server.base_url,
            "message": "Proof server is not reachable"
        }

    health_status["checks"]["program"] = {
        "status": "healthy",
        "program_id": settings.program_id,
        "rent_exempt_reserve": rent_exempt_reserve(settings),
        "airdrop_enabled": settings.enable_airdrop
    }

    return health_status


@router.get("/health/readiness")
async def readiness_check(db: Session = Depends(get_db)):
    """
    Readiness probe - checks the ledger store answers queries
    """
    try:
        db.execute(text("SELECT 1"))

        return JSONResponse(
            status_code=200,
            content={
                "status": "ready",
                "timestamp": datetime.utcnow().isoformat()
            }
        )

    except Exception as e:
        raise HTTPException(
            status_code=503,
            detail={
                "status": "not ready",
                "error": str(e),
                "timestamp": datetime.utcnow().isoformat()
            }
        )


@router.get("/health/liveness")
async def liveness_check():
    """
    Liveness probe - basic service availability
    """
    return JSONResponse(
        status_code=200,
        content={
            "status": "alive",
            "timestamp": datetime.utcnow().isoformat()
        }
    )
