"""
Orbitport Server - FastAPI application exposing the cTRNG pipeline locally
"""

import logging
import time
from typing import Optional

from fastapi import FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from . import __version__
from .client import OrbitportClient, load_settings
from .errors import AUTH_CODES, ErrorCode, OrbitportError
from .models import LATEST_BLOCK
from .monitors import SystemMonitor
from .secure_config import SecureConfig

settings = load_settings()

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s"
)
logger = logging.getLogger(__name__)

app = FastAPI(
    title="Orbitport",
    description="Cosmic true random numbers from the cTRNG API and IPFS beacon",
    version=__version__,
    docs_url="/docs",
    redoc_url="/redoc"
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Global instances
orbitport_client: Optional[OrbitportClient] = None
monitor: Optional[SystemMonitor] = None


def status_for_error(error: OrbitportError) -> int:
    if error.code == ErrorCode.INVALID_REQUEST:
        return 400
    if error.code in AUTH_CODES:
        return 401
    if error.code in (ErrorCode.BLOCK_NOT_FOUND, ErrorCode.BLOCK_UNREACHABLE):
        return 404
    if error.code == ErrorCode.TIMEOUT:
        return 504
    return 502


def parse_block(block: Optional[str]):
    """Query-string block: digits become an int, anything else is passed through for validation"""
    if block is None or block == "":
        return LATEST_BLOCK
    if block.isdigit():
        return int(block)
    return block


@app.exception_handler(OrbitportError)
async def orbitport_error_handler(request: Request, exc: OrbitportError):
    if monitor:
        monitor.record_metric("request_failed", 1, {"path": request.url.path, "code": exc.code.value})
    return JSONResponse(
        status_code=status_for_error(exc),
        content={"code": exc.code.value, "message": exc.message},
    )


@app.on_event("startup")
async def startup_event():
    """Initialize services on startup"""
    global orbitport_client, monitor

    logger.info("Starting Orbitport server...")

    security_status = SecureConfig().get_config_summary()
    logger.info(f"🔒 Security Status: {security_status['security']}")
    logger.info(f"🔑 Credentials Status: {security_status['credentials']}")

    monitor = SystemMonitor()
    orbitport_client = OrbitportClient(settings=settings, event_handler=monitor.handle_event)

    logger.info("Orbitport server started successfully")


@app.on_event("shutdown")
async def shutdown_event():
    """Cleanup on shutdown"""
    global orbitport_client, monitor

    logger.info("Shutting down Orbitport server...")

    if orbitport_client:
        await orbitport_client.aclose()
        orbitport_client = None

    if monitor:
        monitor.cleanup()

    logger.info("Orbitport server shutdown complete")


def get_client() -> OrbitportClient:
    if not orbitport_client:
        raise HTTPException(status_code=503, detail="Client not initialized")
    return orbitport_client


@app.get("/health")
async def health_check():
    """Health check endpoint"""
    return {
        "status": "healthy",
        "version": __version__,
        "timestamp": time.time(),
        "credentials_configured": settings.credentials_present,
    }


@app.get("/random")
async def random(src: str = "trng", block: Optional[str] = None,
                 index: Optional[int] = None, beacon_path: Optional[str] = None):
    """Generate one random value"""
    client = get_client()

    request = {"src": src}
    if block is not None:
        request["block"] = parse_block(block)
    if index is not None:
        request["index"] = index
    if beacon_path is not None:
        request["beacon_path"] = beacon_path

    start_time = time.time()
    result = await client.random(request)
    if monitor:
        monitor.record_metric("random_latency", time.time() - start_time, {"src": result.data.src})

    return result.model_dump()


@app.get("/beacon")
async def beacon(path: Optional[str] = None, block: Optional[str] = None, compare: bool = False):
    """Resolve a beacon record, optionally walking back to a historical block"""
    client = get_client()

    start_time = time.time()
    result = await client.beacon_at_block(parse_block(block), path, enable_comparison=compare)
    if monitor:
        monitor.record_metric("beacon_latency", time.time() - start_time)

    return result.model_dump()


@app.get("/metrics")
async def get_metrics():
    """Get system metrics"""
    if not monitor:
        raise HTTPException(status_code=503, detail="Monitor not initialized")

    return monitor.get_metrics()


@app.get("/")
async def root():
    """Root endpoint"""
    return {
        "message": "Orbitport - cosmic true random number generation",
        "version": __version__,
        "docs": "/docs",
        "health": "/health"
    }


def main():
    """Main entry point for running the server"""
    import uvicorn

    uvicorn.run(
        "orbitport.server:app",
        host=settings.server_host,
        port=settings.server_port,
        log_level=settings.log_level.lower(),
    )


if __name__ == "__main__":
    main()
