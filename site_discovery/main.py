"""
Official-Store Discovery Service - FastAPI Application
Main entry point with REST API endpoints.
"""
from functools import lru_cache
from typing import Optional

from fastapi import Depends, FastAPI, Query
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from site_discovery.adapters.store import DiscoveryStore
from site_discovery.config import config
from site_discovery.errors import DiscoveryError
from site_discovery.layers.discovery import DiscoveryPipeline
from site_discovery.models.discovery import DiscoveryRequest
from site_discovery.utils.logger import get_logger, set_trace_id


# Initialize FastAPI app
app = FastAPI(
    title="Official-Store Discovery Service",
    description="Finds a brand's official store for a product and extracts name and prices",
    version="1.0.0",
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

logger = get_logger("main")


@lru_cache(maxsize=1)
def get_store() -> DiscoveryStore:
    return DiscoveryStore()


def get_pipeline(store: DiscoveryStore = Depends(get_store)) -> DiscoveryPipeline:
    return DiscoveryPipeline(store=store)


class CollectRequest(BaseModel):
    """Request body of /api/collect; extra keys are ignored."""
    brand: Optional[str] = None
    product_name: Optional[str] = None
    product_name_en: Optional[str] = None
    product_name_english: Optional[str] = None


def _error(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": message})


# API Routes
@app.get("/api/health")
async def health_check():
    """Health check endpoint."""
    return {
        "status": "healthy",
        "version": "1.0.0",
        "missing_credentials": config.get_missing_credentials(),
    }


@app.post("/api/collect")
async def collect(body: CollectRequest, pipeline: DiscoveryPipeline = Depends(get_pipeline)):
    """
    Run one discovery for a brand + product name and store the record.

    Returns {ok, id}; 400 when brand or product_name is missing.
    """
    trace_id = set_trace_id()
    brand = (body.brand or "").strip()
    product_name = (body.product_name or "").strip()
    product_name_en = (body.product_name_en or body.product_name_english or "").strip()

    logger.info("collect_request", brand=brand, product_name=product_name, trace_id=trace_id)

    if not brand or not product_name:
        return _error(400, "brand and product_name are required")

    try:
        record_id, _ = await pipeline.run(DiscoveryRequest(
            brand=brand,
            product_name=product_name,
            product_name_en=product_name_en,
        ))
    except DiscoveryError as e:
        logger.error("collect_error", error=e.message, error_type=type(e).__name__, brand=brand, product_name=product_name)
        return _error(500, e.message)
    except Exception as e:
        logger.exception("collect_error", error=str(e), brand=brand, product_name=product_name)
        return _error(500, str(e) or "Unknown error")

    return {"ok": True, "id": record_id}


@app.get("/api/products")
async def get_product(
    id: Optional[str] = Query(None, description="Record id returned by /api/collect"),
    store: DiscoveryStore = Depends(get_store),
):
    """Fetch one stored discovery record."""
    if not id:
        return _error(400, "id is required")
    if not id.strip().isdigit():
        return _error(400, "id must be an integer")
    record = store.get(int(id))
    if record is None:
        return _error(404, "not found")
    return {"data": record}


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host=config.HOST, port=config.PORT)
