#!/usr/bin/env python3
"""
Blind Ranker - pairwise image ranking server.

A FastAPI server that shows two images at a time, records which one wins,
and keeps Elo ratings for images and their LoRA groups. Ratings can be
turned into aesthetic tags written next to the images.

Usage:
    python -m blind_ranker.server [--config config.yaml]
"""

import argparse
import logging
from contextlib import asynccontextmanager
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, FastAPI, Request
from fastapi.responses import FileResponse, JSONResponse, Response
from pydantic import BaseModel
import uvicorn

from .config import RankerConfig
from .errors import RankerError
from .export import groups_csv, images_csv
from .models import GROUPED
from .service import RankingService, build_service

logger = logging.getLogger(__name__)

router = APIRouter()


def get_service(request: Request) -> RankingService:
    """Service instance attached to the running app."""
    return request.app.state.service


class VoteRequest(BaseModel):
    """Result of one comparison."""
    winner: str
    loser: str


class SeedRequest(BaseModel):
    """Initial star ratings: image name -> 1..10 stars."""
    ratings: Dict[str, Any]


class ApplyTagsRequest(BaseModel):
    """Tagging parameters; omitted values fall back to the config defaults."""
    strategy: str = "customQuantile"
    tagPrefix: Optional[str] = None
    binTags: Optional[List[str]] = None
    numBins: Optional[int] = None
    numClusters: Optional[int] = None
    rangeThresholds: Optional[List[float]] = None
    dryRun: bool = False


# ============================================================================
# API Endpoints
# ============================================================================

@router.get("/api/config")
async def get_config(service: RankingService = Depends(get_service)):
    """Get current ranking configuration."""
    return JSONResponse(service.config.to_dict())


@router.post("/api/refresh")
async def refresh(service: RankingService = Depends(get_service)):
    """Reload subsets from disk."""
    service.refresh()
    return {"message": "Subsets refreshed successfully."}


@router.get("/api/{kind}/subsets")
async def list_subsets(kind: str, service: RankingService = Depends(get_service)):
    """List subset names of one kind."""
    return service.list_subsets(kind)


@router.get("/api/{kind}/{subset}/match")
async def get_match(kind: str, subset: str, service: RankingService = Depends(get_service)):
    """Get the next pair to compare, or the images that need seeding."""
    return service.next_match(kind, subset)


@router.get("/api/{kind}/{subset}/seeding")
async def get_seeding(kind: str, subset: str, service: RankingService = Depends(get_service)):
    """Which images still need a star rating."""
    return service.seeding_status(kind, subset)


@router.post("/api/{kind}/{subset}/seed")
async def seed_ratings(kind: str, subset: str, request: SeedRequest,
                       service: RankingService = Depends(get_service)):
    """Seed initial ratings from star ratings."""
    seeded = service.seed(kind, subset, request.ratings)
    return {"message": f'Seeded {seeded} images in subset "{subset}".', "seeded": seeded}


@router.post("/api/{kind}/{subset}/vote")
async def vote(kind: str, subset: str, request: VoteRequest,
               service: RankingService = Depends(get_service)):
    """Record a vote."""
    result = service.vote(kind, subset, request.winner, request.loser)
    return {"message": "Vote recorded successfully.", **result}


@router.get("/api/{kind}/{subset}/rankings")
async def image_rankings(kind: str, subset: str, service: RankingService = Depends(get_service)):
    """Seeded images, best first."""
    return service.image_rankings(kind, subset)


@router.get("/api/ai/{subset}/group-rankings")
async def group_rankings(subset: str, service: RankingService = Depends(get_service)):
    """LoRA groups of an AI subset, best first."""
    return service.group_rankings(subset)


@router.get("/api/{kind}/{subset}/progress")
async def progress(kind: str, subset: str, service: RankingService = Depends(get_service)):
    """Match progress of a subset."""
    return service.progress(kind, subset)


@router.get("/api/{kind}/{subset}/summary")
async def image_summary(kind: str, subset: str, service: RankingService = Depends(get_service)):
    """Average rating and match count of seeded images."""
    return service.image_summary(kind, subset)


@router.get("/api/ai/{subset}/group-summary")
async def group_summary(subset: str, service: RankingService = Depends(get_service)):
    """Average rating and match count of LoRA groups."""
    return service.group_summary(subset)


@router.get("/api/{kind}/{subset}/images/{image}")
async def get_image(kind: str, subset: str, image: str,
                    service: RankingService = Depends(get_service)):
    """Serve an image file."""
    return FileResponse(service.image_path(kind, subset, image))


@router.delete("/api/{kind}/{subset}/images/{image}")
async def delete_image(kind: str, subset: str, image: str,
                       service: RankingService = Depends(get_service)):
    """Delete an image file and its rating data."""
    result = service.delete_image(kind, subset, image)
    return {"message": "Image deleted successfully.", **result}


@router.post("/api/{kind}/{subset}/apply-tags")
async def apply_tags(kind: str, subset: str, request: ApplyTagsRequest,
                     service: RankingService = Depends(get_service)):
    """Apply aesthetic tags based on Elo ratings."""
    logger.info("Apply tags for %s subset %s, strategy %s", kind, subset, request.strategy)
    return service.apply_tags(
        kind,
        subset,
        strategy=request.strategy,
        tags=request.binTags,
        prefix=request.tagPrefix,
        num_bins=request.numBins,
        num_clusters=request.numClusters,
        thresholds=request.rangeThresholds,
        dry_run=request.dryRun,
    )


def _csv_response(text: str, filename: str) -> Response:
    return Response(
        content=text,
        media_type="text/csv",
        headers={"Content-Disposition": f"attachment; filename={filename}"},
    )


@router.get("/api/{kind}/{subset}/export/images.csv")
async def export_images(kind: str, subset: str, service: RankingService = Depends(get_service)):
    """Export seeded images as CSV."""
    rankings = service.image_rankings(kind, subset)
    filename = f"{subset}-images.csv" if kind == GROUPED else f"normal-{subset}.csv"
    return _csv_response(images_csv(rankings, grouped=kind == GROUPED), filename)


@router.get("/api/ai/{subset}/export/groups.csv")
async def export_groups(subset: str, service: RankingService = Depends(get_service)):
    """Export LoRA groups as CSV."""
    return _csv_response(groups_csv(service.group_rankings(subset)), f"{subset}-lora.csv")


async def handle_ranker_error(request: Request, exc: RankerError):
    return JSONResponse({"detail": str(exc)}, status_code=exc.status_code)


@asynccontextmanager
async def lifespan(app: FastAPI):
    yield
    app.state.service.close()


def create_app(service: RankingService) -> FastAPI:
    """Build the FastAPI app around a loaded service."""
    app = FastAPI(
        title="Blind Ranker",
        description="Pairwise Elo ranking of images and LoRA groups",
        lifespan=lifespan,
    )
    app.state.service = service
    app.include_router(router)
    app.add_exception_handler(RankerError, handle_ranker_error)
    return app


def run(config: RankerConfig, host: Optional[str] = None, port: Optional[int] = None):
    """Load subsets and serve until interrupted."""
    service = build_service(config)
    app = create_app(service)
    host = host or config.host
    port = port or config.port

    print(f"\n{'='*50}")
    print("Blind Ranker Server")
    print(f"{'='*50}")
    print(f"Task: {config.name}")
    print(f"AI subsets: {', '.join(service.list_subsets('ai')) or '-'}")
    print(f"Normal subsets: {', '.join(service.list_subsets('normal')) or '-'}")
    print(f"Data: {config.data_dir}")
    print(f"URL: http://localhost:{port}")
    print(f"{'='*50}\n")

    uvicorn.run(app, host=host, port=port)


def main():
    parser = argparse.ArgumentParser(description='Blind Ranker - pairwise image ranking server')
    parser.add_argument('--config', default=None, help='Path to config YAML/JSON (optional)')
    parser.add_argument('--port', type=int, default=None, help='Server port')
    parser.add_argument('--host', default=None, help='Server host')

    args = parser.parse_args()

    config = RankerConfig.load(args.config)
    logging.basicConfig(level=config.log_level, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    run(config, host=args.host, port=args.port)


if __name__ == '__main__':
    main()
