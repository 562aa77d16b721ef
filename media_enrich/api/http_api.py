from contextlib import asynccontextmanager
from dataclasses import asdict
from typing import Literal, Optional

from fastapi import Depends, FastAPI, HTTPException, Request
from pydantic import BaseModel

from media_enrich.core.env import PipelineConfig, configure_logging, load_dotenv_if_present
from media_enrich.ingest import Pipeline, build_pipeline
from media_enrich.jobs import QUEUE_SCAN_JOBS, QueueName


class JobCommandRequest(BaseModel):
    command: Literal["start", "pause", "resume"]
    force: bool = False


def create_app(config: Optional[PipelineConfig] = None, **processor_overrides) -> FastAPI:
    """Build the operator API; the pipeline is wired and started in the lifespan."""

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        load_dotenv_if_present()
        configure_logging()
        pipeline = build_pipeline(config or PipelineConfig.from_env(), **processor_overrides)
        app.state.pipeline = pipeline
        await pipeline.start()
        try:
            yield
        finally:
            await pipeline.stop()
            pipeline.engine.dispose()

    return _mount_routes(FastAPI(title="Media Enrich API", lifespan=lifespan))


def get_pipeline(request: Request) -> Pipeline:
    return request.app.state.pipeline


def _counts(pipeline: Pipeline, name: QueueName) -> dict:
    return asdict(pipeline.queue.get_counts(name))


def _mount_routes(app: FastAPI) -> FastAPI:
    @app.get("/health")
    def health() -> dict:
        return {"status": "ok"}

    @app.get("/jobs")
    def list_jobs(pipeline: Pipeline = Depends(get_pipeline)) -> dict:
        return {name.value: _counts(pipeline, name) for name in QueueName}

    @app.put("/jobs/{queue_name}")
    async def command_queue(
        queue_name: QueueName,
        req: JobCommandRequest,
        pipeline: Pipeline = Depends(get_pipeline),
    ) -> dict:
        if req.command == "start":
            if queue_name not in QUEUE_SCAN_JOBS:
                raise HTTPException(
                    status_code=400, detail=f"Queue {queue_name.value} has no scan job"
                )
            job = await pipeline.start_scan(queue_name, force=req.force)
            return {"queued": job.name.value, "counts": _counts(pipeline, queue_name)}
        if req.command == "pause":
            await pipeline.queue.pause(queue_name)
        else:
            await pipeline.queue.resume(queue_name)
        return {"counts": _counts(pipeline, queue_name)}

    @app.post("/geocoding/rebuild")
    async def rebuild_geocoding(pipeline: Pipeline = Depends(get_pipeline)) -> dict:
        if not pipeline.config.reverse_geocoding_enabled:
            raise HTTPException(status_code=409, detail="Reverse geocoding is disabled")
        await pipeline.metadata.init(delete_cache=True)
        return {"state": pipeline.geocoding.state.value}

    @app.post("/albums/thumbnails")
    def refresh_album_thumbnails(pipeline: Pipeline = Depends(get_pipeline)) -> dict:
        return {"updated": pipeline.albums.update_invalid_thumbnails()}

    return app


app = create_app()
