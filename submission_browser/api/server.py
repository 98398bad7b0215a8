"""
HTTP API for the submission browser frontend.

Provides endpoints for:
- years / months / files: browse the bucket layout
- sync, sync/status: reconcile a partition into the cache and observe it
- events: browse cached events of a partition
- download, downloads, files: fetch events locally and serve their files
- stats: cache statistics
"""

from datetime import datetime
from typing import Dict, Any, List, Optional

from fastapi import BackgroundTasks, FastAPI, HTTPException, Query
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import FileResponse
from loguru import logger
from pydantic import BaseModel, Field

from ..clients.s3_manager import ObjectStoreError
from ..models.config import BrowserConfig
from ..models.data_models import SortColumn, SortDirection, SyncState
from ..services.database_manager import PersistenceError
from ..services.download_manager import DownloadManager, EventNotFoundError
from ..services.filename_parser import classify_file_type
from ..services.sync_service import SyncService
from ..services.telemetry import build_report


class SyncRequest(BaseModel):
    year: str = Field(..., min_length=1)
    month: str = Field(..., min_length=1)
    force: bool = False
    wait: bool = True  # False: run in the background and poll /api/sync/status


class DownloadRequest(BaseModel):
    year: str = Field(..., min_length=1)
    month: str = Field(..., min_length=1)
    event_id: str = Field(..., min_length=1)


_MEDIA_TYPES = {
    'video': 'video/mp4',
    'jpg': 'image/jpeg',
    'json': 'application/json'
}


def _server_error(action: str, error: Exception) -> HTTPException:
    logger.error(f"{action} failed: {error}")
    return HTTPException(status_code=500, detail=f"{action} failed: {error}")


def create_app(sync_service: SyncService, download_manager: DownloadManager,
               config: BrowserConfig) -> FastAPI:
    """
    Build the FastAPI application around already constructed services.

    Args:
        sync_service: Reconciler used by the sync and browse endpoints
        download_manager: Local download handling
        config: Browser configuration (CORS origin, bucket layout)
    """
    app = FastAPI(
        title="Submission Browser API",
        description="Browse, sync and download ML-training-data submissions",
        version="1.0.0"
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=[config.frontend_origin],
        allow_methods=["*"],
        allow_headers=["*"]
    )

    def _run_background_sync(year: str, month: str) -> None:
        try:
            sync_service.sync_partition(year, month, force=True)
        except Exception as e:
            # Already recorded as error status for pollers
            logger.error(f"Background sync of {year}/{month} failed: {e}")

    @app.get("/")
    def root() -> Dict[str, Any]:
        """Health check endpoint."""
        return {"message": "Submission Browser API is running", "timestamp": datetime.now().isoformat()}

    @app.get("/api/years")
    def list_years() -> List[str]:
        try:
            return sync_service.list_years()
        except ObjectStoreError as e:
            raise _server_error("Listing years", e)

    @app.get("/api/years/{year}/months")
    def list_months(year: str) -> List[str]:
        try:
            return sync_service.list_months(year)
        except ObjectStoreError as e:
            raise _server_error("Listing months", e)

    @app.get("/api/years/{year}/months/{month}/files")
    def list_files(year: str, month: str,
                   continuation_token: Optional[str] = None,
                   max_keys: int = Query(100, ge=1, le=1000)) -> Dict[str, Any]:
        """One page of raw objects in a partition, straight from S3."""
        prefix = config.s3.partition_prefix(year, month)
        try:
            page = sync_service.s3_manager.list_page(prefix, continuation_token, max_keys)
        except ObjectStoreError as e:
            raise _server_error("Listing files", e)

        return {
            "files": [
                {
                    "key": obj.key,
                    "size": obj.size,
                    "lastModified": obj.last_modified.isoformat(),
                    "type": classify_file_type(obj.key).value
                }
                for obj in page.objects
            ],
            "nextContinuationToken": page.next_continuation_token,
            "isTruncated": page.is_truncated
        }

    @app.post("/api/sync")
    def sync(request: SyncRequest, background_tasks: BackgroundTasks) -> Dict[str, Any]:
        """
        Sync a partition into the cache.

        Recently synced partitions are skipped unless force is set.
        """
        if not request.wait:
            try:
                needed, reason = sync_service.needs_sync(request.year, request.month)
                if not request.force and not needed:
                    status = sync_service.get_sync_status(request.year, request.month)
                    return {"success": True, "skipped": True, "message": reason, **status.to_dict()}

                # Mark before returning so an immediate poll never sees a stale idle state
                sync_service.database_manager.update_sync_status(
                    request.year, request.month, SyncState.SYNCING
                )
            except PersistenceError as e:
                raise _server_error("Sync", e)

            background_tasks.add_task(_run_background_sync, request.year, request.month)
            return {"success": True, "started": True, "status": SyncState.SYNCING.value}

        try:
            result = sync_service.sync_partition(request.year, request.month, force=request.force)
        except (ObjectStoreError, PersistenceError) as e:
            raise _server_error("Sync", e)

        response = {"success": True, **result.to_dict()}
        if result.skipped:
            response["message"] = "Synced recently"
        return response

    @app.get("/api/sync/status")
    def sync_status(year: str = Query(..., min_length=1),
                    month: str = Query(..., min_length=1)) -> Dict[str, Any]:
        try:
            return sync_service.get_sync_status(year, month).to_dict()
        except PersistenceError as e:
            raise _server_error("Reading sync status", e)

    @app.get("/api/events")
    def events(year: str = Query(..., min_length=1),
               month: str = Query(..., min_length=1),
               sort: SortColumn = SortColumn.TIMESTAMP,
               direction: SortDirection = SortDirection.DESC) -> List[Dict[str, Any]]:
        try:
            return [e.to_dict() for e in sync_service.get_events(year, month, sort, direction)]
        except PersistenceError as e:
            raise _server_error("Reading events", e)

    @app.post("/api/download")
    def download(request: DownloadRequest) -> Dict[str, Any]:
        try:
            return download_manager.download_event(request.year, request.month, request.event_id).to_dict()
        except EventNotFoundError as e:
            raise HTTPException(status_code=404, detail=str(e))
        except ValueError as e:
            raise HTTPException(status_code=400, detail=str(e))
        except (ObjectStoreError, PersistenceError, OSError) as e:
            raise _server_error("Download", e)

    @app.get("/api/downloads/{year}/{month}/{event_id}")
    def download_status(year: str, month: str, event_id: str) -> Dict[str, Any]:
        try:
            return download_manager.get_download_status(year, month, event_id)
        except ValueError as e:
            raise HTTPException(status_code=400, detail=str(e))

    @app.delete("/api/downloads/{year}/{month}/{event_id}")
    def delete_download(year: str, month: str, event_id: str) -> Dict[str, Any]:
        try:
            existed = download_manager.delete_download(year, month, event_id)
        except ValueError as e:
            raise HTTPException(status_code=400, detail=str(e))
        except (PersistenceError, OSError) as e:
            raise _server_error("Deleting download", e)
        return {"success": True, "message": "Event deleted" if existed else "Already deleted"}

    @app.get("/api/files/{year}/{month}/{event_id}/{filename}")
    def serve_file(year: str, month: str, event_id: str, filename: str) -> FileResponse:
        try:
            path = download_manager.resolve_local_file(year, month, event_id, filename)
        except ValueError as e:
            raise HTTPException(status_code=400, detail=str(e))
        except FileNotFoundError:
            raise HTTPException(status_code=404, detail="File not found")

        media_type = _MEDIA_TYPES.get(classify_file_type(filename).value, 'application/octet-stream')
        return FileResponse(path, media_type=media_type)

    @app.get("/api/stats")
    def stats() -> Dict[str, Any]:
        try:
            return build_report(sync_service.database_manager)
        except PersistenceError as e:
            raise _server_error("Building stats", e)

    return app
