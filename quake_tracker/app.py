import asyncio
import json
import logging
from contextlib import asynccontextmanager
from dataclasses import asdict
from datetime import datetime
from typing import Any, Dict, Optional

from fastapi import FastAPI, Request, WebSocket, WebSocketDisconnect
from fastapi.responses import HTMLResponse
from pydantic import BaseModel

# --- relative imports (package-local) ---
from .ingestors import IngestionOrchestrator, RecordCollection
from .notifier import build_notifier
from .render import build_view, render_page
from .settings import Settings, configure_logging
from .storage import build_object_store

logger = logging.getLogger(__name__)


# =========================
# Helpers / Models (local)
# =========================

class WSMsg(BaseModel):
    type: str
    data: Dict[str, Any]

def _json_default(o):
    if isinstance(o, datetime):
        return o.isoformat()
    raise TypeError(f"Type not serializable: {type(o)}")


class Broadcaster:
    """Websocket fan-out; dead clients are dropped on the next send."""

    def __init__(self):
        self.clients: set[WebSocket] = set()

    async def broadcast(self, msg: dict):
        total = len(self.clients)
        msg_type = msg.get("type")
        if total == 0:
            logger.debug(f"[WS] 0 clients connected; dropping message type={msg_type}")
            return

        delivered = 0
        dead = []
        for ws in list(self.clients):
            try:
                await ws.send_text(json.dumps(msg, default=_json_default))
                delivered += 1
            except WebSocketDisconnect:
                dead.append(ws)
            except Exception as e:
                logger.error(f"[WS][ERROR] send failed: {e}")
                dead.append(ws)

        for d in dead:
            self.clients.discard(d)
        logger.info(f"[WS] delivered type={msg_type} to {delivered}/{total} clients")


def _dump(collection: RecordCollection) -> list:
    return [r.model_dump(mode="json", by_alias=True) for r in collection]


# =========================
# App factory
# =========================

def create_app(settings: Optional[Settings] = None,
               orchestrator: Optional[IngestionOrchestrator] = None,
               run_on_startup: bool = True) -> FastAPI:
    settings = settings or Settings.from_env()
    broadcaster = Broadcaster()

    async def on_collection_updated(name: str, collection: RecordCollection):
        await broadcaster.broadcast(WSMsg(
            type="collections.updated",
            data={"collection": name, "count": len(collection), "records": _dump(collection)},
        ).model_dump())

    async def run_ingestion(orch: IngestionOrchestrator):
        try:
            if settings.sweep_poll_secs > 0:
                await orch.poll_forever(settings.sweep_poll_secs)
            else:
                await orch.run_all()
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.exception(f"[Sweep][ERROR] ingestion task crashed: {e}")

    # =========================
    # Lifecycle
    # =========================

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        configure_logging(settings.log_level)
        if app.state.orchestrator is None:
            app.state.orchestrator = IngestionOrchestrator.from_settings(
                settings, build_object_store(settings), build_notifier(settings)
            )
        app.state.orchestrator.subscribe(on_collection_updated)
        task = None
        if run_on_startup:
            task = asyncio.create_task(run_ingestion(app.state.orchestrator))
        try:
            yield
        finally:
            if task is not None:
                task.cancel()

    app = FastAPI(title="Live Earthquake Tracker", lifespan=lifespan)
    app.state.settings = settings
    app.state.orchestrator = orchestrator
    app.state.broadcaster = broadcaster

    def _orch(request_app: FastAPI) -> IngestionOrchestrator:
        return request_app.state.orchestrator

    # =========================
    # Routes
    # =========================

    @app.get("/", response_class=HTMLResponse)
    async def dashboard(request: Request):
        orch = _orch(request.app)
        view = build_view(orch.detection_records, orch.direct_records)
        return render_page(view, (settings.map_center_lat, settings.map_center_lon), settings.map_zoom)

    @app.get("/api/detections")
    async def detections(request: Request):
        orch = _orch(request.app)
        return {
            "earthquake_data": _dump(orch.collections[orch.detections.name]),
            "direct_data": _dump(orch.collections[orch.direct.name]),
        }

    @app.get("/api/markers")
    async def markers(request: Request):
        orch = _orch(request.app)
        view = build_view(orch.detection_records, orch.direct_records)
        return {"markers": view.as_dict()["markers"]}

    @app.post("/refresh")
    async def refresh(request: Request):
        """Run both sweeps now and report what each one did."""
        results = await _orch(request.app).run_all()
        return {"ok": all(r.completed for r in results), "sweeps": [asdict(r) for r in results]}

    @app.get("/health")
    async def health(request: Request):
        orch = _orch(request.app)
        return {
            "ok": True,
            "collections": {
                name: {
                    "count": len(c),
                    "updated_at": c.updated_at.isoformat() if c.updated_at else None,
                }
                for name, c in orch.collections.items()
            },
        }

    @app.websocket("/ws")
    async def ws_endpoint(ws: WebSocket):
        clients = broadcaster.clients
        await ws.accept()
        clients.add(ws)
        logger.info(f"[WS] client connected; now {len(clients)} client(s)")
        try:
            while True:
                await ws.receive_text()  # ignore client messages
        except WebSocketDisconnect:
            clients.discard(ws)
            logger.info(f"[WS] client disconnected; now {len(clients)} client(s)")

    return app


app = create_app()
