"""FastAPI surface the browser page renders from and sends actions to."""

from __future__ import annotations

import asyncio
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Set, Tuple

from fastapi import FastAPI, WebSocket, WebSocketDisconnect
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel

from lotto_sync.lottery.models import TxAction
from lotto_sync.lottery.state_store import LotteryStateStore
from lotto_sync.lottery.status import StatusBoard
from lotto_sync.lottery.transactions import TransactionExecutor
from lotto_sync.utils.logger import get_logger
from lotto_sync.wallet.session import WalletSession

logger = get_logger(__name__)


class EnterRequest(BaseModel):
    value: Optional[str] = None


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


class LotteryWebServer:
    """HTTP and WebSocket gateway over the synchronized lottery view."""

    def __init__(
        self,
        config: Dict[str, Any],
        session: WalletSession,
        executor: TransactionExecutor,
        store: LotteryStateStore,
        status: StatusBoard,
        blockchain_status: Optional[Dict[str, Any]] = None,
    ) -> None:
        self.config = config
        self.session = session
        self.executor = executor
        self._store = store
        self._status = status
        self._blockchain_status = blockchain_status or {}

        self.app = FastAPI(
            title="Lottery Client API",
            description="Synchronized view of a single on-chain lottery contract",
            version="1.0.0",
        )

        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._broadcast_queue: Optional[asyncio.Queue[Tuple[str, Dict[str, Any] | None]]] = None
        self._broadcast_task: Optional[asyncio.Task[None]] = None
        self._connect_lock = asyncio.Lock()
        self._listeners_registered = False
        self._websockets: Set[WebSocket] = set()

        self._setup_middleware()
        self._setup_routes()

    # ------------------------------------------------------------------
    # FastAPI scaffolding
    # ------------------------------------------------------------------
    def _setup_middleware(self) -> None:
        origins = self.config.get("server", {}).get("cors_origins") or ["*"]
        if isinstance(origins, str):
            origins = [o.strip() for o in origins.split(",") if o.strip()]
        self.app.add_middleware(
            CORSMiddleware,
            allow_origins=origins,
            allow_methods=["*"],
            allow_headers=["*"],
        )

    def _setup_routes(self) -> None:
        @self.app.get("/api/health")
        async def health_check() -> Dict[str, Any]:
            return {
                "status": "ok",
                "timestamp": _now(),
                "components": {
                    "session": "connected" if self.session.connected else "disconnected",
                    "store": {"lotteryId": self._store.snapshot().lottery_id, "loading": self._store.loading},
                    "blockchain": self._blockchain_status,
                },
            }

        @self.app.get("/api/state")
        async def get_state() -> Dict[str, Any]:
            return self._store.snapshot().to_dict()

        @self.app.get("/api/session")
        async def get_session() -> Dict[str, Any]:
            return self.session.info.to_dict()

        @self.app.get("/api/status")
        async def get_status() -> Dict[str, Any]:
            return self._status.current.to_dict()

        # ------------------------------------------------------------------
        # Actions
        # ------------------------------------------------------------------
        @self.app.post("/api/connect")
        async def connect() -> Dict[str, Any]:
            # connect attempts are serialized here, the session itself does not guard them
            async with self._connect_lock:
                await self.session.connect()
            return self._action_response()

        @self.app.post("/api/disconnect")
        async def disconnect() -> Dict[str, Any]:
            async with self._connect_lock:
                await self.session.disconnect()
            return self._action_response()

        @self.app.post("/api/refresh")
        async def refresh() -> Dict[str, Any]:
            await self.session.refresh()
            return self._action_response()

        @self.app.post("/api/enter")
        async def enter(request: Optional[EnterRequest] = None) -> Dict[str, Any]:
            value = request.value if request else None
            await self.executor.submit(self.session.handle, TxAction.ENTER, value)
            return self._action_response()

        @self.app.post("/api/pick-winner")
        async def pick_winner() -> Dict[str, Any]:
            result = await self.executor.submit(self.session.handle, TxAction.PICK_WINNER)
            response = self._action_response()
            response["refused"] = result is None
            return response

        # ------------------------------------------------------------------
        # WebSocket endpoint
        # ------------------------------------------------------------------
        @self.app.websocket("/ws/lottery")
        async def websocket_endpoint(websocket: WebSocket) -> None:
            await websocket.accept()
            self._ensure_broadcasting()
            self._websockets.add(websocket)
            logger.info("WebSocket client connected (%s total)", len(self._websockets))
            try:
                await websocket.send_json({"type": "snapshot", "payload": self._build_snapshot()})
                while True:
                    await websocket.receive_text()
            except WebSocketDisconnect:
                pass
            finally:
                self._websockets.discard(websocket)
                logger.info("WebSocket client disconnected (%s remaining)", len(self._websockets))

    def _action_response(self) -> Dict[str, Any]:
        return {
            "status": self._status.current.to_dict(),
            "session": self.session.info.to_dict(),
            "state": self._store.snapshot().to_dict(),
        }

    def _build_snapshot(self) -> Dict[str, Any]:
        snapshot = self._action_response()
        snapshot["timestamp"] = _now()
        return snapshot

    # ------------------------------------------------------------------
    # Lifecycle management
    # ------------------------------------------------------------------
    async def start(self, host: str = "127.0.0.1", port: int = 6080) -> None:
        import uvicorn

        logger.info("Starting lottery client web server on %s:%s", host, port)
        self._ensure_broadcasting()

        config = uvicorn.Config(self.app, host=host, port=port, log_level="info", access_log=True)
        server = uvicorn.Server(config)
        try:
            await server.serve()
        finally:
            logger.info("Lottery client web server stopped")

    async def stop(self) -> None:
        logger.info("Stopping lottery client web server")
        if self._broadcast_task:
            self._broadcast_task.cancel()
            try:
                await self._broadcast_task
            except asyncio.CancelledError:
                pass
            self._broadcast_task = None
        for websocket in list(self._websockets):
            try:
                await websocket.close(code=1001, reason="Server shutdown")
            except RuntimeError as exc:
                logger.debug("Error closing websocket: %s", exc)
        self._websockets.clear()

    # ------------------------------------------------------------------
    # Store listeners & broadcasting
    # ------------------------------------------------------------------
    def _ensure_broadcasting(self) -> None:
        loop = asyncio.get_running_loop()
        if self._loop is not loop:
            self._loop = loop
            self._broadcast_queue = asyncio.Queue()
            self._broadcast_task = loop.create_task(self._broadcast_loop(), name="lottery-web-broadcast")
        if not self._listeners_registered:
            self._store.add_listener("state_update", lambda payload: self._enqueue_broadcast("state_update", payload))
            self._status.add_listener("status_update", lambda payload: self._enqueue_broadcast("status_update", payload))
            self._listeners_registered = True

    def _enqueue_broadcast(self, event_type: str, payload: Dict[str, Any] | None) -> None:
        if not self._broadcast_queue or not self._loop:
            return
        try:
            self._loop.call_soon_threadsafe(self._broadcast_queue.put_nowait, (event_type, payload))
        except RuntimeError:  # loop already closing
            logger.debug("Failed to enqueue broadcast for %s", event_type)

    async def _broadcast_loop(self) -> None:
        assert self._broadcast_queue is not None
        while True:
            event_type, payload = await self._broadcast_queue.get()
            try:
                await self._broadcast_to_clients(event_type, payload)
            except Exception as exc:
                logger.exception("Broadcast loop error: %s", exc)

    async def _broadcast_to_clients(self, event_type: str, payload: Dict[str, Any] | None) -> None:
        if not self._websockets:
            return
        message = {"type": event_type, "payload": payload, "timestamp": _now()}
        stale: List[WebSocket] = []
        for websocket in list(self._websockets):
            try:
                await websocket.send_json(message)
            except Exception as exc:
                logger.debug("WebSocket send failed: %s", exc)
                stale.append(websocket)
        for websocket in stale:
            self._websockets.discard(websocket)
