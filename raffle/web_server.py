"""Read-only FastAPI web server for the raffle keeper."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, Optional

from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware

from raffle import __version__
from raffle.lottery.event_manager import MemoryStore
from raffle.lottery.models import LiveFeedItem
from raffle.lottery.operator import UpkeepOperator
from raffle.utils.logger import get_logger

logger = get_logger(__name__)


class RaffleWebServer:
    """HTTP gateway exposing the raffle query surface, history and keeper status.

    ``raffle`` is either a LocalRaffleGateway or a BlockchainClient; both offer
    the coroutines used here.
    """

    def __init__(
        self,
        config: Dict[str, Any],
        raffle: Any,
        store: MemoryStore,
        operator: Optional[UpkeepOperator] = None,
    ) -> None:
        self.config = config
        self.raffle = raffle
        self.operator = operator
        self._store = store
        self._server = None

        self.app = FastAPI(
            title="Raffle Keeper API",
            description="Read-only view of the raffle state machine",
            version=__version__,
        )
        self._setup_middleware()
        self._setup_routes()

    def _setup_middleware(self) -> None:
        self.app.add_middleware(
            CORSMiddleware,
            allow_origins=["*"],
            allow_methods=["GET"],
            allow_headers=["*"],
        )

    def _setup_routes(self) -> None:
        @self.app.get("/api/health")
        async def health_check() -> Dict[str, Any]:
            chain_health = await self.raffle.health_check()
            operator_state = self.operator.get_status() if self.operator else {}
            return {
                "status": "ok",
                "timestamp": datetime.utcnow().isoformat(),
                "components": {
                    "web": True,
                    "keeper": operator_state.get("status", "unavailable"),
                    "blockchain": chain_health,
                },
            }

        @self.app.get("/api/raffle")
        async def get_raffle() -> Dict[str, Any]:
            summary = await self.raffle.get_raffle_summary()
            summary["timestamp"] = datetime.utcnow().isoformat()
            return summary

        @self.app.get("/api/raffle/players")
        async def get_players(limit: int = 200) -> Dict[str, Any]:
            total = await self.raffle.get_number_of_players()
            count = min(total, max(0, limit))
            players = [await self.raffle.get_player(i) for i in range(count)]
            return {"players": players, "total_players": total, "returned": count}

        @self.app.get("/api/raffle/players/{index}")
        async def get_player(index: int) -> Dict[str, Any]:
            total = await self.raffle.get_number_of_players()
            if not 0 <= index < total:
                raise HTTPException(status_code=404, detail=f"No player at index {index}")
            return {"index": index, "player": await self.raffle.get_player(index)}

        @self.app.get("/api/history")
        async def get_round_history(limit: int = 50) -> Dict[str, Any]:
            limit = max(1, min(limit, 200))
            history = self._store.get_round_history(limit=limit)
            rounds = [MemoryStore.serialize_snapshot(item) for item in reversed(history)]
            return {
                "rounds": rounds,
                "summary": {
                    "total_rounds": len(rounds),
                    "total_paid_wei": sum(r["prizeWei"] for r in rounds),
                },
            }

        @self.app.get("/api/activities")
        async def get_live_feed(limit: int = 50) -> Dict[str, Any]:
            limit = max(1, min(limit, 200))
            feed = self._store.get_live_feed(limit=limit)
            return {"activities": [self._serialize_activity(item) for item in reversed(feed)]}

        @self.app.get("/api/keeper")
        async def get_keeper_status() -> Dict[str, Any]:
            if not self.operator:
                raise HTTPException(status_code=503, detail="Keeper not running")
            return {"keeper": self.operator.get_status(), "client": self.raffle.get_client_status()}

    @staticmethod
    def _serialize_activity(item: LiveFeedItem) -> Dict[str, Any]:
        return {
            "activity_id": item.get_item_id(),
            "activity_type": item.event_type,
            "user_address": str(item.details.get("player") or item.details.get("winner") or "system"),
            "message": item.message,
            "details": item.details,
            "timestamp": item.event_time,
        }

    # ------------------------------------------------------------------
    # Lifecycle management
    # ------------------------------------------------------------------
    async def start(self, host: str = "0.0.0.0", port: int = 6080) -> None:
        import uvicorn

        logger.info("Starting raffle web server on %s:%s", host, port)
        config = uvicorn.Config(self.app, host=host, port=port, log_level="info", access_log=True)
        self._server = uvicorn.Server(config)
        try:
            await self._server.serve()
        finally:
            logger.info("Raffle web server stopped")

    async def stop(self) -> None:
        if self._server is not None:
            self._server.should_exit = True
