import logging
from datetime import datetime

from fastapi import APIRouter, HTTPException, Request, status
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from thola_server.score_utils import StatsUtils

rest_router = APIRouter()
stats_utils = StatsUtils()


class StatsAPI:
    @staticmethod
    @rest_router.get("/stats")
    async def get_stats(request: Request):
        """Leaderboards of finished games"""
        stats_recorder = request.app.state.stats_recorder
        try:
            all_stats = await stats_recorder.read_all_stats()
        except SQLAlchemyError as e:
            logging.error(f"Error fetching stats: {e}")
            raise HTTPException(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                detail="Failed to fetch stats",
            )
        return {"success": True, "stats": stats_utils.get_leaderboards(all_stats)}


class HealthAPI:
    @staticmethod
    @rest_router.get("/health")
    async def health(request: Request):
        try:
            async with request.app.state.Session() as session:
                await session.execute(text("SELECT 1"))
        except SQLAlchemyError as e:
            logging.error(f"Health check error: {e}")
            raise HTTPException(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                detail={
                    "status": "error",
                    "database": "disconnected",
                    "timestamp": datetime.now().isoformat(),
                },
            )
        return {
            "status": "ok",
            "database": "connected",
            "timestamp": datetime.now().isoformat(),
        }
