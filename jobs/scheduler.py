import logging
from datetime import datetime, timedelta
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger
from sqlalchemy import select, func
from core.config import settings
from core.database import async_session_maker
from models.base import RewardTransactionType
from models.guide import GuideRewardTransaction
from services import loyalty, rewards
from services.notifications import WhatsAppClient, dispatch_pending
from services.rate_limiter import RateLimiter, rate_limiter, API_BUCKET, AUTH_BUCKET, DEFAULT_BUCKET
from services.settings import get_rate_limit_settings

logger = logging.getLogger(__name__)

EXPIRY_WARNING_DAYS = 30


class MaintenanceScheduler:
    """Periodic housekeeping jobs run on the application's event loop."""

    def __init__(self, session_factory=None, limiter: RateLimiter = rate_limiter, whatsapp: WhatsAppClient = None):
        self.scheduler = AsyncIOScheduler()
        self.SessionLocal = session_factory or async_session_maker
        self.limiter = limiter
        self.whatsapp = whatsapp or WhatsAppClient()

    async def refresh_rate_limits(self):
        """Job to pick up rate-limit changes made in the settings table"""
        async with self.SessionLocal() as session:
            try:
                limits = await get_rate_limit_settings(session)
                self.limiter.configure(
                    {
                        DEFAULT_BUCKET: limits.default_limit,
                        API_BUCKET: limits.api_limit,
                        AUTH_BUCKET: limits.auth_limit,
                    },
                    window_seconds=limits.window_seconds,
                    enabled=limits.enabled,
                )
            except Exception as e:
                logger.error(f"Scheduler: Rate limit refresh failed - {e}")

    async def expire_loyalty_points(self):
        """Job to expire customer points past their expiry date"""
        logger.info("Scheduler: Starting points expiry job")
        async with self.SessionLocal() as session:
            try:
                expired = await loyalty.expire_points(session)
                logger.info(f"Scheduler: Expired {expired} customer points")
            except Exception as e:
                logger.error(f"Scheduler: Points expiry job failed - {e}")

    async def expire_reward_points(self):
        """Job to expire guide reward points past their expiry date"""
        async with self.SessionLocal() as session:
            try:
                expired = await rewards.expire_points(session)
                logger.info(f"Scheduler: Expired {expired} guide reward points")
            except Exception as e:
                logger.error(f"Scheduler: Reward expiry job failed - {e}")

    async def notify_expiring_rewards(self):
        """Job to warn guides whose reward points expire soon"""
        async with self.SessionLocal() as session:
            try:
                now = datetime.utcnow()
                stmt = (
                    select(GuideRewardTransaction.guide_id, func.sum(GuideRewardTransaction.points))
                    .where(
                        GuideRewardTransaction.transaction_type == RewardTransactionType.EARN,
                        GuideRewardTransaction.expired.is_(False),
                        GuideRewardTransaction.expires_at > now,
                        GuideRewardTransaction.expires_at <= now + timedelta(days=EXPIRY_WARNING_DAYS),
                    )
                    .group_by(GuideRewardTransaction.guide_id)
                )
                rows = (await session.execute(stmt)).all()
                for guide_id, total in rows:
                    await rewards.notify_expiring_points(session, guide_id, int(total), EXPIRY_WARNING_DAYS)
                if rows:
                    logger.info(f"Scheduler: Queued expiry warnings for {len(rows)} guides")
            except Exception as e:
                logger.error(f"Scheduler: Expiring rewards job failed - {e}")

    async def dispatch_notifications(self):
        """Job to send queued WhatsApp notifications"""
        if not self.whatsapp.configured:
            return
        async with self.SessionLocal() as session:
            try:
                await dispatch_pending(session, self.whatsapp)
            except Exception as e:
                logger.error(f"Scheduler: Notification dispatch failed - {e}")

    @property
    def running(self) -> bool:
        return self.scheduler.running

    def start(self):
        """Start the scheduler"""
        self.scheduler.add_job(
            self.refresh_rate_limits,
            trigger=IntervalTrigger(seconds=settings.SETTINGS_CACHE_TTL),
            id="rate_limit_refresh",
            replace_existing=True
        )
        self.scheduler.add_job(
            self.dispatch_notifications,
            trigger=IntervalTrigger(minutes=1),
            id="notification_dispatch",
            replace_existing=True
        )
        self.scheduler.add_job(
            self.expire_loyalty_points,
            trigger=IntervalTrigger(hours=24),
            id="loyalty_expiry",
            replace_existing=True
        )
        self.scheduler.add_job(
            self.expire_reward_points,
            trigger=IntervalTrigger(hours=24),
            id="reward_expiry",
            replace_existing=True
        )
        self.scheduler.add_job(
            self.notify_expiring_rewards,
            trigger=IntervalTrigger(hours=24),
            id="reward_expiry_warning",
            replace_existing=True
        )
        self.scheduler.start()
        logger.info("Maintenance scheduler started")

    def stop(self):
        if self.scheduler.running:
            self.scheduler.shutdown()
        logger.info("Maintenance scheduler stopped")
