"""Dedicated resume-scheduler process.

    flowrunner-scheduler            # or: python -m flowrunner.triggers.scheduler_runner

Only one instance polls at a time: a Redis key held with ``SET NX EX`` elects
the active process, and standby instances keep retrying until it expires.
Claims on individual runs are compare-and-set in the store regardless, so the
lock limits polling load rather than guarding correctness.  The active process
refreshes ``flowrunner:scheduler:heartbeat`` for container liveness probes.
"""

from __future__ import annotations

import asyncio
import logging
import os
import signal
import uuid

logger = logging.getLogger(__name__)

LOCK_KEY = "flowrunner:scheduler:lock"
HEARTBEAT_KEY = "flowrunner:scheduler:heartbeat"
LOCK_TTL_S = 30           # a crashed holder loses the lock after this long
KEEPALIVE_EVERY_S = 10
STANDBY_RETRY_S = 5

# Both scripts act only while ARGV[1] still owns KEYS[1].
_RENEW_SCRIPT = """
if redis.call('GET', KEYS[1]) ~= ARGV[1] then
    return 0
end
return redis.call('EXPIRE', KEYS[1], ARGV[2])
"""

_RELEASE_SCRIPT = """
if redis.call('GET', KEYS[1]) ~= ARGV[1] then
    return 0
end
return redis.call('DEL', KEYS[1])
"""


async def _sleep_or_stop(stop: asyncio.Event, seconds: float) -> bool:
    """Sleep up to *seconds*; True if *stop* was set meanwhile."""
    try:
        await asyncio.wait_for(stop.wait(), timeout=seconds)
    except asyncio.TimeoutError:
        return False
    return True


class SchedulerLock:
    """Redis SET NX lock with CAS renew/release, owned by one instance id."""

    def __init__(self, redis_client, instance_id: str, key: str = LOCK_KEY, ttl: int = LOCK_TTL_S) -> None:
        self._redis = redis_client
        self.instance_id = instance_id
        self._key = key
        self._ttl = ttl
        self._renew = redis_client.register_script(_RENEW_SCRIPT)
        self._release = redis_client.register_script(_RELEASE_SCRIPT)

    async def acquire(self) -> bool:
        # SET NX EX; only renew and release need the CAS scripts
        return bool(await self._redis.set(self._key, self.instance_id, nx=True, ex=self._ttl))

    async def renew(self) -> bool:
        return bool(await self._renew(keys=[self._key], args=[self.instance_id, self._ttl]))

    async def release(self) -> None:
        await self._release(keys=[self._key], args=[self.instance_id])
        logger.info("Scheduler lock released (instance=%s)", self.instance_id)

    async def holder(self):
        return await self._redis.get(self._key)

    async def wait_until_acquired(self, stop: asyncio.Event) -> bool:
        """Retry until this instance holds the lock. False if stopped first."""
        while not stop.is_set():
            if await self.acquire():
                logger.info("Scheduler lock acquired (instance=%s)", self.instance_id)
                return True
            logger.info("Standby: lock held by %s, retrying in %ds", await self.holder(), STANDBY_RETRY_S)
            if await _sleep_or_stop(stop, STANDBY_RETRY_S):
                break
        return False

    async def beat(self) -> None:
        await self._redis.set(HEARTBEAT_KEY, self.instance_id, ex=self._ttl * 2)

    async def keepalive(self, stop: asyncio.Event) -> None:
        """Renew the lock and heartbeat until *stop*; sets *stop* if the lock is lost."""
        while not await _sleep_or_stop(stop, KEEPALIVE_EVERY_S):
            if not await self.renew():
                logger.error("Scheduler lock lost (instance=%s); stopping this instance", self.instance_id)
                stop.set()
                return
            await self.beat()
            logger.debug("Scheduler heartbeat written (instance=%s)", self.instance_id)


async def run() -> None:
    """Elect this process, wire the runner, and poll until SIGTERM/SIGINT."""
    import httpx
    import redis.asyncio as aioredis

    from flowrunner.callbacks import LoggingCallback
    from flowrunner.config import config
    from flowrunner.db.database import async_session, close_db, init_db
    from flowrunner.db.repository import SessionRepository
    from flowrunner.triggers.scheduler import ResumeScheduler
    from flowrunner.workflows.runner import build_runner

    stop = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGTERM, signal.SIGINT):
        loop.add_signal_handler(sig, stop.set)

    redis_client = aioredis.from_url(config.redis_url, encoding="utf-8", decode_responses=True)
    lock = SchedulerLock(redis_client, str(uuid.uuid4()))

    if not await lock.wait_until_acquired(stop):
        logger.info("Stopped while on standby")
        await redis_client.aclose()
        return

    await init_db()
    repository = SessionRepository(async_session)
    http_client = httpx.AsyncClient(timeout=config.webhook_timeout_seconds)
    runner = build_runner(
        repository,
        http_client,
        config,
        callbacks=[LoggingCallback()] if config.audit_log_enabled else [],
    )
    scheduler = ResumeScheduler(runner, repository, config)

    await scheduler.start()
    await lock.beat()
    keepalive = asyncio.create_task(lock.keepalive(stop), name="flowrunner-scheduler-keepalive")
    logger.info(
        "ResumeScheduler active (instance=%s, tick=%ds)", lock.instance_id, config.resume_check_interval,
    )

    await stop.wait()

    logger.info("Stopping ResumeScheduler")
    keepalive.cancel()
    try:
        await keepalive
    except asyncio.CancelledError:
        pass
    await scheduler.stop()
    await lock.release()
    await http_client.aclose()
    await close_db()
    await redis_client.aclose()
    logger.info("ResumeScheduler stopped cleanly")


def main() -> None:
    logging.basicConfig(
        level=os.environ.get("FLOWRUNNER_LOG_LEVEL", "INFO").upper(),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )
    asyncio.run(run())


if __name__ == "__main__":
    main()
