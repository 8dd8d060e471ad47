"""
Worker process: polls the job queue and stacks videos.

Per delivery:
  Received -> Downloading -> Processing -> Uploading -> Acknowledged

A failure in any of the middle states abandons this delivery. The job is
re-published to a delay queue (exponential backoff) until max_retries is
reached, after which the message is rejected into the dead-letter queue and
the job is marked failed.

Run with: python -m api.orchestrator.worker.service.worker_service
"""

from __future__ import annotations

import asyncio
import signal
import sys
import tempfile
from enum import Enum
from pathlib import Path, PurePosixPath
from typing import Optional

import orjson
from aio_pika.abc import AbstractIncomingMessage
from pydantic import ValidationError

from shared.config import Settings, get_settings
from shared.utils import LogContext, get_logger, setup_logging

from api.orchestrator.db.models import AttemptOutcome, JobStatus
from api.orchestrator.db.service.queue import MessageQueue, get_message_queue
from api.orchestrator.media.combiner import MediaCombiner
from api.orchestrator.models.dto import JobQueueMessage
from api.orchestrator.storage.blob_store import BlobStore, build_blob_store, key_from_locator, new_output_key
from api.orchestrator.worker.persistance.worker_persistance import (
    create_job_attempt,
    ensure_job,
    finish_job_attempt,
    update_job_status,
)

logger = get_logger(__name__)

shutdown_event = asyncio.Event()


class JobOutcome(str, Enum):
    COMPLETED = "completed"
    SKIPPED = "skipped"  # duplicate delivery of a finished job
    RETRY = "retry"
    FAILED = "failed"


def retry_delay(settings: Settings, attempt: int) -> float:
    return min(
        settings.retry_base_delay * (2 ** (attempt - 1)),
        settings.retry_max_delay,
    )


def _input_name(index: int, locator: str) -> str:
    suffix = PurePosixPath(key_from_locator(locator)).suffix or ".mp4"
    return f"input{index}{suffix}"


class VideoWorker:
    def __init__(
        self,
        settings: Optional[Settings] = None,
        *,
        mq: MessageQueue,
        store: BlobStore,
        combiner: MediaCombiner,
        stop_event: Optional[asyncio.Event] = None,
    ) -> None:
        self.settings = settings or get_settings()
        self.mq = mq
        self.store = store
        self.combiner = combiner
        self.stop_event = stop_event or asyncio.Event()
        self._tasks: set[asyncio.Task] = set()

    async def process_job(self, message: JobQueueMessage) -> JobOutcome:
        job_id = message.job_id
        attempt = message.attempt
        logger.info("Processing job", layout=message.layout_option.value, audio=message.audio_option.value)

        job = await ensure_job(message)
        if job.status in (JobStatus.COMPLETED, JobStatus.FAILED):
            logger.info("Job already finished", status=job.status.value)
            return JobOutcome.SKIPPED

        await update_job_status(job_id, JobStatus.RUNNING, increment_attempts=True)
        attempt_id = await create_job_attempt(job_id, attempt, self.settings.worker_name)

        state = "downloading"
        try:
            with tempfile.TemporaryDirectory(
                prefix=f"{job_id}-", dir=self.settings.work_dir, ignore_cleanup_errors=True
            ) as tmp:
                work = Path(tmp)

                video1, video2 = await asyncio.gather(
                    self.store.get_to_file(message.video1_path, work / _input_name(1, message.video1_path)),
                    self.store.get_to_file(message.video2_path, work / _input_name(2, message.video2_path)),
                )

                state = "processing"
                output = await self.combiner.combine(
                    video1,
                    video2,
                    work / f"{job_id}-merged.mp4",
                    message.layout_option,
                    message.audio_option,
                )

                state = "uploading"
                output_url = await self.store.put_file(output, new_output_key(job_id))

            await finish_job_attempt(attempt_id, AttemptOutcome.SUCCESS)
            await update_job_status(job_id, JobStatus.COMPLETED, output_url=output_url)

            logger.info("Job completed", url=output_url)
            return JobOutcome.COMPLETED

        except Exception as e:
            logger.error("Job processing error", state=state, error=str(e), exc_info=e)

            await finish_job_attempt(attempt_id, AttemptOutcome.FAIL, error_detail=str(e))

            if attempt < self.settings.max_retries:
                await update_job_status(job_id, JobStatus.QUEUED, error_message=str(e))
                return JobOutcome.RETRY

            await update_job_status(job_id, JobStatus.FAILED, error_message=str(e))
            return JobOutcome.FAILED

    async def handle_delivery(self, incoming: AbstractIncomingMessage) -> None:
        try:
            message = JobQueueMessage.from_bytes(incoming.body)
        except (orjson.JSONDecodeError, ValidationError) as e:
            logger.error("Malformed job message, dead-lettering", error=str(e))
            await incoming.reject(requeue=False)
            return

        with LogContext(job_id=str(message.job_id), attempt=message.attempt):
            try:
                outcome = await self.process_job(message)
            except Exception as e:
                # status table or similar unavailable: leave it to the broker
                logger.error("Delivery abandoned, message requeued", error=str(e), exc_info=e)
                await incoming.nack(requeue=True)
                return

            if outcome is JobOutcome.RETRY:
                delay = retry_delay(self.settings, message.attempt)
                try:
                    await self.mq.publish_job_delayed(message.next_attempt(), delay)
                except Exception as e:
                    logger.error("Failed to schedule retry, message requeued", error=str(e))
                    await incoming.nack(requeue=True)
                    return
                logger.info("Scheduling retry", next_attempt=message.attempt + 1, delay_seconds=delay)
                await self._ack(incoming)

            elif outcome is JobOutcome.FAILED:
                logger.error("Job failed permanently, dead-lettering")
                await incoming.reject(requeue=False)

            else:
                await self._ack(incoming)

    async def _ack(self, incoming: AbstractIncomingMessage) -> None:
        try:
            await incoming.ack()
        except Exception as e:
            # the broker will redeliver; a finished job is skipped next time
            logger.error("Failed to ack message", error=str(e))

    async def _run_delivery(self, incoming: AbstractIncomingMessage, slots: asyncio.Semaphore) -> None:
        try:
            await self.handle_delivery(incoming)
        except Exception as e:
            logger.error("Unhandled delivery error", error=str(e), exc_info=e)
        finally:
            slots.release()

    async def _pause(self, seconds: float) -> None:
        try:
            await asyncio.wait_for(self.stop_event.wait(), timeout=seconds)
        except asyncio.TimeoutError:
            pass

    async def run(self) -> None:
        """
        Poll every poll_interval for at most one message. Each delivery runs
        in its own task; at most max_concurrent_jobs are in flight.
        """
        slots = asyncio.Semaphore(self.settings.max_concurrent_jobs)
        interval = self.settings.poll_interval

        while not self.stop_event.is_set():
            await slots.acquire()
            if self.stop_event.is_set():
                slots.release()
                break

            try:
                incoming = await self.mq.receive()
            except Exception as e:
                slots.release()
                logger.error("Receive error", error=str(e))
                await self._pause(interval)
                continue

            if incoming is None:
                slots.release()
            else:
                task = asyncio.create_task(self._run_delivery(incoming, slots))
                self._tasks.add(task)
                task.add_done_callback(self._tasks.discard)

            await self._pause(interval)

        if self._tasks:
            logger.info("Waiting for in-flight jobs", count=len(self._tasks))
            await asyncio.gather(*self._tasks, return_exceptions=True)


async def run_worker(settings: Optional[Settings] = None) -> None:
    settings = settings or get_settings()
    logger.info(
        "Worker starting",
        worker=settings.worker_name,
        max_retries=settings.max_retries,
        max_concurrent_jobs=settings.max_concurrent_jobs,
    )

    async with get_message_queue(settings) as mq:
        worker = VideoWorker(
            settings,
            mq=mq,
            store=build_blob_store(settings),
            combiner=MediaCombiner(settings),
            stop_event=shutdown_event,
        )
        await worker.run()

    logger.info("Worker stopped")


def handle_signals() -> None:
    def signal_handler(signum, frame):
        logger.info("Received signal", signal=signum)
        shutdown_event.set()

    signal.signal(signal.SIGTERM, signal_handler)
    signal.signal(signal.SIGINT, signal_handler)


def main() -> None:
    settings = get_settings()
    setup_logging(settings)
    handle_signals()
    try:
        asyncio.run(run_worker(settings))
    except KeyboardInterrupt:
        logger.info("Worker interrupted")
    except Exception as e:
        logger.error("Worker crashed", error=str(e), exc_info=e)
        sys.exit(1)


if __name__ == "__main__":
    main()
