import atexit
import logging

from apscheduler.schedulers.background import BackgroundScheduler

from streamapp.core.models import Stream
from streamapp.services import playback_service
from streamapp.services.livepeer_service import LivepeerService

logger = logging.getLogger(__name__)

scheduler = None


def sync_live_streams():
    """
    Refreshes every stream from Livepeer.

    Streams that have not ended get their live state synced; ended streams
    still missing a VOD URL get another recording lookup.
    """
    livepeer = LivepeerService()
    active = Stream.query.filter(Stream.ended_at.is_(None), Stream.livepeer_stream_id.isnot(None)).all()
    pending_vod = Stream.query.filter(
        Stream.ended_at.isnot(None), Stream.livepeer_stream_id.isnot(None), Stream.vod_url.is_(None)
    ).all()

    changed = 0
    for stream in active:
        if playback_service.sync_live_state(stream, livepeer):
            changed += 1
    recovered = 0
    for stream in pending_vod:
        if playback_service.find_recording(stream, livepeer):
            recovered += 1

    logger.info(f"Scheduler: Synced {len(active)} active streams ({changed} changed), "
                f"found {recovered}/{len(pending_vod)} missing recordings")
    return changed, recovered


def _run_in_app_context(app):
    with app.app_context():
        try:
            sync_live_streams()
        except Exception as e:
            logger.error(f"Scheduler: sync_live_streams failed: {e}", exc_info=True)


def init_scheduler(app):
    global scheduler
    if scheduler is not None and scheduler.running:
        logger.info("Scheduler: Already initialized and running.")
        return scheduler

    scheduler = BackgroundScheduler(daemon=True)
    scheduler.add_job(
        _run_in_app_context,
        trigger='interval',
        seconds=app.config.get('LIVE_SYNC_INTERVAL_SECONDS', 60),
        args=[app],
        id='sync_live_streams',
        replace_existing=True,
        max_instances=1,
        coalesce=True,
    )
    scheduler.start()
    logger.info("Scheduler: Started.")

    atexit.register(shutdown_scheduler)
    return scheduler


def shutdown_scheduler():
    global scheduler
    if scheduler is not None and scheduler.running:
        scheduler.shutdown(wait=False)
        logger.info("Scheduler: Shut down.")
    scheduler = None
