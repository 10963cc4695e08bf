from __future__ import annotations

import argparse
import asyncio
from pathlib import Path

from cyclone_timeline.config import TimelineConfig, load_config
from cyclone_timeline.errors import TimelineError
from cyclone_timeline.runtime.session import FrameView, SessionStatus, TimelineSession
from cyclone_timeline.utils.logger import get_logger, init_logging, log_info


logger = get_logger(__name__)


def _on_status(status: SessionStatus) -> None:
    log_info(
        logger,
        "replay.status",
        phase=status.phase.value,
        message=status.message,
        progress_pct=status.progress_pct,
        warning=status.warning,
    )


def _on_frame(frame: FrameView) -> None:
    names = frame.snapshot.cyclone_names() if frame.snapshot is not None else []
    log_info(
        logger,
        "replay.frame",
        index=frame.index,
        time=frame.display_time,
        has_data=frame.has_data,
        cyclones=names,
        overlays=sorted(name for name, (_, img) in frame.overlays.items() if img is not None),
    )


async def main(cfg: TimelineConfig, frames: int, no_loop: bool) -> None:
    # -------------------------------------------------
    # 1. Build session (HTTP transport, event-loop clock)
    # -------------------------------------------------
    session = TimelineSession(config=cfg, on_status=_on_status, on_frame=_on_frame)

    # -------------------------------------------------
    # 2. Index + prefetch
    # -------------------------------------------------
    try:
        report = await session.start()
    except TimelineError as exc:
        log_info(logger, "replay.aborted", err=exc)
        session.close()
        return
    log_info(logger, "replay.prefetch_summary", rows=report.to_frame().to_dict(orient="records"))

    # -------------------------------------------------
    # 3. Play a fixed number of frames headlessly
    # -------------------------------------------------
    if no_loop:
        session.playback.toggle_loop()
    session.playback.restart()
    await asyncio.sleep(frames * session.playback.speed_ms / 1000.0)

    session.close()


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Headless snapshot timeline replay.")
    parser.add_argument("--config", default="configs/timeline.json", help="timeline config (JSON)")
    parser.add_argument("--frames", type=int, default=20, help="number of frame intervals to play")
    parser.add_argument("--speed-ms", type=int, default=None, help="frame interval override")
    parser.add_argument("--no-loop", action="store_true", help="stop on the last frame")
    parser.add_argument("--log-mode", default=None, help="logging profile name")
    args = parser.parse_args()

    init_logging(run_id="replay", mode=args.log_mode)
    config_path = Path(args.config)
    cfg = load_config(config_path) if config_path.exists() else TimelineConfig()
    if args.speed_ms is not None:
        cfg = TimelineConfig.from_dict({**cfg.__dict__, "default_speed_ms": cfg.clamp_speed(args.speed_ms)})

    asyncio.run(main(cfg, args.frames, args.no_loop))
