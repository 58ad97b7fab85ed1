#!/usr/bin/env python3
"""Record one voice command from the microphone and run it through the pipeline."""

from __future__ import annotations

import argparse
import json
import os
import sys
import time
from pathlib import Path

PROJECT_ROOT = Path(__file__).resolve().parents[1]
SRC_DIR = PROJECT_ROOT / "src"
for path in (SRC_DIR, PROJECT_ROOT):
    if str(path) not in sys.path:
        sys.path.insert(0, str(path))


def _parse_args() -> argparse.Namespace:
    p = argparse.ArgumentParser(description="Record a voice command and extract tasks from it")
    p.add_argument(
        "--max-duration-sec",
        type=float,
        default=None,
        help="Stop automatically after N seconds (default: MAX_RECORDING_DURATION_SEC)",
    )
    p.add_argument("--sample-rate", type=int, default=None)
    p.add_argument("--block-size", type=int, default=None)
    p.add_argument(
        "--input-device",
        default=os.getenv("RECORDING_INPUT_DEVICE"),
        help="Input device name (exact or partial match). Defaults to the default microphone.",
    )
    p.add_argument("--aggressive", action="store_true", help="Use the aggressive cleanup prompt")
    return p.parse_args()


def main() -> int:
    from apps.api_gateway.deps import build_services
    from voice_task_agent.common.config import get_settings
    from voice_task_agent.common.errors import AppError
    from voice_task_agent.common.logging import setup_logging
    from voice_task_agent.domain.enums import PipelineState
    from voice_task_agent.services.recording_session import MicrophoneAudioSource, RecordingSession
    from voice_task_agent.storage.db import engine, init_db

    args = _parse_args()
    setup_logging()
    if get_settings().app_env.strip().lower() not in {"prod", "production"}:
        init_db(engine)

    services = build_services()
    source = MicrophoneAudioSource(
        sample_rate=args.sample_rate,
        block_size=args.block_size,
        input_device=(args.input_device or "").strip() or None,
    )
    session = RecordingSession(source, max_duration_sec=args.max_duration_sec)

    try:
        run = services.pipeline.record(session, aggressive=args.aggressive)
    except AppError as e:
        print(f"error: {e.message}", file=sys.stderr)
        return 1

    print(f"Recording (max {session.max_duration_sec:.0f}s)... press Enter to stop", file=sys.stderr)
    try:
        input()
    except (KeyboardInterrupt, EOFError):
        session.cancel()
        print("Recording cancelled", file=sys.stderr)
        return 130

    session.stop()
    # таймер длительности мог уже запустить обработку в своём потоке
    while run.state in (PipelineState.recording, PipelineState.processing):
        time.sleep(0.2)

    if run.state == PipelineState.idle:
        print(f"error: recording failed: {session.error}", file=sys.stderr)
        return 1

    print(json.dumps(run.to_response(), ensure_ascii=False, indent=2))
    return 1 if run.state == PipelineState.failed else 0


if __name__ == "__main__":
    raise SystemExit(main())
