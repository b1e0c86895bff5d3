# romcoach/runtime/cli.py
from __future__ import annotations
import argparse
import logging
import sys

from romcoach.calibration.ladder import LadderStatus
from romcoach.common import config
from romcoach.feedback.classifier import FeedbackStatus
from romcoach.feedback.gate import Severity
from romcoach.runtime.loop import FrameLoop, LatestFrameSlot
from romcoach.runtime.session import SessionManager


def _print_ladder(st: LadderStatus):
    if st.saved:
        print(f"saved {st.side.upper()} rung → next step: {st.step}", flush=True)
        return
    active = st.left_active if st.side == "left" else st.right_active
    hips = "" if st.hips_ok else "  (step back so hips are visible)"
    print(f"[{st.side:>5}] rung={active or '–'} hold={st.progress * 100:5.1f}% left={st.countdown:.1f}s{hips}", flush=True)


class PhaseDriver:
    """Minimal exercise flow for shoulder abduction: hold at the top, then reset down."""
    def __init__(self, manager: SessionManager):
        self.manager = manager

    def __call__(self, st: FeedbackStatus):
        if not st.shown or st.feedback is None:
            return
        print(f"{st.feedback.severity.value:>10}: {st.feedback.message}", flush=True)
        if st.feedback.severity is not Severity.SUCCESS:
            return
        if st.phase == "up":
            self.manager.set_phase("waitDown")
        elif st.phase == "waitDown":
            self.manager.set_phase("up")


def run_camera(manager: SessionManager, on_status) -> int:
    # camera extra is optional; import late so the server runs without it
    from romcoach.pose.camera import CameraPoseSource

    slot = LatestFrameSlot()
    errors = []
    source = CameraPoseSource(on_frame=slot.put, camera_index=config.CAMERA_INDEX, on_error=errors.append)
    loop = FrameLoop(manager, slot, fps=config.FPS, on_status=on_status)
    source.start()
    try:
        def stop_when_done(st):
            on_status(st)
            if isinstance(st, LadderStatus) and st.step == "done":
                loop.stop()
            if errors:
                loop.stop()
        loop.on_status = stop_when_done
        loop.run()
    except KeyboardInterrupt:
        print("\nExiting…", flush=True)
    finally:
        loop.stop()
        source.stop()
        source.join(timeout=1.0)
    if errors:
        print("Camera error:", errors[-1], file=sys.stderr)
        return 1
    return 0


def cmd_calibrate(args) -> int:
    mgr = SessionManager()
    mgr.start_calibration()
    print("Calibrating LEFT arm: hold a dot 5s (hips must be visible).", flush=True)
    rc = run_camera(mgr, _print_ladder)
    if mgr.calib is not None:
        print("Done! Calibration captured:", mgr.calib.to_json(), flush=True)
    return rc


def cmd_exercise(args) -> int:
    mgr = SessionManager()
    mgr.start_exercise(args.exercise, level=args.level, levels=args.levels)
    print(f"Starting {args.exercise.replace('_', ' ')} (level {args.level}/{args.levels}). Ctrl+C to stop.", flush=True)
    try:
        return run_camera(mgr, PhaseDriver(mgr))
    finally:
        mgr.stop_exercise()


def cmd_serve(args) -> int:
    import uvicorn

    uvicorn.run("romcoach.runtime.server:app", host=args.host, port=args.port)
    return 0


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="romcoach", description="ROM calibration and live exercise coaching")
    sub = p.add_subparsers(dest="command", required=True)

    c = sub.add_parser("calibrate", help="run the hands-free ladder calibration")
    c.set_defaults(func=cmd_calibrate)

    e = sub.add_parser("exercise", help="live feedback for one exercise")
    e.add_argument("exercise", help="e.g. shoulder_abduction, mini_squats")
    e.add_argument("--level", type=int, default=1)
    e.add_argument("--levels", type=int, default=3)
    e.set_defaults(func=cmd_exercise)

    s = sub.add_parser("serve", help="run the websocket server for the browser client")
    s.add_argument("--host", default="127.0.0.1")
    s.add_argument("--port", type=int, default=8000)
    s.set_defaults(func=cmd_serve)
    return p


def main(argv=None) -> int:
    logging.basicConfig(level=config.LOG_LEVEL, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    args = build_parser().parse_args(argv)
    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
