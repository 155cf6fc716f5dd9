import argparse
import asyncio
import logging
import os
import signal
import sys
from pathlib import Path

from voice_dictation.config import DictationConfig
from voice_dictation.log_format import ColoredFormatter

ENV_FILE_PATH = Path.home() / ".config" / "voice-dictation" / "env"


def _load_env_file() -> None:
    if not ENV_FILE_PATH.exists():
        return
    with open(ENV_FILE_PATH) as f:
        for line in f:
            line = line.strip()
            if not line or line.startswith("#"):
                continue
            if "=" not in line:
                continue
            key, _, value = line.partition("=")
            value = value.strip("'\"")
            if key not in os.environ:
                os.environ[key] = value


def _configure_logging(verbose: bool, log_file: str) -> None:
    root = logging.getLogger()
    root.setLevel(logging.DEBUG if verbose else logging.INFO)

    console = logging.StreamHandler(sys.stderr)
    console.setFormatter(ColoredFormatter(datefmt="%H:%M:%S", use_color=sys.stderr.isatty()))
    root.addHandler(console)

    if log_file:
        file_handler = logging.FileHandler(log_file)
        file_handler.setFormatter(
            logging.Formatter("%(asctime)s %(name)s %(levelname)s %(message)s")
        )
        root.addHandler(file_handler)

    if verbose:
        logging.getLogger("websockets").setLevel(logging.INFO)


def main() -> None:
    _load_env_file()
    parser = argparse.ArgumentParser(description="Live dictation to the report transcription service")
    parser.add_argument("--verbose", "-v", action="store_true", help="Verbose logging")
    parser.add_argument("--api-base", help="Transcription service base URL")
    parser.add_argument("--device", help="Capture device index or name")

    subparsers = parser.add_subparsers(dest="command")

    record_parser = subparsers.add_parser("record", help="Dictate until Ctrl-C or the tier limit")
    record_parser.add_argument(
        "--seconds", type=float, default=None, help="Stop after this many seconds",
    )
    subparsers.add_parser("devices", help="List audio input devices")
    subparsers.add_parser("check", help="Run startup health checks")

    args = parser.parse_args()

    config = DictationConfig()
    if args.api_base:
        config.api_base = args.api_base
    if args.device:
        config.capture_device = args.device

    _configure_logging(args.verbose, config.log_file)

    if args.command == "devices":
        sys.exit(_list_devices())
    if args.command == "check":
        sys.exit(_run_checks(config))

    seconds = getattr(args, "seconds", None)
    sys.exit(asyncio.run(_run_record(config, seconds)))


def _list_devices() -> int:
    import sounddevice as sd

    try:
        devices = sd.query_devices()
    except sd.PortAudioError as exc:
        print(f"Cannot query audio devices: {exc}", file=sys.stderr)
        return 1
    for index, dev in enumerate(devices):
        if dev["max_input_channels"] > 0:
            print(f"{index:>3}  {dev['name']}  ({int(dev['default_samplerate'])} Hz)")
    return 0


def _run_checks(config: DictationConfig) -> int:
    from voice_dictation.health import has_critical_failures, run_startup_checks

    results = run_startup_checks(config)
    return 1 if has_critical_failures(results) else 0


async def _run_record(config: DictationConfig, seconds: float | None) -> int:
    from voice_dictation.domain.state import SessionState
    from voice_dictation.factory import create_controller
    from voice_dictation.health import has_critical_failures, run_startup_checks

    results = run_startup_checks(config)
    if has_critical_failures(results):
        logging.error("Critical health check failures, not starting")
        return 1

    finished = asyncio.Event()
    exit_code = 0

    def on_transcript(text: str, is_final: bool) -> None:
        if is_final:
            print(text, flush=True)

    def on_error(message: str) -> None:
        nonlocal exit_code
        exit_code = 1
        print(f"Error: {message}", file=sys.stderr)
        finished.set()

    def on_limit_reached(message: str) -> None:
        print(f"{message} Upgrade your plan for longer dictation.", file=sys.stderr)
        finished.set()

    controller = create_controller(
        config,
        credential=config.read_token(),
        on_transcript=on_transcript,
        on_error=on_error,
        on_limit_reached=on_limit_reached,
    )

    shutdown_triggered = False
    loop = asyncio.get_running_loop()
    pending_stops: list[asyncio.Task] = []

    def handle_signal() -> None:
        nonlocal shutdown_triggered
        if shutdown_triggered:
            logging.warning("Forced exit")
            sys.exit(1)
        shutdown_triggered = True
        logging.info("Stopping...")
        finished.set()
        if controller.state is SessionState.CONNECTING:
            pending_stops.append(loop.create_task(controller.stop_recording()))

    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, handle_signal)

    await controller.start_recording()
    if controller.state is SessionState.RECORDING:
        logging.info(
            "Recording (tier=%s, limit=%ds). Press Ctrl-C to stop.",
            controller.tier.value, controller.max_duration,
        )
        try:
            await asyncio.wait_for(finished.wait(), timeout=seconds)
        except TimeoutError:
            pass

    if pending_stops:
        await asyncio.gather(*pending_stops)
    await controller.stop_recording()
    await controller.wait_released()
    if controller.transcript:
        print(f"\n{controller.transcript}")
    return exit_code


if __name__ == "__main__":
    main()
