from __future__ import annotations

import argparse
import asyncio
import dataclasses
import sys
import threading


def _valid_port(value: str) -> int:
    """Validate port is an integer in range 1-65535."""
    port = int(value)
    if port < 1 or port > 65535:
        raise argparse.ArgumentTypeError(f"port must be 1-65535, got {port}")
    return port


def _valid_patient_id(value: str) -> int:
    patient_id = int(value)
    if patient_id < 1:
        raise argparse.ArgumentTypeError(f"patient id must be positive, got {patient_id}")
    return patient_id


def main() -> None:
    from carebot.config.loader import get_server_config
    server_cfg = get_server_config()
    default_host = server_cfg.get("host", "127.0.0.1")
    default_port = server_cfg.get("port", 8430)

    parser = argparse.ArgumentParser(
        prog="carebot",
        description="Carebot -- hospital portal assistant",
    )
    subparsers = parser.add_subparsers(dest="command")

    start_parser = subparsers.add_parser("start", help="Start the Carebot HTTP host")
    start_parser.add_argument(
        "--port", type=_valid_port, default=default_port, help=f"Port to run on (default: {default_port})"
    )
    start_parser.add_argument(
        "--host", default=default_host, help=f"Host to bind to (default: {default_host})"
    )

    stop_parser = subparsers.add_parser("stop", help="Stop the running Carebot host")
    stop_parser.add_argument(
        "--port", type=_valid_port, default=default_port, help=f"Port the host is running on (default: {default_port})"
    )

    chat_parser = subparsers.add_parser("chat", help="Talk to the assistant in this terminal")
    chat_parser.add_argument(
        "--patient-id", type=_valid_patient_id, default=None, help="Greet a known patient by id"
    )
    chat_parser.add_argument(
        "--no-delay", action="store_true", help="Reply immediately instead of simulating typing"
    )

    args = parser.parse_args()

    if args.command == "start":
        if args.host not in ("127.0.0.1", "localhost", "::1"):
            print("Warning: binding to non-loopback address exposes the assistant to the network", file=sys.stderr)
        _start_host(host=args.host, port=args.port)
    elif args.command == "stop":
        _stop_host(port=args.port)
    elif args.command == "chat":
        _chat(patient_id=args.patient_id, no_delay=args.no_delay)
    else:
        parser.print_help()
        sys.exit(1)


def _start_host(host: str, port: int) -> None:
    import uvicorn
    from carebot import __version__

    print()
    print(f"  Carebot v{__version__}")
    print(f"  API:        http://{host}:{port}")
    print(f"  API docs:   http://{host}:{port}/docs")
    print()

    uvicorn.run("carebot.api:app", host=host, port=port, log_level="warning")


def _stop_host(port: int) -> None:
    """Stop a running Carebot host by finding and terminating its process."""
    import psutil

    target_port = port
    for proc in psutil.process_iter(["pid", "name"]):
        try:
            for conn in proc.net_connections(kind="tcp"):
                if conn.laddr.port == target_port and conn.status == "LISTEN":
                    proc.terminate()
                    try:
                        proc.wait(timeout=5)
                        print(f"  Carebot host (PID {proc.pid}) stopped.")
                    except psutil.TimeoutExpired:
                        proc.kill()
                        print(f"  Carebot host (PID {proc.pid}) killed.")
                    return
        except (psutil.NoSuchProcess, psutil.AccessDenied, psutil.ZombieProcess):
            continue

    print(f"  No Carebot host found on port {target_port}.")
    sys.exit(1)


# ---------------------------------------------------------------------------
# Terminal chat
# ---------------------------------------------------------------------------

_CHAT_HELP = "  (type 1-4 to pick a suggestion, /file NAME to attach a file, /quit to leave)"


def _chat(patient_id: int | None, no_delay: bool) -> None:
    try:
        asyncio.run(_chat_session(patient_id, no_delay))
    except KeyboardInterrupt:
        print()


def _read_stdin(loop: asyncio.AbstractEventLoop, lines: asyncio.Queue) -> None:
    """Forward stdin lines into the event loop. None marks end of input."""
    while True:
        try:
            line = input()
        except (EOFError, OSError):
            loop.call_soon_threadsafe(lines.put_nowait, None)
            return
        loop.call_soon_threadsafe(lines.put_nowait, line)


def _render_chips(suggestions) -> None:
    for i, chip in enumerate(suggestions, start=1):
        print(f"    [{i}] {chip.label}")


async def _chat_session(patient_id: int | None, no_delay: bool) -> None:
    from carebot import create
    from carebot.assistant.conversation import AssistantSettings
    from carebot.assistant.messages import ASSISTANT

    settings = AssistantSettings.from_config()
    if no_delay:
        settings = dataclasses.replace(settings, reply_delay=0.0, handoff_followup_delay=0.0, file_ack_delay=0.0)

    conversation = create(patient_id=patient_id, settings=settings)
    shown = 0

    def render(snapshot) -> None:
        nonlocal shown
        for message in snapshot.messages[shown:]:
            if message.sender == ASSISTANT:
                print(f"\n  carebot> {message.body}")
                if not snapshot.typing:
                    _render_chips(snapshot.suggestions)
        shown = len(snapshot.messages)

    render(conversation.snapshot())
    print(_CHAT_HELP)
    conversation.subscribe(render)

    loop = asyncio.get_running_loop()
    lines: asyncio.Queue = asyncio.Queue()
    threading.Thread(target=_read_stdin, args=(loop, lines), daemon=True).start()

    line: str | None = ""
    try:
        while not conversation.disposed:
            line = await lines.get()
            if line is None:
                break
            line = line.strip()
            if line in ("/quit", "/exit"):
                break
            if line.startswith("/file"):
                conversation.submit_file(line[len("/file"):])
            elif line.isdigit() and 1 <= int(line) <= len(conversation.suggestions):
                conversation.select_suggestion(conversation.suggestions[int(line) - 1].label)
            else:
                conversation.submit_text(line)
        # Let an in-flight reply land before leaving on end of input
        while conversation.typing and line is None:
            await asyncio.sleep(0.1)
    finally:
        conversation.dispose()


if __name__ == "__main__":
    main()
