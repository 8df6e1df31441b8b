from __future__ import annotations

import argparse
import json
import logging
import sys
from datetime import datetime, timezone

from dotenv import load_dotenv

from studio.capabilities import MODEL_DESCRIPTIONS, capabilities_of
from studio.chat import ChatService
from studio.config import ConfigError, StudioConfig
from studio.console import StudioConsole, parse_setting, render_message, render_session_line
from studio.errors import StudioError
from studio.sessions import JsonFileSnapshotStore, SessionStore
from studio.templates import TemplateRegistry, create_from_template


class JsonFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        ts = datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat()
        payload = {
            "ts": ts,
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(payload, default=str)


def setup_logging(verbose: bool = False, quiet: bool = False, log_format: str = "text") -> None:
    if quiet:
        level = logging.WARNING
    elif verbose:
        level = logging.DEBUG
    else:
        level = logging.INFO

    handler = logging.StreamHandler()
    if log_format == "json":
        handler.setFormatter(JsonFormatter())
    else:
        handler.setFormatter(
            logging.Formatter(
                "%(asctime)s [%(levelname)s] %(name)s: %(message)s",
                datefmt="%Y-%m-%d %H:%M:%S",
            )
        )
    logging.basicConfig(level=level, handlers=[handler], force=True)

    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)


def main() -> int:
    load_dotenv()
    return _main(sys.argv[1:])


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="studio", description="Studio - prompt console for Gemini models")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    parser.add_argument("-q", "--quiet", action="store_true", help="Warnings and errors only")
    parser.add_argument("--log-format", choices=["text", "json"], default="text")
    parser.add_argument("--data-dir", help="Where sessions and templates live")
    subparsers = parser.add_subparsers(dest="command", required=False)

    new = subparsers.add_parser("new", help="Create a session and make it active")
    new.add_argument("--template", default="blank")
    new.add_argument("--title")
    new.add_argument("--model")

    subparsers.add_parser("list", help="List sessions")

    select = subparsers.add_parser("select", help="Make a session active")
    select.add_argument("session_id")

    delete = subparsers.add_parser("delete", help="Delete a session")
    delete.add_argument("session_id")

    show = subparsers.add_parser("show", help="Print a session's history")
    show.add_argument("session_id", nargs="?")

    set_cmd = subparsers.add_parser("set", help="Change a setting on the active session")
    set_cmd.add_argument("key")
    set_cmd.add_argument("value")

    var = subparsers.add_parser("var", help="Set (or clear, without VALUE) a {{variable}}")
    var.add_argument("name")
    var.add_argument("value", nargs="?")

    send = subparsers.add_parser("send", help="Send one message to the active session")
    send.add_argument("text", nargs="?", default="")
    send.add_argument("--attach", action="append", default=[], help="File to attach (repeatable)")
    send.add_argument("--download", help="Save a generated video to this path")

    subparsers.add_parser("chat", help="Interactive console")
    subparsers.add_parser("models", help="List models and what they accept")
    subparsers.add_parser("templates", help="List session templates")
    return parser


def _open_store(config: StudioConfig) -> SessionStore:
    return SessionStore.open(JsonFileSnapshotStore(config.snapshot_path, key=config.storage_key))


def _cmd_models() -> int:
    for model, (label, description) in MODEL_DESCRIPTIONS.items():
        caps = capabilities_of(model)
        flags = [
            name
            for name, enabled in (
                ("system", caps.accepts_system_instruction),
                ("sampling", caps.accepts_sampling_params),
                ("thinking", caps.accepts_thinking_budget),
                ("search", caps.accepts_search_grounding),
                ("image", caps.is_image_output),
                ("video", caps.is_video_output),
                ("live", caps.is_live_audio),
            )
            if enabled
        ]
        print(f"{model.value:48} {label:20} [{', '.join(flags)}] {description}")
    return 0


def _cmd_send(args: argparse.Namespace, service: ChatService, config: StudioConfig) -> int:
    config.validate(network=True)
    for path in args.attach:
        service.attach_path(path)
    reply = service.send(args.text)
    if reply is None:
        print("Nothing to send")
        return 1
    print(render_message(reply))
    if reply.video_url and args.download:
        saved = service.video_client.download(reply.video_url, args.download)
        print(f"Saved video to {saved}")
    return 0


def _main(argv: list[str]) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)
    setup_logging(args.verbose, args.quiet, args.log_format)
    logger = logging.getLogger(__name__)

    try:
        config = StudioConfig.from_env(data_dir=args.data_dir)
        config.validate()
    except ConfigError as e:
        logger.error(f"Configuration error: {e}")
        return 1

    if args.command == "models":
        return _cmd_models()

    templates = TemplateRegistry(config.templates_dir)
    templates.reload()
    if args.command == "templates":
        for name in templates.names():
            template = templates.get(name)
            print(f"{name:12} {template.title:24} {template.model}")
        return 0

    store = _open_store(config)
    service = ChatService(store, config)

    try:
        if args.command == "new":
            template = templates.get(args.template)
            if template is None:
                print(f"Unknown template '{args.template}'. Available: {', '.join(templates.names())}")
                return 1
            session = create_from_template(store, template)
            if args.title or args.model:
                patch = {"title": args.title}
                if args.model:
                    patch.update(parse_setting("model", args.model))
                store.update(session.id, patch)
            print(session.id)
        elif args.command == "list":
            for session in store:
                print(render_session_line(session, session.id == store.active_id))
        elif args.command == "select":
            if not store.select(args.session_id):
                print(f"No session {args.session_id}")
                return 1
            # The first stored session becomes active on the next load.
            store.sessions.sort(key=lambda s: s.id != args.session_id)
            store.save()
        elif args.command == "delete":
            if not store.delete(args.session_id):
                print(f"No session {args.session_id}")
                return 1
        elif args.command == "show":
            session = store.get(args.session_id) if args.session_id else store.active
            if session is None:
                print(f"No session {args.session_id}")
                return 1
            print(f"{session.title} ({session.config.model})")
            for message in session.messages:
                print(render_message(message))
        elif args.command == "set":
            store.update(store.active_id, parse_setting(args.key, args.value))
        elif args.command == "var":
            store.update(store.active_id, variables={args.name: args.value})
        elif args.command == "send":
            return _cmd_send(args, service, config)
        else:
            config.validate(network=True)
            StudioConsole(service, templates).run()
    except (StudioError, ConfigError, ValueError, OSError) as e:
        logger.error(str(e))
        return 1
    finally:
        service.close()
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
