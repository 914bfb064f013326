from __future__ import annotations

import argparse
import json
import logging
import sys
from typing import Any, Dict, List, Optional

from dotenv import load_dotenv

from copilot.config import CopilotServices, build_services, load_app_config
from copilot.types import CopilotError


# --------------------------------------------------------------------------------------
# Helpers
# --------------------------------------------------------------------------------------


def parse_params(pairs: Optional[List[str]]) -> Dict[str, Any]:
    """
    Turn repeated `key=value` arguments into a params mapping.

    A key given more than once becomes a list, which is what list blocks
    in templates iterate over. A key written as `key[]` always becomes a
    list, so a single item can be passed too.
    """
    params: Dict[str, Any] = {}
    for pair in pairs or []:
        if "=" not in pair:
            raise SystemExit(f"Invalid --param {pair!r}, expected key=value.")
        key, value = pair.split("=", 1)
        as_list = key.endswith("[]")
        if as_list:
            key = key[:-2]
        if not key:
            raise SystemExit(f"Invalid --param {pair!r}, missing key.")
        if key in params:
            existing = params[key]
            params[key] = (existing if isinstance(existing, list) else [existing]) + [value]
        else:
            params[key] = [value] if as_list else value
    return params


def dump_messages(messages) -> str:
    return json.dumps([m.to_dict() for m in messages], indent=2, ensure_ascii=False)


def configure_logging(verbose: bool, cfg: Dict[str, Any]) -> None:
    level_name = (cfg.get("logging", {}) or {}).get("level", "WARNING")
    level = logging.DEBUG if verbose else getattr(logging, str(level_name).upper(), logging.WARNING)
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("urllib3").setLevel(logging.WARNING)


# --------------------------------------------------------------------------------------
# Commands
# --------------------------------------------------------------------------------------


def cmd_prompts(services: CopilotServices, args: argparse.Namespace) -> int:
    for definition in services.prompts.list():
        prompt = services.prompts.get(definition.name)
        keys = ", ".join(prompt.param_keys) if prompt else ""
        print(f"{definition.name}\tmodel={definition.model}\tparams=[{keys}]")
    return 0


def cmd_render(services: CopilotServices, args: argparse.Namespace) -> int:
    prompt = services.prompts.get(args.name)
    if prompt is None:
        print(f"Prompt '{args.name}' not found.", file=sys.stderr)
        return 1
    print(dump_messages(prompt.finish(parse_params(args.param))))
    return 0


def cmd_route(services: CopilotServices, args: argparse.Namespace) -> int:
    provider = services.router.get_provider_by_capability(args.capability, args.model)
    if provider is None:
        print(f"No provider for {args.capability} (model={args.model}).", file=sys.stderr)
        return 1
    print(provider.type_name)
    return 0


def interactive_chat(services: CopilotServices, args: argparse.Namespace) -> int:
    """
    Simple terminal chat loop over one session.

    Each typed line is staged as a user message and the full rendered
    message list is printed. Commands:
      - /save  commit staged messages
      - /exit  or /quit, or Ctrl+C, to end the loop
    """
    session_id = services.sessions.create(
        doc_id=args.doc,
        workspace_id=args.workspace,
        user_id=args.user,
        prompt_name=args.name,
    )
    session = services.sessions.get(session_id)
    params = parse_params(args.param)

    print(f"\n[Session {session_id} started with prompt '{args.name}']")
    print("Model   :", session.model)
    print("Type /save to commit, /exit or press Ctrl+C to end the session.\n")

    while True:
        try:
            user_input = input("You> ").strip()
            if not user_input:
                continue

            if user_input.lower() in {"/exit", "/quit"}:
                print("Bye")
                break

            if user_input.lower() == "/save":
                staged = len(session.stash_messages)
                session.save()
                print(f"[Committed {staged} messages]")
                continue

            session.push({"role": "user", "content": user_input})
            print(dump_messages(session.finish(params)))
        except KeyboardInterrupt:
            print("\n[Session interrupted by user, exiting chat]")
            break
    return 0


# --------------------------------------------------------------------------------------
# CLI
# --------------------------------------------------------------------------------------


def parse_args(argv: list[str]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Copilot prompt, session and provider routing tools."
    )
    parser.add_argument(
        "--config",
        required=True,
        help="Path to config.yaml file.",
    )
    parser.add_argument(
        "--verbose",
        action="store_true",
        help="Enable debug logging.",
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    subparsers.add_parser("prompts", help="List configured prompts.")

    render_parser = subparsers.add_parser("render", help="Render a prompt to messages.")
    render_parser.add_argument("name", help="Prompt name.")
    render_parser.add_argument(
        "--param",
        action="append",
        metavar="KEY=VALUE",
        help="Template parameter; repeat a key or write key[]=value to pass a list.",
    )

    route_parser = subparsers.add_parser("route", help="Show the provider for a capability.")
    route_parser.add_argument(
        "capability",
        help="Capability tag (e.g., text-to-text, text-to-image).",
    )
    route_parser.add_argument("--model", default=None, help="Optional model id.")

    chat_parser = subparsers.add_parser("chat", help="Interactive chat session.")
    chat_parser.add_argument("name", help="Prompt name to bind the session to.")
    chat_parser.add_argument("--user", required=True, help="User id owning the session.")
    chat_parser.add_argument("--doc", default="cli", help="Document id.")
    chat_parser.add_argument("--workspace", default="cli", help="Workspace id.")
    chat_parser.add_argument(
        "--param",
        action="append",
        metavar="KEY=VALUE",
        help="Template parameter; repeat a key or write key[]=value to pass a list.",
    )

    return parser.parse_args(argv)


COMMANDS = {
    "prompts": cmd_prompts,
    "render": cmd_render,
    "route": cmd_route,
    "chat": interactive_chat,
}


def main(argv: Optional[List[str]] = None) -> int:
    # Load environment variables from .env (if present)
    load_dotenv()

    args = parse_args(sys.argv[1:] if argv is None else argv)
    config = load_app_config(args.config)
    configure_logging(args.verbose, config)

    services = build_services(config)

    try:
        return COMMANDS[args.command](services, args)
    except CopilotError as exc:
        logging.getLogger(__name__).error("%s", exc)
        return 1


if __name__ == "__main__":
    sys.exit(main())
