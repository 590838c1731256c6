# run.py
# Entry point. Config and wiring only; no logic lives here.

import argparse
import asyncio
import logging
import os

from plan_agent import display
from plan_agent.config import AgentConfig
from plan_agent.session import AgentSession


def configure_logging(level: str | None = None) -> None:
    logging.basicConfig(
        level=(level or os.getenv("PLAN_AGENT_LOG_LEVEL", "WARNING")).upper(),
        format="%(message)s",
        datefmt="[%X]",
        handlers=[display.log_handler()],
    )


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="plan-agent",
        description="Turn natural-language requests into executed project operations.",
    )
    parser.add_argument("prompts", nargs="*", help="Requests to run, in order.")
    parser.add_argument("--root", help="Project root (default: PLAN_AGENT_PROJECT_ROOT or cwd).")
    parser.add_argument("--model", help="Model name for the OpenAI-compatible endpoint.")
    parser.add_argument("--no-shell", action="store_true", help="Disable compile and terminal steps.")
    parser.add_argument("--analyze", action="store_true", help="Analyse the project instead.")
    parser.add_argument("--log-level", help="Logging level (default: WARNING).")
    return parser.parse_args(argv)


async def _run(args: argparse.Namespace) -> int:
    cfg = AgentConfig.from_env(
        project_root=args.root,
        model=args.model,
        allow_shell=False if args.no_shell else None,
    ).resolve()
    if not cfg.api_key:
        display.halt("No API key configured. Set OPENAI_API_KEY or PLAN_AGENT_API_KEY.")
        return 1

    session = AgentSession.from_config(cfg, notifier=display.ui_message)
    display.banner(cfg.model, str(cfg.project_root))

    if args.analyze:
        analysis = await session.analyze_project()
        if analysis is None:
            display.halt("Project analysis failed.")
            return 1
        display.final_result(analysis)
        return 0

    exit_code = 0
    for prompt in args.prompts:
        display.prompt_received(prompt)
        response = await session.process_message(prompt)
        if response.plan is None:
            display.halt(response.text)
            exit_code = 1
            continue
        display.plan_parsed(response.plan)
        if response.report is not None:
            display.execution_summary(response.report)
        display.final_result(response.text)
    return exit_code


def main(argv: list[str] | None = None) -> None:
    args = parse_args(argv)
    configure_logging(args.log_level)
    raise SystemExit(asyncio.run(_run(args)))


if __name__ == "__main__":
    main()
