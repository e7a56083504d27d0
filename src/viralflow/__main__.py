import asyncio
import sys

from dotenv import load_dotenv
from loguru import logger

from viralflow.app_config import load_json_config, parse_app_config, resolve_runtime_env
from viralflow.bootstrap import bootstrap_runtime
from viralflow.cli import StudioShell
from viralflow.errors import ConfigurationError
from viralflow.workflows import WORKFLOW_TYPES

_USER_PROMPT = "you> "


async def main() -> None:
    load_dotenv()

    feature = sys.argv[1].strip().lower() if len(sys.argv) > 1 else "assistant"
    if feature not in WORKFLOW_TYPES:
        print(f"Usage: python -m viralflow [{'|'.join(WORKFLOW_TYPES)}]")
        sys.exit(2)

    try:
        app = parse_app_config(load_json_config())
        env = resolve_runtime_env(app.provider_name)
        runtime = bootstrap_runtime(app, env)
    except ConfigurationError as ex:
        logger.error(str(ex))
        sys.exit(1)

    workflow, restored = runtime.open_workflow(feature)
    shell = StudioShell(workflow, open_studio=lambda name: runtime.open_workflow(name)[0])

    print(f"viralflow {feature} studio (type 'exit' to quit, '/help' for commands)")
    print(f"Provider: {app.provider_name} ({app.model})")
    if restored:
        print(f"Resumed saved work at phase: {workflow.phase}")
    if runtime.log_descriptions:
        print(f"Logging: {', '.join(runtime.log_descriptions)}")
    print()

    try:
        while True:
            try:
                user_input = input(_USER_PROMPT)
            except (EOFError, KeyboardInterrupt):
                break

            trimmed = user_input.strip()

            if trimmed in ("exit", "quit"):
                break

            if not trimmed:
                continue

            try:
                print()
                await shell.handle(trimmed)
                print()
            except Exception as ex:
                logger.error(f"Unhandled error: {ex}")
    finally:
        runtime.close()


def run() -> None:
    asyncio.run(main())


if __name__ == "__main__":
    run()
