import sys

from dotenv import load_dotenv
from loguru import logger

from companion_history.app_config import load_json_config, parse_history_config
from companion_history.bootstrap import bootstrap_runtime
from companion_history.commands.history_commands import HistoryCommands
from companion_history.services.session_controller import SessionController


def main(argv: list[str] | None = None) -> int:
    load_dotenv()

    config = parse_history_config(load_json_config())
    runtime = bootstrap_runtime(config)
    for description in runtime.log_descriptions:
        logger.debug(f"Logging to {description}")

    commands = HistoryCommands(runtime.store, SessionController(line_prefix=""))
    return commands.router().dispatch(sys.argv[1:] if argv is None else argv)


if __name__ == "__main__":
    sys.exit(main())
