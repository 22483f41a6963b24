import logging

from fastmcp import FastMCP

from threadlinking.config import ConfigError, get_base_dir, get_log_level

_LOG_FORMAT = "%(asctime)s %(name)s %(levelname)s %(message)s"
logger = logging.getLogger(__name__)

mcp = FastMCP(
    name="threadlinking",
    instructions=(
        "You are connected to threadlinking, a store of the conversation context behind files. "
        "Save decisions and reasoning as snippets on a thread, then attach the files they produced. "
        "Use explain to find out why a file exists before changing it. "
        "Always confirm with the user before deleting a thread."
    ),
)

# Explicit registration: server -> tools (one direction only).
from threadlinking.tools import files, read, semantic, snippets, threads  # noqa: E402


def _register_all() -> None:
    snippets._register(mcp)
    threads._register(mcp)
    files._register(mcp)
    read._register(mcp)
    semantic._register(mcp)


def main() -> None:
    try:
        level = get_log_level() or logging.INFO
        base_dir = get_base_dir()
    except ConfigError as e:
        logging.basicConfig(level=logging.INFO, format=_LOG_FORMAT)
        logger.error("Configuration error: %s", e)
        raise SystemExit(1)

    logging.basicConfig(level=level, format=_LOG_FORMAT)

    logger.info("threadlinking starting, data dir: %s", base_dir)

    _register_all()

    from threadlinking.index.updater import register_index_listener, wait_for_updates

    register_index_listener()
    try:
        mcp.run()
    finally:
        wait_for_updates(timeout=30)
        logger.info("threadlinking stopped")


if __name__ == "__main__":
    main()
