"""
Console entrypoint that delegates to the queuebot script.

This allows `python -m reqbot.main` (or the `reqbot` script) to run the bot.
"""

import asyncio


async def run_bot() -> None:
    # Imported lazily: loading queuebot reads and validates config.yaml.
    from queuebot import main as bot_main

    await bot_main()


def main() -> None:
    try:
        asyncio.run(run_bot())
    except KeyboardInterrupt:
        pass


if __name__ == "__main__":
    main()
