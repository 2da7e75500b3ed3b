"""
Terminal host for obs-now-playing.

Runs the same poller/subscriber pair the OBS script uses and prints the
rendered text whenever it changes. Handy on headless machines and for
checking templates before putting them in OBS.

    python watch_now_playing.py --list-players
    python watch_now_playing.py --player spotify --template "{artists} - {title}"
"""
import argparse
import signal
import sys
import threading
import time
from typing import List, Optional

from config import DEBUG, SUBSCRIBER, TEMPLATES
from logging_config import get_logger, setup_logging
from now_playing import NowPlayingContext, TemplateError, TemplateInvalidError
from state_manager import get_attribute_js_notation, get_state, set_attribute_js_notation, set_state

logger = get_logger(__name__)

SUBSCRIBER_NAME = "terminal"
# Host frame period; the subscriber's own cooldown decides how often it renders
TICK_INTERVAL = 0.1

_exit_event = threading.Event()


def _state_key(field: str) -> str:
    return f"subscribers.{SUBSCRIBER_NAME}.{field}"


def load_saved_choice() -> dict:
    """Player/template remembered by a previous --save run."""
    try:
        state = get_state()
    except OSError as e:
        logger.error(f"Failed to read saved state: {e}")
        return {}
    return {
        "player": get_attribute_js_notation(state, _state_key("player")),
        "template": get_attribute_js_notation(state, _state_key("template")),
    }


def save_choice(player: Optional[str], template: Optional[str]) -> None:
    state = get_state()
    state = set_attribute_js_notation(state, _state_key("player"), player)
    state = set_attribute_js_notation(state, _state_key("template"), template)
    set_state(state)
    logger.info(f"Saved player '{player}' and template for next run")


def list_players(context: NowPlayingContext) -> int:
    if not context.poller.poll_once():
        print("Could not list players (see log)", file=sys.stderr)
        return 1
    players = context.list_known_players()
    if not players:
        print("No players found")
        return 0
    for player_id in players:
        metadata = context.store.get_metadata(player_id)
        if metadata is None or metadata.is_empty():
            print(f"{player_id}\t(no metadata)")
        else:
            print(f"{player_id}\t{', '.join(metadata.artists or ())} - {metadata.title or ''}")
    return 0


def run(context: NowPlayingContext, refresh_period: float) -> int:
    """Main loop: tick the subscriber like a host frame loop until interrupted."""
    last_printed = None

    def print_if_changed(text: str) -> None:
        nonlocal last_printed
        if text != last_printed:
            print(text, flush=True)
            last_printed = text

    subscriber = context.get_subscriber(SUBSCRIBER_NAME)
    subscriber.sink = print_if_changed
    subscriber.refresh_period = refresh_period

    context.activate()
    try:
        last = time.monotonic()
        while not _exit_event.is_set():
            now = time.monotonic()
            subscriber.tick(now - last)
            last = now
            if context.poller.error is not None:
                logger.error("Player poller died, exiting")
                return 1
            _exit_event.wait(TICK_INTERVAL)
    finally:
        context.deactivate()
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(description='Print the current track of an MPRIS player')
    parser.add_argument('--player', help='Player to follow (see --list-players)')
    parser.add_argument('--template', help='Text template, e.g. "{artists} - {title}"')
    parser.add_argument('--list-players', action='store_true', help='List reachable players and exit')
    parser.add_argument('--once', action='store_true', help='Poll once, print the text and exit')
    parser.add_argument('--save', action='store_true', help='Remember --player/--template for next run')
    parser.add_argument('--refresh', type=float, default=SUBSCRIBER["refresh_period"],
                        help='Seconds between refreshes (default: %(default)s)')
    args = parser.parse_args(argv)

    setup_logging(
        console_level=DEBUG.get("log_level", "INFO"),
        file_level="DEBUG" if DEBUG.get("log_detailed", False) else "INFO",
        console=DEBUG.get("log_to_console", True),
        log_file=DEBUG.get("log_file", "now_playing.log"),
        log_polling=DEBUG.get("log_polling", False),
    )

    context = NowPlayingContext()
    if args.list_players:
        return list_players(context)

    saved = load_saved_choice()
    player = args.player or saved.get("player")
    template = args.template or saved.get("template") or TEMPLATES["default"]

    try:
        subscriber = context.create_subscriber(SUBSCRIBER_NAME, player=player, template=template)
    except TemplateInvalidError as e:
        print(str(e), file=sys.stderr)
        return 2

    if args.save:
        try:
            save_choice(player, template)
        except OSError as e:
            logger.error(f"Failed to save choice: {e}")

    if not player:
        logger.warning("No player selected, text will stay empty (use --player, see --list-players)")

    if args.once:
        context.poller.poll_once()
        try:
            print(context.render(subscriber.template_name, player))
        except TemplateError as e:
            print(str(e))
        return 0

    def handle_interrupt(signum, frame):
        logger.info("Received keyboard interrupt...")
        _exit_event.set()

    signal.signal(signal.SIGINT, handle_interrupt)
    signal.signal(signal.SIGTERM, handle_interrupt)

    logger.info(f"Watching player '{player}'...")
    return run(context, args.refresh)


if __name__ == "__main__":
    sys.exit(main())
