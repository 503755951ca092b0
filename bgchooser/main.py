"""
BG Chooser: 部屋に入ってスナップショットを表示し、プッシュ更新を追いかける。
"""
import argparse
import logging
import sys
from contextlib import contextmanager

from .api.deps import get_http_client
from .api.push import PushChannel
from .api.rooms import RoomApi
from .config import get_settings
from .errors import PushChannelError
from .room import RoomView

logger = logging.getLogger(__name__)


def print_standings(view: RoomView) -> None:
    for game in view.sorted_games(by="votes"):
        mark = {"voting": "+", "vetoing": "x", "none": " "}[view.state_for(game.key)]
        print(
            f"[{mark}] {game.name:<40} "
            f"votes={len(game.votes):<3} vetoes={len(game.vetoes):<3} "
            f"players={game.info.min_players}-{game.info.max_players}"
        )


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(prog="bgchooser-follow")
    parser.add_argument("room_id")
    parser.add_argument("--user", required=True, help="自分のユーザー名")
    parser.add_argument("--once", action="store_true", help="スナップショットだけ表示して終了")
    args = parser.parse_args(argv)

    settings = get_settings()
    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper(), logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    with contextmanager(get_http_client)(settings) as client:
        view = RoomView(args.room_id, args.user, RoomApi(client))
        if not view.load():
            print(view.init_error, file=sys.stderr)
            return 1
        print_standings(view)
        if args.once:
            return 0

        try:
            channel = PushChannel.connect(settings)
        except PushChannelError as e:
            print(e, file=sys.stderr)
            return 1

        with channel:
            ok = view.listen(channel)
        if not ok:
            print(view.init_error, file=sys.stderr)
            return 1

    print_standings(view)
    return 0


if __name__ == "__main__":
    sys.exit(main())
