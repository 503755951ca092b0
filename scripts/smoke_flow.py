#!/usr/bin/env python3
"""
動いているバックエンドに対して一通りの流れを確認する。

    BGCHOOSER_API_URL=http://127.0.0.1:8000 python scripts/smoke_flow.py <bgg_user>
"""
import sys

from bgchooser.api.deps import create_http_client
from bgchooser.api.rooms import RoomApi
from bgchooser.room import RoomView


def print_case(title):
    print(f"\n=== {title} ===")


def must(ok, view, label):
    if not ok:
        err = view.init_error or view.import_error or view.vote_error
        raise RuntimeError(f"{label} failed: {err}")


def fresh_view(api, room_id, user):
    view = RoomView(room_id, user, api)
    must(view.load(), view, f"load ({user})")
    return view


def case_import(api, room_id, bgg_user):
    print_case("import collection")
    view = fresh_view(api, room_id, "smoke1")
    candidates = view.fetch_collection(bgg_user)
    must(view.import_error is None, view, "fetch_collection")
    if not candidates:
        raise RuntimeError(f"no games for {bgg_user}: {view.import_info}")
    added = view.add_collection(bgg_user, candidates)
    must(view.import_error is None, view, "add_collection")

    again = fresh_view(api, room_id, "smoke2")
    if len(again.collection) != len(added):
        raise RuntimeError(f"expected {len(added)} games, got {len(again.collection)}")
    print(f"{len(added)} games ok")
    return [g.key for g in added]


def case_votes(api, room_id, keys):
    print_case("votes")
    view = fresh_view(api, room_id, "smoke1")
    must(view.toggle_vote(keys[0]), view, "vote")
    if len(keys) > 1:
        must(view.toggle_veto(keys[1]), view, "veto")

    other = fresh_view(api, room_id, "smoke2")
    if "smoke1" not in other.collection.get(keys[0]).votes:
        raise RuntimeError("vote not visible to other user")
    if len(keys) > 1 and "smoke1" not in other.collection.get(keys[1]).vetoes:
        raise RuntimeError("veto not visible to other user")

    # もう一度押すと取り消し
    must(view.toggle_vote(keys[0]), view, "unvote")
    other = fresh_view(api, room_id, "smoke2")
    if "smoke1" in other.collection.get(keys[0]).votes:
        raise RuntimeError("vote still visible after toggle")
    print("votes ok")


def case_reset(api, room_id, keys):
    print_case("reset")
    view = fresh_view(api, room_id, "smoke1")
    must(view.toggle_vote(keys[0]), view, "vote")
    must(view.reset_votes(), view, "reset")

    other = fresh_view(api, room_id, "smoke2")
    if any(g.votes or g.vetoes for g in other.collection.to_list()):
        raise RuntimeError("votes remain after reset")
    if not other.collection.has_games:
        raise RuntimeError("games disappeared after reset")
    print("reset ok")


def main():
    if len(sys.argv) < 2:
        print("usage: smoke_flow.py <bgg_user>", file=sys.stderr)
        return 2
    bgg_user = sys.argv[1]

    with create_http_client() as client:
        api = RoomApi(client)
        room_id = api.create_room()
        print(f"room {room_id}")

        keys = case_import(api, room_id, bgg_user)
        case_votes(api, room_id, keys)
        case_reset(api, room_id, keys)

    print("\nALL OK")
    return 0


if __name__ == "__main__":
    sys.exit(main())
